"""仓库上下文 — 一个根目录对应的一组组件

StoreContext 持有 StoreConfig，并懒加载同一根目录下的
StoreLock / RegistryIndex / PackageStore / PackageResolver。
上层操作（发布、删除、对账）都从上下文取组件，而不是各自构造。

用法:
    ctx = StoreContext(StoreConfig.from_env())
    with ctx.lock.acquire("publish"):
        registry = ctx.index.read()
        ...
        ctx.index.write(registry)

    # 测试中为临时目录建立独立仓库
    ctx = StoreContext.for_root(tmp_path / "store")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pkgshelf.core.config import StoreConfig

if TYPE_CHECKING:
    from collections.abc import Callable

    from pkgshelf.core.lock import StoreLock
    from pkgshelf.core.registry import RegistryIndex
    from pkgshelf.core.resolver import PackageResolver
    from pkgshelf.core.store import PackageStore

logger = logging.getLogger(__name__)


class StoreContext:
    """懒加载组件容器，同一上下文内的组件共享同一根目录"""

    def __init__(
        self,
        config: StoreConfig | None = None,
        is_alive: Callable[[int], bool] | None = None,
    ) -> None:
        self._config = config or StoreConfig.from_env()
        self._is_alive = is_alive
        self._instances: dict[str, object] = {}

    @classmethod
    def for_root(cls, root: str | Path, **config_overrides: object) -> StoreContext:
        return cls(StoreConfig(root=str(root), **config_overrides))  # type: ignore[arg-type]

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def root(self) -> Path:
        return self._config.root_path

    @property
    def lock(self) -> StoreLock:
        if "lock" not in self._instances:
            from pkgshelf.core.lock import StoreLock, is_process_alive
            self._instances["lock"] = StoreLock(
                self.root,
                options=self._config.lock_options(),
                is_alive=self._is_alive or is_process_alive,
            )
        return self._instances["lock"]  # type: ignore[return-value]

    @property
    def index(self) -> RegistryIndex:
        if "index" not in self._instances:
            from pkgshelf.core.registry import RegistryIndex
            self._instances["index"] = RegistryIndex(self._config.registry_path)
        return self._instances["index"]  # type: ignore[return-value]

    @property
    def store(self) -> PackageStore:
        if "store" not in self._instances:
            from pkgshelf.core.store import PackageStore
            self._instances["store"] = PackageStore(self.root)
        return self._instances["store"]  # type: ignore[return-value]

    @property
    def resolver(self) -> PackageResolver:
        if "resolver" not in self._instances:
            from pkgshelf.core.resolver import PackageResolver
            self._instances["resolver"] = PackageResolver(self.store)
        return self._instances["resolver"]  # type: ignore[return-value]
