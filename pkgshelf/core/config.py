"""仓库配置

一个 StoreConfig 描述一个仓库根目录及其锁参数，显式传入
StoreContext / StoreLock / RegistryIndex / PackageStore，
不使用进程级单例，因此测试可以在同一进程里并行操作多个仓库。

根目录优先级: 显式参数 > 环境变量 PKGSHELF_ROOT > 平台默认目录
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pkgshelf.core.exceptions import ConfigError
from pkgshelf.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pkgshelf.core.lock import LockOptions

logger = logging.getLogger(__name__)

ROOT_ENV = "PKGSHELF_ROOT"
STORE_DIR_NAME = ".pkgshelf"

# 仓库根目录下的固定布局
REGISTRY_FILE = "registry.yml"
LOCK_FILE = ".lock"
NAMESPACES_DIR = "namespaces"
SIGNATURE_FILE = "pkgshelf.sig"

# 锁参数（秒）
DEFAULT_LOCK_TIMEOUT = 30.0
DEFAULT_LOCK_RETRY_INTERVAL = 0.1
DEFAULT_LOCK_STALE = 10.0


def default_store_root(environ: Mapping[str, str] | None = None) -> Path:
    """平台默认根目录: Windows 为 %LOCALAPPDATA%\\pkgshelf，其余为 ~/.pkgshelf"""
    env = os.environ if environ is None else environ
    if os.name == "nt" and env.get("LOCALAPPDATA"):
        return Path(env["LOCALAPPDATA"]) / "pkgshelf"
    return Path.home() / STORE_DIR_NAME


@dataclass
class StoreConfig:
    """单个仓库的配置"""

    root: str = ""
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    lock_retry_interval: float = DEFAULT_LOCK_RETRY_INTERVAL
    lock_stale: float = DEFAULT_LOCK_STALE

    # 放不进字段的配置项原样保留
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.root:
            self.root = str(default_store_root())
        self.root = str(Path(self.root).expanduser().absolute())
        for name in ("lock_timeout", "lock_retry_interval", "lock_stale"):
            raw = getattr(self, name)
            try:
                value = float(raw)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"配置项 {name} 不是数字: {raw!r}") from e
            if value < 0 or (value == 0 and name != "lock_timeout"):
                raise ConfigError(f"配置项 {name} 取值无效: {raw!r}")
            setattr(self, name, value)

    # ---- 布局 ----

    @property
    def root_path(self) -> Path:
        return Path(self.root)

    @property
    def registry_path(self) -> Path:
        return self.root_path / REGISTRY_FILE

    @property
    def lock_path(self) -> Path:
        return self.root_path / LOCK_FILE

    @property
    def namespaces_dir(self) -> Path:
        return self.root_path / NAMESPACES_DIR

    # ---- 构造 ----

    @classmethod
    def from_env(
        cls, root: str | None = None, environ: Mapping[str, str] | None = None,
    ) -> StoreConfig:
        """按 显式参数 > PKGSHELF_ROOT > 默认目录 确定根目录"""
        env = os.environ if environ is None else environ
        chosen = root or env.get(ROOT_ENV, "") or str(default_store_root(env))
        return cls(root=chosen)

    @classmethod
    def from_file(cls, path: str | Path, root: str | None = None) -> StoreConfig:
        """从 YAML 文件加载；文件中未给出 root 时回退到 from_env 的规则"""
        data = load_yaml(path)
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}

        if root:
            matched["root"] = root
        elif not matched.get("root"):
            matched["root"] = cls.from_env().root

        cfg = cls(**matched)
        cfg.extra = extra
        logger.info("配置已加载: %s (root=%s)", path, cfg.root)
        return cfg

    def lock_options(self) -> LockOptions:
        from pkgshelf.core.lock import LockOptions
        return LockOptions(
            timeout=self.lock_timeout,
            retry_interval=self.lock_retry_interval,
            stale=self.lock_stale,
        )

    def to_dict(self) -> dict:
        return asdict(self)
