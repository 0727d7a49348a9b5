"""删除：版本 / 整个包 / 命名空间

remove(target) 的判定顺序:
  1. target 不含 @ 和 /，未显式指定命名空间，且是已登记的命名空间 -> 删除命名空间
  2. target 形如 name@version                                        -> 删除该版本
  3. 其他                                                            -> 删除整个包

每种删除都在锁内成对修改索引与磁盘；global 命名空间在任何修改前被拒绝。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pkgshelf.core.exceptions import InvalidSpecError, PackageNotFoundError, ReservedNamespaceError
from pkgshelf.core.models import DEFAULT_NAMESPACE
from pkgshelf.core.resolver import parse_spec

if TYPE_CHECKING:
    from pkgshelf.core.context import StoreContext

logger = logging.getLogger(__name__)


@dataclass
class RemoveResult:
    kind: str  # "namespace", "package", "version"
    name: str
    version: str | None = None
    namespace: str | None = None


class Remover:
    def __init__(self, ctx: StoreContext) -> None:
        self.ctx = ctx

    def remove(self, target: str, namespace: str | None = None) -> RemoveResult:
        return self.ctx.lock.with_lock(
            lambda: self._remove(target, namespace), command=f"remove {target}",
        )

    def remove_namespace(self, namespace: str) -> RemoveResult:
        if namespace == DEFAULT_NAMESPACE:
            raise ReservedNamespaceError(namespace)
        return self.ctx.lock.with_lock(
            lambda: self._drop_namespace(namespace), command=f"remove {namespace}",
        )

    def _drop_namespace(self, namespace: str) -> RemoveResult:
        registry = self.ctx.index.read()
        if not registry.has_namespace(namespace) and not self.ctx.store.namespace_exists(namespace):
            raise PackageNotFoundError(f"命名空间不存在: '{namespace}'")
        # 先改内存索引再动磁盘，global 在这里之前就已被拒绝
        registry.remove_namespace(namespace)
        self.ctx.store.delete_namespace(namespace)
        self.ctx.index.write(registry)
        logger.info("已删除命名空间: %s", namespace)
        return RemoveResult(kind="namespace", name=namespace)

    def _remove(self, target: str, namespace: str | None) -> RemoveResult:
        registry = self.ctx.index.read()

        if namespace is None and "@" not in target and "/" not in target and registry.has_namespace(target):
            if target == DEFAULT_NAMESPACE:
                raise ReservedNamespaceError(target)
            return self._drop_namespace(target)

        ns = namespace or DEFAULT_NAMESPACE
        store = self.ctx.store

        try:
            spec = parse_spec(target)
        except InvalidSpecError:
            spec = None

        if spec is not None:
            if registry.get_version(ns, spec.name, spec.version) is None:
                raise PackageNotFoundError(f"命名空间 '{ns}' 中不存在 {spec}")
            registry.remove_version(ns, spec.name, spec.version)
            store.delete_version(ns, spec.name, spec.version)
            self.ctx.index.write(registry)
            return RemoveResult(kind="version", name=spec.name, version=spec.version, namespace=ns)

        if registry.get_package(ns, target) is None:
            raise PackageNotFoundError(f"命名空间 '{ns}' 中不存在包 {target}")
        registry.remove_version(ns, target)
        store.delete_package(ns, target)
        self.ctx.index.write(registry)
        return RemoveResult(kind="package", name=target, namespace=ns)
