"""包解析器：按命名空间顺序查找精确版本

解析是纯函数: (名称, 版本, 命名空间列表, 索引快照) -> 命中/未命中。
  - 命名空间严格按调用方给出的顺序尝试，列表为空时只查 global
  - 第一个包含精确 (名称, 版本) 的命名空间胜出
  - 不做范围匹配，也不挑选"最佳版本"
  - 未命中不是异常，返回 found=False 的结果，批量解析不会被单个未命中打断
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pkgshelf.core.exceptions import InvalidSpecError
from pkgshelf.core.models import DEFAULT_NAMESPACE, Registry

if TYPE_CHECKING:
    from pkgshelf.core.store import PackageStore

logger = logging.getLogger(__name__)

_SCOPED_SPEC = re.compile(r"^(@[^/@]+/[^@]+)@(.+)$")
_PLAIN_SPEC = re.compile(r"^([^@]+)@(.+)$")


@dataclass(frozen=True)
class PackageSpec:
    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass
class Resolution:
    """单个包的解析结果"""

    name: str
    version: str
    found: bool
    namespace: str | None = None
    path: Path | None = None
    signature: str | None = None
    searched: list[str] = field(default_factory=list)

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"


def parse_spec(spec: str) -> PackageSpec:
    """解析 "name@version" / "@scope/name@version"，格式错误抛 InvalidSpecError"""
    text = spec.strip()
    match = _SCOPED_SPEC.match(text) or _PLAIN_SPEC.match(text)
    if match is None:
        raise InvalidSpecError(spec)
    return PackageSpec(name=match.group(1), version=match.group(2))


def parse_specs(specs: list[str]) -> list[PackageSpec]:
    """批量解析，格式错误的条目静默丢弃"""
    parsed = []
    for spec in specs:
        try:
            parsed.append(parse_spec(spec))
        except InvalidSpecError:
            logger.debug("忽略无效描述符: %s", spec)
    return parsed


def format_resolution(result: Resolution) -> str:
    if result.found:
        sig = (result.signature or "")[:8]
        return f"✓ {result.spec} → {result.namespace} ({sig})"
    return f"✗ {result.spec} not found (searched: {', '.join(result.searched)})"


class PackageResolver:
    """命名空间有序解析；store 仅用于计算命中结果的目录路径"""

    def __init__(self, store: PackageStore | None = None) -> None:
        self.store = store

    def resolve(
        self,
        name: str,
        version: str,
        namespaces: list[str] | None,
        registry: Registry,
    ) -> Resolution:
        order = list(namespaces) if namespaces else [DEFAULT_NAMESPACE]
        searched: list[str] = []
        for ns in order:
            searched.append(ns)
            entry = registry.get_version(ns, name, version)
            if entry is None:
                continue
            path = self.store.version_path(ns, name, version) if self.store else None
            return Resolution(
                name=name, version=version, found=True,
                namespace=ns, path=path, signature=entry.signature,
                searched=searched,
            )
        return Resolution(name=name, version=version, found=False, searched=searched)

    def resolve_many(
        self,
        specs: list[PackageSpec],
        namespaces: list[str] | None,
        registry: Registry,
    ) -> list[Resolution]:
        return [self.resolve(s.name, s.version, namespaces, registry) for s in specs]

    def find_in_namespace(
        self, name: str, version: str, namespace: str, registry: Registry,
    ) -> Resolution:
        return self.resolve(name, version, [namespace], registry)

    def exists_in_namespaces(
        self, name: str, version: str, namespaces: list[str] | None, registry: Registry,
    ) -> bool:
        return self.resolve(name, version, namespaces, registry).found

    @staticmethod
    def all_versions(
        name: str, namespaces: list[str] | None, registry: Registry,
    ) -> list[tuple[str, str, str]]:
        """列出包在各命名空间的全部版本 (namespace, version, signature)

        namespaces 为空时查全部命名空间（global 在前）。
        """
        order = list(namespaces) if namespaces else registry.namespace_names()
        results = []
        for ns in order:
            pkg = registry.get_package(ns, name)
            if pkg is None:
                continue
            results.extend((ns, ver, pkg.versions[ver].signature) for ver in sorted(pkg.versions))
        return results
