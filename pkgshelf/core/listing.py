"""索引内容的文本展示（list / status 命令用）"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pkgshelf.core.models import Registry

if TYPE_CHECKING:
    from pkgshelf.core.store import PackageStore


@dataclass
class StoreStats:
    namespaces: int
    packages: int
    versions: int
    disk_bytes: int


def _sig(registry: Registry, ns: str, pkg: str, ver: str) -> str:
    entry = registry.get_version(ns, pkg, ver)
    return entry.signature[:8] if entry else ""


def list_by_namespace(
    registry: Registry, namespaces: list[str] | None = None, flat: bool = False,
) -> list[str]:
    """按命名空间分组输出；指定命名空间不存在时输出空分组"""
    lines: list[str] = []
    for ns in namespaces or registry.namespace_names():
        packages = registry.package_names(ns)
        if not flat:
            lines.append(f"{ns}/" if packages else f"{ns}/ (empty)")
        for pkg in packages:
            for ver in registry.version_names(ns, pkg):
                sig = _sig(registry, ns, pkg, ver)
                if flat:
                    lines.append(f"{ns}  {pkg}@{ver}  {sig}")
                else:
                    lines.append(f"  {pkg}@{ver}  {sig}")
    return lines


def list_by_package(
    registry: Registry, packages: list[str] | None = None, flat: bool = False,
) -> list[str]:
    """按包分组输出，每个包下列出所在命名空间与版本"""
    if packages:
        names = packages
    else:
        names = sorted({p for ns in registry.namespace_names() for p in registry.package_names(ns)})

    lines: list[str] = []
    for pkg in names:
        locations = registry.find_package(pkg)
        if not flat:
            lines.append(pkg if locations else f"{pkg} (not found)")
        for loc in locations:
            for ver in loc.versions:
                sig = _sig(registry, loc.namespace, pkg, ver)
                if flat:
                    lines.append(f"{pkg}@{ver}  {loc.namespace}  {sig}")
                else:
                    lines.append(f"  {loc.namespace}  {ver}  {sig}")
    return lines


def store_stats(registry: Registry, store: PackageStore) -> StoreStats:
    return StoreStats(
        namespaces=len(registry.namespaces),
        packages=sum(len(registry.package_names(ns)) for ns in registry.namespaces),
        versions=registry.total_versions(),
        disk_bytes=store.disk_usage(),
    )
