"""仓库索引数据模型

文档结构:
    schema_version: "1"
    namespaces:
      <ns>:
        created: <ISO 8601>
        packages:
          <pkg>:
            versions:
              <ver>: {signature: <hex>, published: <ISO 8601>, files: <int>}

持久化文档是松散的 YAML，在读取边界 (Registry.from_dict) 一次性
校验并规范化为强类型结构：格式不对或无法映射为目录名的条目丢弃并告警，缺失的
global 命名空间在这里补齐。下游逻辑只面对规范化后的对象。

Registry 上的修改方法都是纯内存操作，调用方负责随后持久化。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pkgshelf.core.exceptions import ReservedNamespaceError
from pkgshelf.core.names import is_valid_location

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "global"
SCHEMA_VERSION = "1"


def utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def sort_namespaces(names: list[str] | set[str]) -> list[str]:
    """global 排第一，其余按字母序"""
    return sorted(names, key=lambda n: (n != DEFAULT_NAMESPACE, n))


def version_key(package: str, version: str) -> str:
    """包版本的唯一键 "pkg@ver"，用于索引与磁盘比对"""
    return f"{package}@{version}"


@dataclass
class VersionEntry:
    """已发布的一个版本"""

    signature: str
    published: str
    files: int

    def to_dict(self) -> dict[str, Any]:
        return {"signature": self.signature, "published": self.published, "files": self.files}

    @classmethod
    def from_dict(cls, data: Any) -> VersionEntry | None:
        if not isinstance(data, dict):
            return None
        signature = data.get("signature")
        files = data.get("files", 0)
        if not isinstance(signature, str) or not signature:
            return None
        if not isinstance(files, int) or isinstance(files, bool) or files < 0:
            return None
        return cls(signature=signature, published=str(data.get("published", "")), files=files)


@dataclass
class PackageEntry:
    versions: dict[str, VersionEntry] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"versions": {v: e.to_dict() for v, e in self.versions.items()}}


@dataclass
class NamespaceEntry:
    created: str = field(default_factory=utc_now_iso)
    packages: dict[str, PackageEntry] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "packages": {p: e.to_dict() for p, e in self.packages.items()},
        }


@dataclass(frozen=True)
class PackageLocation:
    """某个包在某个命名空间里的全部版本"""

    namespace: str
    package: str
    versions: list[str]


@dataclass
class Registry:
    """仓库索引（内存形态）"""

    schema_version: str = SCHEMA_VERSION
    namespaces: dict[str, NamespaceEntry] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.ensure_namespace(DEFAULT_NAMESPACE)

    # ------------------------------------------------------------------
    # 序列化
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls) -> Registry:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Registry:
        """校验并规范化原始文档"""
        # 早期文档用 version 表示结构版本
        schema = data.get("schema_version", data.get("version", SCHEMA_VERSION))
        namespaces: dict[str, NamespaceEntry] = {}

        raw_namespaces = data.get("namespaces") or {}
        if not isinstance(raw_namespaces, dict):
            logger.warning("索引 namespaces 段不是映射，已忽略")
            raw_namespaces = {}

        for ns, raw_ns in raw_namespaces.items():
            if not isinstance(raw_ns, dict) or not is_valid_location(str(ns)):
                logger.warning("丢弃格式错误的命名空间: %s", ns)
                continue
            entry = NamespaceEntry(created=str(raw_ns.get("created") or utc_now_iso()))
            raw_packages = raw_ns.get("packages") or {}
            if not isinstance(raw_packages, dict):
                raw_packages = {}
            for pkg, raw_pkg in raw_packages.items():
                raw_versions = raw_pkg.get("versions") if isinstance(raw_pkg, dict) else None
                if not isinstance(raw_versions, dict) or not is_valid_location(str(ns), str(pkg)):
                    logger.warning("丢弃格式错误的包: %s/%s", ns, pkg)
                    continue
                versions: dict[str, VersionEntry] = {}
                for ver, raw_ver in raw_versions.items():
                    ve = VersionEntry.from_dict(raw_ver)
                    if ve is None or not is_valid_location(str(ns), str(pkg), str(ver)):
                        logger.warning("丢弃格式错误的版本: %s/%s@%s", ns, pkg, ver)
                        continue
                    versions[str(ver)] = ve
                if versions:
                    entry.packages[str(pkg)] = PackageEntry(versions=versions)
            namespaces[str(ns)] = entry

        if DEFAULT_NAMESPACE not in namespaces:
            logger.info("索引缺少 %s 命名空间，已补齐", DEFAULT_NAMESPACE)
        # __post_init__ 负责补齐 global
        return cls(schema_version=str(schema), namespaces=namespaces)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "namespaces": {
                ns: self.namespaces[ns].to_dict() for ns in sort_namespaces(set(self.namespaces))
            },
        }

    # ------------------------------------------------------------------
    # 修改（纯内存）
    # ------------------------------------------------------------------

    def ensure_namespace(self, namespace: str) -> NamespaceEntry:
        entry = self.namespaces.get(namespace)
        if entry is None:
            entry = NamespaceEntry()
            self.namespaces[namespace] = entry
        return entry

    def add_version(self, namespace: str, package: str, version: str, entry: VersionEntry) -> None:
        """写入版本条目，命名空间与包不存在时自动创建；已存在则覆盖"""
        ns_entry = self.ensure_namespace(namespace)
        pkg_entry = ns_entry.packages.setdefault(package, PackageEntry())
        pkg_entry.versions[version] = entry

    def remove_version(self, namespace: str, package: str, version: str | None = None) -> bool:
        """删除一个版本；version 为 None 时删除整个包。返回是否有改动

        版本删光后包条目一并删除，不留空映射。
        """
        ns_entry = self.namespaces.get(namespace)
        if ns_entry is None:
            return False
        pkg_entry = ns_entry.packages.get(package)
        if pkg_entry is None:
            return False

        if version is None:
            del ns_entry.packages[package]
            return True

        if version not in pkg_entry.versions:
            return False
        del pkg_entry.versions[version]
        if not pkg_entry.versions:
            del ns_entry.packages[package]
        return True

    def remove_namespace(self, namespace: str) -> bool:
        """删除命名空间及其全部包；global 不可删除"""
        if namespace == DEFAULT_NAMESPACE:
            raise ReservedNamespaceError(namespace)
        if namespace not in self.namespaces:
            return False
        del self.namespaces[namespace]
        return True

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def has_namespace(self, namespace: str) -> bool:
        return namespace in self.namespaces

    def namespace_names(self) -> list[str]:
        return sort_namespaces(set(self.namespaces))

    def package_names(self, namespace: str) -> list[str]:
        ns_entry = self.namespaces.get(namespace)
        return sorted(ns_entry.packages) if ns_entry else []

    def version_names(self, namespace: str, package: str) -> list[str]:
        pkg_entry = self.get_package(namespace, package)
        return sorted(pkg_entry.versions) if pkg_entry else []

    def get_package(self, namespace: str, package: str) -> PackageEntry | None:
        ns_entry = self.namespaces.get(namespace)
        if ns_entry is None:
            return None
        return ns_entry.packages.get(package)

    def get_version(self, namespace: str, package: str, version: str) -> VersionEntry | None:
        pkg_entry = self.get_package(namespace, package)
        if pkg_entry is None:
            return None
        return pkg_entry.versions.get(version)

    def find_package(self, package: str) -> list[PackageLocation]:
        """在所有命名空间中查找包，global 在前"""
        return [
            PackageLocation(ns, package, self.version_names(ns, package))
            for ns in self.namespace_names()
            if package in self.namespaces[ns].packages
        ]

    def find_by_scope(self, scope: str) -> list[PackageLocation]:
        """查找 scope 下的所有包，scope 可写作 "@org" 或 "@org/" """
        bare = scope.rstrip("/")
        prefix = f"{bare}/"
        results = []
        for ns in self.namespace_names():
            for pkg in self.package_names(ns):
                if pkg.startswith(prefix) or pkg == bare:
                    results.append(PackageLocation(ns, pkg, self.version_names(ns, pkg)))
        return results

    def total_versions(self) -> int:
        return sum(
            len(pkg.versions)
            for ns in self.namespaces.values()
            for pkg in ns.packages.values()
        )

    def registered_keys(self, namespace: str) -> set[str]:
        """命名空间内所有 "pkg@ver" 键，命名空间不存在时为空集"""
        ns_entry = self.namespaces.get(namespace)
        if ns_entry is None:
            return set()
        return {
            version_key(pkg, ver)
            for pkg, pkg_entry in ns_entry.packages.items()
            for ver in pkg_entry.versions
        }
