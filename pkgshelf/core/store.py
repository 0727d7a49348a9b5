"""包存储：磁盘上的制品目录树

布局:
    <root>/namespaces/<ns>/<name>/<version>/
    <root>/namespaces/<ns>/@<scope>/<name>/<version>/     (带 scope 的包多一层目录)

每个版本目录内有一个签名标记文件 (pkgshelf.sig)，内容为十六进制摘要。

本模块只管磁盘，不读写索引。两者的配对由调用方在 StoreLock 内完成。
文件系统错误中只吞掉"不存在"，其余原样抛出。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import NamedTuple

from pkgshelf.core.config import NAMESPACES_DIR, SIGNATURE_FILE
from pkgshelf.core.exceptions import ReservedNamespaceError
from pkgshelf.core.models import DEFAULT_NAMESPACE, sort_namespaces, version_key
from pkgshelf.core.names import check_segment, split_package_name

logger = logging.getLogger(__name__)


class StoredVersion(NamedTuple):
    package: str
    version: str


def _list_dirs(path: Path) -> list[str]:
    """列出子目录名（忽略隐藏目录），目录不存在返回空列表"""
    try:
        entries = list(path.iterdir())
    except FileNotFoundError:
        return []
    return sorted(e.name for e in entries if e.is_dir() and not e.name.startswith("."))


def _rmtree(path: Path) -> bool:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    return True


class PackageStore:
    """按 (命名空间, 包, 版本) 管理制品目录"""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.namespaces_dir = self.root / NAMESPACES_DIR

    # ------------------------------------------------------------------
    # 路径
    # ------------------------------------------------------------------

    def namespace_path(self, namespace: str) -> Path:
        check_segment(namespace, "命名空间")
        return self.namespaces_dir / namespace

    def package_path(self, namespace: str, package: str) -> Path:
        return self.namespace_path(namespace).joinpath(*split_package_name(package))

    def version_path(self, namespace: str, package: str, version: str) -> Path:
        check_segment(version, "版本号")
        return self.package_path(namespace, package) / version

    def signature_path(self, namespace: str, package: str, version: str) -> Path:
        return self.version_path(namespace, package, version) / SIGNATURE_FILE

    # ------------------------------------------------------------------
    # 创建 / 探测
    # ------------------------------------------------------------------

    def ensure_store(self) -> None:
        self.namespaces_dir.mkdir(parents=True, exist_ok=True)

    def ensure_namespace(self, namespace: str) -> Path:
        path = self.namespace_path(namespace)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def namespace_exists(self, namespace: str) -> bool:
        return self.namespace_path(namespace).is_dir()

    def version_exists(self, namespace: str, package: str, version: str) -> bool:
        return self.version_path(namespace, package, version).is_dir()

    # ------------------------------------------------------------------
    # 列举
    # ------------------------------------------------------------------

    def list_namespaces(self) -> list[str]:
        return sort_namespaces(_list_dirs(self.namespaces_dir))

    def list_packages(self, namespace: str) -> list[str]:
        """列出命名空间下的包；@scope 目录展开一层，拼回 "@scope/name" """
        ns_path = self.namespace_path(namespace)
        packages: list[str] = []
        for name in _list_dirs(ns_path):
            if name.startswith("@"):
                packages.extend(f"{name}/{sub}" for sub in _list_dirs(ns_path / name))
            else:
                packages.append(name)
        return sorted(packages)

    def list_versions(self, namespace: str, package: str) -> list[str]:
        return _list_dirs(self.package_path(namespace, package))

    def iter_versions(self, namespace: str) -> list[StoredVersion]:
        return [
            StoredVersion(pkg, ver)
            for pkg in self.list_packages(namespace)
            for ver in self.list_versions(namespace, pkg)
        ]

    # ------------------------------------------------------------------
    # 删除
    # ------------------------------------------------------------------

    def _prune_empty_parents(self, start: Path, limit: Path) -> None:
        """自 start 向上删除空目录，到 limit 为止（limit 本身保留）"""
        current = start
        while current != limit and limit in current.parents:
            try:
                if any(current.iterdir()):
                    break
                current.rmdir()
            except FileNotFoundError:
                pass
            current = current.parent

    def delete_version(self, namespace: str, package: str, version: str) -> bool:
        path = self.version_path(namespace, package, version)
        removed = _rmtree(path)
        self._prune_empty_parents(path.parent, self.namespace_path(namespace))
        if removed:
            logger.info("已删除: %s/%s@%s", namespace, package, version)
        return removed

    def delete_package(self, namespace: str, package: str) -> bool:
        path = self.package_path(namespace, package)
        removed = _rmtree(path)
        self._prune_empty_parents(path.parent, self.namespace_path(namespace))
        if removed:
            logger.info("已删除包: %s/%s", namespace, package)
        return removed

    def delete_namespace(self, namespace: str) -> bool:
        if namespace == DEFAULT_NAMESPACE:
            raise ReservedNamespaceError(namespace)
        removed = _rmtree(self.namespace_path(namespace))
        if removed:
            logger.info("已删除命名空间: %s", namespace)
        return removed

    # ------------------------------------------------------------------
    # 签名标记
    # ------------------------------------------------------------------

    def read_signature(self, namespace: str, package: str, version: str) -> str | None:
        try:
            return self.signature_path(namespace, package, version).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None

    def write_signature(self, namespace: str, package: str, version: str, signature: str) -> None:
        self.signature_path(namespace, package, version).write_text(signature, encoding="utf-8")

    # ------------------------------------------------------------------
    # 统计 / 对账
    # ------------------------------------------------------------------

    def disk_usage(self, namespace: str | None = None) -> int:
        """递归统计字节数；不传命名空间时统计整个 namespaces 目录"""
        base = self.namespace_path(namespace) if namespace else self.namespaces_dir
        if not base.is_dir():
            return 0
        total = 0
        for path in base.rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except FileNotFoundError:
                continue
        return total

    def find_orphaned(self, namespace: str, registered_keys: set[str]) -> list[StoredVersion]:
        """磁盘上存在、但 "pkg@ver" 不在 registered_keys 中的版本"""
        return [
            sv for sv in self.iter_versions(namespace)
            if version_key(sv.package, sv.version) not in registered_keys
        ]
