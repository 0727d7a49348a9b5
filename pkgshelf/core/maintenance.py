"""仓库对账 — 检测并修复索引与磁盘之间的偏差

索引和磁盘是两份独立持久化的数据，锁只能保证串行，不能保证原子：
进程在"改磁盘"与"写索引"之间崩溃，就会留下两类孤儿:

  - 索引孤儿 (registry orphan): 索引里有条目，磁盘上没有版本目录
  - 磁盘孤儿 (disk orphan):     磁盘上有版本目录，索引里没有条目

另有签名不一致: 两边都在，但磁盘签名 != 索引签名。

verify(fix=True) 在锁内删除索引孤儿条目、删除磁盘孤儿目录；
签名不一致只报告不修复（分不清是损坏还是发布中断，需要人工判断）。
prune() 是日常用的窄版本: 只清理磁盘孤儿，支持 dry_run。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pkgshelf.core.models import Registry, version_key

if TYPE_CHECKING:
    from pkgshelf.core.context import StoreContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrphanRef:
    namespace: str
    package: str
    version: str

    @property
    def key(self) -> str:
        return version_key(self.package, self.version)

    def __str__(self) -> str:
        return f"{self.namespace}/{self.package}@{self.version}"


@dataclass(frozen=True)
class SignatureMismatch:
    """recorded 为索引中的签名，actual 为磁盘标记文件内容（缺失为 None）"""

    ref: OrphanRef
    recorded: str
    actual: str | None


@dataclass
class VerifyReport:
    registry_orphans: list[OrphanRef] = field(default_factory=list)
    disk_orphans: list[OrphanRef] = field(default_factory=list)
    signature_mismatches: list[SignatureMismatch] = field(default_factory=list)
    fixed: bool = False

    @property
    def has_orphans(self) -> bool:
        return bool(self.registry_orphans or self.disk_orphans)

    @property
    def healthy(self) -> bool:
        return not (self.has_orphans or self.signature_mismatches)


@dataclass
class PruneReport:
    removed: list[OrphanRef] = field(default_factory=list)
    dry_run: bool = False


class StoreMaintainer:
    """verify / prune 的实现"""

    def __init__(self, ctx: StoreContext) -> None:
        self.ctx = ctx

    # ------------------------------------------------------------------
    # 扫描（不加锁）
    # ------------------------------------------------------------------

    def _scan_registry(self, registry: Registry, report: VerifyReport) -> None:
        store = self.ctx.store
        for ns in registry.namespace_names():
            for pkg in registry.package_names(ns):
                for ver in registry.version_names(ns, pkg):
                    ref = OrphanRef(ns, pkg, ver)
                    if not store.version_exists(ns, pkg, ver):
                        report.registry_orphans.append(ref)
                        continue
                    recorded = registry.namespaces[ns].packages[pkg].versions[ver].signature
                    actual = store.read_signature(ns, pkg, ver)
                    if actual != recorded:
                        report.signature_mismatches.append(SignatureMismatch(ref, recorded, actual))

    def _scan_disk(self, registry: Registry, namespaces: list[str]) -> list[OrphanRef]:
        store = self.ctx.store
        orphans = []
        for ns in namespaces:
            for sv in store.find_orphaned(ns, registry.registered_keys(ns)):
                orphans.append(OrphanRef(ns, sv.package, sv.version))
        return orphans

    # ------------------------------------------------------------------
    # verify
    # ------------------------------------------------------------------

    def verify(self, fix: bool = False) -> VerifyReport:
        """检查索引与磁盘的一致性，fix=True 时修复两类孤儿"""
        registry = self.ctx.index.read()
        report = VerifyReport()
        self._scan_registry(registry, report)
        report.disk_orphans = self._scan_disk(registry, self.ctx.store.list_namespaces())

        logger.info(
            "校验完成: 索引孤儿 %d, 磁盘孤儿 %d, 签名不一致 %d",
            len(report.registry_orphans), len(report.disk_orphans),
            len(report.signature_mismatches),
        )
        for m in report.signature_mismatches:
            logger.warning("签名不一致: %s (索引 %s, 磁盘 %s)", m.ref, m.recorded[:8], (m.actual or "无")[:8])

        if fix and report.has_orphans:
            self.ctx.lock.with_lock(lambda: self._repair(report), command="verify --fix")
            report.fixed = True
        return report

    def _repair(self, report: VerifyReport) -> None:
        # 扫描时没有持锁，进锁后以最新索引为准，只处理仍然是孤儿的条目
        store = self.ctx.store
        registry = self.ctx.index.read()

        for ref in report.registry_orphans:
            if store.version_exists(ref.namespace, ref.package, ref.version):
                continue
            if registry.remove_version(ref.namespace, ref.package, ref.version):
                logger.info("已移除索引孤儿: %s", ref)

        for ref in report.disk_orphans:
            if registry.get_version(ref.namespace, ref.package, ref.version) is not None:
                continue
            store.delete_version(ref.namespace, ref.package, ref.version)

        self.ctx.index.write(registry)

    # ------------------------------------------------------------------
    # prune
    # ------------------------------------------------------------------

    def prune(self, namespace: str | None = None, dry_run: bool = False) -> PruneReport:
        """清理磁盘孤儿；dry_run 只报告不删除"""
        registry = self.ctx.index.read()
        namespaces = [namespace] if namespace else self.ctx.store.list_namespaces()
        report = PruneReport(removed=self._scan_disk(registry, namespaces), dry_run=dry_run)

        if dry_run or not report.removed:
            logger.info("待清理磁盘孤儿: %d (dry_run=%s)", len(report.removed), dry_run)
            return report

        def _delete() -> None:
            current = self.ctx.index.read()
            kept = []
            for ref in report.removed:
                if current.get_version(ref.namespace, ref.package, ref.version) is not None:
                    continue
                self.ctx.store.delete_version(ref.namespace, ref.package, ref.version)
                kept.append(ref)
            report.removed = kept

        self.ctx.lock.with_lock(_delete, command="prune")
        logger.info("已清理磁盘孤儿: %d", len(report.removed))
        return report
