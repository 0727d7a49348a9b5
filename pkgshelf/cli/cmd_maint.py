"""CLI：对账与锁维护"""

from __future__ import annotations

import sys

import click

from pkgshelf.cli import _ctx

# verify 发现未修复问题时的退出码（未加 --fix，或存在签名不一致）
EXIT_ISSUES_FOUND = 5


def register(group: click.Group) -> None:
    group.add_command(verify)
    group.add_command(prune)
    group.add_command(status)
    group.add_command(unlock)


def _echo_refs(title: str, refs: list) -> None:
    if not refs:
        return
    click.echo(f"⚠ {title} ({len(refs)}):")
    for ref in refs:
        click.echo(f"  - {ref}")


@click.command()
@click.option("--fix", is_flag=True, help="修复索引孤儿与磁盘孤儿")
def verify(fix: bool) -> None:
    """校验索引与磁盘的一致性"""
    from pkgshelf.core.maintenance import StoreMaintainer

    report = StoreMaintainer(_ctx()).verify(fix=fix)
    _echo_refs("索引条目缺少文件", report.registry_orphans)
    _echo_refs("文件缺少索引条目", report.disk_orphans)
    _echo_refs("签名不一致（需人工处理）", [m.ref for m in report.signature_mismatches])

    if report.healthy:
        click.echo("✓ 仓库状态正常")
        return
    if report.fixed:
        click.echo("✓ 孤儿已修复")
    elif not fix:
        click.echo("使用 --fix 修复")
        sys.exit(EXIT_ISSUES_FOUND)
    if report.signature_mismatches:
        click.echo(f"✗ {len(report.signature_mismatches)} 个版本签名不一致，--fix 不会处理，请人工核对后重新发布或删除")
        sys.exit(EXIT_ISSUES_FOUND)


@click.command()
@click.option("-n", "--namespace", default=None, help="只清理指定命名空间")
@click.option("--dry-run", is_flag=True, help="只报告不删除")
def prune(namespace: str | None, dry_run: bool) -> None:
    """删除磁盘上未登记的版本目录"""
    from pkgshelf.core.maintenance import StoreMaintainer

    report = StoreMaintainer(_ctx()).prune(namespace=namespace, dry_run=dry_run)
    if not report.removed:
        click.echo("✓ 没有孤儿版本")
        return
    verb = "将删除" if report.dry_run else "已删除"
    click.echo(f"{verb} {len(report.removed)} 个孤儿版本:")
    for ref in report.removed:
        click.echo(f"  - {ref}")


@click.command()
def status() -> None:
    """显示仓库位置、统计与锁状态"""
    from pkgshelf.core.listing import store_stats

    ctx = _ctx()
    stats = store_stats(ctx.index.read(), ctx.store)
    click.echo(f"仓库: {ctx.root}")
    click.echo(
        f"命名空间: {stats.namespaces}  包: {stats.packages}  "
        f"版本: {stats.versions}  占用: {stats.disk_bytes} 字节"
    )
    holder = ctx.lock.current_holder()
    if holder:
        click.echo(f"锁: PID {holder.pid} ({holder.command or 'unknown'}) 自 {holder.acquired}")
    elif ctx.lock.is_locked():
        click.echo(f"锁: 存在但内容无法解析 ({ctx.lock.path})")
    else:
        click.echo("锁: 空闲")


@click.command()
@click.option("--yes", is_flag=True, help="不确认直接删除")
def unlock(yes: bool) -> None:
    """强制删除锁文件（确认持有进程已退出后使用）"""
    lock = _ctx().lock
    if not lock.is_locked():
        click.echo("仓库未加锁。")
        return
    holder = lock.current_holder()
    if holder:
        click.echo(f"持有者: PID {holder.pid} ({holder.command or 'unknown'}) 自 {holder.acquired}")
    if not yes:
        click.confirm("确定删除锁文件?", abort=True)
    lock.force_release()
    click.echo("✓ 锁已删除")
