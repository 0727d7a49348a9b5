"""CLI：发布、解析、列举、删除"""

from __future__ import annotations

import sys

import click

from pkgshelf.cli import _ctx, _split_csv


def register(group: click.Group) -> None:
    group.add_command(publish)
    group.add_command(resolve)
    group.add_command(list_packages)
    group.add_command(remove)


@click.command()
@click.argument("source", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("-n", "--namespace", default="global", help="目标命名空间")
def publish(source: str, namespace: str) -> None:
    """发布 SOURCE 目录（含 package.json）到仓库"""
    from pkgshelf.core.publisher import Publisher
    result = Publisher(_ctx()).publish(source, namespace=namespace)
    click.echo(f"✓ 已发布 {result.name}@{result.version}")
    click.echo(f"  命名空间: {result.namespace}")
    click.echo(f"  签名: {result.signature[:8]}")
    click.echo(f"  文件数: {result.files}")


@click.command()
@click.argument("specs", nargs=-1, required=True)
@click.option("-n", "--namespaces", multiple=True, help="命名空间优先级，逗号分隔或多次指定")
@click.option("--path", "paths_only", is_flag=True, help="只输出命中的目录路径")
def resolve(specs: tuple[str, ...], namespaces: tuple[str, ...], paths_only: bool) -> None:
    """按命名空间顺序解析 name@version"""
    from pkgshelf.core.resolver import format_resolution, parse_spec, parse_specs

    ctx = _ctx()
    # 单个描述符格式错误直接报错；批量时静默跳过
    parsed = [parse_spec(specs[0])] if len(specs) == 1 else parse_specs(list(specs))
    if not parsed:
        raise click.UsageError("没有有效的包描述符，格式: name@version")

    registry = ctx.index.read()
    results = ctx.resolver.resolve_many(parsed, _split_csv(namespaces), registry)
    for r in results:
        if paths_only:
            if r.found:
                click.echo(str(r.path))
        else:
            click.echo(format_resolution(r))

    if any(not r.found for r in results):
        sys.exit(2)


@click.command(name="list")
@click.option("-n", "--namespaces", multiple=True, help="只列出这些命名空间")
@click.option("-p", "--packages", multiple=True, help="按包列出")
@click.option("--flat", is_flag=True, help="每行一个版本")
def list_packages(namespaces: tuple[str, ...], packages: tuple[str, ...], flat: bool) -> None:
    """列出仓库中的包"""
    from pkgshelf.core.listing import list_by_namespace, list_by_package

    registry = _ctx().index.read()
    pkgs = _split_csv(packages)
    if pkgs:
        lines = list_by_package(registry, pkgs, flat=flat)
    else:
        lines = list_by_namespace(registry, _split_csv(namespaces) or None, flat=flat)
    if not lines:
        click.echo("仓库为空。")
        return
    for line in lines:
        click.echo(line)


@click.command()
@click.argument("target")
@click.option("-n", "--namespace", default=None, help="包所在命名空间（默认 global）")
def remove(target: str, namespace: str | None) -> None:
    """删除版本 (name@version)、整个包 (name) 或命名空间"""
    from pkgshelf.core.remover import Remover

    result = Remover(_ctx()).remove(target, namespace=namespace)
    if result.kind == "namespace":
        click.echo(f"✓ 已删除命名空间 '{result.name}'")
    elif result.kind == "package":
        click.echo(f"✓ 已从 '{result.namespace}' 删除包 '{result.name}'")
    else:
        click.echo(f"✓ 已从 '{result.namespace}' 删除 {result.name}@{result.version}")
