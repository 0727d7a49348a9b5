"""pkgshelf 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常 (ShelfError) 统一转换为 click 的错误输出，退出码 1。
"""

from __future__ import annotations

import os
from typing import Any

import click

from pkgshelf import __version__
from pkgshelf.core.config import StoreConfig
from pkgshelf.core.context import StoreContext
from pkgshelf.core.exceptions import ShelfError
from pkgshelf.utils.logger import setup_logging


class ShelfGroup(click.Group):
    """把 ShelfError 映射为 ClickException"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ShelfError as e:
            raise click.ClickException(f"[{e.code}] {e}") from e


def _ctx() -> StoreContext:
    """当前命令的仓库上下文"""
    return click.get_current_context().find_object(StoreContext)


def _split_csv(values: tuple[str, ...]) -> list[str]:
    """支持 -n a,b -n c 两种写法，保持顺序"""
    result: list[str] = []
    for v in values:
        result.extend(s.strip() for s in v.split(",") if s.strip())
    return result


@click.group(cls=ShelfGroup)
@click.version_option(version=__version__)
@click.option("--root", default=None, help="仓库根目录（默认 $PKGSHELF_ROOT 或 ~/.pkgshelf）")
@click.option("--config", "config_file", default=None, type=click.Path(dir_okay=False), help="YAML 配置文件")
@click.pass_context
def main(ctx: click.Context, root: str | None, config_file: str | None) -> None:
    """pkgshelf - 按命名空间隔离的本地包仓库"""
    setup_logging(
        level=os.getenv("PKGSHELF_LOG_LEVEL", "WARNING"),
        json_output=os.getenv("PKGSHELF_LOG_JSON", "") == "1",
    )
    if config_file:
        cfg = StoreConfig.from_file(config_file, root=root)
    else:
        cfg = StoreConfig.from_env(root=root)
    ctx.obj = StoreContext(cfg)


# 注册各领域子命令
from pkgshelf.cli.cmd_maint import register as _reg_maint  # noqa: E402
from pkgshelf.cli.cmd_store import register as _reg_store  # noqa: E402

_reg_store(main)
_reg_maint(main)
