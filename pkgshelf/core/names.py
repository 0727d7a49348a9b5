"""命名空间 / 包名 / 版本号的目录名校验

索引读取与磁盘路径计算共用同一套规则：能进索引的名字一定能映射为目录，
反之亦然。带 scope 的包名必须是 "@scope/name"，单独以 @ 开头的名字
会和 scope 目录混淆，一律拒绝。
"""

from __future__ import annotations

from pkgshelf.core.exceptions import InvalidNameError


def check_segment(value: str, what: str) -> None:
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise InvalidNameError(f"无效的{what}: '{value}'")


def split_package_name(package: str) -> list[str]:
    """包名拆成目录层级: "@scope/name" -> ["@scope", "name"]"""
    parts = package.split("/")
    if len(parts) > 2 or parts[-1].startswith("@") or (len(parts) == 2) != parts[0].startswith("@"):
        raise InvalidNameError(f"无效的包名: '{package}'")
    for part in parts:
        check_segment(part, "包名")
    return parts


def is_valid_location(namespace: str, package: str | None = None, version: str | None = None) -> bool:
    """(命名空间, 包, 版本) 能否映射为仓库内的目录"""
    try:
        check_segment(namespace, "命名空间")
        if package is not None:
            split_package_name(package)
        if version is not None:
            check_segment(version, "版本号")
    except InvalidNameError:
        return False
    return True
