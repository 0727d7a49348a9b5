"""测试共享 fixture：临时仓库 + 源码包工厂"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from pkgshelf.core.context import StoreContext

MakePackage = Callable[..., Path]


@pytest.fixture()
def ctx(tmp_path: Path) -> StoreContext:
    """独立仓库，锁参数调小以加快测试"""
    return StoreContext.for_root(
        tmp_path / "store",
        lock_timeout=2.0,
        lock_retry_interval=0.01,
    )


@pytest.fixture()
def make_package(tmp_path: Path) -> MakePackage:
    """在临时目录生成一个可发布的源码包

    默认生成 package.json + dist/index.js + dist/index.d.ts，共 3 个文件。
    files 参数覆盖 dist 下的文件内容 {相对路径: 内容}。
    """

    def _make(
        name: str = "@scope/lib",
        version: str = "1.0.0",
        files: dict[str, str] | None = None,
        manifest_extra: dict | None = None,
    ) -> Path:
        safe = name.replace("@", "").replace("/", "-")
        src = tmp_path / "src" / f"{safe}-{version}"
        src.mkdir(parents=True, exist_ok=True)
        manifest = {"name": name, "version": version, **(manifest_extra or {})}
        (src / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
        contents = files if files is not None else {
            "dist/index.js": f"module.exports = '{name}@{version}';\n",
            "dist/index.d.ts": "export {};\n",
        }
        for rel, text in contents.items():
            target = src / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        return src

    return _make
