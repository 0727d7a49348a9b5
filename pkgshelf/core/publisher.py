"""发布：把源目录中的文件写入仓库并登记到索引

源目录需要有 package.json（name / version，可选 files）。
发布文件的选取规则:
  1. package.json 总是包含
  2. 有 files 字段: 逐个展开（目录递归，含 * 的按 glob 匹配）
     没有 files 字段: 取 dist / lib / build / src 下的全部文件
  3. README / LICENSE 存在即包含

签名 = SHA-256(按相对路径排序后依次拼接 路径 + 文件字节)，
只取决于内容，与时间戳无关。

重复发布同一版本时先删除旧目录和旧索引条目，再完整写入，不做原地覆盖。
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from pkgshelf.core.config import SIGNATURE_FILE
from pkgshelf.core.exceptions import PublishError
from pkgshelf.core.models import DEFAULT_NAMESPACE, VersionEntry, utc_now_iso

if TYPE_CHECKING:
    from pkgshelf.core.context import StoreContext

logger = logging.getLogger(__name__)

MANIFEST_FILE = "package.json"
DEFAULT_DIRS = ("dist", "lib", "build", "src")
EXTRA_FILES = ("README.md", "README", "LICENSE", "LICENSE.md")


@dataclass
class PublishResult:
    name: str
    version: str
    namespace: str
    signature: str
    path: Path
    files: int


def read_manifest(source_dir: str | Path) -> dict[str, Any]:
    """读取 package.json，缺少 name / version 时抛 PublishError"""
    path = Path(source_dir) / MANIFEST_FILE
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise PublishError(f"未找到 {MANIFEST_FILE}: {path}") from e
    except json.JSONDecodeError as e:
        raise PublishError(f"{MANIFEST_FILE} 不是合法 JSON: {path} ({e})") from e

    if not isinstance(data, dict) or not data.get("name") or not data.get("version"):
        raise PublishError(f"{MANIFEST_FILE} 必须包含 name 和 version 字段: {path}")
    return data


def _files_under(directory: Path, base: Path) -> list[str]:
    return sorted(p.relative_to(base).as_posix() for p in directory.rglob("*") if p.is_file())


def _expand_pattern(base: Path, pattern: str) -> list[str]:
    parts = PurePosixPath(pattern.replace("\\", "/")).parts
    if parts[:1] == ("/",) or Path(pattern).is_absolute() or ".." in parts:
        raise PublishError(f"files 条目必须是源目录内的相对路径: '{pattern}'")

    if "*" not in pattern:
        target = base / pattern
        if target.is_dir():
            return _files_under(target, base)
        if target.is_file():
            return [target.relative_to(base).as_posix()]
        return []

    matched: list[str] = []
    for hit in sorted(base.glob(pattern)):
        if hit.is_dir():
            matched.extend(_files_under(hit, base))
        elif hit.is_file():
            matched.append(hit.relative_to(base).as_posix())
    return matched


def collect_files(source_dir: str | Path, manifest: dict[str, Any]) -> list[str]:
    """按清单选出要发布的文件，返回去重后的 POSIX 相对路径"""
    base = Path(source_dir)
    files = [MANIFEST_FILE]

    patterns = manifest.get("files") or []
    if patterns:
        for pattern in patterns:
            files.extend(_expand_pattern(base, str(pattern)))
    else:
        for name in DEFAULT_DIRS:
            if (base / name).is_dir():
                files.extend(_files_under(base / name, base))

    files.extend(name for name in EXTRA_FILES if (base / name).is_file())

    # 签名标记文件由仓库生成，不能被发布内容覆盖
    unique = dict.fromkeys(f for f in files if Path(f).name != SIGNATURE_FILE)
    return list(unique)


def compute_signature(base_dir: str | Path, files: list[str]) -> str:
    """内容摘要: 排序后的 (相对路径, 字节) 序列的 SHA-256"""
    base = Path(base_dir)
    digest = hashlib.sha256()
    for rel in sorted(files):
        digest.update(rel.encode("utf-8"))
        with open(base / rel, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
    return digest.hexdigest()


def copy_files(source_dir: Path, dest_dir: Path, files: list[str]) -> None:
    dest_dir.mkdir(parents=True, exist_ok=True)
    root = dest_dir.resolve()
    for rel in files:
        target = dest_dir / rel
        if root not in target.resolve().parents:
            raise PublishError(f"待发布文件越出版本目录: '{rel}'")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_dir / rel, target)


class Publisher:
    """持锁发布: 删旧 -> 复制 -> 写签名 -> 登记索引"""

    def __init__(self, ctx: StoreContext) -> None:
        self.ctx = ctx

    def publish(self, source_dir: str | Path, namespace: str = DEFAULT_NAMESPACE) -> PublishResult:
        source = Path(source_dir)
        manifest = read_manifest(source)
        name, version = str(manifest["name"]), str(manifest["version"])

        files = collect_files(source, manifest)
        missing = [f for f in files if not (source / f).is_file()]
        if missing:
            raise PublishError(f"待发布文件不存在: {', '.join(missing)}")

        store = self.ctx.store
        dest = store.version_path(namespace, name, version)

        def _publish() -> PublishResult:
            store.ensure_namespace(namespace)
            registry = self.ctx.index.read()

            if registry.remove_version(namespace, name, version) or store.version_exists(namespace, name, version):
                logger.info("覆盖已发布版本: %s/%s@%s", namespace, name, version)
                store.delete_version(namespace, name, version)

            copy_files(source, dest, files)
            signature = compute_signature(dest, files)
            store.write_signature(namespace, name, version, signature)

            registry.add_version(
                namespace, name, version,
                VersionEntry(signature=signature, published=utc_now_iso(), files=len(files)),
            )
            self.ctx.index.write(registry)
            return PublishResult(name, version, namespace, signature, dest, len(files))

        result = self.ctx.lock.with_lock(_publish, command=f"publish {name}@{version}")
        logger.info(
            "已发布 %s@%s -> %s (%s, %d 个文件)",
            name, version, namespace, result.signature[:8], result.files,
        )
        return result
