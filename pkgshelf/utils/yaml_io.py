"""YAML 文档读写工具

仓库索引、配置文件都经由这里读写：
  - 统一 UTF-8 编码
  - 文档缺失视为空字典，不抛异常
  - 写入一律走原子替换，读者永远看不到写了一半的文件
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# 单个文档上限 (16MB)，仓库索引远小于此
MAX_DOCUMENT_SIZE = 16 * 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    """先写同目录临时文件，再 os.replace 覆盖目标文件

    临时文件与目标同目录，保证 rename 不跨文件系统。
    写入或替换失败时删除临时文件并原样抛出原异常。
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, str(path))
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path, strict: bool = False) -> dict[str, Any]:
    """读取 YAML 文档

    参数:
        path: 文档路径
        strict: 为 True 时顶层不是映射视为错误，不按空文档处理

    返回:
        dict: 文档内容；文件不存在、为空（非 strict 时还包括顶层不是映射）返回空字典

    异常:
        yaml.YAMLError: 文档格式错误
        ValueError: 文档超过 MAX_DOCUMENT_SIZE，或 strict 时顶层不是映射
        OSError: 除"文件不存在"以外的 IO 错误
    """
    p = Path(path)
    try:
        size = p.stat().st_size
    except FileNotFoundError:
        return {}

    if size > MAX_DOCUMENT_SIZE:
        raise ValueError(f"YAML 文档过大: {p} ({size} 字节), 上限 {MAX_DOCUMENT_SIZE} 字节")

    try:
        with open(p, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        # stat 与 open 之间被并发删除
        return {}
    except yaml.YAMLError as e:
        logger.error("解析 YAML 失败: %s, 错误: %s", p, e)
        raise

    if data is None:
        return {}
    if not isinstance(data, dict):
        if strict:
            logger.error("%s 顶层不是映射 (实际: %s)", p, type(data).__name__)
            raise ValueError(f"YAML 文档顶层不是映射: {p}")
        logger.warning("%s 顶层不是映射 (实际: %s)，按空文档处理", p, type(data).__name__)
        return {}
    return data


def dump_yaml(data: Any) -> str:
    """序列化为块格式 YAML，保持键顺序"""
    return yaml.safe_dump(
        data, default_flow_style=False,
        allow_unicode=True, sort_keys=False,
    )


def save_yaml(path: str | Path, data: Any) -> None:
    """原子写入 YAML 文档，父目录不存在时自动创建"""
    p = Path(path)
    try:
        atomic_write(p, dump_yaml(data))
    except yaml.YAMLError as e:
        logger.error("序列化 YAML 失败: %s, 错误: %s", p, e)
        raise
    except OSError as e:
        logger.error("写入文件失败: %s, 错误: %s", p, e)
        raise
