"""仓库索引的读写

索引是仓库根目录下的单个 YAML 文档 (registry.yml)。

  - read():  文档不存在时返回只含 global 的新索引，从不因"文件缺失"失败；
             文档损坏时抛 RegistryCorruptError，不会当作空索引覆盖掉
  - write(): 先写临时文件再原子 rename，并发读者只会看到旧版本或新版本，
             不会看到写了一半的内容

读取不加锁：读者可能拿到一个刚被替换的旧快照，但它本身是自洽的。
修改必须在 StoreLock 内完成：read -> 内存修改 -> write。
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from pkgshelf.core.config import REGISTRY_FILE
from pkgshelf.core.exceptions import RegistryCorruptError
from pkgshelf.core.models import Registry
from pkgshelf.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


class RegistryIndex:
    """索引文档的持久化入口"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @classmethod
    def for_root(cls, root: str | Path) -> RegistryIndex:
        return cls(Path(root) / REGISTRY_FILE)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> Registry:
        try:
            data = load_yaml(self.path, strict=True)
        except (yaml.YAMLError, ValueError) as e:
            raise RegistryCorruptError(f"索引文档损坏: {self.path} ({e})，请从备份恢复或手工修复") from e
        if not data:
            logger.debug("索引不存在或为空，使用新索引: %s", self.path)
            return Registry.empty()
        return Registry.from_dict(data)

    def write(self, registry: Registry) -> None:
        save_yaml(self.path, registry.to_dict())
        logger.debug(
            "索引已写入: %s (%d 个命名空间, %d 个版本)",
            self.path, len(registry.namespaces), registry.total_versions(),
        )
