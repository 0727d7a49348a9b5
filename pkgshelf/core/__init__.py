"""仓库引擎

组件（自底向上）:
- lock.py:        跨进程仓库锁
- names.py:       名字到目录的映射规则
- models.py:      索引数据模型与纯内存修改
- registry.py:    索引文档读写（原子替换）
- store.py:       磁盘制品目录树
- resolver.py:    按命名空间顺序解析
- maintenance.py: verify / prune 对账
- publisher.py / remover.py: 持锁的发布与删除
"""

from pkgshelf.core.config import StoreConfig
from pkgshelf.core.context import StoreContext
from pkgshelf.core.lock import LockHandle, LockInfo, LockOptions, StoreLock
from pkgshelf.core.models import DEFAULT_NAMESPACE, Registry, VersionEntry
from pkgshelf.core.registry import RegistryIndex
from pkgshelf.core.resolver import PackageResolver, Resolution, parse_spec
from pkgshelf.core.store import PackageStore

__all__ = [
    "DEFAULT_NAMESPACE",
    "LockHandle",
    "LockInfo",
    "LockOptions",
    "PackageResolver",
    "PackageStore",
    "Registry",
    "RegistryIndex",
    "Resolution",
    "StoreConfig",
    "StoreContext",
    "StoreLock",
    "VersionEntry",
    "parse_spec",
]
