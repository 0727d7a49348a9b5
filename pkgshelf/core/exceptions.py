"""统一异常体系

所有业务异常继承 ShelfError，每个子类带一个稳定的 code，
CLI 层据此输出提示并决定退出码。

"未找到"类的查询（解析未命中、命名空间不存在）不走异常，
而是返回空结果或 found=False 的解析结果，保证读路径是全函数。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgshelf.core.lock import LockInfo


class ShelfError(Exception):
    """仓库基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(ShelfError):
    """配置文件或配置值无效"""

    code = "CONFIG_ERROR"


class LockTimeoutError(ShelfError):
    """等待仓库锁超时，holder 为当前持有者信息（可能读不到）"""

    code = "LOCK_TIMEOUT"

    def __init__(self, message: str, holder: LockInfo | None = None) -> None:
        super().__init__(message)
        self.holder = holder


class ReservedNamespaceError(ShelfError):
    """试图删除保留命名空间"""

    code = "RESERVED_NAMESPACE"

    def __init__(self, namespace: str) -> None:
        super().__init__(f"不能删除保留命名空间 '{namespace}'")
        self.namespace = namespace


class PackageNotFoundError(ShelfError):
    """显式操作（如 remove）的目标包或版本不存在"""

    code = "PACKAGE_NOT_FOUND"


class InvalidSpecError(ShelfError):
    """包描述符不是 name@version 形式"""

    code = "INVALID_SPEC"

    def __init__(self, spec: str) -> None:
        super().__init__(f"无效的包描述符: '{spec}'，格式应为 name@version")
        self.spec = spec


class InvalidNameError(ShelfError):
    """命名空间、包名或版本号不能映射为安全的目录名"""

    code = "INVALID_NAME"


class PublishError(ShelfError):
    """发布源目录缺少清单或没有可发布文件"""

    code = "PUBLISH_ERROR"


class RegistryCorruptError(ShelfError):
    """索引文档无法解析或结构不对，拒绝按空索引继续"""

    code = "REGISTRY_CORRUPT"
