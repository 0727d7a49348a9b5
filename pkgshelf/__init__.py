"""pkgshelf - 按命名空间隔离的本地包仓库"""

__version__ = "0.3.0"
