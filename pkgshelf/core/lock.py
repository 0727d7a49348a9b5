"""仓库锁 — 跨进程互斥

锁就是仓库根目录下的 .lock 文件：以 O_CREAT|O_EXCL 独占创建成功即持有，
删除即释放。文件内容是持有者信息 {pid, acquired, command}，
运维可直接查看，确认持有者已死后也可手工删除。

获取流程（循环直到成功或超时）:
  1. 尝试独占创建，成功则写入持有者信息并返回 LockHandle
  2. 已被占用且等待时间 >= timeout: 抛 LockTimeoutError
  3. 判定占用状态:
       CONTENDED_STALE  持有进程已不存在 / 锁龄超过 stale  -> 删除锁文件，立即重试
       CONTENDED_FRESH  持有者仍有效                        -> 睡眠 retry_interval 后重试
     等待提示每次获取只打印一次

锁是整个仓库级别的粗粒度临界区，不区分命名空间或包。
"""

from __future__ import annotations

import enum
import json
import logging
import os
import subprocess
import sys
import time
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from pkgshelf.core.config import (
    DEFAULT_LOCK_RETRY_INTERVAL,
    DEFAULT_LOCK_STALE,
    DEFAULT_LOCK_TIMEOUT,
    LOCK_FILE,
)
from pkgshelf.core.exceptions import LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LockOptions:
    """锁参数（秒）"""

    timeout: float = DEFAULT_LOCK_TIMEOUT
    retry_interval: float = DEFAULT_LOCK_RETRY_INTERVAL
    stale: float = DEFAULT_LOCK_STALE

    def merged(
        self,
        timeout: float | None = None,
        retry_interval: float | None = None,
        stale: float | None = None,
    ) -> LockOptions:
        """返回按单次调用覆盖后的参数，None 表示沿用"""
        overrides = {
            k: v for k, v in
            (("timeout", timeout), ("retry_interval", retry_interval), ("stale", stale))
            if v is not None
        }
        return replace(self, **overrides)


@dataclass(frozen=True)
class LockInfo:
    """锁文件内容"""

    pid: int
    acquired: str  # ISO 8601, UTC
    command: str = ""

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> LockInfo | None:
        """解析锁文件内容，格式不对返回 None"""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        pid = data.get("pid")
        acquired = data.get("acquired")
        if not isinstance(pid, int) or isinstance(pid, bool) or not isinstance(acquired, str):
            return None
        return cls(pid=pid, acquired=acquired, command=str(data.get("command", "")))

    def age_seconds(self, now: datetime | None = None) -> float | None:
        """锁龄；acquired 无法解析时返回 None"""
        try:
            acquired = datetime.fromisoformat(self.acquired)
        except ValueError:
            return None
        if acquired.tzinfo is None:
            acquired = acquired.replace(tzinfo=timezone.utc)
        current = now or datetime.now(tz=timezone.utc)
        return (current - acquired).total_seconds()


class LockState(enum.Enum):
    """获取状态机中的占用状态"""

    ACQUIRED = "acquired"
    CONTENDED_FRESH = "contended_fresh"
    CONTENDED_STALE = "contended_stale"


# ---------------------------------------------------------------------------
# 进程存活探测
# ---------------------------------------------------------------------------


def _is_process_alive_posix(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # 进程存在，只是属于其他用户
        return True
    return True


def _is_process_alive_windows(pid: int) -> bool:
    # Windows 上 os.kill(pid, 0) 会发送 CTRL_C_EVENT，不能用作探测
    proc = subprocess.run(
        ["tasklist", "/FI", f"PID eq {pid}", "/NH", "/FO", "CSV"],
        check=False, capture_output=True, text=True,
    )
    return f'"{pid}"' in proc.stdout


def is_process_alive(pid: int) -> bool:
    """默认存活探测；非默认平台可向 StoreLock 注入替代实现"""
    if pid <= 0:
        return False
    if os.name == "nt":
        return _is_process_alive_windows(pid)
    return _is_process_alive_posix(pid)


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _default_command() -> str:
    return " ".join(sys.argv[1:])


# ---------------------------------------------------------------------------
# 锁
# ---------------------------------------------------------------------------


class LockHandle:
    """已持有的锁；release() 幂等，也可用作上下文管理器"""

    def __init__(self, path: Path, info: LockInfo) -> None:
        self.path = path
        self.info = info
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self.path.unlink(missing_ok=True)
        self._released = True
        logger.debug("锁已释放: %s (pid=%d)", self.path, self.info.pid)

    def __enter__(self) -> LockHandle:
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


class StoreLock:
    """仓库级互斥锁"""

    def __init__(
        self,
        root: str | Path,
        options: LockOptions | None = None,
        is_alive: Callable[[int], bool] = is_process_alive,
    ) -> None:
        self.root = Path(root)
        self.path = self.root / LOCK_FILE
        self.options = options or LockOptions()
        self._is_alive = is_alive

    # ---- 状态查询 ----

    def read_info(self) -> LockInfo | None:
        """读取持有者信息；未加锁或内容损坏返回 None"""
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return LockInfo.from_json(text)

    def is_locked(self) -> bool:
        return self.path.exists()

    def current_holder(self) -> LockInfo | None:
        return self.read_info()

    def force_release(self) -> bool:
        """无条件删除锁文件，仅供确认持有者已死后人工使用"""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.warning("已强制删除锁文件: %s", self.path)
        return True

    def classify(self, options: LockOptions | None = None) -> tuple[LockState, LockInfo | None]:
        """判定当前占用是否过期，返回 (状态, 读到的持有者信息)"""
        opts = options or self.options
        info = self.read_info()
        if info is None:
            # 持有者刚创建文件还没写完内容时也会读到空；按文件修改时间判定
            try:
                age = time.time() - self.path.stat().st_mtime
            except FileNotFoundError:
                return LockState.CONTENDED_STALE, None
            state = LockState.CONTENDED_STALE if age > opts.stale else LockState.CONTENDED_FRESH
            return state, None

        if not self._is_alive(info.pid):
            return LockState.CONTENDED_STALE, info
        age = info.age_seconds()
        if age is None or age > opts.stale:
            return LockState.CONTENDED_STALE, info
        return LockState.CONTENDED_FRESH, info

    # ---- 获取 / 释放 ----

    def _try_create(self, info: LockInfo) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(info.to_json())
        return True

    def _reclaim(self, seen: LockInfo | None) -> None:
        """删除过期锁；删除前再读一次，内容已变说明别人刚拿到新锁"""
        if self.read_info() != seen:
            return
        logger.warning(
            "移除过期锁: %s (pid=%s, acquired=%s)",
            self.path,
            seen.pid if seen else "unknown",
            seen.acquired if seen else "unknown",
        )
        self.path.unlink(missing_ok=True)

    def _timeout_error(self, opts: LockOptions) -> LockTimeoutError:
        holder = self.read_info()
        pid = holder.pid if holder else "unknown"
        command = (holder.command if holder else "") or "unknown"
        acquired = holder.acquired if holder else "unknown"
        return LockTimeoutError(
            f"等待仓库锁超时 ({opts.timeout:g}s)\n"
            f"持有者 PID {pid} ({command})\n"
            f"获取时间: {acquired}\n\n"
            f"若确认该进程已卡死，可手工删除锁文件:\n"
            f"  rm {self.path}",
            holder=holder,
        )

    def acquire(
        self,
        command: str = "",
        *,
        timeout: float | None = None,
        retry_interval: float | None = None,
        stale: float | None = None,
    ) -> LockHandle:
        """阻塞获取锁，超时抛 LockTimeoutError（不再内部重试）"""
        opts = self.options.merged(timeout=timeout, retry_interval=retry_interval, stale=stale)
        self.root.mkdir(parents=True, exist_ok=True)

        start = time.monotonic()
        waiting_shown = False
        while True:
            info = LockInfo(pid=os.getpid(), acquired=_now_iso(), command=command or _default_command())
            if self._try_create(info):
                logger.debug("锁已获取: %s (%s)", self.path, info.command)
                return LockHandle(self.path, info)

            if time.monotonic() - start >= opts.timeout:
                raise self._timeout_error(opts)

            state, holder = self.classify(opts)
            if state is LockState.CONTENDED_STALE:
                self._reclaim(holder)
                continue

            if not waiting_shown:
                logger.warning(
                    "仓库被 PID %s 锁定 (%s)，等待中...",
                    holder.pid if holder else "unknown",
                    (holder.command if holder else "") or "unknown",
                )
                waiting_shown = True
            time.sleep(opts.retry_interval)

    def with_lock(
        self,
        operation: Callable[[], T],
        command: str = "",
        **overrides: float | None,
    ) -> T:
        """持锁执行 operation，无论成功失败都释放锁"""
        handle = self.acquire(command, **overrides)
        try:
            return operation()
        finally:
            handle.release()
