"""仓库锁测试：超时、过期回收与跨进程互斥"""

from __future__ import annotations

import logging
import multiprocessing
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from pkgshelf.core.exceptions import LockTimeoutError
from pkgshelf.core.lock import LockInfo, LockOptions, LockState, StoreLock

FAST = LockOptions(timeout=2.0, retry_interval=0.01, stale=10.0)


def _write_lock(root: Path, pid: int, acquired: datetime, command: str = "other") -> Path:
    root.mkdir(parents=True, exist_ok=True)
    path = root / ".lock"
    path.write_text(LockInfo(pid=pid, acquired=acquired.isoformat(), command=command).to_json())
    return path


class TestAcquireRelease:
    def test_acquire_writes_holder_info(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path / "store", FAST)
        handle = lock.acquire("publish demo@1.0.0")
        info = lock.current_holder()
        assert info is not None
        assert info.pid == os.getpid()
        assert info.command == "publish demo@1.0.0"
        assert lock.is_locked()
        handle.release()
        assert not lock.is_locked()

    def test_release_is_idempotent(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        handle = lock.acquire()
        handle.release()
        handle.release()
        assert handle.released

    def test_release_tolerates_missing_file(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        handle = lock.acquire()
        lock.path.unlink()
        handle.release()
        assert not lock.is_locked()

    def test_handle_as_context_manager(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        with lock.acquire("ctx"):
            assert lock.is_locked()
        assert not lock.is_locked()

    def test_with_lock_returns_value(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        assert lock.with_lock(lambda: 42) == 42
        assert not lock.is_locked()

    def test_with_lock_releases_on_error(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)

        def boom() -> None:
            raise RuntimeError("fail inside")

        with pytest.raises(RuntimeError, match="fail inside"):
            lock.with_lock(boom)
        assert not lock.is_locked()


class TestContention:
    def test_timeout_reports_holder(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        with lock.acquire("holder-cmd"):
            with pytest.raises(LockTimeoutError) as exc_info:
                lock.acquire(timeout=0.1)
        err = exc_info.value
        assert err.holder is not None
        assert err.holder.pid == os.getpid()
        message = str(err)
        assert str(os.getpid()) in message
        assert "holder-cmd" in message
        assert f"rm {lock.path}" in message

    def test_zero_timeout_fails_after_one_attempt(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        with lock.acquire():
            with patch("pkgshelf.core.lock.time.sleep") as sleep:
                with pytest.raises(LockTimeoutError):
                    lock.acquire(timeout=0)
            sleep.assert_not_called()

    def test_waiting_notice_logged_once(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        lock = StoreLock(tmp_path, FAST)
        with lock.acquire("busy"), caplog.at_level(logging.WARNING, logger="pkgshelf.core.lock"):
            with pytest.raises(LockTimeoutError):
                lock.acquire(timeout=0.2, retry_interval=0.01)
        waiting = [r for r in caplog.records if "等待中" in r.getMessage()]
        assert len(waiting) == 1

    def test_per_call_override(self) -> None:
        opts = LockOptions().merged(timeout=1.5, stale=None)
        assert opts.timeout == 1.5
        assert opts.stale == LockOptions().stale
        assert opts.retry_interval == LockOptions().retry_interval


class TestStaleness:
    def test_dead_holder_reclaimed_without_sleep(self, tmp_path: Path) -> None:
        _write_lock(tmp_path, pid=424242, acquired=datetime.now(tz=timezone.utc))
        lock = StoreLock(tmp_path, LockOptions(timeout=30.0), is_alive=lambda pid: pid != 424242)

        start = time.monotonic()
        with patch("pkgshelf.core.lock.time.sleep") as sleep:
            handle = lock.acquire()
        assert time.monotonic() - start < 5
        sleep.assert_not_called()
        assert handle.info.pid == os.getpid()
        handle.release()

    def test_old_lock_reclaimed_even_if_holder_alive(self, tmp_path: Path) -> None:
        old = datetime.now(tz=timezone.utc) - timedelta(seconds=60)
        _write_lock(tmp_path, pid=os.getpid(), acquired=old)
        lock = StoreLock(tmp_path, LockOptions(timeout=5.0, stale=10.0), is_alive=lambda pid: True)
        with lock.acquire() as handle:
            assert handle.info.acquired != old.isoformat()

    def test_fresh_live_holder_is_not_stale(self, tmp_path: Path) -> None:
        _write_lock(tmp_path, pid=os.getpid(), acquired=datetime.now(tz=timezone.utc))
        lock = StoreLock(tmp_path, FAST, is_alive=lambda pid: True)
        state, info = lock.classify()
        assert state is LockState.CONTENDED_FRESH
        assert info is not None and info.command == "other"

    def test_empty_young_lock_is_fresh(self, tmp_path: Path) -> None:
        (tmp_path / ".lock").write_text("")
        lock = StoreLock(tmp_path, FAST)
        state, info = lock.classify()
        assert state is LockState.CONTENDED_FRESH
        assert info is None

    def test_empty_old_lock_is_stale(self, tmp_path: Path) -> None:
        path = tmp_path / ".lock"
        path.write_text("not json")
        past = time.time() - 120
        os.utime(path, (past, past))
        lock = StoreLock(tmp_path, FAST)
        state, _ = lock.classify()
        assert state is LockState.CONTENDED_STALE


class TestOperatorHelpers:
    def test_force_release(self, tmp_path: Path) -> None:
        lock = StoreLock(tmp_path, FAST)
        lock.acquire()
        assert lock.force_release() is True
        assert lock.force_release() is False
        assert lock.current_holder() is None

    def test_lock_info_parsing(self) -> None:
        assert LockInfo.from_json("{}") is None
        assert LockInfo.from_json("[1, 2]") is None
        assert LockInfo.from_json('{"pid": true, "acquired": "x"}') is None
        info = LockInfo.from_json('{"pid": 7, "acquired": "2026-01-01T00:00:00+00:00"}')
        assert info == LockInfo(pid=7, acquired="2026-01-01T00:00:00+00:00", command="")


def _locked_append(root: str, log: str, tag: str) -> None:
    lock = StoreLock(root, LockOptions(timeout=20.0, retry_interval=0.01, stale=30.0))

    def _critical() -> None:
        with open(log, "a", encoding="utf-8") as f:
            f.write(f"start {tag}\n")
        time.sleep(0.05)
        with open(log, "a", encoding="utf-8") as f:
            f.write(f"end {tag}\n")

    lock.with_lock(_critical, command=f"worker {tag}")


@pytest.mark.skipif(sys.platform == "win32", reason="依赖 fork 启动方式")
def test_concurrent_holders_never_interleave(tmp_path: Path) -> None:
    mp = multiprocessing.get_context("fork")
    log = tmp_path / "critical.log"
    workers = [
        mp.Process(target=_locked_append, args=(str(tmp_path / "store"), str(log), str(i)))
        for i in range(4)
    ]
    for w in workers:
        w.start()
    for w in workers:
        w.join(timeout=30)
        assert w.exitcode == 0

    lines = log.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 8
    for start, end in zip(lines[::2], lines[1::2]):
        assert start.startswith("start ")
        assert end == "end " + start.split(" ", 1)[1]
    assert not (tmp_path / "store" / ".lock").exists()
