"""Tests for record store locking."""
import os
import time

import pytest

from sitebox.core.lock import LockError, RecordLock, record_lock


class TestRecordLock:
    """Test file-based locking mechanism."""

    def test_acquire_and_release(self, tmp_path):
        """Can acquire and release lock; the lock file is kept."""
        lock_file = tmp_path / "db" / "sites.lock"
        lock = RecordLock(lock_file=lock_file)

        assert lock.acquire() is True
        assert lock_file.exists()

        lock.release()
        assert lock.lock_fd is None
        assert lock_file.exists()

    def test_concurrent_lock_fails(self, tmp_path):
        """Second lock attempt fails when first is held."""
        lock_file = tmp_path / "sites.lock"

        lock1 = RecordLock(lock_file=lock_file, timeout=0)
        lock1.acquire()

        lock2 = RecordLock(lock_file=lock_file, timeout=0)
        with pytest.raises(LockError) as exc_info:
            lock2.acquire()

        assert "Timeout waiting for record store lock" in str(exc_info.value)
        lock1.release()

    def test_lock_timeout(self, tmp_path):
        """Lock times out after specified period."""
        lock_file = tmp_path / "sites.lock"

        lock1 = RecordLock(lock_file=lock_file)
        lock1.acquire()

        lock2 = RecordLock(lock_file=lock_file, timeout=0.5)
        start = time.time()
        with pytest.raises(LockError):
            lock2.acquire()

        assert time.time() - start >= 0.5
        lock1.release()

    def test_pid_written(self, tmp_path):
        """Lock file contains the holder's PID."""
        lock_file = tmp_path / "sites.lock"

        with RecordLock(lock_file=lock_file):
            assert lock_file.read_text().strip() == str(os.getpid())

    def test_reacquire_after_release(self, tmp_path):
        """Released lock can be taken again."""
        lock_file = tmp_path / "sites.lock"

        with record_lock(lock_file, timeout=0):
            pass
        with record_lock(lock_file, timeout=0) as lock:
            assert lock.lock_fd is not None

    def test_released_on_exception(self, tmp_path):
        """Context manager releases the lock when the body raises."""
        lock_file = tmp_path / "sites.lock"

        with pytest.raises(RuntimeError):
            with record_lock(lock_file):
                raise RuntimeError("boom")

        lock = RecordLock(lock_file=lock_file, timeout=0)
        assert lock.acquire() is True
        lock.release()
