"""Inter-process locking for the site record store.

Serialises the read-check-write cycle of record creation so that two
concurrent `site create` runs for the same URL cannot both succeed.
"""
import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path

from sitebox.core.logger import get_logger

logger = get_logger(__name__)


class LockError(Exception):
    """Raised when unable to acquire lock."""
    pass


class RecordLock:
    """File-based exclusive lock guarding the record store."""

    def __init__(self, lock_file: Path, timeout: float = 10.0):
        """Initialize lock.

        Args:
            lock_file: Path to lock file (its directory is created on acquire)
            timeout: Seconds to wait for lock (0 = fail immediately)
        """
        self.lock_file = Path(lock_file)
        self.timeout = timeout
        self.lock_fd = None

    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if lock acquired successfully

        Raises:
            LockError: If the lock is still held after the timeout
        """
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        self.lock_fd = open(self.lock_file, 'a+')

        start_time = time.time()
        while True:
            try:
                fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                self.lock_fd.seek(0)
                self.lock_fd.truncate()
                self.lock_fd.write(f"{os.getpid()}\n")
                self.lock_fd.flush()
                logger.debug(f"Acquired lock: {self.lock_file}")
                return True

            except OSError:
                if time.time() - start_time >= self.timeout:
                    self.lock_fd.close()
                    self.lock_fd = None
                    raise LockError(
                        f"Timeout waiting for record store lock {self.lock_file} "
                        f"after {self.timeout}s"
                    )
                time.sleep(0.1)

    def release(self):
        """Release the lock. The lock file itself is kept for reuse."""
        if self.lock_fd is None:
            return
        try:
            fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            logger.debug(f"Released lock: {self.lock_file}")
        finally:
            self.lock_fd.close()
            self.lock_fd = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


@contextmanager
def record_lock(lock_file: Path, timeout: float = 10.0):
    """Context manager holding the record store lock.

    Usage:
        with record_lock(config.lock_file):
            # read, check, write
            pass
    """
    lock = RecordLock(lock_file, timeout=timeout)
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()
