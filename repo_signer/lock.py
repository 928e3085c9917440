"""Per-directory advisory lock with a bounded wait."""

import fcntl
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

from .exceptions import LockTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


class RepositoryLock:
    """Exclusive ``flock`` on a lock file, held for one signing run.

    The lock belongs to the open file handle, so the kernel drops it when
    the process exits for any reason.
    """

    def __init__(self, lock_path: str | Path, timeout: float = 120):
        """Initialize the lock.

        Args:
            lock_path: Lock file, created if missing
            timeout: Seconds to wait before raising LockTimeoutError
        """
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Take the lock, waiting at most ``timeout`` seconds.

        Raises:
            LockTimeoutError: If another process keeps the lock
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    handle.close()
                    logger.error(f"Could not lock {self.lock_path} in {self.timeout:g}s")
                    raise LockTimeoutError(str(self.lock_path), self.timeout) from None
                time.sleep(min(POLL_INTERVAL, remaining))

        self._handle = handle
        logger.debug(f"Acquired lock {self.lock_path}")

    def release(self) -> None:
        """Drop the lock. Safe to call when not held."""
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None
        logger.debug(f"Released lock {self.lock_path}")

    def __enter__(self) -> "RepositoryLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


@contextmanager
def locked(lock_path: str | Path, timeout: float = 120) -> Iterator[RepositoryLock]:
    """Hold a RepositoryLock for the duration of the block."""
    lock = RepositoryLock(lock_path, timeout)
    with lock:
        yield lock
