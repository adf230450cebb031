"""
Advisory lock around the project document.

Every mutating command holds an exclusive flock on <state>.lock for its
whole load -> mutate -> save cycle. Without the lock, concurrent writers
race and the last rename wins.
"""

import fcntl
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1  # seconds between attempts


class LockTimeout(Exception):
    """Lock acquisition timed out."""

    def __init__(self, lock_path: Path, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            f"Could not acquire project lock {lock_path} within {timeout}s "
            f"(another phasekit command is running)"
        )


@contextmanager
def project_lock(lock_path: Path, timeout: float = 10, enabled: bool = True):
    """
    Hold an exclusive lock on lock_path for the duration of the block.

    Lock files are never deleted: removing one lets two processes hold
    "exclusive" locks on different inodes with the same path.

    Args:
        lock_path: Lock file path (created if missing)
        timeout: Seconds to wait before giving up
        enabled: When False, yields immediately without locking

    Raises:
        LockTimeout: If the lock is still held after timeout seconds
    """
    if not enabled:
        yield
        return

    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_path, 'a')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start >= timeout:
                fd.close()
                raise LockTimeout(lock_path, timeout) from None
            time.sleep(POLL_INTERVAL)

    logger.debug(f"Acquired lock {lock_path} (pid {os.getpid()})")
    try:
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()
        logger.debug(f"Released lock {lock_path}")
