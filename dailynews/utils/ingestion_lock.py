"""
Ingestion Lock
==============

File-based lock that keeps two processes from refreshing the same news
store at once (a scheduler and a manual CLI refresh, for example).
"""

import os
import fcntl
import hashlib
import logging
from pathlib import Path
from typing import Optional

from .exceptions import IngestionInProgressError

logger = logging.getLogger(__name__)


class IngestionLock:
    """Non-blocking exclusive file lock."""

    def __init__(self, lock_name: str, lock_dir: Optional[str] = None):
        """
        Initialize ingestion lock.

        Args:
            lock_name: Name for the lock file (without extension)
            lock_dir: Directory for lock files (defaults to /tmp or system temp)
        """
        if lock_dir is None:
            lock_dir = "/tmp" if os.name == "posix" else os.environ.get("TEMP", ".")

        self.lock_file = Path(lock_dir) / f"{lock_name}.lock"
        self.lock_fd: Optional[int] = None
        self.acquired = False

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if the lock was acquired, False if it is already held,
            by this instance or by another process
        """
        if self.acquired:
            logger.warning(f"Ingestion lock already held by this process: {self.lock_file}")
            return False

        fd = None
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.lock_file), os.O_CREAT | os.O_RDWR)
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode())
            os.fsync(fd)

            self.lock_fd = fd
            self.acquired = True
            logger.info(f"Ingestion lock acquired: {self.lock_file}")
            return True

        except OSError:
            if fd is not None:
                os.close(fd)

            holder = self.holder_pid()
            if holder:
                logger.warning(f"Ingestion lock already held by PID {holder}: {self.lock_file}")
            else:
                logger.warning(f"Ingestion lock unavailable: {self.lock_file}")
            return False

    def release(self) -> None:
        """Release the lock. The lock file stays on disk so every holder locks the same inode."""
        if self.lock_fd is not None and self.acquired:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
                logger.info(f"Ingestion lock released: {self.lock_file}")
            except OSError as e:
                logger.warning(f"Error releasing ingestion lock: {e}")
            finally:
                self.lock_fd = None
                self.acquired = False

    def holder_pid(self) -> Optional[int]:
        """PID written by the process holding the lock, if readable."""
        try:
            if self.lock_file.exists():
                return int(self.lock_file.read_text().strip())
        except (ValueError, OSError):
            pass
        return None

    def __enter__(self) -> "IngestionLock":
        if not self.acquire():
            holder = self.holder_pid()
            raise IngestionInProgressError(
                f"Could not acquire ingestion lock: {self.lock_file}",
                context={"lock_file": str(self.lock_file), "holder_pid": holder},
            )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def ingestion_lock_for(db_path: str, lock_dir: Optional[str] = None) -> IngestionLock:
    """Lock scoped to one database file."""
    digest = hashlib.sha256(str(Path(db_path).resolve()).encode()).hexdigest()[:16]
    return IngestionLock(f"dailynews-ingestion-{digest}", lock_dir)
