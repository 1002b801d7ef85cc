"""
Advisory locking for the version log.

Writers take an exclusive lock across the dedup check and append;
readers take a shared lock. Locks are flock(2) locks on a dedicated lock
file, held per open file description, so separate handles in one process
exclude each other the same way separate processes do.
"""

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..errors import StorageError

logger = logging.getLogger(__name__)


class RepositoryLock:
    """Shared/exclusive advisory lock on a repository."""

    def __init__(self, lock_path: Path):
        self.lock_path = Path(lock_path)

    @contextmanager
    def _acquire(self, mode: int, label: str) -> Iterator[None]:
        try:
            lock_file = open(self.lock_path, 'a+b')
        except OSError as e:
            raise StorageError("open_lock", str(self.lock_path), e)

        with lock_file:
            try:
                fcntl.flock(lock_file.fileno(), mode)
            except OSError as e:
                raise StorageError("lock", str(self.lock_path), e)

            logger.debug(f"Acquired {label} lock on {self.lock_path}")
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
                logger.debug(f"Released {label} lock on {self.lock_path}")

    def exclusive(self):
        """Hold an exclusive (writer) lock for the duration of the block."""
        return self._acquire(fcntl.LOCK_EX, "exclusive")

    def shared(self):
        """Hold a shared (reader) lock for the duration of the block."""
        return self._acquire(fcntl.LOCK_SH, "shared")
