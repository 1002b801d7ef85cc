"""
Versioning Engine.

Main entry point coordinating all components.
"""

import logging
import os
from contextlib import ExitStack, nullcontext
from pathlib import Path
from typing import Dict, List, Optional

from .config import Config
from .errors import (
    BlobCorruptedError,
    BlobNotFoundError,
    InvalidInputError,
    LogCorruptedError,
    LogError,
    RestoreError,
    SourceNotFoundError,
    StorageError,
    StoreError,
    VersionNotFoundError,
)
from .integrity.hashing import digest_file, is_regular_file
from .integrity.verification import verify_repository
from .invariants import verify_repository_invariants
from .model.record import VersionRecord, VersionView, validate_comment, validate_filename
from .model.result import AddResult, AddStatus
from .storage.content_store import ContentStore
from .storage.layout import RepositoryLayout
from .storage.locking import RepositoryLock
from .storage.version_log import VersionLog

logger = logging.getLogger(__name__)


class VersioningEngine:
    """
    Main engine for file versioning.

    This is the primary interface for:
    - Adding versions of files (add)
    - Restoring historical versions (get)
    - Listing version history (list)
    - Verifying repository integrity

    Each engine is bound to one repository directory; any number of
    engines may exist side by side.
    """

    def __init__(self, repo_path: str | Path = None, fsync: bool = None):
        """
        Initialize engine for the repository at repo_path.

        Args:
            repo_path: repository directory (default: Config.REPO_DIR)
            fsync: flush writes to disk (default: Config.FSYNC)
        """
        self.repo_path = Path(repo_path or Config.REPO_DIR).resolve()
        self.layout = RepositoryLayout(self.repo_path)
        self.content_store = ContentStore(self.layout, fsync=fsync)
        self.log = VersionLog(self.layout.log_path, fsync=fsync)
        self.lock = RepositoryLock(self.layout.lock_path)

    def initialize(self) -> None:
        """
        Initialize the repository.

        Creates necessary directory structure.
        Safe to call multiple times (idempotent).
        """
        self.layout.initialize()

    # ========== Versioning ==========

    def add(self, path: str | Path, comment: str = '') -> AddResult:
        """
        Record the current content of path as a new version.

        Re-adding content already recorded for the same filename is not
        an error: the result has status ALREADY_EXISTS and nothing is
        written.

        Raises InvalidInputError, HashError, StoreError or LogError.
        """
        filename = self._normalize_filename(path)
        validate_comment(comment)

        if not is_regular_file(path):
            raise InvalidInputError(f"not a regular file: {path}")

        try:
            digest = digest_file(path)
        except SourceNotFoundError as e:
            raise InvalidInputError(f"not a regular file: {path}") from e

        with ExitStack() as stack:
            try:
                self.initialize()
                stack.enter_context(self.lock.exclusive())
            except StorageError as e:
                raise LogError(str(self.layout.log_path), e) from e

            try:
                existing = self.log.find_existing(filename, digest)
                if existing:
                    logger.debug(f"{filename} already has content {digest[:12]}")
                    return AddResult(
                        AddStatus.ALREADY_EXISTS,
                        existing,
                        self.log.version_of(existing),
                    )
                version = self.log.count(filename) + 1
            except (StorageError, LogCorruptedError) as e:
                raise LogError(str(self.layout.log_path), e) from e

            try:
                created = self.content_store.put(path, digest)
            except (StorageError, BlobCorruptedError) as e:
                raise StoreError(str(path), e) from e

            try:
                record = self.log.append(VersionRecord(filename, digest, comment))
            except (StorageError, LogCorruptedError) as e:
                rolled_back = self._rollback_blob(digest, created)
                raise LogError(str(self.layout.log_path), e, rolled_back) from e

        logger.info(f"Added {filename} version {version} ({digest[:12]})")
        return AddResult(AddStatus.ADDED, record, version)

    def get(
        self,
        filename: str,
        version: int,
        destination: Optional[str | Path] = None
    ) -> VersionRecord:
        """
        Restore version number `version` (1-based) of filename.

        The content is written to destination, or over filename itself
        when destination is None.

        Returns the restored record.
        Raises InvalidInputError, VersionNotFoundError or RestoreError.
        """
        if isinstance(version, bool) or not isinstance(version, int) or version < 1:
            raise InvalidInputError(f"version must be a positive integer, got {version!r}")

        filename = self._normalize_filename(filename)

        with self._read_lock():
            record = self.log.nth_matching(filename, version)

        if record is None:
            raise VersionNotFoundError(filename, version)

        target = Path(destination) if destination is not None else Path(filename)
        try:
            self.content_store.get(record.digest, target)
        except (BlobNotFoundError, StorageError) as e:
            raise RestoreError(str(target), e) from e

        logger.info(f"Restored {filename} version {version} to {target}")
        return record

    def list(self, filename: Optional[str] = None) -> List[VersionView]:
        """
        List recorded versions in insertion order.

        Args:
            filename: only list this file's versions; None lists all
        """
        if filename is not None:
            filename = self._normalize_filename(filename)

        counters: Dict[str, int] = {}
        views = []

        with self._read_lock():
            for record in self.log.scan():
                counters[record.filename] = counters.get(record.filename, 0) + 1
                if filename is None or record.filename == filename:
                    views.append(VersionView.from_record(record, counters[record.filename]))

        return views

    def history(self, filename: str) -> List[VersionView]:
        """List the versions of a single file."""
        return self.list(filename)

    def version_count(self, filename: str) -> int:
        """Number of versions recorded for filename."""
        filename = self._normalize_filename(filename)
        with self._read_lock():
            return self.log.count(filename)

    def list_filenames(self) -> List[str]:
        """List every versioned filename, in order of first version."""
        with self._read_lock():
            return self.log.filenames()

    # ========== Integrity Verification ==========

    def verify(self) -> Dict[str, List[str]]:
        """
        Verify every blob referenced by the log.

        Returns dict with verified, missing, corrupted, orphaned digests
        and error messages. Nothing is repaired.
        """
        with self._read_lock():
            return verify_repository(self.layout, self.log)

    def check_invariants(self) -> dict:
        """Check repository invariants."""
        with self._read_lock():
            return verify_repository_invariants(self.layout, self.log)

    # ========== Statistics and Diagnostics ==========

    def get_statistics(self) -> dict:
        """
        Get repository statistics.

        Returns storage statistics plus record and filename counts.
        """
        with self._read_lock():
            stats = self.layout.get_storage_stats()
            stats['total_records'] = self.log.count()
            stats['total_files'] = len(self.log.filenames())
        return stats

    # ========== Internals ==========

    def _rollback_blob(self, digest: str, created: bool) -> bool:
        """
        Remove a blob stored by a failed add.

        Blobs this add did not create may back other versions and are
        kept. A failed removal leaves a harmless orphan and is logged.

        Returns True if the repository is back to its prior state.
        """
        if not created:
            return True

        try:
            self.content_store.remove(digest)
            logger.info(f"Rolled back blob {digest[:12]} after failed log append")
            return True
        except StorageError:
            logger.error(
                f"Failed to roll back blob {digest}; it is now orphaned",
                exc_info=True,
            )
            return False

    def _read_lock(self):
        # A repository that was never initialized has no lock file and no
        # history; reading it needs no lock
        if not self.layout.lock_path.exists():
            return nullcontext()
        return self.lock.shared()

    @staticmethod
    def _normalize_filename(path) -> str:
        """
        Turn a path into the filename key used in the log.

        Equivalent spellings of a relative path ("./a.txt", "a.txt")
        share one history.
        """
        if not isinstance(path, (str, os.PathLike)):
            raise InvalidInputError(f"filename must be a path, got {type(path).__name__}")

        filename = os.fspath(path)
        if isinstance(filename, bytes):
            raise InvalidInputError("filename must be text")
        if not filename:
            raise InvalidInputError("filename cannot be empty")

        filename = os.path.normpath(filename)
        validate_filename(filename)
        return filename

    def __repr__(self) -> str:
        return f"VersioningEngine(path={self.repo_path})"
