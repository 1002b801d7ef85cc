"""
Filesystem layout for a version repository.
"""

from pathlib import Path

from ..errors import InvalidInputError, StorageError
from ..integrity.hashing import is_valid_digest


class RepositoryLayout:
    """
    Manages filesystem layout for a version repository.

    Layout:
        repo_root/
            objects/
                <digest>         # blob, exact original bytes
            versions.db          # fixed-width version records
            versions.lock        # advisory lock file
    """

    LOG_NAME = "versions.db"
    LOCK_NAME = "versions.lock"
    TEMP_PREFIX = ".tmp_"

    def __init__(self, repo_root: Path):
        """Initialize repository layout at given root."""
        self.repo_root = Path(repo_root).resolve()
        self.objects_dir = self.repo_root / "objects"
        self.log_path = self.repo_root / self.LOG_NAME
        self.lock_path = self.repo_root / self.LOCK_NAME

    def initialize(self) -> None:
        """
        Initialize repository directory structure.

        Creates the directories and an empty log.
        Idempotent - safe to call multiple times.
        """
        try:
            self.repo_root.mkdir(parents=True, exist_ok=True)
            self.objects_dir.mkdir(exist_ok=True)
            self.log_path.touch(exist_ok=True)
            self.lock_path.touch(exist_ok=True)
        except OSError as e:
            raise StorageError("initialize", str(self.repo_root), e)

    def is_initialized(self) -> bool:
        return self.objects_dir.is_dir() and self.log_path.is_file()

    def get_blob_path(self, digest: str) -> Path:
        """
        Get filesystem path for a blob by its digest.

        The digest is validated so it can never escape objects/.
        """
        if not is_valid_digest(digest):
            raise InvalidInputError(f"malformed digest: {digest!r}")
        return self.objects_dir / digest

    def list_blobs(self) -> list[str]:
        """
        List all blob digests in the repository.

        Temporary files left by interrupted writes are skipped.
        """
        if not self.objects_dir.exists():
            return []

        try:
            return sorted(
                f.name for f in self.objects_dir.iterdir()
                if f.is_file() and is_valid_digest(f.name)
            )
        except OSError as e:
            raise StorageError("list_blobs", str(self.objects_dir), e)

    def list_temp_files(self) -> list[Path]:
        """List temporary files left behind by interrupted blob writes."""
        if not self.objects_dir.exists():
            return []

        try:
            return [
                f for f in self.objects_dir.iterdir()
                if f.name.startswith(self.TEMP_PREFIX)
            ]
        except OSError as e:
            raise StorageError("list_temp_files", str(self.objects_dir), e)

    def get_storage_stats(self) -> dict:
        """
        Get storage statistics.

        Returns dict with:
        - total_blobs: number of blobs
        - total_size_bytes: total blob size in bytes
        - log_size_bytes: size of the version log
        """
        stats = {
            'total_blobs': 0,
            'total_size_bytes': 0,
            'log_size_bytes': 0,
        }

        try:
            for digest in self.list_blobs():
                stats['total_blobs'] += 1
                stats['total_size_bytes'] += (self.objects_dir / digest).stat().st_size
            if self.log_path.exists():
                stats['log_size_bytes'] = self.log_path.stat().st_size
        except OSError as e:
            raise StorageError("stats", str(self.repo_root), e)

        return stats
