"""
Content-addressed blob storage.

Provides immutable blob storage keyed by content digest.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from ..config import Config
from ..errors import (
    BlobCorruptedError,
    BlobNotFoundError,
    SourceNotFoundError,
    StorageError,
)
from ..integrity.hashing import digest_file, new_hasher, resolve_chunk_size
from .layout import RepositoryLayout

logger = logging.getLogger(__name__)


class ContentStore:
    """
    Content-addressed blob store with immutable blobs.

    Blobs are stored by their content digest.
    Once written, blobs never change.
    """

    # mkstemp creates 0600 files; restored and stored files get this instead
    DEFAULT_FILE_MODE = 0o644

    def __init__(self, layout: RepositoryLayout, fsync: bool = None):
        """Initialize content store with given layout."""
        self.layout = layout
        self.fsync = Config.FSYNC if fsync is None else fsync

    def exists(self, digest: str) -> bool:
        """Check if a blob is stored under digest."""
        return self.layout.get_blob_path(digest).is_file()

    def put(self, source_path: str | Path, digest: str) -> bool:
        """
        Store the content of source_path under digest.

        The blob is written atomically:
        - Content is copied to a temp file inside objects/
        - The temp file is renamed over the final name
        - If an intact blob already exists, no action (idempotent)
        - A blob whose bytes no longer hash to digest is rewritten

        The content is re-hashed while copying; if the source changed
        since digest was computed, nothing is stored and
        BlobCorruptedError is raised.

        Returns True if this call created the blob, False if a blob
        already existed under digest (including one that was repaired).
        """
        blob_path = self.layout.get_blob_path(digest)
        existed = False

        if blob_path.is_file():
            try:
                actual = digest_file(blob_path)
            except SourceNotFoundError:
                actual = None
            if actual == digest:
                logger.debug(f"Blob {digest[:12]} already stored")
                return False
            if actual is not None:
                existed = True
                logger.warning(
                    f"Blob {digest[:12]} is corrupted (hashes to "
                    f"{actual[:12]}), rewriting from {source_path}"
                )

        try:
            with open(source_path, 'rb') as src:
                self._write_atomic(blob_path, src, expected_digest=digest)
        except OSError as e:
            raise StorageError("read_source", str(source_path), e)

        logger.debug(f"Stored blob {digest[:12]} from {source_path}")
        return not existed

    def get(self, digest: str, destination_path: str | Path) -> None:
        """
        Copy a stored blob to destination_path, replacing its content.

        A symlinked destination stays a symlink; its target file receives
        the content.

        Raises BlobNotFoundError if no blob exists for digest.
        Raises StorageError if the destination cannot be written.
        """
        blob_path = self.layout.get_blob_path(digest)

        if not blob_path.is_file():
            raise BlobNotFoundError(digest)

        destination_path = Path(os.path.realpath(destination_path))
        try:
            mode = destination_path.stat().st_mode & 0o7777
        except OSError:
            mode = self.DEFAULT_FILE_MODE

        try:
            with blob_path.open('rb') as src:
                self._write_atomic(destination_path, src, mode)
        except OSError as e:
            raise StorageError("read_blob", str(blob_path), e)

    def open_blob(self, digest: str) -> BinaryIO:
        """
        Open a stored blob for reading.

        Raises BlobNotFoundError if no blob exists for digest.
        """
        blob_path = self.layout.get_blob_path(digest)
        try:
            return blob_path.open('rb')
        except FileNotFoundError:
            raise BlobNotFoundError(digest)
        except OSError as e:
            raise StorageError("open_blob", str(blob_path), e)

    def size(self, digest: str) -> int:
        """Get the size in bytes of a stored blob."""
        blob_path = self.layout.get_blob_path(digest)
        try:
            return blob_path.stat().st_size
        except FileNotFoundError:
            raise BlobNotFoundError(digest)
        except OSError as e:
            raise StorageError("stat_blob", str(blob_path), e)

    def remove(self, digest: str) -> bool:
        """
        Delete a blob from the store.

        Only used to roll back a blob created by a failed add.

        Returns True if deleted, False if it didn't exist.
        """
        blob_path = self.layout.get_blob_path(digest)

        try:
            blob_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("remove_blob", str(blob_path), e)

    def list_digests(self) -> list[str]:
        """List all blob digests in the store."""
        return self.layout.list_blobs()

    def _write_atomic(
        self,
        path: Path,
        src: BinaryIO,
        mode: int = None,
        expected_digest: str = None,
    ) -> None:
        """
        Stream src into path atomically.

        Uses temp file + rename in the destination directory, so readers
        never observe a partially written file under its final name.
        If expected_digest is given, the copied bytes must hash to it.
        """
        mode = self.DEFAULT_FILE_MODE if mode is None else mode
        hasher = new_hasher() if expected_digest else None
        chunk_size = resolve_chunk_size()
        dir_path = path.parent
        fd = None
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=str(dir_path),
                prefix=RepositoryLayout.TEMP_PREFIX,
            )

            with os.fdopen(fd, 'wb') as dst:
                fd = None  # owned by dst now
                for chunk in iter(lambda: src.read(chunk_size), b''):
                    if hasher is not None:
                        hasher.update(chunk)
                    dst.write(chunk)
                dst.flush()
                os.fchmod(dst.fileno(), mode)
                if self.fsync:
                    os.fsync(dst.fileno())

            if hasher is not None and hasher.hexdigest() != expected_digest:
                raise BlobCorruptedError(expected_digest, hasher.hexdigest())

            # Atomic replace; concurrent writers of the same digest carry
            # identical bytes, so the last rename wins harmlessly
            os.replace(temp_path, path)
            temp_path = None

        except Exception as e:
            if fd is not None:
                try:
                    os.close(fd)
                except OSError:
                    pass
            if temp_path is not None and os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
            if isinstance(e, OSError):
                raise StorageError("write_file", str(path), e)
            raise
