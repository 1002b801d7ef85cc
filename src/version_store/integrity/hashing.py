"""
Content-addressed hashing using BLAKE3.

Provides deterministic digests for file contents. A digest is the
64-character lowercase hex encoding of a 256-bit BLAKE3 hash.
"""

import errno
import os
import stat
import string
from pathlib import Path

import blake3

from ..config import Config
from ..errors import HashError, SourceNotFoundError

DIGEST_SIZE = 64

_HEX_DIGITS = frozenset(string.hexdigits.lower())

# stat() failures meaning "no file at this path"
_MISSING_ERRNOS = (errno.ENOENT, errno.ENOTDIR, errno.ELOOP)


def new_hasher():
    """Create an incremental hasher for streamed content."""
    return blake3.blake3()


def compute_hash(data: bytes) -> str:
    """
    Compute hash of raw bytes.

    Returns hex-encoded hash string.
    """
    return blake3.blake3(data).hexdigest()


def resolve_chunk_size(chunk_size: int = None) -> int:
    """
    Get the read size for streaming, defaulting to Config.HASH_CHUNK_SIZE.

    A size below 1 would read nothing and make every file look empty.
    """
    if chunk_size is None:
        chunk_size = Config.HASH_CHUNK_SIZE
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise ValueError(f"chunk size must be a positive integer, got {chunk_size!r}")
    return chunk_size


def digest_file(path: str | Path, chunk_size: int = None) -> str:
    """
    Compute the digest of a file's content.

    The file is read in chunks so large files are never held in memory.

    Raises SourceNotFoundError if path is missing or not a regular file.
    Raises HashError if the file cannot be read.
    """
    path = Path(path)
    chunk_size = resolve_chunk_size(chunk_size)

    try:
        st = path.stat()
    except OSError as e:
        if e.errno in _MISSING_ERRNOS:
            raise SourceNotFoundError(str(path))
        raise HashError(str(path), e)

    if not stat.S_ISREG(st.st_mode):
        raise SourceNotFoundError(str(path))

    hasher = new_hasher()
    try:
        with path.open('rb') as f:
            for chunk in iter(lambda: f.read(chunk_size), b''):
                hasher.update(chunk)
    except OSError as e:
        raise HashError(str(path), e)

    return hasher.hexdigest()


def is_valid_digest(value: str) -> bool:
    """Check that a string is a well-formed digest."""
    return (
        isinstance(value, str)
        and len(value) == DIGEST_SIZE
        and all(c in _HEX_DIGITS for c in value)
    )


def verify_file_hash(path: str | Path, expected_digest: str) -> bool:
    """
    Verify that a file's content matches expected digest.

    Returns True if match, False otherwise.
    """
    return digest_file(path) == expected_digest


def is_regular_file(path: str | Path) -> bool:
    """Check that path exists and is a regular file, following symlinks."""
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False
