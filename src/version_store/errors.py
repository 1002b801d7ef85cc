"""
Error types for version store operations.

All errors are explicit and never silent. A duplicate add is not an
error: it is reported through AddStatus.ALREADY_EXISTS.
"""


class VersionStoreError(Exception):
    """Base exception for all version store errors."""
    pass


class InvalidInputError(VersionStoreError):
    """Raised when caller input is rejected before any side effect."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid input: {reason}")


class NotFoundError(VersionStoreError):
    """Base for lookups that found nothing."""
    pass


class SourceNotFoundError(NotFoundError):
    """Raised when a source path is missing or not a regular file."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Not a regular file: {path}")


class BlobNotFoundError(NotFoundError):
    """Raised when no blob is stored under a digest."""

    def __init__(self, digest: str):
        self.digest = digest
        super().__init__(f"Blob not found: {digest}")


class VersionNotFoundError(NotFoundError):
    """Raised when a filename has fewer versions than requested."""

    def __init__(self, filename: str, version: int):
        self.filename = filename
        self.version = version
        super().__init__(f"Version {version} of {filename} not found")


class StorageError(VersionStoreError):
    """Raised when filesystem operations fail."""

    def __init__(self, operation: str, path: str, cause: Exception = None):
        self.operation = operation
        self.path = path
        self.cause = cause
        msg = f"Storage error during {operation}: {path}"
        if cause:
            msg += f"\nCause: {cause}"
        super().__init__(msg)


class HashError(StorageError):
    """Raised when a source file cannot be read for hashing."""

    def __init__(self, path: str, cause: Exception = None):
        super().__init__("hash", path, cause)


class StoreError(StorageError):
    """Raised when a blob cannot be written into the repository."""

    def __init__(self, path: str, cause: Exception = None):
        super().__init__("store", path, cause)


class LogError(StorageError):
    """
    Raised when a version record cannot be appended.

    rolled_back is False when a blob created by the same add could not
    be removed and was left orphaned.
    """

    def __init__(self, path: str, cause: Exception = None, rolled_back: bool = True):
        self.rolled_back = rolled_back
        super().__init__("log", path, cause)


class RestoreError(StorageError):
    """Raised when a stored version cannot be written to its destination."""

    def __init__(self, path: str, cause: Exception = None):
        super().__init__("restore", path, cause)


class LogCorruptedError(VersionStoreError):
    """Raised when a complete record in the log cannot be decoded."""

    def __init__(self, offset: int, reason: str):
        self.offset = offset
        self.reason = reason
        super().__init__(f"Corrupted log record at offset {offset}: {reason}")


class BlobCorruptedError(VersionStoreError):
    """Raised when a blob's content does not match its digest."""

    def __init__(self, digest: str, actual: str):
        self.digest = digest
        self.actual = actual
        super().__init__(
            f"Blob corrupted: {digest}\n"
            f"Actual hash: {actual}"
        )


class InvariantViolationError(VersionStoreError):
    """Raised when a repository invariant is violated."""

    def __init__(self, invariant: str, details: str):
        self.invariant = invariant
        self.details = details
        super().__init__(f"Invariant violation: {invariant}\nDetails: {details}")
