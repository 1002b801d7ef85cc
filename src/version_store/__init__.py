"""
Version Store - content-addressed file versioning.

This package provides:
- Immutable content-addressed blob storage
- An append-only log of file versions
- Per-file deduplication of unchanged content
- Restoration of any historical version by number

Main entry point:
    VersioningEngine - primary interface for all operations

Example usage:
    from version_store import VersioningEngine

    engine = VersioningEngine('/path/to/repo')
    engine.initialize()

    result = engine.add('report.txt', 'init')
    for view in engine.list('report.txt'):
        print(view.version, view.digest, view.comment)
    engine.get('report.txt', 1)
"""

from .engine import VersioningEngine
from .model.record import VersionRecord, VersionView
from .model.result import AddResult, AddStatus
from .errors import (
    VersionStoreError,
    InvalidInputError,
    NotFoundError,
    SourceNotFoundError,
    BlobNotFoundError,
    VersionNotFoundError,
    StorageError,
    HashError,
    StoreError,
    LogError,
    RestoreError,
    LogCorruptedError,
    BlobCorruptedError,
    InvariantViolationError,
)

__all__ = [
    'VersioningEngine',
    'VersionRecord',
    'VersionView',
    'AddResult',
    'AddStatus',
    'VersionStoreError',
    'InvalidInputError',
    'NotFoundError',
    'SourceNotFoundError',
    'BlobNotFoundError',
    'VersionNotFoundError',
    'StorageError',
    'HashError',
    'StoreError',
    'LogError',
    'RestoreError',
    'LogCorruptedError',
    'BlobCorruptedError',
    'InvariantViolationError',
]
