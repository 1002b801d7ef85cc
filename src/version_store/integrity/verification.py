"""
Integrity verification for blobs and the version log.

Provides tamper detection and reference checks. Verification only
reports; it never repairs or deletes anything.
"""

from typing import Dict, Iterable, List, Set

from ..errors import (
    BlobCorruptedError,
    BlobNotFoundError,
    LogCorruptedError,
    StorageError,
)
from ..model.record import VersionRecord
from .hashing import digest_file


def verify_blob_integrity(blob_path, expected_digest: str) -> None:
    """
    Verify that a blob's content matches its digest.

    Raises BlobNotFoundError if the blob is missing.
    Raises BlobCorruptedError if mismatch detected.
    """
    if not blob_path.is_file():
        raise BlobNotFoundError(expected_digest)

    actual_digest = digest_file(blob_path)
    if actual_digest != expected_digest:
        raise BlobCorruptedError(expected_digest, actual_digest)


def referenced_digests(records: Iterable[VersionRecord]) -> Set[str]:
    """Collect every digest referenced by the given records."""
    return {record.digest for record in records}


def verify_repository(layout, version_log) -> Dict[str, List[str]]:
    """
    Verify every blob referenced by the log, and find unreferenced blobs.

    Returns dict with:
        - verified: digests whose content matches
        - missing: referenced digests with no blob
        - corrupted: referenced digests whose content does not match
        - orphaned: stored blobs no record references
        - errors: messages for every problem found
    """
    result = {
        'verified': [],
        'missing': [],
        'corrupted': [],
        'orphaned': [],
        'errors': [],
    }

    try:
        referenced = referenced_digests(version_log.scan())
    except (LogCorruptedError, StorageError) as e:
        result['errors'].append(f"Failed to read version log: {e}")
        return result

    for digest in sorted(referenced):
        try:
            verify_blob_integrity(layout.get_blob_path(digest), digest)
            result['verified'].append(digest)
        except BlobNotFoundError as e:
            result['missing'].append(digest)
            result['errors'].append(str(e))
        except BlobCorruptedError as e:
            result['corrupted'].append(digest)
            result['errors'].append(str(e))
        except StorageError as e:
            result['errors'].append(f"{digest}: {e}")

    stored = set(layout.list_blobs())
    result['orphaned'] = sorted(stored - referenced)

    return result
