"""
Version record model.

A record is one fixed-width entry in the version log. Every record
occupies RECORD_SIZE bytes, so the log is scanned sequentially without
delimiters.

Binary layout (little-endian):

    offset  size  field
    0       256   filename    UTF-8, NUL-padded
    256     64    digest      ASCII hex
    320     256   comment     UTF-8, NUL-padded
    576     8     created_at  signed 64-bit UNIX seconds
"""

import struct
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from ..errors import InvalidInputError, LogCorruptedError
from ..integrity.hashing import DIGEST_SIZE, is_valid_digest

FILENAME_SIZE = 256
COMMENT_SIZE = 256

RECORD_FORMAT = f'<{FILENAME_SIZE}s{DIGEST_SIZE}s{COMMENT_SIZE}sq'
RECORD_STRUCT = struct.Struct(RECORD_FORMAT)
RECORD_SIZE = RECORD_STRUCT.size


def _encode_field(name: str, value: str, max_size: int, allow_empty: bool) -> bytes:
    if not isinstance(value, str):
        raise InvalidInputError(f"{name} must be a string")

    encoded = value.encode('utf-8')

    if not encoded and not allow_empty:
        raise InvalidInputError(f"{name} cannot be empty")
    if b'\x00' in encoded:
        raise InvalidInputError(f"{name} cannot contain NUL characters")
    if len(encoded) > max_size:
        raise InvalidInputError(
            f"{name} is {len(encoded)} bytes encoded, limit is {max_size}"
        )

    return encoded


def validate_filename(filename: str) -> bytes:
    """Return the encoded filename, raising InvalidInputError if it does not fit."""
    return _encode_field('filename', filename, FILENAME_SIZE, allow_empty=False)


def validate_comment(comment: str) -> bytes:
    """Return the encoded comment, raising InvalidInputError if it does not fit."""
    return _encode_field('comment', comment, COMMENT_SIZE, allow_empty=True)


@dataclass(frozen=True)
class VersionRecord:
    """
    Immutable version record.

    sequence is the 1-based position of the record in the log. It is
    derived while scanning and never written to disk; records that have
    not been appended yet have sequence None.
    """

    filename: str
    digest: str
    comment: str = ''
    created_at: int = field(default_factory=lambda: int(time.time()))
    sequence: Optional[int] = None

    def __post_init__(self):
        validate_filename(self.filename)
        validate_comment(self.comment)
        if not is_valid_digest(self.digest):
            raise InvalidInputError(f"malformed digest: {self.digest!r}")

    def pack(self) -> bytes:
        """Encode to exactly RECORD_SIZE bytes."""
        return RECORD_STRUCT.pack(
            validate_filename(self.filename),
            self.digest.encode('ascii'),
            validate_comment(self.comment),
            self.created_at,
        )

    @classmethod
    def unpack(cls, data: bytes, sequence: Optional[int] = None, offset: int = 0) -> 'VersionRecord':
        """
        Decode a record from exactly RECORD_SIZE bytes.

        Raises LogCorruptedError if the bytes are not a valid record.
        """
        if len(data) != RECORD_SIZE:
            raise LogCorruptedError(offset, f"expected {RECORD_SIZE} bytes, got {len(data)}")

        raw_filename, raw_digest, raw_comment, created_at = RECORD_STRUCT.unpack(data)

        try:
            return cls(
                filename=raw_filename.rstrip(b'\x00').decode('utf-8'),
                digest=raw_digest.decode('ascii'),
                comment=raw_comment.rstrip(b'\x00').decode('utf-8'),
                created_at=created_at,
                sequence=sequence,
            )
        except (UnicodeDecodeError, InvalidInputError) as e:
            raise LogCorruptedError(offset, str(e))

    def with_sequence(self, sequence: int) -> 'VersionRecord':
        """Return a copy positioned at the given log sequence."""
        return replace(self, sequence=sequence)

    def __repr__(self) -> str:
        return (
            f"VersionRecord(sequence={self.sequence}, filename={self.filename!r}, "
            f"digest={self.digest[:8]}...)"
        )


@dataclass(frozen=True)
class VersionView:
    """Display view of a record within its filename's history."""

    sequence: int
    version: int
    filename: str
    digest: str
    comment: str
    created_at: int

    @classmethod
    def from_record(cls, record: VersionRecord, version: int) -> 'VersionView':
        return cls(
            sequence=record.sequence,
            version=version,
            filename=record.filename,
            digest=record.digest,
            comment=record.comment,
            created_at=record.created_at,
        )

    def to_dict(self) -> dict:
        return {
            'sequence': self.sequence,
            'version': self.version,
            'filename': self.filename,
            'digest': self.digest,
            'comment': self.comment,
            'created_at': self.created_at,
        }
