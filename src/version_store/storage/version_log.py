"""
Append-only version log.

The log is a flat file of fixed-width VersionRecord entries. Records are
only ever appended; bytes already written are never rewritten, so a
reader holding a prefix of the file always sees whole, valid records.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from ..config import Config
from ..errors import StorageError
from ..model.record import RECORD_SIZE, VersionRecord

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[VersionRecord], bool]


def match_filename(filename: Optional[str]) -> RecordPredicate:
    """Predicate selecting records for filename, or every record if None."""
    if filename is None:
        return lambda record: True
    return lambda record: record.filename == filename


class VersionLog:
    """
    Fixed-width append-only record log.

    Sequence numbers are 1-based log positions assigned while scanning.
    """

    def __init__(self, log_path: Path, fsync: bool = None):
        self.log_path = Path(log_path)
        self.fsync = Config.FSYNC if fsync is None else fsync

    # ========== Writing ==========

    def append(self, record: VersionRecord) -> VersionRecord:
        """
        Append one record to the end of the log.

        The record is written with a single write on an O_APPEND handle.
        A short or failed write is truncated away so the log never keeps
        a partial record. Must be called under the repository's
        exclusive lock.

        Returns the record with its sequence number set.
        """
        data = record.pack()
        fd = None
        size_before = None

        try:
            fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            size_before = self._discard_partial_tail(fd)

            written = os.write(fd, data)
            if written != len(data):
                raise OSError(f"short write: {written} of {len(data)} bytes")

            if self.fsync:
                os.fsync(fd)

        except OSError as e:
            if fd is not None and size_before is not None:
                try:
                    os.ftruncate(fd, size_before)
                except OSError:
                    logger.error(
                        f"Could not truncate partial record in {self.log_path}",
                        exc_info=True,
                    )
            raise StorageError("append", str(self.log_path), e)

        finally:
            if fd is not None:
                os.close(fd)

        return record.with_sequence(size_before // RECORD_SIZE + 1)

    def _discard_partial_tail(self, fd: int) -> int:
        """
        Cut a trailing partial record left by an interrupted writer.

        Appending after such a tail would shift every later record off
        the record grid. Returns the aligned log size.
        """
        size = os.fstat(fd).st_size
        remainder = size % RECORD_SIZE
        if remainder:
            logger.warning(
                f"Discarding {remainder} trailing bytes of partial record in {self.log_path}"
            )
            size -= remainder
            os.ftruncate(fd, size)
        return size

    # ========== Reading ==========

    def scan(self, predicate: RecordPredicate = None) -> Iterator[VersionRecord]:
        """
        Iterate records in log order, oldest first.

        Lazy: the file is opened when iteration starts, and each call
        starts again from the beginning. A missing log yields nothing;
        a trailing partial record is ignored.
        """
        try:
            f = self.log_path.open('rb')
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError("open_log", str(self.log_path), e)

        with f:
            sequence = 0
            while True:
                offset = sequence * RECORD_SIZE
                try:
                    data = f.read(RECORD_SIZE)
                except OSError as e:
                    raise StorageError("read_log", str(self.log_path), e)

                if not data:
                    break
                if len(data) < RECORD_SIZE:
                    logger.warning(
                        f"Ignoring {len(data)} trailing bytes at offset {offset} in {self.log_path}"
                    )
                    break

                sequence += 1
                record = VersionRecord.unpack(data, sequence=sequence, offset=offset)
                if predicate is None or predicate(record):
                    yield record

    def find_existing(self, filename: str, digest: str) -> Optional[VersionRecord]:
        """
        Find the first record with both filename and digest.

        Returns the record, or None. Truthiness of the result answers
        whether the pair already exists.
        """
        for record in self.scan(match_filename(filename)):
            if record.digest == digest:
                return record
        return None

    def nth_matching(self, filename: str, n: int) -> Optional[VersionRecord]:
        """
        Get the n-th (1-indexed) record for filename in log order.

        Returns None if fewer than n such records exist.
        """
        if n < 1:
            return None

        for index, record in enumerate(self.scan(match_filename(filename)), start=1):
            if index == n:
                return record
        return None

    def count(self, filename: Optional[str] = None) -> int:
        """Count records for filename, or all records if None."""
        return sum(1 for _ in self.scan(match_filename(filename)))

    def latest(self, filename: str) -> Optional[VersionRecord]:
        """Get the most recent record for filename."""
        last = None
        for record in self.scan(match_filename(filename)):
            last = record
        return last

    def filenames(self) -> List[str]:
        """List distinct filenames in order of first appearance."""
        seen = {}
        for record in self.scan():
            seen.setdefault(record.filename, None)
        return list(seen)

    def version_of(self, record: VersionRecord) -> int:
        """
        Get the 1-based version number of a logged record within its
        filename's history.
        """
        version = 0
        for candidate in self.scan(match_filename(record.filename)):
            version += 1
            if candidate.sequence == record.sequence:
                return version
        raise StorageError(
            "version_of",
            str(self.log_path),
            LookupError(f"record {record.sequence} is not in the log"),
        )
