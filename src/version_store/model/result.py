"""
Outcome of an add operation.
"""

import enum
from dataclasses import dataclass

from .record import VersionRecord


class AddStatus(enum.Enum):
    ADDED = 'added'
    ALREADY_EXISTS = 'already_exists'


@dataclass(frozen=True)
class AddResult:
    """
    Result of VersioningEngine.add.

    For ADDED, record is the newly appended record and version is its
    1-based number within the filename's history. For ALREADY_EXISTS,
    record and version describe the existing entry with the same content.
    """

    status: AddStatus
    record: VersionRecord
    version: int

    @property
    def added(self) -> bool:
        return self.status is AddStatus.ADDED
