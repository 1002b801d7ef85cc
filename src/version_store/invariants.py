"""
Repository invariants and their verification.

Defines and checks the guarantees a version repository must maintain.
"""

from typing import Callable, List

from .errors import InvariantViolationError
from .model.record import RECORD_SIZE


class Invariant:
    """
    Represents a repository invariant that must always hold.
    """

    def __init__(self, name: str, description: str, check_func: Callable[[], bool]):
        """
        Define an invariant.

        Args:
            name: short invariant name
            description: detailed description of the invariant
            check_func: function that returns True if invariant holds
        """
        self.name = name
        self.description = description
        self.check_func = check_func

    def verify(self) -> bool:
        """
        Verify this invariant holds.

        Returns True if holds, raises InvariantViolationError if not.
        """
        try:
            result = self.check_func()
            if not result:
                raise InvariantViolationError(
                    self.name,
                    f"Check function returned False: {self.description}"
                )
            return True
        except InvariantViolationError:
            raise
        except Exception as e:
            raise InvariantViolationError(
                self.name,
                f"Check function raised exception: {e}\n{self.description}"
            )


class InvariantRegistry:
    """
    Registry of repository invariants.
    """

    def __init__(self):
        self.invariants: List[Invariant] = []

    def register(self, name: str, description: str, check_func: Callable[[], bool]) -> None:
        """Register a new invariant."""
        self.invariants.append(Invariant(name, description, check_func))

    def verify_all(self) -> dict:
        """
        Verify all registered invariants.

        Returns dict with:
            - passed: list of invariant names that passed
            - failed: list of (name, error) tuples for failed invariants
            - all_passed: bool indicating if all passed
        """
        result = {
            'passed': [],
            'failed': [],
            'all_passed': True,
        }

        for invariant in self.invariants:
            try:
                invariant.verify()
                result['passed'].append(invariant.name)
            except InvariantViolationError as e:
                result['failed'].append((invariant.name, str(e)))
                result['all_passed'] = False

        return result

    def verify_one(self, name: str) -> bool:
        """
        Verify a specific invariant by name.

        Returns True if passed, raises InvariantViolationError if failed.
        """
        for invariant in self.invariants:
            if invariant.name == name:
                return invariant.verify()

        raise ValueError(f"Unknown invariant: {name}")


def create_core_invariants(layout, version_log) -> InvariantRegistry:
    """
    Create core invariants for a version repository.
    """
    registry = InvariantRegistry()

    def check_log_alignment():
        if not layout.log_path.exists():
            return True
        return layout.log_path.stat().st_size % RECORD_SIZE == 0

    registry.register(
        "log_alignment",
        "The version log holds only whole records",
        check_log_alignment
    )

    def check_records_decode():
        # Raises LogCorruptedError on the first undecodable record
        for _ in version_log.scan():
            pass
        return True

    registry.register(
        "log_readable",
        "Every record in the version log decodes",
        check_records_decode
    )

    def check_unique_pairs():
        seen = set()
        for record in version_log.scan():
            key = (record.filename, record.digest)
            if key in seen:
                return False
            seen.add(key)
        return True

    registry.register(
        "unique_versions",
        "No two records share the same filename and digest",
        check_unique_pairs
    )

    def check_referenced_blobs():
        for record in version_log.scan():
            if not layout.get_blob_path(record.digest).is_file():
                return False
        return True

    registry.register(
        "reference_integrity",
        "Every record references a stored blob",
        check_referenced_blobs
    )

    return registry


def verify_repository_invariants(layout, version_log) -> dict:
    """
    Verify all invariants for a repository.

    Returns dict with verification results.
    """
    registry = create_core_invariants(layout, version_log)
    return registry.verify_all()
