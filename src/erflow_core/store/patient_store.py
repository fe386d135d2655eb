"""In-memory Entity Store for patient cases.

The store owns the authoritative, insertion-ordered list of PatientCase
records for one session. Every write goes through ``add`` or ``replace``;
reads hand out deep copies so callers never alias stored records.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Set

from erflow_core.exceptions import DuplicateIdError, InvariantViolation, NotFoundError
from erflow_core.models import PatientCase, is_valid_transition

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("case_id", "patient_name", "nhs_number", "severity", "created_at")


class PatientStore:
    """Session-scoped store of PatientCase records.

    A single re-entrant lock serializes all access, so a user action and an
    engine tick can never interleave on the same record.

    Usage:
        store = PatientStore()
        store.add(case)
        current = store.get(case.case_id)
        store.replace(case.case_id, current.revised(triage_notes="..."))
    """

    def __init__(self):
        self._cases: Dict[str, PatientCase] = {}
        self._pending_calls: Set[str] = set()
        self._lock = threading.RLock()

    # ============================================================
    # Writes
    # ============================================================
    def add(self, case: PatientCase) -> PatientCase:
        """Append a new case.

        Raises:
            DuplicateIdError: If case_id is already present
        """
        with self._lock:
            if case.case_id in self._cases:
                raise DuplicateIdError(case.case_id)
            self._cases[case.case_id] = case.model_copy(deep=True)
            logger.info(
                f"[Store] Added {case.case_id} ({case.patient_name}, "
                f"severity {case.severity}, {case.status.value})"
            )
            return case.model_copy(deep=True)

    def replace(self, case_id: str, new_case: PatientCase) -> PatientCase:
        """Atomically replace a whole record.

        The replacement is stored as given; it is never merged with the old
        record.

        Raises:
            NotFoundError: If case_id is absent
            InvariantViolation: If new_case breaks a case invariant
        """
        with self._lock:
            current = self._cases.get(case_id)
            if current is None:
                raise NotFoundError(case_id)
            self._check_invariants(current, new_case)
            self._cases[case_id] = new_case.model_copy(deep=True)
            return new_case.model_copy(deep=True)

    # ============================================================
    # Reads
    # ============================================================
    def get(self, case_id: str) -> PatientCase:
        """Return a copy of the case.

        Raises:
            NotFoundError: If case_id is absent
        """
        with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                raise NotFoundError(case_id)
            return case.model_copy(deep=True)

    def all(self) -> List[PatientCase]:
        """Snapshot of every case in insertion order."""
        with self._lock:
            return [case.model_copy(deep=True) for case in self._cases.values()]

    def filter(self, predicate: Callable[[PatientCase], bool]) -> List[PatientCase]:
        """Snapshot of the cases matching ``predicate``."""
        return [case for case in self.all() if predicate(case)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._cases)

    def __contains__(self, case_id: object) -> bool:
        with self._lock:
            return case_id in self._cases

    @contextmanager
    def locked(self) -> Iterator["PatientStore"]:
        """Hold the store lock across a get/replace sequence.

        Usage:
            with store.locked():
                case = store.get(case_id)
                store.replace(case_id, case.revised(...))
        """
        with self._lock:
            yield self

    # ============================================================
    # External call tracking
    # ============================================================
    @contextmanager
    def external_call(self, case_id: str) -> Iterator[None]:
        """Mark ``case_id`` as having a gateway call in flight.

        The engine leaves marked cases untouched until the block exits.

        Raises:
            NotFoundError: If case_id is absent
        """
        with self._lock:
            if case_id not in self._cases:
                raise NotFoundError(case_id)
            self._pending_calls.add(case_id)
        try:
            yield
        finally:
            with self._lock:
                self._pending_calls.discard(case_id)

    def has_pending_call(self, case_id: str) -> bool:
        with self._lock:
            return case_id in self._pending_calls

    # ============================================================
    # Invariants
    # ============================================================
    @staticmethod
    def _check_invariants(current: PatientCase, new: PatientCase) -> None:
        for name in _IMMUTABLE_FIELDS:
            if getattr(current, name) != getattr(new, name):
                raise InvariantViolation(f"{current.case_id}: {name} is immutable")

        if current.dispatch_timestamp is not None and new.dispatch_timestamp != current.dispatch_timestamp:
            raise InvariantViolation(f"{current.case_id}: dispatch_timestamp is set once and never changed")

        if new.status != current.status and not is_valid_transition(current.status, new.status):
            raise InvariantViolation(
                f"{current.case_id}: invalid status change "
                f"{current.status.value} → {new.status.value}"
            )

        kept = new.ambulance_updates[:len(current.ambulance_updates)]
        if kept != current.ambulance_updates:
            raise InvariantViolation(f"{current.case_id}: ambulance updates are append-only")
