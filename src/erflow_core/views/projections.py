"""Read-only projections over Entity Store snapshots.

Each function takes any iterable of PatientCase (typically ``store.all()``)
and returns derived data for one dashboard panel. Nothing here mutates a
case, and every function accepts an empty snapshot.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from erflow_core.models import AmbulanceUpdate, PatientCase, PatientStatus, ensure_utc

HIGH_SEVERITY = 8
URGENT_SEVERITY = 5

# Remote queue wait estimate, in minutes
WAIT_PER_SEVERITY_STEP = 5
WAIT_PER_QUEUED_PATIENT = 10
MIN_WAIT = 5

AMBULANCE_BOARD_STATUSES = frozenset({
    PatientStatus.AMBULANCE_DISPATCHED,
    PatientStatus.IN_TRANSIT,
})

INBOUND_PREP_STATUSES = frozenset({
    PatientStatus.IN_TRANSIT,
    PatientStatus.PREP_READY,
})

ACTIVE_DISPATCH_STATUSES = frozenset({
    PatientStatus.AMBULANCE_DISPATCHED,
    PatientStatus.IN_TRANSIT,
    PatientStatus.PREP_READY,
})

THEATRE_PIPELINE_STATUSES = frozenset({
    PatientStatus.ARRIVED,
    PatientStatus.MOVING_TO_THEATRE,
    PatientStatus.IN_OPERATION_THEATRE,
})


def ambulance_board(cases: Iterable[PatientCase]) -> List[PatientCase]:
    """Dispatch centre: ambulances sent or carrying a patient."""
    return [case for case in cases if case.status in AMBULANCE_BOARD_STATUSES]


def awaiting_approval(cases: Iterable[PatientCase]) -> List[PatientCase]:
    """Clinician alert centre: plans waiting for sign-off."""
    return [case for case in cases if case.status == PatientStatus.AWAITING_PLAN_APPROVAL]


def high_severity_inbound(
    cases: Iterable[PatientCase], threshold: int = HIGH_SEVERITY
) -> List[PatientCase]:
    """Hospital preparation centre: critical patients on their way in."""
    return [
        case for case in cases
        if case.severity >= threshold and case.status in INBOUND_PREP_STATUSES
    ]


def active_dispatch(cases: Iterable[PatientCase]) -> Optional[PatientCase]:
    """First responder view: the first case with an ambulance on the road."""
    return next((case for case in cases if case.status in ACTIVE_DISPATCH_STATUSES), None)


def remote_queue(cases: Iterable[PatientCase]) -> List[PatientCase]:
    """Patients waiting at home, most severe first (stable within a severity)."""
    waiting = [case for case in cases if case.status == PatientStatus.WAITING_REMOTE]
    return sorted(waiting, key=lambda case: -case.severity)


def in_theatre_pipeline(cases: Iterable[PatientCase]) -> List[PatientCase]:
    """Arrived patients on their way to, or in, the operating theatre."""
    return [case for case in cases if case.status in THEATRE_PIPELINE_STATUSES]


def status_counts(cases: Iterable[PatientCase]) -> Dict[PatientStatus, int]:
    """Number of cases per status; every status is present."""
    counts = {status: 0 for status in PatientStatus}
    for case in cases:
        counts[case.status] += 1
    return counts


def severity_band(severity: int) -> str:
    """'critical' (8+), 'urgent' (5-7) or 'stable' (1-4)."""
    if severity >= HIGH_SEVERITY:
        return "critical"
    if severity >= URGENT_SEVERITY:
        return "urgent"
    return "stable"


def transit_progress(case: PatientCase, now: datetime) -> Optional[float]:
    """Fraction of the dispatch ETA elapsed, clamped to [0, 1].

    Returns None for cases never dispatched or without an ETA estimate.
    """
    if case.dispatch_timestamp is None or case.eta_total_minutes is None:
        return None
    if case.status.rank >= PatientStatus.ARRIVED.rank:
        return 1.0
    total = case.eta_total_minutes * 60
    if total == 0:
        return 1.0
    elapsed = (ensure_utc(now) - case.dispatch_timestamp).total_seconds()
    return min(1.0, max(0.0, elapsed / total))


def latest_update(case: PatientCase) -> Optional[AmbulanceUpdate]:
    """Most recent crew update, if any."""
    return case.latest_update


def estimated_wait_minutes(
    severity: int,
    queue_length: int,
    per_severity_step: int = WAIT_PER_SEVERITY_STEP,
    per_queued_patient: int = WAIT_PER_QUEUED_PATIENT,
    minimum: int = MIN_WAIT,
) -> int:
    """Approximate minutes before a remote patient is seen.

    Each severity point below 10 adds ``per_severity_step`` and each patient
    already waiting adds ``per_queued_patient``. The result is never below
    ``minimum``.

    Raises:
        ValueError: If severity is outside 1-10 or queue_length is negative
    """
    if not 1 <= severity <= 10:
        raise ValueError(f"severity must be within 1-10, got {severity}")
    if queue_length < 0:
        raise ValueError(f"queue_length must be >= 0, got {queue_length}")
    wait = (10 - severity) * per_severity_step + queue_length * per_queued_patient
    return max(minimum, wait)


def remote_queue_waits(cases: Iterable[PatientCase]) -> List[Tuple[PatientCase, int]]:
    """remote_queue() paired with each patient's wait; only patients ahead count."""
    return [
        (case, estimated_wait_minutes(case.severity, position))
        for position, case in enumerate(remote_queue(cases))
    ]
