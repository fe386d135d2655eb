"""Transition rules for the Status Transition Engine.

Each rule names the statuses it leaves, the status it enters, and a predicate
over (case, now, timings). Rules raise MalformedCaseError when the case lacks
a field they depend on.

Rule ordering for one source status:
- the arrival rule (elapsed time since dispatch) is evaluated first
- then at most one dwell-gated rule
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Iterable, List, Tuple

from erflow_core.config import DwellTimings
from erflow_core.exceptions import MalformedCaseError
from erflow_core.models import EN_ROUTE_STATUSES, PatientCase, PatientStatus

RulePredicate = Callable[[PatientCase, datetime, DwellTimings], bool]


@dataclass(frozen=True)
class TransitionRule:
    """One engine-driven edge of the workflow graph."""

    name: str
    sources: FrozenSet[PatientStatus]
    target: PatientStatus
    predicate: RulePredicate
    dwell_gated: bool = True
    description: str = ""

    def applies_to(self, status: PatientStatus) -> bool:
        return status in self.sources

    def fires(self, case: PatientCase, now: datetime, timings: DwellTimings) -> bool:
        return self.predicate(case, now, timings)


# ============================================================
# Elapsed-time helpers
# ============================================================

def _require_dispatch(case: PatientCase) -> Tuple[datetime, int]:
    if case.dispatch_timestamp is None:
        raise MalformedCaseError(f"{case.status.value} without dispatch_timestamp")
    if case.eta_total_minutes is None:
        raise MalformedCaseError(f"{case.status.value} without an ETA estimate")
    return case.dispatch_timestamp, case.eta_total_minutes


def elapsed_seconds(case: PatientCase, now: datetime) -> float:
    """Seconds since dispatch (negative if ``now`` precedes dispatch)."""
    dispatched_at, _ = _require_dispatch(case)
    return (now - dispatched_at).total_seconds()


def remaining_eta_minutes(case: PatientCase, now: datetime) -> int:
    """Whole minutes left to arrival, rounded up, never below zero.

    Raises:
        MalformedCaseError: If dispatch_timestamp or the ETA estimate is missing
    """
    _, total = _require_dispatch(case)
    remaining = total * 60 - elapsed_seconds(case, now)
    return max(0, math.ceil(remaining / 60))


def has_arrived(case: PatientCase, now: datetime) -> bool:
    """True once elapsed time reaches the dispatch ETA (progress ≥ 100%)."""
    _, total = _require_dispatch(case)
    return elapsed_seconds(case, now) >= total * 60


def _dwell_at_least(case: PatientCase, now: datetime, seconds: float) -> bool:
    return case.dwell(now).total_seconds() >= seconds


# ============================================================
# Rules
# ============================================================

ARRIVAL = TransitionRule(
    name="arrival",
    sources=frozenset(EN_ROUTE_STATUSES),
    target=PatientStatus.ARRIVED,
    predicate=lambda case, now, timings: has_arrived(case, now),
    dwell_gated=False,
    description="Elapsed time since dispatch reached the ETA",
)

PLAN_READY = TransitionRule(
    name="plan_ready",
    sources=frozenset({PatientStatus.AMBULANCE_DISPATCHED}),
    target=PatientStatus.PREP_READY,
    predicate=lambda case, now, timings: (
        case.resource_plan is not None
        and _dwell_at_least(case, now, timings.plan_preparation)
    ),
    description="Resource plan attached and preparation time elapsed",
)


def _departed(case: PatientCase, now: datetime, timings: DwellTimings) -> bool:
    _require_dispatch(case)
    return _dwell_at_least(case, now, timings.transit_departure)


DEPART = TransitionRule(
    name="depart",
    sources=frozenset({PatientStatus.PREP_READY}),
    target=PatientStatus.IN_TRANSIT,
    predicate=_departed,
    description="Hospital ready, ambulance leaves with the patient",
)

HANDOVER = TransitionRule(
    name="handover",
    sources=frozenset({PatientStatus.ARRIVED}),
    target=PatientStatus.MOVING_TO_THEATRE,
    predicate=lambda case, now, timings: _dwell_at_least(case, now, timings.arrival_handover),
    description="Handover at the entrance complete",
)

THEATRE = TransitionRule(
    name="theatre",
    sources=frozenset({PatientStatus.MOVING_TO_THEATRE}),
    target=PatientStatus.IN_OPERATION_THEATRE,
    predicate=lambda case, now, timings: _dwell_at_least(case, now, timings.theatre_transfer),
    description="Patient reached the operating theatre",
)

DEFAULT_RULES: Tuple[TransitionRule, ...] = (ARRIVAL, PLAN_READY, DEPART, HANDOVER, THEATRE)


def build_rule_table(rules: Iterable[TransitionRule]) -> Dict[PatientStatus, List[TransitionRule]]:
    """Index rules by source status, arrival-type rules first.

    Raises:
        ValueError: If a status has two rules of the same kind, or a rule
            leaves the terminal status
    """
    table: Dict[PatientStatus, List[TransitionRule]] = {status: [] for status in PatientStatus}
    for rule in rules:
        for status in rule.sources:
            if status.is_terminal:
                raise ValueError(f"Rule {rule.name!r} leaves terminal status {status.value}")
            clash = [r for r in table[status] if r.dwell_gated == rule.dwell_gated]
            if clash:
                raise ValueError(
                    f"Rules {clash[0].name!r} and {rule.name!r} compete for {status.value}"
                )
            table[status].append(rule)

    for status_rules in table.values():
        status_rules.sort(key=lambda r: r.dwell_gated)
    return table
