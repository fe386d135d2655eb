"""Status Transition Engine Module

Timed, rule-driven advancement of patient cases.
"""

from .rules import (
    ARRIVAL,
    PLAN_READY,
    DEPART,
    HANDOVER,
    THEATRE,
    DEFAULT_RULES,
    TransitionRule,
    build_rule_table,
    has_arrived,
    remaining_eta_minutes,
)
from .transition_engine import StatusTransitionEngine, TransitionListener

__all__ = [
    "ARRIVAL",
    "PLAN_READY",
    "DEPART",
    "HANDOVER",
    "THEATRE",
    "DEFAULT_RULES",
    "TransitionRule",
    "build_rule_table",
    "has_arrived",
    "remaining_eta_minutes",
    "StatusTransitionEngine",
    "TransitionListener",
]
