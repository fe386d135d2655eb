"""Workflow actions: intake, dispatch, crew updates and plan approval."""

from .triage import TriageSession
from .workflow import EmergencyWorkflow

__all__ = [
    "EmergencyWorkflow",
    "TriageSession",
]
