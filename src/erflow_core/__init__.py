"""ER-Flow Core

Patient case store, timed status transition engine, assessment gateway client
and dashboard projections for the ER-Flow emergency-care workflow.
"""

__version__ = "0.1.0"

# Export models and store first (no gateway dependencies)
from erflow_core.models import (
    PatientCase, PatientStatus, PatientStatusTransition,
    ResourcePlan, AmbulanceUpdate, SeverityAssessment,
    HospitalCapacity, TransitionEvent,
)
from erflow_core.store import PatientStore
from erflow_core.engine import StatusTransitionEngine
from erflow_core.config import (
    DwellTimings,
    WorkflowSettings,
    get_settings,
    reset_settings,
)

_LAZY = {
    "AssessmentGateway": "erflow_core.clients",
    "AssessmentGatewayClient": "erflow_core.clients",
    "EmergencyWorkflow": "erflow_core.services",
    "TriageSession": "erflow_core.services",
}


# Clients pull in httpx; import them on first use
def __getattr__(name):
    """Lazy import for gateway clients and workflow services."""
    if name in _LAZY:
        import importlib
        return getattr(importlib.import_module(_LAZY[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    # Models
    "PatientCase", "PatientStatus", "PatientStatusTransition",
    "ResourcePlan", "AmbulanceUpdate", "SeverityAssessment",
    "HospitalCapacity", "TransitionEvent",
    # Core
    "PatientStore",
    "StatusTransitionEngine",
    # Configuration
    "DwellTimings",
    "WorkflowSettings",
    "get_settings",
    "reset_settings",
    # Lazy loaded
    "AssessmentGateway",
    "AssessmentGatewayClient",
    "EmergencyWorkflow",
    "TriageSession",
]
