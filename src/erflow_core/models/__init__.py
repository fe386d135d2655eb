"""
Data models for ER-Flow.

Pydantic models for patient cases, their lifecycle and the payloads
exchanged with the external assessment gateway.
"""

from erflow_core.models.common import ensure_utc, utc_now
from erflow_core.models.patient import (
    # Core case model
    PatientCase,
    PatientStatus,
    PatientStatusTransition,
    EN_ROUTE_STATUSES,
    VALID_TRANSITIONS,
    is_valid_transition,

    # Supporting models
    ResourcePlan,
    AmbulanceUpdate,
)
from erflow_core.models.assessment import (
    # Severity assessment
    ConversationTurn,
    SeverityAssessmentRequest,
    SeverityAssessment,

    # Resource planning
    HospitalCapacity,
    PatientSummary,
    ResourcePlanRequest,

    # Auxiliary
    FirstAidInstructions,
    Transcription,
    RateLimitBody,

    # Engine events
    TransitionEvent,
)

__all__ = [
    # Time helpers
    "ensure_utc", "utc_now",
    # Core case
    "PatientCase", "PatientStatus", "PatientStatusTransition",
    "EN_ROUTE_STATUSES", "VALID_TRANSITIONS", "is_valid_transition",
    # Supporting
    "ResourcePlan", "AmbulanceUpdate",
    # Gateway payloads
    "ConversationTurn", "SeverityAssessmentRequest", "SeverityAssessment",
    "HospitalCapacity", "PatientSummary", "ResourcePlanRequest",
    "FirstAidInstructions", "Transcription", "RateLimitBody",
    # Events
    "TransitionEvent",
]
