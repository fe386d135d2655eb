"""Patient case data models - timed emergency-care workflow.

Key Models:
- PatientStatus: Lifecycle status (WAITING_REMOTE → ... → IN_OPERATION_THEATRE)
- PatientStatusTransition: Audit record of one status change
- PatientCase: Root entity, one patient's journey from triage to theatre
- ResourcePlan: Hospital preparation plan produced by the assessment gateway
- AmbulanceUpdate: Crew-to-hospital communication

Architecture:
- Records are values: every change produces a new PatientCase
- The Entity Store is the only writer
- Status moves forward only, along the graph in is_valid_transition()
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from erflow_core.exceptions import InvalidTransition
from erflow_core.models.common import ensure_utc, utc_now


# ============================================================
# Status & Lifecycle Models
# ============================================================

class PatientStatus(str, Enum):
    """
    Patient case lifecycle status, declared in pipeline order.

    Lifecycle Flow:
      WAITING_REMOTE → AMBULANCE_DISPATCHED → AWAITING_PLAN_APPROVAL → PREP_READY
                                           ↘ PREP_READY → IN_TRANSIT → ARRIVED
      AMBULANCE_DISPATCHED / PREP_READY / IN_TRANSIT → ARRIVED
      ARRIVED → MOVING_TO_THEATRE → IN_OPERATION_THEATRE (terminal)
    """

    WAITING_REMOTE = "waiting_remote"
    """Triaged remotely, waiting at home; no ambulance assigned."""

    AMBULANCE_DISPATCHED = "ambulance_dispatched"
    """Ambulance sent. dispatch_timestamp is the elapsed-time origin."""

    AWAITING_PLAN_APPROVAL = "awaiting_plan_approval"
    """Resource plan generated, waiting for a clinician to approve it."""

    PREP_READY = "prep_ready"
    """Hospital preparation in place."""

    IN_TRANSIT = "in_transit"
    """Ambulance en route to hospital with the patient."""

    ARRIVED = "arrived"
    """Ambulance at hospital. eta_minutes is 0."""

    MOVING_TO_THEATRE = "moving_to_theatre"
    """Patient being moved to the operating theatre."""

    IN_OPERATION_THEATRE = "in_operation_theatre"
    """
    TERMINAL STATE: patient in theatre.

    No engine-driven transition leaves this state.
    """

    @property
    def rank(self) -> int:
        """Position in the pipeline (0 = WAITING_REMOTE)"""
        return _PIPELINE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal"""
        return self == PatientStatus.IN_OPERATION_THEATRE

    @property
    def is_dispatched(self) -> bool:
        """Check if an ambulance has been sent for this case"""
        return self != PatientStatus.WAITING_REMOTE

    @property
    def is_en_route(self) -> bool:
        """Statuses whose ETA counts down towards arrival"""
        return self in EN_ROUTE_STATUSES


_PIPELINE_ORDER = list(PatientStatus)

EN_ROUTE_STATUSES = frozenset({
    PatientStatus.AMBULANCE_DISPATCHED,
    PatientStatus.PREP_READY,
    PatientStatus.IN_TRANSIT,
})

VALID_TRANSITIONS: Dict[PatientStatus, List[PatientStatus]] = {
    PatientStatus.WAITING_REMOTE: [PatientStatus.AMBULANCE_DISPATCHED],
    PatientStatus.AMBULANCE_DISPATCHED: [
        PatientStatus.AWAITING_PLAN_APPROVAL,
        PatientStatus.PREP_READY,
        PatientStatus.ARRIVED,
    ],
    PatientStatus.AWAITING_PLAN_APPROVAL: [PatientStatus.PREP_READY],
    PatientStatus.PREP_READY: [PatientStatus.IN_TRANSIT, PatientStatus.ARRIVED],
    PatientStatus.IN_TRANSIT: [PatientStatus.ARRIVED],
    PatientStatus.ARRIVED: [PatientStatus.MOVING_TO_THEATRE],
    PatientStatus.MOVING_TO_THEATRE: [PatientStatus.IN_OPERATION_THEATRE],
    PatientStatus.IN_OPERATION_THEATRE: [],  # Terminal
}


def is_valid_transition(from_status: PatientStatus, to_status: PatientStatus) -> bool:
    """
    Validate status transition against the workflow graph.

    Every edge moves forward in pipeline order; there are no backward edges
    and none out of IN_OPERATION_THEATRE.
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


class PatientStatusTransition(BaseModel):
    """
    Record of one status change.
    Provides the case's lifecycle trail.
    """

    from_status: PatientStatus = Field(description="Status before transition")

    to_status: PatientStatus = Field(description="Status after transition")

    triggered_at: datetime = Field(
        default_factory=utc_now,
        description="When transition occurred"
    )

    triggered_by: str = Field(
        default="system",
        description="Who triggered: an action name, or 'engine:<rule>' for automatic transitions"
    )

    reason: str = Field(default="", max_length=500)

    @model_validator(mode='after')
    def validate_transition(self):
        """Ensure transition is valid"""
        if not is_valid_transition(self.from_status, self.to_status):
            raise ValueError(f"Invalid transition: {self.from_status.value} → {self.to_status.value}")
        return self

    class Config:
        frozen = True


# ============================================================
# Supporting Models
# ============================================================

class ResourcePlan(BaseModel):
    """
    Hospital preparation plan for an inbound patient.

    Produced by the assessment gateway; the clinician may edit plan_text
    before approving it.
    """

    plan_text: str = Field(alias="planText", description="Full narrative plan")
    entrance: str = Field(description="Ambulance entrance to use")
    room_assignment: Optional[str] = Field(default=None, alias="roomAssignment")
    specialists_needed: List[str] = Field(default_factory=list, alias="specialistsNeeded")
    equipment_required: List[str] = Field(default_factory=list, alias="equipmentRequired")
    staff_to_contact: List[str] = Field(default_factory=list, alias="staffToContact")
    areas_to_clear: List[str] = Field(default_factory=list, alias="areasToClear")

    @field_validator(
        'specialists_needed', 'equipment_required', 'staff_to_contact', 'areas_to_clear',
        mode='before'
    )
    @classmethod
    def none_as_empty(cls, v):
        """Gateway sends null for lists it has nothing for"""
        return [] if v is None else v

    class Config:
        populate_by_name = True


class AmbulanceUpdate(BaseModel):
    """One crew-to-hospital message."""

    timestamp: datetime = Field(default_factory=utc_now)
    text: str = Field(min_length=1, max_length=4000)
    attachment: Optional[str] = Field(
        default=None,
        description="Reference to an attached video or file (opaque)"
    )

    @field_validator('text')
    @classmethod
    def text_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Update text cannot be empty")
        return v.strip()

    class Config:
        frozen = True


# ============================================================
# Patient Case
# ============================================================

class PatientCase(BaseModel):
    """
    Root patient entity.
    Represents one patient's journey from triage to the operating theatre.
    """

    # Identity (immutable)
    case_id: str = Field(
        default_factory=lambda: f"pt_{uuid4().hex[:12]}",
        description="Unique case identifier, never reused",
        min_length=1,
        max_length=64
    )

    patient_name: str = Field(min_length=1, max_length=200)

    nhs_number: str = Field(
        description="National health identifier",
        min_length=1,
        max_length=32
    )

    severity: int = Field(
        ge=1,
        le=10,
        description="Triage severity 1-10, fixed at creation"
    )

    # Status
    status: PatientStatus = Field(default=PatientStatus.WAITING_REMOTE)

    status_entered_at: datetime = Field(
        default_factory=utc_now,
        description="When the current status was entered (dwell-time origin)"
    )

    status_history: List[PatientStatusTransition] = Field(default_factory=list)

    # Clinical text
    triage_notes: str = Field(default="", max_length=8000)
    symptom_description: str = Field(default="", max_length=4000)
    video_filename: Optional[str] = None

    # Dispatch & ETA
    eta_minutes: Optional[int] = Field(
        default=None,
        ge=0,
        description="Minutes remaining to arrival, recomputed by the engine"
    )

    eta_total_minutes: Optional[int] = Field(
        default=None,
        ge=0,
        description="ETA estimate supplied at dispatch"
    )

    dispatch_timestamp: Optional[datetime] = Field(
        default=None,
        description="Set once when the ambulance is dispatched; never recomputed"
    )

    # Hospital side
    resource_plan: Optional[ResourcePlan] = None

    ambulance_updates: List[AmbulanceUpdate] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)

    # ============================================================
    # Computed Properties
    # ============================================================
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def latest_update(self) -> Optional[AmbulanceUpdate]:
        return self.ambulance_updates[-1] if self.ambulance_updates else None

    def dwell(self, now: datetime) -> timedelta:
        """Time spent in the current status as of ``now``."""
        return ensure_utc(now) - self.status_entered_at

    def elapsed_since_dispatch(self, now: datetime) -> Optional[timedelta]:
        """Time since dispatch, or None if never dispatched."""
        if self.dispatch_timestamp is None:
            return None
        return ensure_utc(now) - self.dispatch_timestamp

    # ============================================================
    # Revisions (records are never mutated in place)
    # ============================================================
    def revised(self, **changes: Any) -> "PatientCase":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return PatientCase.model_validate(data)

    def transitioned(
        self,
        to_status: PatientStatus,
        at: datetime,
        triggered_by: str = "system",
        reason: str = "",
        **changes: Any,
    ) -> "PatientCase":
        """
        Return a copy moved to ``to_status`` at ``at``.

        Raises:
            InvalidTransition: If the edge is not part of the workflow graph
        """
        if not is_valid_transition(self.status, to_status):
            raise InvalidTransition(
                f"{self.case_id}: cannot move {self.status.value} → {to_status.value}"
            )
        at = ensure_utc(at)
        record = PatientStatusTransition(
            from_status=self.status,
            to_status=to_status,
            triggered_at=at,
            triggered_by=triggered_by,
            reason=reason,
        )
        return self.revised(
            status=to_status,
            status_entered_at=at,
            status_history=[*self.status_history, record],
            **changes,
        )

    # ============================================================
    # Validation
    # ============================================================
    @field_validator('patient_name', 'nhs_number')
    @classmethod
    def identity_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Identity fields cannot be empty")
        return v.strip()

    @field_validator('status_entered_at', 'created_at', 'dispatch_timestamp')
    @classmethod
    def normalise_timezone(cls, v):
        return ensure_utc(v) if v is not None else v

    @field_validator('status_history')
    @classmethod
    def status_history_ordered(cls, v):
        """Ensure status history is chronologically ordered"""
        for earlier, later in zip(v, v[1:]):
            if earlier.triggered_at > later.triggered_at:
                raise ValueError("Status history must be chronologically ordered")
        return v

    class Config:
        validate_assignment = True
        use_enum_values = False
