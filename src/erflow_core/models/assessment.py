"""Request/response models for the External Assessment Gateway.

Field aliases follow the gateway's camelCase JSON; Python code uses the
snake_case names.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from erflow_core.models.patient import PatientCase, PatientStatus


# ============================================================
# Severity assessment
# ============================================================

class ConversationTurn(BaseModel):
    """One exchange in an interactive triage clarification."""

    role: Literal["user", "assistant"]
    content: str = Field(min_length=1, max_length=4000)


class SeverityAssessmentRequest(BaseModel):
    """Body posted to the triage-assessment endpoint."""

    symptoms: str = Field(min_length=1, max_length=2000)
    video_filename: Optional[str] = Field(default=None, alias="videoFilename")
    bleeding: Optional[str] = Field(
        default=None,
        description="'Yes' | 'No' as reported at intake"
    )
    conversation_history: List[ConversationTurn] = Field(
        default_factory=list,
        alias="conversationHistory"
    )

    class Config:
        populate_by_name = True


class SeverityAssessment(BaseModel):
    """Triage result; may ask one clarifying question instead of concluding."""

    severity: int = Field(ge=1, le=10)
    triage_notes: str = Field(default="", alias="triageNotes")
    needs_more_info: bool = Field(default=False, alias="needsMoreInfo")
    question: Optional[str] = None

    @model_validator(mode='after')
    def final_without_question(self):
        """Without a question to ask, the severity stands as the final answer"""
        if self.needs_more_info and not (self.question and self.question.strip()):
            self.needs_more_info = False
            self.question = None
        return self

    @property
    def is_final(self) -> bool:
        return not self.needs_more_info

    class Config:
        populate_by_name = True


# ============================================================
# Resource planning
# ============================================================

class HospitalCapacity(BaseModel):
    """Receiving hospital's current occupancy."""

    current: int = Field(ge=0)
    max: int = Field(gt=0)

    @property
    def occupancy(self) -> float:
        return self.current / self.max


class PatientSummary(BaseModel):
    """Patient fields shared with the planner (no status history)."""

    patient_name: str
    nhs_number: str
    severity: int
    status: PatientStatus
    triage_notes: str
    symptom_description: str
    eta_minutes: Optional[int] = None
    latest_update: Optional[str] = None

    @classmethod
    def from_case(cls, case: PatientCase) -> "PatientSummary":
        """Convert PatientCase domain model to the planner payload."""
        latest = case.latest_update
        return cls(
            patient_name=case.patient_name,
            nhs_number=case.nhs_number,
            severity=case.severity,
            status=case.status,
            triage_notes=case.triage_notes,
            symptom_description=case.symptom_description,
            eta_minutes=case.eta_minutes,
            latest_update=latest.text if latest else None,
        )


class ResourcePlanRequest(BaseModel):
    """Body posted to the resource-planning endpoint."""

    patient: PatientSummary
    hospital_capacity: HospitalCapacity = Field(alias="hospitalCapacity")

    class Config:
        populate_by_name = True


# ============================================================
# Auxiliary endpoints
# ============================================================

class FirstAidInstructions(BaseModel):
    """Lay first-aid guidance while the ambulance is on its way."""

    instructions: str = Field(min_length=1)


class Transcription(BaseModel):
    """Speech-to-text result."""

    text: str


class RateLimitBody(BaseModel):
    """Error body returned with HTTP 429."""

    error: str = ""
    retry_after: Optional[float] = Field(default=None, alias="retryAfter")

    class Config:
        populate_by_name = True


# ============================================================
# Engine events
# ============================================================

class TransitionEvent(BaseModel):
    """Structured record of one engine-driven status change."""

    case_id: str
    patient_name: str
    nhs_number: str
    from_status: PatientStatus
    to_status: PatientStatus
    at: datetime
    rule: str

    class Config:
        frozen = True
