"""
Assessment gateway interface.

Severity scoring and resource planning are performed by an external AI
backend. The workflow depends only on this interface; every method is a
fallible remote call.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from erflow_core.models import (
    ConversationTurn,
    FirstAidInstructions,
    HospitalCapacity,
    PatientCase,
    ResourcePlan,
    SeverityAssessment,
    Transcription,
)


class AssessmentGateway(ABC):
    """Abstract base class for assessment gateways"""

    @abstractmethod
    async def assess_severity(
        self,
        symptoms: str,
        video_ref: Optional[str] = None,
        conversation_history: Sequence[ConversationTurn] = (),
        bleeding: Optional[str] = None,
    ) -> SeverityAssessment:
        """
        Score a patient's severity, or ask one clarifying question.

        Args:
            symptoms: Free-text symptom description
            video_ref: Reference to the intake video
            conversation_history: Clarification exchanges so far
            bleeding: 'Yes' | 'No' as reported at intake

        Returns:
            SeverityAssessment (needs_more_info=True carries a question)

        Raises:
            GatewayError: On any failed call
        """
        pass

    @abstractmethod
    async def plan_resources(
        self,
        case: PatientCase,
        hospital_capacity: HospitalCapacity,
    ) -> ResourcePlan:
        """
        Produce a hospital preparation plan for an inbound patient.

        Raises:
            GatewayError: On any failed call
        """
        pass

    @abstractmethod
    async def first_aid_instructions(self, symptoms: str) -> FirstAidInstructions:
        """Lay first-aid guidance for bystanders waiting for the ambulance"""
        pass

    @abstractmethod
    async def transcribe(self, audio_base64: str) -> Transcription:
        """Speech-to-text for spoken symptom descriptions"""
        pass
