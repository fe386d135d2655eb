"""Interactive triage session.

The gateway may answer a severity request with a clarifying question instead
of a score. A TriageSession keeps the symptoms and the clarification history
so each round-trip carries the whole conversation.
"""

import logging
from typing import List, Optional

from erflow_core.clients import AssessmentGateway
from erflow_core.models import ConversationTurn, SeverityAssessment

logger = logging.getLogger(__name__)


class TriageSession:
    """One patient's intake conversation with the severity assessor.

    Usage:
        session = TriageSession(gateway, patient_name="Jane Doe", nhs_number="943 476 5919",
                                symptoms="chest pain", video_ref="chest_pain.mp4")
        assessment = await session.assess()
        while assessment.needs_more_info:
            session.answer(input(assessment.question))
            assessment = await session.assess()
    """

    def __init__(
        self,
        gateway: AssessmentGateway,
        patient_name: str,
        nhs_number: str,
        symptoms: str,
        video_ref: Optional[str] = None,
        bleeding: Optional[str] = None,
    ):
        self.gateway = gateway
        self.patient_name = patient_name
        self.nhs_number = nhs_number
        self.symptoms = symptoms
        self.video_ref = video_ref
        self.bleeding = bleeding
        self.history: List[ConversationTurn] = []
        self.pending_question: Optional[str] = None
        self.result: Optional[SeverityAssessment] = None

    @property
    def is_complete(self) -> bool:
        return self.result is not None

    async def assess(self) -> SeverityAssessment:
        """Send the conversation so far to the gateway.

        A question in the answer is recorded in the history and must be
        answered with answer() before assessing again. Gateway errors
        propagate and leave the session unchanged.

        Raises:
            RuntimeError: If a previous question is still unanswered
            GatewayError: On a failed call
        """
        if self.pending_question is not None:
            raise RuntimeError("Answer the pending question before assessing again")

        assessment = await self.gateway.assess_severity(
            self.symptoms,
            video_ref=self.video_ref,
            conversation_history=list(self.history),
            bleeding=self.bleeding,
        )

        if assessment.needs_more_info:
            self.pending_question = assessment.question
            self.history.append(ConversationTurn(role="assistant", content=assessment.question))
            logger.info(f"[Triage] {self.nhs_number}: clarification requested")
        else:
            self.result = assessment
            logger.info(f"[Triage] {self.nhs_number}: severity {assessment.severity}/10")
        return assessment

    def answer(self, text: str) -> None:
        """Record the patient's reply to the pending question.

        Raises:
            RuntimeError: If no question is pending
            ValueError: If the reply is blank
        """
        if self.pending_question is None:
            raise RuntimeError("No question is pending")
        if not text.strip():
            raise ValueError("Answer cannot be empty")
        self.history.append(ConversationTurn(role="user", content=text.strip()))
        self.pending_question = None
