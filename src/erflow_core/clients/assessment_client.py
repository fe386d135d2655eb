"""HTTP client for the AI assessment gateway."""

import logging
from typing import Any, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from erflow_core.clients.base import BaseServiceClient
from erflow_core.clients.gateway import AssessmentGateway
from erflow_core.config import WorkflowSettings, get_settings
from erflow_core.exceptions import GatewayUnavailableError, InvalidGatewayResponseError
from erflow_core.models import (
    ConversationTurn,
    FirstAidInstructions,
    HospitalCapacity,
    PatientCase,
    PatientSummary,
    ResourcePlan,
    ResourcePlanRequest,
    SeverityAssessment,
    SeverityAssessmentRequest,
    Transcription,
)
from erflow_core.utils import RateLimiter, service_startup_retry

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TRIAGE_FUNCTION = "triage-assessment"
PLANNING_FUNCTION = "resource-planning"
FIRST_AID_FUNCTION = "first-aid-instructions"
SPEECH_FUNCTION = "speech-to-text"


class AssessmentGatewayClient(BaseServiceClient, AssessmentGateway):
    """Async HTTP client for the gateway's triage, planning and auxiliary functions.

    No call is retried automatically. Failures raise GatewayError subclasses
    and leave retry decisions to the user.

    Usage:
        client = AssessmentGatewayClient.from_settings()
        assessment = await client.assess_severity("crushing chest pain", "chest_pain.mp4")
    """

    def __init__(
        self,
        base_url: str = "http://localhost:54321",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            rate_limiter=rate_limiter,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[WorkflowSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "AssessmentGatewayClient":
        """Build a client (with local rate limiting) from WorkflowSettings."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.gateway_url,
            api_key=settings.gateway_api_key,
            timeout=settings.gateway_timeout,
            rate_limiter=RateLimiter(
                limit=settings.gateway_rate_limit,
                window_seconds=settings.gateway_rate_window,
            ),
            transport=transport,
        )

    @staticmethod
    def _parse(function_name: str, model: Type[M], data: Any) -> M:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"[Gateway] {function_name} returned an unusable body: {e}")
            raise InvalidGatewayResponseError(
                f"{function_name} returned an unusable {model.__name__}"
            ) from e

    async def assess_severity(
        self,
        symptoms: str,
        video_ref: Optional[str] = None,
        conversation_history: Sequence[ConversationTurn] = (),
        bleeding: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> SeverityAssessment:
        """Score severity 1-10 or get a clarifying question.

        Args:
            symptoms: Free-text symptom description
            video_ref: Reference to the intake video
            conversation_history: Clarification exchanges so far
            bleeding: 'Yes' | 'No' as reported at intake
            correlation_id: Optional correlation ID for request tracing

        Returns:
            SeverityAssessment
        """
        request = SeverityAssessmentRequest(
            symptoms=symptoms,
            video_filename=video_ref,
            bleeding=bleeding,
            conversation_history=list(conversation_history),
        )
        logger.info(f"[Gateway] Requesting severity assessment (video: {video_ref})")
        data = await self._post_json(
            TRIAGE_FUNCTION,
            request.model_dump(mode="json", by_alias=True, exclude_none=True),
            correlation_id=correlation_id,
        )
        assessment = self._parse(TRIAGE_FUNCTION, SeverityAssessment, data)
        if assessment.needs_more_info:
            logger.info("[Gateway] Assessment needs more information")
        else:
            logger.info(f"[Gateway] Assessment complete - severity {assessment.severity}")
        return assessment

    async def plan_resources(
        self,
        case: PatientCase,
        hospital_capacity: HospitalCapacity,
        correlation_id: Optional[str] = None,
    ) -> ResourcePlan:
        """Request a hospital preparation plan for ``case``.

        Args:
            case: Inbound patient case
            hospital_capacity: Current receiving-hospital occupancy
            correlation_id: Optional correlation ID for request tracing

        Returns:
            ResourcePlan
        """
        request = ResourcePlanRequest(
            patient=PatientSummary.from_case(case),
            hospital_capacity=hospital_capacity,
        )
        logger.info(f"[Gateway] Requesting resource plan for {case.case_id} (severity {case.severity})")
        data = await self._post_json(
            PLANNING_FUNCTION,
            request.model_dump(mode="json", by_alias=True),
            correlation_id=correlation_id,
        )
        return self._parse(PLANNING_FUNCTION, ResourcePlan, data)

    async def first_aid_instructions(
        self, symptoms: str, correlation_id: Optional[str] = None
    ) -> FirstAidInstructions:
        """Bystander first-aid guidance for ``symptoms``."""
        data = await self._post_json(
            FIRST_AID_FUNCTION,
            {"symptoms": symptoms},
            correlation_id=correlation_id,
        )
        return self._parse(FIRST_AID_FUNCTION, FirstAidInstructions, data)

    async def transcribe(
        self, audio_base64: str, correlation_id: Optional[str] = None
    ) -> Transcription:
        """Transcribe base64-encoded audio."""
        data = await self._post_json(
            SPEECH_FUNCTION,
            {"audio": audio_base64},
            correlation_id=correlation_id,
        )
        return self._parse(SPEECH_FUNCTION, Transcription, data)

    async def ping(self) -> bool:
        """Send a CORS preflight to the triage function.

        Raises:
            GatewayUnavailableError: If the gateway is unreachable or answers 5xx
        """
        try:
            async with self._get_client() as client:
                response = await client.options(self._url(TRIAGE_FUNCTION))
        except httpx.TransportError as e:
            raise GatewayUnavailableError(f"Gateway unreachable: {e}") from e
        if response.status_code >= 500:
            raise GatewayUnavailableError(f"Gateway preflight failed with HTTP {response.status_code}")
        return True

    @service_startup_retry
    async def verify_connection(self) -> bool:
        """Startup readiness check, retried with backoff while the gateway is down."""
        await self.ping()
        logger.info(f"[Gateway] Connection to {self.base_url} verified")
        return True
