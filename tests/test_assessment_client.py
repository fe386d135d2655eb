"""Tests for the HTTP assessment gateway client."""

import asyncio
import json

import httpx
import pytest

from erflow_core.clients import AssessmentGatewayClient
from erflow_core.config import WorkflowSettings
from erflow_core.exceptions import (
    GatewayUnavailableError,
    InvalidGatewayResponseError,
    RateLimitedError,
)
from erflow_core.models import ConversationTurn, HospitalCapacity, PatientStatus
from erflow_core.utils import RateLimiter, create_custom_retry

from conftest import T0, make_case

PLAN_BODY = {
    "planText": "Trauma bay 1. Activate major haemorrhage protocol.",
    "entrance": "Ambulance Bay B",
    "roomAssignment": "Trauma 1",
    "specialistsNeeded": ["Trauma surgeon", "Anaesthetist"],
    "equipmentRequired": ["Rapid infuser"],
    "staffToContact": ["Blood bank"],
    "areasToClear": ["Corridor B"],
}


class Recorder:
    """MockTransport handler returning canned responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last_body(self):
        return json.loads(self.requests[-1].content)


def make_client(handler, **kwargs) -> AssessmentGatewayClient:
    return AssessmentGatewayClient(
        base_url="https://gateway.test/",
        api_key="anon-key",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestAssessSeverity:
    """Tests for the triage-assessment function."""

    def test_success(self):
        handler = Recorder(httpx.Response(200, json={"severity": 9, "triageNotes": "Suspected MI"}))
        client = make_client(handler)

        assessment = asyncio.run(client.assess_severity(
            "crushing chest pain",
            video_ref="chest_pain.mp4",
            conversation_history=[ConversationTurn(role="assistant", content="Any sweating?")],
            bleeding="No",
        ))

        assert assessment.severity == 9
        assert assessment.triage_notes == "Suspected MI"
        assert assessment.is_final

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/functions/v1/triage-assessment"
        assert request.headers["Authorization"] == "Bearer anon-key"
        assert request.headers["apikey"] == "anon-key"
        assert handler.last_body == {
            "symptoms": "crushing chest pain",
            "videoFilename": "chest_pain.mp4",
            "bleeding": "No",
            "conversationHistory": [{"role": "assistant", "content": "Any sweating?"}],
        }

    def test_clarifying_question(self):
        handler = Recorder(httpx.Response(200, json={
            "severity": 5, "needsMoreInfo": True, "question": "Is the pain radiating?",
        }))
        assessment = asyncio.run(make_client(handler).assess_severity("chest pain"))
        assert assessment.needs_more_info
        assert assessment.question == "Is the pain radiating?"

    def test_more_info_without_question_is_final(self):
        """A follow-up flag with nothing to ask is taken as the final severity."""
        handler = Recorder(httpx.Response(200, json={
            "severity": 6, "triageNotes": "x", "needsMoreInfo": True,
        }))
        assessment = asyncio.run(make_client(handler).assess_severity("headache"))
        assert assessment.is_final
        assert assessment.severity == 6
        assert assessment.triage_notes == "x"

    def test_correlation_id_forwarded(self):
        handler = Recorder(httpx.Response(200, json={"severity": 3}))
        asyncio.run(make_client(handler).assess_severity("sprain", correlation_id="req-42"))
        assert handler.requests[0].headers["X-Correlation-ID"] == "req-42"

    def test_no_auth_headers_without_key(self):
        handler = Recorder(httpx.Response(200, json={"severity": 3}))
        client = AssessmentGatewayClient(base_url="https://gateway.test", transport=httpx.MockTransport(handler))
        asyncio.run(client.assess_severity("sprain"))
        assert "Authorization" not in handler.requests[0].headers
        assert "apikey" not in handler.requests[0].headers


class TestErrorMapping:
    """HTTP and transport failures map onto the gateway error taxonomy."""

    def test_rate_limited_with_header(self):
        handler = Recorder(httpx.Response(
            429,
            json={"error": "Rate limit exceeded. Please try again later.", "retryAfter": 60},
            headers={"Retry-After": "45"},
        ))
        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(make_client(handler).assess_severity("chest pain"))
        assert exc_info.value.retry_after == 45.0

    def test_rate_limited_body_only(self):
        handler = Recorder(httpx.Response(429, json={"error": "Rate limit exceeded", "retryAfter": 30}))
        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(make_client(handler).assess_severity("chest pain"))
        assert exc_info.value.retry_after == 30.0

    def test_server_error(self):
        handler = Recorder(httpx.Response(500, json={"error": "AI service error"}))
        with pytest.raises(GatewayUnavailableError) as exc_info:
            asyncio.run(make_client(handler).assess_severity("chest pain"))
        assert "AI service error" in str(exc_info.value)

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayUnavailableError):
            asyncio.run(make_client(handler).assess_severity("chest pain"))

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailableError):
            asyncio.run(make_client(handler).assess_severity("chest pain"))

    def test_client_error(self):
        handler = Recorder(httpx.Response(400, json={"error": "symptoms required"}))
        with pytest.raises(InvalidGatewayResponseError) as exc_info:
            asyncio.run(make_client(handler).assess_severity("chest pain"))
        assert "symptoms required" in str(exc_info.value)

    def test_non_json_body(self):
        handler = Recorder(httpx.Response(200, text="<html>Bad Gateway</html>"))
        with pytest.raises(InvalidGatewayResponseError):
            asyncio.run(make_client(handler).assess_severity("chest pain"))

    @pytest.mark.parametrize("body", [
        {"severity": 42},
        {"triageNotes": "no severity"},
        ["not", "an", "object"],
    ])
    def test_unusable_body(self, body):
        handler = Recorder(httpx.Response(200, json=body))
        with pytest.raises(InvalidGatewayResponseError):
            asyncio.run(make_client(handler).assess_severity("chest pain"))

    def test_local_rate_limit(self):
        """Requests beyond the local allowance never reach the gateway."""
        handler = Recorder(httpx.Response(200, json={"severity": 3}))
        client = make_client(handler, rate_limiter=RateLimiter(limit=1, window_seconds=60, clock=lambda: 0.0))

        asyncio.run(client.assess_severity("sprain"))
        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(client.assess_severity("sprain"))

        assert len(handler.requests) == 1
        assert exc_info.value.retry_after == 60


class TestPlanResources:
    """Tests for the resource-planning function."""

    def test_success(self):
        handler = Recorder(httpx.Response(200, json=PLAN_BODY))
        case = make_case(
            PatientStatus.AMBULANCE_DISPATCHED, severity=9, dispatched_at=T0, eta=8,
            triage_notes="Penetrating trauma",
        )

        plan = asyncio.run(make_client(handler).plan_resources(case, HospitalCapacity(current=12, max=20)))

        assert plan.entrance == "Ambulance Bay B"
        assert plan.specialists_needed == ["Trauma surgeon", "Anaesthetist"]
        assert plan.areas_to_clear == ["Corridor B"]

        assert handler.requests[0].url.path == "/functions/v1/resource-planning"
        body = handler.last_body
        assert body["hospitalCapacity"] == {"current": 12, "max": 20}
        assert body["patient"]["nhs_number"] == case.nhs_number
        assert body["patient"]["severity"] == 9
        assert body["patient"]["status"] == "ambulance_dispatched"
        assert body["patient"]["eta_minutes"] == 8

    def test_plan_missing_entrance(self):
        handler = Recorder(httpx.Response(200, json={"planText": "Resus"}))
        case = make_case(severity=9)
        with pytest.raises(InvalidGatewayResponseError):
            asyncio.run(make_client(handler).plan_resources(case, HospitalCapacity(current=1, max=20)))


class TestAuxiliaryFunctions:
    """First aid and speech-to-text."""

    def test_first_aid_instructions(self):
        handler = Recorder(httpx.Response(200, json={"instructions": "Apply firm pressure to the wound."}))
        guidance = asyncio.run(make_client(handler).first_aid_instructions("bleeding forearm"))
        assert guidance.instructions == "Apply firm pressure to the wound."
        assert handler.requests[0].url.path == "/functions/v1/first-aid-instructions"
        assert handler.last_body == {"symptoms": "bleeding forearm"}

    def test_transcribe(self):
        handler = Recorder(httpx.Response(200, json={"text": "my chest hurts"}))
        transcript = asyncio.run(make_client(handler).transcribe("UklGRiQAAABXQVZF"))
        assert transcript.text == "my chest hurts"
        assert handler.requests[0].url.path == "/functions/v1/speech-to-text"
        assert handler.last_body == {"audio": "UklGRiQAAABXQVZF"}


class TestConnectivity:
    """Startup readiness probes."""

    def test_ping(self):
        handler = Recorder(httpx.Response(200))
        assert asyncio.run(make_client(handler).ping())
        assert handler.requests[0].method == "OPTIONS"

    def test_ping_server_error(self):
        handler = Recorder(httpx.Response(503))
        with pytest.raises(GatewayUnavailableError):
            asyncio.run(make_client(handler).ping())

    def test_verify_connection(self):
        handler = Recorder(httpx.Response(200))
        assert asyncio.run(make_client(handler).verify_connection())

    def test_custom_retry_recovers(self):
        """Unavailable errors are retried until the gateway answers."""
        handler = Recorder(httpx.Response(503), httpx.Response(503), httpx.Response(200))
        client = make_client(handler)
        quick_probe = create_custom_retry(max_attempts=3, min_wait=0, max_wait=0)

        assert asyncio.run(quick_probe(client.ping)())
        assert len(handler.requests) == 3

    def test_custom_retry_gives_up(self):
        handler = Recorder(httpx.Response(503))
        client = make_client(handler)
        quick_probe = create_custom_retry(max_attempts=2, min_wait=0, max_wait=0)

        with pytest.raises(GatewayUnavailableError):
            asyncio.run(quick_probe(client.ping)())
        assert len(handler.requests) == 2

    def test_rate_limits_are_not_retried(self):
        handler = Recorder(httpx.Response(429, json={"error": "slow down", "retryAfter": 5}))
        client = make_client(handler)
        quick_probe = create_custom_retry(max_attempts=3, min_wait=0, max_wait=0)

        with pytest.raises(RateLimitedError):
            asyncio.run(quick_probe(client.assess_severity)("chest pain"))
        assert len(handler.requests) == 1


class TestFromSettings:
    def test_builds_limited_client(self):
        settings = WorkflowSettings(
            gateway_url="https://project.supabase.co",
            gateway_api_key="secret",
            gateway_timeout=5.0,
            gateway_rate_limit=5,
        )
        client = AssessmentGatewayClient.from_settings(settings)
        assert client.base_url == "https://project.supabase.co"
        assert client.api_key == "secret"
        assert client.timeout == 5.0
        assert client.rate_limiter.limit == 5
        assert client.rate_limiter.window_seconds == 60.0
