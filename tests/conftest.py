"""Pytest fixtures for ER-Flow tests."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from erflow_core.clients import AssessmentGateway
from erflow_core.config import DwellTimings, WorkflowSettings
from erflow_core.engine import StatusTransitionEngine
from erflow_core.models import (
    FirstAidInstructions,
    PatientCase,
    PatientStatus,
    ResourcePlan,
    SeverityAssessment,
    Transcription,
)
from erflow_core.services import EmergencyWorkflow
from erflow_core.store import PatientStore

T0 = datetime(2025, 3, 14, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> datetime:
        self.now += timedelta(seconds=seconds, minutes=minutes)
        return self.now


class StubGateway(AssessmentGateway):
    """Scripted gateway recording every call."""

    def __init__(self):
        self.assessments: List[SeverityAssessment] = []
        self.plan = ResourcePlan(
            plan_text="Resus bay 2, stroke team on standby, CT cleared",
            entrance="Ambulance Bay A",
            room_assignment="Resus 2",
            specialists_needed=["Stroke consultant"],
            equipment_required=["CT scanner"],
        )
        self.error: Optional[Exception] = None
        self.on_plan = None
        self.assess_calls = []
        self.plan_calls = []

    async def assess_severity(self, symptoms, video_ref=None, conversation_history=(), bleeding=None):
        self.assess_calls.append(
            {"symptoms": symptoms, "video_ref": video_ref, "history": list(conversation_history)}
        )
        if self.error is not None:
            raise self.error
        return self.assessments.pop(0)

    async def plan_resources(self, case, hospital_capacity):
        self.plan_calls.append((case, hospital_capacity))
        if self.on_plan is not None:
            self.on_plan(case)
        if self.error is not None:
            raise self.error
        return self.plan

    async def first_aid_instructions(self, symptoms):
        return FirstAidInstructions(instructions="Stay calm. Help is on the way.")

    async def transcribe(self, audio_base64):
        return Transcription(text="chest pain")


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at T0."""
    return FakeClock()


@pytest.fixture
def settings() -> WorkflowSettings:
    """Default settings, independent of the environment."""
    return WorkflowSettings()


@pytest.fixture
def timings() -> DwellTimings:
    """Default dwell timings (3/2/5/8 seconds)."""
    return DwellTimings()


@pytest.fixture
def store() -> PatientStore:
    return PatientStore()


@pytest.fixture
def engine(store, timings, clock) -> StatusTransitionEngine:
    return StatusTransitionEngine(store, timings=timings, tick_interval=1.0, clock=clock)


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def workflow(store, gateway, settings, clock) -> EmergencyWorkflow:
    return EmergencyWorkflow(store, gateway, settings=settings, clock=clock)


def make_case(
    status: PatientStatus = PatientStatus.WAITING_REMOTE,
    severity: int = 5,
    dispatched_at: Optional[datetime] = None,
    eta: Optional[int] = None,
    **fields,
) -> PatientCase:
    """Build a case directly, bypassing workflow actions."""
    defaults = dict(
        patient_name="Alice Smith",
        nhs_number="943 476 5919",
        severity=severity,
        status=status,
        status_entered_at=dispatched_at or T0,
        created_at=T0,
        dispatch_timestamp=dispatched_at,
        eta_minutes=eta,
        eta_total_minutes=eta,
    )
    defaults.update(fields)
    return PatientCase(**defaults)


def tick_every_second(engine: StatusTransitionEngine, start: datetime, end: datetime):
    """Tick from start to end inclusive, yielding each tick time."""
    now = start
    while now <= end:
        engine.tick(now)
        yield now
        now += timedelta(seconds=1)
