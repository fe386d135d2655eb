"""User-initiated workflow actions.

These are the external edges of the status graph: intake, dispatch, crew
updates that trigger resource planning, and clinician approval. Engine-driven
edges live in erflow_core.engine.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from erflow_core.clients import AssessmentGateway
from erflow_core.config import WorkflowSettings, get_settings
from erflow_core.exceptions import GatewayError, InvalidTransition
from erflow_core.models import (
    AmbulanceUpdate,
    HospitalCapacity,
    PatientCase,
    PatientStatus,
    utc_now,
)
from erflow_core.services.triage import TriageSession
from erflow_core.store import PatientStore
from erflow_core.views import estimated_wait_minutes, remote_queue

logger = logging.getLogger(__name__)


class EmergencyWorkflow:
    """Explicit mutations requested by patients, crews and clinicians.

    Every change is a whole-record replace through the store. Gateway calls
    run with the case marked as pending, so the engine leaves it alone until
    the answer is written back; a failed call writes nothing and re-raises.

    Usage:
        workflow = EmergencyWorkflow(store, gateway)
        case = workflow.register_patient("Jane Doe", "943 476 5919", severity=9, dispatch=True)
        case = await workflow.send_crew_update(case.case_id, "Vitals unstable")
        case = workflow.approve_plan(case.case_id)
    """

    def __init__(
        self,
        store: PatientStore,
        gateway: AssessmentGateway,
        settings: Optional[WorkflowSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._clock = clock

    def requires_dispatch(self, severity: int) -> bool:
        """High-severity patients get an ambulance instead of a remote queue slot."""
        return severity >= self.settings.high_severity_threshold

    def remote_wait_minutes(self, severity: int) -> int:
        """Wait estimate for a new remote patient behind the current queue."""
        return estimated_wait_minutes(severity, len(remote_queue(self.store.all())))

    def hospital_capacity(self) -> HospitalCapacity:
        return HospitalCapacity(
            current=self.settings.hospital_capacity,
            max=self.settings.hospital_max_capacity,
        )

    # ============================================================
    # Intake & dispatch
    # ============================================================
    def register_patient(
        self,
        patient_name: str,
        nhs_number: str,
        severity: int,
        triage_notes: str = "",
        symptom_description: str = "",
        video_filename: Optional[str] = None,
        dispatch: bool = False,
        eta_minutes: Optional[int] = None,
    ) -> PatientCase:
        """Create a case, either waiting remotely or with an ambulance dispatched.

        Args:
            dispatch: Create directly in AMBULANCE_DISPATCHED with dispatch_timestamp = now
            eta_minutes: Dispatch ETA (default: settings.default_eta_minutes)

        Returns:
            The stored case
        """
        now = self._clock()
        fields = dict(
            patient_name=patient_name,
            nhs_number=nhs_number,
            severity=severity,
            triage_notes=triage_notes,
            symptom_description=symptom_description,
            video_filename=video_filename,
            status_entered_at=now,
            created_at=now,
        )
        if dispatch:
            eta = self._eta(eta_minutes)
            fields.update(
                status=PatientStatus.AMBULANCE_DISPATCHED,
                dispatch_timestamp=now,
                eta_minutes=eta,
                eta_total_minutes=eta,
            )

        queue_length = len(remote_queue(self.store.all()))
        case = self.store.add(PatientCase(**fields))
        if dispatch:
            logger.info(
                f"[Workflow] High-severity event ({nhs_number}), severity {severity}: "
                f"ambulance dispatched, ETA {case.eta_minutes} min"
            )
        else:
            logger.info(
                f"[Workflow] Registered {nhs_number} in remote queue, severity {severity}, "
                f"approximate wait {estimated_wait_minutes(severity, queue_length)} min"
            )
        return case

    def register_from_assessment(
        self,
        session: TriageSession,
        dispatch: Optional[bool] = None,
        eta_minutes: Optional[int] = None,
    ) -> PatientCase:
        """Register the patient of a completed triage session.

        Args:
            session: Session whose assessment is final
            dispatch: Override the severity-based dispatch decision

        Raises:
            ValueError: If the session has no final assessment
        """
        if not session.is_complete:
            raise ValueError("Triage session has no final assessment")
        assessment = session.result
        if dispatch is None:
            dispatch = self.requires_dispatch(assessment.severity)
        return self.register_patient(
            patient_name=session.patient_name,
            nhs_number=session.nhs_number,
            severity=assessment.severity,
            triage_notes=assessment.triage_notes,
            symptom_description=session.symptoms,
            video_filename=session.video_ref,
            dispatch=dispatch,
            eta_minutes=eta_minutes,
        )

    def dispatch_ambulance(self, case_id: str, eta_minutes: Optional[int] = None) -> PatientCase:
        """Send an ambulance to a remotely waiting patient.

        Raises:
            NotFoundError: If case_id is unknown
            InvalidTransition: If the case is not WAITING_REMOTE
        """
        eta = self._eta(eta_minutes)
        with self.store.locked():
            case = self.store.get(case_id)
            now = self._clock()
            updated = case.transitioned(
                PatientStatus.AMBULANCE_DISPATCHED,
                at=now,
                triggered_by="dispatch",
                reason="Ambulance dispatched",
                dispatch_timestamp=case.dispatch_timestamp or now,
                eta_minutes=eta,
                eta_total_minutes=eta,
            )
            stored = self.store.replace(case_id, updated)

        logger.info(f"[Workflow] Ambulance dispatched for {case.nhs_number}, ETA {eta} min")
        return stored

    # ============================================================
    # Crew updates & resource planning
    # ============================================================
    async def send_crew_update(
        self,
        case_id: str,
        text: str,
        attachment: Optional[str] = None,
        hospital_capacity: Optional[HospitalCapacity] = None,
    ) -> PatientCase:
        """Append a crew update; for high-severity dispatches, request a resource plan.

        When a plan is requested, the update, the plan and the move to
        AWAITING_PLAN_APPROVAL are written together once the gateway answers.

        Raises:
            NotFoundError: If case_id is unknown
            ValueError: If no ambulance is active for the case
            GatewayError: If the planning call fails (nothing is written)
        """
        update = AmbulanceUpdate(timestamp=self._clock(), text=text, attachment=attachment)
        case = self.store.get(case_id)
        if not case.status.is_dispatched or case.is_terminal:
            raise ValueError(f"{case_id}: no active ambulance ({case.status.value})")

        logger.info(f"[Workflow] Crew update for {case.nhs_number}: {update.text!r}")

        needs_plan = (
            case.status == PatientStatus.AMBULANCE_DISPATCHED
            and case.resource_plan is None
            and self.requires_dispatch(case.severity)
        )
        if not needs_plan:
            with self.store.locked():
                current = self.store.get(case_id)
                return self.store.replace(
                    case_id,
                    current.revised(ambulance_updates=[*current.ambulance_updates, update]),
                )

        capacity = hospital_capacity or self.hospital_capacity()
        with self.store.external_call(case_id):
            briefing = case.revised(ambulance_updates=[*case.ambulance_updates, update])
            try:
                plan = await self.gateway.plan_resources(briefing, capacity)
            except GatewayError as e:
                logger.error(f"[Workflow] Resource planning failed for {case.nhs_number}: {e}")
                raise

            with self.store.locked():
                current = self.store.get(case_id)
                updates = [*current.ambulance_updates, update]
                if current.status != PatientStatus.AMBULANCE_DISPATCHED:
                    logger.warning(
                        f"[Workflow] {case_id} moved to {current.status.value} during planning; "
                        f"keeping the update, discarding the plan"
                    )
                    return self.store.replace(case_id, current.revised(ambulance_updates=updates))

                updated = current.transitioned(
                    PatientStatus.AWAITING_PLAN_APPROVAL,
                    at=self._clock(),
                    triggered_by="crew_update",
                    reason="High-severity crew update, resource plan requires approval",
                    ambulance_updates=updates,
                    resource_plan=plan,
                )
                stored = self.store.replace(case_id, updated)

        logger.info(f"[Workflow] Resource plan for {case.nhs_number} awaiting clinician approval")
        return stored

    # ============================================================
    # Clinician approval
    # ============================================================
    def approve_plan(self, case_id: str, edited_plan_text: Optional[str] = None) -> PatientCase:
        """Approve the proposed plan, optionally with clinician edits.

        Raises:
            NotFoundError: If case_id is unknown
            InvalidTransition: If the case is not awaiting approval or has no plan
            ValueError: If the edited plan text is blank
        """
        with self.store.locked():
            case = self.store.get(case_id)
            if case.status != PatientStatus.AWAITING_PLAN_APPROVAL or case.resource_plan is None:
                raise InvalidTransition(f"{case_id}: no plan awaiting approval ({case.status.value})")

            plan = case.resource_plan
            if edited_plan_text is not None:
                if not edited_plan_text.strip():
                    raise ValueError("Edited plan text cannot be empty")
                plan = plan.model_copy(update={"plan_text": edited_plan_text.strip()})

            updated = case.transitioned(
                PatientStatus.PREP_READY,
                at=self._clock(),
                triggered_by="clinician",
                reason="Resource plan approved" + (" with edits" if edited_plan_text else ""),
                resource_plan=plan,
            )
            stored = self.store.replace(case_id, updated)

        logger.info(f"[Workflow] Plan for {case.nhs_number} approved by staff. Notifying teams.")
        return stored

    def _eta(self, eta_minutes: Optional[int]) -> int:
        eta = self.settings.default_eta_minutes if eta_minutes is None else eta_minutes
        if eta < 0:
            raise ValueError("eta_minutes must be >= 0")
        return eta
