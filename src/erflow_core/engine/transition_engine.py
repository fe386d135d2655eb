"""Status Transition Engine.

A single scheduler loop that, on every tick, inspects each case in the store,
recomputes its ETA and applies the first matching transition rule. Each
rule's dwell guard sets its effective period, so one 1-second loop replaces
the per-rule timers of a naive implementation.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from pydantic import ValidationError

from erflow_core.config import DwellTimings, WorkflowSettings, get_settings
from erflow_core.engine.rules import DEFAULT_RULES, TransitionRule, build_rule_table, remaining_eta_minutes
from erflow_core.exceptions import ERFlowError, MalformedCaseError
from erflow_core.models import PatientCase, PatientStatus, TransitionEvent, ensure_utc, utc_now
from erflow_core.store import PatientStore

logger = logging.getLogger(__name__)

TransitionListener = Callable[[TransitionEvent], None]


class StatusTransitionEngine:
    """Advances patient cases along the workflow as time passes.

    The engine is the only automatic writer to the store. It never raises for
    per-case data problems: a malformed case is logged and retried next tick.

    Usage:
        engine = StatusTransitionEngine(store)
        engine.add_listener(lambda event: print(event.to_status))
        engine.start()      # inside a running event loop
        ...
        await engine.stop()

    Tests drive it directly:
        events = engine.tick(now=some_datetime)
    """

    def __init__(
        self,
        store: PatientStore,
        rules: Iterable[TransitionRule] = DEFAULT_RULES,
        timings: Optional[DwellTimings] = None,
        tick_interval: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[WorkflowSettings] = None,
    ):
        """Initialize engine.

        Args:
            store: Entity Store to advance
            rules: Transition rules (default: arrival, plan_ready, depart, handover, theatre)
            timings: Dwell timings (default: from settings)
            tick_interval: Seconds between ticks in run() (default: from settings)
            clock: Source of the current time
            settings: Settings to read defaults from (default: global settings)
        """
        if timings is None or tick_interval is None:
            settings = settings or get_settings()
        self.store = store
        self.timings = timings or settings.dwell
        self.tick_interval = tick_interval or settings.tick_interval
        self._rules = build_rule_table(rules)
        self._clock = clock
        self._listeners: List[TransitionListener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

        logger.info(
            f"[Engine] Initialized: tick={self.tick_interval}s, timings={self.timings}"
        )

    # ============================================================
    # Observability
    # ============================================================
    def add_listener(self, listener: TransitionListener) -> None:
        """Register a callback invoked with every TransitionEvent."""
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: TransitionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"[Engine] Transition listener failed for {event.case_id}")

    # ============================================================
    # Evaluation
    # ============================================================
    def tick(self, now: Optional[datetime] = None) -> List[TransitionEvent]:
        """Run one evaluation pass over every case.

        Args:
            now: Evaluation time (default: the engine clock)

        Returns:
            Transitions applied in this tick, in store order
        """
        now = ensure_utc(now or self._clock())
        events: List[TransitionEvent] = []

        for case_id in [case.case_id for case in self.store.all()]:
            with self.store.locked():
                case = self.store.get(case_id)
                event = self._advance(case, now)
            if event is not None:
                events.append(event)

        for event in events:
            self._notify(event)
        return events

    def _advance(self, case: PatientCase, now: datetime) -> Optional[TransitionEvent]:
        """Evaluate one case and write the result. Caller holds the store lock."""
        if case.is_terminal:
            return None

        if self.store.has_pending_call(case.case_id):
            logger.debug(f"[Engine] {case.case_id} has a gateway call in flight, deferring")
            return None

        if case.dispatch_timestamp is None:
            if case.status != PatientStatus.WAITING_REMOTE:
                logger.warning(
                    f"[Engine] Skipping {case.case_id} ({case.status.value}): "
                    f"no dispatch_timestamp"
                )
            return None

        try:
            updated, rule = self._evaluate(case, now)
            if updated is case:
                return None
            self.store.replace(case.case_id, updated)
        except MalformedCaseError as e:
            logger.warning(f"[Engine] Skipping {case.case_id}: {e}")
            return None
        except (ValidationError, ERFlowError):
            logger.exception(f"[Engine] Failed to advance {case.case_id}, retrying next tick")
            return None

        if rule is None:
            return None

        event = TransitionEvent(
            case_id=case.case_id,
            patient_name=case.patient_name,
            nhs_number=case.nhs_number,
            from_status=case.status,
            to_status=updated.status,
            at=now,
            rule=rule.name,
        )
        logger.info(
            f"[Engine] {case.patient_name} ({case.nhs_number}): "
            f"{case.status.value} → {updated.status.value} [{rule.name}]",
            extra={
                "case_id": case.case_id,
                "from_status": case.status.value,
                "to_status": updated.status.value,
                "rule": rule.name,
            },
        )
        return event

    def _evaluate(self, case: PatientCase, now: datetime):
        """Compute the next version of ``case``.

        Returns:
            (updated_case, fired_rule) - updated_case is ``case`` itself when
            nothing changed; fired_rule is None when only the ETA moved
        """
        changes = {}
        if case.status.is_en_route:
            eta = remaining_eta_minutes(case, now)
            if eta != case.eta_minutes:
                changes["eta_minutes"] = eta

        for rule in self._rules[case.status]:
            if not rule.fires(case, now, self.timings):
                continue
            if rule.target == PatientStatus.ARRIVED:
                changes["eta_minutes"] = 0
            updated = case.transitioned(
                rule.target,
                at=now,
                triggered_by=f"engine:{rule.name}",
                reason=rule.description,
                **changes,
            )
            return updated, rule

        if changes:
            return case.revised(**changes), None
        return case, None

    # ============================================================
    # Scheduler loop
    # ============================================================
    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Tick every ``tick_interval`` seconds until stop() is called."""
        self._running = True
        logger.info("[Engine] Scheduler loop started")
        try:
            while self._running:
                self.tick()
                await asyncio.sleep(self.tick_interval)
        finally:
            self._running = False
            logger.info("[Engine] Scheduler loop stopped")

    def start(self) -> asyncio.Task:
        """Start run() as a task on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the scheduler loop and wait for it to finish."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
