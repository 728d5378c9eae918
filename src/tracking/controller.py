"""Activation controller: one time-boxed background sampling run at a time."""

import asyncio
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
import structlog.contextvars

from observability import metrics
from providers.base import FixProvider, FixUnavailableError
from shared_types import AccuracyClass, ActivationState, ActivationStatus

from .authorization import AuthorizationGate
from .dedup import DedupFilter
from .enrichment import EnrichmentPipeline
from .errors import PermissionDeniedError
from .models import (
    ActivationOutcome,
    CompletionCallback,
    LocationFix,
    LocationRecord,
    PendingActivation,
    SampleRequest,
    ScheduleConfig,
)
from .scheduler import ActivationScheduler
from .storage import LocationStore

logger = structlog.get_logger().bind(source="activation")

DEFAULT_TIMEOUT_SECONDS = 30.0


class ActivationController:
    """Owns the single in-flight activation and its completion signal.

    Chain: authorization -> fix -> dedup -> enrichment -> append. An expiration
    timer races the chain; whichever reaches a terminal state first resolves the
    activation, the other becomes a no-op. Every resolution re-arms the
    scheduler and then calls the completion callback exactly once.

    Built once per process; ``dedup`` holds the last recorded fix.
    """

    def __init__(
        self,
        *,
        user_id: str,
        gate: AuthorizationGate,
        fix_provider: FixProvider,
        dedup: DedupFilter,
        enrichment: EnrichmentPipeline,
        store: LocationStore,
        scheduler: Optional[ActivationScheduler] = None,
        schedule_config: Optional[Callable[[], ScheduleConfig]] = None,
        accuracy: AccuracyClass = AccuracyClass.HUNDRED_METERS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.user_id = user_id
        self.gate = gate
        self.fix_provider = fix_provider
        self.dedup = dedup
        self.enrichment = enrichment
        self.store = store
        self.scheduler = scheduler
        self.schedule_config = schedule_config
        self.accuracy = accuracy
        self.timeout_seconds = timeout_seconds
        self._clock = clock or (lambda: datetime.now().astimezone())

        self._pending: Optional[PendingActivation] = None
        self._slot_lock = threading.Lock()
        self._state = ActivationState.IDLE

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def pending(self) -> Optional[PendingActivation]:
        return self._pending

    @property
    def last_recorded_fix(self) -> Optional[LocationFix]:
        return self.dedup.last_recorded

    async def run_activation(
        self,
        on_complete: Optional[CompletionCallback] = None,
        timeout_seconds: Optional[float] = None,
    ) -> ActivationOutcome:
        """Run one activation and return its outcome.

        ``on_complete`` is the host's completion signal; it is called exactly
        once, before this coroutine returns.
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        now = self._clock()
        pending = PendingActivation(
            activation_id=uuid.uuid4().hex[:8],
            completion=on_complete,
            expiration_deadline=now + timedelta(seconds=timeout),
            started_at=now,
        )

        with self._slot_lock:
            in_flight = self._pending
            if in_flight is None:
                self._pending = pending

        if in_flight is not None:
            logger.warning(
                "activation_refused_busy",
                activation_id=pending.activation_id,
                in_flight=in_flight.activation_id,
            )
            metrics.counter(f"activation_{ActivationStatus.BUSY}")
            outcome = ActivationOutcome(
                pending.activation_id,
                ActivationStatus.BUSY,
                success=False,
                detail=f"activation {in_flight.activation_id} still in flight",
            )
            pending.resolved = True
            pending.outcome = outcome
            self._signal(pending, outcome)
            return outcome

        structlog.contextvars.bind_contextvars(activation_id=pending.activation_id)
        try:
            self._state = ActivationState.IDLE
            logger.info("activation_started", deadline=pending.expiration_deadline.isoformat())
            pending.done = loop.create_future()
            pending.timer = loop.call_later(timeout, self.expire, pending)
            pending.task = asyncio.create_task(self._run_chain(pending))
            try:
                return await asyncio.shield(pending.done)
            except asyncio.CancelledError:
                self.expire(pending)
                raise
        finally:
            structlog.contextvars.unbind_contextvars("activation_id")

    def expire(self, pending: Optional[PendingActivation] = None) -> bool:
        """Expiration path. Also the host's expiration handler.

        Returns:
            True if this call resolved the activation, False if it had already
            finished.
        """
        pending = pending or self._pending
        if pending is None or pending.resolved:
            return False

        interrupted = self._state
        logger.warning("activation_expired", state=str(interrupted))
        try:
            self.fix_provider.cancel()
        except Exception as e:
            logger.error("fix_cancel_failed", error=str(e))
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()

        outcome = ActivationOutcome(
            pending.activation_id,
            ActivationStatus.EXPIRED,
            success=False,
            detail=f"deadline reached while {interrupted}",
        )
        return self._resolve(pending, outcome, ActivationState.EXPIRED)

    async def _run_chain(self, pending: PendingActivation) -> None:
        try:
            outcome = await self._sample(pending)
        except asyncio.CancelledError:
            if not pending.resolved:
                self._resolve(
                    pending,
                    ActivationOutcome(pending.activation_id, ActivationStatus.FAILED, False, "cancelled"),
                )
            raise
        except Exception as e:
            logger.error("activation_chain_failed", error=str(e), error_type=type(e).__name__)
            outcome = ActivationOutcome(pending.activation_id, ActivationStatus.FAILED, False, str(e))
        self._resolve(pending, outcome)

    async def _sample(self, pending: PendingActivation) -> ActivationOutcome:
        aid = pending.activation_id

        try:
            self.gate.ensure_permitted()
        except PermissionDeniedError as e:
            logger.warning("activation_permission_denied", state=str(e.state))
            return ActivationOutcome(aid, ActivationStatus.PERMISSION_DENIED, False, str(e.state))

        self._state = ActivationState.AWAITING_FIX
        request = SampleRequest(accuracy=self.accuracy, deadline=pending.expiration_deadline)
        try:
            fix = await self.fix_provider.request_fix(request)
        except FixUnavailableError as e:
            logger.warning("fix_unavailable", error=str(e))
            return ActivationOutcome(aid, ActivationStatus.FIX_UNAVAILABLE, False, str(e))

        if self._superseded(pending, "fix"):
            return ActivationOutcome(aid, ActivationStatus.EXPIRED, False, "fix arrived after expiration")

        self._state = ActivationState.RESOLVING
        logger.info("fix_received", accuracy_m=fix.horizontal_accuracy_m)

        if not self.dedup.evaluate(fix):
            return ActivationOutcome(aid, ActivationStatus.DUPLICATE, True, "fix too close in time and distance")

        with metrics.timer("enrichment_duration"):
            result = await self.enrichment.enrich(fix)

        if self._superseded(pending, "enrichment"):
            return ActivationOutcome(aid, ActivationStatus.EXPIRED, False, "enrichment finished after expiration")

        record = LocationRecord.from_fix(fix, result)
        record_id = self.store.append(self.user_id, record)
        if record_id is None:
            return ActivationOutcome(aid, ActivationStatus.WRITE_FAILED, False, "record append failed")

        logger.info(
            "location_recorded",
            record_id=record_id,
            place_name=record.place_name,
            category=record.category,
            stage=str(result.source_stage),
        )
        return ActivationOutcome(
            aid,
            ActivationStatus.RECORDED,
            True,
            f"{record.place_name} ({record.category})",
            record_id=record_id,
        )

    @staticmethod
    def _superseded(pending: PendingActivation, stage: str) -> bool:
        if pending.resolved:
            logger.info("late_result_dropped", stage=stage)
            return True
        return False

    def _resolve(
        self,
        pending: PendingActivation,
        outcome: ActivationOutcome,
        terminal: ActivationState = ActivationState.COMPLETED,
    ) -> bool:
        with self._slot_lock:
            if pending.resolved:
                logger.debug("resolution_ignored", status=str(outcome.status))
                return False
            pending.resolved = True
            pending.outcome = outcome
            if self._pending is pending:
                self._pending = None

        self._state = terminal
        if pending.timer is not None:
            pending.timer.cancel()

        try:
            self._record_completion(pending, outcome)
            self._arm_next()
        finally:
            self._signal(pending, outcome)
            if pending.done is not None and not pending.done.done():
                pending.done.set_result(outcome)
        return True

    def _record_completion(self, pending: PendingActivation, outcome: ActivationOutcome) -> None:
        finished = self._clock()
        try:
            metrics.counter(f"activation_{outcome.status}")
            metrics.observe("activation_duration", (finished - pending.started_at).total_seconds())
            self.store.record_activation(outcome, pending.started_at, finished)
        except Exception as e:
            logger.error("activation_history_failed", error=str(e), error_type=type(e).__name__)
        logger.info(
            "activation_completed",
            status=str(outcome.status),
            success=outcome.success,
            detail=outcome.detail,
        )

    def _arm_next(self) -> None:
        if self.scheduler is None or self.schedule_config is None:
            return
        try:
            self.scheduler.schedule(self.schedule_config())
        except Exception as e:
            logger.error("rearm_failed", error=str(e), error_type=type(e).__name__)

    @staticmethod
    def _signal(pending: PendingActivation, outcome: ActivationOutcome) -> None:
        if pending.completion is None:
            return
        try:
            pending.completion(outcome)
        except Exception as e:
            logger.error("completion_callback_failed", error=str(e))
