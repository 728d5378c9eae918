"""Aligned scheduling of background activations."""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from observability import metrics

from .models import NextActivation, ScheduleConfig

logger = structlog.get_logger().bind(source="scheduler")

TASK_ID = "placelog.location_refresh"
VALID_FREQUENCIES = (30, 60)


def next_aligned_boundary(now: datetime, frequency_minutes: int) -> datetime:
    """Next wall-clock alignment mark strictly after ``now``.

    60 -> next top of the hour; 30 -> next :00 or :30, whichever comes first.
    A ``now`` sitting exactly on a mark returns the following mark.
    """
    if frequency_minutes not in VALID_FREQUENCIES:
        raise ValueError(f"frequency_minutes must be one of {VALID_FREQUENCIES}, got {frequency_minutes}")

    hour_start = now.replace(minute=0, second=0, microsecond=0)
    elapsed = now - hour_start
    step = timedelta(minutes=frequency_minutes)
    slots_passed = elapsed // step
    return hour_start + step * (slots_passed + 1)


class ActivationScheduler:
    """Submits and cancels the single deferred activation on the host scheduler.

    Submissions reuse one job id with ``replace_existing=True``, so re-scheduling
    while a request is pending replaces it instead of stacking.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        job_func: Callable[[], object],
        task_id: str = TASK_ID,
        misfire_grace_seconds: int = 3600,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.scheduler = scheduler
        self.job_func = job_func
        self.task_id = task_id
        self.misfire_grace_seconds = misfire_grace_seconds
        self._clock = clock or (lambda: datetime.now().astimezone())

    @property
    def is_pending(self) -> bool:
        return self.scheduler.get_job(self.task_id) is not None

    def schedule(self, config: ScheduleConfig, now: Optional[datetime] = None) -> Optional[NextActivation]:
        """Arm the next activation, or cancel when tracking is disabled.

        Submission errors are logged and swallowed; the next config change or
        completed activation retries.
        """
        if not config.tracking_enabled:
            logger.info("schedule_skipped", reason="tracking_disabled")
            self.cancel()
            return None

        now = now or self._clock()
        boundary = next_aligned_boundary(now, config.frequency_minutes)

        try:
            self.scheduler.add_job(
                self.job_func,
                trigger=DateTrigger(run_date=boundary),
                id=self.task_id,
                name="location refresh",
                replace_existing=True,
                misfire_grace_time=self.misfire_grace_seconds,
                coalesce=True,
                max_instances=1,
            )
        except Exception as e:
            logger.error(
                "schedule_submit_failed",
                task_id=self.task_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            metrics.counter("schedule_submit_failed")
            return None

        logger.info(
            "schedule_submitted",
            task_id=self.task_id,
            earliest_begin=boundary.isoformat(),
            frequency_minutes=config.frequency_minutes,
        )
        metrics.counter("schedule_submitted")
        return NextActivation(
            task_id=self.task_id,
            earliest_begin=boundary,
            frequency_minutes=config.frequency_minutes,
        )

    def cancel(self) -> None:
        """Remove the pending activation if there is one."""
        try:
            self.scheduler.remove_job(self.task_id)
            logger.info("schedule_cancelled", task_id=self.task_id)
        except JobLookupError:
            logger.debug("schedule_cancel_noop", task_id=self.task_id)
