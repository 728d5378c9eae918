"""Daemon host: wires the tracking core onto an APScheduler BackgroundScheduler."""

import asyncio
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from observability import log_run_summary
from providers import create_fix_provider, create_geocoder, create_poi_search
from providers.base import FixProvider, Geocoder, PoiSearch
from shared_types import AuthorizationState

from .authorization import AuthorizationGate
from .controller import ActivationController
from .dedup import DedupFilter
from .enrichment import EnrichmentPipeline
from .errors import ConfigError
from .models import ActivationOutcome, NextActivation
from .permissions import PermissionStore
from .scheduler import ActivationScheduler
from .storage import LocationStore

logger = structlog.get_logger().bind(source="tracking_service")

CONFIG_WATCH_JOB_ID = "placelog.config_watch"

# Built into providers and stores at start-up; edits apply after a daemon restart.
RESTART_SECTIONS = ("fix_provider", "paths", "rate_limits", "retry")


class TrackingService:
    """Builds one controller per process and hosts its activations.

    Args:
        config: PlacelogConfig
        config_loader: Re-reads config for the watcher job (None = no reloads)
        fix_provider/geocoder/poi_search: Overrides for testing/DI
        scheduler: APScheduler instance (None = new BackgroundScheduler)
    """

    def __init__(
        self,
        config,
        config_loader: Optional[Callable[[], object]] = None,
        *,
        fix_provider: Optional[FixProvider] = None,
        geocoder: Optional[Geocoder] = None,
        poi_search: Optional[PoiSearch] = None,
        scheduler=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.config_loader = config_loader
        self.status_path = Path(config.paths.status_file).expanduser()

        self.store = LocationStore(config.paths.db)
        self.permissions = PermissionStore(config.paths.db)
        self.gate = AuthorizationGate(self.permissions)
        self.permissions.on_change = self.gate.on_authorization_changed
        self._permission_state = self.permissions.current_state()

        self.dedup = DedupFilter(
            min_interval=timedelta(seconds=config.dedup.min_interval_seconds),
            min_distance_m=config.dedup.min_distance_meters,
        )
        self.enrichment = EnrichmentPipeline(
            geocoder or create_geocoder(config),
            poi_search or create_poi_search(config),
            radius_m=config.enrichment.background_radius_m,
        )

        self.scheduler = scheduler or BackgroundScheduler()
        self.activations = ActivationScheduler(self.scheduler, self.run_once, clock=clock)
        self.controller = ActivationController(
            user_id=config.tracking.user_id,
            gate=self.gate,
            fix_provider=fix_provider or create_fix_provider(config),
            dedup=self.dedup,
            enrichment=self.enrichment,
            store=self.store,
            scheduler=self.activations,
            schedule_config=lambda: self.config.tracking.schedule_config(),
            accuracy=config.tracking.accuracy,
            timeout_seconds=config.tracking.activation_timeout_seconds,
            clock=clock,
        )

    def run_once(self) -> ActivationOutcome:
        """Run one activation from sync context (scheduler job or CLI)."""
        return asyncio.run(self.controller.run_activation(on_complete=self._on_complete))

    def _on_complete(self, outcome: ActivationOutcome) -> None:
        """Completion signal: persist the outcome where ``placelog status`` can read it."""
        next_job = self.scheduler.get_job(self.activations.task_id)
        next_run = getattr(next_job, "next_run_time", None) if next_job else None
        status_data = {
            **outcome.to_dict(),
            "timestamp": datetime.now().isoformat(),
            "next_activation": next_run.isoformat() if next_run else None,
        }
        self.status_path.parent.mkdir(parents=True, exist_ok=True)
        self.status_path.write_text(json.dumps(status_data, indent=2))

    def _job_error_handler(self, event):
        """APScheduler job failures; the activation chain resolves its own errors."""
        logger.error(
            "job_error",
            job_id=event.job_id,
            exception=str(event.exception),
            traceback=event.traceback,
        )
        if event.job_id == self.activations.task_id and not self.activations.is_pending:
            self.activations.schedule(self.config.tracking.schedule_config())

    def apply_config(self, new_config) -> Optional[NextActivation]:
        """Swap in a reloaded config; re-arm when the schedule changed."""
        old_config = self.config
        old_schedule = old_config.tracking.schedule_config()
        needs_restart = [
            section
            for section in RESTART_SECTIONS
            if getattr(old_config, section) != getattr(new_config, section)
        ]
        live_radii = {"background_radius_m", "interactive_radius_m"}
        if old_config.enrichment.model_dump(exclude=live_radii) != new_config.enrichment.model_dump(exclude=live_radii):
            needs_restart.append("enrichment")
        if needs_restart:
            logger.warning("config_change_needs_restart", sections=needs_restart)

        self.config = new_config
        if new_config.tracking.user_id != old_config.tracking.user_id:
            logger.info("user_id_changed", user_id=new_config.tracking.user_id)
        self.controller.user_id = new_config.tracking.user_id
        self.controller.accuracy = new_config.tracking.accuracy
        self.controller.timeout_seconds = new_config.tracking.activation_timeout_seconds
        self.dedup.min_interval = timedelta(seconds=new_config.dedup.min_interval_seconds)
        self.dedup.min_distance_m = new_config.dedup.min_distance_meters
        self.enrichment.radius_m = new_config.enrichment.background_radius_m

        new_schedule = new_config.tracking.schedule_config()
        if new_schedule == old_schedule:
            return None
        logger.info(
            "schedule_config_changed",
            enabled=new_schedule.tracking_enabled,
            frequency_minutes=new_schedule.frequency_minutes,
        )
        return self.activations.schedule(new_schedule)

    def poll_permission(self) -> Optional[AuthorizationState]:
        """Forward an out-of-process permission decision to the gate."""
        state = self.permissions.current_state()
        if state == self._permission_state:
            return None
        self._permission_state = state
        self.gate.on_authorization_changed(state)
        return state

    def watch(self) -> None:
        """Watcher job: pick up config edits and permission decisions."""
        if self.config_loader is not None:
            try:
                self.apply_config(self.config_loader())
            except ConfigError as e:
                logger.warning("config_reload_failed", error=str(e))
        self.poll_permission()

    def start(self) -> Optional[NextActivation]:
        """Request authorization, arm the first activation and start the scheduler."""
        state = self.gate.request_always_authorization()
        self._permission_state = state
        self.scheduler.add_job(
            self.watch,
            trigger=IntervalTrigger(seconds=self.config.tracking.config_poll_seconds),
            id=CONFIG_WATCH_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.add_listener(self._job_error_handler, EVENT_JOB_ERROR)
        self.scheduler.start()
        next_activation = self.activations.schedule(self.config.tracking.schedule_config())
        logger.info("tracking_service_started", authorization=str(state))
        return next_activation

    def stop(self) -> None:
        """Stop scheduler and emit the metrics summary.

        Waits for an in-flight activation, which is bounded by its expiration timer.
        """
        self.scheduler.shutdown()
        log_run_summary()
