"""Tests for the activation controller: one signal per activation, expiration races."""

import asyncio
from unittest.mock import MagicMock

import pytest

from providers.base import FixUnavailableError, Geocoder
from shared_types import ActivationState, ActivationStatus, AuthorizationState
from tracking.authorization import AuthorizationGate
from tracking.controller import ActivationController
from tracking.dedup import DedupFilter
from tracking.enrichment import EnrichmentPipeline
from tracking.models import ScheduleConfig
from tracking.storage import LocationStore

SAGA_LAT = 33.2411
SAGA_LON = 130.2844


class StubbornGeocoder(Geocoder):
    """Ignores cancellation and answers late."""

    def __init__(self, delay: float):
        self.delay = delay
        self.finished = False

    async def reverse_geocode(self, latitude, longitude):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            await asyncio.sleep(self.delay)
        self.finished = True
        return "Late Street"


@pytest.fixture
def store(temp_paths):
    return LocationStore(temp_paths["db"])


@pytest.fixture
def signals():
    return []


@pytest.fixture
def build_controller(store, make_geocoder, make_poi_search, make_permissions, saga_poi):
    """Factory: controller over fakes plus a MagicMock scheduler, for user-1."""

    def _build(fix_provider, geocoder=None, poi_search=None, permissions=None, timeout=2.0, log_store=None):
        scheduler = MagicMock()
        controller = ActivationController(
            user_id="user-1",
            gate=AuthorizationGate(permissions or make_permissions()),
            fix_provider=fix_provider,
            dedup=DedupFilter(),
            enrichment=EnrichmentPipeline(
                geocoder or make_geocoder("Honjo-machi 1"),
                poi_search or make_poi_search([saga_poi]),
            ),
            store=log_store or store,
            scheduler=scheduler,
            schedule_config=lambda: ScheduleConfig(tracking_enabled=True, frequency_minutes=30),
            timeout_seconds=timeout,
        )
        return controller, scheduler

    return _build


class TestNormalCompletion:
    """Fix -> dedup -> enrich -> append."""

    @pytest.mark.asyncio
    async def test_records_saga_university(self, store, signals, make_fix, make_fix_provider, build_controller):
        fix = make_fix(SAGA_LAT, SAGA_LON)
        controller, scheduler = build_controller(make_fix_provider([fix]))

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.RECORDED
        assert outcome.success is True
        assert signals == [outcome]
        assert controller.last_recorded_fix == fix
        assert controller.pending is None
        assert controller.state == ActivationState.COMPLETED

        records = store.query_recent("user-1")
        assert len(records) == 1
        assert records[0]["place_name"] == "Saga University"
        assert records[0]["category"] == "school"
        assert records[0]["latitude"] == SAGA_LAT
        assert records[0]["id"] == outcome.record_id
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_second_fix_close_in_time_and_space_is_duplicate(self, store, signals, make_fix, make_fix_provider, build_controller):
        first = make_fix(SAGA_LAT, SAGA_LON)
        second = make_fix(SAGA_LAT + 0.00045, SAGA_LON, minutes=10)  # ~50 m
        controller, scheduler = build_controller(make_fix_provider([first, second]))

        await controller.run_activation(on_complete=signals.append)
        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.DUPLICATE
        assert outcome.success is True
        assert len(signals) == 2
        assert store.count("user-1") == 1
        assert controller.last_recorded_fix == first
        assert scheduler.schedule.call_count == 2

    @pytest.mark.asyncio
    async def test_activation_history_recorded(self, store, make_fix, make_fix_provider, build_controller):
        controller, _ = build_controller(make_fix_provider([make_fix()]))

        outcome = await controller.run_activation()

        runs = store.recent_activations()
        assert runs[0]["activation_id"] == outcome.activation_id
        assert runs[0]["status"] == "recorded"


class TestFailurePaths:
    """Each failure still produces exactly one signal and a re-arm."""

    @pytest.mark.asyncio
    async def test_permission_denied(self, store, signals, make_fix, make_fix_provider, make_permissions, build_controller):
        fix_provider = make_fix_provider([make_fix()])
        controller, scheduler = build_controller(
            fix_provider, permissions=make_permissions(AuthorizationState.WHEN_IN_USE)
        )

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.PERMISSION_DENIED
        assert outcome.success is False
        assert signals == [outcome]
        assert fix_provider.requests == []
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_fix_unavailable(self, store, signals, make_fix_provider, build_controller):
        controller, scheduler = build_controller(make_fix_provider([FixUnavailableError("gps off")]))

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.FIX_UNAVAILABLE
        assert signals == [outcome]
        assert store.count("user-1") == 0
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_activation(self, store, signals, make_fix_provider, build_controller):
        controller, _ = build_controller(make_fix_provider([RuntimeError("driver crash")]))

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.FAILED
        assert signals == [outcome]

    @pytest.mark.asyncio
    async def test_write_failure(self, signals, make_fix, make_fix_provider, build_controller):
        log_store = MagicMock()
        log_store.append.return_value = None
        controller, _ = build_controller(make_fix_provider([make_fix()]), log_store=log_store)

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.WRITE_FAILED
        assert outcome.success is False
        assert signals == [outcome]

    @pytest.mark.asyncio
    async def test_callback_error_does_not_escape(self, store, make_fix, make_fix_provider, build_controller):
        controller, _ = build_controller(make_fix_provider([make_fix()]))

        def broken(outcome):
            raise RuntimeError("host gone")

        outcome = await controller.run_activation(on_complete=broken)

        assert outcome.status == ActivationStatus.RECORDED

    @pytest.mark.asyncio
    async def test_schedule_failure_still_signals(self, store, signals, make_fix, make_fix_provider, build_controller):
        controller, scheduler = build_controller(make_fix_provider([make_fix()]))
        scheduler.schedule.side_effect = RuntimeError("jobstore locked")

        outcome = await controller.run_activation(on_complete=signals.append)

        assert signals == [outcome]

    @pytest.mark.asyncio
    async def test_history_failure_still_signals(self, signals, make_fix, make_fix_provider, build_controller):
        log_store = MagicMock()
        log_store.append.return_value = 7
        log_store.record_activation.side_effect = RuntimeError("disk full")
        controller, scheduler = build_controller(make_fix_provider([make_fix()]), log_store=log_store)

        outcome = await controller.run_activation(on_complete=signals.append)

        assert outcome.status == ActivationStatus.RECORDED
        assert signals == [outcome]
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_history_failure_on_expiration_still_signals(
        self, signals, make_fix, make_fix_provider, build_controller
    ):
        log_store = MagicMock()
        log_store.record_activation.side_effect = RuntimeError("disk full")
        controller, _ = build_controller(
            make_fix_provider([make_fix()], delay=5.0), timeout=0.05, log_store=log_store
        )

        outcome = await asyncio.wait_for(controller.run_activation(on_complete=signals.append), timeout=2.0)

        assert outcome.status == ActivationStatus.EXPIRED
        assert signals == [outcome]


class TestExpiration:
    """The expiration timer races the chain; the first to finish wins."""

    @pytest.mark.asyncio
    async def test_expires_before_fix_arrives(self, store, signals, make_fix, make_fix_provider, build_controller):
        fix_provider = make_fix_provider([make_fix()], delay=5.0)
        controller, scheduler = build_controller(fix_provider, timeout=0.05)

        outcome = await controller.run_activation(on_complete=signals.append)
        await asyncio.sleep(0.05)

        assert outcome.status == ActivationStatus.EXPIRED
        assert outcome.success is False
        assert signals == [outcome]
        assert fix_provider.cancelled == 1
        assert store.count("user-1") == 0
        assert controller.last_recorded_fix is None
        assert controller.state == ActivationState.EXPIRED
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_expires_mid_enrichment_single_signal(self, store, signals, make_fix, make_fix_provider, build_controller):
        """A late enrichment result neither signals again nor writes."""
        geocoder = StubbornGeocoder(delay=0.1)
        controller, scheduler = build_controller(make_fix_provider([make_fix()]), geocoder=geocoder, timeout=0.05)

        outcome = await controller.run_activation(on_complete=signals.append)
        assert outcome.status == ActivationStatus.EXPIRED

        # Let the superseded chain run to completion
        await asyncio.sleep(0.3)

        assert geocoder.finished is True
        assert signals == [outcome]
        assert store.count("user-1") == 0
        scheduler.schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_expire_after_completion_is_noop(self, store, signals, make_fix, make_fix_provider, build_controller):
        controller, _ = build_controller(make_fix_provider([make_fix()]))
        await controller.run_activation(on_complete=signals.append)

        assert controller.expire() is False
        assert len(signals) == 1

    @pytest.mark.asyncio
    async def test_host_expiration_handler(self, store, signals, make_fix, make_fix_provider, build_controller):
        """The host may call expire() directly while a fix is outstanding."""
        fix_provider = make_fix_provider([make_fix()], delay=5.0)
        controller, _ = build_controller(fix_provider, timeout=10.0)

        task = asyncio.create_task(controller.run_activation(on_complete=signals.append))
        await asyncio.sleep(0.02)
        assert controller.state == ActivationState.AWAITING_FIX

        assert controller.expire() is True
        outcome = await task

        assert outcome.status == ActivationStatus.EXPIRED
        assert signals == [outcome]

    @pytest.mark.asyncio
    async def test_cancelled_caller_expires_activation(self, store, signals, make_fix, make_fix_provider, build_controller):
        fix_provider = make_fix_provider([make_fix()], delay=5.0)
        controller, _ = build_controller(fix_provider, timeout=10.0)

        task = asyncio.create_task(controller.run_activation(on_complete=signals.append))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.01)

        assert len(signals) == 1
        assert signals[0].status == ActivationStatus.EXPIRED
        assert controller.pending is None


class TestSingleActivation:
    """At most one activation in flight."""

    @pytest.mark.asyncio
    async def test_second_activation_refused_while_busy(self, store, make_fix, make_fix_provider, build_controller):
        first_signals, second_signals = [], []
        fix_provider = make_fix_provider([make_fix()], delay=0.1)
        controller, _ = build_controller(fix_provider)

        first = asyncio.create_task(controller.run_activation(on_complete=first_signals.append))
        await asyncio.sleep(0.01)
        refused = await controller.run_activation(on_complete=second_signals.append)
        completed = await first

        assert refused.status == ActivationStatus.BUSY
        assert second_signals == [refused]
        assert completed.status == ActivationStatus.RECORDED
        assert first_signals == [completed]
        assert len(fix_provider.requests) == 1

    @pytest.mark.asyncio
    async def test_next_activation_after_completion(self, store, make_fix, make_fix_provider, build_controller):
        fixes = [make_fix(), make_fix(SAGA_LAT + 0.01, SAGA_LON, minutes=30)]
        controller, _ = build_controller(make_fix_provider(fixes))

        await controller.run_activation()
        outcome = await controller.run_activation()

        assert outcome.status == ActivationStatus.RECORDED
        assert store.count("user-1") == 2
