"""
Prediction Scheduler Tests

Routine ticks, immediate recomputes on significant change and the
background loop.
"""

import asyncio
from unittest.mock import Mock

import pytest

from drivesafe.events import EventType
from drivesafe.prediction.prediction_scheduler import PredictionScheduler
from drivesafe.prediction.risk_engine import RiskEngine
from conftest import make_context, point


@pytest.fixture
def scheduler(engine, bus):
    return PredictionScheduler(engine, event_bus=bus, clock=lambda: 100.0)


class TestTick:
    """Routine recompute"""

    def test_tick_uses_provider(self, engine, bus):
        scheduler = PredictionScheduler(engine, lambda: make_context(current_speed_kmh=80),
                                        event_bus=bus)
        scores = scheduler.tick()
        assert scores.overspeed == 85

    def test_tick_emits_event(self, scheduler, bus):
        ticks = []
        bus.subscribe(EventType.PREDICTION_TICK, ticks.append)
        scheduler.tick()
        assert ticks == [{'timestamp': 100.0}]

    def test_tick_without_context_is_skipped(self, scheduler, engine):
        assert scheduler.tick() is None
        assert scheduler.get_statistics()['skippedTicks'] == 1
        assert engine.get_last_prediction() is None

    def test_tick_uses_latest_telemetry(self, scheduler):
        scheduler.on_telemetry(make_context(current_speed_kmh=70))
        assert scheduler.tick().overspeed == 65

    def test_provider_failure_counted(self, engine):
        scheduler = PredictionScheduler(engine, Mock(side_effect=RuntimeError("gps lost")))
        assert scheduler.tick() is None
        assert scheduler.get_statistics()['providerErrors'] == 1

    def test_provider_dict_context(self, engine):
        scheduler = PredictionScheduler(engine, lambda: {
            'current_speed_kmh': 60, 'speed_limit_kmh': 50, 'position': [0.0, 0.0],
        })
        assert scheduler.tick().overspeed == 40

    def test_unreadable_provider_context(self, engine):
        scheduler = PredictionScheduler(engine, lambda: {'speed': 'fast'})
        assert scheduler.tick() is None
        assert scheduler.provider_errors == 1


class TestImmediateRecompute:
    """Out-of-band triggers"""

    def test_first_telemetry_recomputes(self, scheduler):
        assert scheduler.on_telemetry(make_context()) is True

    def test_small_change_waits_for_tick(self, scheduler):
        scheduler.on_telemetry(make_context(current_speed_kmh=40))
        assert scheduler.on_telemetry(make_context(current_speed_kmh=45,
                                                   position=point(20))) is False

    @pytest.mark.parametrize("overrides", [
        {'current_speed_kmh': 50},
        {'heading_deg': 130},
        {'position': point(60)},
        {'weather': {'condition': 'rain'}},
    ])
    def test_significant_changes(self, scheduler, overrides):
        scheduler.on_telemetry(make_context())
        assert scheduler.on_telemetry(make_context(**overrides)) is True

    def test_heading_wraps(self, scheduler):
        scheduler.on_telemetry(make_context(heading_deg=350))
        assert scheduler.on_telemetry(make_context(heading_deg=10)) is False

    def test_request_recompute(self, scheduler, engine):
        scores = scheduler.request_recompute(make_context(current_speed_kmh=80))
        assert scores.overspeed == 85
        assert scheduler.get_statistics()['immediateRecomputes'] == 1
        assert engine.get_last_prediction() == scores

    def test_request_recompute_without_context(self, scheduler):
        assert scheduler.request_recompute() is None

    def test_unreadable_telemetry_ignored(self, scheduler):
        assert scheduler.on_telemetry({'position': None}) is False


class TestLoop:
    """Background task"""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, config):
        engine = RiskEngine(config)
        provider = Mock(return_value=make_context())
        scheduler = PredictionScheduler(engine, provider, interval=0.01)

        await scheduler.start()
        assert scheduler.is_running
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert provider.call_count >= 2
        assert engine.get_statistics()['totalPredictions'] == provider.call_count

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, engine):
        scheduler = PredictionScheduler(engine, interval=0.01)
        await scheduler.stop()
        await scheduler.start()
        await scheduler.start()
        await scheduler.stop()
        await scheduler.stop()
        assert scheduler.get_statistics()['running'] is False
