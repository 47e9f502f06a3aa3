"""
Safety Orchestrator Tests

Alert thresholds, weather intensity, cooldowns and escalation, message
building, adaptation updates, lifecycle and driver-state bootstrap.
"""

import asyncio
from unittest.mock import Mock

import pytest

from drivesafe.config import SafetyConfig
from drivesafe.events import EventType
from drivesafe.models.risk import RiskFactor, RiskScores, RiskType, RiskUpdate, SeverityTier
from drivesafe.models.safety import AlertLevel, HapticPattern
from drivesafe.safety.orchestrator import OrchestratorState, SafetyOrchestrator


def factor(risk_type=RiskType.SHARP_TURN, score=80, distance=80.4):
    return RiskFactor(type=risk_type, score=score, reason="test",
                      distance_meters=distance, severity=SeverityTier.CRITICAL)


def risk_update(overall, factors=None):
    if factors is None:
        factors = [factor()]
    return RiskUpdate(scores=RiskScores(overall=overall), factors=factors, timestamp=0.0)


def send_risk(bus, overall, factors=None):
    bus.emit(EventType.RISK_UPDATE, risk_update(overall, factors))


# ============================================
# Thresholds
# ============================================

class TestAlertLevels:
    """Threshold selection on the adapted score"""

    @pytest.mark.parametrize("overall,expected", [
        (0, None), (59, None), (60, AlertLevel.WARNING), (74, AlertLevel.WARNING),
        (75, AlertLevel.CAUTION), (89, AlertLevel.CAUTION), (90, AlertLevel.CRITICAL),
        (100, AlertLevel.CRITICAL),
    ])
    def test_thresholds(self, orchestrator, overall, expected):
        alert = orchestrator.handle_risk_update(risk_update(overall))
        assert (alert.level if alert else None) == expected

    def test_haptics_and_hud_per_level(self, orchestrator):
        warning = orchestrator.evaluate(RiskScores(overall=65), [factor()])
        caution = orchestrator.evaluate(RiskScores(overall=80), [factor()])
        critical = orchestrator.evaluate(RiskScores(overall=95), [factor()])

        assert warning.haptic_pattern == HapticPattern.NONE
        assert caution.haptic_pattern == HapticPattern.MEDIUM
        assert critical.haptic_pattern == HapticPattern.URGENT
        assert [a.requires_hud_flash for a in (warning, caution, critical)] == [False, False, True]

    def test_rain_raises_level(self, orchestrator, bus):
        """50 x 1.3 = 65 -> warning"""
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'rain'}})
        alert = orchestrator.handle_risk_update(risk_update(50))
        assert alert.level == AlertLevel.WARNING
        assert alert.risk_score == 50

    def test_storm_raises_to_critical(self, orchestrator, bus):
        """45 x 2.0 = 90 -> critical"""
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'storm'}})
        assert orchestrator.handle_risk_update(risk_update(45)).level == AlertLevel.CRITICAL

    def test_alert_reaches_sinks(self, orchestrator, bus, sinks):
        send_risk(bus, 95)

        message, options = sinks['voice'].calls[0]
        assert message == "Sharp turn ahead in 80 meters. Slow down now."
        assert options['isCritical'] is True
        assert sinks['haptics'].calls == [('urgent', 1.0)]
        assert len(sinks['hud'].calls) == 1

    def test_alert_event_emitted(self, orchestrator, bus, clock):
        alerts = []
        bus.subscribe(EventType.SAFETY_ALERT, alerts.append)
        clock.advance(12.5)

        send_risk(bus, 80)

        assert len(alerts) == 1
        assert alerts[0]['alert'].level == AlertLevel.CAUTION
        assert alerts[0]['timestamp'] == 12.5


# ============================================
# Cooldowns
# ============================================

class TestCooldowns:
    """Per-level suppression and escalation"""

    def test_warning_cooldown(self, orchestrator, bus, clock, sinks):
        send_risk(bus, 65)          # t=0 fires
        clock.advance(3)
        send_risk(bus, 65)          # t=3 suppressed
        clock.advance(6)
        send_risk(bus, 65)          # t=9 suppressed
        clock.advance(1)
        send_risk(bus, 65)          # t=10 fires

        assert len(sinks['voice'].calls) == 2
        stats = orchestrator.get_statistics()
        assert stats['alertsDispatched']['warning'] == 2
        assert stats['alertsSuppressed'] == 2

    def test_caution_cooldown(self, orchestrator, bus, clock, sinks):
        send_risk(bus, 80)
        clock.advance(7.9)
        send_risk(bus, 80)
        clock.advance(0.1)
        send_risk(bus, 80)
        assert len(sinks['voice'].calls) == 2

    def test_caution_three_then_nine_seconds(self, orchestrator, bus, clock, sinks):
        """Caution at 0 s fires, 3 s is suppressed, 9 s fires again"""
        send_risk(bus, 80)
        clock.advance(3)
        send_risk(bus, 80)
        clock.advance(6)
        send_risk(bus, 80)

        assert len(sinks['voice'].calls) == 2
        assert orchestrator.get_statistics()['alertsSuppressed'] == 1
        assert orchestrator.get_cooldown_ledger() == {'caution': 9}

    def test_dispatch_at_time_zero_starts_cooldown(self, orchestrator, bus, clock, sinks):
        assert clock() == 0
        send_risk(bus, 65)
        send_risk(bus, 65)
        assert len(sinks['voice'].calls) == 1
        assert orchestrator.get_cooldown_ledger() == {'warning': 0}

    def test_critical_breaks_through(self, orchestrator, bus, clock, sinks):
        send_risk(bus, 95)
        clock.advance(1)
        send_risk(bus, 95)
        assert len(sinks['voice'].calls) == 2
        assert orchestrator.get_cooldown_ledger() == {'critical': 1}

    def test_critical_clears_lower_levels(self, orchestrator, bus, clock, sinks):
        """Critical at 0 s, then caution at 1 s fires immediately"""
        send_risk(bus, 80)          # caution at 0
        send_risk(bus, 95)          # critical at 0, clears caution
        clock.advance(1)
        alert = orchestrator.handle_risk_update(risk_update(80))

        assert alert is not None
        assert alert.level == AlertLevel.CAUTION
        assert set(orchestrator.get_cooldown_ledger()) == {'critical', 'caution'}

    def test_caution_clears_only_warning(self, orchestrator, bus, clock):
        send_risk(bus, 95)
        clock.advance(0.5)
        send_risk(bus, 65)
        clock.advance(0.5)
        send_risk(bus, 80)

        ledger = orchestrator.get_cooldown_ledger()
        assert ledger == {'critical': 0, 'caution': 1.0}

    def test_lower_level_does_not_clear_higher(self, orchestrator, bus, clock, sinks):
        send_risk(bus, 80)
        clock.advance(1)
        send_risk(bus, 65)
        clock.advance(1)
        send_risk(bus, 80)          # still inside caution cooldown

        assert [c[0] for c in sinks['voice'].calls].count(
            "Prepare for sharp turn in 80 meters.") == 1


# ============================================
# Partial configuration
# ============================================

class TestPartialConfig:
    """Overriding one level keeps the defaults of the others"""

    def test_partial_thresholds(self, bus, dispatcher, clock):
        config = SafetyConfig(alert_thresholds={'critical': 80})
        orch = SafetyOrchestrator(bus, dispatcher, config, clock=clock)
        orch.init()

        assert orch.handle_risk_update(risk_update(50)) is None
        assert orch.handle_risk_update(risk_update(65)).level == AlertLevel.WARNING
        assert orch.handle_risk_update(risk_update(82)).level == AlertLevel.CRITICAL
        orch.shutdown()

    def test_partial_cooldowns(self, bus, dispatcher, clock, sinks):
        config = SafetyConfig(cooldowns_sec={'warning': 2})
        orch = SafetyOrchestrator(bus, dispatcher, config, clock=clock)
        orch.init()

        send_risk(bus, 80)
        clock.advance(3)
        send_risk(bus, 80)

        assert len(sinks['voice'].calls) == 1
        orch.shutdown()


# ============================================
# Messages
# ============================================

class TestMessages:
    """Templates and stressed-driver softening"""

    @pytest.mark.parametrize("risk_type,level,expected", [
        (RiskType.SHARP_TURN, AlertLevel.CRITICAL, "Sharp turn ahead in 80 meters. Slow down now."),
        (RiskType.SHARP_TURN, AlertLevel.CAUTION, "Prepare for sharp turn in 80 meters."),
        (RiskType.SHARP_TURN, AlertLevel.WARNING, "Sharp turn ahead in 80 meters."),
        (RiskType.OVERSPEED, AlertLevel.CRITICAL, "Reduce speed immediately. Current speed too high."),
        (RiskType.OVERSPEED, AlertLevel.WARNING, "Approaching speed limit. Slow down."),
        (RiskType.COLLISION, AlertLevel.CRITICAL, "Hazard ahead! Slow down in 80 meters."),
        (RiskType.LATE_BRAKING, AlertLevel.CAUTION, "Begin braking in 80 meters."),
        (RiskType.LANE_DEVIATION, AlertLevel.WARNING, "Stay in your lane."),
    ])
    def test_templates(self, orchestrator, risk_type, level, expected):
        assert orchestrator.build_message(factor(risk_type), level) == expected

    def test_distance_rounds_half_up(self, orchestrator):
        message = orchestrator.build_message(factor(distance=42.5), AlertLevel.CAUTION)
        assert message == "Prepare for sharp turn in 43 meters."

    def test_no_factor_uses_generic_message(self, orchestrator, sinks):
        alert = orchestrator.handle_risk_update(risk_update(70, factors=[]))
        assert alert.message == "Caution ahead."
        assert sinks['voice'].calls[0][0] == "Caution ahead."

    def test_stressed_prefix(self, orchestrator, bus):
        bus.emit(EventType.DRIVER_STATE_CHANGED, {'state': {'stress': 70, 'focus': 60}})

        assert (orchestrator.build_message(factor(), AlertLevel.CRITICAL) ==
                "Please sharp turn ahead in 80 meters. Slow down now.")
        assert orchestrator.build_message(None, AlertLevel.WARNING) == "Please caution ahead."

    def test_sharp_turn_warning_never_prefixed(self, orchestrator, bus):
        bus.emit(EventType.DRIVER_STATE_CHANGED, {'stress': 90, 'focus': 60})
        assert orchestrator.build_message(factor(), AlertLevel.WARNING) == "Sharp turn ahead in 80 meters."

    def test_stress_at_threshold_not_prefixed(self, orchestrator, bus):
        bus.emit(EventType.DRIVER_STATE_CHANGED, {'stress': 60, 'focus': 80})
        assert orchestrator.build_message(factor(RiskType.LANE_DEVIATION),
                                          AlertLevel.WARNING) == "Stay in your lane."


# ============================================
# Updates
# ============================================

class TestUpdates:
    """Risk, weather and driver-state inputs"""

    def test_top_factors_kept(self, orchestrator):
        factors = [factor(score=s) for s in (90, 80, 70, 60)]
        orchestrator.handle_risk_update(risk_update(40, factors))

        assert orchestrator.get_current_risk_score() == 40
        assert [f.score for f in orchestrator.get_current_top_factors()] == [90, 80, 70]

    def test_dict_payload(self, orchestrator):
        alert = orchestrator.handle_risk_update({'scores': RiskScores(overall=92),
                                                 'factors': [factor()]})
        assert alert.level == AlertLevel.CRITICAL

    def test_malformed_update_ignored(self, orchestrator, sinks):
        assert orchestrator.handle_risk_update({'overall': 99}) is None
        assert orchestrator.handle_risk_update(None) is None
        assert sinks['voice'].calls == []

    def test_weather_adapted_event(self, orchestrator, bus):
        events = []
        bus.subscribe(EventType.WEATHER_ADAPTED, events.append)

        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'rain', 'precipitation_mm_h': 15}})

        assert orchestrator.get_weather_adaptation().condition_label == 'storm'
        assert events[0]['adaptation'].condition_label == 'storm'

    def test_weather_cleared(self, orchestrator, bus):
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'fog'}})
        bus.emit(EventType.WEATHER_UPDATED, {'weather': None})
        assert orchestrator.get_weather_adaptation().condition_label == 'clear'

    def test_unreadable_weather_keeps_previous(self, orchestrator, bus):
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'snow'}})
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'rain', 'precipitation_mm_h': -1}})
        assert orchestrator.get_weather_adaptation().condition_label == 'snow'

    def test_driver_state_adapted_event(self, orchestrator, bus):
        events = []
        bus.subscribe(EventType.DRIVER_STATE_ADAPTED, events.append)

        bus.emit(EventType.DRIVER_STATE_CHANGED, {'state': {'stress': 80, 'focus': 70}})

        adaptation = orchestrator.get_driver_adaptation()
        assert adaptation.stress_level == 80
        assert adaptation.extra_reminder_distance_meters == 50
        assert events[0]['adaptation'] == adaptation

    def test_null_driver_state_ignored(self, orchestrator, bus):
        bus.emit(EventType.DRIVER_STATE_CHANGED, {'state': {'stress': 80}})
        bus.emit(EventType.DRIVER_STATE_CHANGED, {'state': None})
        assert orchestrator.get_driver_adaptation().stress_level == 80


# ============================================
# Lifecycle
# ============================================

class TestLifecycle:
    """init / shutdown state machine"""

    def test_starts_idle(self, bus, dispatcher, config):
        orch = SafetyOrchestrator(bus, dispatcher, config)
        assert orch.state == OrchestratorState.IDLE
        assert orch.handle_risk_update(risk_update(95)) is None

    def test_init_subscribes(self, orchestrator, bus):
        assert orchestrator.state == OrchestratorState.ACTIVE
        assert bus.get_listener_count(EventType.RISK_UPDATE) == 1
        assert bus.get_listener_count(EventType.WEATHER_UPDATED) == 1
        assert bus.get_listener_count(EventType.DRIVER_STATE_CHANGED) == 1

    def test_double_init_does_not_resubscribe(self, orchestrator, bus):
        orchestrator.init()
        assert bus.get_listener_count(EventType.RISK_UPDATE) == 1

    def test_shutdown_is_idempotent(self, orchestrator, bus, sinks):
        send_risk(bus, 65)
        orchestrator.shutdown()
        orchestrator.shutdown()

        assert orchestrator.state == OrchestratorState.IDLE
        assert bus.get_listener_count() == 0
        assert orchestrator.get_cooldown_ledger() == {}

        send_risk(bus, 95)
        assert len(sinks['voice'].calls) == 1

    def test_shutdown_cancels_pending_dispatch(self, bus, config, clock):
        dispatcher = Mock()
        orch = SafetyOrchestrator(bus, dispatcher, config, clock=clock)
        orch.init()
        orch.shutdown()
        dispatcher.cancel_pending.assert_called_once()

    def test_reinit_starts_fresh(self, orchestrator, bus, clock, sinks):
        bus.emit(EventType.WEATHER_UPDATED, {'weather': {'condition': 'storm'}})
        send_risk(bus, 65)
        orchestrator.shutdown()

        orchestrator.init()
        clock.advance(1)
        send_risk(bus, 65)

        assert len(sinks['voice'].calls) == 2
        assert orchestrator.get_weather_adaptation().condition_label == 'clear'
        assert orchestrator.get_statistics()['alertsDispatched']['warning'] == 1


# ============================================
# Bootstrap
# ============================================

FAST = SafetyConfig(bootstrap_base_delay_sec=0.0, bootstrap_timeout_sec=1.0)


class TestBootstrap:
    """Initial driver state"""

    @pytest.mark.asyncio
    async def test_loaded_from_source(self, bus, dispatcher, clock):
        orch = SafetyOrchestrator(bus, dispatcher, FAST, clock=clock,
                                  driver_state_source=Mock(return_value={'stress': 75, 'focus': 50}))
        orch.init()
        await orch.wait_for_bootstrap()

        assert orch.get_driver_adaptation().stress_level == 75
        assert orch.get_statistics()['driverStateOrigin'] == 'source'
        orch.shutdown()

    @pytest.mark.asyncio
    async def test_fallback_to_defaults(self, bus, dispatcher, clock):
        source = Mock(return_value=None)
        orch = SafetyOrchestrator(bus, dispatcher, FAST, clock=clock, driver_state_source=source)
        orch.init()
        await orch.wait_for_bootstrap()

        assert source.call_count == FAST.bootstrap_max_attempts
        assert orch.get_driver_adaptation().stress_level == 20
        assert orch.get_statistics()['driverStateOrigin'] == 'defaults'
        orch.shutdown()

    @pytest.mark.asyncio
    async def test_live_update_wins(self, bus, dispatcher, clock):
        release = asyncio.Event()

        async def slow_source():
            await release.wait()
            return {'stress': 90, 'focus': 30}

        orch = SafetyOrchestrator(bus, dispatcher, FAST, clock=clock, driver_state_source=slow_source)
        orch.init()
        await asyncio.sleep(0)

        bus.emit(EventType.DRIVER_STATE_CHANGED, {'stress': 30, 'focus': 85})
        release.set()
        await orch.wait_for_bootstrap()

        assert orch.get_driver_adaptation().stress_level == 30
        assert orch.get_statistics()['driverStateOrigin'] == 'live'
        orch.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_bootstrap(self, bus, dispatcher, clock):
        async def never_ready():
            await asyncio.sleep(10)

        orch = SafetyOrchestrator(bus, dispatcher, FAST, clock=clock, driver_state_source=never_ready)
        orch.init()
        task = orch._bootstrap_task
        orch.shutdown()
        await asyncio.sleep(0)

        assert task.cancelled() or task.done()

    def test_no_event_loop_uses_defaults(self, bus, dispatcher, clock):
        source = Mock(return_value={'stress': 99})
        orch = SafetyOrchestrator(bus, dispatcher, FAST, clock=clock, driver_state_source=source)
        orch.init()

        source.assert_not_called()
        assert orch.get_driver_adaptation().stress_level == 20
        orch.shutdown()
