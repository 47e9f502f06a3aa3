"""
Safety Orchestrator - Adaptive Driver Alerting

Subscribes to risk, weather and driver-state updates and turns risk scores
into throttled multi-channel alerts.

State machine:
- idle:   not subscribed (initial, and after shutdown())
- active: subscribed; init() -> active, shutdown() -> idle, re-init allowed

Alert levels (on overall risk x weather warning intensity):
- critical >= 90: voice + urgent haptic + red HUD flash
- caution  >= 75: voice + medium haptic
- warning  >= 60: voice only

Cooldowns (warning 10s, caution 8s, critical 5s) suppress repeats of a
level, except that critical alerts always break through. Dispatching a
level deletes the ledger entries of the levels below it, so the next
lower-level alert after an escalation fires immediately.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from drivesafe.config import SafetyConfig
from drivesafe.events import EventBus, EventType
from drivesafe.models.context import WeatherSnapshot
from drivesafe.models.risk import RiskFactor, RiskScores, RiskType, RiskUpdate
from drivesafe.models.safety import (
    AlertLevel,
    DriverAdaptation,
    ESCALATION_CLEARS,
    HapticPattern,
    SafetyAlert,
    WeatherAdaptation,
)
from drivesafe.prediction.risk_engine import round_half_up
from drivesafe.safety.adaptation import compute_driver_adaptation, compute_weather_adaptation
from drivesafe.safety.channels import AlertDispatcher
from drivesafe.safety.driver_bootstrap import DriverStateSource, bootstrap_driver_state


class OrchestratorState(str, Enum):
    """Controller lifecycle states"""
    IDLE = "idle"
    ACTIVE = "active"


# Checked highest first
LEVEL_ORDER = (AlertLevel.CRITICAL, AlertLevel.CAUTION, AlertLevel.WARNING)

LEVEL_HAPTICS = {
    AlertLevel.WARNING: HapticPattern.NONE,
    AlertLevel.CAUTION: HapticPattern.MEDIUM,
    AlertLevel.CRITICAL: HapticPattern.URGENT,
}

# (factor type) -> level -> template; 'default' covers the other levels.
# {prefix} is "Please " for stressed drivers, {distance} is whole meters.
MESSAGE_TEMPLATES = {
    RiskType.SHARP_TURN: {
        AlertLevel.CRITICAL: "{prefix}Sharp turn ahead in {distance} meters. Slow down now.",
        AlertLevel.CAUTION: "{prefix}Prepare for sharp turn in {distance} meters.",
        'default': "Sharp turn ahead in {distance} meters.",
    },
    RiskType.OVERSPEED: {
        AlertLevel.CRITICAL: "{prefix}Reduce speed immediately. Current speed too high.",
        'default': "{prefix}Approaching speed limit. Slow down.",
    },
    RiskType.COLLISION: {
        AlertLevel.CRITICAL: "{prefix}Hazard ahead! Slow down in {distance} meters.",
        'default': "{prefix}Hazard detected ahead. Be prepared.",
    },
    RiskType.LATE_BRAKING: {
        AlertLevel.CRITICAL: "{prefix}Brake now. Insufficient stopping distance.",
        'default': "{prefix}Begin braking in {distance} meters.",
    },
    RiskType.LANE_DEVIATION: {
        'default': "{prefix}Stay in your lane.",
    },
}

GENERIC_MESSAGE = "{prefix}Caution ahead."

STRESSED_PREFIX = "Please "


class SafetyOrchestrator:
    """
    Stateful alert controller

    The cooldown ledger (level -> last dispatch time) is the only
    long-lived mutable state; adaptation records are replaced wholesale.

    Usage:
        orchestrator = SafetyOrchestrator(bus, dispatcher, clock=time.monotonic)
        orchestrator.init()
        bus.emit(EventType.RISK_UPDATE, update)   # may dispatch an alert
        orchestrator.shutdown()
    """

    def __init__(self,
                 event_bus: EventBus = None,
                 dispatcher: AlertDispatcher = None,
                 config: SafetyConfig = None,
                 clock: Callable[[], float] = time.monotonic,
                 driver_state_source: DriverStateSource = None):
        """
        Initialize safety orchestrator

        Args:
            event_bus: Bus carrying risk/weather/driver-state updates
            dispatcher: AlertDispatcher wired to the output sinks
            config: SafetyConfig (thresholds, cooldowns, adaptation tables)
            clock: Seconds source for cooldowns (monotonic by default)
            driver_state_source: Callable polled for the initial driver state
        """
        self.config = config or SafetyConfig()
        self.event_bus = event_bus or EventBus()
        self.dispatcher = dispatcher or AlertDispatcher(config=self.config)
        self.driver_state_source = driver_state_source
        self._clock = clock

        self.state = OrchestratorState.IDLE
        self._unsubscribers: List[Callable[[], None]] = []
        self._bootstrap_task: Optional[asyncio.Task] = None
        self._generation = 0

        self._reset_runtime_state()

        print("[SAFETY] Safety Orchestrator created")

    def _reset_runtime_state(self):
        """Fresh ledger, default adaptations, no risk"""
        self._cooldown_ledger: Dict[AlertLevel, float] = {}
        self._weather_adaptation = compute_weather_adaptation(None, self.config)
        self._driver_adaptation = compute_driver_adaptation({}, self.config)
        self._driver_state_received = False
        self._current_risk_score = 0
        self._current_top_factors: List[RiskFactor] = []

        # Statistics
        self.alerts_dispatched: Dict[str, int] = {level.value: 0 for level in AlertLevel}
        self.alerts_suppressed = 0
        self.risk_updates_received = 0
        self.driver_state_origin = "defaults"

    @property
    def is_active(self) -> bool:
        return self.state == OrchestratorState.ACTIVE

    # ============================================
    # Lifecycle
    # ============================================

    def init(self):
        """Subscribe to updates and start the driver-state bootstrap"""
        if self.is_active:
            print("[SAFETY] Already initialized")
            return

        print("[SAFETY] Initializing safety system...")
        self._generation += 1
        self._reset_runtime_state()

        self._unsubscribers = [
            self.event_bus.subscribe(EventType.RISK_UPDATE, self.handle_risk_update),
            self.event_bus.subscribe(EventType.WEATHER_UPDATED, self.handle_weather_update),
            self.event_bus.subscribe(EventType.DRIVER_STATE_CHANGED, self.handle_driver_state_change),
        ]
        self.state = OrchestratorState.ACTIVE

        self._start_bootstrap()
        print("[SAFETY] Safety system ready")

    def shutdown(self):
        """Unsubscribe, cancel background work and clear the cooldown ledger (idempotent)"""
        if not self.is_active:
            return

        print("[SAFETY] Shutting down safety system")

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self._bootstrap_task and not self._bootstrap_task.done():
            self._bootstrap_task.cancel()
        self._bootstrap_task = None

        self.dispatcher.cancel_pending()
        self._cooldown_ledger.clear()
        self.state = OrchestratorState.IDLE

    def _start_bootstrap(self):
        if self.driver_state_source is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            print("[WARN] No running event loop, skipping driver state bootstrap (using defaults)")
            return

        self._bootstrap_task = loop.create_task(self._run_bootstrap(self._generation))

    async def _run_bootstrap(self, generation: int):
        state, from_source = await bootstrap_driver_state(self.driver_state_source, self.config)

        # Stale after shutdown/re-init, or superseded by a live update
        if generation != self._generation or not self.is_active:
            return
        if self._driver_state_received:
            print("[SAFETY] Live driver state arrived first, discarding bootstrap result")
            return

        self.driver_state_origin = "source" if from_source else "defaults"
        self._apply_driver_state(state)

    async def wait_for_bootstrap(self):
        """Await the initial driver-state fetch, if one is running"""
        task = self._bootstrap_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ============================================
    # Event handlers
    # ============================================

    def handle_risk_update(self, update: Any) -> Optional[SafetyAlert]:
        """
        Evaluate one risk update and dispatch an alert if warranted

        Returns:
            The dispatched alert, or None (no threshold met, or in cooldown)
        """
        if not self.is_active:
            return None

        scores, factors = self._read_risk_update(update)
        if scores is None:
            return None

        self.risk_updates_received += 1
        self._current_risk_score = scores.overall
        self._current_top_factors = list(factors[:self.config.top_factor_count])

        alert = self.evaluate(scores, factors)
        if alert is None:
            return None

        return alert if self.process_alert(alert) else None

    def handle_weather_update(self, payload: Any):
        """Replace the weather adaptation from a weather:updated payload"""
        weather = payload.get('weather') if isinstance(payload, dict) and 'weather' in payload else payload

        if weather is not None and not isinstance(weather, WeatherSnapshot):
            try:
                weather = WeatherSnapshot.model_validate(weather)
            except ValidationError as e:
                print(f"[SAFETY] Ignoring unreadable weather update: {e}")
                return

        self._weather_adaptation = compute_weather_adaptation(weather, self.config)
        adaptation = self._weather_adaptation
        print(f"[SAFETY] Weather adaptation: {adaptation.condition_label} "
              f"(warning x{adaptation.warning_intensity_multiplier}, "
              f"braking x{adaptation.braking_multiplier})")

        self.event_bus.emit(EventType.WEATHER_ADAPTED, {
            'adaptation': adaptation,
            'timestamp': self._clock()
        })

    def handle_driver_state_change(self, payload: Any):
        """Replace the driver adaptation from an emotion:stateChanged payload"""
        state = payload.get('state') if isinstance(payload, dict) and 'state' in payload else payload

        if state is None:
            print("[WARN] Received null driver state")
            return

        self._driver_state_received = True
        self.driver_state_origin = "live"
        self._apply_driver_state(state)

    def _apply_driver_state(self, state: Any):
        self._driver_adaptation = compute_driver_adaptation(state, self.config)
        adaptation = self._driver_adaptation
        print(f"[SAFETY] Driver state adaptation: stress={adaptation.stress_level:.0f} "
              f"voiceRate={adaptation.voice_rate_multiplier:.2f}")

        self.event_bus.emit(EventType.DRIVER_STATE_ADAPTED, {
            'adaptation': adaptation,
            'timestamp': self._clock()
        })

    @staticmethod
    def _read_risk_update(update: Any):
        if isinstance(update, RiskUpdate):
            return update.scores, update.factors
        if isinstance(update, dict) and isinstance(update.get('scores'), RiskScores):
            return update['scores'], list(update.get('factors') or [])
        print(f"[SAFETY] Ignoring malformed risk update: {type(update).__name__}")
        return None, []

    # ============================================
    # Alert construction
    # ============================================

    def get_adapted_score(self, overall: int) -> float:
        """Overall risk scaled by the weather warning intensity"""
        return overall * self._weather_adaptation.warning_intensity_multiplier

    def select_alert_level(self, adapted_score: float) -> Optional[AlertLevel]:
        """Highest level whose threshold the score meets"""
        thresholds = self.config.alert_thresholds
        for level in LEVEL_ORDER:
            if adapted_score >= thresholds[level.value]:
                return level
        return None

    def evaluate(self, scores: RiskScores, factors: List[RiskFactor]) -> Optional[SafetyAlert]:
        """Build the alert this risk warrants (no cooldown check)"""
        level = self.select_alert_level(self.get_adapted_score(scores.overall))
        if level is None:
            return None

        top_factor = factors[0] if factors else None
        return SafetyAlert(
            level=level,
            risk_score=scores.overall,
            message=self.build_message(top_factor, level),
            haptic_pattern=LEVEL_HAPTICS[level],
            requires_hud_flash=level == AlertLevel.CRITICAL,
        )

    def build_message(self, factor: Optional[RiskFactor], level: AlertLevel) -> str:
        """Spoken message for the top factor, softened for stressed drivers"""
        stressed = self._driver_adaptation.stress_level > self.config.stress_message_threshold
        prefix = STRESSED_PREFIX if stressed else ""

        if factor is None:
            template = GENERIC_MESSAGE
            distance = 0
        else:
            templates = MESSAGE_TEMPLATES.get(factor.type, {})
            template = templates.get(level) or templates.get('default') or GENERIC_MESSAGE
            distance = round_half_up(factor.distance_meters)

        message = template.format(prefix="", distance=distance)
        if prefix and "{prefix}" in template:
            message = prefix + message[:1].lower() + message[1:]
        return message

    # ============================================
    # Cooldown & dispatch
    # ============================================

    def is_in_cooldown(self, level: AlertLevel, now: float) -> bool:
        last_fired = self._cooldown_ledger.get(level)
        if last_fired is None:
            return False
        return (now - last_fired) < self.config.cooldown_for(level.value)

    def process_alert(self, alert: SafetyAlert) -> bool:
        """
        Apply the cooldown gate, dispatch and update the ledger

        Returns:
            True if the alert was dispatched
        """
        now = self._clock()

        # Critical alerts always break through
        if alert.level != AlertLevel.CRITICAL and self.is_in_cooldown(alert.level, now):
            self.alerts_suppressed += 1
            return False

        self.dispatcher.dispatch(alert)

        self._cooldown_ledger[alert.level] = now
        for lower in ESCALATION_CLEARS[alert.level]:
            self._cooldown_ledger.pop(lower, None)

        self.alerts_dispatched[alert.level.value] += 1
        print(f"[SAFETY] {alert.level.value.upper()} alert (risk {alert.risk_score}): {alert.message}")

        self.event_bus.emit(EventType.SAFETY_ALERT, {
            'alert': alert,
            'timestamp': now
        })
        return True

    # ============================================
    # Query API
    # ============================================

    def get_weather_adaptation(self) -> WeatherAdaptation:
        return self._weather_adaptation

    def get_driver_adaptation(self) -> DriverAdaptation:
        return self._driver_adaptation

    def get_current_risk_score(self) -> int:
        return self._current_risk_score

    def get_current_top_factors(self) -> List[RiskFactor]:
        """Copy of the top factors from the last risk update"""
        return list(self._current_top_factors)

    def get_cooldown_ledger(self) -> Dict[str, float]:
        """Copy of level -> last dispatch time"""
        return {level.value: ts for level, ts in self._cooldown_ledger.items()}

    def get_statistics(self) -> dict:
        """Get orchestrator statistics"""
        return {
            'state': self.state.value,
            'riskUpdates': self.risk_updates_received,
            'driverStateOrigin': self.driver_state_origin,
            'alertsDispatched': dict(self.alerts_dispatched),
            'alertsSuppressed': self.alerts_suppressed,
            'currentRiskScore': self._current_risk_score,
            'weather': self._weather_adaptation.to_dict(),
            'driver': self._driver_adaptation.to_dict(),
            'dispatch': self.dispatcher.get_statistics()
        }


# Global orchestrator instance
_safety_orchestrator: Optional[SafetyOrchestrator] = None


def get_safety_orchestrator() -> Optional[SafetyOrchestrator]:
    """Get the global SafetyOrchestrator instance"""
    return _safety_orchestrator


def init_safety_orchestrator(event_bus: EventBus = None,
                             dispatcher: AlertDispatcher = None,
                             config: SafetyConfig = None,
                             driver_state_source: DriverStateSource = None) -> SafetyOrchestrator:
    """Initialize the global SafetyOrchestrator"""
    global _safety_orchestrator
    _safety_orchestrator = SafetyOrchestrator(event_bus, dispatcher, config,
                                              driver_state_source=driver_state_source)
    return _safety_orchestrator
