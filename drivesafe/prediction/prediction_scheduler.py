"""
Prediction Scheduler

Drives the risk engine:
- Routine recompute every 2 seconds (configurable) as a background task
- Immediate out-of-band recompute when telemetry changes significantly

Each recompute runs synchronously to completion on the event loop, so
there is never more than one prediction in flight.
"""

import asyncio
import time
from typing import Callable, Optional, Union

from drivesafe.config import SafetyConfig
from drivesafe.events import EventBus, EventType
from drivesafe.geometry.geo_math import haversine_distance, heading_difference
from drivesafe.models.context import PredictionContext, coerce_context
from drivesafe.models.risk import RiskScores
from drivesafe.prediction.risk_engine import RiskEngine


ContextProvider = Callable[[], Optional[Union[PredictionContext, dict]]]


class PredictionScheduler:
    """
    Periodic + event-driven prediction trigger

    Usage:
        scheduler = PredictionScheduler(engine, context_provider=aggregator.snapshot)
        await scheduler.start()
        scheduler.on_telemetry(context)   # recomputes now if the change is significant
        # ... later ...
        await scheduler.stop()
    """

    def __init__(self,
                 engine: RiskEngine,
                 context_provider: ContextProvider = None,
                 event_bus: EventBus = None,
                 config: SafetyConfig = None,
                 interval: float = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize prediction scheduler

        Args:
            engine: RiskEngine to drive
            context_provider: Returns the current context (None skips a tick).
                When omitted, the latest telemetry passed to on_telemetry() is used.
            event_bus: Bus for ai:predictionTick events (optional)
            config: SafetyConfig (interval and change thresholds)
            interval: Seconds between routine ticks (overrides config)
            clock: Timestamp source
        """
        self.engine = engine
        self.context_provider = context_provider
        self.event_bus = event_bus
        self.config = config or engine.config
        self.interval = interval if interval is not None else self.config.prediction_interval_sec
        self._clock = clock

        self._running = False
        self._task: Optional[asyncio.Task] = None

        # Latest telemetry and the context of the last computed prediction
        self._latest_context: Optional[PredictionContext] = None
        self._last_computed: Optional[PredictionContext] = None

        # Statistics
        self.total_ticks = 0
        self.total_immediate = 0
        self.skipped_ticks = 0
        self.provider_errors = 0
        self.last_tick_time: float = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self):
        """Start the periodic prediction task"""
        if self._running:
            print("[SCHEDULER] Already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._tick_loop())
        print(f"[SCHEDULER] Prediction loop started (every {self.interval:.1f}s)")

    async def stop(self):
        """Stop the periodic task (idempotent)"""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            print("[SCHEDULER] Prediction loop stopped")

    async def _tick_loop(self):
        """Routine recompute loop"""
        while self._running:
            try:
                self.tick()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(f"[SCHEDULER] Tick error: {e}")
                await asyncio.sleep(self.interval)

    # ============================================
    # Triggers
    # ============================================

    def tick(self) -> Optional[RiskScores]:
        """Run one routine recompute"""
        now = self._clock()
        self.total_ticks += 1
        self.last_tick_time = now

        if self.event_bus:
            self.event_bus.emit(EventType.PREDICTION_TICK, {'timestamp': now})

        context = self._current_context()
        if context is None:
            self.skipped_ticks += 1
            return None

        return self._run(context)

    def request_recompute(self,
                          context: Union[PredictionContext, dict] = None) -> Optional[RiskScores]:
        """
        Recompute immediately, outside the periodic schedule

        Args:
            context: Context to score; the current context when omitted
        """
        if context is not None:
            try:
                self._latest_context = coerce_context(context)
            except (TypeError, ValueError) as e:
                print(f"[SCHEDULER] Ignoring unreadable context: {e}")
                return None

        context = self._current_context()
        if context is None:
            return None

        self.total_immediate += 1
        return self._run(context)

    def on_telemetry(self, context: Union[PredictionContext, dict]) -> bool:
        """
        Record fresh telemetry; recompute now if it changed significantly

        Returns:
            True if an immediate recompute ran
        """
        try:
            context = coerce_context(context)
        except (TypeError, ValueError) as e:
            print(f"[SCHEDULER] Ignoring unreadable telemetry: {e}")
            return False

        self._latest_context = context

        if not self.is_significant_change(self._last_computed, context):
            return False

        self.total_immediate += 1
        self._run(context)
        return True

    def is_significant_change(self,
                              previous: Optional[PredictionContext],
                              current: PredictionContext) -> bool:
        """Speed, heading, displacement or weather changed beyond thresholds"""
        if previous is None:
            return True

        cfg = self.config
        if abs(current.current_speed_kmh - previous.current_speed_kmh) >= cfg.significant_speed_delta_kmh:
            return True

        if heading_difference(current.heading_deg, previous.heading_deg) >= cfg.significant_heading_delta_deg:
            return True

        moved = haversine_distance(previous.position.lat, previous.position.lng,
                                   current.position.lat, current.position.lng)
        if moved >= cfg.significant_displacement_m:
            return True

        previous_condition = previous.weather.condition if previous.weather else None
        current_condition = current.weather.condition if current.weather else None
        return previous_condition != current_condition

    # ============================================
    # Internals
    # ============================================

    def _current_context(self) -> Optional[PredictionContext]:
        if self.context_provider is None:
            return self._latest_context

        try:
            context = self.context_provider()
        except Exception as e:
            self.provider_errors += 1
            print(f"[SCHEDULER] Context provider failed: {e}")
            return None

        if context is None:
            return None

        try:
            return coerce_context(context)
        except (TypeError, ValueError) as e:
            self.provider_errors += 1
            print(f"[SCHEDULER] Context provider returned unreadable context: {e}")
            return None

    def _run(self, context: PredictionContext) -> RiskScores:
        self._last_computed = context
        return self.engine.predict(context)

    def get_statistics(self) -> dict:
        """Get scheduler statistics"""
        return {
            'running': self._running,
            'interval': self.interval,
            'totalTicks': self.total_ticks,
            'immediateRecomputes': self.total_immediate,
            'skippedTicks': self.skipped_ticks,
            'providerErrors': self.provider_errors,
            'lastTickTime': self.last_tick_time
        }


# Global scheduler instance
_prediction_scheduler: Optional[PredictionScheduler] = None


def get_prediction_scheduler() -> Optional[PredictionScheduler]:
    """Get the global PredictionScheduler instance"""
    return _prediction_scheduler


def init_prediction_scheduler(engine: RiskEngine,
                              context_provider: ContextProvider = None,
                              event_bus: EventBus = None) -> PredictionScheduler:
    """Initialize the global PredictionScheduler"""
    global _prediction_scheduler
    _prediction_scheduler = PredictionScheduler(engine, context_provider, event_bus)
    return _prediction_scheduler
