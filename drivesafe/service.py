"""
Drive Safety Service

Wires the event bus, risk engine, prediction scheduler and safety
orchestrator from one SafetyConfig and the injected output sinks.

Usage:
    service = DriveSafetyService(voice=tts, haptics=motor,
                                 context_provider=aggregator.snapshot)
    await service.start()
    service.publish_weather(WeatherSnapshot(condition='rain'))
    ...
    await service.stop()
"""

import time
from typing import Any, Callable, Optional

from drivesafe.config import SafetyConfig, load_safety_config
from drivesafe.events import EventBus, EventType
from drivesafe.models.context import WeatherSnapshot
from drivesafe.prediction.prediction_scheduler import ContextProvider, PredictionScheduler
from drivesafe.prediction.risk_engine import RiskEngine
from drivesafe.safety.channels import (
    AlertDispatcher,
    AnalyticsSink,
    EventBusHUDFlash,
    HapticActuator,
    HUDFlash,
    PreferencesSource,
    VoiceAnnouncer,
)
from drivesafe.safety.driver_bootstrap import DriverStateSource
from drivesafe.safety.orchestrator import SafetyOrchestrator


class DriveSafetyService:
    """Composition root for the risk engine and the safety orchestrator"""

    def __init__(self,
                 config: SafetyConfig = None,
                 voice: VoiceAnnouncer = None,
                 haptics: HapticActuator = None,
                 hud: HUDFlash = None,
                 analytics: AnalyticsSink = None,
                 preferences: PreferencesSource = None,
                 context_provider: ContextProvider = None,
                 driver_state_source: DriverStateSource = None,
                 event_bus: EventBus = None,
                 clock: Callable[[], float] = time.monotonic,
                 config_dir: str = None):
        """
        Initialize the service

        Args:
            config: SafetyConfig shared by every component (loaded from
                config_dir, or the project config/ directory, when omitted)
            voice / haptics / hud / analytics: Output sinks; console sinks and a
                bus-backed HUD flash are used when omitted
            preferences: Haptics preference (or a callable returning it)
            context_provider: Source of PredictionContext for routine ticks
            driver_state_source: Polled once at start for the initial driver state
            event_bus: Shared bus (a private one when omitted)
            clock: Seconds source for cooldowns
            config_dir: Directory holding safety.yaml
        """
        self.config = config or load_safety_config(config_dir)
        self.event_bus = event_bus or EventBus()

        self.engine = RiskEngine(self.config, self.event_bus)
        self.scheduler = PredictionScheduler(self.engine, context_provider,
                                             self.event_bus, self.config)
        self.dispatcher = AlertDispatcher(
            voice=voice or VoiceAnnouncer(),
            haptics=haptics or HapticActuator(),
            hud=hud or EventBusHUDFlash(self.event_bus),
            analytics=analytics,
            preferences=preferences,
            config=self.config,
        )
        self.orchestrator = SafetyOrchestrator(
            self.event_bus,
            self.dispatcher,
            self.config,
            clock=clock,
            driver_state_source=driver_state_source,
        )

    async def start(self):
        """Activate the orchestrator, then start routine predictions"""
        self.orchestrator.init()
        await self.scheduler.start()
        print("[OK] Drive safety service started")

    async def stop(self):
        """Stop predictions and shut the orchestrator down (idempotent)"""
        await self.scheduler.stop()
        self.orchestrator.shutdown()
        print("[OK] Drive safety service stopped")

    def publish_weather(self, weather: Optional[WeatherSnapshot]):
        """Forward a weather snapshot from the weather provider"""
        self.event_bus.emit(EventType.WEATHER_UPDATED, {'weather': weather})

    def publish_driver_state(self, state: Any):
        """Forward a driver-state estimate from the emotion engine"""
        self.event_bus.emit(EventType.DRIVER_STATE_CHANGED, {'state': state})

    def get_statistics(self) -> dict:
        return {
            'engine': self.engine.get_statistics(),
            'scheduler': self.scheduler.get_statistics(),
            'orchestrator': self.orchestrator.get_statistics()
        }


# Global service instance
_drive_safety_service: Optional[DriveSafetyService] = None


def get_drive_safety_service() -> Optional[DriveSafetyService]:
    """Get the global DriveSafetyService instance"""
    return _drive_safety_service


def init_drive_safety_service(config: SafetyConfig = None, **kwargs) -> DriveSafetyService:
    """Initialize the global DriveSafetyService"""
    global _drive_safety_service
    _drive_safety_service = DriveSafetyService(config, **kwargs)
    return _drive_safety_service
