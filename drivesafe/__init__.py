"""
drivesafe - Predictive driving-risk engine and adaptive safety alerts

Turns live telemetry, route geometry, hazards, speed cameras, weather and
driver state into risk scores, and risk scores into throttled voice,
haptic and HUD alerts.
"""

from drivesafe.config import SafetyConfig, ConfigManager, load_safety_config
from drivesafe.events import EventBus, EventType, get_event_bus
from drivesafe.prediction.risk_engine import RiskEngine
from drivesafe.prediction.prediction_scheduler import PredictionScheduler
from drivesafe.safety.orchestrator import SafetyOrchestrator
from drivesafe.service import DriveSafetyService, get_drive_safety_service, init_drive_safety_service

__version__ = "1.0.0"

__all__ = [
    "SafetyConfig",
    "ConfigManager",
    "load_safety_config",
    "EventBus",
    "EventType",
    "get_event_bus",
    "RiskEngine",
    "PredictionScheduler",
    "SafetyOrchestrator",
    "DriveSafetyService",
    "get_drive_safety_service",
    "init_drive_safety_service",
]
