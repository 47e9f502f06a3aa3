"""
Driver safety alerting

Weather/driver adaptation, alert channels, driver-state bootstrap and the
SafetyOrchestrator state machine.
"""

from .adaptation import (
    classify_weather_condition,
    compute_weather_adaptation,
    compute_driver_adaptation,
    read_driver_state,
)
from .channels import (
    VoiceAnnouncer,
    HapticActuator,
    HUDFlash,
    EventBusHUDFlash,
    AnalyticsSink,
    AlertDispatcher,
)
from .driver_bootstrap import fetch_driver_state, bootstrap_driver_state
from .orchestrator import (
    OrchestratorState,
    SafetyOrchestrator,
    get_safety_orchestrator,
    init_safety_orchestrator,
)

__all__ = [
    "classify_weather_condition",
    "compute_weather_adaptation",
    "compute_driver_adaptation",
    "read_driver_state",
    "VoiceAnnouncer",
    "HapticActuator",
    "HUDFlash",
    "EventBusHUDFlash",
    "AnalyticsSink",
    "AlertDispatcher",
    "fetch_driver_state",
    "bootstrap_driver_state",
    "OrchestratorState",
    "SafetyOrchestrator",
    "get_safety_orchestrator",
    "init_safety_orchestrator",
]
