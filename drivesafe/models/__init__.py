"""
Data Models Package

Input models (pydantic) and output records (dataclasses) for the
driving-risk engine and safety orchestrator.
"""

# Prediction inputs
from .context import (
    GeoPoint,
    WeatherSnapshot,
    Hazard,
    SpeedCamera,
    DriverState,
    PredictionContext,
    coerce_context,
)

# Risk outputs
from .risk import (
    RiskType,
    SeverityTier,
    DangerZoneCategory,
    RiskScores,
    RiskFactor,
    DangerZone,
    RiskUpdate,
    ZERO_RISK,
)

# Safety records
from .safety import (
    AlertLevel,
    HapticPattern,
    ESCALATION_CLEARS,
    SafetyAlert,
    WeatherAdaptation,
    DriverAdaptation,
    HapticPreferences,
)

__all__ = [
    "GeoPoint",
    "WeatherSnapshot",
    "Hazard",
    "SpeedCamera",
    "DriverState",
    "PredictionContext",
    "coerce_context",
    "RiskType",
    "SeverityTier",
    "DangerZoneCategory",
    "RiskScores",
    "RiskFactor",
    "DangerZone",
    "RiskUpdate",
    "ZERO_RISK",
    "AlertLevel",
    "HapticPattern",
    "ESCALATION_CLEARS",
    "SafetyAlert",
    "WeatherAdaptation",
    "DriverAdaptation",
    "HapticPreferences",
]
