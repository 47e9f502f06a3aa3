"""
Weather & Driver-State Adaptation

Pure functions mapping the latest weather snapshot and the latest driver
state to the adaptation records used by the safety orchestrator. No
smoothing and no history: each call describes only its input.
"""

import math
from typing import Any, Optional, Union

from drivesafe.config import SafetyConfig
from drivesafe.models.context import DriverState, WeatherSnapshot
from drivesafe.models.safety import DriverAdaptation, WeatherAdaptation


def classify_weather_condition(weather: Optional[WeatherSnapshot],
                               config: SafetyConfig = None) -> str:
    """
    Map a weather snapshot to an adaptation profile name

    Heavy rain (precipitation above the storm threshold) is treated as storm;
    ice shares the snow profile; clouds and unknown conditions are clear.
    """
    config = config or SafetyConfig()
    if weather is None:
        return 'clear'

    condition = weather.condition
    if condition == 'storm':
        return 'storm'
    if condition == 'rain':
        heavy = weather.precipitation_mm_h > config.heavy_rain_precipitation_mm_h
        return 'storm' if heavy else 'rain'
    if condition in ('snow', 'ice'):
        return 'snow'
    if condition == 'fog':
        return 'fog'
    return 'clear'


def compute_weather_adaptation(weather: Optional[WeatherSnapshot],
                               config: SafetyConfig = None) -> WeatherAdaptation:
    """Build a fresh WeatherAdaptation for the snapshot (clear when None)"""
    config = config or SafetyConfig()
    condition = classify_weather_condition(weather, config)
    profile = config.weather_adaptation.get(condition) or config.weather_adaptation['clear']

    return WeatherAdaptation(
        speed_reduction_percent=profile.speed_reduction_percent,
        braking_multiplier=profile.braking_multiplier,
        warning_intensity_multiplier=profile.warning_intensity_multiplier,
        condition_label=condition,
    )


def _numeric(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if not math.isfinite(value):
        return default
    return float(value)


def read_driver_state(state: Union[DriverState, dict, Any],
                      config: SafetyConfig = None) -> DriverState:
    """Extract stress/focus from any driver-state shape, substituting defaults"""
    config = config or SafetyConfig()
    if isinstance(state, dict):
        stress, focus = state.get('stress'), state.get('focus')
    else:
        stress, focus = getattr(state, 'stress', None), getattr(state, 'focus', None)

    return DriverState(
        stress=_numeric(stress, config.default_driver_stress),
        focus=_numeric(focus, config.default_driver_focus),
    )


def calculate_voice_rate(stress: float, focus: float) -> float:
    """High stress or low focus -> slower speech"""
    if stress > 60:
        return max(0.7, 1.0 - (stress - 60) * 0.005)
    if focus < 50:
        return max(0.8, 1.0 - (50 - focus) * 0.004)
    return 1.0


def calculate_voice_pitch(stress: float) -> float:
    """High stress -> softer, lower pitch"""
    if stress > 60:
        return max(0.8, 1.0 - (stress - 60) * 0.003)
    return 1.0


def calculate_reminder_distance(stress: float, focus: float) -> float:
    """High stress or low focus -> earlier reminders (extra meters)"""
    if stress > 70 or focus < 40:
        return 50
    if stress > 50 or focus < 60:
        return 25
    return 0


def compute_driver_adaptation(state: Union[DriverState, dict, Any],
                              config: SafetyConfig = None) -> DriverAdaptation:
    """Build a fresh DriverAdaptation from a driver state"""
    reading = read_driver_state(state, config)

    return DriverAdaptation(
        voice_rate_multiplier=calculate_voice_rate(reading.stress, reading.focus),
        voice_pitch_multiplier=calculate_voice_pitch(reading.stress),
        extra_reminder_distance_meters=calculate_reminder_distance(reading.stress, reading.focus),
        stress_level=reading.stress,
    )
