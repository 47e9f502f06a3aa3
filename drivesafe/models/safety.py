"""
Safety Alert & Adaptation Records

Alert levels, haptic patterns, the ephemeral SafetyAlert and the two
adaptation records the orchestrator replaces wholesale on every weather
or driver-state update.
"""

from dataclasses import dataclass
from enum import Enum


class AlertLevel(str, Enum):
    """Alert escalation levels (lowest first)"""
    WARNING = "warning"
    CAUTION = "caution"
    CRITICAL = "critical"


class HapticPattern(str, Enum):
    """Vibration patterns requested per alert level"""
    NONE = "none"
    MEDIUM = "medium"
    URGENT = "urgent"


# Levels cleared from the cooldown ledger when a level is dispatched
ESCALATION_CLEARS = {
    AlertLevel.CRITICAL: (AlertLevel.WARNING, AlertLevel.CAUTION),
    AlertLevel.CAUTION: (AlertLevel.WARNING,),
    AlertLevel.WARNING: (),
}


@dataclass(frozen=True)
class SafetyAlert:
    """Alert built and dispatched within a single controller step"""
    level: AlertLevel
    risk_score: int
    message: str
    haptic_pattern: HapticPattern = HapticPattern.NONE
    requires_hud_flash: bool = False

    @property
    def is_critical(self) -> bool:
        return self.level == AlertLevel.CRITICAL

    def to_dict(self) -> dict:
        return {
            'level': self.level.value,
            'riskScore': self.risk_score,
            'message': self.message,
            'hapticPattern': self.haptic_pattern.value,
            'requiresHUDFlash': self.requires_hud_flash
        }


@dataclass(frozen=True)
class WeatherAdaptation:
    """Weather-derived safety multipliers"""
    speed_reduction_percent: float = 0.0
    braking_multiplier: float = 1.0
    warning_intensity_multiplier: float = 1.0
    condition_label: str = 'clear'

    def to_dict(self) -> dict:
        return {
            'speedReduction': self.speed_reduction_percent,
            'brakingMultiplier': self.braking_multiplier,
            'warningIntensity': self.warning_intensity_multiplier,
            'weatherCondition': self.condition_label
        }


@dataclass(frozen=True)
class DriverAdaptation:
    """Driver-state-derived voice and reminder adjustments"""
    voice_rate_multiplier: float = 1.0
    voice_pitch_multiplier: float = 1.0
    extra_reminder_distance_meters: float = 0.0
    stress_level: float = 20.0

    def to_dict(self) -> dict:
        return {
            'voiceRate': round(self.voice_rate_multiplier, 3),
            'voicePitch': round(self.voice_pitch_multiplier, 3),
            'extraReminderDistance': self.extra_reminder_distance_meters,
            'stressLevel': self.stress_level
        }


@dataclass(frozen=True)
class HapticPreferences:
    """User haptics preference, read at dispatch time"""
    haptics_enabled: bool = True
    haptics_intensity: float = 1.0
