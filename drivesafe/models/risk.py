"""
Risk Output Records

Scores, ranked factors and danger-zone hints produced by the risk engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple
import time


class RiskType(str, Enum):
    """Sub-score identifiers"""
    OVERSPEED = "overspeed"
    SHARP_TURN = "sharpTurn"
    COLLISION = "collision"
    LATE_BRAKING = "lateBraking"
    LANE_DEVIATION = "laneDeviation"


class SeverityTier(str, Enum):
    """Risk factor severity buckets"""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class DangerZoneCategory(str, Enum):
    """Map overlay categories"""
    SHARP_TURN = "sharp_turn"
    HAZARD = "hazard"
    SPEED_CAMERA = "speed_camera"
    BRAKING_REQUIRED = "braking_required"


@dataclass(frozen=True)
class RiskScores:
    """
    Per-category risk scores, each an integer in [0, 100]

    overall is derived from the five sub-scores and driver stress only.
    """
    overspeed: int = 0
    sharp_turn: int = 0
    collision: int = 0
    late_braking: int = 0
    lane_deviation: int = 0
    overall: int = 0

    def get(self, risk_type: RiskType) -> int:
        return {
            RiskType.OVERSPEED: self.overspeed,
            RiskType.SHARP_TURN: self.sharp_turn,
            RiskType.COLLISION: self.collision,
            RiskType.LATE_BRAKING: self.late_braking,
            RiskType.LANE_DEVIATION: self.lane_deviation,
        }[risk_type]

    def to_dict(self) -> dict:
        """Convert to dictionary for UI consumers"""
        return {
            'overspeed': self.overspeed,
            'sharpTurn': self.sharp_turn,
            'collision': self.collision,
            'lateBraking': self.late_braking,
            'laneDeviation': self.lane_deviation,
            'overall': self.overall
        }


@dataclass(frozen=True)
class RiskFactor:
    """One contributing risk, shown to the driver and used for alert messages"""
    type: RiskType
    score: int
    reason: str
    distance_meters: float
    severity: SeverityTier

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'score': self.score,
            'reason': self.reason,
            'distance': round(self.distance_meters, 1),
            'severity': self.severity.value
        }


@dataclass(frozen=True)
class DangerZone:
    """Visualisation hint for map overlays; not authoritative"""
    position: Tuple[float, float]
    category: DangerZoneCategory
    distance_meters: float
    severity: float

    def to_dict(self) -> dict:
        return {
            'position': list(self.position),
            'type': self.category.value,
            'distance': round(self.distance_meters, 1),
            'severity': round(self.severity, 1)
        }


@dataclass
class RiskUpdate:
    """Event payload published after every prediction"""
    scores: RiskScores
    factors: List[RiskFactor] = field(default_factory=list)
    danger_zones: List[DangerZone] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            'scores': self.scores.to_dict(),
            'factors': [f.to_dict() for f in self.factors],
            'dangerZones': [z.to_dict() for z in self.danger_zones],
            'timestamp': self.timestamp
        }


ZERO_RISK = RiskScores()

