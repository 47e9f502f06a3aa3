"""
Risk Engine - Real-time Driving Risk Prediction

Turns one PredictionContext (speed, position, route geometry, hazards,
speed cameras, weather, driver stress) into five sub-scores and one
weighted overall score:

- overspeed:      speed delta over the limit, stress and weather adjusted
- sharp_turn:     circumradius of the nearest upcoming curve within 300 m
- collision:      distance/severity of nearby hazards and cameras
- late_braking:   stopping distance vs. distance to each obstacle
- lane_deviation: stress-only placeholder until lane tracking exists

Overall = operational 0.20 + environmental 0.35 + hazards 0.15 + human 0.30.

predict() never raises: a failing sub-score is logged and scored 0.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from pydantic import ValidationError

from drivesafe.config import SafetyConfig
from drivesafe.events import EventBus, EventType
from drivesafe.geometry.geo_math import (
    circumradius,
    haversine_distance,
    haversine_distances,
    nearest_point_index,
)
from drivesafe.models.context import PredictionContext, WeatherSnapshot, coerce_context
from drivesafe.models.risk import (
    DangerZone,
    DangerZoneCategory,
    RiskFactor,
    RiskScores,
    RiskType,
    RiskUpdate,
    SeverityTier,
    ZERO_RISK,
)


FACTOR_REASONS = {
    RiskType.OVERSPEED: "Speed exceeds limit",
    RiskType.SHARP_TURN: "Sharp curve ahead",
    RiskType.COLLISION: "Nearby hazard detected",
    RiskType.LATE_BRAKING: "Insufficient braking distance",
    RiskType.LANE_DEVIATION: "High stress - stay focused",
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores (Python's round() is banker's)"""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """Clamp to an integer score in [0, 100]; non-finite input scores 0"""
    if value is None or not math.isfinite(value):
        return 0
    return max(0, min(100, round_half_up(value)))


@dataclass(frozen=True)
class UpcomingCurve:
    """Three-point window of the route with a curve tighter than the gentle bound"""
    points: Tuple[Tuple[float, float], Tuple[float, float], Tuple[float, float]]
    radius_m: float
    distance_m: float

    @property
    def apex(self) -> Tuple[float, float]:
        return self.points[1]


@dataclass(frozen=True)
class NearbyObstacle:
    """Hazard or speed camera within the lookahead window"""
    position: Tuple[float, float]
    distance_m: float
    severity: float
    category: DangerZoneCategory


class RiskEngine:
    """
    Stateless-per-call driving risk scorer

    Only the last result is cached for queries; identical contexts always
    produce identical scores.

    Usage:
        engine = RiskEngine(SafetyConfig(), event_bus=bus)
        scores = engine.predict(context)
        factors = engine.get_last_update().factors
    """

    def __init__(self,
                 config: SafetyConfig = None,
                 event_bus: EventBus = None,
                 clock: Callable[[], float] = time.time):
        """
        Initialize risk engine

        Args:
            config: SafetyConfig (defaults when omitted)
            event_bus: Bus to publish RiskUpdate on (optional)
            clock: Timestamp source for published updates
        """
        self.config = config or SafetyConfig()
        self.event_bus = event_bus
        self._clock = clock

        # Cached results
        self._last_prediction: Optional[RiskScores] = None
        self._last_update: Optional[RiskUpdate] = None
        self._danger_zones: List[DangerZone] = []

        # Statistics
        self.total_predictions = 0
        self.degraded_subscores = 0
        self.total_latency_ms = 0.0
        self.last_prediction_time: float = 0

        print("[OK] Risk Engine initialized")
        print(f"   Lookahead: {self.config.lookahead_distance_m:.0f}m")

    # ============================================
    # Main entry point
    # ============================================

    def predict(self, context: Union[PredictionContext, dict]) -> RiskScores:
        """
        Score one navigation snapshot

        Args:
            context: PredictionContext (or a raw dict the aggregator built)

        Returns:
            RiskScores; all zero when the context cannot be read at all
        """
        start_time = time.perf_counter()

        try:
            ctx = coerce_context(context)
        except (ValidationError, TypeError, ValueError) as e:
            print(f"[ENGINE] Unreadable prediction context, scoring zero risk: {e}")
            return self._publish(ZERO_RISK, [], [], start_time)

        stress = self.resolve_driver_stress(ctx)

        curves = self._guard("curve detection", [], self.detect_upcoming_curves, ctx)
        obstacles = self._guard("obstacle scan", [], self.find_nearby_obstacles, ctx)

        overspeed = self._guard_score("overspeed", self.calculate_overspeed_risk, ctx, stress)
        sharp_turn = self._guard_score("sharp turn", self.calculate_sharp_turn_risk, ctx, curves)
        collision = self._guard_score("collision", self.calculate_collision_risk, obstacles, stress)
        late_braking = self._guard_score("late braking", self.calculate_late_braking_risk,
                                         ctx, obstacles, stress)
        lane_deviation = self._guard_score("lane deviation",
                                           self.calculate_lane_deviation_risk, stress)

        overall = self._guard_score("overall", self.calculate_overall_risk,
                                    overspeed, sharp_turn, collision,
                                    late_braking, lane_deviation, stress)

        scores = RiskScores(
            overspeed=overspeed,
            sharp_turn=sharp_turn,
            collision=collision,
            late_braking=late_braking,
            lane_deviation=lane_deviation,
            overall=overall,
        )

        factors = self._guard("risk factors", [], self.extract_risk_factors,
                              scores, curves, obstacles)
        zones = self._guard("danger zones", [], self._build_danger_zones,
                            ctx, curves, obstacles, stress)

        return self._publish(scores, factors, zones, start_time)

    def _publish(self,
                 scores: RiskScores,
                 factors: List[RiskFactor],
                 zones: List[DangerZone],
                 start_time: float) -> RiskScores:
        """Cache the result, update statistics and emit the RiskUpdate"""
        update = RiskUpdate(
            scores=scores,
            factors=factors,
            danger_zones=zones,
            timestamp=self._clock(),
        )

        self._last_prediction = scores
        self._last_update = update
        self._danger_zones = zones

        self.total_predictions += 1
        self.total_latency_ms += (time.perf_counter() - start_time) * 1000
        self.last_prediction_time = update.timestamp

        if self.event_bus:
            self.event_bus.emit(EventType.RISK_UPDATE, update)

        return scores

    def _guard(self, label: str, default, func, *args):
        """Run one analysis step; log and fall back to default on failure"""
        try:
            return func(*args)
        except Exception as e:
            self.degraded_subscores += 1
            print(f"[ENGINE] {label} failed, degrading: {e}")
            return default

    def _guard_score(self, label: str, func, *args) -> int:
        return clamp_score(self._guard(label, 0, func, *args))

    # ============================================
    # Shared inputs
    # ============================================

    def resolve_driver_stress(self, context: PredictionContext) -> float:
        """Driver stress in [0, 100]; the configured default when absent"""
        stress = context.driver_stress_percent
        if stress is None or not math.isfinite(stress):
            stress = self.config.default_driver_stress
        return max(0.0, min(100.0, float(stress)))

    def get_weather_risk_multiplier(self, weather: Optional[WeatherSnapshot]) -> float:
        if weather is None:
            return 1.0
        return self.config.weather_risk_multipliers.get(weather.condition, 1.0)

    def get_road_friction(self, weather: Optional[WeatherSnapshot]) -> float:
        friction = self.config.road_friction
        dry = friction.get('dry', 0.8)
        if weather is None:
            return dry
        return friction.get(weather.condition, dry)

    # ============================================
    # Sub-scores
    # ============================================

    def calculate_overspeed_risk(self, context: PredictionContext, stress: float) -> float:
        """
        Overspeed risk from the speed delta over the limit

        Tiers (delta km/h): <=0 -> 0, <=5 -> 20, <=10 -> 40, <=20 -> 65, else 85
        """
        speed = context.current_speed_kmh
        limit = context.speed_limit_kmh
        if speed <= 0 or limit <= 0:
            return 0

        delta = speed - limit
        # At or under the limit there is no overspeed risk, whatever the stress
        if delta <= 0:
            return 0

        risk = self.config.overspeed_max_risk
        for max_delta, tier_risk in self.config.overspeed_tiers:
            if delta <= max_delta:
                risk = tier_risk
                break

        if stress > self.config.stress_overspeed_threshold:
            risk = min(100, risk + self.config.stress_overspeed_bonus)

        return risk * self.get_weather_risk_multiplier(context.weather)

    def classify_curve_radius(self, radius_m: float) -> int:
        """Base risk for a curve radius; upper bounds are exclusive"""
        for max_radius, base_risk in self.config.curve_radius_tiers:
            if radius_m < max_radius:
                return base_risk
        return 0

    def get_curve_distance_multiplier(self, distance_m: float) -> float:
        cfg = self.config
        if distance_m < cfg.curve_near_distance_m:
            return cfg.curve_near_multiplier
        if distance_m < cfg.curve_mid_distance_m:
            return cfg.curve_mid_multiplier
        if distance_m > cfg.curve_far_distance_m:
            return cfg.curve_far_multiplier
        return 1.0

    def get_speed_multiplier(self, context: PredictionContext) -> float:
        """1 + max(0, speed/limit - 1) * factor; neutral without a usable limit"""
        if context.speed_limit_kmh <= 0:
            return 1.0
        ratio = context.current_speed_kmh / context.speed_limit_kmh
        return 1.0 + max(0.0, ratio - 1.0) * self.config.curve_speed_factor

    def calculate_sharp_turn_risk(self,
                                  context: PredictionContext,
                                  curves: List[UpcomingCurve]) -> float:
        """Sharp turn risk for the nearest upcoming curve"""
        if len(context.route) < 3 or not curves:
            return 0

        nearest = curves[0]
        base_risk = self.classify_curve_radius(nearest.radius_m)
        if base_risk == 0:
            return 0

        return (base_risk *
                self.get_curve_distance_multiplier(nearest.distance_m) *
                self.get_speed_multiplier(context) *
                self.get_weather_risk_multiplier(context.weather))

    def calculate_collision_risk(self,
                                 obstacles: List[NearbyObstacle],
                                 stress: float) -> float:
        """Highest proximity risk across hazards and cameras in range"""
        if not obstacles:
            return 0

        cfg = self.config
        max_risk = 0.0
        for obstacle in obstacles:
            risk = 0.0
            for max_distance, tier_risk in cfg.collision_distance_tiers:
                if obstacle.distance_m < max_distance:
                    risk = tier_risk
                    break

            if obstacle.severity >= cfg.severe_hazard_threshold:
                risk = min(100.0, risk * cfg.severe_hazard_multiplier)

            max_risk = max(max_risk, risk)

        # High stress slows reaction
        if stress > cfg.stress_collision_threshold:
            max_risk = min(100.0, max_risk + cfg.stress_collision_bonus)

        return max_risk

    def calculate_stopping_distance(self, speed_kmh: float, reaction_time_sec: float,
                                    friction: float) -> float:
        """Reaction distance + braking distance (v^2 / (250 * mu)), meters"""
        reaction_dist = (speed_kmh / 3.6) * reaction_time_sec
        braking_dist = (speed_kmh ** 2) / (250 * friction)
        return reaction_dist + braking_dist

    def get_reaction_time(self, stress: float) -> float:
        if stress > self.config.stress_reaction_threshold:
            return self.config.reaction_time_stressed_sec
        return self.config.reaction_time_normal_sec

    def stopping_distance_for(self, context: PredictionContext, stress: float) -> float:
        return self.calculate_stopping_distance(
            context.current_speed_kmh,
            self.get_reaction_time(stress),
            self.get_road_friction(context.weather),
        )

    def braking_risk_for(self, stopping_distance: float, available_distance: float) -> float:
        """Risk of one obstacle given the stopping distance"""
        deficit = stopping_distance - available_distance
        if deficit > 0:
            return min(100.0, (deficit / stopping_distance) * self.config.braking_deficit_factor)

        margin = available_distance - stopping_distance
        for max_margin, tier_risk in self.config.braking_margin_tiers:
            if margin < max_margin:
                return tier_risk
        return 0.0

    def calculate_late_braking_risk(self,
                                    context: PredictionContext,
                                    obstacles: List[NearbyObstacle],
                                    stress: float) -> float:
        """Worst stopping-distance shortfall over upcoming obstacles"""
        if context.current_speed_kmh < self.config.min_braking_speed_kmh:
            return 0
        if not obstacles:
            return 0

        stopping = self.stopping_distance_for(context, stress)
        return max(self.braking_risk_for(stopping, o.distance_m) for o in obstacles)

    def calculate_lane_deviation_risk(self, stress: float) -> float:
        """
        Lane deviation risk

        Placeholder driven only by driver stress; real lane tracking needs
        lane-level map data or camera input.
        """
        for min_stress, risk in self.config.lane_deviation_tiers:
            if stress > min_stress:
                return risk
        return 0

    def calculate_overall_risk(self,
                               overspeed: int,
                               sharp_turn: int,
                               collision: int,
                               late_braking: int,
                               lane_deviation: int,
                               stress: float) -> int:
        """
        Weighted overall risk

        (overspeed*0.4 + late_braking*0.6)*0.20
        + (sharp_turn*0.7 + lane_deviation*0.3)*0.35
        + collision*0.15 + (stress/100*100)*0.30, then clamp and round.
        """
        cfg = self.config
        weights = cfg.risk_weights

        operational = ((overspeed * cfg.overspeed_weight +
                        late_braking * cfg.late_braking_weight) * weights['operational'])
        environmental = ((sharp_turn * cfg.sharp_turn_weight +
                          lane_deviation * cfg.lane_deviation_weight) * weights['environmental'])
        hazard_risk = collision * weights['hazards']
        human_factor = (stress / 100) * 100 * weights['human']

        overall = operational + environmental + hazard_risk + human_factor
        return round_half_up(max(0.0, min(100.0, overall)))

    # ============================================
    # Geometry scans
    # ============================================

    def detect_upcoming_curves(self, context: PredictionContext) -> List[UpcomingCurve]:
        """
        Curves within the lookahead window, nearest first

        Walks forward from the route point nearest the vehicle, accumulating
        segment length, and checks each consecutive 3-point window.
        """
        route = [p.as_tuple() for p in context.route]
        if len(route) < 3:
            return []

        lookahead = self.config.lookahead_distance_m
        gentle_bound = self.config.curve_radius_tiers[-1][0]

        start_idx = nearest_point_index(route, context.position.as_tuple())
        curves: List[UpcomingCurve] = []
        accumulated = 0.0

        for i in range(start_idx, len(route) - 2):
            segment = haversine_distance(route[i][0], route[i][1],
                                         route[i + 1][0], route[i + 1][1])
            if not math.isfinite(segment):
                continue

            accumulated += segment
            if accumulated > lookahead:
                break

            radius = circumradius(route[i], route[i + 1], route[i + 2])
            if radius < gentle_bound:
                curves.append(UpcomingCurve(
                    points=(route[i], route[i + 1], route[i + 2]),
                    radius_m=radius,
                    distance_m=accumulated,
                ))

        return curves

    def find_nearby_obstacles(self, context: PredictionContext) -> List[NearbyObstacle]:
        """Hazards and speed cameras within the lookahead distance, nearest first"""
        if not context.position.is_finite():
            return []

        origin = context.position.as_tuple()
        lookahead = self.config.lookahead_distance_m
        nearby: List[NearbyObstacle] = []

        candidates = (
            [(h.position.as_tuple(), h.severity, DangerZoneCategory.HAZARD)
             for h in context.hazards] +
            [(c.position.as_tuple(), self.config.camera_severity, DangerZoneCategory.SPEED_CAMERA)
             for c in context.speed_cameras]
        )
        if not candidates:
            return nearby

        distances = haversine_distances(origin, [c[0] for c in candidates])
        for (position, severity, category), distance in zip(candidates, distances):
            distance = float(distance)
            if math.isfinite(distance) and distance <= lookahead:
                nearby.append(NearbyObstacle(position, distance, float(severity), category))

        nearby.sort(key=lambda o: o.distance_m)
        return nearby

    # ============================================
    # Derived views
    # ============================================

    def get_severity_tier(self, score: int) -> SeverityTier:
        cfg = self.config
        if score >= cfg.factor_critical_score:
            return SeverityTier.CRITICAL
        if score >= cfg.factor_high_score:
            return SeverityTier.HIGH
        if score >= cfg.factor_moderate_score:
            return SeverityTier.MODERATE
        return SeverityTier.LOW

    def extract_risk_factors(self,
                             scores: RiskScores,
                             curves: List[UpcomingCurve],
                             obstacles: List[NearbyObstacle]) -> List[RiskFactor]:
        """Sub-scores above the factor threshold, highest score first"""
        curve_distance = curves[0].distance_m if curves else 0.0
        obstacle_distance = obstacles[0].distance_m if obstacles else 0.0

        distances = {
            RiskType.OVERSPEED: 0.0,
            RiskType.SHARP_TURN: curve_distance,
            RiskType.COLLISION: obstacle_distance,
            RiskType.LATE_BRAKING: obstacle_distance,
            RiskType.LANE_DEVIATION: 0.0,
        }

        factors = []
        for risk_type in RiskType:
            score = scores.get(risk_type)
            if score > self.config.factor_threshold:
                factors.append(RiskFactor(
                    type=risk_type,
                    score=score,
                    reason=FACTOR_REASONS[risk_type],
                    distance_meters=distances[risk_type],
                    severity=self.get_severity_tier(score),
                ))

        # sorted() is stable: ties keep declaration order
        return sorted(factors, key=lambda f: f.score, reverse=True)

    def _build_danger_zones(self,
                            context: PredictionContext,
                            curves: List[UpcomingCurve],
                            obstacles: List[NearbyObstacle],
                            stress: float) -> List[DangerZone]:
        """Map overlay hints for detected curves and obstacles"""
        zones = [
            DangerZone(curve.apex, DangerZoneCategory.SHARP_TURN,
                       curve.distance_m, float(self.classify_curve_radius(curve.radius_m)))
            for curve in curves
        ]

        zones.extend(
            DangerZone(o.position, o.category, o.distance_m, o.severity)
            for o in obstacles
        )

        if context.current_speed_kmh >= self.config.min_braking_speed_kmh and obstacles:
            stopping = self.stopping_distance_for(context, stress)
            for o in obstacles:
                if o.distance_m < stopping:
                    zones.append(DangerZone(o.position, DangerZoneCategory.BRAKING_REQUIRED,
                                            o.distance_m, self.braking_risk_for(stopping, o.distance_m)))

        return zones

    # ============================================
    # Query API
    # ============================================

    def get_last_prediction(self) -> Optional[RiskScores]:
        """Last computed scores (None before the first prediction)"""
        return self._last_prediction

    def get_last_update(self) -> Optional[RiskUpdate]:
        return self._last_update

    def get_danger_zones(self) -> List[DangerZone]:
        """Copy of the danger zones from the last prediction"""
        return list(self._danger_zones)

    def get_statistics(self) -> dict:
        """Get engine statistics"""
        avg_latency = (self.total_latency_ms / self.total_predictions
                       if self.total_predictions else 0.0)
        return {
            'totalPredictions': self.total_predictions,
            'degradedSubscores': self.degraded_subscores,
            'avgLatencyMs': round(avg_latency, 3),
            'lastPredictionTime': self.last_prediction_time,
            'lastOverall': self._last_prediction.overall if self._last_prediction else None
        }

    def reset(self):
        """Drop cached results"""
        self._last_prediction = None
        self._last_update = None
        self._danger_zones = []


# Global risk engine instance
_risk_engine: Optional[RiskEngine] = None


def get_risk_engine() -> Optional[RiskEngine]:
    """Get the global RiskEngine instance"""
    return _risk_engine


def init_risk_engine(config: SafetyConfig = None, event_bus: EventBus = None) -> RiskEngine:
    """Initialize the global RiskEngine"""
    global _risk_engine
    _risk_engine = RiskEngine(config, event_bus)
    return _risk_engine
