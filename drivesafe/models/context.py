"""
Prediction Input Models

Pydantic models for everything the navigation-state aggregator hands to
the risk engine on each tick: position, route geometry, weather,
hazards, speed cameras and the driver-state estimate.
"""

import math
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


WeatherCondition = Literal['clear', 'clouds', 'rain', 'storm', 'snow', 'fog', 'ice']

KNOWN_CONDITIONS = ('clear', 'clouds', 'rain', 'storm', 'snow', 'fog', 'ice')

# Coarse severity labels used by hazard feeds
HAZARD_LABEL_SEVERITY = {'high': 80, 'medium': 50, 'low': 30}


class GeoPoint(BaseModel):
    """GPS coordinate (latitude, longitude)"""
    lat: float                            # Latitude (-90 to 90)
    lng: float                            # Longitude (-180 to 180)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {"lat": 48.8566, "lng": 2.3522}
        }

    @model_validator(mode='before')
    @classmethod
    def _from_pair(cls, value):
        """Accept [lat, lng] / (lat, lng) pairs as well as dicts"""
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return {'lat': value[0], 'lng': value[1]}
        return value

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    def is_finite(self) -> bool:
        return math.isfinite(self.lat) and math.isfinite(self.lng)


class WeatherSnapshot(BaseModel):
    """Latest weather observation at the vehicle position"""
    condition: str = 'clear'
    precipitation_mm_h: float = Field(default=0.0, ge=0)
    temperature_c: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {"condition": "rain", "precipitation_mm_h": 4.2, "temperature_c": 11.0}
        }

    @field_validator('condition', mode='before')
    @classmethod
    def _normalize_condition(cls, value):
        if value is None:
            return 'clear'
        value = str(value).strip().lower()
        return value if value in KNOWN_CONDITIONS else 'clear'


class Hazard(BaseModel):
    """Reported road hazard (accident, roadworks, debris...)"""
    position: GeoPoint
    severity: float = Field(default=50, ge=0, le=100)
    kind: Optional[str] = None

    @field_validator('severity', mode='before')
    @classmethod
    def _severity_from_label(cls, value):
        if isinstance(value, str):
            return HAZARD_LABEL_SEVERITY.get(value.strip().lower(), 30)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if not math.isfinite(value):
                return 50
            # Feeds occasionally report outside the 0-100 scale
            return max(0.0, min(100.0, float(value)))
        return value


class SpeedCamera(BaseModel):
    """Fixed speed camera location"""
    position: GeoPoint
    speed_limit_kmh: float = Field(default=0, ge=0)


class DriverState(BaseModel):
    """Driver stress/focus estimate (0-100 each)"""
    stress: float = 20
    focus: float = 80


def _finite_number(value) -> Optional[float]:
    """float(value), or None for booleans, non-numeric and non-finite input"""
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _keep_readable(model, items, label: str) -> list:
    """
    Validate each entry on its own, dropping unreadable or non-finite ones

    One bad route point or hazard must not discard the whole snapshot.
    """
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        print(f"[ENGINE] Ignoring {label}: expected a list, got {type(items).__name__}")
        return []

    kept = []
    for item in items:
        try:
            entry = item if isinstance(item, model) else model.model_validate(item)
        except ValidationError as e:
            print(f"[ENGINE] Dropping unreadable {label} entry: {e.error_count()} error(s)")
            continue

        point = entry if isinstance(entry, GeoPoint) else entry.position
        if not point.is_finite():
            print(f"[ENGINE] Dropping {label} entry with non-finite coordinates")
            continue
        kept.append(entry)

    return kept


class PredictionContext(BaseModel):
    """
    Snapshot of navigation state for one prediction tick

    Built fresh each tick by the aggregator; the engine never mutates it.
    driver_stress_percent of None means "no estimate available".

    Only an unreadable position rejects the snapshot. Bad speeds read as 0,
    bad stress as None, and unreadable route points, hazards, cameras or
    weather are dropped individually.
    """
    current_speed_kmh: float = Field(default=0.0, ge=0)
    speed_limit_kmh: float = Field(default=0.0, ge=0)
    position: GeoPoint
    heading_deg: float = 0.0
    route: list[GeoPoint] = Field(default_factory=list)
    weather: Optional[WeatherSnapshot] = None
    hazards: list[Hazard] = Field(default_factory=list)
    speed_cameras: list[SpeedCamera] = Field(default_factory=list)
    driver_stress_percent: Optional[float] = None

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "current_speed_kmh": 72.0,
                "speed_limit_kmh": 50.0,
                "position": [48.8566, 2.3522],
                "heading_deg": 90.0,
                "route": [[48.8566, 2.3522], [48.8567, 2.3530]],
                "weather": {"condition": "rain", "precipitation_mm_h": 3.0},
                "hazards": [{"position": [48.8567, 2.3540], "severity": "high"}],
                "speed_cameras": [],
                "driver_stress_percent": 35
            }
        }

    @field_validator('current_speed_kmh', 'speed_limit_kmh', mode='before')
    @classmethod
    def _non_negative_speed(cls, value):
        value = _finite_number(value)
        return max(0.0, value) if value is not None else 0.0

    @field_validator('driver_stress_percent', mode='before')
    @classmethod
    def _readable_stress(cls, value):
        return _finite_number(value)

    @field_validator('heading_deg', mode='before')
    @classmethod
    def _normalize_heading(cls, value):
        value = _finite_number(value)
        return value % 360.0 if value is not None else 0.0

    @field_validator('route', mode='before')
    @classmethod
    def _readable_route(cls, value):
        return _keep_readable(GeoPoint, value, 'route')

    @field_validator('hazards', mode='before')
    @classmethod
    def _readable_hazards(cls, value):
        return _keep_readable(Hazard, value, 'hazard')

    @field_validator('speed_cameras', mode='before')
    @classmethod
    def _readable_cameras(cls, value):
        return _keep_readable(SpeedCamera, value, 'speed camera')

    @field_validator('weather', mode='before')
    @classmethod
    def _readable_weather(cls, value):
        if value is None or isinstance(value, WeatherSnapshot):
            return value
        try:
            return WeatherSnapshot.model_validate(value)
        except ValidationError as e:
            print(f"[ENGINE] Ignoring unreadable weather: {e.error_count()} error(s)")
            return None


def coerce_context(context: Union[PredictionContext, dict]) -> PredictionContext:
    """Accept a raw aggregator dict or an already-built context"""
    if isinstance(context, PredictionContext):
        return context
    return PredictionContext.model_validate(context)
