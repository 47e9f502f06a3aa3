"""
Shared fixtures for the drivesafe test suite

Geometry helpers place points on the equator, where one meter east or
north is a fixed fraction of a degree, so test routes can be drawn in
meters.
"""

import math

import pytest

from drivesafe.config import SafetyConfig
from drivesafe.events import EventBus
from drivesafe.geometry.geo_math import EARTH_RADIUS_M
from drivesafe.models.context import PredictionContext
from drivesafe.prediction.risk_engine import RiskEngine
from drivesafe.safety.channels import AlertDispatcher
from drivesafe.safety.orchestrator import SafetyOrchestrator


METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180


def point(east_m: float, north_m: float = 0.0) -> tuple:
    """(lat, lng) of a point given in meters from (0, 0)"""
    return (north_m / METERS_PER_DEGREE, east_m / METERS_PER_DEGREE)


def make_context(**overrides) -> PredictionContext:
    """Context at the origin, legal speed, no route/hazards"""
    data = {
        'current_speed_kmh': 40.0,
        'speed_limit_kmh': 50.0,
        'position': point(0, 0),
        'heading_deg': 90.0,
        'driver_stress_percent': 20,
    }
    data.update(overrides)
    return PredictionContext.model_validate(data)


class FakeClock:
    """Manually advanced seconds clock"""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingVoice:
    def __init__(self):
        self.calls = []

    def announce(self, message, options):
        self.calls.append((message, options))


class RecordingHaptics:
    def __init__(self):
        self.calls = []

    def vibrate(self, pattern, intensity):
        self.calls.append((pattern, intensity))


class RecordingHUD:
    def __init__(self):
        self.calls = []

    def trigger(self, options):
        self.calls.append(options)


class RecordingAnalytics:
    def __init__(self):
        self.alerts = []

    def record(self, alert):
        self.alerts.append(alert)


@pytest.fixture
def config():
    return SafetyConfig()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def engine(config):
    return RiskEngine(config)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sinks():
    return {
        'voice': RecordingVoice(),
        'haptics': RecordingHaptics(),
        'hud': RecordingHUD(),
        'analytics': RecordingAnalytics(),
    }


@pytest.fixture
def dispatcher(sinks, config):
    return AlertDispatcher(config=config, **sinks)


@pytest.fixture
def orchestrator(bus, dispatcher, config, clock):
    """Active orchestrator on a fake clock"""
    orch = SafetyOrchestrator(bus, dispatcher, config, clock=clock)
    orch.init()
    yield orch
    orch.shutdown()
