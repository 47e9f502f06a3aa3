"""
Geodesic Helpers

Great-circle distance, bearing and three-point circumradius used by the
risk engine for route and obstacle analysis. All distances in meters,
all angles in degrees.

Degenerate input (collinear or repeated points, non-finite coordinates)
yields an infinite radius, i.e. "no curve", never an exception or NaN.
"""

import math
from typing import Sequence, Tuple

import numpy as np


EARTH_RADIUS_M = 6371e3

LatLng = Tuple[float, float]


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points (meters)"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (math.sin(d_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    if math.isnan(a):
        return math.nan
    # Rounding can push a marginally outside [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def haversine_distances(origin: LatLng, points: Sequence[LatLng]) -> np.ndarray:
    """
    Distances from origin to every point (vectorised)

    Args:
        origin: (lat, lng)
        points: Sequence of (lat, lng)

    Returns:
        1-D array of distances in meters (empty for no points)
    """
    if len(points) == 0:
        return np.empty(0)

    coords = np.radians(np.asarray(points, dtype=float).reshape(-1, 2))
    lat0, lng0 = math.radians(origin[0]), math.radians(origin[1])

    d_phi = coords[:, 0] - lat0
    d_lambda = coords[:, 1] - lng0
    a = (np.sin(d_phi / 2) ** 2 +
         math.cos(lat0) * np.cos(coords[:, 0]) * np.sin(d_lambda / 2) ** 2)
    a = np.clip(a, 0.0, 1.0)

    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def initial_bearing(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Initial great-circle bearing from point 1 to point 2, in [0, 360)"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lng2 - lng1)

    y = math.sin(d_lambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda))

    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def heading_difference(a: float, b: float) -> float:
    """Smallest absolute angle between two headings, in [0, 180]"""
    diff = abs(a - b) % 360.0
    return 360.0 - diff if diff > 180.0 else diff


def circumradius(p1: LatLng, p2: LatLng, p3: LatLng) -> float:
    """
    Radius of the circle through three points

    Uses haversine side lengths, Heron's formula for the area and
    R = (a * b * c) / (4 * area).

    Returns:
        Radius in meters, or inf for a straight/degenerate triangle
    """
    a = haversine_distance(p1[0], p1[1], p2[0], p2[1])
    b = haversine_distance(p2[0], p2[1], p3[0], p3[1])
    c = haversine_distance(p3[0], p3[1], p1[0], p1[1])

    if not all(math.isfinite(side) for side in (a, b, c)):
        return math.inf

    s = (a + b + c) / 2
    heron = s * (s - a) * (s - b) * (s - c)

    # Collinear points can produce a tiny negative product
    if heron <= 0:
        return math.inf

    area = math.sqrt(heron)
    if area == 0:
        return math.inf

    return (a * b * c) / (4 * area)


def nearest_point_index(route: Sequence[LatLng], position: LatLng) -> int:
    """Index of the route point closest to position (-1 for an empty route)"""
    if len(route) == 0:
        return -1

    distances = haversine_distances(position, route)
    distances = np.where(np.isfinite(distances), distances, np.inf)

    # First occurrence wins on ties
    return int(np.argmin(distances))
