"""
Geometry helpers for route and obstacle analysis
"""

from .geo_math import (
    EARTH_RADIUS_M,
    haversine_distance,
    haversine_distances,
    initial_bearing,
    heading_difference,
    circumradius,
    nearest_point_index,
)

__all__ = [
    "EARTH_RADIUS_M",
    "haversine_distance",
    "haversine_distances",
    "initial_bearing",
    "heading_difference",
    "circumradius",
    "nearest_point_index",
]
