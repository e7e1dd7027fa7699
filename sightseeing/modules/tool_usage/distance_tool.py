"""
modules/tool_usage/distance_tool.py
-------------------------------------
Arithmetic tool: geometric distance and travel-time estimates between two
coordinates. Local computation, no external API.

This is the fallback used whenever the maps service cannot answer, so it
must stay deterministic and side-effect free.

Travel-time model (minutes):
    speed   = 24 km/h  for legs < 20 km   (intra-city, includes stops)
              35 km/h  for 20-100 km
              50 km/h  beyond 100 km      (highway)
    minutes = km / speed * 60 * buffer_factor * traffic_factor(time of day)
    floored at 1 minute; distance floored at 0.1 km.
"""

from __future__ import annotations

import math
from typing import Optional

from sightseeing import config
from sightseeing.exceptions import InvalidCoordinates
from sightseeing.schemas.travel import Coordinate, DistanceRecord

_MIN_TRAVEL_MINUTES = 1.0

# Traffic bands (minute-of-day ranges, start inclusive, end exclusive)
_PEAK_WINDOWS: tuple[tuple[int, int], ...] = ((7 * 60 + 30, 10 * 60), (17 * 60, 20 * 60))
_NIGHT_START = 22 * 60
_NIGHT_END = 6 * 60


def validate_coordinates(latitude: float, longitude: float) -> None:
    """Raise InvalidCoordinates unless lat ∈ [-90, 90] and lon ∈ [-180, 180]."""
    try:
        lat, lon = float(latitude), float(longitude)
    except (TypeError, ValueError):
        raise InvalidCoordinates(latitude, longitude) from None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinates(latitude, longitude)
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise InvalidCoordinates(latitude, longitude)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Straight-line kilometres between two (lat, lon) points on a spherical earth.

    Symmetric and never negative; identical points give 0.0. The estimator
    applies its own minimum distance on top, this function does not.
    """
    lat_a, lat_b = math.radians(lat1), math.radians(lat2)
    half_dlat = math.radians(lat2 - lat1) / 2
    half_dlon = math.radians(lon2 - lon1) / 2

    h = math.sin(half_dlat) ** 2 + math.cos(lat_a) * math.cos(lat_b) * math.sin(half_dlon) ** 2
    # rounding can push h a hair above 1 for antipodal points
    return 2 * config.EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def traffic_band(minute_of_day: Optional[float]) -> str:
    """"peak" | "night" | "normal" for a departure minute of day (None → normal)."""
    if minute_of_day is None:
        return "normal"
    m = minute_of_day % (24 * 60)
    for start, end in _PEAK_WINDOWS:
        if start <= m < end:
            return "peak"
    if m >= _NIGHT_START or m < _NIGHT_END:
        return "night"
    return "normal"


_BAND_FACTORS: dict[str, float] = {
    "peak": config.PEAK_TRAFFIC_FACTOR,
    "night": config.NIGHT_TRAFFIC_FACTOR,
    "normal": 1.0,
}


def cruising_speed_kmh(distance_km: float) -> float:
    if distance_km < 20.0:
        return config.CITY_SPEED_KMH
    if distance_km <= 100.0:
        return config.REGIONAL_SPEED_KMH
    return config.HIGHWAY_SPEED_KMH


class GeoDistanceEstimator:
    """
    Geometric distance/time estimator.
    Provides the same record shape as the maps-backed provider, flagged as fallback.
    """

    def __init__(
        self,
        buffer_factor: float = config.TRAVEL_BUFFER_FACTOR,
        min_distance_km: float = config.MIN_DISTANCE_KM,
    ) -> None:
        if buffer_factor <= 0:
            raise ValueError("buffer_factor must be positive")
        self.buffer_factor = buffer_factor
        self.min_distance_km = min_distance_km

    def distance_km(self, origin: Coordinate, destination: Coordinate) -> float:
        validate_coordinates(*origin)
        validate_coordinates(*destination)
        km = haversine_km(origin[0], origin[1], destination[0], destination[1])
        return max(km, self.min_distance_km)

    def travel_minutes(self, distance_km: float, minute_of_day: Optional[float] = None) -> float:
        hours = distance_km / cruising_speed_kmh(distance_km)
        minutes = hours * 60.0 * self.buffer_factor * _BAND_FACTORS[traffic_band(minute_of_day)]
        return max(minutes, _MIN_TRAVEL_MINUTES)

    def estimate(
        self,
        origin: Coordinate,
        destination: Coordinate,
        minute_of_day: Optional[float] = None,
    ) -> DistanceRecord:
        km = self.distance_km(origin, destination)
        return DistanceRecord(
            origin=origin,
            destination=destination,
            distance_km=km,
            duration_minutes=self.travel_minutes(km, minute_of_day),
            is_fallback=True,
            source="geo",
        )
