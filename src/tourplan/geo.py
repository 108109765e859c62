"""
Geospatial utilities: straight-line distance, road distance and travel time.
"""

import math
from typing import Sequence, Tuple

from tourplan import config

Point = Tuple[float, float]


def haversine_km(origin: Point, destination: Point) -> float:
    """
    Compute great-circle distance between two (lat, lon) points in kilometers.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination
    r = 6371.0088  # mean Earth radius in km
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def distance_km(origin: Point, destination: Point) -> float:
    """
    Approximate road distance: great-circle distance scaled by the road factor.
    """
    return haversine_km(origin, destination) * config.ROAD_FACTOR


def travel_time_minutes(distance_km: float, speed_kmph: float) -> float:
    """
    Convert distance (km) to travel time in minutes given speed (km/h).
    """
    if speed_kmph <= 0:
        raise ValueError("speed_kmph must be positive")
    if distance_km <= 0:
        return 0.0
    hours = distance_km / speed_kmph
    return hours * 60.0


def speed_for_distance(distance_km: float) -> float:
    """
    Average speed (km/h) of the urban, peri-urban or inter-urban band for a hop.
    """
    if distance_km <= config.URBAN_MAX_KM:
        return config.URBAN_SPEED_KMPH
    if distance_km <= config.PERIURBAN_MAX_KM:
        return config.PERIURBAN_SPEED_KMPH
    return config.INTERURBAN_SPEED_KMPH


def estimate_travel_minutes(distance_km: float) -> int:
    """
    Estimated drive time in whole minutes, rounded up.

    Short hops use the urban speed band, medium hops the peri-urban band and
    anything longer the inter-urban band.
    """
    minutes = travel_time_minutes(distance_km, speed_for_distance(distance_km))
    # Guard against float noise such as 12.000000000001 rounding up to 13.
    return int(math.ceil(round(minutes, 6)))


def round_trip_km(start: Point, points: Sequence[Point]) -> float:
    """
    Road distance of start -> points[0] -> ... -> points[-1] -> start.
    """
    if not points:
        return 0.0
    total = distance_km(start, points[0])
    for a, b in zip(points, points[1:]):
        total += distance_km(a, b)
    return total + distance_km(points[-1], start)
