"""
Distance estimation primitives.

Great-circle distance for geocoded points and the static suburb heuristic
used when no provider can be reached. The route optimizer reuses the suburb
heuristic for inter-stop legs.
"""

import math
from typing import Tuple

from buyback.app.core.config import settings

# (keywords, km from the Penrith hub). First match wins.
SUBURB_DISTANCES = (
    (("penrith", "2750"), 5.0),
    (("blacktown", "2148"), 18.0),
    (("parramatta", "2150"), 25.0),
    (("sydney", "cbd"), 50.0),
    (("bondi", "randwick"), 60.0),
    (("manly", "northern beaches"), 65.0),
    (("cronulla", "sutherland"), 55.0),
)
DEFAULT_SUBURB_DISTANCE_KM = 35.0

# Inter-stop legs are approximated from each stop's distance to the hub
INTER_STOP_OVERLAP_FACTOR = 0.3


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    R = 6371.0

    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2) - math.radians(lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def road_distance_from_points(origin: Tuple[float, float], destination: Tuple[float, float]) -> float:
    """Straight-line distance inflated to approximate the road network."""
    straight = haversine_distance(origin[0], origin[1], destination[0], destination[1])
    return straight * settings.road_correction_factor


def estimate_distance_by_suburb(address: str) -> float:
    """Rough km from the hub, from keywords in the address."""
    address_lower = address.lower()
    for keywords, distance_km in SUBURB_DISTANCES:
        if any(keyword in address_lower for keyword in keywords):
            return distance_km
    return DEFAULT_SUBURB_DISTANCE_KM


def estimate_distance_between(address_a: str, address_b: str) -> float:
    """Leg between two stops, using their suburb distances from the hub."""
    dist_a = estimate_distance_by_suburb(address_a)
    dist_b = estimate_distance_by_suburb(address_b)
    return abs(dist_a - dist_b) + min(dist_a, dist_b) * INTER_STOP_OVERLAP_FACTOR


def travel_minutes(distance_km: float) -> float:
    """Driving time at the average urban speed."""
    return distance_km / settings.average_speed_kmh * 60
