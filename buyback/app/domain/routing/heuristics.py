"""
Route ordering heuristics.

Small pure functions composed by the RouteOptimizer: start selection,
nearest-neighbour ordering over the suburb distance estimator, ETA
accumulation and cost classification. Deterministic for identical input.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Sequence, Tuple

from buyback.app.core.config import settings
from buyback.app.domain.distance.estimation import (
    estimate_distance_between,
    estimate_distance_by_suburb,
    travel_minutes,
)
from buyback.app.models.route_enums import PickupPriority, RouteEfficiency
from buyback.app.schemas.routing import PickupInput

# Checked in order when choosing the first stop
START_PRIORITIES = (PickupPriority.HIGH, PickupPriority.MEDIUM)

EFFICIENCY_THRESHOLDS_KM = (
    (100, RouteEfficiency.EXCELLENT),
    (150, RouteEfficiency.GOOD),
    (200, RouteEfficiency.FAIR),
)

EFFICIENCY_SCORES = {
    RouteEfficiency.EXCELLENT: 100,
    RouteEfficiency.GOOD: 75,
    RouteEfficiency.FAIR: 50,
    RouteEfficiency.POOR: 25,
}


@dataclass
class Leg:
    """Drive into a stop, in visiting order."""
    pickup: PickupInput
    distance_km: float


def select_start(pickups: Sequence[PickupInput]) -> int:
    """Index of the first high-priority pickup, else the first medium, else 0."""
    for priority in START_PRIORITIES:
        for index, pickup in enumerate(pickups):
            if pickup.priority == priority:
                return index
    return 0


def nearest_neighbor_order(pickups: Sequence[PickupInput]) -> List[Leg]:
    """
    Visit order starting from the priority pick, then always the nearest
    unvisited stop. Ties keep input order (strict less-than).

    The first leg is measured from the hub; later legs use the inter-suburb
    estimate rather than live routing.
    """
    if not pickups:
        return []

    unvisited = list(pickups)
    first = unvisited.pop(select_start(pickups))
    legs = [Leg(first, estimate_distance_by_suburb(first.address))]

    while unvisited:
        current = legs[-1].pickup
        best_index = 0
        best_distance = float("inf")
        for index, candidate in enumerate(unvisited):
            distance = estimate_distance_between(current.address, candidate.address)
            if distance < best_distance:
                best_index, best_distance = index, distance
        legs.append(Leg(unvisited.pop(best_index), best_distance))

    return legs


def accumulate_etas(legs: Sequence[Leg], start: datetime) -> List[Tuple[datetime, float]]:
    """
    (arrival, driving minutes) per leg.

    The first arrival is start plus the drive from the hub; each later one
    adds the service time at the previous stop plus the drive.
    """
    etas = []
    clock = start
    for position, leg in enumerate(legs):
        driving = travel_minutes(leg.distance_km)
        if position > 0:
            clock += timedelta(minutes=settings.pickup_service_minutes)
        clock += timedelta(minutes=driving)
        etas.append((clock, driving))
    return etas


def return_leg_km(legs: Sequence[Leg]) -> float:
    return estimate_distance_by_suburb(legs[-1].pickup.address) if legs else 0.0


def route_duration_minutes(total_km: float, stops: int) -> int:
    """Driving plus service time at every stop."""
    return round(travel_minutes(total_km) + stops * settings.pickup_service_minutes)


def fuel_cost(total_km: float) -> float:
    return round(total_km * settings.fuel_cost_per_km, 2)


def classify_efficiency(total_km: float) -> RouteEfficiency:
    for threshold, efficiency in EFFICIENCY_THRESHOLDS_KM:
        if total_km < threshold:
            return efficiency
    return RouteEfficiency.POOR


def efficiency_score(efficiency: str) -> int:
    return EFFICIENCY_SCORES.get(RouteEfficiency(efficiency), 0)
