"""
Route Optimizer (Domain Logic).

Orders a day's pickups into a drivable sequence. The mapping provider's
waypoint optimization is used when it is configured, reachable and within
its waypoint limit; otherwise the nearest-neighbour heuristic runs. Neither
path guarantees an optimal route.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from buyback.app.core.clock import local_now
from buyback.app.core.config import settings
from buyback.app.core.exceptions import ExternalServiceError, ReferrerRestrictedError
from buyback.app.core.reliability import CircuitBreaker
from buyback.app.domain.routing.heuristics import (
    accumulate_etas,
    classify_efficiency,
    fuel_cost,
    nearest_neighbor_order,
    return_leg_km,
    route_duration_minutes,
)
from buyback.app.models.route_enums import RouteEfficiency
from buyback.app.schemas.routing import PickupInput, RouteOptimization, Waypoint
from buyback.app.services.mapping_client import MappingClient

logger = logging.getLogger(__name__)

SOURCE_HEURISTIC = "heuristic"
SOURCE_PROVIDER = "provider"


class RouteOptimizer:

    def __init__(
        self,
        mapping_client: Optional[MappingClient],
        breaker: CircuitBreaker,
        clock: Callable[[], datetime] = local_now,
    ):
        self.mapping_client = mapping_client
        self.breaker = breaker
        self.clock = clock

    def _provider_usable(self, stops: int) -> bool:
        client = self.mapping_client
        return (
            client is not None
            and client.has_routing
            and not self.breaker.is_open
            and stops <= settings.mapping_max_optimized_waypoints
        )

    async def optimize(self, pickups: Sequence[PickupInput], start: Optional[datetime] = None) -> RouteOptimization:
        """
        Order pickups and estimate the route's cost.

        Args:
            pickups: Stops to visit, in input order
            start: Departure time from the hub, defaults to now

        Returns:
            RouteOptimization with order, totals, fuel cost and per-stop ETAs
        """
        start = start or self.clock()

        if not pickups:
            return RouteOptimization(
                order=[],
                total_distance_km=0.0,
                total_duration_min=0,
                fuel_cost=0.0,
                efficiency=RouteEfficiency.EXCELLENT,
                waypoints=[],
            )

        if len(pickups) == 1:
            pickup = pickups[0]
            return RouteOptimization(
                order=[pickup.id],
                total_distance_km=0.0,
                total_duration_min=0,
                fuel_cost=0.0,
                efficiency=RouteEfficiency.EXCELLENT,
                waypoints=[Waypoint(
                    pickup_id=pickup.id,
                    address=pickup.address,
                    coordinates=pickup.coordinates,
                    estimated_arrival=start,
                    driving_time_min=0.0,
                )],
            )

        if self._provider_usable(len(pickups)):
            try:
                optimization = await self._optimize_with_provider(pickups, start)
                self.breaker.record_success()
                return optimization
            except ReferrerRestrictedError as exc:
                self.breaker.trip(exc.message)
                logger.warning("Waypoint optimization is referrer-restricted, using heuristic")
            except ExternalServiceError as exc:
                logger.warning("Waypoint optimization failed, using heuristic: %s", exc.message)

        return self.optimize_heuristic(pickups, start)

    async def _optimize_with_provider(self, pickups: Sequence[PickupInput], start: datetime) -> RouteOptimization:
        result = await self.mapping_client.optimize_waypoints(
            (settings.hub_latitude, settings.hub_longitude),
            [pickup.address for pickup in pickups],
        )
        total_km = result.distance_meters / 1000
        total_duration = round(result.duration_seconds / 60)
        segment = total_duration / (len(result.order) + 1)

        waypoints: List[Waypoint] = []
        clock = start
        for index in result.order:
            pickup = pickups[index]
            clock += timedelta(minutes=segment)
            waypoints.append(Waypoint(
                pickup_id=pickup.id,
                address=pickup.address,
                coordinates=pickup.coordinates,
                estimated_arrival=clock,
                driving_time_min=round(segment, 1),
            ))
            clock += timedelta(minutes=settings.pickup_service_minutes)

        logger.info("Provider optimized %d pickups: %.1f km", len(pickups), total_km)
        return RouteOptimization(
            order=[pickups[index].id for index in result.order],
            total_distance_km=round(total_km, 1),
            total_duration_min=total_duration,
            fuel_cost=fuel_cost(total_km),
            efficiency=classify_efficiency(total_km),
            waypoints=waypoints,
            source=SOURCE_PROVIDER,
        )

    def optimize_heuristic(self, pickups: Sequence[PickupInput], start: Optional[datetime] = None) -> RouteOptimization:
        """Nearest-neighbour ordering over suburb estimates, plus the return leg."""
        start = start or self.clock()
        legs = nearest_neighbor_order(pickups)
        etas = accumulate_etas(legs, start)
        total_km = sum(leg.distance_km for leg in legs) + return_leg_km(legs)

        return RouteOptimization(
            order=[leg.pickup.id for leg in legs],
            total_distance_km=round(total_km, 1),
            total_duration_min=route_duration_minutes(total_km, len(legs)),
            fuel_cost=fuel_cost(total_km),
            efficiency=classify_efficiency(total_km),
            waypoints=[
                Waypoint(
                    pickup_id=leg.pickup.id,
                    address=leg.pickup.address,
                    coordinates=leg.pickup.coordinates,
                    estimated_arrival=arrival,
                    driving_time_min=round(driving, 1),
                )
                for leg, (arrival, driving) in zip(legs, etas)
            ],
            source=SOURCE_HEURISTIC,
        )
