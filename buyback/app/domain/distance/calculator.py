"""
Distance Fee Calculator (Domain Logic).

Turns an address into distance, duration, pickup fee and eligibility.
Tiers, tried in order:
1. Routed distance from the mapping provider
2. Geocode both ends + haversine with a road-correction factor
3. Static suburb heuristic

Tiers 1 and 2 share the provider and its referrer restriction, so both are
skipped once the injected breaker is open. Provider failures never reach
the caller; the worst case is a coarser estimate.
"""

import logging
from typing import Optional

from buyback.app.core.config import settings
from buyback.app.core.exceptions import EligibilityError, ExternalServiceError, ReferrerRestrictedError
from buyback.app.core.reliability import CircuitBreaker
from buyback.app.domain.distance.estimation import (
    estimate_distance_by_suburb,
    road_distance_from_points,
    travel_minutes,
)
from buyback.app.domain.distance.fees import calculate_pickup_fee, evaluate_pickup, requires_manual_review
from buyback.app.schemas.distance import DistanceCalculation, EligibilityResult, RouteDetail, RouteStep
from buyback.app.services.mapping_client import MappingClient

logger = logging.getLogger(__name__)

SOURCE_ROUTED = "routed"
SOURCE_GEOCODED = "geocoded"
SOURCE_ESTIMATED = "estimated"


def build_calculation(
    distance_km: float,
    duration_min: int,
    source: str,
    route: Optional[RouteDetail] = None,
) -> DistanceCalculation:
    """Attach fee and fee-table eligibility to a distance."""
    distance_km = round(distance_km, 1)
    manual_review = requires_manual_review(distance_km)
    return DistanceCalculation(
        distance_km=distance_km,
        duration_min=duration_min,
        pickup_fee=calculate_pickup_fee(distance_km),
        is_eligible=not manual_review,
        requires_manual_review=manual_review,
        source=source,
        route=route,
    )


class DistanceFeeCalculator:

    def __init__(
        self,
        mapping_client: Optional[MappingClient],
        breaker: CircuitBreaker,
        hub_address: Optional[str] = None,
    ):
        self.mapping_client = mapping_client
        self.breaker = breaker
        self.hub_address = hub_address or settings.hub_address

    async def calculate(self, from_address: str, to_address: Optional[str] = None) -> DistanceCalculation:
        """
        Distance/fee for a pickup address. Never raises.

        Args:
            from_address: Customer address
            to_address: Destination, defaults to the hub

        Returns:
            DistanceCalculation tagged with the tier that produced it
        """
        to_address = to_address or self.hub_address
        client = self.mapping_client

        if client is not None and client.has_routing and not self.breaker.is_open:
            try:
                calculation = await self._routed(client, from_address, to_address)
                self.breaker.record_success()
                return calculation
            except ReferrerRestrictedError as exc:
                self.breaker.trip(exc.message)
                logger.warning("Routing provider is referrer-restricted, skipping provider tiers")
            except ExternalServiceError as exc:
                logger.warning("Routed distance failed, trying geocoding: %s", exc.message)

        if client is not None and client.has_geocoding and not self.breaker.is_open:
            try:
                result = await self._geocoded(client, from_address, to_address)
                self.breaker.record_success()
                if result is not None:
                    return result
            except ReferrerRestrictedError as exc:
                self.breaker.trip(exc.message)
                logger.warning("Geocoding provider is referrer-restricted, skipping provider tiers")
            except ExternalServiceError as exc:
                logger.warning("Geocoded distance failed, using estimation: %s", exc.message)
        elif client is None:
            logger.info("No mapping provider configured, using suburb estimation")

        return self._estimated(from_address)

    async def _routed(self, client: MappingClient, origin: str, destination: str) -> DistanceCalculation:
        leg = await client.compute_route(origin, destination)
        detail = RouteDetail(
            polyline=leg.polyline,
            steps=[
                RouteStep(
                    instruction=step.instruction,
                    distance_km=round(step.distance_meters / 1000, 2),
                    duration_min=round(step.duration_seconds / 60),
                )
                for step in leg.steps
            ],
        )
        return build_calculation(
            leg.distance_meters / 1000,
            round(leg.duration_seconds / 60),
            SOURCE_ROUTED,
            detail,
        )

    async def _geocoded(self, client: MappingClient, origin: str, destination: str) -> Optional[DistanceCalculation]:
        origin_point = await client.geocode(origin)
        destination_point = await client.geocode(destination)
        if origin_point is None or destination_point is None:
            logger.info("Could not geocode %r or %r, using estimation", origin, destination)
            return None

        distance_km = road_distance_from_points(origin_point, destination_point)
        return build_calculation(distance_km, round(travel_minutes(distance_km)), SOURCE_GEOCODED)

    def _estimated(self, address: str) -> DistanceCalculation:
        distance_km = estimate_distance_by_suburb(address)
        return build_calculation(distance_km, round(travel_minutes(distance_km)), SOURCE_ESTIMATED)

    async def validate_pickup_eligibility(self, address: str, quote_value: float) -> EligibilityResult:
        """
        Distance + profit-band check for a lead's address and quote.

        Rejections are returned with a reason, never raised.
        """
        calculation = await self.calculate(address)
        evaluation = evaluate_pickup(calculation.distance_km, calculation.duration_min, quote_value)
        return EligibilityResult(
            eligible=evaluation.eligible,
            reason=evaluation.reason,
            message=evaluation.message,
            distance_km=evaluation.distance_km,
            duration_min=evaluation.duration_min,
            pickup_fee=evaluation.pickup_fee,
            profit=evaluation.profit,
            required_min_profit=evaluation.required_min_profit,
            requires_manual_review=evaluation.requires_manual_review,
        )

    async def ensure_pickup_eligible(self, address: str, quote_value: float) -> EligibilityResult:
        """
        Like validate_pickup_eligibility, but a rejection is raised.

        Raises:
            EligibilityError: reason manual_review, out_of_service_area or insufficient_profit
        """
        eligibility = await self.validate_pickup_eligibility(address, quote_value)
        if not eligibility.eligible:
            raise EligibilityError(
                eligibility.message,
                reason=eligibility.reason,
                details={
                    "distance_km": eligibility.distance_km,
                    "pickup_fee": eligibility.pickup_fee,
                    "profit": eligibility.profit,
                    "required_min_profit": eligibility.required_min_profit,
                },
            )
        return eligibility
