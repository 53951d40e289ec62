"""
HTTP client for the mapping provider (Google Routes + Geocoding).

Every call carries a bounded timeout. Failures are raised as
ExternalServiceError (or ReferrerRestrictedError when the API key is
rejected for referrer/client restrictions) so callers can fall through to
the next tier.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import httpx

from buyback.app.core.config import settings
from buyback.app.core.exceptions import ExternalServiceError, ReferrerRestrictedError

logger = logging.getLogger(__name__)

ROUTES_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

ROUTE_FIELD_MASK = (
    "routes.duration,routes.distanceMeters,routes.polyline.encodedPolyline,"
    "routes.legs.steps.navigationInstruction,routes.legs.steps.distanceMeters,"
    "routes.legs.steps.staticDuration"
)
OPTIMIZE_FIELD_MASK = "routes.duration,routes.distanceMeters,routes.optimizedIntermediateWaypointIndex"

REFERRER_BLOCKED_MARKERS = ("API_KEY_HTTP_REFERRER_BLOCKED", "referer restrictions", "referrer restrictions")


@dataclass
class RoutedStep:
    instruction: str
    distance_meters: int
    duration_seconds: int


@dataclass
class RoutedLeg:
    """Single origin -> destination route."""
    distance_meters: int
    duration_seconds: int
    polyline: str = ""
    steps: List[RoutedStep] = field(default_factory=list)


@dataclass
class OptimizedWaypoints:
    """Provider-reordered intermediate waypoints."""
    order: List[int]
    distance_meters: int
    duration_seconds: int


def parse_duration_seconds(value) -> int:
    """Provider durations come back as strings like '1234s'."""
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return int(float(str(value).rstrip("s") or 0))


def _parse_leg(route: dict) -> RoutedLeg:
    legs = route.get("legs") or []
    raw_steps = legs[0].get("steps", []) if legs else []
    steps = [
        RoutedStep(
            instruction=(step.get("navigationInstruction") or {}).get("instructions", "Continue"),
            distance_meters=int(step.get("distanceMeters", 0)),
            duration_seconds=parse_duration_seconds(step.get("staticDuration")),
        )
        for step in raw_steps
    ]
    return RoutedLeg(
        distance_meters=int(route.get("distanceMeters", 0)),
        duration_seconds=parse_duration_seconds(route.get("duration")),
        polyline=(route.get("polyline") or {}).get("encodedPolyline", ""),
        steps=steps,
    )


def _is_referrer_blocked(status_code: int, body: str) -> bool:
    return status_code == 403 and any(marker in body for marker in REFERRER_BLOCKED_MARKERS)


class MappingClient:
    def __init__(
        self,
        routes_api_key: Optional[str] = None,
        geocoding_api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.routes_api_key = routes_api_key
        # Geocoding falls back to the routes key, like the provider console allows
        self.geocoding_api_key = geocoding_api_key or routes_api_key
        self.timeout = timeout if timeout is not None else settings.mapping_timeout_seconds
        self._transport = transport

    @property
    def has_routing(self) -> bool:
        return bool(self.routes_api_key)

    @property
    def has_geocoding(self) -> bool:
        return bool(self.geocoding_api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    async def _post_routes(self, body: dict, field_mask: str) -> dict:
        if not self.routes_api_key:
            raise ExternalServiceError("No routing API key configured")

        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.routes_api_key,
            "X-Goog-FieldMask": field_mask,
        }
        try:
            async with self._client() as client:
                response = await client.post(ROUTES_URL, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"Routes API timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Routes API request failed: {exc}") from exc

        if response.status_code >= 400:
            body_text = response.text
            if _is_referrer_blocked(response.status_code, body_text):
                raise ReferrerRestrictedError(status=response.status_code)
            raise ExternalServiceError(
                f"Routes API error: {response.status_code}", status=response.status_code
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalServiceError("Routes API returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ExternalServiceError("Routes API returned an unexpected payload")
        return data

    async def compute_route(self, origin: str, destination: str) -> RoutedLeg:
        """Traffic-aware route between two addresses."""
        body = {
            "origin": {"address": origin},
            "destination": {"address": destination},
            "travelMode": "DRIVE",
            "routingPreference": "TRAFFIC_AWARE",
            "computeAlternativeRoutes": False,
            "routeModifiers": {"avoidTolls": True, "avoidHighways": False, "avoidFerries": True},
            "languageCode": "en-AU",
            "units": "METRIC",
        }
        data = await self._post_routes(body, ROUTE_FIELD_MASK)
        routes = data.get("routes") or []
        if not routes:
            raise ExternalServiceError("No routes found")

        try:
            return _parse_leg(routes[0])
        except (AttributeError, TypeError, ValueError) as exc:
            raise ExternalServiceError("Routes API returned an unexpected payload") from exc

    async def geocode(self, address: str) -> Optional[Tuple[float, float]]:
        """Return (lat, lng) for an address, or None when it cannot be resolved."""
        if not self.geocoding_api_key:
            raise ExternalServiceError("No geocoding API key configured")

        params = {"address": address, "region": "au", "key": self.geocoding_api_key}
        try:
            async with self._client() as client:
                response = await client.get(GEOCODE_URL, params=params)
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(f"Geocoding API timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"Geocoding API request failed: {exc}") from exc

        if response.status_code >= 400:
            if _is_referrer_blocked(response.status_code, response.text):
                raise ReferrerRestrictedError(status=response.status_code)
            raise ExternalServiceError(
                f"Geocoding API error: {response.status_code}", status=response.status_code
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalServiceError("Geocoding API returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ExternalServiceError("Geocoding API returned an unexpected payload")
        status = data.get("status")
        if status == "REQUEST_DENIED" and any(
            marker in (data.get("error_message") or "") for marker in REFERRER_BLOCKED_MARKERS
        ):
            raise ReferrerRestrictedError(status=response.status_code)
        if status != "OK" or not data.get("results"):
            logger.info("Geocoding returned %s for %r", status, address)
            return None

        try:
            location = data["results"][0]["geometry"]["location"]
            return float(location["lat"]), float(location["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError("Geocoding API returned an unexpected payload") from exc

    async def optimize_waypoints(
        self,
        origin: Tuple[float, float],
        addresses: Sequence[str],
    ) -> OptimizedWaypoints:
        """Round trip from origin through every address in provider-optimized order."""
        hub = {"location": {"latLng": {"latitude": origin[0], "longitude": origin[1]}}}
        body = {
            "origin": hub,
            "destination": hub,
            "intermediates": [{"address": address} for address in addresses],
            "travelMode": "DRIVE",
            "routingPreference": "TRAFFIC_AWARE_OPTIMAL",
            "optimizeWaypointOrder": True,
            "languageCode": "en-AU",
            "units": "METRIC",
        }
        data = await self._post_routes(body, OPTIMIZE_FIELD_MASK)
        routes = data.get("routes") or []
        if not routes:
            raise ExternalServiceError("No optimized route found")

        route = routes[0]
        if not isinstance(route, dict):
            raise ExternalServiceError("Routes API returned an unexpected payload")
        order = route.get("optimizedIntermediateWaypointIndex") or list(range(len(addresses)))
        if sorted(order) != list(range(len(addresses))):
            raise ExternalServiceError("Provider returned an inconsistent waypoint order")

        return OptimizedWaypoints(
            order=[int(i) for i in order],
            distance_meters=int(route.get("distanceMeters", 0)),
            duration_seconds=parse_duration_seconds(route.get("duration")),
        )


def build_mapping_client() -> Optional[MappingClient]:
    """Client from settings, or None when no provider key is configured."""
    if not settings.google_routes_api_key and not settings.google_geocoding_api_key:
        return None
    return MappingClient(
        routes_api_key=settings.google_routes_api_key,
        geocoding_api_key=settings.google_geocoding_api_key,
    )
