"""
Distance calculator tests.

Provider responses are stubbed with httpx.MockTransport.
"""

import httpx
import pytest

from buyback.app.core.exceptions import EligibilityError
from buyback.app.core.reliability import CircuitBreaker
from buyback.app.domain.distance.calculator import (
    DistanceFeeCalculator, SOURCE_ESTIMATED, SOURCE_GEOCODED, SOURCE_ROUTED
)
from buyback.app.services.mapping_client import MappingClient, ROUTES_URL

ROUTE_PAYLOAD = {
    "routes": [{
        "distanceMeters": 18234,
        "duration": "1500s",
        "polyline": {"encodedPolyline": "abc123"},
        "legs": [{"steps": [
            {"navigationInstruction": {"instructions": "Head west"}, "distanceMeters": 1200, "staticDuration": "120s"},
            {"distanceMeters": 17034, "staticDuration": "1380s"},
        ]}],
    }]
}

GEOCODE_POINTS = {
    "Penrith NSW 2750": {"lat": -33.7507, "lng": 150.6877},
    "Blacktown NSW 2148": {"lat": -33.7710, "lng": 150.9063},
}

REFERRER_BODY = {"error": {"code": 403, "status": "PERMISSION_DENIED", "message": "API_KEY_HTTP_REFERRER_BLOCKED"}}


class ProviderStub:
    """Records requests and answers per endpoint."""

    def __init__(self, routes=None, geocode=None):
        self.routes = routes
        self.geocode = geocode
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url).startswith(ROUTES_URL):
            return self.routes(request)
        return self.geocode(request)

    @property
    def route_calls(self):
        return [r for r in self.requests if str(r.url).startswith(ROUTES_URL)]


def geocode_ok(request):
    address = request.url.params["address"]
    location = GEOCODE_POINTS.get(address)
    if location is None:
        return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
    return httpx.Response(200, json={"status": "OK", "results": [{"geometry": {"location": location}}]})


def make_calculator(stub, breaker=None):
    client = MappingClient(routes_api_key="test-key", transport=httpx.MockTransport(stub))
    breaker = breaker or CircuitBreaker(reset_timeout=None)
    return DistanceFeeCalculator(client, breaker, hub_address="Penrith NSW 2750"), breaker


@pytest.mark.asyncio
async def test_estimation_without_provider():
    calculator = DistanceFeeCalculator(None, CircuitBreaker(reset_timeout=None))
    result = await calculator.calculate("10 Church St, Parramatta NSW 2150")

    assert result.source == SOURCE_ESTIMATED
    assert result.distance_km == 25.0
    assert result.duration_min == 43
    assert result.pickup_fee == 30.0
    assert result.is_eligible


@pytest.mark.asyncio
async def test_routed_distance():
    stub = ProviderStub(routes=lambda r: httpx.Response(200, json=ROUTE_PAYLOAD))
    calculator, _ = make_calculator(stub)

    result = await calculator.calculate("Blacktown NSW 2148")

    assert result.source == SOURCE_ROUTED
    assert result.distance_km == 18.2
    assert result.duration_min == 25
    assert result.pickup_fee == 30.0
    assert result.route.polyline == "abc123"
    assert result.route.steps[0].instruction == "Head west"
    assert result.route.steps[1].instruction == "Continue"
    assert stub.route_calls[0].headers["X-Goog-Api-Key"] == "test-key"


@pytest.mark.asyncio
async def test_routing_error_falls_back_to_geocoding():
    stub = ProviderStub(routes=lambda r: httpx.Response(500, text="backend error"), geocode=geocode_ok)
    calculator, breaker = make_calculator(stub)

    result = await calculator.calculate("Blacktown NSW 2148")

    assert result.source == SOURCE_GEOCODED
    # ~20 km straight line, inflated for roads
    assert 20 < result.distance_km < 30
    assert not breaker.is_open


@pytest.mark.asyncio
async def test_unresolvable_address_falls_back_to_estimation():
    stub = ProviderStub(routes=lambda r: httpx.Response(500), geocode=geocode_ok)
    calculator, _ = make_calculator(stub)

    result = await calculator.calculate("Somewhere unknown")

    assert result.source == SOURCE_ESTIMATED
    assert result.distance_km == 35.0


@pytest.mark.asyncio
async def test_timeouts_never_reach_the_caller():
    def timeout(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    stub = ProviderStub(routes=timeout, geocode=timeout)
    calculator, _ = make_calculator(stub)

    result = await calculator.calculate("Penrith NSW 2750")

    assert result.source == SOURCE_ESTIMATED
    assert result.distance_km == 5.0


@pytest.mark.asyncio
async def test_malformed_route_payload_falls_through():
    stub = ProviderStub(
        routes=lambda r: httpx.Response(200, json={"routes": [{"distanceMeters": "lots"}]}),
        geocode=geocode_ok,
    )
    calculator, _ = make_calculator(stub)

    result = await calculator.calculate("Blacktown NSW 2148")

    assert result.source == SOURCE_GEOCODED


@pytest.mark.asyncio
async def test_non_object_payloads_fall_back_to_estimation():
    stub = ProviderStub(
        routes=lambda r: httpx.Response(200, json=[]),
        geocode=lambda r: httpx.Response(200, json=[]),
    )
    calculator, breaker = make_calculator(stub)

    result = await calculator.calculate("12 High St, Penrith NSW 2750")

    assert result.source == SOURCE_ESTIMATED
    assert result.distance_km == 5.0
    assert not breaker.is_open


@pytest.mark.asyncio
async def test_referrer_restriction_skips_provider_tiers_for_later_calls():
    stub = ProviderStub(routes=lambda r: httpx.Response(403, json=REFERRER_BODY), geocode=geocode_ok)
    calculator, breaker = make_calculator(stub)

    first = await calculator.calculate("Blacktown NSW 2148")
    assert first.source == SOURCE_ESTIMATED
    assert breaker.is_open
    assert len(stub.requests) == 1

    second = await calculator.calculate("Parramatta NSW 2150")
    assert second.source == SOURCE_ESTIMATED
    assert second.distance_km == 25.0
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_geocoding_referrer_denial_trips_breaker():
    denied = {"status": "REQUEST_DENIED", "error_message": "API keys with referer restrictions cannot be used with this API."}
    stub = ProviderStub(
        routes=lambda r: httpx.Response(503),
        geocode=lambda r: httpx.Response(200, json=denied),
    )
    calculator, breaker = make_calculator(stub)

    result = await calculator.calculate("Blacktown NSW 2148")

    assert result.source == SOURCE_ESTIMATED
    assert breaker.is_open


@pytest.mark.asyncio
async def test_long_distance_needs_manual_review():
    calculator = DistanceFeeCalculator(None, CircuitBreaker(reset_timeout=None))
    result = await calculator.calculate("Manly NSW 2095")

    assert result.distance_km == 65.0
    assert result.pickup_fee == 50.0
    assert result.requires_manual_review
    assert not result.is_eligible


@pytest.mark.asyncio
async def test_validate_pickup_eligibility():
    calculator = DistanceFeeCalculator(None, CircuitBreaker(reset_timeout=None))

    ok = await calculator.validate_pickup_eligibility("Penrith NSW 2750", 300)
    assert ok.eligible
    assert ok.profit == 90

    far = await calculator.validate_pickup_eligibility("Bondi NSW 2026", 3000)
    assert not far.eligible
    assert far.reason == "manual_review"

    thin = await calculator.validate_pickup_eligibility("Blacktown NSW 2148", 150)
    assert not thin.eligible
    assert thin.reason == "insufficient_profit"


@pytest.mark.asyncio
async def test_ensure_pickup_eligible_raises_with_reason():
    calculator = DistanceFeeCalculator(None, CircuitBreaker(reset_timeout=None))

    ok = await calculator.ensure_pickup_eligible("Penrith NSW 2750", 300)
    assert ok.eligible

    with pytest.raises(EligibilityError) as exc_info:
        await calculator.ensure_pickup_eligible("Blacktown NSW 2148", 150)
    assert exc_info.value.reason == "insufficient_profit"
    assert exc_info.value.details["required_min_profit"] == 40
