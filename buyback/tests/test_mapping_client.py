"""
Mapping provider client tests.
"""

import json

import httpx
import pytest

from buyback.app.core.exceptions import ExternalServiceError, ReferrerRestrictedError
from buyback.app.services.mapping_client import MappingClient, build_mapping_client, parse_duration_seconds


def client_for(handler, **kwargs):
    kwargs.setdefault("routes_api_key", "key")
    return MappingClient(transport=httpx.MockTransport(handler), **kwargs)


def test_parse_duration_seconds():
    assert parse_duration_seconds("1234s") == 1234
    assert parse_duration_seconds("12.7s") == 12
    assert parse_duration_seconds(90) == 90
    assert parse_duration_seconds(None) == 0


def test_no_keys_means_no_client(mocker):
    mocker.patch("buyback.app.services.mapping_client.settings.google_routes_api_key", None)
    mocker.patch("buyback.app.services.mapping_client.settings.google_geocoding_api_key", None)
    assert build_mapping_client() is None


def test_geocoding_key_defaults_to_routes_key():
    client = MappingClient(routes_api_key="shared")
    assert client.has_geocoding
    assert client.geocoding_api_key == "shared"


@pytest.mark.asyncio
async def test_optimize_waypoints_request_and_order():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        seen["mask"] = request.headers["X-Goog-FieldMask"]
        return httpx.Response(200, json={"routes": [{
            "distanceMeters": 42000,
            "duration": "3600s",
            "optimizedIntermediateWaypointIndex": [2, 0, 1],
        }]})

    result = await client_for(handler).optimize_waypoints((-33.75, 150.69), ["A", "B", "C"])

    assert result.order == [2, 0, 1]
    assert result.distance_meters == 42000
    assert result.duration_seconds == 3600
    assert seen["body"]["optimizeWaypointOrder"] is True
    assert [w["address"] for w in seen["body"]["intermediates"]] == ["A", "B", "C"]
    assert "optimizedIntermediateWaypointIndex" in seen["mask"]


@pytest.mark.asyncio
async def test_optimize_waypoints_rejects_inconsistent_order():
    def handler(request):
        return httpx.Response(200, json={"routes": [{"optimizedIntermediateWaypointIndex": [0, 0, 1]}]})

    with pytest.raises(ExternalServiceError):
        await client_for(handler).optimize_waypoints((-33.75, 150.69), ["A", "B", "C"])


@pytest.mark.asyncio
async def test_empty_routes_is_an_error():
    with pytest.raises(ExternalServiceError):
        await client_for(lambda r: httpx.Response(200, json={})).compute_route("A", "B")


@pytest.mark.asyncio
async def test_referrer_restriction_is_distinguished():
    def handler(request):
        return httpx.Response(403, json={"error": {"message": "API_KEY_HTTP_REFERRER_BLOCKED"}})

    with pytest.raises(ReferrerRestrictedError) as exc_info:
        await client_for(handler).compute_route("A", "B")
    assert exc_info.value.reason == "referrer_restricted"


@pytest.mark.asyncio
async def test_plain_forbidden_is_not_a_referrer_restriction():
    with pytest.raises(ExternalServiceError) as exc_info:
        await client_for(lambda r: httpx.Response(403, text="quota")).compute_route("A", "B")
    assert not isinstance(exc_info.value, ReferrerRestrictedError)


@pytest.mark.asyncio
async def test_invalid_json_is_an_error():
    with pytest.raises(ExternalServiceError):
        await client_for(lambda r: httpx.Response(200, text="<html>")).geocode("Penrith")


@pytest.mark.parametrize("content", [b"[]", b"null", b"\"ok\""])
@pytest.mark.asyncio
async def test_non_object_body_is_an_error(content):
    client = client_for(lambda r: httpx.Response(200, content=content))

    with pytest.raises(ExternalServiceError):
        await client.compute_route("A", "B")
    with pytest.raises(ExternalServiceError):
        await client.geocode("A")
    with pytest.raises(ExternalServiceError):
        await client.optimize_waypoints((-33.75, 150.69), ["A", "B"])


@pytest.mark.asyncio
async def test_geocode_zero_results_returns_none():
    client = client_for(lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))
    assert await client.geocode("Nowhere") is None


@pytest.mark.asyncio
async def test_missing_key_raises():
    client = MappingClient()
    with pytest.raises(ExternalServiceError):
        await client.compute_route("A", "B")
    with pytest.raises(ExternalServiceError):
        await client.geocode("A")
