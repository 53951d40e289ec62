"""
API tests over the ASGI app with database, clock and provider overridden.
"""

import pytest

from buyback.app.core.reliability import CircuitBreaker


async def initialize(client):
    response = await client.post("/v1/admin/schedule/initialize")
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_distance_calculation(client):
    response = await client.post("/v1/distance/calculate", json={"from_address": "Blacktown NSW 2148"})

    assert response.status_code == 200
    data = response.json()
    assert data["distance_km"] == 18.0
    assert data["pickup_fee"] == 30.0
    assert data["source"] == "estimated"
    assert data["is_eligible"] is True


@pytest.mark.asyncio
async def test_eligibility(client):
    response = await client.post(
        "/v1/distance/eligibility", json={"address": "Blacktown NSW 2148", "quote_value": 150}
    )
    assert response.json()["reason"] == "insufficient_profit"


@pytest.mark.asyncio
async def test_initialize_is_idempotent(client):
    assert (await initialize(client))["created"] == 112
    assert (await initialize(client))["created"] == 0


@pytest.mark.asyncio
async def test_availability_and_booking(client, clock):
    clock.set(14, 50)

    availability = await client.get("/v1/schedule/availability", params={"date": "2026-03-10"})
    assert availability.status_code == 200
    slots = availability.json()["slots"]
    assert [s["start_time"] for s in slots] == ["15:00", "16:00", "17:00", "18:00", "19:00"]

    booking = await client.post("/v1/schedule/book", json={"lead_id": "lead-1", "slot_key": "2026-03-10_16:00"})
    assert booking.status_code == 200
    body = booking.json()
    assert body["success"] is True
    assert body["appointment"]["is_same_day"] is True

    clock.set(15, 5)
    late = await client.post("/v1/schedule/book", json={"lead_id": "lead-2", "slot_key": "2026-03-10_17:00"})
    assert late.json() == {
        "success": False,
        "reason": "cutoff",
        "message": "Same-day bookings must be made before 15:00",
        "appointment": None,
    }


@pytest.mark.asyncio
async def test_booking_checks_eligibility_first(client):
    await initialize(client)

    response = await client.post("/v1/schedule/book", json={
        "lead_id": "lead-1",
        "slot_key": "2026-03-11_12:00",
        "address": "Manly NSW 2095",
        "quote_value": 1200,
    })

    assert response.json()["success"] is False
    assert response.json()["reason"] == "manual_review"


@pytest.mark.asyncio
async def test_booking_validation_error(client):
    response = await client.post("/v1/schedule/book", json={"lead_id": "lead-1", "slot_key": "tomorrow"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_cancel_and_history(client):
    await initialize(client)
    booking = await client.post("/v1/schedule/book", json={"lead_id": "lead-1", "slot_key": "2026-03-12_15:00"})
    appointment_id = booking.json()["appointment"]["id"]

    cancel = await client.post(f"/v1/schedule/appointments/{appointment_id}/cancel")
    assert cancel.json()["success"] is True

    history = await client.get(f"/v1/admin/appointments/{appointment_id}/history")
    assert [h["to_state"] for h in history.json()] == ["scheduled", "cancelled"]


@pytest.mark.asyncio
async def test_invalid_appointment_transition_is_conflict(client):
    await initialize(client)
    booking = await client.post("/v1/schedule/book", json={"lead_id": "lead-1", "slot_key": "2026-03-12_15:00"})
    appointment_id = booking.json()["appointment"]["id"]

    done = await client.patch(f"/v1/admin/appointments/{appointment_id}/status", json={"status": "completed"})
    assert done.status_code == 200

    back = await client.patch(f"/v1/admin/appointments/{appointment_id}/status", json={"status": "confirmed"})
    assert back.status_code == 409
    assert back.json()["reason"] == "invalid_transition"


@pytest.mark.asyncio
async def test_missing_appointment_history_is_404(client):
    response = await client.get("/v1/admin/appointments/12345/history")
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_block_and_stats(client):
    await initialize(client)

    blocked = await client.post("/v1/admin/schedule/block", json={"date": "2026-03-11", "start_time": "12:00"})
    assert blocked.json() == {"updated": True, "slot_key": "2026-03-11_12:00", "is_blocked": True}

    booking = await client.post("/v1/schedule/book", json={"lead_id": "lead-1", "slot_key": "2026-03-11_12:00"})
    assert booking.json()["reason"] == "blocked"

    stats = await client.get("/v1/admin/schedule/stats")
    assert stats.json()["total_slots"] == 112
    assert stats.json()["next_available_slot"] == {"date": "2026-03-10", "time": "12:00"}


@pytest.mark.asyncio
async def test_route_flow(client):
    await initialize(client)
    for lead_id, slot_key, address in [
        ("lead-1", "2026-03-11_12:00", "Penrith NSW 2750"),
        ("lead-2", "2026-03-11_13:00", "Blacktown NSW 2148"),
    ]:
        booked = await client.post("/v1/schedule/book", json={
            "lead_id": lead_id, "slot_key": slot_key, "address": address, "quote_value": 400,
        })
        assert booked.json()["success"] is True

    created = await client.post("/v1/routes", json={"date": "2026-03-11"})
    assert created.status_code == 201
    route = created.json()
    assert len(route["pickups"]) == 2

    detail = await client.get(f"/v1/routes/{route['id']}")
    assert detail.json()["id"] == route["id"]

    pickup_id = route["pickups"][0]["id"]
    update = await client.patch(
        f"/v1/routes/{route['id']}/pickups/{pickup_id}/status", json={"status": "en_route"}
    )
    assert update.json()["route_status"] == "active"

    next_stop = await client.get(f"/v1/routes/{route['id']}/next-pickup")
    assert next_stop.json()["pickup"]["id"] == pickup_id

    reoptimize = await client.post(f"/v1/routes/{route['id']}/reoptimize")
    assert reoptimize.status_code == 400
    assert reoptimize.json()["reason"] == "invalid_state"

    listing = await client.get("/v1/routes", params={"date": "2026-03-11"})
    assert listing.json()["total"] == 1

    stats = await client.get("/v1/routes/stats")
    assert stats.json()["total_pickups"] == 2


@pytest.mark.asyncio
async def test_route_without_appointments_is_404(client):
    response = await client.post("/v1/routes", json={"date": "2026-03-11"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_unknown_route_is_404(client):
    response = await client.get("/v1/routes/999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_navigation_url(client):
    response = await client.get("/v1/navigation", params={"address": "1 High St, Penrith NSW"})
    assert response.json()["url"] == "https://maps.google.com/maps?q=1%20High%20St%2C%20Penrith%20NSW&navigate=yes"


@pytest.mark.asyncio
async def test_clear_cache_and_breaker_reset(client, breaker: CircuitBreaker):
    assert (await client.post("/v1/admin/ops/clear-cache")).status_code == 200

    breaker.trip("test")
    status = await client.get("/v1/admin/ops/mapping-breaker")
    assert status.json()["is_open"] is True

    reset = await client.post("/v1/admin/ops/mapping-breaker/reset")
    assert reset.json()["is_open"] is False


@pytest.mark.asyncio
async def test_health_reports_redis(client, mocker):
    mocker.patch("buyback.app.main.settings.cache_backend", "redis")
    mocker.patch("buyback.app.main.ping_redis", mocker.AsyncMock(return_value=False))

    response = await client.get("/health")
    assert response.json()["cache"] == "unavailable"
