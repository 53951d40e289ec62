"""
Pre-Deploy and Smoke Test Script.

Runs the application in-process against a throwaway SQLite file and walks
the main flows:
1. Health Check
2. Availability (slot window initialization)
3. Distance and fee calculation (suburb estimate, no provider keys)
4. Booking -> Route -> Navigation link
"""

import os
import sys
from datetime import timedelta
from pathlib import Path

SMOKE_DB = Path("smoke.db")

# Must be set before the app (and its settings) are imported
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///./{SMOKE_DB}")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("GOOGLE_ROUTES_API_KEY", "")
os.environ.setdefault("GOOGLE_GEOCODING_API_KEY", "")

sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient

from buyback.app.core.clock import local_now
from buyback.app.main import app

PREFIX = "/v1"


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def check(response, expected_status=200):
    if response.status_code != expected_status:
        fail(f"{response.request.method} {response.request.url.path}: {response.status_code} {response.text}")
    return response.json()


def main():
    print("🚀 Starting Deployment Validation...")
    if SMOKE_DB.exists():
        SMOKE_DB.unlink()

    with TestClient(app) as client:
        print_step("PRE-DEPLOY", "Checking /health...")
        check(client.get("/health"))
        success("Health check passed")

        tomorrow = (local_now() + timedelta(days=1)).date()
        print_step("VERIFY", f"Listing availability for {tomorrow}...")
        slots = check(client.get(f"{PREFIX}/schedule/availability", params={"date": tomorrow.isoformat()}))["slots"]
        if not slots:
            fail("No slots available tomorrow")
        success(f"{len(slots)} slots open tomorrow")

        print_step("VERIFY", "Calculating pickup fee...")
        quote = check(client.post(f"{PREFIX}/distance/calculate", json={"from_address": "Blacktown NSW 2148"}))
        success(f"Blacktown: {quote['distance_km']} km, ${quote['pickup_fee']} ({quote['source']})")

        print_step("SMOKE", "Running Booking -> Route flow...")
        booking = check(client.post(f"{PREFIX}/schedule/book", json={
            "lead_id": "smoke-test",
            "slot_key": slots[0]["slot_key"],
            "address": "Blacktown NSW 2148",
            "quote_value": 400,
        }))
        if not booking["success"]:
            fail(f"Booking rejected: {booking['reason']}")
        success(f"Booked appointment {booking['appointment']['id']}")

        route = check(client.post(f"{PREFIX}/routes", json={"date": tomorrow.isoformat()}), 201)
        success(f"Route {route['id']}: {route['estimated_distance_km']} km, {route['efficiency']}")

        link = route["pickups"][0]["navigation_url"]
        if not link.startswith("https://maps.google.com/maps?q="):
            fail(f"Unexpected navigation link {link}")
        success("Navigation link generated")

    SMOKE_DB.unlink(missing_ok=True)
    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
