"""
Database seeding script for the booking window.

Creates the tables if needed and fills the rolling slot window.
Safe to run repeatedly: existing slots are left alone.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from buyback.app.core.config import settings
from buyback.app.db.session import AsyncSessionLocal, Base, engine
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler

# Register models with Base
from buyback.app.models.schedule_slot import ScheduleSlot
from buyback.app.models.appointment import Appointment
from buyback.app.models.state_log import StateLog
from buyback.app.models.route import Route
from buyback.app.models.route_pickup import RoutePickup


async def seed_slots(days: int):
    """
    Seed schedule slots.

    Creates one slot per operating hour for each day of the window.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print(f"🌱 Seeding {days} days of slots...")
        scheduler = SlotScheduler(db)
        created = await scheduler.ensure_slots_initialized(days)
        total = await scheduler.count_slots()

    await engine.dispose()

    if created == 0:
        print("ℹ️  Slot window already initialized, nothing to add")
    else:
        print(f"✅ Created {created} slots")
    print(f"\n🎉 {total} slots in the database")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fill the rolling booking window")
    parser.add_argument("--days", type=int, default=settings.advance_booking_days)
    asyncio.run(seed_slots(parser.parse_args().days))
