"""
Concurrency Tests.

Validates that racing bookings never push a slot past capacity and that
slot initialization from separate sessions never duplicates.
"""

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

from buyback.app.domain.scheduling.slot_scheduler import SlotLockRegistry, SlotScheduler, slot_locks, slot_start
from buyback.app.models.appointment import Appointment
from buyback.app.models.schedule_slot import ScheduleSlot

TOMORROW = date(2026, 3, 11)
SLOT_KEY = "2026-03-11_13:00"


async def book_in_own_session(session_factory, clock, lead_id):
    async with session_factory() as session:
        return await SlotScheduler(session, clock).book(SLOT_KEY, lead_id)


@pytest.mark.asyncio
async def test_concurrent_bookings_never_exceed_capacity(scheduler, session_factory, clock):
    results = await asyncio.gather(*[
        book_in_own_session(session_factory, clock, f"lead-{n}") for n in range(8)
    ])

    assert sum(1 for r in results if r.success) == 3
    assert {r.reason for r in results if not r.success} == {"full"}

    async with session_factory() as session:
        slot = (await session.execute(
            select(ScheduleSlot).where(ScheduleSlot.start_time == slot_start(TOMORROW, 13))
        )).scalar_one()
        appointments = (await session.execute(
            select(Appointment).where(Appointment.slot_id == slot.id)
        )).scalars().all()

    assert slot.current_bookings == 3
    assert len(appointments) == 3
    assert len(slot_locks) == 0


@pytest.mark.asyncio
async def test_initialization_from_separate_sessions(session_factory, clock):
    async def initialize():
        async with session_factory() as session:
            return await SlotScheduler(session, clock).ensure_slots_initialized(days=2)

    assert await initialize() == 16
    assert await initialize() == 0
    async with session_factory() as session:
        assert await SlotScheduler(session, clock).count_slots() == 16


@pytest.mark.asyncio
async def test_lock_registry_serializes_per_key():
    registry = SlotLockRegistry()
    order = []

    async def worker(name, key):
        async with registry.hold(key):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", "slot-1"), worker("b", "slot-1"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_lock_registry_allows_other_keys():
    registry = SlotLockRegistry()
    entered = asyncio.Event()

    async def holder():
        async with registry.hold("slot-1"):
            await asyncio.wait_for(entered.wait(), timeout=1)

    async def other():
        async with registry.hold("slot-2"):
            entered.set()

    await asyncio.gather(holder(), other())
    assert len(registry) == 0
