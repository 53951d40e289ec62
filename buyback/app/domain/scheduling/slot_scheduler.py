"""
Slot Scheduler (Domain Logic).

Maintains the rolling window of hourly, capacity-bounded schedule slots and
books/cancels appointments against them.

Booking is serialized per slot key twice over: an in-process asyncio lock
keeps concurrent requests in one worker from interleaving, and the seat is
taken with a conditional UPDATE so separate workers can never jointly push
current_bookings past capacity.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buyback.app.core.clock import local_now
from buyback.app.core.config import settings
from buyback.app.core.exceptions import (
    AppException,
    CapacityError,
    InvalidTransitionError,
    ResourceNotFoundError,
    TimingError,
    ValidationError,
)
from buyback.app.domain.scheduling.rules import (
    booking_window,
    build_slot_key,
    can_cancel,
    is_past_slot,
    operating_hours,
    parse_slot_key,
    violates_same_day_cutoff,
)
from buyback.app.models.appointment import Appointment
from buyback.app.models.appointment_enums import (
    ACTIVE_APPOINTMENT_STATUSES,
    APPOINTMENT_TRANSITIONS,
    AppointmentStatus,
)
from buyback.app.models.schedule_slot import ScheduleSlot
from buyback.app.models.state_log import StateLog
from buyback.app.schemas.scheduling import (
    AppointmentResponse,
    BookingResult,
    BookingStats,
    CalendarDay,
    CancellationResult,
    NextAvailableSlot,
    SlotBlockResponse,
    SlotResponse,
)
from buyback.app.services.audit import StateLogReason, get_state_history, log_state_transition

logger = logging.getLogger(__name__)


class SlotLockRegistry:
    """
    Per-slot asyncio locks.

    Entries are dropped once nobody holds or waits on them, so the registry
    only ever contains slots with in-flight bookings.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, slot_key: str):
        lock = self._locks.get(slot_key)
        if lock is None:
            lock = self._locks[slot_key] = asyncio.Lock()
        self._holders[slot_key] = self._holders.get(slot_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[slot_key] -= 1
            if self._holders[slot_key] == 0:
                del self._holders[slot_key]
                del self._locks[slot_key]

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every scheduler in the process
slot_locks = SlotLockRegistry()


def slot_start(slot_date: date, hour: int) -> datetime:
    return datetime.combine(slot_date, time(hour=hour))


def is_bookable(slot: ScheduleSlot, now: datetime) -> bool:
    """Not past, not blocked, under capacity and flagged available."""
    return (
        not is_past_slot(slot.date, slot.start_time.hour, now)
        and not slot.is_blocked
        and slot.current_bookings < slot.capacity
        and slot.is_available
    )


def to_slot_response(slot: ScheduleSlot, now: datetime) -> SlotResponse:
    return SlotResponse(
        slot_key=slot.slot_key,
        date=slot.date,
        start_time=slot.start_time.strftime("%H:%M"),
        end_time=slot.end_time.strftime("%H:%M"),
        capacity=slot.capacity,
        current_bookings=slot.current_bookings,
        is_blocked=slot.is_blocked,
        is_available=is_bookable(slot, now),
        is_same_day=slot.date == now.date(),
    )


def to_appointment_response(appointment: Appointment, slot: Optional[ScheduleSlot] = None) -> AppointmentResponse:
    slot = slot or appointment.slot
    return AppointmentResponse(
        id=appointment.id,
        lead_id=appointment.lead_id,
        slot_id=appointment.slot_id,
        slot_key=slot.slot_key if slot is not None else None,
        status=appointment.status,
        is_same_day=appointment.is_same_day,
        notes=appointment.notes,
        address=appointment.address,
        quote_value=appointment.quote_value,
    )


class SlotScheduler:

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = local_now,
        locks: Optional[SlotLockRegistry] = None,
    ):
        self.db = db
        self.clock = clock
        self.locks = locks if locks is not None else slot_locks

    # Slot window

    async def ensure_slots_initialized(self, days: Optional[int] = None) -> int:
        """
        Create missing slots for the rolling window starting today.

        Safe to run concurrently with itself and with bookings: a slot that
        another caller inserted first counts as already present.

        Returns:
            Number of slots this call created
        """
        dates = booking_window(self.clock().date(), days)
        if not dates:
            return 0
        result = await self.db.execute(
            select(ScheduleSlot.date, ScheduleSlot.start_time)
            .where(ScheduleSlot.date >= dates[0], ScheduleSlot.date <= dates[-1])
        )
        existing = {(row.date, row.start_time) for row in result}

        created = 0
        for slot_date in dates:
            for hour in operating_hours():
                start = slot_start(slot_date, hour)
                if (slot_date, start) in existing:
                    continue
                if await self._insert_slot(slot_date, start):
                    created += 1

        if created:
            logger.info("Initialized %d schedule slots from %s to %s", created, dates[0], dates[-1])
        return created

    async def _insert_slot(self, slot_date: date, start: datetime) -> bool:
        self.db.add(ScheduleSlot(
            date=slot_date,
            start_time=start,
            end_time=start + timedelta(minutes=settings.slot_duration_minutes),
            capacity=settings.slot_capacity,
            current_bookings=0,
            is_available=True,
            is_blocked=False,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.debug("Slot %s already created by another caller", start)
            return False
        return True

    async def _get_slot(self, slot_date: date, hour: int) -> Optional[ScheduleSlot]:
        result = await self.db.execute(
            select(ScheduleSlot).where(
                ScheduleSlot.date == slot_date,
                ScheduleSlot.start_time == slot_start(slot_date, hour),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _slots_between(self, start: date, end: date) -> List[ScheduleSlot]:
        result = await self.db.execute(
            select(ScheduleSlot)
            .where(ScheduleSlot.date >= start, ScheduleSlot.date <= end)
            .order_by(ScheduleSlot.date, ScheduleSlot.start_time)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # Queries

    async def list_availability(self, slot_date: date) -> List[SlotResponse]:
        """Bookable slots on a date, in time order."""
        now = self.clock()
        slots = await self._slots_between(slot_date, slot_date)
        return [to_slot_response(slot, now) for slot in slots if is_bookable(slot, now)]

    async def calendar(self, start: Optional[date] = None, days: Optional[int] = None) -> List[CalendarDay]:
        """Per-day summary of every slot in the window."""
        now = self.clock()
        today = now.date()
        dates = booking_window(start or today, days)
        by_date: Dict[date, List[ScheduleSlot]] = {}
        for slot in await self._slots_between(dates[0], dates[-1]):
            by_date.setdefault(slot.date, []).append(slot)

        calendar = []
        for day in dates:
            slots = [to_slot_response(slot, now) for slot in by_date.get(day, [])]
            calendar.append(CalendarDay(
                date=day,
                day_name=day.strftime("%A"),
                is_today=day == today,
                is_past=day < today,
                is_weekend=day.weekday() >= 5,
                total_slots=len(slots),
                available_slots=sum(1 for slot in slots if slot.is_available),
                booked_slots=sum(1 for slot in slots if slot.current_bookings > 0),
                slots=slots,
            ))
        return calendar

    async def booking_stats(self) -> BookingStats:
        """
        Utilization of the booking window.

        booked_slots counts slots holding at least one active booking;
        utilization_rate is taken seats over total seats, in percent.
        """
        now = self.clock()
        dates = booking_window(now.date())
        slots = await self._slots_between(dates[0], dates[-1])

        seats = sum(slot.capacity for slot in slots)
        taken = sum(slot.current_bookings for slot in slots)
        bookable = [slot for slot in slots if is_bookable(slot, now)]
        next_slot = bookable[0] if bookable else None

        return BookingStats(
            total_slots=len(slots),
            booked_slots=sum(1 for slot in slots if slot.current_bookings > 0),
            available_slots=len(bookable),
            utilization_rate=round(taken / seats * 100) if seats else 0,
            next_available_slot=NextAvailableSlot(
                date=next_slot.date,
                time=next_slot.start_time.strftime("%H:%M"),
            ) if next_slot else None,
        )

    # Booking

    async def book(
        self,
        slot_key: str,
        lead_id: str,
        notes: Optional[str] = None,
        address: Optional[str] = None,
        quote_value: Optional[float] = None,
    ) -> BookingResult:
        """
        Reserve a seat in a slot for a lead.

        Never raises for business rejections; the result carries the reason
        (not_found / blocked / past / cutoff / full / invalid_slot).
        """
        try:
            slot_date, hour = parse_slot_key(slot_key)
        except ValueError as exc:
            return BookingResult(success=False, reason="invalid_slot", message=str(exc))

        async with self.locks.hold(slot_key):
            try:
                appointment, slot = await self._reserve(slot_date, hour, lead_id, notes, address, quote_value)
            except AppException as exc:
                await self.db.rollback()
                logger.info("Booking of %s for lead %s rejected: %s", slot_key, lead_id, exc.reason)
                return BookingResult(success=False, reason=exc.reason, message=exc.message)

        logger.info("Appointment %s booked: lead %s at %s", appointment.id, lead_id, slot_key)
        return BookingResult(
            success=True,
            message="Appointment booked successfully",
            appointment=to_appointment_response(appointment, slot),
        )

    async def _reserve(self, slot_date, hour, lead_id, notes, address, quote_value):
        slot = await self._get_slot(slot_date, hour)
        if slot is None:
            raise ValidationError("Time slot not found", reason="not_found")
        if slot.is_blocked:
            raise CapacityError("Time slot is blocked", reason="blocked")

        now = self.clock()
        if is_past_slot(slot_date, hour, now):
            raise TimingError("Cannot book a time slot in the past", reason="past")
        if violates_same_day_cutoff(slot_date, hour, now):
            raise TimingError(
                f"Same-day bookings must be made before {settings.same_day_cutoff_hour}:00",
                reason="cutoff",
            )
        if not slot.is_available or slot.current_bookings >= slot.capacity:
            raise CapacityError()

        result = await self.db.execute(
            update(ScheduleSlot)
            .where(
                ScheduleSlot.id == slot.id,
                ScheduleSlot.current_bookings < ScheduleSlot.capacity,
                ScheduleSlot.is_blocked.is_(False),
                ScheduleSlot.is_available.is_(True),
            )
            .values(current_bookings=ScheduleSlot.current_bookings + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CapacityError()

        appointment = Appointment(
            lead_id=lead_id,
            slot_id=slot.id,
            status=AppointmentStatus.SCHEDULED,
            is_same_day=slot_date == now.date(),
            notes=notes,
            address=address,
            quote_value=quote_value,
        )
        self.db.add(appointment)
        await self.db.flush()
        await log_state_transition(
            self.db, appointment.id, None, AppointmentStatus.SCHEDULED.value, StateLogReason.BOOKED
        )
        await self.db.commit()
        return appointment, slot

    async def _get_appointment(self, appointment_id: int) -> Appointment:
        result = await self.db.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .execution_options(populate_existing=True)
        )
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise ResourceNotFoundError("Appointment", appointment_id)
        return appointment

    async def _release_seat(self, slot_id: int) -> None:
        await self.db.execute(
            update(ScheduleSlot)
            .where(ScheduleSlot.id == slot_id, ScheduleSlot.current_bookings > 0)
            .values(current_bookings=ScheduleSlot.current_bookings - 1)
            .execution_options(synchronize_session=False)
        )

    async def cancel(self, appointment_id: int) -> CancellationResult:
        """Cancel if the slot starts more than the cancellation window from now."""
        try:
            appointment = await self._get_appointment(appointment_id)
            if appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
                raise ValidationError(
                    f"Appointment is already {appointment.status.value}", reason="invalid_state"
                )
            if not can_cancel(appointment.slot.start_time, self.clock()):
                raise TimingError(
                    f"Cannot cancel within {settings.cancellation_window_hours} hours of appointment time",
                    reason="cancellation_window",
                )

            await self.apply_transition(appointment, AppointmentStatus.CANCELLED, StateLogReason.CANCELLED_BY_CUSTOMER)
            await self.db.commit()
        except AppException as exc:
            await self.db.rollback()
            logger.info("Cancellation of appointment %s rejected: %s", appointment_id, exc.reason)
            return CancellationResult(success=False, reason=exc.reason, message=exc.message)

        logger.info("Appointment %s cancelled", appointment_id)
        return CancellationResult(success=True, message="Appointment cancelled successfully")

    async def transition_appointment(
        self,
        appointment_id: int,
        to_status: AppointmentStatus,
        reason: Optional[str] = None,
    ) -> AppointmentResponse:
        """
        Admin status change along APPOINTMENT_TRANSITIONS.

        Leaving an active status frees the seat in the slot.

        Raises:
            ResourceNotFoundError: unknown appointment
            InvalidTransitionError: transition not permitted
        """
        appointment = await self._get_appointment(appointment_id)
        await self.apply_transition(appointment, to_status, reason or StateLogReason.ADMIN_UPDATE)
        await self.db.commit()
        return to_appointment_response(appointment)

    async def apply_transition(self, appointment: Appointment, to_status: AppointmentStatus, reason: str) -> None:
        """Change status, free the seat when leaving an active status, log it. Caller commits."""
        previous = appointment.status
        if to_status not in APPOINTMENT_TRANSITIONS[previous]:
            raise InvalidTransitionError("appointment", previous, to_status)

        if previous in ACTIVE_APPOINTMENT_STATUSES and to_status not in ACTIVE_APPOINTMENT_STATUSES:
            await self._release_seat(appointment.slot_id)
        appointment.status = to_status
        await log_state_transition(self.db, appointment.id, previous.value, to_status.value, reason)

    async def get_history(self, appointment_id: int) -> List[StateLog]:
        await self._get_appointment(appointment_id)
        return await get_state_history(self.db, appointment_id)

    # Administration

    async def _set_blocked(self, slot_date: date, start_time: str, blocked: bool, reason: Optional[str]) -> SlotBlockResponse:
        try:
            hour = int(start_time.split(":")[0])
        except ValueError as exc:
            raise ValidationError(f"Invalid start time: {start_time!r}") from exc

        result = await self.db.execute(
            update(ScheduleSlot)
            .where(ScheduleSlot.date == slot_date, ScheduleSlot.start_time == slot_start(slot_date, hour))
            .values(
                is_blocked=blocked,
                is_available=not blocked,
                block_reason=reason if blocked else None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        slot_key = build_slot_key(slot_date, hour)
        if result.rowcount == 0:
            raise ResourceNotFoundError("Schedule slot", slot_key)
        logger.info("Time slot %s %s: %s", slot_key, "blocked" if blocked else "unblocked", reason or "no reason provided")
        return SlotBlockResponse(updated=True, slot_key=slot_key, is_blocked=blocked)

    async def block(self, slot_date: date, start_time: str, reason: Optional[str] = None) -> SlotBlockResponse:
        """Take a slot out of booking. Existing bookings are kept."""
        return await self._set_blocked(slot_date, start_time, True, reason)

    async def unblock(self, slot_date: date, start_time: str) -> SlotBlockResponse:
        return await self._set_blocked(slot_date, start_time, False, None)

    async def count_slots(self) -> int:
        result = await self.db.execute(select(func.count(ScheduleSlot.id)))
        return result.scalar()
