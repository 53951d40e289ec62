"""
Schedule API Endpoints.

Customer-facing availability, booking and cancellation. Rejections are
returned as structured results with a reason, not as HTTP errors.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query

from buyback.app.core.dependencies import get_booking_service, get_scheduler
from buyback.app.domain.scheduling.booking import BookingService
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.schemas.scheduling import (
    AvailabilityResponse, BookingRequest, BookingResult, CalendarDay, CancellationResult
)

router = APIRouter(prefix="/schedule", tags=["Schedule"])


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date: date = Query(..., description="Day to list (YYYY-MM-DD)"),
    lead_id: Optional[str] = Query(None, max_length=64),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """Bookable slots for a day."""
    await scheduler.ensure_slots_initialized()
    slots = await scheduler.list_availability(date)
    return AvailabilityResponse(date=date, lead_id=lead_id, slots=slots)


@router.get("/calendar", response_model=List[CalendarDay])
async def get_calendar(
    start: Optional[date] = Query(None, description="First day, defaults to today"),
    days: Optional[int] = Query(None, ge=1, le=31),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """Per-day slot summary for the booking window."""
    await scheduler.ensure_slots_initialized()
    return await scheduler.calendar(start, days)


@router.post("/book", response_model=BookingResult)
async def book_slot(
    request: BookingRequest,
    booking: BookingService = Depends(get_booking_service)
):
    """
    Book a slot for a lead.
    
    When address and quote_value are supplied the pickup is checked for
    distance and profit first.
    """
    return await booking.book(request)


@router.post("/appointments/{appointment_id}/cancel", response_model=CancellationResult)
async def cancel_appointment(
    appointment_id: int = Path(..., ge=1),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """Cancel an appointment outside the cancellation window."""
    return await scheduler.cancel(appointment_id)
