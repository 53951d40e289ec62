"""
Admin Schedule API Endpoints.

Slot window maintenance, slot blocking and appointment status management.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, Query

from buyback.app.core.config import settings
from buyback.app.core.dependencies import get_scheduler
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.schemas.scheduling import (
    AppointmentResponse, AppointmentStatusUpdate, BookingStats, InitializationResponse,
    SlotBlockRequest, SlotBlockResponse, StateLogResponse
)

router = APIRouter(prefix="/admin", tags=["Admin - Schedule"])


@router.post("/schedule/initialize", response_model=InitializationResponse)
async def initialize_slots(
    days: int = Query(settings.advance_booking_days, ge=1, le=60),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """Create any missing slots in the rolling window. Idempotent."""
    created = await scheduler.ensure_slots_initialized(days)
    return InitializationResponse(created=created, window_days=days)


@router.post("/schedule/block", response_model=SlotBlockResponse)
async def block_slot(
    request: SlotBlockRequest,
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """Take a slot out of booking. Existing appointments are untouched."""
    return await scheduler.block(request.date, request.start_time, request.reason)


@router.post("/schedule/unblock", response_model=SlotBlockResponse)
async def unblock_slot(
    request: SlotBlockRequest,
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    return await scheduler.unblock(request.date, request.start_time)


@router.get("/schedule/stats", response_model=BookingStats)
async def booking_stats(scheduler: SlotScheduler = Depends(get_scheduler)):
    """Utilization of the booking window."""
    return await scheduler.booking_stats()


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    request: AppointmentStatusUpdate,
    appointment_id: int = Path(..., ge=1),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """
    Move an appointment along its lifecycle.
    
    Returns 409 for transitions out of a terminal status or backwards.
    """
    return await scheduler.transition_appointment(appointment_id, request.status, request.reason)


@router.get("/appointments/{appointment_id}/history", response_model=List[StateLogResponse])
async def appointment_history(
    appointment_id: int = Path(..., ge=1),
    scheduler: SlotScheduler = Depends(get_scheduler)
):
    """State transitions for an appointment, oldest first."""
    logs = await scheduler.get_history(appointment_id)
    return [StateLogResponse.model_validate(log) for log in logs]
