"""
Scheduling schemas.

Defines request and response models for slots, bookings and cancellations.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from buyback.app.models.appointment_enums import AppointmentStatus

SLOT_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}_\d{2}:\d{2}$"


class SlotResponse(BaseModel):
    """One bookable hour."""
    slot_key: str
    date: date
    start_time: str  # HH:MM
    end_time: str  # HH:MM
    capacity: int
    current_bookings: int
    is_blocked: bool
    is_available: bool
    is_same_day: bool = False


class AvailabilityResponse(BaseModel):
    """Available slots for one date."""
    date: date
    lead_id: Optional[str] = None
    slots: List[SlotResponse]


class CalendarDay(BaseModel):
    """Calendar summary for one day of the booking window."""
    date: date
    day_name: str
    is_today: bool
    is_past: bool
    is_weekend: bool
    total_slots: int
    available_slots: int
    booked_slots: int
    slots: List[SlotResponse]


class BookingRequest(BaseModel):
    """Schema for booking a slot for a lead."""
    lead_id: str = Field(..., min_length=1, max_length=64)
    slot_key: str = Field(..., pattern=SLOT_KEY_PATTERN, description="YYYY-MM-DD_HH:MM")
    address: Optional[str] = Field(None, min_length=1, max_length=500)
    quote_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    """Appointment details."""
    id: int
    lead_id: str
    slot_id: int
    slot_key: Optional[str] = None
    status: AppointmentStatus
    is_same_day: bool
    notes: Optional[str] = None
    address: Optional[str] = None
    quote_value: Optional[float] = None


class BookingResult(BaseModel):
    """Structured outcome of a booking attempt."""
    success: bool
    reason: Optional[str] = None
    message: str
    appointment: Optional[AppointmentResponse] = None


class CancellationResult(BaseModel):
    """Structured outcome of a cancellation attempt."""
    success: bool
    reason: Optional[str] = None
    message: str


class SlotBlockRequest(BaseModel):
    """Schema for blocking or unblocking a slot."""
    date: date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    reason: Optional[str] = Field(None, max_length=255)


class SlotBlockResponse(BaseModel):
    updated: bool
    slot_key: str
    is_blocked: bool


class AppointmentStatusUpdate(BaseModel):
    """Admin status change for an appointment."""
    status: AppointmentStatus
    reason: Optional[str] = Field(None, max_length=255)


class StateLogResponse(BaseModel):
    """State transition entry."""
    id: int
    appointment_id: int
    from_state: Optional[str]
    to_state: str
    reason: Optional[str]
    timestamp: datetime
    
    class Config:
        from_attributes = True


class NextAvailableSlot(BaseModel):
    date: date
    time: str


class BookingStats(BaseModel):
    """Utilization of the booking window."""
    total_slots: int
    booked_slots: int
    available_slots: int
    utilization_rate: int
    next_available_slot: Optional[NextAvailableSlot] = None


class InitializationResponse(BaseModel):
    created: int
    window_days: int
