"""
Scheduling rules.

Pure wall-clock checks. `now` is always passed in by the caller and read
live per request.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from buyback.app.core.config import settings


def parse_slot_key(slot_key: str) -> Tuple[date, int]:
    """
    Split a slot key 'YYYY-MM-DD_HH:MM' into (date, hour).

    Raises:
        ValueError: if the key is malformed or not on the hour
    """
    try:
        date_part, time_part = slot_key.split("_")
        slot_date = date.fromisoformat(date_part)
        hour_str, minute_str = time_part.split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as exc:
        raise ValueError(f"Malformed slot key: {slot_key!r}") from exc
    if minute != 0 or not 0 <= hour <= 23:
        raise ValueError(f"Slot key must be on the hour: {slot_key!r}")
    return slot_date, hour


def build_slot_key(slot_date: date, hour: int) -> str:
    return f"{slot_date.isoformat()}_{hour:02d}:00"


def is_operating_hour(hour: int) -> bool:
    return settings.operating_start_hour <= hour < settings.operating_end_hour


def operating_hours() -> range:
    return range(settings.operating_start_hour, settings.operating_end_hour)


def booking_window(today: date, days: Optional[int] = None) -> List[date]:
    """Dates of the rolling booking window starting today."""
    days = settings.advance_booking_days if days is None else days
    return [today + timedelta(days=offset) for offset in range(days)]


def is_past_slot(slot_date: date, hour: int, now: datetime) -> bool:
    """Earlier days are past; today, the current hour and earlier are past."""
    today = now.date()
    if slot_date < today:
        return True
    if slot_date == today:
        return hour <= now.hour
    return False


def violates_same_day_cutoff(slot_date: date, hour: int, now: datetime) -> bool:
    """From the cutoff hour on, no later slot may be booked for today."""
    return (
        slot_date == now.date()
        and now.hour >= settings.same_day_cutoff_hour
        and hour > now.hour
    )


def can_cancel(slot_start: datetime, now: datetime) -> bool:
    """Cancellation needs strictly more than the window before the slot starts."""
    return slot_start - now > timedelta(hours=settings.cancellation_window_hours)
