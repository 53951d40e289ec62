"""
State transition logging for appointments.

Provides the append-only audit trail of appointment status changes.
"""

import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from buyback.app.models.state_log import StateLog

logger = logging.getLogger(__name__)


class StateLogReason:
    """Standardized transition reasons."""
    BOOKED = "Appointment booked by customer"
    CANCELLED_BY_CUSTOMER = "Cancelled by customer"
    PICKUP_COMPLETED = "Pickup completed on route"
    ADMIN_UPDATE = "Status changed by admin"


async def log_state_transition(
    db: AsyncSession,
    appointment_id: int,
    from_state: Optional[str],
    to_state: str,
    reason: Optional[str] = None
) -> StateLog:
    """
    Append a state transition for an appointment.
    
    The entry is added to the caller's transaction and flushed; the caller
    commits together with the status change it records.
    
    Args:
        db: Database session
        appointment_id: Appointment whose status changed
        from_state: Previous status value (None for the initial booking)
        to_state: New status value
        reason: Human-readable cause
        
    Returns:
        Created StateLog instance
    """
    entry = StateLog(
        appointment_id=appointment_id,
        from_state=from_state,
        to_state=to_state,
        reason=reason
    )
    db.add(entry)
    await db.flush()
    
    logger.info("Appointment %s: %s -> %s (%s)", appointment_id, from_state, to_state, reason)
    return entry


async def get_state_history(db: AsyncSession, appointment_id: int) -> List[StateLog]:
    """State transitions for an appointment, oldest first."""
    result = await db.execute(
        select(StateLog)
        .where(StateLog.appointment_id == appointment_id)
        .order_by(StateLog.timestamp.asc(), StateLog.id.asc())
    )
    return list(result.scalars().all())
