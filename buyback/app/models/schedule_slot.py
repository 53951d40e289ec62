"""
Schedule Slot database model.

One row per operating hour per day. Slots are never deleted, only
blocked/unblocked.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from buyback.app.db.session import Base


class ScheduleSlot(Base):
    """
    Schedule Slot model.
    
    Holds the number of active bookings so capacity can be enforced with a
    single conditional UPDATE. Uniqueness on (date, start_time) makes
    initialization idempotent.
    """
    __tablename__ = "schedule_slots"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Local business time (hub timezone), stored naive
    date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    
    # Capacity
    capacity = Column(Integer, nullable=False, default=3)
    current_bookings = Column(Integer, nullable=False, default=0)
    
    # Availability flags
    is_available = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    block_reason = Column(String(255), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    appointments = relationship("Appointment", back_populates="slot")
    
    __table_args__ = (
        UniqueConstraint("date", "start_time", name="uq_schedule_slots_date_start"),
        CheckConstraint("current_bookings >= 0 AND current_bookings <= capacity", name="ck_schedule_slots_capacity"),
    )
    
    @property
    def slot_key(self) -> str:
        return f"{self.date.isoformat()}_{self.start_time.strftime('%H:%M')}"
    
    def __repr__(self):
        return f"<ScheduleSlot(id={self.id}, key='{self.slot_key}', bookings={self.current_bookings}/{self.capacity})>"
