"""
Appointment database model.

Created on a successful booking against a schedule slot.
"""

from sqlalchemy import Column, Integer, String, Float, Text, ForeignKey, DateTime, Enum, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from buyback.app.db.session import Base
from buyback.app.models.appointment_enums import AppointmentStatus


class Appointment(Base):
    """
    Appointment model.
    
    Links a lead to a slot. Status transitions are recorded in state_logs.
    Address and quote value are copied from the lead so a day's appointments
    can be routed without calling back into the lead subsystem.
    """
    __tablename__ = "appointments"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    lead_id = Column(String(64), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("schedule_slots.id"), nullable=False, index=True)
    
    status = Column(Enum(AppointmentStatus), default=AppointmentStatus.SCHEDULED, nullable=False, index=True)
    is_same_day = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    
    address = Column(String(500), nullable=True)
    quote_value = Column(Float, nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    slot = relationship("ScheduleSlot", back_populates="appointments", lazy="joined")
    
    def __repr__(self):
        return f"<Appointment(id={self.id}, lead_id='{self.lead_id}', status='{self.status.value}')>"
