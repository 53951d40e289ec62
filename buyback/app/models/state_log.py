"""
State Log database model.

Append-only audit trail of appointment status transitions.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from buyback.app.db.session import Base


class StateLog(Base):
    """State transition record. Rows are inserted, never updated."""
    __tablename__ = "state_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    from_state = Column(String(20), nullable=True)  # None for the initial booking
    to_state = Column(String(20), nullable=False)
    reason = Column(String(255), nullable=True)
    
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<StateLog(appointment_id={self.appointment_id}, {self.from_state}->{self.to_state})>"
