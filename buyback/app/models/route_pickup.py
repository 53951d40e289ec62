"""
Route Pickup (pickup location) database model.

A stop on a route, created from one appointment.
"""

from sqlalchemy import Column, Integer, String, Float, Text, ForeignKey, DateTime, Enum
from sqlalchemy.orm import relationship
from buyback.app.db.session import Base
from buyback.app.models.route_enums import PickupStatus, PickupPriority


class RoutePickup(Base):
    """
    Route Pickup model.
    
    Status is advanced by driver actions through the route status tracker.
    """
    __tablename__ = "route_pickups"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    lead_id = Column(String(64), nullable=False)
    
    # Location
    address = Column(String(500), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    
    # Time window (HH:MM)
    window_start = Column(String(5), nullable=False)
    window_end = Column(String(5), nullable=False)
    
    priority = Column(Enum(PickupPriority), default=PickupPriority.MEDIUM, nullable=False)
    device_value = Column(Float, nullable=False, default=0.0)
    status = Column(Enum(PickupStatus), default=PickupStatus.PENDING, nullable=False)
    notes = Column(Text, nullable=True)
    
    sequence_number = Column(Integer, nullable=False)  # Order in route (1, 2, 3, ...)
    estimated_arrival = Column(DateTime, nullable=True)
    actual_arrival = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    
    route = relationship("Route", back_populates="pickups")
    
    def __repr__(self):
        return f"<RoutePickup(id={self.id}, route_id={self.route_id}, seq={self.sequence_number}, status='{self.status.value}')>"
