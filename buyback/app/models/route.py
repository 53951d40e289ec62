"""
Route database model.

A route is assembled on demand from a day's confirmed appointments.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from buyback.app.db.session import Base
from buyback.app.models.route_enums import RouteStatus


class Route(Base):
    """
    Route model.
    
    Pickups are ordered by sequence_number. The order only changes through
    an explicit re-optimization while the route is still planning.
    """
    __tablename__ = "routes"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    status = Column(Enum(RouteStatus), default=RouteStatus.PLANNING, nullable=False, index=True)
    
    # Estimates from the optimizer
    estimated_distance_km = Column(Float, nullable=False, default=0.0)
    estimated_duration_min = Column(Integer, nullable=False, default=0)
    fuel_cost = Column(Float, nullable=False, default=0.0)
    efficiency = Column(String(20), nullable=False, default="excellent")
    optimization_source = Column(String(20), nullable=False, default="heuristic")
    
    # Actuals recorded as the route is driven
    actual_distance_km = Column(Float, nullable=True)
    actual_duration_min = Column(Integer, nullable=True)
    
    total_value = Column(Float, nullable=False, default=0.0)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    
    pickups = relationship(
        "RoutePickup",
        back_populates="route",
        order_by="RoutePickup.sequence_number",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    
    def __repr__(self):
        return f"<Route(id={self.id}, date={self.date}, status='{self.status.value}', pickups={len(self.pickups)})>"
