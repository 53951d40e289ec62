"""
Routing schemas.

Optimizer inputs/outputs and persisted route responses.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from buyback.app.models.route_enums import PickupPriority, PickupStatus, RouteStatus, RouteEfficiency


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class PickupInput(BaseModel):
    """One pickup handed to the optimizer."""
    id: str
    address: str
    priority: PickupPriority = PickupPriority.MEDIUM
    device_value: float = 0.0
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class Waypoint(BaseModel):
    """An intermediate stop with its estimated arrival."""
    pickup_id: str
    address: str
    coordinates: Optional[Coordinates] = None
    estimated_arrival: datetime
    driving_time_min: float


class RouteOptimization(BaseModel):
    """Optimizer result."""
    order: List[str]
    total_distance_km: float
    total_duration_min: int
    fuel_cost: float
    efficiency: RouteEfficiency
    waypoints: List[Waypoint]
    source: str = "heuristic"  # heuristic | provider


class RouteCreateRequest(BaseModel):
    """Schema for assembling a route from a day's appointments."""
    date: date
    appointment_ids: Optional[List[int]] = None


class PickupResponse(BaseModel):
    """Route pickup response."""
    id: int
    appointment_id: int
    lead_id: str
    address: str
    latitude: Optional[float]
    longitude: Optional[float]
    window_start: str
    window_end: str
    priority: PickupPriority
    device_value: float
    status: PickupStatus
    notes: Optional[str]
    sequence_number: int
    estimated_arrival: Optional[datetime]
    actual_arrival: Optional[datetime]
    completed_at: Optional[datetime]
    navigation_url: Optional[str] = None
    
    class Config:
        from_attributes = True


class RouteResponse(BaseModel):
    """Route with its ordered pickups."""
    id: int
    date: date
    status: RouteStatus
    estimated_distance_km: float
    estimated_duration_min: int
    actual_distance_km: Optional[float]
    actual_duration_min: Optional[int]
    fuel_cost: float
    efficiency: str
    optimization_source: str
    total_value: float
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    pickups: List[PickupResponse]
    
    class Config:
        from_attributes = True


class RouteListResponse(BaseModel):
    routes: List[RouteResponse]
    total: int


class PickupStatusUpdate(BaseModel):
    """Driver action on a pickup."""
    status: PickupStatus
    notes: Optional[str] = Field(None, max_length=2000)


class PickupStatusResult(BaseModel):
    """Structured outcome of a pickup status change."""
    success: bool
    reason: Optional[str] = None
    message: str
    pickup: Optional[PickupResponse] = None
    route_status: Optional[RouteStatus] = None


class NextPickupResponse(BaseModel):
    route_id: int
    pickup: Optional[PickupResponse] = None


class RouteStats(BaseModel):
    total_routes: int
    total_distance_km: float
    total_pickups: int
    average_efficiency: float


class NavigationResponse(BaseModel):
    address: str
    url: str
