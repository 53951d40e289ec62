"""
Distance and fee schemas.

DistanceCalculation is an ephemeral result; it is never persisted.
"""

from pydantic import BaseModel, Field
from typing import Optional, List


class RouteStep(BaseModel):
    """One turn-by-turn instruction from the routing provider."""
    instruction: str
    distance_km: float
    duration_min: int


class RouteDetail(BaseModel):
    """Polyline and steps returned by a routed (tier 1) calculation."""
    polyline: str = ""
    steps: List[RouteStep] = []


class DistanceCalculation(BaseModel):
    """Distance, duration, fee and eligibility for one address."""
    distance_km: float
    duration_min: int
    pickup_fee: float
    is_eligible: bool
    requires_manual_review: bool = False
    source: str = Field(..., description="routed | geocoded | estimated")
    route: Optional[RouteDetail] = None


class DistanceRequest(BaseModel):
    """Schema for a distance/fee calculation request."""
    from_address: str = Field(..., min_length=1, max_length=500)
    to_address: Optional[str] = Field(None, min_length=1, max_length=500, description="Defaults to the hub")


class EligibilityRequest(BaseModel):
    """Schema for a pickup eligibility check."""
    address: str = Field(..., min_length=1, max_length=500)
    quote_value: float = Field(..., ge=0, description="Final quote value for the device")


class EligibilityResult(BaseModel):
    """Outcome of the distance + profit-band check for a pickup."""
    eligible: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    distance_km: Optional[float] = None
    duration_min: Optional[int] = None
    pickup_fee: Optional[float] = None
    profit: Optional[float] = None
    required_min_profit: Optional[float] = None
    requires_manual_review: bool = False
