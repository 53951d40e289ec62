"""
Distance API Endpoints.

Distance, pickup fee and eligibility for a customer address.
"""

from fastapi import APIRouter, Depends

from buyback.app.core.dependencies import get_calculator
from buyback.app.domain.distance.calculator import DistanceFeeCalculator
from buyback.app.schemas.distance import (
    DistanceCalculation, DistanceRequest, EligibilityRequest, EligibilityResult
)

router = APIRouter(prefix="/distance", tags=["Distance"])


@router.post("/calculate", response_model=DistanceCalculation)
async def calculate_distance(
    request: DistanceRequest,
    calculator: DistanceFeeCalculator = Depends(get_calculator)
):
    """
    Distance, duration and pickup fee from an address to the hub.
    
    Always answers; the `source` field says which tier produced the figures.
    """
    return await calculator.calculate(request.from_address, request.to_address)


@router.post("/eligibility", response_model=EligibilityResult)
async def check_eligibility(
    request: EligibilityRequest,
    calculator: DistanceFeeCalculator = Depends(get_calculator)
):
    """Distance ceilings and profit band for a lead's address and quote."""
    return await calculator.validate_pickup_eligibility(request.address, request.quote_value)
