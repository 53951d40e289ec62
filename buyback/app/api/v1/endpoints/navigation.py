"""
Navigation API Endpoints.
"""

from fastapi import APIRouter, Query

from buyback.app.domain.routing.navigation import build_navigation_url
from buyback.app.schemas.routing import NavigationResponse

router = APIRouter(prefix="/navigation", tags=["Navigation"])


@router.get("", response_model=NavigationResponse)
async def navigation_link(address: str = Query(..., min_length=1, max_length=500)):
    """Map deep link that starts turn-by-turn navigation to an address."""
    return NavigationResponse(address=address, url=build_navigation_url(address))
