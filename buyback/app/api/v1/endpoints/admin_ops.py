"""
Admin Operations API Endpoints.

Cache and mapping-provider maintenance.
"""

from fastapi import APIRouter, Depends

from buyback.app.core.dependencies import get_breaker, get_cache
from buyback.app.core.reliability import CircuitBreaker
from buyback.app.services.cache import CacheService

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/clear-cache")
async def clear_cache(cache: CacheService = Depends(get_cache)):
    """Drop every cached route."""
    await cache.clear()
    return {"message": "Cache cleared"}


@router.get("/mapping-breaker")
async def mapping_breaker_status(breaker: CircuitBreaker = Depends(get_breaker)):
    """Whether provider tiers are currently being skipped."""
    return {"name": breaker.name, "state": breaker.state, "is_open": breaker.is_open}


@router.post("/mapping-breaker/reset")
async def reset_mapping_breaker(breaker: CircuitBreaker = Depends(get_breaker)):
    """Re-enable provider tiers after the API key restriction is fixed."""
    breaker.reset_state()
    return {"name": breaker.name, "state": breaker.state, "is_open": breaker.is_open}
