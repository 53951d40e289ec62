"""
Route API Endpoints.

Route assembly, detail, re-optimization and driver pickup updates.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from buyback.app.core.dependencies import get_route_service
from buyback.app.domain.routing.route_service import RouteService
from buyback.app.schemas.routing import (
    NextPickupResponse, PickupStatusResult, PickupStatusUpdate, RouteCreateRequest,
    RouteListResponse, RouteResponse, RouteStats
)

router = APIRouter(prefix="/routes", tags=["Routes"])


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    request: RouteCreateRequest,
    service: RouteService = Depends(get_route_service)
):
    """
    Assemble a route from the day's scheduled and confirmed appointments.
    
    Returns 404 when there is nothing to route on that date.
    """
    route = await service.create_route(request.date, request.appointment_ids)
    if route is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No routable appointments on {request.date.isoformat()}"
        )
    return route


@router.get("", response_model=RouteListResponse)
async def list_routes(
    date: Optional[date] = Query(None, description="Filter by route date"),
    service: RouteService = Depends(get_route_service)
):
    routes = await service.list_routes(date)
    return RouteListResponse(routes=routes, total=len(routes))


@router.get("/stats", response_model=RouteStats)
async def route_stats(
    date: Optional[date] = Query(None, description="Filter by route date"),
    service: RouteService = Depends(get_route_service)
):
    return await service.route_stats(date)


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: int = Path(..., ge=1),
    service: RouteService = Depends(get_route_service)
):
    return await service.get_route(route_id)


@router.post("/{route_id}/reoptimize", response_model=RouteResponse)
async def reoptimize_route(
    route_id: int = Path(..., ge=1),
    service: RouteService = Depends(get_route_service)
):
    """Re-order a route that is still planning."""
    return await service.reoptimize(route_id)


@router.get("/{route_id}/next-pickup", response_model=NextPickupResponse)
async def get_next_pickup(
    route_id: int = Path(..., ge=1),
    service: RouteService = Depends(get_route_service)
):
    """Current stop: the en-route pickup, else the first pending one."""
    return await service.next_pickup(route_id)


@router.patch("/{route_id}/pickups/{pickup_id}/status", response_model=PickupStatusResult)
async def update_pickup_status(
    request: PickupStatusUpdate,
    route_id: int = Path(..., ge=1),
    pickup_id: int = Path(..., ge=1),
    service: RouteService = Depends(get_route_service)
):
    """Driver action on a pickup. Invalid transitions come back with success=false."""
    return await service.update_pickup_status(route_id, pickup_id, request.status, request.notes)
