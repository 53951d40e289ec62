"""
Service dependencies for FastAPI.

Each provider builds a domain service over the request's database session.
Tests swap the clock, mapping client or cache through app.dependency_overrides.
"""

from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buyback.app.core.clock import local_now
from buyback.app.core.reliability import CircuitBreaker, mapping_circuit_breaker
from buyback.app.db.session import get_db
from buyback.app.domain.distance.calculator import DistanceFeeCalculator
from buyback.app.domain.routing.optimizer import RouteOptimizer
from buyback.app.domain.routing.route_service import RouteService
from buyback.app.domain.scheduling.booking import BookingService
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.services.cache import CacheService, cache_service
from buyback.app.services.mapping_client import MappingClient, build_mapping_client

_mapping_client = build_mapping_client()


def get_clock() -> Callable[[], datetime]:
    return local_now


def get_mapping_client() -> Optional[MappingClient]:
    return _mapping_client


def get_breaker() -> CircuitBreaker:
    return mapping_circuit_breaker


def get_cache() -> CacheService:
    return cache_service


def get_calculator(
    client: Optional[MappingClient] = Depends(get_mapping_client),
    breaker: CircuitBreaker = Depends(get_breaker),
) -> DistanceFeeCalculator:
    return DistanceFeeCalculator(client, breaker)


def get_scheduler(
    db: AsyncSession = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SlotScheduler:
    return SlotScheduler(db, clock)


def get_booking_service(
    calculator: DistanceFeeCalculator = Depends(get_calculator),
    scheduler: SlotScheduler = Depends(get_scheduler),
) -> BookingService:
    return BookingService(calculator, scheduler)


def get_optimizer(
    client: Optional[MappingClient] = Depends(get_mapping_client),
    breaker: CircuitBreaker = Depends(get_breaker),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RouteOptimizer:
    return RouteOptimizer(client, breaker, clock)


def get_route_service(
    db: AsyncSession = Depends(get_db),
    optimizer: RouteOptimizer = Depends(get_optimizer),
    cache: CacheService = Depends(get_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> RouteService:
    return RouteService(db, optimizer, cache, clock)
