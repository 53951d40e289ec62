"""
Route Service.

Assembles persisted routes from a day's active appointments, serves cached
route detail, and applies driver pickup updates with the route roll-up:
the first pickup to leave pending activates the route, and the route
completes once every pickup is terminal.
"""

import logging
from datetime import date, datetime, time
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buyback.app.core.clock import local_now
from buyback.app.core.config import settings
from buyback.app.core.exceptions import AppException, ResourceNotFoundError, ValidationError
from buyback.app.domain.routing.heuristics import efficiency_score
from buyback.app.domain.routing.navigation import build_navigation_url
from buyback.app.domain.routing.optimizer import RouteOptimizer
from buyback.app.domain.routing.status_tracker import is_terminal, next_pickup, validate_transition
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.models.appointment import Appointment
from buyback.app.models.appointment_enums import ACTIVE_APPOINTMENT_STATUSES, AppointmentStatus
from buyback.app.models.route import Route
from buyback.app.models.route_enums import PickupPriority, PickupStatus, RouteStatus
from buyback.app.models.route_pickup import RoutePickup
from buyback.app.models.schedule_slot import ScheduleSlot
from buyback.app.schemas.routing import (
    Coordinates,
    NextPickupResponse,
    PickupInput,
    PickupResponse,
    PickupStatusResult,
    RouteOptimization,
    RouteResponse,
    RouteStats,
)
from buyback.app.services.audit import StateLogReason
from buyback.app.services.cache import CacheService, route_cache_key

logger = logging.getLogger(__name__)


def pickup_priority(quote_value: Optional[float]) -> PickupPriority:
    if quote_value is not None and quote_value > settings.high_priority_quote_threshold:
        return PickupPriority.HIGH
    return PickupPriority.MEDIUM


def to_pickup_response(pickup: RoutePickup) -> PickupResponse:
    response = PickupResponse.model_validate(pickup)
    response.navigation_url = build_navigation_url(pickup.address)
    return response


def to_route_response(route: Route) -> RouteResponse:
    response = RouteResponse.model_validate(route)
    response.pickups = [to_pickup_response(pickup) for pickup in route.pickups]
    return response


def pickup_inputs(pickups: Sequence[RoutePickup]) -> List[PickupInput]:
    return [
        PickupInput(
            id=str(pickup.id),
            address=pickup.address,
            priority=pickup.priority,
            device_value=pickup.device_value,
            window_start=pickup.window_start,
            window_end=pickup.window_end,
            coordinates=Coordinates(lat=pickup.latitude, lng=pickup.longitude)
            if pickup.latitude is not None and pickup.longitude is not None else None,
        )
        for pickup in pickups
    ]


def apply_optimization(route: Route, optimization: RouteOptimization) -> None:
    """Copy estimates onto the route."""
    route.estimated_distance_km = optimization.total_distance_km
    route.estimated_duration_min = optimization.total_duration_min
    route.fuel_cost = optimization.fuel_cost
    route.efficiency = optimization.efficiency.value
    route.optimization_source = optimization.source


class RouteService:

    def __init__(
        self,
        db: AsyncSession,
        optimizer: RouteOptimizer,
        cache: CacheService,
        clock: Callable[[], datetime] = local_now,
    ):
        self.db = db
        self.optimizer = optimizer
        self.cache = cache
        self.clock = clock

    def _departure(self, route_date: date) -> datetime:
        """Routes leave at opening time, or now if the day has already started."""
        opening = datetime.combine(route_date, time(hour=settings.operating_start_hour))
        return max(opening, self.clock())

    async def _load_route(self, route_id: int) -> Route:
        result = await self.db.execute(
            select(Route).where(Route.id == route_id).execution_options(populate_existing=True)
        )
        route = result.scalar_one_or_none()
        if route is None:
            raise ResourceNotFoundError("Route", route_id)
        return route

    async def create_route(self, route_date: date, appointment_ids: Optional[List[int]] = None) -> Optional[RouteResponse]:
        """
        Build and persist a route from active appointments on a date.

        Args:
            route_date: Day to route
            appointment_ids: Restrict to these appointments

        Returns:
            The new route, or None when there is nothing to pick up
        """
        query = (
            select(Appointment)
            .join(ScheduleSlot, Appointment.slot_id == ScheduleSlot.id)
            .where(
                ScheduleSlot.date == route_date,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
            )
            .order_by(ScheduleSlot.start_time, Appointment.id)
        )
        if appointment_ids:
            query = query.where(Appointment.id.in_(appointment_ids))
        appointments = list((await self.db.execute(query)).scalars().all())

        routable = [appointment for appointment in appointments if appointment.address]
        if len(routable) < len(appointments):
            logger.warning("Skipping %d appointments without an address on %s", len(appointments) - len(routable), route_date)
        if not routable:
            return None

        by_id = {str(appointment.id): appointment for appointment in routable}
        inputs = [
            PickupInput(
                id=str(appointment.id),
                address=appointment.address,
                priority=pickup_priority(appointment.quote_value),
                device_value=appointment.quote_value or 0.0,
                window_start=appointment.slot.start_time.strftime("%H:%M"),
                window_end=appointment.slot.end_time.strftime("%H:%M"),
            )
            for appointment in routable
        ]
        optimization = await self.optimizer.optimize(inputs, self._departure(route_date))
        arrivals = {waypoint.pickup_id: waypoint.estimated_arrival for waypoint in optimization.waypoints}
        inputs_by_id = {pickup.id: pickup for pickup in inputs}

        route = Route(
            date=route_date,
            status=RouteStatus.PLANNING,
            total_value=sum(pickup.device_value for pickup in inputs),
        )
        apply_optimization(route, optimization)
        for sequence, pickup_id in enumerate(optimization.order, start=1):
            appointment = by_id[pickup_id]
            pickup = inputs_by_id[pickup_id]
            route.pickups.append(RoutePickup(
                appointment_id=appointment.id,
                lead_id=appointment.lead_id,
                address=pickup.address,
                window_start=pickup.window_start,
                window_end=pickup.window_end,
                priority=pickup.priority,
                device_value=pickup.device_value,
                status=PickupStatus.PENDING,
                sequence_number=sequence,
                estimated_arrival=arrivals.get(pickup_id),
            ))

        self.db.add(route)
        await self.db.commit()
        logger.info(
            "Route %s created for %s: %d pickups, %.1f km (%s)",
            route.id, route_date, len(optimization.order), optimization.total_distance_km, optimization.source
        )
        return to_route_response(await self._load_route(route.id))

    async def get_route(self, route_id: int) -> RouteResponse:
        """Route detail, served from cache until the route changes."""
        key = route_cache_key(route_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return RouteResponse.model_validate(cached)

        response = to_route_response(await self._load_route(route_id))
        await self.cache.set(key, response.model_dump(mode="json"))
        return response

    async def list_routes(self, route_date: Optional[date] = None) -> List[RouteResponse]:
        query = select(Route).order_by(Route.date.desc(), Route.id.desc())
        if route_date is not None:
            query = query.where(Route.date == route_date)
        result = await self.db.execute(query)
        return [to_route_response(route) for route in result.scalars().all()]

    async def reoptimize(self, route_id: int) -> RouteResponse:
        """
        Re-order a route that has not started.

        Raises:
            ResourceNotFoundError: unknown route
            ValidationError: route is already active or completed
        """
        route = await self._load_route(route_id)
        if route.status != RouteStatus.PLANNING:
            raise ValidationError(
                f"Only planning routes can be re-optimized (route is {route.status.value})",
                reason="invalid_state",
            )

        pickups_by_id = {str(pickup.id): pickup for pickup in route.pickups}
        optimization = await self.optimizer.optimize(pickup_inputs(route.pickups), self._departure(route.date))
        arrivals = {waypoint.pickup_id: waypoint.estimated_arrival for waypoint in optimization.waypoints}
        for sequence, pickup_id in enumerate(optimization.order, start=1):
            pickup = pickups_by_id[pickup_id]
            pickup.sequence_number = sequence
            pickup.estimated_arrival = arrivals.get(pickup_id)
        apply_optimization(route, optimization)

        await self.db.commit()
        await self.cache.invalidate(route_cache_key(route_id))
        logger.info("Route %s re-optimized: %.1f km", route_id, optimization.total_distance_km)
        return to_route_response(await self._load_route(route_id))

    async def next_pickup(self, route_id: int) -> NextPickupResponse:
        route = await self._load_route(route_id)
        pickup = next_pickup(route.pickups)
        return NextPickupResponse(
            route_id=route.id,
            pickup=to_pickup_response(pickup) if pickup is not None else None,
        )

    async def update_pickup_status(
        self,
        route_id: int,
        pickup_id: int,
        status: PickupStatus,
        notes: Optional[str] = None,
    ) -> PickupStatusResult:
        """
        Apply a driver action to a pickup and roll the route up.

        Rejections come back as a structured result (not_found,
        invalid_transition).
        """
        try:
            route = await self._load_route(route_id)
            pickup = next((p for p in route.pickups if p.id == pickup_id), None)
            if pickup is None:
                raise ResourceNotFoundError("Pickup", pickup_id)
            validate_transition(pickup.status, status)

            now = self.clock()
            pickup.status = status
            if notes:
                pickup.notes = notes
            if status == PickupStatus.ARRIVED:
                pickup.actual_arrival = now
            elif is_terminal(status):
                pickup.completed_at = now

            if status == PickupStatus.COMPLETED:
                await self._complete_appointment(pickup.appointment_id)
            self._roll_up(route, now)

            await self.db.commit()
        except AppException as exc:
            await self.db.rollback()
            logger.info("Pickup %s on route %s not updated: %s", pickup_id, route_id, exc.reason)
            return PickupStatusResult(success=False, reason=exc.reason, message=exc.message)

        await self.cache.invalidate(route_cache_key(route_id))
        logger.info("Pickup %s on route %s is now %s", pickup_id, route_id, status.value)
        return PickupStatusResult(
            success=True,
            message=f"Pickup marked {status.value}",
            pickup=to_pickup_response(pickup),
            route_status=route.status,
        )

    async def _complete_appointment(self, appointment_id: int) -> None:
        result = await self.db.execute(select(Appointment).where(Appointment.id == appointment_id))
        appointment = result.scalar_one_or_none()
        if appointment is None or appointment.status not in ACTIVE_APPOINTMENT_STATUSES:
            return
        await SlotScheduler(self.db, self.clock).apply_transition(
            appointment, AppointmentStatus.COMPLETED, StateLogReason.PICKUP_COMPLETED
        )

    def _roll_up(self, route: Route, now: datetime) -> None:
        if route.status == RouteStatus.PLANNING:
            route.status = RouteStatus.ACTIVE
            route.started_at = now
            logger.info("Route %s started", route.id)

        if route.status == RouteStatus.ACTIVE and all(is_terminal(p.status) for p in route.pickups):
            route.status = RouteStatus.COMPLETED
            route.completed_at = now
            route.actual_duration_min = round((now - route.started_at).total_seconds() / 60)
            logger.info("Route %s completed in %s min", route.id, route.actual_duration_min)

    async def route_stats(self, route_date: Optional[date] = None) -> RouteStats:
        """Totals over routes, optionally for one date. Efficiency is averaged on a 0-100 score."""
        routes = await self.list_routes(route_date)
        return RouteStats(
            total_routes=len(routes),
            total_distance_km=round(sum(route.estimated_distance_km for route in routes), 1),
            total_pickups=sum(len(route.pickups) for route in routes),
            average_efficiency=round(
                sum(efficiency_score(route.efficiency) for route in routes) / len(routes), 1
            ) if routes else 0.0,
        )
