"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from buyback.app.api.v1.endpoints import (
    distance, schedule, admin_schedule, routes, navigation, admin_ops
)

router = APIRouter()

# Distance and eligibility
router.include_router(distance.router)

# Customer scheduling
router.include_router(schedule.router)

# Admin scheduling and appointment lifecycle
router.include_router(admin_schedule.router)

# Route planning and execution
router.include_router(routes.router)
router.include_router(navigation.router)

# Maintenance
router.include_router(admin_ops.router)
