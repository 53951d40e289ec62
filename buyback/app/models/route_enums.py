"""
Route-related enumerations.
"""

import enum


class RouteStatus(str, enum.Enum):
    """Route status enumeration."""
    PLANNING = "planning"  # Ordered but not yet driven
    ACTIVE = "active"  # Driver is executing the route
    COMPLETED = "completed"  # Every pickup reached a terminal state


class PickupStatus(str, enum.Enum):
    """
    Pickup lifecycle during route execution.

    PENDING -> EN_ROUTE -> ARRIVED -> COMPLETED, with FAILED reachable
    from any non-terminal state.
    """
    PENDING = "pending"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    FAILED = "failed"


class PickupPriority(str, enum.Enum):
    """Pickup priority. Higher priorities are visited first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RouteEfficiency(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
