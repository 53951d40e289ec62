"""
Route Status Tracker.

Pickup lifecycle during route execution:
pending -> en_route -> arrived -> completed, failed from any non-terminal
state. Transitions are driver-triggered and forward-only.
"""

from typing import Optional, Sequence

from buyback.app.core.exceptions import InvalidTransitionError
from buyback.app.models.route_enums import PickupStatus

PICKUP_TRANSITIONS = {
    PickupStatus.PENDING: {PickupStatus.EN_ROUTE, PickupStatus.FAILED},
    PickupStatus.EN_ROUTE: {PickupStatus.ARRIVED, PickupStatus.FAILED},
    PickupStatus.ARRIVED: {PickupStatus.COMPLETED, PickupStatus.FAILED},
    PickupStatus.COMPLETED: set(),
    PickupStatus.FAILED: set(),
}

TERMINAL_PICKUP_STATUSES = (PickupStatus.COMPLETED, PickupStatus.FAILED)


def can_transition(current: PickupStatus, target: PickupStatus) -> bool:
    return target in PICKUP_TRANSITIONS[current]


def validate_transition(current: PickupStatus, target: PickupStatus) -> None:
    """
    Raises:
        InvalidTransitionError: skipping a step, going backwards or leaving a terminal state
    """
    if not can_transition(current, target):
        raise InvalidTransitionError("pickup", current, target)


def is_terminal(status: PickupStatus) -> bool:
    return status in TERMINAL_PICKUP_STATUSES


def next_pickup(pickups: Sequence) -> Optional[object]:
    """First en-route pickup in route order, else the first pending one."""
    for pickup in pickups:
        if pickup.status == PickupStatus.EN_ROUTE:
            return pickup
    for pickup in pickups:
        if pickup.status == PickupStatus.PENDING:
            return pickup
    return None
