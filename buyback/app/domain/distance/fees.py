"""
Pickup fee bands and profit checks.

Pure functions: fee banding, profit-band thresholds, service-area ceilings
and the combined pickup evaluation. Distances are in km, durations in minutes.
"""

import math
from dataclasses import dataclass
from typing import Optional

from buyback.app.core.config import settings


@dataclass(frozen=True)
class FeeBand:
    """Half-open distance interval [min_km, max_km)."""
    min_km: float
    max_km: float
    fee: Optional[float]  # None means per-km dynamic fee


DYNAMIC_FEE_PER_KM = 1.25
DYNAMIC_FEE_FLOOR = 30.0
DYNAMIC_FEE_CEILING = 50.0
MANUAL_REVIEW_FEE = 50.0

FEE_BANDS = (
    FeeBand(0, 16, 0.0),
    FeeBand(16, 24, 30.0),
    FeeBand(24, 40, None),
    FeeBand(40, 60, 50.0),
)

# (max_km inclusive, required profit). Edges are independent of the fee bands.
PROFIT_BANDS = (
    (10, 30.0),
    (20, 40.0),
    (35, 50.0),
)
LONG_DISTANCE_MIN_PROFIT = 60.0


def round_half_up(value: float, step: float = 1.0) -> float:
    """Round to the nearest multiple of step, halves away from zero."""
    return math.floor(value / step + 0.5) * step


def find_fee_band(distance_km: float) -> Optional[FeeBand]:
    """Band containing the distance, or None at/after the manual-review boundary."""
    if distance_km < 0:
        raise ValueError("distance_km must be >= 0")
    for band in FEE_BANDS:
        if band.min_km <= distance_km < band.max_km:
            return band
    return None


def requires_manual_review(distance_km: float) -> bool:
    return distance_km >= settings.max_pickup_distance_km


def calculate_pickup_fee(distance_km: float) -> float:
    """
    Pickup fee for a distance.

    [0,16) free, [16,24) $30, [24,40) 1.25/km rounded to the nearest $5 and
    clamped to [$30,$50], [40,60) $50, 60+ $50 pending manual review.
    """
    band = find_fee_band(distance_km)
    if band is None:
        return MANUAL_REVIEW_FEE
    if band.fee is None:
        dynamic = round_half_up(distance_km * DYNAMIC_FEE_PER_KM, 5)
        return float(max(DYNAMIC_FEE_FLOOR, min(DYNAMIC_FEE_CEILING, dynamic)))
    return band.fee


def required_min_profit(distance_km: float) -> float:
    """Minimum trip profit: $30 up to 10 km, $40 to 20 km, $50 to 35 km, $60 beyond."""
    for max_km, min_profit in PROFIT_BANDS:
        if distance_km <= max_km:
            return min_profit
    return LONG_DISTANCE_MIN_PROFIT


def calculate_trip_profit(quote_value: float, pickup_fee: float) -> float:
    """Margin on the quote left after paying the pickup fee."""
    return quote_value * settings.quote_margin_rate - pickup_fee


def within_fee_table(distance_km: float) -> bool:
    """Looser ceiling: the fee table only auto-prices distances under 60 km."""
    return not requires_manual_review(distance_km)


def within_service_area(distance_km: float, duration_min: float) -> bool:
    """Stricter ceiling applied before a pickup is auto-approved."""
    return (
        distance_km <= settings.auto_approval_max_distance_km
        and duration_min <= settings.auto_approval_max_duration_minutes
    )


def is_same_day_eligible(distance_km: float, duration_min: float, current_hour: int) -> bool:
    """A pickup can be booked and driven today."""
    return (
        current_hour <= settings.same_day_cutoff_hour
        and distance_km <= settings.same_day_max_distance_km
        and duration_min <= settings.auto_approval_max_duration_minutes
    )


@dataclass
class PickupEvaluation:
    eligible: bool
    distance_km: float
    duration_min: int
    pickup_fee: float
    profit: float
    required_min_profit: float
    reason: Optional[str] = None
    message: Optional[str] = None
    requires_manual_review: bool = False


def evaluate_pickup(distance_km: float, duration_min: int, quote_value: float) -> PickupEvaluation:
    """
    Distance ceilings first, then the profit band.

    Reasons: manual_review (outside the fee table), out_of_service_area
    (beyond the auto-approval ceiling), insufficient_profit.
    """
    fee = calculate_pickup_fee(distance_km)
    profit = round(calculate_trip_profit(quote_value, fee), 2)
    min_profit = required_min_profit(distance_km)
    evaluation = PickupEvaluation(
        eligible=False,
        distance_km=distance_km,
        duration_min=duration_min,
        pickup_fee=fee,
        profit=profit,
        required_min_profit=min_profit,
    )

    if not within_fee_table(distance_km):
        evaluation.reason = "manual_review"
        evaluation.requires_manual_review = True
        evaluation.message = (
            f"Distance ({distance_km}km) exceeds maximum pickup range "
            f"({settings.max_pickup_distance_km:g}km); manual review required"
        )
        return evaluation

    if not within_service_area(distance_km, duration_min):
        evaluation.reason = "out_of_service_area"
        evaluation.message = (
            f"Pickup outside the service area ({settings.auto_approval_max_distance_km:g}km / "
            f"{settings.auto_approval_max_duration_minutes} min limit)"
        )
        return evaluation

    if profit < min_profit:
        evaluation.reason = "insufficient_profit"
        evaluation.message = (
            f"Insufficient profit margin. Need minimum ${min_profit:g}, calculated ${round(profit)}"
        )
        return evaluation

    evaluation.eligible = True
    return evaluation
