"""
Booking orchestration.

Lead -> eligibility (distance, fee, profit) -> slot reservation. Eligibility
runs only when the caller supplies both an address and a quote value.
"""

import logging

from buyback.app.core.exceptions import EligibilityError
from buyback.app.domain.distance.calculator import DistanceFeeCalculator
from buyback.app.domain.scheduling.slot_scheduler import SlotScheduler
from buyback.app.schemas.scheduling import BookingRequest, BookingResult

logger = logging.getLogger(__name__)


class BookingService:

    def __init__(self, calculator: DistanceFeeCalculator, scheduler: SlotScheduler):
        self.calculator = calculator
        self.scheduler = scheduler

    async def book(self, request: BookingRequest) -> BookingResult:
        """
        Validate the pickup, then reserve the slot.

        Rejections come back as BookingResult(success=False) with the reason
        from whichever step refused: manual_review, out_of_service_area,
        insufficient_profit, or a scheduling reason.
        """
        if request.address and request.quote_value is not None:
            try:
                await self.calculator.ensure_pickup_eligible(request.address, request.quote_value)
            except EligibilityError as exc:
                logger.info(
                    "Lead %s not eligible for pickup: %s (%s km)",
                    request.lead_id, exc.reason, exc.details.get("distance_km")
                )
                return BookingResult(success=False, reason=exc.reason, message=exc.message)

        return await self.scheduler.book(
            request.slot_key,
            request.lead_id,
            notes=request.notes,
            address=request.address,
            quote_value=request.quote_value,
        )
