"""
Business clock.

All wall-clock rules (past slots, same-day cutoff, cancellation window) are
evaluated against naive local time in the hub's timezone.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from buyback.app.core.config import settings


def local_now() -> datetime:
    """Current time at the hub, without tzinfo (matches stored slot times)."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)
