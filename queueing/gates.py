"""Business-hours gate consulted before new bookings and walk-ins."""

from datetime import datetime
from typing import Optional

from config import settings
from utils.datetime_utils import local_now


class SalonHoursGate:
    """
    Opening-hours check backed by the salon_hours table.

    A salon with no hours configured is treated as open; a weekday without
    a row, or marked closed, is closed.
    """

    def __init__(self, store, timezone: Optional[str] = None):
        self.store = store
        self.timezone = timezone or settings.timezone

    async def is_within_hours(self, salon_id: str, now: Optional[datetime] = None) -> bool:
        hours = await self.store.get_salon_hours(salon_id)
        if not hours:
            return True

        local = local_now(self.timezone, now)
        # Python: Monday=0 ... Sunday=6; salon_hours: Sunday=0 ... Saturday=6
        day_of_week = (local.weekday() + 1) % 7

        today = next((h for h in hours if h.day_of_week == day_of_week), None)
        if today is None or today.is_closed:
            return False

        current = local.time().replace(tzinfo=None)
        if today.close_time <= today.open_time:
            # Open past midnight
            return current >= today.open_time or current < today.close_time
        return today.open_time <= current < today.close_time


class AlwaysOpenGate:
    """Gate for salons that take customers around the clock."""

    async def is_within_hours(self, salon_id: str, now: Optional[datetime] = None) -> bool:
        return True
