"""
Scheduler for arrival-deadline expiry using APScheduler.

Confirmed customers who have not been called in by their arrival deadline
are marked as no-show so they stop holding a place in the queue.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from models.queue_entry import QueueEntryStatus
from utils.constants import ARRIVAL_EXPIRED_REASON
from utils.datetime_utils import utc_now
from utils.exceptions import BookingError, DatabaseError
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="scheduler.log")

scheduler = AsyncIOScheduler()


async def expire_overdue_arrivals(lifecycle) -> int:
    """
    Mark overdue confirmed bookings as no-show.

    Only bookings whose queue entry is still waiting are expired; a customer
    already in the chair is never touched.

    Args:
        lifecycle: BookingLifecycle used to apply the no-show transition

    Returns:
        Number of bookings expired
    """
    if not settings.auto_expire_enabled:
        logger.debug("Arrival expiry disabled, skipping sweep")
        return 0

    store = lifecycle.store
    try:
        overdue = await store.get_overdue_confirmed_bookings(utc_now())
    except DatabaseError as e:
        logger.error(f"Database error loading overdue bookings: {e}", exc_info=True)
        return 0

    if not overdue:
        logger.debug("No overdue arrivals")
        return 0

    expired = 0
    for booking in overdue:
        try:
            entry = await store.get_queue_entry_by_booking(booking.id)
            if entry is None or entry.status != QueueEntryStatus.WAITING:
                continue

            result = await lifecycle.mark_no_show(booking.id, ARRIVAL_EXPIRED_REASON)
            if not result.already_satisfied:
                expired += 1
        except (BookingError, DatabaseError) as e:
            # The owner may have acted on the booking since it was loaded
            logger.warning(f"Could not expire booking {booking.id}: {e}")

    logger.info(f"Arrival expiry complete: {expired} of {len(overdue)} overdue bookings expired")
    return expired


def setup_scheduler(lifecycle, minutes: Optional[int] = None) -> None:
    """Register the expiry sweep and start the scheduler.

    Args:
        lifecycle: BookingLifecycle the sweep runs against
        minutes: Sweep interval, defaults to ``settings.expiry_check_minutes``
    """
    scheduler.add_job(
        expire_overdue_arrivals,
        trigger=IntervalTrigger(minutes=minutes or settings.expiry_check_minutes),
        args=[lifecycle],
        id="expire_overdue_arrivals",
        name="Expire confirmed bookings past their arrival deadline",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started")


def shutdown_scheduler():
    """Shutdown the scheduler."""
    scheduler.shutdown()
    logger.info("Scheduler stopped")
