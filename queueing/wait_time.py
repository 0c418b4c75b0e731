"""
Wait-time estimation for salon queues.

Estimates are derived on every read and never trusted from storage, because
a salon owner may change ``avg_service_time`` at any moment.
"""

from typing import Iterable, Optional

from config import settings
from models.queue_entry import QueueEntry, QueueEntryStatus
from utils.constants import ALMOST_READY_MINUTES, GET_READY_MINUTES


def effective_avg_service_time(avg_service_time: Optional[int]) -> int:
    """Salon's configured average service time, or the default when unset."""
    if avg_service_time is None:
        return settings.default_avg_service_time
    return avg_service_time


def estimate(position: int, avg_service_time: Optional[int] = None) -> int:
    """
    Estimated minutes until service for a customer at ``position``.

    ``max(0, (position - 1) * avg_service_time)``; position 1 is served next.

    Args:
        position: 1-based live rank in the queue
        avg_service_time: Minutes per customer; None uses the default

    Returns:
        Estimated wait in whole minutes, never negative
    """
    avg = effective_avg_service_time(avg_service_time)
    return max(0, (position - 1) * avg)


def live_rank(target: QueueEntry, active_entries: Iterable[QueueEntry]) -> int:
    """
    1 + number of waiting entries ordered ahead of ``target``.

    Stored positions are historical ranks that are not compacted when
    earlier entries finish, so the gap between two positions says nothing
    about how many people are actually still waiting in between.
    """
    ahead = sum(
        1
        for entry in active_entries
        if entry.id != target.id
        and entry.status == QueueEntryStatus.WAITING
        and entry.position < target.position
    )
    return ahead + 1


def estimate_for_entry(
    target: QueueEntry,
    active_entries: Iterable[QueueEntry],
    avg_service_time: Optional[int] = None,
) -> int:
    """Estimated wait for an entry; zero once it is being served or done."""
    if target.status != QueueEntryStatus.WAITING:
        return 0
    return estimate(live_rank(target, active_entries), avg_service_time)


def status_message(rank: int, minutes_remaining: int) -> str:
    """Short customer-facing status line for the live queue view."""
    if rank <= 1:
        return "You're next!"
    if minutes_remaining <= ALMOST_READY_MINUTES:
        return "Almost ready!"
    if minutes_remaining <= GET_READY_MINUTES:
        return "Get ready soon"
    return "Please wait"


def format_wait(minutes: int) -> str:
    """Render a wait like "1h 15m", "25m" or "Any moment now"."""
    if minutes < 1:
        return "Any moment now"

    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
