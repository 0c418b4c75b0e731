"""
Queue ordering engine.

Positions are assigned per salon:

- tail append: ``1 + max(active positions)`` or 1 for an empty queue
- priority insert: every active entry moves down by one, the new entry
  takes position 1
- retire: the entry is marked completed, nobody else is renumbered

All position-assigning writes for one salon pass through a per-salon lock.
The store additionally rejects duplicate active positions, which covers
writers in other processes; such a lost race is retried against fresh state.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from config import settings
from models.queue_entry import (
    QueueEntry,
    QueueEntryCreate,
    QueueEntryStatus,
    QueueEntryView,
)
from queueing.events import QueueEvent, QueueEventBus
from queueing.wait_time import estimate_for_entry, live_rank
from utils.datetime_utils import utc_now
from utils.exceptions import (
    ConflictQueuePositionError,
    QueueEntryNotFoundError,
    QueueFullError,
)
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="queue.log")

T = TypeVar("T")


class QueueOrderingEngine:
    """Maintains the per-salon ordering of queue entries."""

    def __init__(
        self,
        store,
        events: Optional[QueueEventBus] = None,
        max_retries: Optional[int] = None,
    ):
        self.store = store
        self.events = events or QueueEventBus()
        self.max_retries = (
            max_retries if max_retries is not None else settings.queue_conflict_retries
        )
        self._locks: Dict[str, asyncio.Lock] = {}

    def salon_lock(self, salon_id: str) -> asyncio.Lock:
        """Serialization boundary for position changes in one salon."""
        lock = self._locks.get(salon_id)
        if lock is None:
            lock = self._locks[salon_id] = asyncio.Lock()
        return lock

    # ========== Position Assignment ==========

    async def next_tail_position(self, salon_id: str) -> int:
        """Position a tail append would receive right now."""
        active = await self.store.get_active_queue_entries(salon_id)
        return max((e.position for e in active), default=0) + 1

    async def append_tail(
        self,
        salon_id: str,
        booking_id: str,
        customer_id: Optional[str] = None,
        max_size: Optional[int] = None,
    ) -> QueueEntry:
        """
        Add an entry behind every active entry of the salon.

        Raises:
            QueueFullError: the salon already has ``max_size`` active entries
        """

        async def attempt() -> QueueEntry:
            position = await self.next_tail_position(salon_id)
            return await self.store.insert_queue_entry(
                QueueEntryCreate(
                    salon_id=salon_id,
                    booking_id=booking_id,
                    customer_id=customer_id,
                    position=position,
                    check_in_time=utc_now(),
                )
            )

        async with self.salon_lock(salon_id):
            await self._check_room(salon_id, max_size)
            entry = await self._retry_on_conflict("append_tail", salon_id, attempt)

        logger.info(
            f"Queue entry {entry.id} appended at position {entry.position} "
            f"in salon {salon_id} (booking {booking_id})"
        )
        self._publish(salon_id, "entry_added", entry)
        return entry

    async def insert_first(
        self,
        salon_id: str,
        booking_id: str,
        customer_id: Optional[str] = None,
        max_size: Optional[int] = None,
    ) -> QueueEntry:
        """
        Put an entry at position 1, pushing every active entry down by one.

        Raises:
            QueueFullError: the salon already has ``max_size`` active entries
        """

        async def attempt() -> QueueEntry:
            return await self.store.insert_queue_entry_first(
                QueueEntryCreate(
                    salon_id=salon_id,
                    booking_id=booking_id,
                    customer_id=customer_id,
                    position=1,
                    check_in_time=utc_now(),
                )
            )

        async with self.salon_lock(salon_id):
            await self._check_room(salon_id, max_size)
            entry = await self._retry_on_conflict("insert_first", salon_id, attempt)

        logger.info(
            f"Queue entry {entry.id} inserted at position 1 in salon {salon_id} "
            f"(booking {booking_id}); other active entries shifted by one"
        )
        self._publish(salon_id, "entry_inserted_first", entry)
        return entry

    async def ensure_capacity(self, salon_id: str, max_size: Optional[int]) -> None:
        """Raise QueueFullError if the salon has no room, checked under the salon lock."""
        async with self.salon_lock(salon_id):
            await self._check_room(salon_id, max_size)

    # ========== Status Changes ==========

    async def start(self, entry: QueueEntry) -> QueueEntry:
        """Mark an entry as being served. No-op if it already is."""
        if entry.status == QueueEntryStatus.IN_SERVICE:
            return entry

        updated = await self._update(
            entry,
            {
                "status": QueueEntryStatus.IN_SERVICE,
                "service_start_time": utc_now(),
            },
        )
        self._publish(updated.salon_id, "service_started", updated)
        return updated

    async def retire(self, entry_id: str) -> QueueEntry:
        """
        Mark an entry completed without renumbering the rest of the queue.

        Retiring an already completed entry returns it unchanged.
        """
        entry = await self.store.get_queue_entry_by_id(entry_id)
        if entry is None:
            raise QueueEntryNotFoundError(f"Queue entry {entry_id} not found")

        if entry.status == QueueEntryStatus.COMPLETED:
            return entry

        updated = await self._update(
            entry,
            {
                "status": QueueEntryStatus.COMPLETED,
                "service_end_time": utc_now(),
            },
        )
        logger.info(
            f"Queue entry {entry_id} retired from position {entry.position} "
            f"in salon {entry.salon_id}"
        )
        self._publish(updated.salon_id, "entry_retired", updated)
        return updated

    # ========== Reads ==========

    async def active_entries(self, salon_id: str) -> List[QueueEntry]:
        return await self.store.get_active_queue_entries(salon_id)

    async def snapshot(
        self, salon_id: str, avg_service_time: Optional[int]
    ) -> List[QueueEntryView]:
        """Active entries in position order with live rank and wait estimate."""
        active = await self.store.get_active_queue_entries(salon_id)
        return [self.view(entry, active, avg_service_time) for entry in active]

    def view(
        self,
        entry: QueueEntry,
        active: List[QueueEntry],
        avg_service_time: Optional[int],
    ) -> QueueEntryView:
        wait = estimate_for_entry(entry, active, avg_service_time)
        return QueueEntryView(
            entry=entry.model_copy(update={"estimated_wait_time": wait}),
            live_rank=live_rank(entry, active),
            estimated_wait_minutes=wait,
        )

    def notify_wait_times_changed(self, salon_id: str) -> None:
        self.events.publish(QueueEvent(salon_id=salon_id, kind="wait_times_changed"))

    # ========== Helpers ==========

    async def _check_room(self, salon_id: str, max_size: Optional[int]) -> None:
        if not max_size:
            return
        active = await self.store.get_active_queue_entries(salon_id)
        if len(active) >= max_size:
            raise QueueFullError(f"Salon {salon_id} queue is full ({max_size})")

    async def _retry_on_conflict(
        self,
        operation: str,
        salon_id: str,
        attempt: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``attempt``, re-running it on a lost position race."""
        last_error: Optional[ConflictQueuePositionError] = None
        for attempt_no in range(1, self.max_retries + 2):
            try:
                return await attempt()
            except ConflictQueuePositionError as e:
                last_error = e
                logger.warning(
                    f"{operation} lost a position race in salon {salon_id} "
                    f"(attempt {attempt_no}): {e}"
                )
        raise last_error

    async def _update(self, entry: QueueEntry, data: Dict[str, Any]) -> QueueEntry:
        updated = await self.store.update_queue_entry(entry.id, data)
        if updated is None:
            raise QueueEntryNotFoundError(f"Queue entry {entry.id} not found")
        return updated

    def _publish(self, salon_id: str, kind: str, entry: QueueEntry) -> None:
        self.events.publish(
            QueueEvent(
                salon_id=salon_id,
                kind=kind,
                booking_id=entry.booking_id,
                entry_id=entry.id,
                position=entry.position,
            )
        )
