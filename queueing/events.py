"""
Per-salon queue event stream.

Queue viewers subscribe by salon id and receive an event after every
mutation; they re-read the queue snapshot instead of polling.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Set

from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEvent:
    """Something changed in a salon's queue."""

    salon_id: str
    kind: str
    booking_id: Optional[str] = None
    entry_id: Optional[str] = None
    position: Optional[int] = None
    occurred_at: datetime = field(default_factory=utc_now)


class QueueSubscription:
    """Async iterator over the events of one salon."""

    def __init__(self, bus: "QueueEventBus", salon_id: str):
        self.salon_id = salon_id
        self._bus = bus
        self._queue: "asyncio.Queue[QueueEvent]" = asyncio.Queue()
        self.closed = False

    def _deliver(self, event: QueueEvent) -> None:
        self._queue.put_nowait(event)

    async def get(self) -> QueueEvent:
        return await self._queue.get()

    def get_nowait(self) -> QueueEvent:
        return self._queue.get_nowait()

    def pending(self) -> int:
        return self._queue.qsize()

    def unsubscribe(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> QueueEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        return await self._queue.get()


class QueueEventBus:
    """Fan-out of queue events to subscribers keyed by salon id."""

    def __init__(self):
        self._subscribers: Dict[str, Set[QueueSubscription]] = {}

    def subscribe(self, salon_id: str) -> QueueSubscription:
        subscription = QueueSubscription(self, salon_id)
        self._subscribers.setdefault(salon_id, set()).add(subscription)
        logger.debug(f"Subscribed to queue events of salon {salon_id}")
        return subscription

    def publish(self, event: QueueEvent) -> int:
        """Deliver ``event`` to every subscriber of its salon. Returns the count."""
        subscribers = list(self._subscribers.get(event.salon_id, ()))
        for subscription in subscribers:
            subscription._deliver(event)
        return len(subscribers)

    def subscriber_count(self, salon_id: str) -> int:
        return len(self._subscribers.get(salon_id, ()))

    def _remove(self, subscription: QueueSubscription) -> None:
        subscribers = self._subscribers.get(subscription.salon_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.salon_id]
        logger.debug(f"Unsubscribed from queue events of salon {subscription.salon_id}")
