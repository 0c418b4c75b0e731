"""
In-process entity store with the same async interface as SupabaseClient.

Used for single-instance deployments, local development and tests. It
enforces the same uniqueness rules as ``db/schema.sql``:

- one active (pending/confirmed/in_progress) booking per customer
- unique position per salon among waiting/in_service queue entries
- at most one queue entry per booking

Every public method yields to the event loop once before touching state so
concurrent callers interleave the way they would against a remote store.
"""

import asyncio
import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from models.customer import Customer
from models.notification import Notification, NotificationCreate
from models.queue_entry import (
    ACTIVE_QUEUE_STATUSES,
    QueueEntry,
    QueueEntryCreate,
)
from models.salon import Salon, SalonHours
from utils.datetime_utils import utc_now
from utils.exceptions import (
    ConflictActiveBookingError,
    ConflictQueuePositionError,
    DuplicateQueueEntryError,
)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryStore:
    """Dictionary-backed entity store."""

    def __init__(self):
        self.salons: Dict[str, Salon] = {}
        self.salon_hours: Dict[str, List[SalonHours]] = {}
        self.customers: Dict[str, Customer] = {}
        self.bookings: Dict[str, Booking] = {}
        self.queue_entries: Dict[str, QueueEntry] = {}
        self.notifications: List[Notification] = []

    # ========== Seeding ==========

    def add_salon(self, salon: Salon) -> Salon:
        if salon.id is None:
            salon = salon.model_copy(update={"id": _new_id()})
        self.salons[salon.id] = salon
        return salon

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        return customer

    def set_salon_hours(self, salon_id: str, hours: Iterable[SalonHours]) -> None:
        self.salon_hours[salon_id] = list(hours)

    # ========== Salon Operations ==========

    async def get_salon(self, salon_id: str) -> Optional[Salon]:
        await asyncio.sleep(0)
        return self.salons.get(salon_id)

    async def update_salon(self, salon_id: str, data: Dict[str, Any]) -> Optional[Salon]:
        await asyncio.sleep(0)
        salon = self.salons.get(salon_id)
        if salon is None:
            return None
        salon = salon.model_copy(update={**data, "updated_at": utc_now()})
        self.salons[salon_id] = salon
        return salon

    async def get_salon_hours(self, salon_id: str) -> List[SalonHours]:
        await asyncio.sleep(0)
        return list(self.salon_hours.get(salon_id, []))

    # ========== Customer Operations ==========

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        await asyncio.sleep(0)
        return self.customers.get(customer_id)

    async def increment_cancellation_count(self, customer_id: str) -> int:
        await asyncio.sleep(0)
        customer = self.customers.get(customer_id)
        if customer is None:
            return 0
        customer = customer.model_copy(
            update={"cancellation_count": customer.cancellation_count + 1}
        )
        self.customers[customer_id] = customer
        return customer.cancellation_count

    # ========== Booking Operations ==========

    async def create_booking(self, booking: Booking) -> Booking:
        await asyncio.sleep(0)
        if booking.customer_id and booking.is_active:
            existing = self._active_booking_for(booking.customer_id)
            if existing is not None:
                raise ConflictActiveBookingError(booking.customer_id, existing.id)

        now = utc_now()
        stored = booking.model_copy(
            update={"id": _new_id(), "created_at": now, "updated_at": now}
        )
        self.bookings[stored.id] = stored
        return stored

    async def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        await asyncio.sleep(0)
        return self.bookings.get(booking_id)

    async def get_active_booking_for_customer(
        self, customer_id: str
    ) -> Optional[Booking]:
        await asyncio.sleep(0)
        return self._active_booking_for(customer_id)

    async def update_booking(
        self, booking_id: str, data: Dict[str, Any]
    ) -> Optional[Booking]:
        await asyncio.sleep(0)
        booking = self.bookings.get(booking_id)
        if booking is None:
            return None
        booking = booking.model_copy(update={**data, "updated_at": utc_now()})
        self.bookings[booking_id] = booking
        return booking

    async def get_salon_bookings(
        self, salon_id: str, booking_date: date
    ) -> List[Booking]:
        await asyncio.sleep(0)
        bookings = [
            b
            for b in self.bookings.values()
            if b.salon_id == salon_id and b.booking_date == booking_date
        ]
        return sorted(bookings, key=lambda b: b.created_at)

    async def get_overdue_confirmed_bookings(self, now: datetime) -> List[Booking]:
        await asyncio.sleep(0)
        return [
            b
            for b in self.bookings.values()
            if b.status == BookingStatus.CONFIRMED
            and b.arrival_deadline is not None
            and b.arrival_deadline < now
        ]

    # ========== Queue Operations ==========

    async def get_queue_entry_by_id(self, entry_id: str) -> Optional[QueueEntry]:
        await asyncio.sleep(0)
        return self.queue_entries.get(entry_id)

    async def get_queue_entry_by_booking(self, booking_id: str) -> Optional[QueueEntry]:
        await asyncio.sleep(0)
        for entry in self.queue_entries.values():
            if entry.booking_id == booking_id:
                return entry
        return None

    async def get_active_queue_entries(self, salon_id: str) -> List[QueueEntry]:
        await asyncio.sleep(0)
        return self._active_entries(salon_id)

    async def insert_queue_entry(self, entry: QueueEntryCreate) -> QueueEntry:
        await asyncio.sleep(0)
        self._check_booking_has_no_entry(entry.booking_id)
        taken = {e.position for e in self._active_entries(entry.salon_id)}
        if entry.position in taken:
            raise ConflictQueuePositionError(
                f"Position {entry.position} already taken in salon {entry.salon_id}"
            )
        return self._store_entry(entry, entry.position)

    async def insert_queue_entry_first(self, entry: QueueEntryCreate) -> QueueEntry:
        await asyncio.sleep(0)
        self._check_booking_has_no_entry(entry.booking_id)
        # No await below: shift and insert happen as one step.
        for active in self._active_entries(entry.salon_id):
            self.queue_entries[active.id] = active.model_copy(
                update={"position": active.position + 1}
            )
        return self._store_entry(entry, 1)

    async def update_queue_entry(
        self, entry_id: str, data: Dict[str, Any]
    ) -> Optional[QueueEntry]:
        await asyncio.sleep(0)
        entry = self.queue_entries.get(entry_id)
        if entry is None:
            return None
        entry = entry.model_copy(update=data)
        self.queue_entries[entry_id] = entry
        return entry

    # ========== Notification Operations ==========

    async def create_notification(
        self, notification: NotificationCreate
    ) -> Notification:
        await asyncio.sleep(0)
        stored = Notification(
            id=_new_id(), created_at=utc_now(), **notification.model_dump()
        )
        self.notifications.append(stored)
        return stored

    # ========== Helpers ==========

    def _active_booking_for(self, customer_id: str) -> Optional[Booking]:
        for booking in self.bookings.values():
            if booking.customer_id == customer_id and booking.status in ACTIVE_BOOKING_STATUSES:
                return booking
        return None

    def _active_entries(self, salon_id: str) -> List[QueueEntry]:
        entries = [
            e
            for e in self.queue_entries.values()
            if e.salon_id == salon_id and e.status in ACTIVE_QUEUE_STATUSES
        ]
        return sorted(entries, key=lambda e: e.position)

    def _check_booking_has_no_entry(self, booking_id: str) -> None:
        if any(e.booking_id == booking_id for e in self.queue_entries.values()):
            raise DuplicateQueueEntryError(booking_id)

    def _store_entry(self, entry: QueueEntryCreate, position: int) -> QueueEntry:
        stored = QueueEntry(
            id=_new_id(),
            **entry.model_dump(exclude={"position", "check_in_time"}),
            position=position,
            check_in_time=entry.check_in_time or utc_now(),
        )
        self.queue_entries[stored.id] = stored
        return stored
