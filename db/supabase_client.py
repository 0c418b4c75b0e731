"""
Supabase entity store for bookings, queue entries, salons and notifications.

Concurrency notes:
==================
PostgREST gives no multi-statement transactions, so the invariants that span
several rows are enforced by the database itself (see ``db/schema.sql``):

1. ``queue_entries_active_position_key`` - unique (salon_id, position) among
   waiting/in_service entries. A lost tail-append race surfaces as a unique
   violation and is reported as ConflictQueuePositionError.
   A second entry for the same booking violates
   ``queue_entries_booking_id_key`` instead and is reported as
   DuplicateQueueEntryError.
2. ``bookings_one_active_per_customer`` - unique customer_id among
   pending/confirmed/in_progress bookings. Reported as
   ConflictActiveBookingError.
3. ``insert_queue_entry_first(...)`` - SQL function that takes a
   transaction-scoped advisory lock on the salon, shifts every active
   position by +1 and inserts the new entry at position 1.

This client uses the service key which bypasses RLS.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from models.customer import Customer
from models.notification import Notification, NotificationCreate
from models.queue_entry import (
    ACTIVE_QUEUE_STATUSES,
    QueueEntry,
    QueueEntryCreate,
)
from models.salon import Salon, SalonHours
from utils.datetime_utils import parse_iso_datetime, to_date_string, to_iso_string, utc_now
from utils.exceptions import (
    ConflictActiveBookingError,
    ConflictQueuePositionError,
    DatabaseError,
    DuplicateQueueEntryError,
)

UNIQUE_VIOLATION = "23505"
BOOKING_ENTRY_CONSTRAINT = "queue_entries_booking_id_key"

_ACTIVE_BOOKING_VALUES = [s.value for s in ACTIVE_BOOKING_STATUSES]
_ACTIVE_QUEUE_VALUES = [s.value for s in ACTIVE_QUEUE_STATUSES]


def _is_unique_violation(error: APIError) -> bool:
    return getattr(error, "code", None) == UNIQUE_VIOLATION


def _violates_constraint(error: APIError, constraint: str) -> bool:
    parts = (getattr(error, "message", None), getattr(error, "details", None))
    return any(constraint in str(part) for part in parts if part)


class SupabaseClient:
    """
    Supabase database client wrapper.

    Salon opening hours are cached for a few minutes; everything the queue
    engine orders by (positions, statuses, avg_service_time) is always read
    fresh.
    """

    def __init__(self):
        if not settings.supabase_url or not settings.supabase_key:
            raise DatabaseError("Supabase URL and key must be configured")

        self.client: SupabaseClientType = create_client(
            settings.supabase_url, settings.supabase_key
        )

        # Format: {cache_key: (data, expiry_time)}
        self._cache: Dict[str, Tuple[Any, datetime]] = {}
        self._cache_ttl = timedelta(minutes=5)

    # ========== Cache Helpers ==========

    def _get_from_cache(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key not in self._cache:
            return None

        data, expiry = self._cache[key]
        if utc_now() > expiry:
            del self._cache[key]
            return None

        return data

    def _set_cache(self, key: str, value: Any) -> None:
        """Set value in cache with TTL."""
        self._cache[key] = (value, utc_now() + self._cache_ttl)

    # ========== Salon Operations ==========

    async def get_salon(self, salon_id: str) -> Optional[Salon]:
        """Get salon by ID."""
        try:
            response = (
                self.client.table("salons").select("*").eq("id", salon_id).execute()
            )

            if response.data:
                return self._parse_salon(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get salon: {e}") from e

    async def update_salon(self, salon_id: str, data: Dict[str, Any]) -> Optional[Salon]:
        """Update salon fields (status toggles, avg_service_time)."""
        try:
            update_data = dict(data)
            update_data["updated_at"] = to_iso_string(utc_now())

            response = (
                self.client.table("salons")
                .update(update_data)
                .eq("id", salon_id)
                .execute()
            )

            if not response.data:
                return None

            return self._parse_salon(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to update salon: {e}") from e

    async def get_salon_hours(self, salon_id: str) -> List[SalonHours]:
        """Get weekly opening hours for a salon."""
        cache_key = f"salon_hours:{salon_id}"

        cached = self._get_from_cache(cache_key)
        if cached is not None:
            return cached

        try:
            response = (
                self.client.table("salon_hours")
                .select("*")
                .eq("salon_id", salon_id)
                .execute()
            )

            hours = [SalonHours(**item) for item in response.data]
            self._set_cache(cache_key, hours)
            return hours
        except Exception as e:
            raise DatabaseError(f"Failed to get salon hours: {e}") from e

    # ========== Customer Operations ==========

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by auth user ID."""
        try:
            response = (
                self.client.table("customers")
                .select("*")
                .eq("id", customer_id)
                .execute()
            )

            if response.data:
                return self._parse_customer(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get customer: {e}") from e

    async def increment_cancellation_count(self, customer_id: str) -> int:
        """
        Increment a customer's lifetime cancellation counter.

        Runs as a single UPDATE inside the database function so concurrent
        cancellations are not lost.

        Returns:
            The new counter value
        """
        try:
            response = self.client.rpc(
                "increment_cancellation_count", {"p_customer_id": customer_id}
            ).execute()
            return int(response.data or 0)
        except Exception as e:
            raise DatabaseError(f"Failed to increment cancellation count: {e}") from e

    # ========== Booking Operations ==========

    async def create_booking(self, booking: Booking) -> Booking:
        """
        Insert a new booking.

        Raises:
            ConflictActiveBookingError: the customer already holds an active booking
        """
        try:
            data = self._serialize_booking(booking)

            response = self.client.table("bookings").insert(data).execute()

            if not response.data:
                raise ValueError("Failed to create booking: no data returned")

            return self._parse_booking(response.data[0])
        except APIError as e:
            if _is_unique_violation(e) and booking.customer_id:
                raise ConflictActiveBookingError(booking.customer_id) from e
            raise DatabaseError(f"Failed to create booking: {e}") from e
        except Exception as e:
            raise DatabaseError(f"Failed to create booking: {e}") from e

    async def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        """Get booking by ID."""
        try:
            response = (
                self.client.table("bookings").select("*").eq("id", booking_id).execute()
            )

            if response.data:
                return self._parse_booking(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get booking: {e}") from e

    async def get_active_booking_for_customer(
        self, customer_id: str
    ) -> Optional[Booking]:
        """Get the customer's pending, confirmed or in-progress booking, if any."""
        try:
            response = (
                self.client.table("bookings")
                .select("*")
                .eq("customer_id", customer_id)
                .in_("status", _ACTIVE_BOOKING_VALUES)
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )

            if response.data:
                return self._parse_booking(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to check active booking: {e}") from e

    async def update_booking(
        self, booking_id: str, data: Dict[str, Any]
    ) -> Optional[Booking]:
        """Update booking fields."""
        try:
            update_data = self._serialize_fields(data)
            update_data["updated_at"] = to_iso_string(utc_now())

            response = (
                self.client.table("bookings")
                .update(update_data)
                .eq("id", booking_id)
                .execute()
            )

            if not response.data:
                return None

            return self._parse_booking(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to update booking: {e}") from e

    async def get_salon_bookings(
        self, salon_id: str, booking_date: date
    ) -> List[Booking]:
        """Get all bookings of a salon for one day, oldest first."""
        try:
            response = (
                self.client.table("bookings")
                .select("*")
                .eq("salon_id", salon_id)
                .eq("booking_date", to_date_string(booking_date))
                .order("created_at", desc=False)
                .execute()
            )

            return [self._parse_booking(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get salon bookings: {e}") from e

    async def get_overdue_confirmed_bookings(self, now: datetime) -> List[Booking]:
        """Get confirmed bookings whose arrival deadline is before ``now``."""
        try:
            response = (
                self.client.table("bookings")
                .select("*")
                .eq("status", BookingStatus.CONFIRMED.value)
                .lt("arrival_deadline", to_iso_string(now))
                .execute()
            )

            return [self._parse_booking(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get overdue bookings: {e}") from e

    # ========== Queue Operations ==========

    async def get_queue_entry_by_id(self, entry_id: str) -> Optional[QueueEntry]:
        """Get queue entry by ID."""
        try:
            response = (
                self.client.table("queue_entries")
                .select("*")
                .eq("id", entry_id)
                .execute()
            )

            if response.data:
                return self._parse_queue_entry(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get queue entry: {e}") from e

    async def get_queue_entry_by_booking(self, booking_id: str) -> Optional[QueueEntry]:
        """Get the queue entry spawned by a booking."""
        try:
            response = (
                self.client.table("queue_entries")
                .select("*")
                .eq("booking_id", booking_id)
                .execute()
            )

            if response.data:
                return self._parse_queue_entry(response.data[0])
            return None
        except Exception as e:
            raise DatabaseError(f"Failed to get queue entry: {e}") from e

    async def get_active_queue_entries(self, salon_id: str) -> List[QueueEntry]:
        """Get waiting and in-service entries of a salon ordered by position."""
        try:
            response = (
                self.client.table("queue_entries")
                .select("*")
                .eq("salon_id", salon_id)
                .in_("status", _ACTIVE_QUEUE_VALUES)
                .order("position", desc=False)
                .execute()
            )

            return [self._parse_queue_entry(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to get active queue: {e}") from e

    async def insert_queue_entry(self, entry: QueueEntryCreate) -> QueueEntry:
        """
        Insert a queue entry at the position already chosen by the caller.

        Raises:
            ConflictQueuePositionError: another active entry holds the position
        """
        try:
            data = entry.model_dump(mode="json", exclude_none=True)

            response = self.client.table("queue_entries").insert(data).execute()

            if not response.data:
                raise ValueError("Failed to create queue entry: no data returned")

            return self._parse_queue_entry(response.data[0])
        except APIError as e:
            if _is_unique_violation(e):
                if _violates_constraint(e, BOOKING_ENTRY_CONSTRAINT):
                    raise DuplicateQueueEntryError(entry.booking_id) from e
                raise ConflictQueuePositionError(
                    f"Position {entry.position} already taken in salon {entry.salon_id}"
                ) from e
            raise DatabaseError(f"Failed to create queue entry: {e}") from e
        except Exception as e:
            raise DatabaseError(f"Failed to create queue entry: {e}") from e

    async def insert_queue_entry_first(self, entry: QueueEntryCreate) -> QueueEntry:
        """
        Shift every active entry of the salon by +1 and insert ``entry`` at 1.

        Both steps run in one database transaction serialized per salon.
        """
        try:
            params = {
                "p_salon_id": entry.salon_id,
                "p_booking_id": entry.booking_id,
                "p_customer_id": entry.customer_id,
                "p_check_in_time": to_iso_string(entry.check_in_time or utc_now()),
            }

            response = self.client.rpc("insert_queue_entry_first", params).execute()

            if not response.data:
                raise ValueError("Failed to insert queue entry first: no data returned")

            row = response.data[0] if isinstance(response.data, list) else response.data
            return self._parse_queue_entry(row)
        except APIError as e:
            if _is_unique_violation(e):
                if _violates_constraint(e, BOOKING_ENTRY_CONSTRAINT):
                    raise DuplicateQueueEntryError(entry.booking_id) from e
                raise ConflictQueuePositionError(
                    f"Priority insert raced in salon {entry.salon_id}"
                ) from e
            raise DatabaseError(f"Failed to insert queue entry first: {e}") from e
        except Exception as e:
            raise DatabaseError(f"Failed to insert queue entry first: {e}") from e

    async def update_queue_entry(
        self, entry_id: str, data: Dict[str, Any]
    ) -> Optional[QueueEntry]:
        """Update queue entry fields."""
        try:
            update_data = self._serialize_fields(data)

            response = (
                self.client.table("queue_entries")
                .update(update_data)
                .eq("id", entry_id)
                .execute()
            )

            if not response.data:
                return None

            return self._parse_queue_entry(response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to update queue entry: {e}") from e

    # ========== Notification Operations ==========

    async def create_notification(
        self, notification: NotificationCreate
    ) -> Notification:
        """Insert an in-app notification row."""
        try:
            data = notification.model_dump(mode="json", exclude_none=True)

            response = self.client.table("notifications").insert(data).execute()

            if not response.data:
                raise ValueError("Failed to create notification: no data returned")

            return Notification(**response.data[0])
        except Exception as e:
            raise DatabaseError(f"Failed to create notification: {e}") from e

    # ========== Helper Methods ==========

    def _serialize_booking(self, booking: Booking) -> Dict[str, Any]:
        return booking.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"id", "created_at", "updated_at"},
        )

    def _serialize_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Convert enum, date and datetime values of a partial update."""
        result = {}
        for key, value in data.items():
            if isinstance(value, datetime):
                value = to_iso_string(value)
            elif isinstance(value, date):
                value = to_date_string(value)
            elif hasattr(value, "value"):
                value = value.value
            result[key] = value
        return result

    def _parse_datetimes(self, item: dict, fields: List[str]) -> dict:
        item = item.copy()
        for field in fields:
            if isinstance(item.get(field), str):
                item[field] = parse_iso_datetime(item[field])
        return item

    def _parse_booking(self, item: dict) -> Booking:
        """Parse booking data from database response."""
        item = self._parse_datetimes(
            item, ["arrival_deadline", "created_at", "updated_at"]
        )
        if item.get("companions") is None:
            item.pop("companions", None)
        return Booking(**item)

    def _parse_queue_entry(self, item: dict) -> QueueEntry:
        """Parse queue entry data from database response."""
        item = self._parse_datetimes(
            item, ["check_in_time", "service_start_time", "service_end_time"]
        )
        return QueueEntry(**item)

    def _parse_salon(self, item: dict) -> Salon:
        item = self._parse_datetimes(item, ["created_at", "updated_at"])
        return Salon(**item)

    def _parse_customer(self, item: dict) -> Customer:
        item = self._parse_datetimes(item, ["created_at", "updated_at"])
        if item.get("cancellation_count") is None:
            item["cancellation_count"] = 0
        return Customer(**item)
