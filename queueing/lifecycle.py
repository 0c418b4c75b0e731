"""
Booking lifecycle state machine.

Owner and customer actions go through here: the current status is checked
against the transition table, the booking is updated, the queue ordering
engine inserts/starts/retires the matching queue entry, and the customer
gets the notification for that transition.

Repeating an action whose target status is already reached (a double
click) is reported as ``already_satisfied`` and changes nothing.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

from config import settings
from db import get_db_client
from models.booking import (
    Booking,
    BookingCreate,
    BookingStatus,
    PaymentStatus,
    WalkInCreate,
)
from models.queue_entry import QueueEntry, QueueEntryStatus, QueueEntryView
from models.salon import Salon
from notifications import templates
from notifications.dispatcher import NotificationDispatcher
from queueing.events import QueueEventBus
from queueing.gates import SalonHoursGate
from queueing.ordering import QueueOrderingEngine
from queueing.transitions import BookingOperation, assert_transition
from queueing.wait_time import estimate_for_entry, format_wait, live_rank, status_message
from utils.constants import (
    DEFAULT_CANCEL_REASON,
    DEFAULT_NO_SHOW_REASON,
    DEFAULT_REJECT_REASON,
    MAX_NOTES_LENGTH,
    MAX_REASON_LENGTH,
    NO_SHOW_NOTE,
    WALKIN_QUEUE_FAILED_REASON,
)
from utils.datetime_utils import local_now, minutes_between, utc_now
from utils.exceptions import (
    BookingNotFoundError,
    ConflictActiveBookingError,
    CustomerNotFoundError,
    DuplicateQueueEntryError,
    InvalidTransitionError,
    QueueEntryNotFoundError,
    SalonNotFoundError,
    SalonUnavailableError,
    ValidationError,
)
from utils.logging_config import setup_logging
from utils.validation import sanitize_text, validate_avg_service_time, validate_phone

logger = setup_logging(name=__name__, log_file="lifecycle.log")


@dataclass
class TransitionResult:
    """Outcome of a lifecycle operation."""

    booking: Booking
    queue_entry: Optional[QueueEntry] = None
    already_satisfied: bool = False


@dataclass
class CustomerQueueStatus:
    """What a customer sees on the live queue screen."""

    booking_id: str
    position: int
    live_rank: int
    estimated_wait_minutes: int
    wait_display: str
    waited_minutes: int
    entry_status: str
    message: str


class BookingLifecycle:
    """Validates and applies booking transitions and their queue side effects."""

    def __init__(
        self,
        store,
        ordering: Optional[QueueOrderingEngine] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        hours_gate=None,
        events: Optional[QueueEventBus] = None,
    ):
        self.store = store
        self.ordering = ordering or QueueOrderingEngine(store, events=events)
        self.dispatcher = dispatcher or NotificationDispatcher(store)
        self.hours_gate = hours_gate or SalonHoursGate(store)
        self._customer_locks: Dict[str, asyncio.Lock] = {}
        self._booking_locks: Dict[str, asyncio.Lock] = {}

    @property
    def events(self) -> QueueEventBus:
        return self.ordering.events

    # ========== Creation ==========

    async def create_booking(self, request: BookingCreate) -> Booking:
        """
        Create a pending online booking.

        The queue entry is created later, when the booking is confirmed.

        Raises:
            SalonNotFoundError, CustomerNotFoundError: unknown references
            SalonUnavailableError: salon offline or outside business hours
            QueueFullError: salon queue at max_queue_size
            ConflictActiveBookingError: customer already has an active booking
        """
        salon = await self._require_salon(request.salon_id)

        customer = await self.store.get_customer(request.customer_id)
        if customer is None:
            raise CustomerNotFoundError(f"Customer {request.customer_id} not found")

        await self._check_salon_open(salon)

        if request.contact_phone and not validate_phone(request.contact_phone):
            raise ValidationError(f"Invalid phone number: {request.contact_phone}")

        async with self._customer_lock(request.customer_id):
            await self.ordering.ensure_capacity(salon.id, salon.max_queue_size)

            active = await self.store.get_active_booking_for_customer(request.customer_id)
            if active is not None:
                logger.info(
                    f"Rejected double booking for customer {request.customer_id}: "
                    f"active booking {active.id} ({active.status})"
                )
                raise ConflictActiveBookingError(request.customer_id, active.id)

            local = local_now(settings.timezone)
            booking = Booking(
                salon_id=salon.id,
                customer_id=request.customer_id,
                service_id=request.service_id,
                party_size=request.party_size,
                companions=request.companions,
                booking_date=request.booking_date or local.date(),
                booking_time=request.booking_time or local.time().replace(microsecond=0, tzinfo=None),
                duration=request.duration,
                total_price=request.total_price,
                status=BookingStatus.PENDING,
                notes=sanitize_text(request.notes, MAX_NOTES_LENGTH) or None,
                contact_phone=request.contact_phone,
                payment_status=PaymentStatus.PENDING,
            )
            created = await self.store.create_booking(booking)

        logger.info(
            f"Booking {created.id} created for {customer.display_name} "
            f"({created.customer_id}) at salon {created.salon_id}"
        )
        return created

    async def add_walkin(self, request: WalkInCreate) -> TransitionResult:
        """Add a walk-in at the tail of the queue."""
        return await self._add_walkin(request, priority=False)

    async def add_walkin_priority(self, request: WalkInCreate) -> TransitionResult:
        """
        Add a walk-in at position 1, pushing every active entry down by one.

        Used when the next online customer has not arrived yet; they keep
        their place right behind the walk-in.
        """
        return await self._add_walkin(request, priority=True)

    async def _add_walkin(self, request: WalkInCreate, priority: bool) -> TransitionResult:
        salon = await self._require_salon(request.salon_id)
        await self._check_salon_open(salon)
        if not salon.accepts_walkins:
            raise SalonUnavailableError(f"Salon {salon.id} is not accepting walk-ins")

        if request.phone and not validate_phone(request.phone):
            raise ValidationError(f"Invalid phone number: {request.phone}")

        # Fail fast before writing a booking; the insert re-checks under the salon lock.
        await self.ordering.ensure_capacity(salon.id, salon.max_queue_size)

        name = sanitize_text(request.name, 100)
        local = local_now(settings.timezone)
        booking = Booking(
            salon_id=salon.id,
            customer_id=None,
            service_id=request.service_id,
            booking_date=local.date(),
            booking_time=local.time().replace(microsecond=0, tzinfo=None),
            duration=request.duration,
            total_price=request.total_price,
            status=BookingStatus.CONFIRMED,
            is_walk_in=True,
            notes=f"Walk-in: {name} - {request.phone or 'no phone'}",
            contact_phone=request.phone,
        )
        created = await self.store.create_booking(booking)

        insert = self.ordering.insert_first if priority else self.ordering.append_tail
        try:
            entry = await insert(salon.id, created.id, max_size=salon.max_queue_size)
        except Exception:
            logger.error(
                f"Queue insert failed for walk-in booking {created.id}; cancelling it",
                exc_info=True,
            )
            await self._update_booking(
                created.id,
                {
                    "status": BookingStatus.CANCELLED,
                    "cancellation_reason": WALKIN_QUEUE_FAILED_REASON,
                },
            )
            raise

        logger.info(
            f"Walk-in booking {created.id} added to salon {salon.id} "
            f"at position {entry.position}{' (priority)' if priority else ''}"
        )
        return TransitionResult(booking=created, queue_entry=entry)

    # ========== Owner Decisions ==========

    async def confirm_booking(
        self,
        booking_id: str,
        payment_method: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> TransitionResult:
        """
        Confirm a paid booking and put the customer at the tail of the queue.

        Sets the arrival deadline to now + ``settings.arrival_grace_minutes``.
        If another process queued the same booking first, the confirm is
        reported as already satisfied and that process's entry is kept.
        """
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)

            if booking.status == BookingStatus.CONFIRMED:
                entry = await self.store.get_queue_entry_by_booking(booking_id)
                if entry is not None:
                    return self._already_satisfied(booking, entry, "confirm")

            assert_transition(booking.status, BookingOperation.CONFIRM)

            arrival_deadline = utc_now() + timedelta(minutes=settings.arrival_grace_minutes)
            updated = await self._update_booking(
                booking_id,
                {
                    "status": BookingStatus.CONFIRMED,
                    "arrival_deadline": arrival_deadline,
                    "payment_status": PaymentStatus.COMPLETED,
                    "payment_method": payment_method,
                    "payment_reference": payment_reference,
                },
            )

            try:
                entry = await self.ordering.append_tail(
                    updated.salon_id, updated.id, updated.customer_id
                )
            except DuplicateQueueEntryError:
                entry = await self.store.get_queue_entry_by_booking(booking_id)
                current = await self._require_booking(booking_id)
                logger.info(f"Booking {booking_id} was queued by another confirm")
                return self._already_satisfied(current, entry, "confirm")
            except Exception:
                logger.error(
                    f"Queue insert failed for booking {booking_id}; reverting to pending",
                    exc_info=True,
                )
                await self._update_booking(
                    booking_id,
                    {
                        "status": BookingStatus.PENDING,
                        "arrival_deadline": None,
                        "payment_status": booking.payment_status,
                        "payment_method": booking.payment_method,
                        "payment_reference": booking.payment_reference,
                    },
                )
                raise

        logger.info(
            f"Booking {booking_id} confirmed at position {entry.position}, "
            f"arrival deadline {arrival_deadline.isoformat()}"
        )

        salon = await self._require_salon(updated.salon_id)
        await self._notify(
            updated,
            templates.booking_confirmed(salon.name, arrival_deadline, settings.timezone),
        )
        return TransitionResult(booking=updated, queue_entry=entry)

    async def reject_booking(
        self, booking_id: str, reason: Optional[str] = None
    ) -> TransitionResult:
        """Reject a pending booking. No queue entry exists yet."""
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)

            if booking.status == BookingStatus.REJECTED:
                return self._already_satisfied(booking, None, "reject")

            assert_transition(booking.status, BookingOperation.REJECT)

            reason = sanitize_text(reason, MAX_REASON_LENGTH) or DEFAULT_REJECT_REASON
            updated = await self._update_booking(
                booking_id,
                {"status": BookingStatus.REJECTED, "cancellation_reason": reason},
            )
        logger.info(f"Booking {booking_id} rejected: {reason}")

        salon = await self._require_salon(updated.salon_id)
        await self._notify(updated, templates.booking_rejected(salon.name, reason))
        return TransitionResult(booking=updated)

    # ========== Service ==========

    async def start_service(self, booking_id: str) -> TransitionResult:
        """Start serving a confirmed booking whose queue entry is waiting."""
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)
            entry = await self.store.get_queue_entry_by_booking(booking_id)

            if (
                booking.status == BookingStatus.IN_PROGRESS
                and entry is not None
                and entry.status == QueueEntryStatus.IN_SERVICE
            ):
                return self._already_satisfied(booking, entry, "start service")

            assert_transition(booking.status, BookingOperation.START_SERVICE)

            if entry is None:
                raise QueueEntryNotFoundError(f"Booking {booking_id} has no queue entry")
            if entry.status != QueueEntryStatus.WAITING:
                raise InvalidTransitionError(
                    booking.status,
                    BookingOperation.START_SERVICE.value,
                    f"queue entry is {entry.status}",
                )

            updated = await self._update_booking(
                booking_id, {"status": BookingStatus.IN_PROGRESS}
            )
            entry = await self.ordering.start(entry)
        logger.info(f"Service started for booking {booking_id} (position {entry.position})")

        salon = await self._require_salon(updated.salon_id)
        await self._notify(updated, templates.service_started(salon.name))
        return TransitionResult(booking=updated, queue_entry=entry)

    async def complete_service(self, booking_id: str) -> TransitionResult:
        """
        Finish a booking and retire its queue entry.

        Other entries keep their stored positions; live ranks and waits are
        derived on read.
        """
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)

            if booking.status == BookingStatus.COMPLETED:
                entry = await self.store.get_queue_entry_by_booking(booking_id)
                return self._already_satisfied(booking, entry, "complete")

            assert_transition(booking.status, BookingOperation.COMPLETE_SERVICE)

            updated = await self._update_booking(
                booking_id, {"status": BookingStatus.COMPLETED}
            )
            entry = await self._retire_for(booking_id)
        logger.info(f"Service completed for booking {booking_id}")

        salon = await self._require_salon(updated.salon_id)
        await self._notify(updated, templates.service_completed(salon.name))
        return TransitionResult(booking=updated, queue_entry=entry)

    # ========== Cancellation ==========

    async def mark_no_show(
        self, booking_id: str, reason: Optional[str] = None
    ) -> TransitionResult:
        """Cancel a confirmed booking whose customer did not turn up."""
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)

            if booking.status == BookingStatus.CANCELLED and booking.is_no_show:
                entry = await self.store.get_queue_entry_by_booking(booking_id)
                return self._already_satisfied(booking, entry, "mark no-show")

            assert_transition(booking.status, BookingOperation.MARK_NO_SHOW)

            reason = sanitize_text(reason, MAX_REASON_LENGTH) or DEFAULT_NO_SHOW_REASON
            notes = f"{booking.notes} | {NO_SHOW_NOTE}" if booking.notes else NO_SHOW_NOTE
            updated = await self._update_booking(
                booking_id,
                {
                    "status": BookingStatus.CANCELLED,
                    "is_no_show": True,
                    "notes": notes,
                    "cancellation_reason": reason,
                },
            )
            entry = await self._retire_for(booking_id)
        logger.info(f"Booking {booking_id} marked as no-show: {reason}")

        salon = await self._require_salon(updated.salon_id)
        await self._notify(updated, templates.marked_no_show(salon.name, reason))
        return TransitionResult(booking=updated, queue_entry=entry)

    async def cancel_booking(
        self, booking_id: str, reason: Optional[str] = None
    ) -> TransitionResult:
        """
        Cancel a pending or confirmed booking (customer or owner initiated).

        Counts towards the customer's lifetime cancellation total.
        """
        async with self._booking_lock(booking_id):
            booking = await self._require_booking(booking_id)

            if booking.status == BookingStatus.CANCELLED:
                entry = await self.store.get_queue_entry_by_booking(booking_id)
                return self._already_satisfied(booking, entry, "cancel")

            assert_transition(booking.status, BookingOperation.CANCEL)

            reason = sanitize_text(reason, MAX_REASON_LENGTH) or DEFAULT_CANCEL_REASON
            updated = await self._update_booking(
                booking_id,
                {"status": BookingStatus.CANCELLED, "cancellation_reason": reason},
            )
            entry = await self._retire_for(booking_id)

            if updated.customer_id:
                count = await self.store.increment_cancellation_count(updated.customer_id)
                logger.info(
                    f"Customer {updated.customer_id} cancellation count is now {count}"
                )

        logger.info(f"Booking {booking_id} cancelled: {reason}")
        return TransitionResult(booking=updated, queue_entry=entry)

    # ========== Owner Messaging ==========

    async def notify_next_customer(
        self, salon_id: str, message: Optional[str] = None
    ) -> Optional[QueueEntry]:
        """
        Tell the first waiting customer with an account that their turn is near.

        Walk-ins are skipped; they have no one to notify.

        Returns:
            The notified entry, or None if nobody could be notified
        """
        await self._require_salon(salon_id)
        active = await self.ordering.active_entries(salon_id)

        waiting = sorted(
            (e for e in active if e.status == QueueEntryStatus.WAITING),
            key=lambda e: e.position,
        )
        for entry in waiting:
            if entry.customer_id:
                await self.dispatcher.send_template(
                    entry.customer_id,
                    templates.turn_coming_up(sanitize_text(message, MAX_REASON_LENGTH) or None),
                    entry.booking_id,
                )
                return entry

        logger.info(f"No waiting customer to notify in salon {salon_id}")
        return None

    async def send_custom_message(self, booking_id: str, message: str) -> bool:
        """Send a free-text message from the salon to a booking's customer."""
        booking = await self._require_booking(booking_id)
        if not booking.customer_id:
            raise ValidationError("Walk-in bookings have no customer to message")

        text = sanitize_text(message, MAX_REASON_LENGTH)
        if not text:
            raise ValidationError("Message must not be empty")

        return await self.dispatcher.send_template(
            booking.customer_id, templates.salon_message(text), booking.id
        )

    # ========== Salon Settings ==========

    async def update_avg_service_time(self, salon_id: str, minutes: int) -> Salon:
        """Change the salon's average service time; waits are re-derived on read."""
        if not validate_avg_service_time(minutes):
            raise ValidationError(f"Invalid average service time: {minutes}")

        await self._require_salon(salon_id)
        salon = await self.store.update_salon(salon_id, {"avg_service_time": minutes})
        if salon is None:
            raise SalonNotFoundError(f"Salon {salon_id} not found")

        logger.info(f"Salon {salon_id} average service time set to {minutes} minutes")
        self.ordering.notify_wait_times_changed(salon_id)
        return salon

    async def set_salon_online(self, salon_id: str, is_active: bool) -> Salon:
        return await self._update_salon_flag(salon_id, "is_active", is_active)

    async def set_accepts_walkins(self, salon_id: str, accepts: bool) -> Salon:
        return await self._update_salon_flag(salon_id, "accepts_walkins", accepts)

    # ========== Reads ==========

    async def get_queue_snapshot(self, salon_id: str) -> List[QueueEntryView]:
        """Active queue of a salon with live rank and wait for each entry."""
        salon = await self._require_salon(salon_id)
        return await self.ordering.snapshot(salon_id, salon.avg_service_time)

    async def get_customer_queue_status(self, booking_id: str) -> CustomerQueueStatus:
        """Live queue status for one booking."""
        booking = await self._require_booking(booking_id)
        entry = await self.store.get_queue_entry_by_booking(booking_id)
        if entry is None:
            raise QueueEntryNotFoundError(f"Booking {booking_id} has no queue entry")

        salon = await self._require_salon(booking.salon_id)
        active = await self.ordering.active_entries(booking.salon_id)

        rank = live_rank(entry, active) if entry.is_active else 0
        wait = estimate_for_entry(entry, active, salon.avg_service_time)
        waited = minutes_between(entry.check_in_time, utc_now()) if entry.check_in_time else 0

        if entry.status == QueueEntryStatus.IN_SERVICE:
            message = "You're being served"
        elif entry.status == QueueEntryStatus.COMPLETED:
            message = "Your visit is complete"
        else:
            message = status_message(rank, wait)

        return CustomerQueueStatus(
            booking_id=booking_id,
            position=entry.position,
            live_rank=rank,
            estimated_wait_minutes=wait,
            wait_display=format_wait(wait),
            waited_minutes=waited,
            entry_status=QueueEntryStatus(entry.status).value,
            message=message,
        )

    async def get_salon_bookings(
        self, salon_id: str, booking_date: Optional[date] = None
    ) -> List[Booking]:
        """One day's bookings of a salon, oldest first (default: today)."""
        await self._require_salon(salon_id)
        day = booking_date or local_now(settings.timezone).date()
        return await self.store.get_salon_bookings(salon_id, day)

    # ========== Helpers ==========

    def _customer_lock(self, customer_id: str) -> asyncio.Lock:
        lock = self._customer_locks.get(customer_id)
        if lock is None:
            lock = self._customer_locks[customer_id] = asyncio.Lock()
        return lock

    def _booking_lock(self, booking_id: str) -> asyncio.Lock:
        lock = self._booking_locks.get(booking_id)
        if lock is None:
            lock = self._booking_locks[booking_id] = asyncio.Lock()
        return lock

    async def _require_salon(self, salon_id: str) -> Salon:
        salon = await self.store.get_salon(salon_id)
        if salon is None:
            raise SalonNotFoundError(f"Salon {salon_id} not found")
        return salon

    async def _require_booking(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking_by_id(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    async def _update_booking(self, booking_id: str, data: dict) -> Booking:
        updated = await self.store.update_booking(booking_id, data)
        if updated is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return updated

    async def _update_salon_flag(self, salon_id: str, field: str, value: bool) -> Salon:
        await self._require_salon(salon_id)
        salon = await self.store.update_salon(salon_id, {field: value})
        if salon is None:
            raise SalonNotFoundError(f"Salon {salon_id} not found")
        logger.info(f"Salon {salon_id} {field} set to {value}")
        return salon

    async def _check_salon_open(self, salon: Salon) -> None:
        if not salon.is_active:
            raise SalonUnavailableError(f"Salon {salon.id} is offline")
        if not await self.hours_gate.is_within_hours(salon.id, utc_now()):
            raise SalonUnavailableError(f"Salon {salon.id} is outside business hours")

    async def _retire_for(self, booking_id: str) -> Optional[QueueEntry]:
        entry = await self.store.get_queue_entry_by_booking(booking_id)
        if entry is None or not entry.is_active:
            return entry
        return await self.ordering.retire(entry.id)

    async def _notify(self, booking: Booking, template: templates.MessageTemplate) -> None:
        if not booking.customer_id:
            return
        await self.dispatcher.send_template(booking.customer_id, template, booking.id)

    def _already_satisfied(
        self, booking: Booking, entry: Optional[QueueEntry], action: str
    ) -> TransitionResult:
        logger.debug(f"Booking {booking.id}: {action} already applied, nothing to do")
        return TransitionResult(booking=booking, queue_entry=entry, already_satisfied=True)


def create_lifecycle() -> BookingLifecycle:
    """Build a lifecycle on the store selected by settings."""
    settings.validate_all_required()
    store = get_db_client()
    logger.info(f"Booking lifecycle using {type(store).__name__}")
    return BookingLifecycle(store)
