"""
Unit tests for the booking lifecycle state machine.
"""

import asyncio
from datetime import time, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from models.booking import BookingStatus, PaymentStatus
from models.notification import NotificationType
from models.queue_entry import QueueEntryStatus
from models.salon import Salon, SalonHours
from utils.constants import DEFAULT_REJECT_REASON, NO_SHOW_NOTE, WALKIN_QUEUE_FAILED_REASON
from utils.datetime_utils import utc_now
from utils.exceptions import (
    BookingNotFoundError,
    ConflictActiveBookingError,
    CustomerNotFoundError,
    InvalidTransitionError,
    QueueFullError,
    SalonNotFoundError,
    SalonUnavailableError,
    ValidationError,
)

SALON_ID = "salon_123"


async def _confirmed(lifecycle, make_booking_request, customer_id):
    booking = await lifecycle.create_booking(make_booking_request(customer_id))
    return await lifecycle.confirm_booking(booking.id, "upi", "pay_123")


def _waits(views):
    return {v.entry.booking_id: (v.entry.position, v.estimated_wait_minutes) for v in views}


# ========== Create ==========


@pytest.mark.asyncio
async def test_create_booking_is_pending(lifecycle, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a", notes="  window seat "))

    assert booking.id is not None
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.PENDING
    assert booking.notes == "window seat"
    assert booking.booking_date is not None


@pytest.mark.asyncio
async def test_create_rejects_second_active_booking(lifecycle, make_booking_request):
    first = await lifecycle.create_booking(make_booking_request("cust_a"))

    with pytest.raises(ConflictActiveBookingError) as exc_info:
        await lifecycle.create_booking(make_booking_request("cust_a"))

    assert exc_info.value.active_booking_id == first.id


@pytest.mark.asyncio
async def test_create_rejects_while_in_progress(lifecycle, make_booking_request):
    result = await _confirmed(lifecycle, make_booking_request, "cust_a")
    await lifecycle.start_service(result.booking.id)

    with pytest.raises(ConflictActiveBookingError):
        await lifecycle.create_booking(make_booking_request("cust_a"))


@pytest.mark.asyncio
async def test_create_allowed_after_completion(lifecycle, make_booking_request):
    result = await _confirmed(lifecycle, make_booking_request, "cust_a")
    await lifecycle.complete_service(result.booking.id)

    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    assert booking.status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_create_only_one_wins(lifecycle, store, make_booking_request):
    results = await asyncio.gather(
        lifecycle.create_booking(make_booking_request("cust_a")),
        lifecycle.create_booking(make_booking_request("cust_a")),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictActiveBookingError)]
    assert len(created) == 1
    assert len(conflicts) == 1
    assert len(store.bookings) == 1


@pytest.mark.asyncio
async def test_create_unknown_references(lifecycle, make_booking_request):
    with pytest.raises(SalonNotFoundError):
        await lifecycle.create_booking(make_booking_request("cust_a", salon_id="nope"))

    with pytest.raises(CustomerNotFoundError):
        await lifecycle.create_booking(make_booking_request("ghost"))


@pytest.mark.asyncio
async def test_create_rejected_when_salon_offline(lifecycle, make_booking_request):
    await lifecycle.set_salon_online(SALON_ID, False)

    with pytest.raises(SalonUnavailableError):
        await lifecycle.create_booking(make_booking_request("cust_a"))


@pytest.mark.asyncio
async def test_create_rejected_outside_hours(lifecycle, store, make_booking_request):
    store.set_salon_hours(
        SALON_ID,
        [
            SalonHours(salon_id=SALON_ID, day_of_week=d, open_time=time(0, 0), close_time=time(0, 0), is_closed=True)
            for d in range(7)
        ],
    )

    with pytest.raises(SalonUnavailableError):
        await lifecycle.create_booking(make_booking_request("cust_a"))


@pytest.mark.asyncio
async def test_create_rejected_when_queue_full(lifecycle, store, make_booking_request):
    store.salons[SALON_ID] = store.salons[SALON_ID].model_copy(update={"max_queue_size": 1})
    await _confirmed(lifecycle, make_booking_request, "cust_a")

    with pytest.raises(QueueFullError):
        await lifecycle.create_booking(make_booking_request("cust_b"))


@pytest.mark.asyncio
async def test_create_rejects_bad_phone(lifecycle, make_booking_request):
    with pytest.raises(ValidationError):
        await lifecycle.create_booking(make_booking_request("cust_a", contact_phone="call me"))


# ========== Confirm / Reject ==========


@pytest.mark.asyncio
async def test_confirm_appends_entry_and_notifies(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    before = utc_now()
    result = await lifecycle.confirm_booking(booking.id, "upi", "pay_123")

    assert result.booking.status == BookingStatus.CONFIRMED
    assert result.booking.payment_status == PaymentStatus.COMPLETED
    assert result.booking.payment_reference == "pay_123"
    assert result.booking.arrival_deadline >= before + timedelta(minutes=10)
    assert result.queue_entry.position == 1
    assert result.queue_entry.customer_id == "cust_a"

    assert len(store.notifications) == 1
    notification = store.notifications[0]
    assert notification.user_id == "cust_a"
    assert notification.title == "Booking Confirmed! ✓"
    assert notification.type == NotificationType.BOOKING_CONFIRMATION
    assert "Please arrive by" in notification.message


@pytest.mark.asyncio
async def test_confirm_reverts_when_queue_insert_fails(lifecycle, engine, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))
    engine.append_tail = AsyncMock(side_effect=RuntimeError("store down"))

    with pytest.raises(RuntimeError):
        await lifecycle.confirm_booking(booking.id)

    reverted = store.bookings[booking.id]
    assert reverted.status == BookingStatus.PENDING
    assert reverted.arrival_deadline is None
    assert store.notifications == []


@pytest.mark.asyncio
async def test_concurrent_confirm_queues_once(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    results = await asyncio.gather(
        lifecycle.confirm_booking(booking.id, "upi", "pay_123"),
        lifecycle.confirm_booking(booking.id, "upi", "pay_123"),
    )

    assert sorted(r.already_satisfied for r in results) == [False, True]
    assert results[0].queue_entry.id == results[1].queue_entry.id
    entries = [e for e in store.queue_entries.values() if e.booking_id == booking.id]
    assert len(entries) == 1
    assert len(store.notifications) == 1


@pytest.mark.asyncio
async def test_confirm_keeps_entry_queued_by_another_process(
    lifecycle, engine, store, make_booking_request
):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))
    existing = await engine.append_tail(SALON_ID, booking.id, "cust_a")

    result = await lifecycle.confirm_booking(booking.id, "upi", "pay_123")

    assert result.already_satisfied is True
    assert result.queue_entry.id == existing.id
    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED
    assert len(store.queue_entries) == 1
    assert store.notifications == []


@pytest.mark.asyncio
async def test_reject_uses_default_reason(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    result = await lifecycle.reject_booking(booking.id)

    assert result.booking.status == BookingStatus.REJECTED
    assert result.booking.cancellation_reason == DEFAULT_REJECT_REASON
    assert result.queue_entry is None
    assert store.queue_entries == {}
    assert store.notifications[-1].title == "Booking Not Available"


@pytest.mark.asyncio
async def test_unknown_booking(lifecycle):
    with pytest.raises(BookingNotFoundError):
        await lifecycle.confirm_booking("missing")


# ========== Service ==========


@pytest.mark.asyncio
async def test_start_and_complete_service(lifecycle, store, make_booking_request):
    confirmed = await _confirmed(lifecycle, make_booking_request, "cust_a")

    started = await lifecycle.start_service(confirmed.booking.id)
    completed = await lifecycle.complete_service(confirmed.booking.id)

    assert started.booking.status == BookingStatus.IN_PROGRESS
    assert started.queue_entry.status == QueueEntryStatus.IN_SERVICE
    assert completed.booking.status == BookingStatus.COMPLETED
    assert completed.queue_entry.status == QueueEntryStatus.COMPLETED
    assert [n.title for n in store.notifications] == [
        "Booking Confirmed! ✓",
        "Service Started! 💇",
        "Service Complete! ⭐",
    ]


@pytest.mark.asyncio
async def test_complete_straight_from_confirmed(lifecycle, make_booking_request):
    confirmed = await _confirmed(lifecycle, make_booking_request, "cust_a")

    result = await lifecycle.complete_service(confirmed.booking.id)

    assert result.booking.status == BookingStatus.COMPLETED
    assert result.queue_entry.status == QueueEntryStatus.COMPLETED


@pytest.mark.asyncio
async def test_complete_twice_is_noop(lifecycle, store, make_booking_request):
    confirmed = await _confirmed(lifecycle, make_booking_request, "cust_a")
    await lifecycle.complete_service(confirmed.booking.id)
    notifications = len(store.notifications)

    again = await lifecycle.complete_service(confirmed.booking.id)

    assert again.already_satisfied is True
    assert again.booking.status == BookingStatus.COMPLETED
    assert len(store.notifications) == notifications


# ========== No-show / Cancel ==========


@pytest.mark.asyncio
async def test_mark_no_show_retires_entry(lifecycle, store, make_booking_request):
    confirmed = await _confirmed(lifecycle, make_booking_request, "cust_a")

    result = await lifecycle.mark_no_show(confirmed.booking.id)

    assert result.booking.status == BookingStatus.CANCELLED
    assert result.booking.is_no_show is True
    assert result.booking.notes == NO_SHOW_NOTE
    assert result.queue_entry.status == QueueEntryStatus.COMPLETED
    assert store.notifications[-1].title == "Booking Marked as No-Show"
    assert store.customers["cust_a"].cancellation_count == 0


@pytest.mark.asyncio
async def test_cancelled_booking_with_no_show_text_in_notes(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(
        make_booking_request("cust_a", notes=f"Last time I was {NO_SHOW_NOTE}, sorry")
    )
    await lifecycle.cancel_booking(booking.id)
    notifications = len(store.notifications)

    with pytest.raises(InvalidTransitionError):
        await lifecycle.mark_no_show(booking.id)

    assert store.bookings[booking.id].is_no_show is False
    assert len(store.notifications) == notifications


@pytest.mark.asyncio
async def test_mark_no_show_keeps_walkin_details(lifecycle, make_walkin_request):
    walkin = await lifecycle.add_walkin(make_walkin_request("Ravi"))

    result = await lifecycle.mark_no_show(walkin.booking.id, "Left before service")

    assert result.booking.notes.startswith("Walk-in: Ravi")
    assert NO_SHOW_NOTE in result.booking.notes
    assert result.booking.cancellation_reason == "Left before service"


@pytest.mark.asyncio
async def test_cancel_increments_counter(lifecycle, store, make_booking_request):
    confirmed = await _confirmed(lifecycle, make_booking_request, "cust_a")
    notifications = len(store.notifications)

    result = await lifecycle.cancel_booking(confirmed.booking.id, "Running late")

    assert result.booking.status == BookingStatus.CANCELLED
    assert result.booking.cancellation_reason == "Running late"
    assert result.queue_entry.status == QueueEntryStatus.COMPLETED
    assert store.customers["cust_a"].cancellation_count == 1
    assert len(store.notifications) == notifications


@pytest.mark.asyncio
async def test_cancel_pending_has_no_entry(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    result = await lifecycle.cancel_booking(booking.id)

    assert result.queue_entry is None
    assert store.customers["cust_a"].cancellation_count == 1


@pytest.mark.asyncio
async def test_cancel_twice_counts_once(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))
    await lifecycle.cancel_booking(booking.id)

    again = await lifecycle.cancel_booking(booking.id)

    assert again.already_satisfied is True
    assert store.customers["cust_a"].cancellation_count == 1


# ========== Walk-ins ==========


@pytest.mark.asyncio
async def test_walkin_is_confirmed_without_customer(lifecycle, store, make_walkin_request):
    result = await lifecycle.add_walkin(make_walkin_request("Ravi"))

    assert result.booking.status == BookingStatus.CONFIRMED
    assert result.booking.customer_id is None
    assert result.booking.is_walk_in is True
    assert result.booking.notes == "Walk-in: Ravi - +919876543210"
    assert result.queue_entry.position == 1
    assert result.queue_entry.customer_id is None


@pytest.mark.asyncio
async def test_walkin_transitions_send_no_notifications(lifecycle, store, make_walkin_request):
    result = await lifecycle.add_walkin(make_walkin_request())

    await lifecycle.start_service(result.booking.id)
    await lifecycle.complete_service(result.booking.id)

    assert store.notifications == []


@pytest.mark.asyncio
async def test_walkin_rejected_when_not_accepting(lifecycle, make_walkin_request):
    await lifecycle.set_accepts_walkins(SALON_ID, False)

    with pytest.raises(SalonUnavailableError):
        await lifecycle.add_walkin(make_walkin_request())
    with pytest.raises(SalonUnavailableError):
        await lifecycle.add_walkin_priority(make_walkin_request())


@pytest.mark.asyncio
async def test_walkin_rejected_when_queue_full(lifecycle, store, make_walkin_request):
    store.salons[SALON_ID] = store.salons[SALON_ID].model_copy(update={"max_queue_size": 2})
    await lifecycle.add_walkin(make_walkin_request("One"))
    await lifecycle.add_walkin(make_walkin_request("Two"))

    with pytest.raises(QueueFullError):
        await lifecycle.add_walkin_priority(make_walkin_request("Three"))


@pytest.mark.asyncio
@pytest.mark.parametrize("priority", [False, True])
async def test_concurrent_walkins_respect_queue_size(lifecycle, store, make_walkin_request, priority):
    store.salons[SALON_ID] = store.salons[SALON_ID].model_copy(update={"max_queue_size": 1})
    add = lifecycle.add_walkin_priority if priority else lifecycle.add_walkin

    results = await asyncio.gather(
        add(make_walkin_request("One")),
        add(make_walkin_request("Two")),
        return_exceptions=True,
    )

    assert sum(isinstance(r, QueueFullError) for r in results) == 1
    assert len(await store.get_active_queue_entries(SALON_ID)) == 1
    queued = {e.booking_id for e in store.queue_entries.values()}
    for booking in store.bookings.values():
        if booking.status == BookingStatus.CONFIRMED:
            assert booking.id in queued


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["append_tail", "insert_first"])
async def test_walkin_cancelled_when_queue_insert_fails(lifecycle, engine, store, make_walkin_request, method):
    setattr(engine, method, AsyncMock(side_effect=RuntimeError("store down")))
    add = lifecycle.add_walkin_priority if method == "insert_first" else lifecycle.add_walkin

    with pytest.raises(RuntimeError):
        await add(make_walkin_request("Ravi"))

    [booking] = store.bookings.values()
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancellation_reason == WALKIN_QUEUE_FAILED_REASON
    assert store.queue_entries == {}


# ========== End-to-end ==========


@pytest.mark.asyncio
async def test_priority_walkin_scenario(lifecycle, store, make_booking_request, make_walkin_request):
    """Stored positions stay put after service; waits follow live rank."""
    a = await _confirmed(lifecycle, make_booking_request, "cust_a")
    assert a.queue_entry.position == 1
    assert _waits(await lifecycle.get_queue_snapshot(SALON_ID)) == {a.booking.id: (1, 0)}

    b = await _confirmed(lifecycle, make_booking_request, "cust_b")
    assert b.queue_entry.position == 2
    assert _waits(await lifecycle.get_queue_snapshot(SALON_ID)) == {
        a.booking.id: (1, 0),
        b.booking.id: (2, 30),
    }

    c = await lifecycle.add_walkin_priority(make_walkin_request("C"))
    assert c.queue_entry.position == 1
    assert _waits(await lifecycle.get_queue_snapshot(SALON_ID)) == {
        c.booking.id: (1, 0),
        a.booking.id: (2, 30),
        b.booking.id: (3, 60),
    }

    await lifecycle.start_service(c.booking.id)
    done = await lifecycle.complete_service(c.booking.id)

    assert done.queue_entry.status == QueueEntryStatus.COMPLETED
    assert _waits(await lifecycle.get_queue_snapshot(SALON_ID)) == {
        a.booking.id: (2, 0),
        b.booking.id: (3, 30),
    }


@pytest.mark.asyncio
async def test_avg_service_time_change_updates_waits(lifecycle, events, make_booking_request):
    await _confirmed(lifecycle, make_booking_request, "cust_a")
    b = await _confirmed(lifecycle, make_booking_request, "cust_b")
    subscription = events.subscribe(SALON_ID)

    salon = await lifecycle.update_avg_service_time(SALON_ID, 45)

    assert salon.avg_service_time == 45
    assert subscription.get_nowait().kind == "wait_times_changed"
    views = await lifecycle.get_queue_snapshot(SALON_ID)
    assert _waits(views)[b.booking.id] == (2, 45)


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [-1, 181, "30"])
async def test_avg_service_time_validation(lifecycle, minutes):
    with pytest.raises(ValidationError):
        await lifecycle.update_avg_service_time(SALON_ID, minutes)


@pytest.mark.asyncio
async def test_snapshot_uses_default_avg(lifecycle, store, make_booking_request):
    store.add_salon(Salon(id="salon_default", name="No Avg"))
    first = await lifecycle.create_booking(make_booking_request("cust_a", salon_id="salon_default"))
    second = await lifecycle.create_booking(make_booking_request("cust_b", salon_id="salon_default"))
    await lifecycle.confirm_booking(first.id)
    await lifecycle.confirm_booking(second.id)

    views = await lifecycle.get_queue_snapshot("salon_default")

    assert [v.estimated_wait_minutes for v in views] == [0, 30]


# ========== Owner messaging and reads ==========


@pytest.mark.asyncio
async def test_notify_next_customer_skips_walkins(lifecycle, store, make_booking_request, make_walkin_request):
    await lifecycle.add_walkin(make_walkin_request())
    b = await _confirmed(lifecycle, make_booking_request, "cust_b")

    entry = await lifecycle.notify_next_customer(SALON_ID)

    assert entry.booking_id == b.booking.id
    notification = store.notifications[-1]
    assert notification.user_id == "cust_b"
    assert notification.title == "Your turn is coming up!"
    assert notification.message == "Please be ready. Your service will begin shortly."


@pytest.mark.asyncio
async def test_notify_next_customer_empty_queue(lifecycle, store):
    assert await lifecycle.notify_next_customer(SALON_ID) is None
    assert store.notifications == []


@pytest.mark.asyncio
async def test_send_custom_message(lifecycle, store, make_booking_request, make_walkin_request):
    a = await _confirmed(lifecycle, make_booking_request, "cust_a")
    walkin = await lifecycle.add_walkin(make_walkin_request())

    assert await lifecycle.send_custom_message(a.booking.id, "Chair 2 is free") is True
    assert store.notifications[-1].message == "Chair 2 is free"

    with pytest.raises(ValidationError):
        await lifecycle.send_custom_message(walkin.booking.id, "hello")
    with pytest.raises(ValidationError):
        await lifecycle.send_custom_message(a.booking.id, "   ")


@pytest.mark.asyncio
async def test_customer_queue_status(lifecycle, make_booking_request):
    a = await _confirmed(lifecycle, make_booking_request, "cust_a")
    b = await _confirmed(lifecycle, make_booking_request, "cust_b")

    status = await lifecycle.get_customer_queue_status(b.booking.id)
    assert (status.position, status.live_rank, status.estimated_wait_minutes) == (2, 2, 30)
    assert status.message == "Please wait"

    await lifecycle.start_service(a.booking.id)
    status = await lifecycle.get_customer_queue_status(b.booking.id)
    assert (status.live_rank, status.estimated_wait_minutes) == (1, 0)
    assert status.message == "You're next!"

    served = await lifecycle.get_customer_queue_status(a.booking.id)
    assert served.entry_status == "in_service"
    assert served.estimated_wait_minutes == 0


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_transition(lifecycle, store, make_booking_request):
    booking = await lifecycle.create_booking(make_booking_request("cust_a"))

    with patch.object(store, "create_notification", AsyncMock(side_effect=RuntimeError("push down"))):
        result = await lifecycle.confirm_booking(booking.id)

    assert result.booking.status == BookingStatus.CONFIRMED
    assert store.bookings[booking.id].status == BookingStatus.CONFIRMED
    assert result.queue_entry.position == 1


@pytest.mark.asyncio
async def test_get_salon_bookings_for_today(lifecycle, make_booking_request, make_walkin_request):
    online = await lifecycle.create_booking(make_booking_request("cust_a"))
    walkin = await lifecycle.add_walkin(make_walkin_request())

    bookings = await lifecycle.get_salon_bookings(SALON_ID)

    assert [b.id for b in bookings] == [online.id, walkin.booking.id]
    assert await lifecycle.get_salon_bookings(SALON_ID, online.booking_date - timedelta(days=1)) == []


def test_create_lifecycle_uses_configured_store():
    from db import InMemoryStore, reset_db_client
    from queueing.lifecycle import BookingLifecycle, create_lifecycle

    reset_db_client()
    try:
        lifecycle = create_lifecycle()

        assert isinstance(lifecycle, BookingLifecycle)
        assert isinstance(lifecycle.store, InMemoryStore)
    finally:
        reset_db_client()
