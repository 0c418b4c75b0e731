"""
Unit tests for the notification dispatcher and templates.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.notification import NotificationType
from notifications import templates
from notifications.dispatcher import NotificationDispatcher


@pytest.mark.asyncio
async def test_send_stores_notification(dispatcher, store):
    result = await dispatcher.send("cust_a", "Hello", "World", NotificationType.QUEUE_UPDATE, "booking_1")

    assert result is True
    assert len(store.notifications) == 1
    stored = store.notifications[0]
    assert stored.user_id == "cust_a"
    assert stored.type == "queue_update"
    assert stored.related_id == "booking_1"
    assert stored.is_read is False


@pytest.mark.asyncio
async def test_send_failure_returns_false():
    """A failed write is logged and reported, never raised."""
    store = MagicMock()
    store.create_notification = AsyncMock(side_effect=Exception("Network error"))
    dispatcher = NotificationDispatcher(store)

    result = await dispatcher.send("cust_a", "Hello", "World")

    assert result is False
    store.create_notification.assert_awaited_once()


@pytest.mark.asyncio
async def test_send_template(dispatcher, store):
    await dispatcher.send_template("cust_a", templates.service_started("Glow Studio"), "booking_1")

    stored = store.notifications[0]
    assert stored.title == "Service Started! 💇"
    assert "Glow Studio" in stored.message


def test_booking_confirmed_uses_local_deadline():
    deadline = datetime(2026, 1, 15, 5, 10, tzinfo=timezone.utc)

    template = templates.booking_confirmed("Glow Studio", deadline, "Asia/Kolkata")

    assert template.category == NotificationType.BOOKING_CONFIRMATION
    assert "Please arrive by 10:40" in template.message


def test_booking_rejected_includes_reason():
    template = templates.booking_rejected("Glow Studio", "Fully booked")

    assert template.title == "Booking Not Available"
    assert "Fully booked" in template.message


def test_turn_coming_up_default_and_custom():
    assert templates.turn_coming_up().message == "Please be ready. Your service will begin shortly."
    assert templates.turn_coming_up("Chair 3 in 5 minutes").message == "Chair 3 in 5 minutes"
    assert templates.turn_coming_up().category == NotificationType.QUEUE_READY
