"""Fixed notification templates keyed to booking lifecycle transitions."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.notification import NotificationType
from utils.datetime_utils import local_now


@dataclass(frozen=True)
class MessageTemplate:
    title: str
    message: str
    category: NotificationType


def booking_confirmed(
    salon_name: str, arrival_deadline: datetime, timezone: str
) -> MessageTemplate:
    deadline = local_now(timezone, arrival_deadline).strftime("%H:%M")
    return MessageTemplate(
        title="Booking Confirmed! ✓",
        message=(
            f"{salon_name} has accepted your booking. "
            f"Please arrive by {deadline} to keep your place in the queue."
        ),
        category=NotificationType.BOOKING_CONFIRMATION,
    )


def booking_rejected(salon_name: str, reason: str) -> MessageTemplate:
    return MessageTemplate(
        title="Booking Not Available",
        message=(
            f"Sorry, {salon_name} couldn't accommodate your booking. "
            f"Reason: {reason}. Please try another time slot."
        ),
        category=NotificationType.BOOKING_CANCELLED,
    )


def service_started(salon_name: str) -> MessageTemplate:
    return MessageTemplate(
        title="Service Started! 💇",
        message=f"Your service at {salon_name} has begun. Enjoy!",
        category=NotificationType.QUEUE_UPDATE,
    )


def service_completed(salon_name: str) -> MessageTemplate:
    return MessageTemplate(
        title="Service Complete! ⭐",
        message=f"Thanks for visiting {salon_name}! We hope to see you again soon.",
        category=NotificationType.GENERAL,
    )


def marked_no_show(salon_name: str, reason: str) -> MessageTemplate:
    return MessageTemplate(
        title="Booking Marked as No-Show",
        message=(
            f"You were marked as no-show at {salon_name} ({reason}). "
            f"Please contact the salon if this was a mistake."
        ),
        category=NotificationType.BOOKING_CANCELLED,
    )


def turn_coming_up(message: Optional[str] = None) -> MessageTemplate:
    return MessageTemplate(
        title="Your turn is coming up!",
        message=message or "Please be ready. Your service will begin shortly.",
        category=NotificationType.QUEUE_READY,
    )


def salon_message(message: str) -> MessageTemplate:
    return MessageTemplate(
        title="Message from Salon",
        message=message,
        category=NotificationType.QUEUE_UPDATE,
    )
