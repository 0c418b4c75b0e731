"""Pydantic models for data validation and serialization."""

from .booking import (
    ACTIVE_BOOKING_STATUSES,
    Booking,
    BookingCreate,
    BookingStatus,
    PaymentStatus,
    WalkInCreate,
)
from .customer import Customer
from .notification import Notification, NotificationCreate, NotificationType
from .queue_entry import (
    ACTIVE_QUEUE_STATUSES,
    QueueEntry,
    QueueEntryCreate,
    QueueEntryStatus,
    QueueEntryView,
)
from .salon import Salon, SalonHours

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "ACTIVE_QUEUE_STATUSES",
    "Booking",
    "BookingCreate",
    "BookingStatus",
    "Customer",
    "Notification",
    "NotificationCreate",
    "NotificationType",
    "PaymentStatus",
    "QueueEntry",
    "QueueEntryCreate",
    "QueueEntryStatus",
    "QueueEntryView",
    "Salon",
    "SalonHours",
    "WalkInCreate",
]
