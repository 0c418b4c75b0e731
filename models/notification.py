"""In-app notification models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationType(str, Enum):
    """Notification category."""

    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_REMINDER = "booking_reminder"
    QUEUE_UPDATE = "queue_update"
    PAYMENT_RECEIPT = "payment_receipt"
    QUEUE_READY = "queue_ready"
    BOOKING_CANCELLED = "booking_cancelled"
    GENERAL = "general"


class Notification(BaseModel):
    """Notification model."""

    id: Optional[str] = None
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.GENERAL
    related_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class NotificationCreate(BaseModel):
    """Notification creation model."""

    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.GENERAL
    related_id: Optional[str] = None
