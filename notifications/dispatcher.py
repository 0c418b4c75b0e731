"""
Notification dispatcher.

Writes in-app notification rows; delivery (push/SMS/email) is handled
elsewhere from that table. Sending never raises: a failed notification must
not undo the booking transition that triggered it.
"""

from typing import Optional

from models.notification import NotificationCreate, NotificationType
from notifications.templates import MessageTemplate
from utils.logging_config import setup_logging

logger = setup_logging(name=__name__, log_file="notifications.log")


class NotificationDispatcher:
    """Fire-and-forget notification sender backed by the entity store."""

    def __init__(self, store):
        self.store = store

    async def send(
        self,
        recipient_id: str,
        title: str,
        message: str,
        category: NotificationType = NotificationType.GENERAL,
        related_booking_id: Optional[str] = None,
    ) -> bool:
        """
        Send a notification to a customer.

        Args:
            recipient_id: Customer ID
            title: Notification title
            message: Notification body
            category: Notification type
            related_booking_id: Booking the notification is about

        Returns:
            True if stored successfully, False otherwise
        """
        try:
            await self.store.create_notification(
                NotificationCreate(
                    user_id=recipient_id,
                    title=title,
                    message=message,
                    type=category,
                    related_id=related_booking_id,
                )
            )
            logger.info(
                f"Notification '{title}' sent to {recipient_id} "
                f"(booking {related_booking_id})"
            )
            return True
        except Exception as e:
            logger.error(
                f"Failed to send notification '{title}' to {recipient_id}: {e}",
                exc_info=True,
            )
            return False

    async def send_template(
        self,
        recipient_id: str,
        template: MessageTemplate,
        related_booking_id: Optional[str] = None,
    ) -> bool:
        return await self.send(
            recipient_id,
            template.title,
            template.message,
            template.category,
            related_booking_id,
        )
