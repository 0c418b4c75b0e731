"""Customer notifications triggered by booking transitions."""

from .dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
