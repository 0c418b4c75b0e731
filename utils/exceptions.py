"""
Custom exception classes for the queue engine.
Provides specific error types instead of generic exceptions.
"""

from typing import Optional


class DatabaseError(Exception):
    """Base exception for entity store operations."""

    pass


class ConflictQueuePositionError(DatabaseError):
    """Raised when a concurrent write took the queue position first.

    Callers must re-read the queue and reapply the operation.
    """

    pass


class DuplicateQueueEntryError(DatabaseError):
    """Raised when a booking already has a queue entry."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} already has a queue entry")


class BookingError(Exception):
    """Base exception for booking lifecycle and queue ordering operations."""

    pass


class InvalidTransitionError(BookingError):
    """Raised when an operation is not allowed from the booking's current state."""

    def __init__(self, current: str, operation: str, detail: Optional[str] = None):
        self.current = current
        self.operation = operation
        message = f"Cannot {operation} a booking in state '{current}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class NotFoundError(BookingError):
    """Raised when a referenced record does not exist."""

    pass


class BookingNotFoundError(NotFoundError):
    """Raised when a booking is not found."""

    pass


class SalonNotFoundError(NotFoundError):
    """Raised when a salon is not found."""

    pass


class CustomerNotFoundError(NotFoundError):
    """Raised when a customer is not found."""

    pass


class QueueEntryNotFoundError(NotFoundError):
    """Raised when a queue entry is not found."""

    pass


class ConflictActiveBookingError(BookingError):
    """Raised when a customer already holds a pending, confirmed or in-progress booking."""

    def __init__(self, customer_id: str, active_booking_id: Optional[str] = None):
        self.customer_id = customer_id
        self.active_booking_id = active_booking_id
        super().__init__(
            f"Customer {customer_id} already has an active booking"
            + (f" ({active_booking_id})" if active_booking_id else "")
        )


class SalonUnavailableError(BookingError):
    """Raised when a salon is offline, closed, or not taking walk-ins."""

    pass


class QueueFullError(SalonUnavailableError):
    """Raised when a salon's queue has reached its maximum size."""

    pass


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass
