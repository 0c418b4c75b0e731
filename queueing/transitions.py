"""Booking status transition table."""

from enum import Enum
from typing import Dict, FrozenSet

from models.booking import BookingStatus
from utils.exceptions import InvalidTransitionError


class BookingOperation(str, Enum):
    """Operations of the booking lifecycle that change a booking's status."""

    CONFIRM = "confirm"
    REJECT = "reject"
    START_SERVICE = "start_service"
    COMPLETE_SERVICE = "complete_service"
    MARK_NO_SHOW = "mark_no_show"
    CANCEL = "cancel"


# Statuses each operation may be applied from.
ALLOWED_FROM: Dict[BookingOperation, FrozenSet[BookingStatus]] = {
    BookingOperation.CONFIRM: frozenset({BookingStatus.PENDING}),
    BookingOperation.REJECT: frozenset({BookingStatus.PENDING}),
    BookingOperation.START_SERVICE: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
    ),
    BookingOperation.COMPLETE_SERVICE: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
    ),
    BookingOperation.MARK_NO_SHOW: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
    ),
    BookingOperation.CANCEL: frozenset(
        {BookingStatus.PENDING, BookingStatus.CONFIRMED}
    ),
}

# Status each operation leaves the booking in.
TARGET: Dict[BookingOperation, BookingStatus] = {
    BookingOperation.CONFIRM: BookingStatus.CONFIRMED,
    BookingOperation.REJECT: BookingStatus.REJECTED,
    BookingOperation.START_SERVICE: BookingStatus.IN_PROGRESS,
    BookingOperation.COMPLETE_SERVICE: BookingStatus.COMPLETED,
    BookingOperation.MARK_NO_SHOW: BookingStatus.CANCELLED,
    BookingOperation.CANCEL: BookingStatus.CANCELLED,
}


def is_allowed(current: str, operation: BookingOperation) -> bool:
    return BookingStatus(current) in ALLOWED_FROM[operation]


def assert_transition(current: str, operation: BookingOperation) -> BookingStatus:
    """
    Check that ``operation`` may run on a booking in ``current`` status.

    Returns:
        The status the booking moves to

    Raises:
        InvalidTransitionError: if the operation is not allowed
    """
    if not is_allowed(current, operation):
        raise InvalidTransitionError(BookingStatus(current).value, operation.value)
    return TARGET[operation]
