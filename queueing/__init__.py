"""Salon queue core: ordering, wait estimates and the booking lifecycle."""

from .events import QueueEvent, QueueEventBus, QueueSubscription
from .gates import AlwaysOpenGate, SalonHoursGate
from .lifecycle import (
    BookingLifecycle,
    CustomerQueueStatus,
    TransitionResult,
    create_lifecycle,
)
from .ordering import QueueOrderingEngine
from .transitions import BookingOperation, assert_transition, is_allowed
from .wait_time import estimate, estimate_for_entry, live_rank

__all__ = [
    "AlwaysOpenGate",
    "BookingLifecycle",
    "BookingOperation",
    "CustomerQueueStatus",
    "QueueEvent",
    "QueueEventBus",
    "QueueOrderingEngine",
    "QueueSubscription",
    "SalonHoursGate",
    "TransitionResult",
    "assert_transition",
    "create_lifecycle",
    "estimate",
    "estimate_for_entry",
    "is_allowed",
    "live_rank",
]
