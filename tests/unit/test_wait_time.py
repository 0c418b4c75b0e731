"""
Unit tests for wait-time estimation and live ranks.
"""

import pytest

from models.queue_entry import QueueEntry, QueueEntryStatus
from queueing.wait_time import (
    effective_avg_service_time,
    estimate,
    estimate_for_entry,
    live_rank,
    status_message,
)


def _entry(entry_id: str, position: int, status=QueueEntryStatus.WAITING) -> QueueEntry:
    return QueueEntry(
        id=entry_id, salon_id="s", booking_id=f"b_{entry_id}", position=position, status=status
    )


@pytest.mark.parametrize(
    "position,avg,expected",
    [(1, 30, 0), (2, 30, 30), (3, 30, 60), (5, 15, 60), (4, 0, 0)],
)
def test_estimate(position, avg, expected):
    assert estimate(position, avg) == expected


def test_estimate_uses_default_when_avg_missing():
    assert effective_avg_service_time(None) == 30
    assert estimate(3, None) == 60


def test_estimate_never_negative():
    assert estimate(0, 30) == 0


def test_estimate_monotonic_in_position():
    waits = [estimate(p, 20) for p in range(1, 12)]
    assert waits == sorted(waits)


def test_live_rank_ignores_gaps_and_in_service():
    active = [
        _entry("served", 1, QueueEntryStatus.IN_SERVICE),
        _entry("x", 3),
        _entry("y", 7),
    ]

    assert live_rank(active[1], active) == 1
    assert live_rank(active[2], active) == 2


def test_estimate_for_entry_zero_unless_waiting():
    active = [_entry("served", 1, QueueEntryStatus.IN_SERVICE), _entry("x", 2), _entry("y", 4)]
    done = _entry("done", 9, QueueEntryStatus.COMPLETED)

    assert estimate_for_entry(active[0], active, 30) == 0
    assert estimate_for_entry(done, active, 30) == 0
    assert estimate_for_entry(active[1], active, 30) == 0
    assert estimate_for_entry(active[2], active, 30) == 30


@pytest.mark.parametrize(
    "rank,minutes,expected",
    [
        (1, 0, "You're next!"),
        (2, 5, "Almost ready!"),
        (2, 20, "Get ready soon"),
        (4, 90, "Please wait"),
    ],
)
def test_status_message(rank, minutes, expected):
    assert status_message(rank, minutes) == expected
