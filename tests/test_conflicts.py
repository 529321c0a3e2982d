"""Tests for the conflict engine"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from meeting_scheduler.domain.scheduling.conflicts import (
    BusyInterval,
    busy_from_events,
    is_blocked,
    overlaps,
)

UTC = timezone.utc
T0 = datetime(2025, 6, 2, 17, tzinfo=UTC)


def minutes(n):
    return T0 + timedelta(minutes=n)


def test_overlaps_is_half_open():
    assert overlaps(minutes(0), minutes(30), minutes(15), minutes(45))
    # Touching intervals do not overlap
    assert not overlaps(minutes(0), minutes(30), minutes(30), minutes(60))
    assert not overlaps(minutes(30), minutes(60), minutes(0), minutes(30))


def test_no_busy_intervals_never_blocks():
    assert not is_blocked(minutes(0), minutes(30), [], 15, 15)


def test_buffers_pad_both_sides():
    busy = [BusyInterval(start=minutes(0), end=minutes(30))]

    # Back-to-back with no buffers is fine
    assert not is_blocked(minutes(30), minutes(60), busy, 0, 0)
    # With 15m buffers on each side the next start must be 60m after the busy end
    assert is_blocked(minutes(30), minutes(60), busy, 15, 15)
    assert is_blocked(minutes(59), minutes(89), busy, 15, 15)
    assert not is_blocked(minutes(60), minutes(90), busy, 15, 15)
    assert not is_blocked(minutes(-60), minutes(-30), busy, 15, 15)


def test_existing_event_uses_its_own_buffers():
    busy = [BusyInterval(start=minutes(0), end=minutes(30), buffer_before=0, buffer_after=0)]

    # Only the candidate's 15m buffer applies
    assert is_blocked(minutes(40), minutes(70), busy, 15, 15)
    assert not is_blocked(minutes(45), minutes(75), busy, 15, 15)


def test_excluded_event_is_ignored():
    busy = [BusyInterval(start=minutes(0), end=minutes(30), event_id="evt-1")]

    assert is_blocked(minutes(0), minutes(30), busy, 0, 0)
    assert not is_blocked(minutes(0), minutes(30), busy, 0, 0, exclude_event_id="evt-1")
    assert is_blocked(minutes(0), minutes(30), busy, 0, 0, exclude_event_id="evt-2")


def test_busy_from_events_reads_event_type_buffers():
    typed = SimpleNamespace(
        id="a",
        start_at=minutes(0),
        end_at=minutes(30),
        event_type=SimpleNamespace(buffer_before_minutes=5, buffer_after_minutes=10),
    )
    untyped = SimpleNamespace(id="b", start_at=minutes(60).replace(tzinfo=None), end_at=minutes(90), event_type=None)

    intervals = busy_from_events([typed, untyped])

    assert intervals[0].buffer_before == 5
    assert intervals[0].buffer_after == 10
    assert intervals[1].buffer_before is None
    # Naive database values come back as UTC
    assert intervals[1].start == minutes(60)
