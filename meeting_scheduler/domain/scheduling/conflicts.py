"""
Conflict engine.

Pure logic: decides whether a candidate meeting overlaps any existing
commitment once both sides are padded with their buffers.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from .time_calculator import ensure_utc


@dataclass(frozen=True)
class BusyInterval:
    """An existing, non-cancelled event as seen by the conflict engine.

    Buffers are None when the event carries none of its own (no event type);
    the caller's defaults are used in that case.
    """

    start: datetime
    end: datetime
    event_id: Optional[str] = None
    buffer_before: Optional[int] = None
    buffer_after: Optional[int] = None

    def padded(self, default_before: int, default_after: int) -> tuple[datetime, datetime]:
        before = self.buffer_before if self.buffer_before is not None else default_before
        after = self.buffer_after if self.buffer_after is not None else default_after
        return (
            ensure_utc(self.start) - timedelta(minutes=before),
            ensure_utc(self.end) + timedelta(minutes=after),
        )


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap: [a) and [b) share at least one instant."""
    return start_a < end_b and end_a > start_b


def is_blocked(
    candidate_start: datetime,
    candidate_end: datetime,
    busy: Iterable[BusyInterval],
    buffer_before: int,
    buffer_after: int,
    exclude_event_id: Optional[str] = None,
) -> bool:
    """True when the buffered candidate intersects any buffered existing interval.

    The candidate is padded with the caller's buffers and every existing event
    with its own (or the caller's defaults), so the configured gap holds no
    matter which side contributes it.
    """
    padded_start = ensure_utc(candidate_start) - timedelta(minutes=buffer_before)
    padded_end = ensure_utc(candidate_end) + timedelta(minutes=buffer_after)

    for interval in busy:
        if exclude_event_id is not None and interval.event_id == exclude_event_id:
            continue
        existing_start, existing_end = interval.padded(buffer_before, buffer_after)
        if overlaps(padded_start, padded_end, existing_start, existing_end):
            return True
    return False


def busy_from_events(events) -> list[BusyInterval]:
    """Build busy intervals from Event rows, taking buffers from their event type."""
    intervals = []
    for e in events:
        event_type = getattr(e, "event_type", None)
        intervals.append(
            BusyInterval(
                start=ensure_utc(e.start_at),
                end=ensure_utc(e.end_at),
                event_id=e.id,
                buffer_before=event_type.buffer_before_minutes if event_type else None,
                buffer_after=event_type.buffer_after_minutes if event_type else None,
            )
        )
    return intervals
