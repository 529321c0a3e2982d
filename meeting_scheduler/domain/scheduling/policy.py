"""Booking policy: duration, buffers, lead time and horizon for one booking context"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ... import config
from .exceptions import REASON_HORIZON, REASON_LEAD_TIME, PolicyViolationError
from .time_calculator import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotPolicy:
    duration_minutes: int = config.DEFAULT_DURATION_MINUTES
    buffer_before_minutes: int = config.DEFAULT_BUFFER_BEFORE_MINUTES
    buffer_after_minutes: int = config.DEFAULT_BUFFER_AFTER_MINUTES
    min_lead_minutes: int = config.DEFAULT_MIN_LEAD_MINUTES
    max_horizon_days: int = config.DEFAULT_MAX_HORIZON_DAYS
    step_minutes: int = config.SLOT_STEP_MINUTES
    max_slots: int = config.MAX_SLOTS
    # Require the buffers themselves to fit inside the window edges
    pad_window_edges: bool = config.PAD_WINDOW_EDGES

    def earliest_allowed(self, now: datetime) -> datetime:
        return ensure_utc(now) + timedelta(minutes=self.min_lead_minutes)

    def horizon_end(self, now: datetime) -> datetime:
        return ensure_utc(now) + timedelta(days=self.max_horizon_days)

    def check_start(self, start: datetime, now: datetime) -> None:
        """Reject a start that is too soon or too far out, relative to one ``now``"""
        start = ensure_utc(start)
        if start < self.earliest_allowed(now):
            logger.warning(f"⚠️ Start {start.isoformat()} violates {self.min_lead_minutes}m lead time")
            raise PolicyViolationError(
                f"Start time must be at least {self.min_lead_minutes} minutes in the future",
                reason=REASON_LEAD_TIME,
            )
        if start > self.horizon_end(now):
            logger.warning(f"⚠️ Start {start.isoformat()} is beyond the {self.max_horizon_days}d horizon")
            raise PolicyViolationError(
                f"Start time must be within {self.max_horizon_days} days",
                reason=REASON_HORIZON,
            )


def build_policy(event_type=None, link=None, **overrides) -> SlotPolicy:
    """Defaults, then the event type's duration/buffers, then the link's lead/horizon"""
    values = {}
    if event_type is not None:
        values["duration_minutes"] = event_type.duration_minutes or config.DEFAULT_DURATION_MINUTES
        if event_type.buffer_before_minutes is not None:
            values["buffer_before_minutes"] = event_type.buffer_before_minutes
        if event_type.buffer_after_minutes is not None:
            values["buffer_after_minutes"] = event_type.buffer_after_minutes
    if link is not None:
        if link.min_lead_minutes is not None:
            values["min_lead_minutes"] = link.min_lead_minutes
        if link.max_horizon_days is not None:
            values["max_horizon_days"] = link.max_horizon_days
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SlotPolicy(**values)
