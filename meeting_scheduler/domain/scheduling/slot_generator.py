"""
Slot generator.

Walks each day's bookable windows in fixed steps from the earliest allowed
start and yields the discrete start/end pairs that satisfy lead time, horizon
and the conflict engine.
The output is a pure function of its inputs and ``now``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from itertools import islice
from typing import Callable, Iterable, Iterator, Optional

from sqlalchemy.orm import Session

from .availability_service import AvailabilityService, Window
from .conflicts import BusyInterval, busy_from_events, is_blocked
from .exceptions import REASON_EVENT_TYPE_NOT_FOUND, InvalidRequestError, NotFoundError
from .links_service import LinkService
from .policy import SlotPolicy, build_policy
from .repository import SchedulingRepository
from .time_calculator import (
    get_zone,
    local_midnight_instant,
    parse_date_key,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime


@dataclass
class SlotPage:
    slots: list
    truncated: bool = False


def window_bounds(
    day: date, window: Window, tz_name: str, policy: SlotPolicy, now: datetime
) -> tuple[datetime, datetime]:
    """(earliest start, latest start) for one window.

    Window edges are offsets from the instant of local midnight on ``day``.
    """
    midnight = local_midnight_instant(day.isoformat(), tz_name)
    window_start = midnight + timedelta(minutes=window.start_minutes)
    window_end = midnight + timedelta(minutes=window.end_minutes)

    edge_before = policy.buffer_before_minutes if policy.pad_window_edges else 0
    edge_after = policy.buffer_after_minutes if policy.pad_window_edges else 0

    earliest = max(window_start + timedelta(minutes=edge_before), policy.earliest_allowed(now))
    latest = window_end - timedelta(minutes=policy.duration_minutes + edge_after)
    latest = min(latest, policy.horizon_end(now))
    return earliest, latest


def iter_slots(
    windows_by_date: dict,
    tz_name: str,
    busy: Iterable[BusyInterval],
    policy: SlotPolicy,
    now: datetime,
) -> Iterator[Slot]:
    busy = list(busy)
    step = timedelta(minutes=policy.step_minutes)
    duration = timedelta(minutes=policy.duration_minutes)

    for day in sorted(windows_by_date):
        emitted = set()
        for window in windows_by_date[day]:
            earliest, latest = window_bounds(day, window, tz_name, policy, now)
            if earliest > latest:
                continue

            t = earliest
            while t <= latest:
                if t not in emitted and not is_blocked(
                    t,
                    t + duration,
                    busy,
                    policy.buffer_before_minutes,
                    policy.buffer_after_minutes,
                ):
                    emitted.add(t)
                    yield Slot(start=t, end=t + duration)
                t += step


def generate_slots(
    windows_by_date: dict,
    tz_name: str,
    busy: Iterable[BusyInterval],
    policy: SlotPolicy,
    now: datetime,
) -> SlotPage:
    """Ordered slots, capped at ``policy.max_slots``.

    When the cap is hit generation stops early and the page is marked truncated.
    """
    slots = iter_slots(windows_by_date, tz_name, busy, policy, now)
    collected = list(islice(slots, policy.max_slots + 1))
    truncated = len(collected) > policy.max_slots
    return SlotPage(slots=collected[: policy.max_slots], truncated=truncated)


class SlotService:
    """Read path behind the availability endpoint (owner calendar and public links)"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.repo = SchedulingRepository()
        self.availability = AvailabilityService(db)
        self.links = LinkService(db)
        self.clock = clock

    def available_slots(
        self,
        owner_id: Optional[int],
        start_date: str,
        end_date: str,
        event_type_id: Optional[str] = None,
        slug: Optional[str] = None,
        tz_name: Optional[str] = None,
    ) -> tuple[SlotPage, str]:
        """Bookable slots for the inclusive date range [start_date, end_date].

        Precedence for policy: config defaults, then the event type, then the
        scheduling link. Timezone: owner's rules, then the link, then ``tz_name``.
        """
        now = self.clock()
        start = parse_date_key(start_date)
        end = parse_date_key(end_date)
        if end < start:
            raise InvalidRequestError("endDate must not be before startDate")
        if tz_name:
            get_zone(tz_name)

        link = None
        custom_availability = None
        if slug:
            link = self.links.get_link(slug)
            self.links.ensure_usable(link, now)
            owner_id = link.owner_id
            event_type_id = event_type_id or link.event_type_id
            custom_availability = link.custom_availability
        elif owner_id is None:
            raise InvalidRequestError("userId or slug is required")

        event_type = None
        if event_type_id:
            event_type = self.repo.get_event_type(self.db, event_type_id, owner_id)
            if not event_type:
                raise NotFoundError("Event type not found", reason=REASON_EVENT_TYPE_NOT_FOUND)

        policy = build_policy(event_type, link)
        # Rule minutes are read as wall-clock times in the chosen zone, so a link or
        # query timezone shifts the owner's hours with it
        tz = self.availability.owner_timezone(owner_id)
        if link is not None and link.timezone:
            tz = link.timezone
        if tz_name:
            tz = tz_name

        # Clamp the range to the booking horizon (as a local calendar date)
        last_day = policy.horizon_end(now).astimezone(get_zone(tz)).date()
        range_end = min(end, last_day) + timedelta(days=1)
        if range_end <= start:
            return SlotPage(slots=[]), tz

        windows = self.availability.resolve(owner_id, start, range_end, tz, custom_availability)
        busy_from = local_midnight_instant(start.isoformat(), tz) - timedelta(days=1)
        busy_to = local_midnight_instant(range_end.isoformat(), tz) + timedelta(days=1)
        busy = busy_from_events(self.repo.get_active_events(self.db, owner_id, busy_from, busy_to))

        page = generate_slots(windows, tz, busy, policy, now)
        if page.truncated:
            logger.info(f"✂️ Availability for owner {owner_id} truncated at {policy.max_slots} slots")
        return page, tz
