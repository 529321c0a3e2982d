"""
Availability resolver.

Layers date-specific overrides over weekly recurring rules to produce the
bookable windows (minute-of-day ranges) for every calendar day in a range.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ... import config
from .exceptions import REASON_OVERRIDE_NOT_FOUND, NotFoundError
from .repository import SchedulingRepository
from .time_calculator import MINUTES_PER_DAY, get_zone, iter_dates, weekday_of_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Window:
    start_minutes: int
    end_minutes: int


@dataclass(frozen=True)
class WeeklyWindow:
    weekday: int
    start_minutes: int
    end_minutes: int


@dataclass(frozen=True)
class OverrideWindow:
    date: date
    is_available: bool
    start_minutes: Optional[int] = None
    end_minutes: Optional[int] = None


def windows_for_date(
    day: date,
    tz_name: str,
    weekly: Iterable[WeeklyWindow],
    overrides: Iterable[OverrideWindow],
) -> list[Window]:
    """Windows for a single day.

    Any override on the date replaces the weekly rules for that date entirely.
    Unavailable overrides contribute nothing; an available override without
    bounds means the whole day.
    """
    day_overrides = [o for o in overrides if o.date == day]
    if day_overrides:
        windows = []
        for o in day_overrides:
            if not o.is_available:
                continue
            if o.start_minutes is None or o.end_minutes is None:
                windows.append(Window(0, MINUTES_PER_DAY))
            else:
                windows.append(Window(o.start_minutes, o.end_minutes))
        return sorted(windows, key=lambda w: w.start_minutes)

    weekday = weekday_of_date(day, tz_name)
    return sorted(
        (Window(w.start_minutes, w.end_minutes) for w in weekly if w.weekday == weekday),
        key=lambda w: w.start_minutes,
    )


def resolve_windows(
    start: date,
    end: date,
    tz_name: str,
    weekly: Iterable[WeeklyWindow],
    overrides: Iterable[OverrideWindow],
) -> dict[date, list[Window]]:
    """Windows per day for the half-open range [start, end).

    Days without any window are left out of the result.
    """
    get_zone(tz_name)
    weekly = list(weekly)
    by_date = defaultdict(list)
    for o in overrides:
        by_date[o.date].append(o)

    resolved = {}
    for day in iter_dates(start, end):
        windows = windows_for_date(day, tz_name, weekly, by_date.get(day, []))
        windows = [w for w in windows if w.end_minutes > w.start_minutes]
        if windows:
            resolved[day] = windows
    return resolved


class AvailabilityService:
    """Loads an owner's rules and overrides and resolves bookable windows"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def owner_timezone(self, owner_id: int) -> str:
        rules = self.repo.get_weekly_rules(self.db, owner_id, active_only=True)
        return rules[0].timezone if rules else config.DEFAULT_TIMEZONE

    def weekly_windows(self, owner_id: int, custom_availability: Optional[list] = None):
        if custom_availability:
            return [
                WeeklyWindow(
                    weekday=int(w["weekday"]),
                    start_minutes=int(w["startMinutes"]),
                    end_minutes=int(w["endMinutes"]),
                )
                for w in custom_availability
            ]
        return [
            WeeklyWindow(r.weekday, r.start_minutes, r.end_minutes)
            for r in self.repo.get_weekly_rules(self.db, owner_id, active_only=True)
        ]

    def resolve(
        self,
        owner_id: int,
        start: date,
        end: date,
        tz_name: str,
        custom_availability: Optional[list] = None,
    ) -> dict[date, list[Window]]:
        overrides = [
            OverrideWindow(o.date, o.is_available, o.start_minutes, o.end_minutes)
            for o in self.repo.get_overrides(self.db, owner_id, start, end)
        ]
        windows = resolve_windows(
            start, end, tz_name, self.weekly_windows(owner_id, custom_availability), overrides
        )
        logger.debug(
            f"📅 Resolved {sum(len(w) for w in windows.values())} windows over "
            f"{len(windows)} days for owner {owner_id}"
        )
        return windows

    # Owner-managed rules and overrides

    def list_rules(self, owner_id: int) -> list:
        return self.repo.get_weekly_rules(self.db, owner_id)

    def replace_rules(self, owner_id: int, rules: list) -> list:
        """Replace every weekly rule of the owner (no partial edits)"""
        created = self.repo.replace_weekly_rules(
            self.db,
            owner_id,
            [
                {
                    "weekday": r.weekday,
                    "start_minutes": r.startMinutes,
                    "end_minutes": r.endMinutes,
                    "timezone": r.timezone,
                    "is_active": True,
                }
                for r in rules
            ],
        )
        logger.info(f"📅 Replaced weekly availability for owner {owner_id} ({len(created)} rules)")
        return created

    def list_overrides(self, owner_id: int, start: Optional[date] = None, end: Optional[date] = None) -> list:
        return self.repo.get_overrides(self.db, owner_id, start, end)

    def create_overrides(self, owner_id: int, items: list) -> list:
        default_tz = self.owner_timezone(owner_id)
        created = self.repo.create_overrides(
            self.db,
            owner_id,
            [
                {
                    "date": o.date,
                    "is_available": o.isAvailable,
                    "start_minutes": o.startMinutes if o.isAvailable else None,
                    "end_minutes": o.endMinutes if o.isAvailable else None,
                    "timezone": o.timezone or default_tz,
                }
                for o in items
            ],
        )
        logger.info(f"📅 Added {len(created)} availability overrides for owner {owner_id}")
        return created

    def delete_override(self, owner_id: int, override_id: str) -> None:
        override = self.repo.get_override(self.db, override_id, owner_id)
        if not override:
            raise NotFoundError("Override not found", reason=REASON_OVERRIDE_NOT_FOUND)
        self.repo.delete_override(self.db, override)
        logger.info(f"🗑️ Deleted availability override {override_id} for owner {owner_id}")
