"""Tests for weekly rule and override resolution"""

from datetime import date

import pytest

from meeting_scheduler.domain.scheduling.availability_service import (
    AvailabilityService,
    OverrideWindow,
    WeeklyWindow,
    Window,
    resolve_windows,
    windows_for_date,
)
from meeting_scheduler.domain.scheduling.exceptions import InvalidRequestError, NotFoundError
from meeting_scheduler.domain.scheduling.schemas import OverrideCreate, WeeklyRuleIn

LA = "America/Los_Angeles"
MONDAY = date(2025, 6, 2)
TUESDAY = date(2025, 6, 3)

WEEKLY = [
    WeeklyWindow(weekday=1, start_minutes=540, end_minutes=720),
    WeeklyWindow(weekday=1, start_minutes=780, end_minutes=1020),
    WeeklyWindow(weekday=2, start_minutes=600, end_minutes=660),
]


def test_weekly_rules_apply_on_matching_weekday():
    windows = windows_for_date(MONDAY, LA, WEEKLY, [])
    assert windows == [Window(540, 720), Window(780, 1020)]
    assert windows_for_date(TUESDAY, LA, WEEKLY, []) == [Window(600, 660)]
    # Sunday has no rule
    assert windows_for_date(date(2025, 6, 1), LA, WEEKLY, []) == []


def test_override_replaces_weekly_rules_for_the_date():
    overrides = [OverrideWindow(MONDAY, True, 1200, 1260)]
    assert windows_for_date(MONDAY, LA, WEEKLY, overrides) == [Window(1200, 1260)]


def test_unavailable_override_is_a_day_off():
    overrides = [OverrideWindow(MONDAY, False)]
    assert windows_for_date(MONDAY, LA, WEEKLY, overrides) == []


def test_available_override_without_bounds_is_all_day():
    overrides = [OverrideWindow(MONDAY, True)]
    assert windows_for_date(MONDAY, LA, WEEKLY, overrides) == [Window(0, 1440)]


def test_multiple_overrides_on_one_date_are_sorted():
    overrides = [
        OverrideWindow(MONDAY, True, 900, 960),
        OverrideWindow(MONDAY, False),
        OverrideWindow(MONDAY, True, 480, 540),
    ]
    assert windows_for_date(MONDAY, LA, WEEKLY, overrides) == [Window(480, 540), Window(900, 960)]


def test_resolve_windows_skips_empty_days_and_is_half_open():
    overrides = [OverrideWindow(TUESDAY, False)]
    resolved = resolve_windows(date(2025, 6, 1), date(2025, 6, 4), LA, WEEKLY, overrides)

    assert list(resolved) == [MONDAY]
    assert resolve_windows(MONDAY, MONDAY, LA, WEEKLY, []) == {}


def test_resolve_windows_rejects_unknown_timezone():
    with pytest.raises(InvalidRequestError):
        resolve_windows(MONDAY, TUESDAY, "Not/AZone", WEEKLY, [])


def test_service_replaces_rules_and_reads_timezone(db, owner):
    service = AvailabilityService(db)
    assert service.owner_timezone(owner.id) == "America/Los_Angeles"

    service.replace_rules(
        owner.id,
        [
            WeeklyRuleIn(weekday=1, startMinutes=540, endMinutes=1020, timezone="Europe/Berlin"),
            WeeklyRuleIn(weekday=3, startMinutes=540, endMinutes=720, timezone="Europe/Berlin"),
        ],
    )
    assert len(service.list_rules(owner.id)) == 2
    assert service.owner_timezone(owner.id) == "Europe/Berlin"

    # A second save replaces, it does not append
    service.replace_rules(
        owner.id, [WeeklyRuleIn(weekday=5, startMinutes=600, endMinutes=660, timezone="Europe/Berlin")]
    )
    rules = service.list_rules(owner.id)
    assert [r.weekday for r in rules] == [5]


def test_service_overrides_lifecycle(db, owner, weekday_rules):
    service = AvailabilityService(db)
    created = service.create_overrides(
        owner.id,
        [
            OverrideCreate(date=MONDAY, isAvailable=False),
            OverrideCreate(date=TUESDAY, isAvailable=True, startMinutes=600, endMinutes=720),
        ],
    )
    assert len(created) == 2
    assert created[0].timezone == LA

    windows = service.resolve(owner.id, MONDAY, date(2025, 6, 5), LA)
    assert MONDAY not in windows
    assert windows[TUESDAY] == [Window(600, 720)]
    assert windows[date(2025, 6, 4)] == [Window(540, 1020)]

    service.delete_override(owner.id, created[0].id)
    assert len(service.list_overrides(owner.id)) == 1

    with pytest.raises(NotFoundError):
        service.delete_override(owner.id, created[0].id)


def test_link_custom_availability_replaces_weekly_rules(db, owner, weekday_rules):
    service = AvailabilityService(db)
    custom = [{"weekday": 0, "startMinutes": 600, "endMinutes": 660}]

    windows = service.resolve(owner.id, date(2025, 6, 1), date(2025, 6, 3), LA, custom)

    assert list(windows) == [date(2025, 6, 1)]
