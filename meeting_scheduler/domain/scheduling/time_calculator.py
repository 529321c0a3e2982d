"""
Time-zone arithmetic for scheduling.

Converts calendar days and minute-of-day offsets in an IANA zone into absolute
UTC instants. Every datetime returned here is timezone-aware UTC.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import InvalidRequestError

UTC = timezone.utc
MINUTES_PER_DAY = 24 * 60

# Probe order used to find a UTC instant that falls on the requested local date
_PROBE_DAYS = (0, -1, 1, -2, 2)


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name, failing fast on anything unknown."""
    if not tz_name or not isinstance(tz_name, str):
        raise InvalidRequestError("Timezone is required", reason="invalid_timezone")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidRequestError(f"Unknown timezone: {tz_name}", reason="invalid_timezone") from e


def parse_date_key(date_key: str) -> date:
    try:
        return date.fromisoformat(date_key)
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(
            f"Invalid date '{date_key}'. Expected YYYY-MM-DD", reason="invalid_request"
        ) from e


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def local_midnight_instant(date_key: str, tz_name: str) -> datetime:
    """Absolute instant of 00:00 local time on ``date_key`` in ``tz_name``.

    A guess at local noon is formatted through the zone; when the local calendar
    date differs (extreme offsets) the guess is moved in 24h steps until it lands
    on the requested day. Midnight is then derived from the zone's offset on that
    day, which keeps the result correct on DST transition days.
    """
    zone = get_zone(tz_name)
    target = parse_date_key(date_key)
    guess = datetime(target.year, target.month, target.day, 12, tzinfo=UTC)

    resolved = guess
    for delta in _PROBE_DAYS:
        probe = guess + timedelta(days=delta)
        if probe.astimezone(zone).date() == target:
            resolved = probe
            break

    local_day = resolved.astimezone(zone).date()
    local_midnight = datetime.combine(local_day, time.min, tzinfo=zone)
    offset = local_midnight.utcoffset()
    return datetime(local_day.year, local_day.month, local_day.day, tzinfo=UTC) - offset


def weekday_in_zone(instant: datetime, tz_name: str) -> int:
    """Weekday of ``instant`` as seen in ``tz_name``: 0=Sunday ... 6=Saturday."""
    local = ensure_utc(instant).astimezone(get_zone(tz_name))
    return (local.weekday() + 1) % 7


def weekday_of_date(day: date, tz_name: str) -> int:
    return weekday_in_zone(local_midnight_instant(day.isoformat(), tz_name), tz_name)


def iter_dates(start: date, end: date):
    """Calendar days in the half-open range [start, end)."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into aware UTC. Offset-less values are taken as UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (TypeError, ValueError) as e:
        raise InvalidRequestError(
            f"Invalid timestamp '{value}'. Expected ISO-8601", reason="invalid_timestamp"
        ) from e
    return ensure_utc(parsed)


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_local(value: datetime, tz_name: str) -> str:
    """Human readable wall-clock time, e.g. 'Monday, March 03, 2025 at 10:00 AM PST'"""
    local = ensure_utc(value).astimezone(get_zone(tz_name))
    return local.strftime("%A, %B %d, %Y at %I:%M %p %Z")
