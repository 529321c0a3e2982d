"""Shared validation utilities"""

import re
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MINUTES_PER_DAY = 24 * 60
SLUG_MIN_LENGTH = 6
SLUG_MAX_LENGTH = 64


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a free-form phone number.

    Keeps a leading "+" and the digits; anything between 7 and 15 digits is
    accepted (E.164 upper bound).

    Raises:
        ValueError: If the number has too few or too many digits
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)
    if not 7 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 7 and 15 digits")

    return f"+{digits}" if phone.strip().startswith("+") else digits


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_slug(slug: Optional[str]) -> Optional[str]:
    """
    Validate a public scheduling-link slug.

    Returns:
        Lowercase, stripped slug

    Raises:
        ValueError: If the slug is too short, too long or has unsupported characters
    """
    if slug is None:
        return slug

    slug = slug.strip().lower()
    if len(slug) < SLUG_MIN_LENGTH:
        raise ValueError(f"Slug must be at least {SLUG_MIN_LENGTH} characters")
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValueError(f"Slug must be at most {SLUG_MAX_LENGTH} characters")
    if not re.match(r"^[a-z0-9][a-z0-9_-]*$", slug):
        raise ValueError("Slug may only contain letters, digits, '-' and '_'")

    return slug


def validate_minutes_of_day(minutes: Optional[int]) -> Optional[int]:
    """Minutes since local midnight, 0..1440 inclusive (1440 = end of day)"""
    if minutes is None:
        return minutes
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"Minutes of day must be between 0 and {MINUTES_PER_DAY}")
    return minutes


def validate_weekday(weekday: int) -> int:
    """Weekday index, 0=Sunday ... 6=Saturday"""
    if not 0 <= weekday <= 6:
        raise ValueError("Weekday must be between 0 (Sunday) and 6 (Saturday)")
    return weekday


def validate_timezone(tz_name: Optional[str]) -> Optional[str]:
    """IANA timezone name (e.g. America/Los_Angeles)"""
    if tz_name is None:
        return tz_name

    tz_name = tz_name.strip()
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e
    return tz_name
