"""Pytest fixtures for the meeting scheduler tests."""

import logging
import os
from datetime import datetime, timezone

# Must be set before the package reads its configuration
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SCHEDULER_TOKEN_SECRET", "test-rsvp-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.setdefault("FIREBASE_PROJECT_ID", "test-project")

import pytest
from sqlalchemy.orm import sessionmaker

from meeting_scheduler import models, models_scheduling  # noqa: F401
from meeting_scheduler.database import Base, build_engine
from meeting_scheduler.models import User
from meeting_scheduler.models_scheduling import (
    AvailabilityOverride,
    Event,
    EventType,
    SchedulingLink,
    WeeklyAvailabilityRule,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LA = "America/Los_Angeles"

# Sunday 2025-06-01 05:00 PDT; the next day is the Monday used across tests
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
MONDAY = "2025-06-02"


def at(value: str) -> datetime:
    """Aware UTC datetime from an ISO string ending in Z"""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class RecordingNotifier:
    """Stands in for SchedulingNotifier and records every trigger"""

    def __init__(self):
        self.calls = []

    def names(self) -> list:
        return [name for name, _ in self.calls]

    def booking_confirmed(self, event, attendee, owner=None, notes=None, tz_name=None):
        self.calls.append(("booking_confirmed", {"event": event.id, "to": attendee.email}))
        return 1

    def attendee_invited(self, event, attendee, organizer=None, tz_name=None):
        self.calls.append(("attendee_invited", {"event": event.id, "to": attendee.email}))
        return 1

    def reminders(self, event, attendees, organizer=None, tz_name=None):
        attendees = list(attendees)
        self.calls.append(("reminders", {"event": event.id, "count": len(attendees)}))
        return len(attendees)

    def event_rescheduled(self, event, attendees, previous_start=None, tz_name=None):
        self.calls.append(("event_rescheduled", {"event": event.id, "previous_start": previous_start}))
        return len(list(attendees))

    def event_cancelled(self, event, attendees, reason=None, tz_name=None):
        self.calls.append(("event_cancelled", {"event": event.id, "reason": reason}))
        return len(list(attendees))


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def owner(db):
    user = User(firebase_uid="owner-uid", email="owner@example.com", full_name="Olivia Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_owner(db):
    user = User(firebase_uid="other-uid", email="other@example.com", full_name="Other Owner")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def weekday_rules(db, owner):
    """Monday to Friday, 09:00-17:00 Los Angeles."""
    for weekday in range(1, 6):
        db.add(
            WeeklyAvailabilityRule(
                owner_id=owner.id,
                weekday=weekday,
                start_minutes=9 * 60,
                end_minutes=17 * 60,
                timezone=LA,
                is_active=True,
            )
        )
    db.commit()


@pytest.fixture
def event_type(db, owner):
    et = EventType(
        owner_id=owner.id,
        name="Discovery Call",
        duration_minutes=30,
        buffer_before_minutes=15,
        buffer_after_minutes=15,
        meeting_mode="video",
        meeting_link_template="https://meet.example.com/{event_id}",
    )
    db.add(et)
    db.commit()
    db.refresh(et)
    return et


@pytest.fixture
def make_link(db, owner, event_type):
    def _make(slug="intro-call", **kwargs):
        values = {
            "owner_id": owner.id,
            "event_type_id": event_type.id,
            "slug": slug,
            "timezone": LA,
        }
        values.update(kwargs)
        link = SchedulingLink(**values)
        db.add(link)
        db.commit()
        db.refresh(link)
        return link

    return _make


@pytest.fixture
def make_event(db, owner):
    def _make(start: str, end: str, **kwargs):
        values = {
            "owner_id": owner.id,
            "start_at": at(start),
            "end_at": at(end),
            "title": "Existing",
            "status": "scheduled",
        }
        values.update(kwargs)
        event = Event(**values)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    return _make


@pytest.fixture
def day_off(db, owner):
    def _make(day: str):
        override = AvailabilityOverride(
            owner_id=owner.id,
            date=datetime.fromisoformat(day).date(),
            is_available=False,
            timezone=LA,
        )
        db.add(override)
        db.commit()
        return override

    return _make


@pytest.fixture
def client(db, owner, notifier, clock):
    """HTTP client with the database, auth, notifier and clock overridden."""
    from fastapi.testclient import TestClient

    from meeting_scheduler.auth import get_current_user
    from meeting_scheduler.database import get_db
    from meeting_scheduler.domain.scheduling.router import get_clock, get_notifier
    from meeting_scheduler.main import app

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = lambda: owner
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
