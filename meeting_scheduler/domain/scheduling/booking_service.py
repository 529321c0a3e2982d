"""
Booking engine - creates, moves and cancels events, and manages attendees.

Every write that can double-book re-reads the owner's events and re-runs the
conflict check inside the same unit of work as the insert/update, serialized
per owner. Notifications go out only after the commit and never fail the
operation that triggered them.
"""

import logging
import secrets
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ... import config
from ...models import User, generate_public_id
from ...models_scheduling import Event, EventAttendee, EventType
from .conflicts import busy_from_events, is_blocked
from .exceptions import (
    REASON_ATTENDEE_NOT_FOUND,
    REASON_EVENT_CANCELLED,
    REASON_EVENT_NOT_FOUND,
    REASON_EVENT_TYPE_NOT_FOUND,
    REASON_INVALID_TOKEN,
    InvalidRequestError,
    InvalidStateError,
    NotFoundError,
    SlotUnavailableError,
    UnauthorizedError,
)
from .links_service import LinkService
from .policy import SlotPolicy, build_policy
from .repository import SchedulingRepository
from .schemas import AttendeeCreate, BookFromLinkRequest, EventCreate, EventTypeCreate, EventUpdate
from .time_calculator import ensure_utc, utc_now
from .token_service import RsvpTokenService

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Meeting"
MIN_RESCHEDULE_DURATION_MINUTES = 5

# owner id -> [lock, number of writers holding or waiting on it]
_owner_locks: dict[int, list] = {}
_owner_locks_guard = threading.Lock()


@contextmanager
def _owner_lock(owner_id: int):
    with _owner_locks_guard:
        entry = _owner_locks.setdefault(owner_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _owner_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _owner_locks[owner_id]


@contextmanager
def owner_write_guard(db: Session, owner_id: int):
    """Serialize validate+write for one owner's calendar.

    In-process mutex for this worker, plus a row lock on the owner for other
    processes sharing the database. The mutex only contends between threads
    (threadpool handlers, worker jobs); calls made from async handlers already
    run one at a time on the event loop.
    """
    with _owner_lock(owner_id):
        SchedulingRepository.lock_owner(db, owner_id)
        yield


def confirmation_code() -> str:
    return secrets.token_hex(4)


def render_meeting_link(template: Optional[str], event_id: str) -> Optional[str]:
    if not template:
        return None
    return template.replace("{event_id}", event_id)


class BookingService:
    """Service layer for event types, events and public bookings"""

    def __init__(self, db: Session, notifier=None, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.repo = SchedulingRepository()
        self.links = LinkService(db)
        self.notifier = notifier
        self.clock = clock

    # ------------------------------------------------------------------
    # Event types
    # ------------------------------------------------------------------

    def list_event_types(self, user: User) -> list[EventType]:
        return self.repo.list_event_types(self.db, user.id)

    def create_event_type(self, data: EventTypeCreate, user: User) -> EventType:
        event_type = self.repo.create_event_type(
            self.db,
            user.id,
            name=data.name,
            duration_minutes=data.durationMinutes,
            buffer_before_minutes=data.bufferBeforeMinutes,
            buffer_after_minutes=data.bufferAfterMinutes,
            meeting_mode=data.meetingMode,
            meeting_link_template=str(data.meetingLinkTemplate) if data.meetingLinkTemplate else None,
            description=data.description,
            is_active=True,
        )
        logger.info(f"✅ Event type '{event_type.name}' created for user {user.id}")
        return event_type

    def _get_event_type(self, event_type_id: str, owner_id: int) -> EventType:
        event_type = self.repo.get_event_type(self.db, event_type_id, owner_id)
        if not event_type:
            raise NotFoundError("Event type not found", reason=REASON_EVENT_TYPE_NOT_FOUND)
        return event_type

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_events(
        self, user: User, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[Event]:
        return self.repo.list_events(
            self.db,
            user.id,
            ensure_utc(start) if start else None,
            ensure_utc(end) if end else None,
        )

    def get_event(self, event_id: str, user: User) -> Event:
        """Owner-scoped lookup; other owners' events look like missing ones"""
        event = self.repo.get_event(self.db, event_id, user.id)
        if not event:
            raise NotFoundError("Event not found", reason=REASON_EVENT_NOT_FOUND)
        return event

    # ------------------------------------------------------------------
    # Conflict check (must run inside owner_write_guard)
    # ------------------------------------------------------------------

    def _ensure_free(
        self,
        owner_id: int,
        start: datetime,
        end: datetime,
        policy: SlotPolicy,
        exclude_event_id: Optional[str] = None,
    ) -> None:
        # Re-read current state; a slot shown earlier may have been taken since
        window_from = start - timedelta(days=1)
        window_to = end + timedelta(days=1)
        busy = busy_from_events(self.repo.get_active_events(self.db, owner_id, window_from, window_to))
        if is_blocked(
            start,
            end,
            busy,
            policy.buffer_before_minutes,
            policy.buffer_after_minutes,
            exclude_event_id=exclude_event_id,
        ):
            logger.warning(f"⚠️ Slot {start.isoformat()} conflicts with an existing event for owner {owner_id}")
            raise SlotUnavailableError("Selected time conflicts with another event")

    # ------------------------------------------------------------------
    # Owner writes
    # ------------------------------------------------------------------

    def create_event(self, data: EventCreate, user: User) -> Event:
        """Owner-created event; conflict-checked, not bound by lead time or horizon"""
        event_type = self._get_event_type(data.typeId, user.id) if data.typeId else None
        policy = build_policy(event_type)

        start = ensure_utc(data.startAt)
        if data.endAt is not None:
            end = ensure_utc(data.endAt)
        else:
            duration = data.durationMinutes or (
                event_type.duration_minutes if event_type else config.DEFAULT_DURATION_MINUTES
            )
            end = start + timedelta(minutes=duration)
        if end <= start:
            raise InvalidRequestError("endAt must be after startAt")

        event_id = generate_public_id()
        with owner_write_guard(self.db, user.id):
            try:
                self._ensure_free(user.id, start, end, policy)
                event = self.repo.add_event(
                    self.db,
                    id=event_id,
                    owner_id=user.id,
                    type_id=event_type.id if event_type else None,
                    contact_id=data.contactId,
                    lead_id=data.leadId,
                    start_at=start,
                    end_at=end,
                    title=data.title or (event_type.name if event_type else DEFAULT_TITLE),
                    description=data.description,
                    location=data.location,
                    meeting_mode=data.meetingMode or (event_type.meeting_mode if event_type else None),
                    meeting_link=render_meeting_link(
                        event_type.meeting_link_template if event_type else None, event_id
                    ),
                    status="scheduled",
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(event)
        logger.info(f"📅 Event {event.id} created for user {user.id} at {start.isoformat()}")
        return event

    def update_event(self, event_id: str, data: EventUpdate, user: User) -> list[str]:
        """Apply only the fields present in the request; returns their names"""
        event = self.get_event(event_id, user)

        field_map = {
            "title": "title",
            "description": "description",
            "location": "location",
            "meetingMode": "meeting_mode",
        }
        updates = {}
        for field_name in data.model_fields_set:
            column = field_map.get(field_name)
            if column:
                updates[column] = getattr(data, field_name)
        if not updates:
            raise InvalidRequestError("No fields to update")
        if "title" in updates and not updates["title"]:
            updates["title"] = DEFAULT_TITLE

        self.repo.update_event(self.db, event, **updates)
        return [name for name in field_map if field_map[name] in updates]

    def reschedule(self, event_id: str, start_at: datetime, user: User) -> Event:
        """Move an event, keeping its duration; lead time, horizon and conflicts re-checked"""
        now = self.clock()
        event = self.get_event(event_id, user)
        if event.status == "cancelled":
            raise InvalidStateError("Cancelled events cannot be rescheduled", reason=REASON_EVENT_CANCELLED)

        policy = build_policy(event.event_type)
        new_start = ensure_utc(start_at)
        policy.check_start(new_start, now)

        duration_minutes = max(
            MIN_RESCHEDULE_DURATION_MINUTES,
            int((ensure_utc(event.end_at) - ensure_utc(event.start_at)).total_seconds() // 60),
        )
        new_end = new_start + timedelta(minutes=duration_minutes)
        previous_start = event.start_at

        with owner_write_guard(self.db, user.id):
            try:
                self.db.refresh(event)
                if event.status == "cancelled":
                    raise InvalidStateError(
                        "Cancelled events cannot be rescheduled", reason=REASON_EVENT_CANCELLED
                    )
                self._ensure_free(user.id, new_start, new_end, policy, exclude_event_id=event.id)
                event.start_at = new_start
                event.end_at = new_end
                event.sequence = (event.sequence or 0) + 1
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(event)
        logger.info(f"🔁 Event {event.id} rescheduled to {new_start.isoformat()}")

        if self.notifier:
            self.notifier.event_rescheduled(event, event.attendees, previous_start=previous_start)
        return event

    def cancel(self, event_id: str, user: User, reason: Optional[str] = None) -> bool:
        """Idempotent cancel. Returns True only when this call changed the status."""
        event = self.get_event(event_id, user)
        changed = self.repo.mark_cancelled(self.db, event.id)
        if not changed:
            logger.info(f"ℹ️ Event {event.id} already cancelled")
            return False

        self.db.refresh(event)
        logger.info(f"🚫 Event {event.id} cancelled by user {user.id}")
        if self.notifier:
            self.notifier.event_cancelled(event, event.attendees, reason=reason)
        return True

    def delete_event(self, event_id: str, user: User) -> None:
        event = self.get_event(event_id, user)
        self.repo.delete_event(self.db, event)
        logger.info(f"🗑️ Event {event_id} deleted by user {user.id}")

    # ------------------------------------------------------------------
    # Public booking through a scheduling link
    # ------------------------------------------------------------------

    def book_from_link(self, data: BookFromLinkRequest) -> tuple[Event, str]:
        """Self-service booking.

        Checks run in order: link exists, not expired, uses remaining, lead time,
        horizon, then conflicts against freshly read events. The link use is
        claimed with a conditional update in the same transaction as the insert.
        """
        now = self.clock()
        link = self.links.get_link(data.slug)
        self.links.ensure_usable(link, now)

        policy = self.links.policy_for(link)
        start = ensure_utc(data.startAt)
        policy.check_start(start, now)
        end = start + timedelta(minutes=policy.duration_minutes)

        event_type = link.event_type
        owner_id = link.owner_id
        event_id = generate_public_id()

        with owner_write_guard(self.db, owner_id):
            try:
                self._ensure_free(owner_id, start, end, policy)
                event = self.repo.add_event(
                    self.db,
                    id=event_id,
                    owner_id=owner_id,
                    type_id=link.event_type_id,
                    contact_id=data.contactId,
                    lead_id=data.leadId,
                    start_at=start,
                    end_at=end,
                    title=event_type.name if event_type else DEFAULT_TITLE,
                    description=data.notes,
                    meeting_mode=(
                        data.meetingMode
                        or link.meeting_mode
                        or (event_type.meeting_mode if event_type else None)
                    ),
                    meeting_link=render_meeting_link(
                        event_type.meeting_link_template if event_type else None, event_id
                    ),
                    status="scheduled",
                )
                attendee = self.repo.add_attendee(
                    self.db,
                    event.id,
                    email=data.attendee.email,
                    name=data.attendee.name,
                    phone=data.attendee.phone,
                    role="attendee",
                    status="accepted",
                )
                self.links.claim_use(link, now)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(event)
        logger.info(f"✅ Booking {event.id} via link '{link.slug}' for owner {owner_id} at {start.isoformat()}")

        if self.notifier:
            owner = self.repo.get_user(self.db, owner_id)
            self.notifier.booking_confirmed(
                event, attendee, owner=owner, notes=data.notes, tz_name=link.timezone
            )
        return event, confirmation_code()


class AttendeeService:
    """Attendee management and signed RSVP handling"""

    def __init__(self, db: Session, notifier=None, token_service: Optional[RsvpTokenService] = None):
        self.db = db
        self.repo = SchedulingRepository()
        self.notifier = notifier
        self.tokens = token_service or RsvpTokenService()

    def _get_event(self, event_id: str, user: User) -> Event:
        event = self.repo.get_event(self.db, event_id, user.id)
        if not event:
            raise NotFoundError("Event not found", reason=REASON_EVENT_NOT_FOUND)
        return event

    def list_attendees(self, event_id: str, user: User) -> list[EventAttendee]:
        self._get_event(event_id, user)
        return self.repo.list_attendees(self.db, event_id)

    def add_attendee(self, event_id: str, data: AttendeeCreate, user: User) -> EventAttendee:
        """Invite someone; they start as pending and receive an ICS request with RSVP links"""
        event = self._get_event(event_id, user)
        if event.status == "cancelled":
            raise InvalidStateError("Cannot invite attendees to a cancelled event", reason=REASON_EVENT_CANCELLED)

        attendee = self.repo.add_attendee(
            self.db,
            event.id,
            email=data.email,
            name=data.name,
            role=data.role,
            status="pending",
        )
        self.db.commit()
        self.db.refresh(attendee)
        self.db.refresh(event)
        logger.info(f"👤 Attendee {attendee.email} invited to event {event.id}")

        if self.notifier:
            self.notifier.attendee_invited(event, attendee, organizer=user)
        return attendee

    def remove_attendee(
        self,
        event_id: str,
        user: User,
        attendee_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        """Hard delete by id or by email; no notification is sent"""
        if not attendee_id and not email:
            raise InvalidRequestError("attendee id or email is required")
        event = self._get_event(event_id, user)
        if attendee_id and not self.repo.get_attendee(self.db, attendee_id, event.id):
            raise NotFoundError("Attendee not found", reason=REASON_ATTENDEE_NOT_FOUND)

        deleted = self.repo.delete_attendees(
            self.db, event.id, attendee_id=attendee_id, email=email.strip().lower() if email else None
        )
        logger.info(f"🗑️ Removed {deleted} attendee(s) from event {event.id}")
        return deleted

    def rsvp(self, event_id: str, attendee_id: str, status: str, token: str) -> EventAttendee:
        """Unauthenticated RSVP from an emailed link. Only the status changes."""
        if not self.tokens.verify(attendee_id, event_id, token):
            logger.warning(f"⚠️ Rejected RSVP token for attendee {attendee_id}")
            raise UnauthorizedError("Invalid or expired RSVP token", reason=REASON_INVALID_TOKEN)
        if status not in ("accepted", "declined", "tentative"):
            raise InvalidRequestError("Invalid RSVP status")

        attendee = self.repo.get_attendee(self.db, attendee_id, event_id)
        if not attendee:
            raise NotFoundError("Attendee not found", reason=REASON_ATTENDEE_NOT_FOUND)

        attendee = self.repo.set_attendee_status(self.db, attendee, status)
        logger.info(f"✅ RSVP recorded for attendee {attendee_id}: {status}")
        return attendee

    def send_reminders(self, event_id: str, user: User) -> int:
        """Resend the invite (with RSVP links) to every attendee; returns messages queued"""
        event = self._get_event(event_id, user)
        if event.status == "cancelled":
            raise InvalidStateError("Cannot send reminders for a cancelled event", reason=REASON_EVENT_CANCELLED)
        attendees = self.repo.list_attendees(self.db, event.id)
        if not attendees or not self.notifier:
            return 0
        sent = self.notifier.reminders(event, attendees, organizer=user)
        logger.info(f"📧 Queued {sent} reminder(s) for event {event.id}")
        return sent
