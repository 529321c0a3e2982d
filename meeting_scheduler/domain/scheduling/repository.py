"""Scheduling repository - Database operations for availability, events and links"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session, joinedload

from ...models import User
from ...models_scheduling import (
    AvailabilityOverride,
    Event,
    EventAttendee,
    EventType,
    SchedulingLink,
    WeeklyAvailabilityRule,
)

ACTIVE_EVENT_STATUSES = ("scheduled",)


class SchedulingRepository:
    """Repository for scheduling database operations.

    Read methods never commit. Write methods used inside the booking unit of
    work only flush; the service commits once validation and writes are done.
    """

    # Weekly rules
    @staticmethod
    def get_weekly_rules(
        db: Session, owner_id: int, active_only: bool = False
    ) -> list[WeeklyAvailabilityRule]:
        query = db.query(WeeklyAvailabilityRule).filter(WeeklyAvailabilityRule.owner_id == owner_id)
        if active_only:
            query = query.filter(WeeklyAvailabilityRule.is_active.is_(True))
        return query.order_by(
            WeeklyAvailabilityRule.weekday, WeeklyAvailabilityRule.start_minutes
        ).all()

    @staticmethod
    def replace_weekly_rules(
        db: Session, owner_id: int, rules: list[dict]
    ) -> list[WeeklyAvailabilityRule]:
        """Replace all weekly rules for an owner in one transaction"""
        db.query(WeeklyAvailabilityRule).filter(
            WeeklyAvailabilityRule.owner_id == owner_id
        ).delete(synchronize_session=False)
        created = [WeeklyAvailabilityRule(owner_id=owner_id, **rule) for rule in rules]
        db.add_all(created)
        db.commit()
        return created

    # Overrides
    @staticmethod
    def get_overrides(
        db: Session,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[AvailabilityOverride]:
        """Overrides for an owner, optionally limited to dates in [start, end)"""
        query = db.query(AvailabilityOverride).filter(AvailabilityOverride.owner_id == owner_id)
        if start:
            query = query.filter(AvailabilityOverride.date >= start)
        if end:
            query = query.filter(AvailabilityOverride.date < end)
        return query.order_by(AvailabilityOverride.date).all()

    @staticmethod
    def create_overrides(db: Session, owner_id: int, items: list[dict]) -> list[AvailabilityOverride]:
        created = [AvailabilityOverride(owner_id=owner_id, **item) for item in items]
        db.add_all(created)
        db.commit()
        return created

    @staticmethod
    def get_override(db: Session, override_id: str, owner_id: int) -> Optional[AvailabilityOverride]:
        return (
            db.query(AvailabilityOverride)
            .filter(AvailabilityOverride.id == override_id, AvailabilityOverride.owner_id == owner_id)
            .first()
        )

    @staticmethod
    def delete_override(db: Session, override: AvailabilityOverride) -> None:
        db.delete(override)
        db.commit()

    # Event types
    @staticmethod
    def list_event_types(db: Session, owner_id: int) -> list[EventType]:
        return (
            db.query(EventType)
            .filter(EventType.owner_id == owner_id)
            .order_by(EventType.created_at)
            .all()
        )

    @staticmethod
    def get_event_type(
        db: Session, event_type_id: str, owner_id: Optional[int] = None
    ) -> Optional[EventType]:
        query = db.query(EventType).filter(EventType.id == event_type_id)
        if owner_id is not None:
            query = query.filter(EventType.owner_id == owner_id)
        return query.first()

    @staticmethod
    def create_event_type(db: Session, owner_id: int, **data) -> EventType:
        event_type = EventType(owner_id=owner_id, **data)
        db.add(event_type)
        db.commit()
        db.refresh(event_type)
        return event_type

    # Events
    @staticmethod
    def lock_owner(db: Session, owner_id: int) -> Optional[User]:
        """Row-lock the owner so concurrent writers on the same calendar serialize.

        Dialects without SELECT ... FOR UPDATE (SQLite) ignore the lock clause.
        """
        return db.query(User).filter(User.id == owner_id).with_for_update().first()

    @staticmethod
    def get_event(db: Session, event_id: str, owner_id: Optional[int] = None) -> Optional[Event]:
        query = db.query(Event).options(joinedload(Event.attendees)).filter(Event.id == event_id)
        if owner_id is not None:
            query = query.filter(Event.owner_id == owner_id)
        return query.first()

    @staticmethod
    def list_events(
        db: Session,
        owner_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Event]:
        query = db.query(Event).filter(Event.owner_id == owner_id)
        if start:
            query = query.filter(Event.start_at >= start)
        if end:
            query = query.filter(Event.start_at <= end)
        return query.order_by(Event.start_at).all()

    @staticmethod
    def get_active_events(
        db: Session,
        owner_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Event]:
        """Non-cancelled events of an owner, with event types for buffers.

        ``start``/``end`` keep only events that intersect [start, end).
        """
        query = (
            db.query(Event)
            .options(joinedload(Event.event_type))
            .filter(Event.owner_id == owner_id, Event.status.in_(ACTIVE_EVENT_STATUSES))
        )
        if start:
            query = query.filter(Event.end_at > start)
        if end:
            query = query.filter(Event.start_at < end)
        return query.order_by(Event.start_at).all()

    @staticmethod
    def add_event(db: Session, **data) -> Event:
        event = Event(**data)
        db.add(event)
        db.flush()
        return event

    @staticmethod
    def update_event(db: Session, event: Event, **updates) -> Event:
        for key, value in updates.items():
            setattr(event, key, value)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def mark_cancelled(db: Session, event_id: str) -> bool:
        """Conditional scheduled -> cancelled transition; False if already cancelled"""
        result = db.execute(
            update(Event)
            .where(Event.id == event_id, Event.status == "scheduled")
            .values(status="cancelled", updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def delete_event(db: Session, event: Event) -> None:
        # Attendees go with the event (delete-orphan cascade)
        db.delete(event)
        db.commit()

    # Attendees
    @staticmethod
    def list_attendees(db: Session, event_id: str) -> list[EventAttendee]:
        return (
            db.query(EventAttendee)
            .filter(EventAttendee.event_id == event_id)
            .order_by(EventAttendee.created_at)
            .all()
        )

    @staticmethod
    def get_attendee(db: Session, attendee_id: str, event_id: str) -> Optional[EventAttendee]:
        return (
            db.query(EventAttendee)
            .filter(EventAttendee.id == attendee_id, EventAttendee.event_id == event_id)
            .first()
        )

    @staticmethod
    def add_attendee(db: Session, event_id: str, **data) -> EventAttendee:
        attendee = EventAttendee(event_id=event_id, **data)
        db.add(attendee)
        db.flush()
        return attendee

    @staticmethod
    def delete_attendees(
        db: Session,
        event_id: str,
        attendee_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        query = db.query(EventAttendee).filter(EventAttendee.event_id == event_id)
        if attendee_id:
            query = query.filter(EventAttendee.id == attendee_id)
        if email:
            query = query.filter(EventAttendee.email == email)
        deleted_count = 0
        for attendee in query.all():
            db.delete(attendee)
            deleted_count += 1

        db.commit()
        return deleted_count

    @staticmethod
    def set_attendee_status(db: Session, attendee: EventAttendee, status: str) -> EventAttendee:
        attendee.status = status
        db.commit()
        db.refresh(attendee)
        return attendee

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    # Scheduling links
    @staticmethod
    def get_link_by_slug(db: Session, slug: str) -> Optional[SchedulingLink]:
        return db.query(SchedulingLink).filter(SchedulingLink.slug == slug).first()

    @staticmethod
    def slug_exists(db: Session, slug: str) -> bool:
        return db.query(SchedulingLink.id).filter(SchedulingLink.slug == slug).first() is not None

    @staticmethod
    def create_link(db: Session, owner_id: int, **data) -> SchedulingLink:
        link = SchedulingLink(owner_id=owner_id, **data)
        db.add(link)
        db.commit()
        db.refresh(link)
        return link

    @staticmethod
    def claim_link_use(db: Session, link_id: str, now: datetime) -> bool:
        """Atomically bump ``uses`` when the link is still usable.

        Single conditional UPDATE; returns False when the link was exhausted or
        expired by the time the statement ran.
        """
        result = db.execute(
            update(SchedulingLink)
            .where(
                SchedulingLink.id == link_id,
                or_(SchedulingLink.max_uses.is_(None), SchedulingLink.uses < SchedulingLink.max_uses),
                or_(SchedulingLink.expires_at.is_(None), SchedulingLink.expires_at > now),
            )
            .values(uses=SchedulingLink.uses + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
