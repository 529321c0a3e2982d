from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class WeeklyAvailabilityRule(Base):
    __tablename__ = "scheduler_weekly_rules"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0=Sunday, 1=Monday, ..., 6=Saturday
    start_minutes = Column(Integer, nullable=False)  # minutes since local midnight
    end_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64), nullable=False, default="America/Los_Angeles")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="availability_rules")


class AvailabilityOverride(Base):
    __tablename__ = "scheduler_overrides"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)  # calendar day in the override's timezone
    is_available = Column(Boolean, nullable=False)  # false = day off
    start_minutes = Column(Integer, nullable=True)  # NULL with is_available=true means all day
    end_minutes = Column(Integer, nullable=True)
    timezone = Column(String(64), nullable=False, default="America/Los_Angeles")
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("ix_scheduler_overrides_owner_date", "owner_id", "date"),)


class EventType(Base):
    __tablename__ = "scheduler_event_types"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)  # e.g., "Discovery Call"
    duration_minutes = Column(Integer, nullable=False, default=30)
    buffer_before_minutes = Column(Integer, nullable=False, default=15)
    buffer_after_minutes = Column(Integer, nullable=False, default=15)
    meeting_mode = Column(String(20), nullable=True)  # in_person, phone, video
    meeting_link_template = Column(String(500), nullable=True)  # supports {event_id}
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="event_types")


class Event(Base):
    __tablename__ = "scheduler_events"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type_id = Column(String(36), ForeignKey("scheduler_event_types.id"), nullable=True)
    contact_id = Column(String(64), nullable=True)
    lead_id = Column(String(64), nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
    end_at = Column(DateTime(timezone=True), nullable=False)
    title = Column(String(255), nullable=False, default="Meeting")
    description = Column(Text, nullable=True)
    location = Column(String(500), nullable=True)
    meeting_mode = Column(String(20), nullable=True)
    meeting_link = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default="scheduled")  # scheduled, cancelled
    # Bumped on every reschedule so calendar clients replace the previous invite
    sequence = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    event_type = relationship("EventType")
    attendees = relationship(
        "EventAttendee", back_populates="event", cascade="all, delete-orphan"
    )


class EventAttendee(Base):
    __tablename__ = "scheduler_event_attendees"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    event_id = Column(String(36), ForeignKey("scheduler_events.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="attendee")  # organizer, attendee, optional
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted, declined, tentative
    created_at = Column(DateTime, server_default=func.now())

    event = relationship("Event", back_populates="attendees")


class SchedulingLink(Base):
    __tablename__ = "scheduler_links"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_type_id = Column(String(36), ForeignKey("scheduler_event_types.id"), nullable=True)
    slug = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)  # NULL = unlimited
    uses = Column(Integer, nullable=False, default=0)
    timezone = Column(String(64), nullable=False, default="America/Los_Angeles")
    meeting_mode = Column(String(20), nullable=True)
    min_lead_minutes = Column(Integer, nullable=True)
    max_horizon_days = Column(Integer, nullable=True)
    custom_availability = Column(JSON, nullable=True)  # [{weekday, startMinutes, endMinutes}]
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="scheduling_links")
    event_type = relationship("EventType")
