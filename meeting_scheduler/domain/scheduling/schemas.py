"""Scheduling domain schemas - Pydantic models for request/response validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator

from ...shared.validators import (
    validate_email,
    validate_minutes_of_day,
    validate_phone,
    validate_slug,
    validate_timezone,
    validate_weekday,
)

MeetingMode = Literal["in_person", "phone", "video"]
AttendeeRole = Literal["organizer", "attendee", "optional"]
RsvpStatus = Literal["accepted", "declined", "tentative"]


def _check_window(start: Optional[int], end: Optional[int]) -> None:
    if start is not None and end is not None and end <= start:
        raise ValueError("endMinutes must be greater than startMinutes")


# ============================================================================
# AVAILABILITY
# ============================================================================


class WeeklyRuleIn(BaseModel):
    """One weekly availability window; minutes are since local midnight"""

    weekday: int
    startMinutes: int
    endMinutes: int
    timezone: str

    @field_validator("weekday")
    @classmethod
    def check_weekday(cls, v):
        return validate_weekday(v)

    @field_validator("startMinutes", "endMinutes")
    @classmethod
    def check_minutes(cls, v):
        return validate_minutes_of_day(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)

    @model_validator(mode="after")
    def check_window(self):
        _check_window(self.startMinutes, self.endMinutes)
        return self


class WeeklyRuleResponse(BaseModel):
    id: str
    weekday: int
    startMinutes: int
    endMinutes: int
    timezone: str
    isActive: bool


class OverrideCreate(BaseModel):
    """Date-specific override. isAvailable=false blocks the whole day"""

    date: date
    isAvailable: bool
    startMinutes: Optional[int] = None
    endMinutes: Optional[int] = None
    timezone: Optional[str] = None

    @field_validator("startMinutes", "endMinutes")
    @classmethod
    def check_minutes(cls, v):
        return validate_minutes_of_day(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)

    @model_validator(mode="after")
    def check_window(self):
        _check_window(self.startMinutes, self.endMinutes)
        return self


class OverrideResponse(BaseModel):
    id: str
    date: date
    isAvailable: bool
    startMinutes: Optional[int] = None
    endMinutes: Optional[int] = None
    timezone: str


class SlotResponse(BaseModel):
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    slots: list[SlotResponse]
    timezone: str
    # Set when the result was cut at the slot cap
    truncated: bool = False


# ============================================================================
# EVENT TYPES
# ============================================================================


class EventTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    durationMinutes: int = Field(ge=5, le=480)
    bufferBeforeMinutes: int = Field(default=15, ge=0, le=120)
    bufferAfterMinutes: int = Field(default=15, ge=0, le=120)
    meetingMode: Optional[MeetingMode] = None
    meetingLinkTemplate: Optional[HttpUrl] = None
    description: Optional[str] = None


class EventTypeResponse(BaseModel):
    id: str
    name: str
    durationMinutes: int
    bufferBeforeMinutes: int
    bufferAfterMinutes: int
    meetingMode: Optional[str] = None
    meetingLinkTemplate: Optional[str] = None
    description: Optional[str] = None


# ============================================================================
# EVENTS
# ============================================================================


class EventCreate(BaseModel):
    """Owner-created event; the end comes from endAt or durationMinutes (default 30)"""

    startAt: datetime
    endAt: Optional[datetime] = None
    durationMinutes: Optional[int] = Field(default=None, ge=5, le=480)
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=500)
    meetingMode: Optional[MeetingMode] = None
    typeId: Optional[str] = None
    contactId: Optional[str] = None
    leadId: Optional[str] = None


class EventUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied"""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=500)
    meetingMode: Optional[MeetingMode] = None


class RescheduleRequest(BaseModel):
    startAt: datetime


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class EventCreatedResponse(BaseModel):
    id: str
    startAt: str
    endAt: str


class RescheduleResponse(BaseModel):
    status: str = "ok"
    rescheduled: bool = True
    startAt: str
    endAt: str


class AttendeeResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    status: str


class EventResponse(BaseModel):
    id: str
    ownerId: int
    typeId: Optional[str] = None
    contactId: Optional[str] = None
    leadId: Optional[str] = None
    startAt: str
    endAt: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    meetingMode: Optional[str] = None
    meetingLink: Optional[str] = None
    status: str
    attendees: Optional[list[AttendeeResponse]] = None


# ============================================================================
# ATTENDEES
# ============================================================================


class AttendeeCreate(BaseModel):
    email: str
    name: Optional[str] = Field(default=None, max_length=255)
    role: AttendeeRole = "attendee"

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


# ============================================================================
# SCHEDULING LINKS
# ============================================================================


class CustomWindow(BaseModel):
    weekday: int
    startMinutes: int
    endMinutes: int

    @field_validator("weekday")
    @classmethod
    def check_weekday(cls, v):
        return validate_weekday(v)

    @field_validator("startMinutes", "endMinutes")
    @classmethod
    def check_minutes(cls, v):
        return validate_minutes_of_day(v)

    @model_validator(mode="after")
    def check_window(self):
        _check_window(self.startMinutes, self.endMinutes)
        return self


class LinkCreate(BaseModel):
    timezone: str
    slug: Optional[str] = None
    eventTypeId: Optional[str] = None
    expiresAt: Optional[datetime] = None
    maxUses: Optional[int] = Field(default=None, ge=1)
    meetingMode: Optional[MeetingMode] = None
    minLeadMinutes: Optional[int] = Field(default=None, ge=0, le=60 * 24 * 30)
    maxHorizonDays: Optional[int] = Field(default=None, ge=1, le=365)
    customAvailability: Optional[list[CustomWindow]] = None

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v):
        return validate_slug(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v):
        return validate_timezone(v)


class LinkCreatedResponse(BaseModel):
    id: str
    slug: str


class LinkResolveResponse(BaseModel):
    ownerId: int
    eventTypeId: Optional[str] = None
    slug: str
    timezone: str
    meetingMode: Optional[str] = None
    minLeadMinutes: Optional[int] = None
    maxHorizonDays: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    durationMinutes: Optional[int] = None


class BookingAttendee(BaseModel):
    email: str
    name: str = Field(min_length=1, max_length=255)
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)


class BookFromLinkRequest(BaseModel):
    slug: str
    startAt: datetime
    attendee: BookingAttendee
    notes: Optional[str] = Field(default=None, max_length=2000)
    meetingMode: Optional[MeetingMode] = None
    contactId: Optional[str] = None
    leadId: Optional[str] = None


class BookFromLinkResponse(BaseModel):
    event: EventResponse
    confirmationCode: str
