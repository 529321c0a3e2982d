"""Scheduling router - FastAPI endpoints for availability, events, attendees and links"""

import html
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import (
    availability_rate_limit,
    booking_rate_limit,
    link_resolve_rate_limit,
    owner_rate_limit,
    rsvp_rate_limit,
)
from .availability_service import AvailabilityService
from .booking_service import AttendeeService, BookingService
from .exceptions import SchedulingError
from .links_service import LinkService
from .schemas import (
    AttendeeCreate,
    AttendeeResponse,
    AvailabilityResponse,
    BookFromLinkRequest,
    BookFromLinkResponse,
    CancelRequest,
    EventCreate,
    EventCreatedResponse,
    EventResponse,
    EventTypeCreate,
    EventTypeResponse,
    EventUpdate,
    LinkCreate,
    LinkCreatedResponse,
    LinkResolveResponse,
    OverrideCreate,
    OverrideResponse,
    RescheduleRequest,
    RescheduleResponse,
    SlotResponse,
    WeeklyRuleIn,
    WeeklyRuleResponse,
)
from .slot_generator import SlotService
from .time_calculator import parse_date_key, to_iso, utc_now
from .token_service import RsvpTokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["Scheduling"])


# ============================================================================
# DEPENDENCIES
# ============================================================================


def get_clock() -> Callable[[], datetime]:
    """Source of "now" for lead-time and horizon checks"""
    return utc_now


def get_notifier(request: Request):
    """The SchedulingNotifier created by the application lifespan (None if absent)"""
    return getattr(request.app.state, "notifier", None)


def get_token_service() -> RsvpTokenService:
    return RsvpTokenService()


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_slot_service(
    db: Session = Depends(get_db), clock: Callable = Depends(get_clock)
) -> SlotService:
    return SlotService(db, clock=clock)


def get_link_service(db: Session = Depends(get_db)) -> LinkService:
    return LinkService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
    clock: Callable = Depends(get_clock),
) -> BookingService:
    return BookingService(db, notifier=notifier, clock=clock)


def get_attendee_service(
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
    tokens: RsvpTokenService = Depends(get_token_service),
) -> AttendeeService:
    return AttendeeService(db, notifier=notifier, token_service=tokens)


# ============================================================================
# RESPONSE MAPPING
# ============================================================================


def attendee_to_response(a) -> AttendeeResponse:
    return AttendeeResponse(id=a.id, email=a.email, name=a.name, role=a.role, status=a.status)


def event_to_response(event, include_attendees: bool = False) -> EventResponse:
    return EventResponse(
        id=event.id,
        ownerId=event.owner_id,
        typeId=event.type_id,
        contactId=event.contact_id,
        leadId=event.lead_id,
        startAt=to_iso(event.start_at),
        endAt=to_iso(event.end_at),
        title=event.title,
        description=event.description,
        location=event.location,
        meetingMode=event.meeting_mode,
        meetingLink=event.meeting_link,
        status=event.status,
        attendees=[attendee_to_response(a) for a in event.attendees] if include_attendees else None,
    )


def event_type_to_response(t) -> EventTypeResponse:
    return EventTypeResponse(
        id=t.id,
        name=t.name,
        durationMinutes=t.duration_minutes,
        bufferBeforeMinutes=t.buffer_before_minutes,
        bufferAfterMinutes=t.buffer_after_minutes,
        meetingMode=t.meeting_mode,
        meetingLinkTemplate=t.meeting_link_template,
        description=t.description,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    startDate: str = Query(..., description="First day, YYYY-MM-DD"),
    endDate: str = Query(..., description="Last day (inclusive), YYYY-MM-DD"),
    userId: Optional[int] = Query(None),
    eventTypeId: Optional[str] = Query(None),
    slug: Optional[str] = Query(None),
    timezone: Optional[str] = Query(None),
    service: SlotService = Depends(get_slot_service),
    _: None = Depends(availability_rate_limit),
):
    """Bookable slots for an owner, or for the owner behind a scheduling link"""
    page, tz = service.available_slots(userId, startDate, endDate, eventTypeId, slug, timezone)
    return AvailabilityResponse(
        slots=[SlotResponse(start=to_iso(s.start), end=to_iso(s.end)) for s in page.slots],
        timezone=tz,
        truncated=page.truncated,
    )


@router.post("/availability")
async def set_weekly_availability(
    rules: list[WeeklyRuleIn],
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(owner_rate_limit),
):
    """Replace all weekly availability rules of the current user"""
    saved = service.replace_rules(current_user.id, rules)
    return {"status": "ok", "saved": len(saved)}


@router.get("/availability/me", response_model=list[WeeklyRuleResponse])
async def get_my_availability(
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    return [
        WeeklyRuleResponse(
            id=r.id,
            weekday=r.weekday,
            startMinutes=r.start_minutes,
            endMinutes=r.end_minutes,
            timezone=r.timezone,
            isActive=r.is_active,
        )
        for r in service.list_rules(current_user.id)
    ]


@router.post("/availability/overrides")
async def create_overrides(
    data: Union[OverrideCreate, list[OverrideCreate]] = Body(...),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(owner_rate_limit),
):
    """Create one override or a list of them"""
    items = data if isinstance(data, list) else [data]
    created = service.create_overrides(current_user.id, items)
    return {"status": "ok", "created": [o.id for o in created]}


@router.get("/availability/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None, description="Inclusive"),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    start = parse_date_key(startDate) if startDate else None
    end = parse_date_key(endDate) + timedelta(days=1) if endDate else None
    return [
        OverrideResponse(
            id=o.id,
            date=o.date,
            isAvailable=o.is_available,
            startMinutes=o.start_minutes,
            endMinutes=o.end_minutes,
            timezone=o.timezone,
        )
        for o in service.list_overrides(current_user.id, start, end)
    ]


@router.delete("/availability/overrides/{override_id}")
async def delete_override(
    override_id: str,
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
    _: None = Depends(owner_rate_limit),
):
    service.delete_override(current_user.id, override_id)
    return {"status": "ok", "deleted": True}


# ============================================================================
# EVENT TYPES
# ============================================================================


@router.get("/event-types", response_model=list[EventTypeResponse])
async def list_event_types(
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return [event_type_to_response(t) for t in service.list_event_types(current_user)]


@router.post("/event-types", response_model=EventTypeResponse)
async def create_event_type(
    data: EventTypeCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    return event_type_to_response(service.create_event_type(data, current_user))


# ============================================================================
# EVENTS
# ============================================================================


@router.get("/events", response_model=list[EventResponse])
async def list_events(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Events of the current user whose start falls in [start, end]"""
    return [event_to_response(e) for e in service.list_events(current_user, start, end)]


@router.post("/events", response_model=EventCreatedResponse)
async def create_event(
    data: EventCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    event = service.create_event(data, current_user)
    return EventCreatedResponse(id=event.id, startAt=to_iso(event.start_at), endAt=to_iso(event.end_at))


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return event_to_response(service.get_event(event_id, current_user), include_attendees=True)


@router.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    data: EventUpdate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    updated = service.update_event(event_id, data, current_user)
    return {"status": "ok", "updated": updated}


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    service.delete_event(event_id, current_user)
    return {"status": "ok", "deleted": True}


@router.patch("/events/{event_id}/reschedule", response_model=RescheduleResponse)
async def reschedule_event(
    event_id: str,
    data: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    event = service.reschedule(event_id, data.startAt, current_user)
    return RescheduleResponse(startAt=to_iso(event.start_at), endAt=to_iso(event.end_at))


@router.post("/events/{event_id}/cancel")
async def cancel_event(
    event_id: str,
    data: Optional[CancelRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(owner_rate_limit),
):
    """Cancel an event. Cancelling twice is a successful no-op."""
    changed = service.cancel(event_id, current_user, reason=data.reason if data else None)
    return {"status": "ok", "cancelled": True, "changed": changed}


# ============================================================================
# ATTENDEES
# ============================================================================


@router.get("/events/{event_id}/attendees", response_model=list[AttendeeResponse])
async def list_attendees(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: AttendeeService = Depends(get_attendee_service),
):
    return [attendee_to_response(a) for a in service.list_attendees(event_id, current_user)]


@router.post("/events/{event_id}/attendees")
async def add_attendee(
    event_id: str,
    data: AttendeeCreate,
    current_user: User = Depends(get_current_user),
    service: AttendeeService = Depends(get_attendee_service),
    _: None = Depends(owner_rate_limit),
):
    attendee = service.add_attendee(event_id, data, current_user)
    return {"status": "ok", "id": attendee.id}


@router.delete("/events/{event_id}/attendees")
async def remove_attendee_by_email(
    event_id: str,
    email: str = Query(...),
    current_user: User = Depends(get_current_user),
    service: AttendeeService = Depends(get_attendee_service),
    _: None = Depends(owner_rate_limit),
):
    deleted = service.remove_attendee(event_id, current_user, email=email)
    return {"status": "ok", "deleted": deleted > 0}


@router.delete("/events/{event_id}/attendees/{attendee_id}")
async def remove_attendee(
    event_id: str,
    attendee_id: str,
    current_user: User = Depends(get_current_user),
    service: AttendeeService = Depends(get_attendee_service),
    _: None = Depends(owner_rate_limit),
):
    service.remove_attendee(event_id, current_user, attendee_id=attendee_id)
    return {"status": "ok", "deleted": True}


def _rsvp_page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    body = (
        '<!doctype html><meta charset="utf-8" />'
        f"<title>{html.escape(title)}</title>"
        '<div style="font:14px system-ui, -apple-system, Segoe UI, Roboto">'
        f"{message}</div>"
    )
    return HTMLResponse(content=body, status_code=status_code)


@router.get("/events/{event_id}/attendees/{attendee_id}/rsvp", response_class=HTMLResponse)
async def rsvp(
    event_id: str,
    attendee_id: str,
    status: str = Query(""),
    token: str = Query(""),
    service: AttendeeService = Depends(get_attendee_service),
    _: None = Depends(rsvp_rate_limit),
):
    """Public RSVP from an emailed link (signed token, no session)"""
    try:
        attendee = service.rsvp(event_id, attendee_id, status, token)
    except SchedulingError as e:
        return _rsvp_page("RSVP failed", html.escape(e.message), e.status_code)
    return _rsvp_page(
        f"RSVP {attendee.status}",
        f"Thanks! Your RSVP is recorded as <b>{html.escape(attendee.status)}</b>.",
    )


@router.post("/events/{event_id}/reminders")
async def send_reminders(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: AttendeeService = Depends(get_attendee_service),
    _: None = Depends(owner_rate_limit),
):
    """Resend the calendar invite to every attendee"""
    sent = service.send_reminders(event_id, current_user)
    return {"status": "ok", "sent": sent}


# ============================================================================
# SCHEDULING LINKS AND PUBLIC BOOKING
# ============================================================================


@router.post("/links", response_model=LinkCreatedResponse)
async def create_link(
    data: LinkCreate,
    current_user: User = Depends(get_current_user),
    service: LinkService = Depends(get_link_service),
    _: None = Depends(owner_rate_limit),
):
    link = service.create_link(data, current_user)
    return LinkCreatedResponse(id=link.id, slug=link.slug)


@router.get("/links/{slug}", response_model=LinkResolveResponse)
async def resolve_link(
    slug: str,
    service: LinkService = Depends(get_link_service),
    _: None = Depends(link_resolve_rate_limit),
):
    """Public view of a scheduling link"""
    return LinkResolveResponse(**service.resolve(slug))


@router.post("/book/from-link", response_model=BookFromLinkResponse)
async def book_from_link(
    data: BookFromLinkRequest,
    service: BookingService = Depends(get_booking_service),
    _: None = Depends(booking_rate_limit),
):
    """Public self-service booking through a scheduling link"""
    event, code = service.book_from_link(data)
    return BookFromLinkResponse(event=event_to_response(event, include_attendees=False), confirmationCode=code)
