"""iCalendar (ICS) documents attached to meeting emails"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from icalendar import Calendar, vCalAddress, vText
from icalendar import Event as ICalEvent

from .time_calculator import ensure_utc

PRODID = "-//Meeting Scheduler//Scheduling//EN"
UID_DOMAIN = "meeting-scheduler"

METHOD_REQUEST = "REQUEST"
METHOD_CANCEL = "CANCEL"


def event_uid(event_id: str) -> str:
    """Stable UID so calendar clients update or remove the same entry"""
    return f"{event_id}@{UID_DOMAIN}"


def build_event_ics(
    event,
    method: str = METHOD_REQUEST,
    attendees: Iterable = (),
    organizer_email: Optional[str] = None,
    organizer_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """Serialize one scheduler Event into an ICS calendar.

    CANCEL documents carry STATUS:CANCELLED; the SEQUENCE comes from the event
    so reschedules supersede earlier invites.
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("method", method)

    vevent = ICalEvent()
    vevent.add("uid", event_uid(event.id))
    vevent.add("dtstamp", ensure_utc(now or datetime.now(timezone.utc)))
    vevent.add("dtstart", ensure_utc(event.start_at))
    vevent.add("dtend", ensure_utc(event.end_at))
    vevent.add("summary", event.title or "Meeting")
    vevent.add("sequence", event.sequence or 0)
    vevent.add("status", "CANCELLED" if method == METHOD_CANCEL else "CONFIRMED")

    if event.description:
        vevent.add("description", event.description)
    if event.location:
        vevent["location"] = vText(event.location)
    if event.meeting_link:
        vevent.add("url", event.meeting_link)

    if organizer_email:
        organizer = vCalAddress(f"mailto:{organizer_email}")
        if organizer_name:
            organizer.params["cn"] = vText(organizer_name)
        vevent["organizer"] = organizer

    for attendee in attendees:
        address = vCalAddress(f"mailto:{attendee.email}")
        if attendee.name:
            address.params["cn"] = vText(attendee.name)
        address.params["role"] = vText(
            "OPT-PARTICIPANT" if attendee.role == "optional" else "REQ-PARTICIPANT"
        )
        address.params["partstat"] = vText(_partstat(attendee.status))
        vevent.add("attendee", address, encode=0)

    cal.add_component(vevent)
    return cal.to_ical()


def _partstat(status: Optional[str]) -> str:
    return {
        "accepted": "ACCEPTED",
        "declined": "DECLINED",
        "tentative": "TENTATIVE",
    }.get(status or "", "NEEDS-ACTION")


def ics_attachment(content: bytes, filename: str = "invite.ics") -> dict:
    """Attachment dict in the shape email_service.send_email expects"""
    return {"filename": filename, "content": content, "content_type": "text/calendar"}
