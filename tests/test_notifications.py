"""Tests for notification dispatch and the scheduling notifier"""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

from conftest import at
from meeting_scheduler.domain.scheduling.notifications import (
    ArqNotificationDispatcher,
    NotificationDispatcher,
    NotificationMessage,
    SchedulingNotifier,
    create_dispatcher,
)
from meeting_scheduler.domain.scheduling.token_service import RsvpTokenService


def message(to="guest@example.com"):
    return NotificationMessage(to=to, subject="Hello", mjml_content="<mjml></mjml>", kind="test")


def flaky_sender(failures: int):
    calls = []

    async def send(msg):
        calls.append(msg.to)
        if len(calls) <= failures:
            raise RuntimeError("provider unavailable")
        return {"id": "email-1"}

    return send, calls


def test_submit_before_start_is_dropped():
    dispatcher = NotificationDispatcher(sender=flaky_sender(0)[0])
    assert dispatcher.submit(message()) is False


def test_delivery_retries_until_success():
    send, calls = flaky_sender(failures=2)

    async def scenario():
        dispatcher = NotificationDispatcher(sender=send, max_attempts=3, retry_delay=0)
        await dispatcher.start()
        assert dispatcher.submit(message())
        await dispatcher.stop()
        return dispatcher

    dispatcher = asyncio.run(scenario())

    assert len(calls) == 3
    assert dispatcher.delivered == 1
    assert dispatcher.failed == 0
    assert dispatcher.is_running is False


def test_delivery_gives_up_after_max_attempts():
    send, calls = flaky_sender(failures=10)

    async def scenario():
        dispatcher = NotificationDispatcher(sender=send, max_attempts=2, retry_delay=0)
        await dispatcher.start()
        dispatcher.submit(message("a@example.com"))
        dispatcher.submit(message("b@example.com"))
        await dispatcher.stop()
        return dispatcher

    dispatcher = asyncio.run(scenario())

    assert calls == ["a@example.com", "a@example.com", "b@example.com", "b@example.com"]
    assert dispatcher.failed == 2
    assert dispatcher.delivered == 0


def test_message_round_trips_through_dict():
    msg = message()
    assert NotificationMessage.from_dict(msg.to_dict()) == msg


def test_create_dispatcher_backends():
    assert isinstance(create_dispatcher("inprocess"), NotificationDispatcher)
    assert isinstance(create_dispatcher("arq"), ArqNotificationDispatcher)


# ---------------------------------------------------------------------------
# SchedulingNotifier
# ---------------------------------------------------------------------------


def make_event(**overrides):
    values = dict(
        id="evt-1",
        start_at=at("2025-06-02T17:00:00Z"),
        end_at=at("2025-06-02T17:30:00Z"),
        title="Discovery Call",
        description=None,
        location=None,
        meeting_link=None,
        sequence=0,
        attendees=[],
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def make_attendee(attendee_id="att-1", email="guest@example.com"):
    return SimpleNamespace(id=attendee_id, email=email, name="Guest", role="attendee", status="pending")


def make_notifier():
    dispatcher = MagicMock()
    dispatcher.submit.return_value = True
    notifier = SchedulingNotifier(
        dispatcher,
        token_service=RsvpTokenService("secret"),
        api_base_url="https://api.example.com/",
        default_timezone="America/Los_Angeles",
    )
    return notifier, dispatcher


def submitted(dispatcher):
    return [call.args[0] for call in dispatcher.submit.call_args_list]


def test_rsvp_url_is_signed():
    notifier, _ = make_notifier()
    url = notifier.rsvp_url("evt-1", "att-1", "accepted")

    token = RsvpTokenService("secret").issue("att-1", "evt-1")
    assert url == (
        "https://api.example.com/scheduler/events/evt-1/attendees/att-1/rsvp"
        f"?status=accepted&token={token}"
    )


def test_booking_confirmed_notifies_attendee_and_owner():
    notifier, dispatcher = make_notifier()
    owner = SimpleNamespace(email="owner@example.com", full_name="Olivia Owner", notify_new_bookings=True)

    sent = notifier.booking_confirmed(make_event(), make_attendee(), owner=owner, notes="See you")

    messages = submitted(dispatcher)
    assert sent == 2
    assert [m.to for m in messages] == ["guest@example.com", "owner@example.com"]
    assert messages[0].subject == "Meeting Confirmed"
    assert messages[0].attachments[0]["content_type"] == "text/calendar"
    assert b"METHOD:REQUEST" in messages[0].attachments[0]["content"]


def test_booking_confirmed_respects_owner_preference():
    notifier, dispatcher = make_notifier()
    owner = SimpleNamespace(email="owner@example.com", full_name="Olivia", notify_new_bookings=False)

    assert notifier.booking_confirmed(make_event(), make_attendee(), owner=owner) == 1


def test_invitation_carries_rsvp_links():
    notifier, dispatcher = make_notifier()
    attendee = make_attendee()
    organizer = SimpleNamespace(email="owner@example.com", full_name="Olivia Owner")

    assert notifier.attendee_invited(make_event(attendees=[attendee]), attendee, organizer=organizer) == 1

    msg = submitted(dispatcher)[0]
    assert msg.subject == "Meeting Invitation"
    for status in ("accepted", "tentative", "declined"):
        assert notifier.rsvp_url("evt-1", "att-1", status) in msg.mjml_content


def test_reminders_go_to_every_attendee():
    notifier, dispatcher = make_notifier()
    attendees = [make_attendee("a1", "one@example.com"), make_attendee("a2", "two@example.com")]

    assert notifier.reminders(make_event(attendees=attendees), attendees) == 2
    assert all(m.subject == "Reminder: Discovery Call" for m in submitted(dispatcher))


def test_cancellation_sends_cancel_ics():
    notifier, dispatcher = make_notifier()

    sent = notifier.event_cancelled(make_event(), [make_attendee()], reason="Conflict")

    msg = submitted(dispatcher)[0]
    assert sent == 1
    assert msg.subject == "Meeting Cancelled"
    assert b"METHOD:CANCEL" in msg.attachments[0]["content"]


def test_reschedule_sends_update():
    notifier, dispatcher = make_notifier()

    sent = notifier.event_rescheduled(
        make_event(sequence=1), [make_attendee()], previous_start=at("2025-06-02T16:00:00Z")
    )

    msg = submitted(dispatcher)[0]
    assert sent == 1
    assert msg.subject == "Meeting Updated"
    assert b"SEQUENCE:1" in msg.attachments[0]["content"]


def test_notifier_failures_do_not_raise():
    notifier, dispatcher = make_notifier()
    dispatcher.submit.side_effect = RuntimeError("queue gone")

    assert notifier.event_cancelled(make_event(), [make_attendee()]) == 0
