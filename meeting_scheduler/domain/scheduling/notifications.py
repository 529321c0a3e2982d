"""
Meeting notifications.

Two layers:

- ``NotificationDispatcher`` / ``ArqNotificationDispatcher``: the delivery port.
  Explicitly started and stopped by the application lifespan; ``submit()`` never
  blocks and never raises. Delivery is at-least-once with retries; a message
  that still fails after the last attempt is logged and dropped.
- ``SchedulingNotifier``: decides *which* email (and ICS method) a state change
  produces and hands it to the dispatcher.

A notification failure never fails the booking, reschedule or cancel that
triggered it.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from ... import config
from ...email_service import send_email
from ...email_templates import (
    meeting_cancelled_template,
    meeting_confirmed_template,
    meeting_invitation_template,
    meeting_updated_template,
    new_booking_notification_template,
)
from .ics import METHOD_CANCEL, METHOD_REQUEST, build_event_ics, ics_attachment
from .time_calculator import format_local
from .token_service import RsvpTokenService

logger = logging.getLogger(__name__)


@dataclass
class NotificationMessage:
    to: str
    subject: str
    mjml_content: str
    attachments: list = field(default_factory=list)
    kind: str = "generic"
    event_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationMessage":
        return cls(**data)


async def deliver(message: NotificationMessage) -> dict:
    """Send one notification through the email collaborator"""
    return await send_email(
        to=message.to,
        subject=message.subject,
        mjml_content=message.mjml_content,
        attachments=message.attachments or None,
    )


Sender = Callable[[NotificationMessage], Awaitable]


class NotificationDispatcher:
    """In-process delivery: an asyncio queue drained by one background task"""

    def __init__(
        self,
        sender: Sender = deliver,
        max_attempts: int = config.NOTIFICATION_MAX_ATTEMPTS,
        retry_delay: float = config.NOTIFICATION_RETRY_DELAY_SECONDS,
    ):
        self._sender = sender
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self.delivered = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run())
        logger.info("📬 Notification dispatcher started")

    async def stop(self, timeout: float = 10.0) -> None:
        """Drain queued messages (bounded by ``timeout``) and stop the worker task"""
        if self._task is None:
            return
        # Let pending submit() callbacks enqueue before waiting on the queue
        await asyncio.sleep(0)
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"⚠️ Notification dispatcher stopped with {self._queue.qsize()} undelivered messages"
            )
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(
            f"📭 Notification dispatcher stopped (delivered={self.delivered}, failed={self.failed})"
        )

    def submit(self, message: NotificationMessage) -> bool:
        """Queue a message for delivery. Safe to call from any thread."""
        if not self.is_running:
            logger.error(
                f"❌ Notification dispatcher not running - dropping '{message.subject}' to {message.to}"
            )
            return False
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, message)
        except RuntimeError as e:
            logger.error(f"❌ Could not queue notification to {message.to}: {e}")
            return False
        return True

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.deliver_with_retry(message)
            finally:
                self._queue.task_done()

    async def deliver_with_retry(self, message: NotificationMessage) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._sender(message)
                self.delivered += 1
                logger.info(f"✅ {message.kind} notification delivered to {message.to}")
                return True
            except Exception as e:
                if attempt >= self.max_attempts:
                    self.failed += 1
                    logger.error(
                        f"❌ {message.kind} notification to {message.to} failed after "
                        f"{attempt} attempts: {e}"
                    )
                    return False
                logger.warning(
                    f"⚠️ {message.kind} notification to {message.to} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                await asyncio.sleep(self.retry_delay * attempt)
        return False


class ArqNotificationDispatcher:
    """Redis-backed delivery: messages become arq jobs run by the worker process"""

    job_name = "deliver_notification_task"

    def __init__(self, redis_settings=None):
        self._redis_settings = redis_settings
        self._pool = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_running(self) -> bool:
        return self._pool is not None

    async def start(self) -> None:
        from arq import create_pool

        from ...worker import get_redis_settings

        if self._pool is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._pool = await create_pool(self._redis_settings or get_redis_settings())
        logger.info("📬 Notification dispatcher started (arq)")

    async def stop(self) -> None:
        if self._pool is None:
            return
        closer = getattr(self._pool, "aclose", None) or self._pool.close
        await closer()
        self._pool = None
        logger.info("📭 Notification dispatcher stopped (arq)")

    def submit(self, message: NotificationMessage) -> bool:
        if not self.is_running:
            logger.error(
                f"❌ Notification queue not connected - dropping '{message.subject}' to {message.to}"
            )
            return False
        future = asyncio.run_coroutine_threadsafe(self._enqueue(message), self._loop)
        future.add_done_callback(lambda f: self._log_enqueue_result(f, message))
        return True

    async def _enqueue(self, message: NotificationMessage):
        return await self._pool.enqueue_job(self.job_name, message.to_dict())

    @staticmethod
    def _log_enqueue_result(future, message: NotificationMessage) -> None:
        error = future.exception()
        if error:
            logger.error(f"❌ Failed to enqueue notification to {message.to}: {error}")
        else:
            logger.debug(f"📤 Notification job queued for {message.to}")


def create_dispatcher(backend: str = None):
    backend = (backend or config.NOTIFICATION_BACKEND).lower()
    if backend == "arq":
        return ArqNotificationDispatcher()
    return NotificationDispatcher()


class SchedulingNotifier:
    """Turns event state changes into ICS emails"""

    def __init__(
        self,
        dispatcher,
        token_service: Optional[RsvpTokenService] = None,
        api_base_url: str = None,
        default_timezone: str = None,
    ):
        self.dispatcher = dispatcher
        self.tokens = token_service or RsvpTokenService()
        self.api_base_url = (api_base_url or config.API_BASE_URL).rstrip("/")
        self.default_timezone = default_timezone or config.DEFAULT_TIMEZONE

    def rsvp_url(self, event_id: str, attendee_id: str, status: str) -> str:
        token = self.tokens.issue(attendee_id, event_id)
        return (
            f"{self.api_base_url}/scheduler/events/{event_id}/attendees/{attendee_id}/rsvp"
            f"?status={status}&token={token}"
        )

    def _when(self, event, tz_name: Optional[str] = None) -> str:
        return format_local(event.start_at, tz_name or self.default_timezone)

    def _submit(self, to: str, subject: str, mjml_content: str, ics: bytes, filename: str, kind: str, event_id: str) -> bool:
        message = NotificationMessage(
            to=to,
            subject=subject,
            mjml_content=mjml_content,
            attachments=[ics_attachment(ics, filename)],
            kind=kind,
            event_id=event_id,
        )
        return self.dispatcher.submit(message)

    def booking_confirmed(self, event, attendee, owner=None, notes: str = None, tz_name: str = None) -> int:
        """Confirmation to the person who booked, plus a heads-up to the owner"""
        sent = 0
        try:
            when = self._when(event, tz_name)
            ics = build_event_ics(
                event,
                METHOD_REQUEST,
                attendees=[attendee],
                organizer_email=owner.email if owner else None,
                organizer_name=owner.full_name if owner else None,
            )
            content = meeting_confirmed_template(
                attendee.name, event.title, when, event.location, event.meeting_link, notes
            )
            sent += self._submit(
                attendee.email, "Meeting Confirmed", content, ics, "invite.ics", "booking", event.id
            )

            if owner and owner.email and owner.notify_new_bookings:
                content = new_booking_notification_template(
                    owner.full_name, attendee.name or attendee.email, attendee.email, event.title, when, notes
                )
                sent += self._submit(
                    owner.email, f"New booking: {event.title}", content, ics, "invite.ics", "booking_owner", event.id
                )
        except Exception as e:
            logger.error(f"❌ Failed to prepare booking confirmation for event {event.id}: {e}")
        return sent

    def attendee_invited(self, event, attendee, organizer=None, tz_name: str = None) -> int:
        return self._send_invitations(event, [attendee], organizer, tz_name, is_reminder=False)

    def reminders(self, event, attendees: Iterable, organizer=None, tz_name: str = None) -> int:
        return self._send_invitations(event, list(attendees), organizer, tz_name, is_reminder=True)

    def _send_invitations(self, event, attendees: list, organizer, tz_name, is_reminder: bool) -> int:
        sent = 0
        kind = "reminder" if is_reminder else "invitation"
        organizer_name = (organizer.full_name or organizer.email) if organizer else "Your host"
        try:
            when = self._when(event, tz_name)
            ics = build_event_ics(
                event,
                METHOD_REQUEST,
                attendees=event.attendees or attendees,
                organizer_email=organizer.email if organizer else None,
                organizer_name=organizer.full_name if organizer else None,
            )
        except Exception as e:
            logger.error(f"❌ Failed to build {kind} for event {event.id}: {e}")
            return 0

        for attendee in attendees:
            try:
                content = meeting_invitation_template(
                    attendee.name,
                    organizer_name,
                    event.title,
                    when,
                    accept_url=self.rsvp_url(event.id, attendee.id, "accepted"),
                    tentative_url=self.rsvp_url(event.id, attendee.id, "tentative"),
                    decline_url=self.rsvp_url(event.id, attendee.id, "declined"),
                    location=event.location,
                    meeting_link=event.meeting_link,
                    is_reminder=is_reminder,
                )
                subject = f"Reminder: {event.title}" if is_reminder else "Meeting Invitation"
                sent += self._submit(attendee.email, subject, content, ics, "invite.ics", kind, event.id)
            except Exception as e:
                logger.error(f"❌ Failed to prepare {kind} for {attendee.email}: {e}")
        return sent

    def event_rescheduled(self, event, attendees: Iterable, previous_start=None, tz_name: str = None) -> int:
        sent = 0
        attendees = list(attendees)
        try:
            when = self._when(event, tz_name)
            previous = format_local(previous_start, tz_name or self.default_timezone) if previous_start else None
            ics = build_event_ics(event, METHOD_REQUEST, attendees=attendees)
        except Exception as e:
            logger.error(f"❌ Failed to build update for event {event.id}: {e}")
            return 0

        for attendee in attendees:
            try:
                content = meeting_updated_template(
                    attendee.name, event.title, when, previous, event.location, event.meeting_link
                )
                sent += self._submit(attendee.email, "Meeting Updated", content, ics, "update.ics", "update", event.id)
            except Exception as e:
                logger.error(f"❌ Failed to prepare update for {attendee.email}: {e}")
        return sent

    def event_cancelled(self, event, attendees: Iterable, reason: str = None, tz_name: str = None) -> int:
        sent = 0
        attendees = list(attendees)
        try:
            when = self._when(event, tz_name)
            ics = build_event_ics(event, METHOD_CANCEL, attendees=attendees)
        except Exception as e:
            logger.error(f"❌ Failed to build cancellation for event {event.id}: {e}")
            return 0

        for attendee in attendees:
            try:
                content = meeting_cancelled_template(attendee.name, event.title, when, reason)
                sent += self._submit(attendee.email, "Meeting Cancelled", content, ics, "cancel.ics", "cancel", event.id)
            except Exception as e:
                logger.error(f"❌ Failed to prepare cancellation for {attendee.email}: {e}")
        return sent
