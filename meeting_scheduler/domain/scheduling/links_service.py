"""Scheduling-link policy - public slugs bound to an owner, event type and booking limits"""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import User
from ...models_scheduling import SchedulingLink
from .exceptions import (
    REASON_EVENT_TYPE_NOT_FOUND,
    REASON_LINK_EXHAUSTED,
    REASON_LINK_EXPIRED,
    REASON_LINK_NOT_FOUND,
    DuplicateError,
    NotFoundError,
    PolicyViolationError,
)
from .policy import SlotPolicy, build_policy
from .repository import SchedulingRepository
from .schemas import LinkCreate
from .time_calculator import ensure_utc

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.ascii_lowercase + string.digits
GENERATED_SLUG_LENGTH = 8


def generate_slug(length: int = GENERATED_SLUG_LENGTH) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def is_expired(link: SchedulingLink, now: datetime) -> bool:
    return link.expires_at is not None and ensure_utc(link.expires_at) <= ensure_utc(now)


def is_exhausted(link: SchedulingLink) -> bool:
    return link.max_uses is not None and (link.uses or 0) >= link.max_uses


class LinkService:
    """Service layer for scheduling links"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def create_link(self, data: LinkCreate, user: User) -> SchedulingLink:
        if data.eventTypeId and not self.repo.get_event_type(self.db, data.eventTypeId, user.id):
            raise NotFoundError("Event type not found", reason=REASON_EVENT_TYPE_NOT_FOUND)

        slug = data.slug
        if slug:
            if self.repo.slug_exists(self.db, slug):
                raise DuplicateError(f"Slug '{slug}' is already taken")
        else:
            slug = generate_slug()
            while self.repo.slug_exists(self.db, slug):
                slug = generate_slug()

        link_data = {
            "slug": slug,
            "event_type_id": data.eventTypeId,
            "expires_at": ensure_utc(data.expiresAt) if data.expiresAt else None,
            "max_uses": data.maxUses,
            "timezone": data.timezone,
            "meeting_mode": data.meetingMode,
            "min_lead_minutes": data.minLeadMinutes,
            "max_horizon_days": data.maxHorizonDays,
            "custom_availability": (
                [w.model_dump() for w in data.customAvailability]
                if data.customAvailability
                else None
            ),
        }
        try:
            link = self.repo.create_link(self.db, user.id, **link_data)
        except IntegrityError as e:
            # Lost a race for the same slug
            self.db.rollback()
            raise DuplicateError(f"Slug '{slug}' is already taken") from e

        logger.info(f"🔗 Scheduling link '{link.slug}' created for user {user.id}")
        return link

    def get_link(self, slug: str) -> SchedulingLink:
        link = self.repo.get_link_by_slug(self.db, (slug or "").strip().lower())
        if not link:
            raise NotFoundError("Link not found", reason=REASON_LINK_NOT_FOUND)
        return link

    def resolve(self, slug: str) -> dict:
        """Public view of a link: owner, event type and policy, without usage counters"""
        link = self.get_link(slug)
        event_type = link.event_type
        return {
            "ownerId": link.owner_id,
            "eventTypeId": link.event_type_id,
            "slug": link.slug,
            "timezone": link.timezone,
            "meetingMode": link.meeting_mode or (event_type.meeting_mode if event_type else None),
            "minLeadMinutes": link.min_lead_minutes,
            "maxHorizonDays": link.max_horizon_days,
            "title": event_type.name if event_type else None,
            "description": event_type.description if event_type else None,
            "durationMinutes": event_type.duration_minutes if event_type else None,
        }

    @staticmethod
    def ensure_usable(link: SchedulingLink, now: datetime) -> None:
        """Expiry first, then remaining uses"""
        if is_expired(link, now):
            logger.warning(f"⚠️ Scheduling link '{link.slug}' has expired")
            raise PolicyViolationError("This link has expired", reason=REASON_LINK_EXPIRED)
        if is_exhausted(link):
            logger.warning(f"⚠️ Scheduling link '{link.slug}' has no remaining uses")
            raise PolicyViolationError("This link has no remaining uses", reason=REASON_LINK_EXHAUSTED)

    def claim_use(self, link: SchedulingLink, now: datetime) -> None:
        """Atomically consume one use inside the caller's unit of work.

        Raises the matching policy error when the conditional update loses,
        e.g. a concurrent booking took the last use after the link was read.
        """
        if self.repo.claim_link_use(self.db, link.id, now):
            return
        self.db.rollback()
        self.db.refresh(link)
        self.ensure_usable(link, now)
        # Neither expired nor exhausted after refresh: the row changed under us
        raise PolicyViolationError("This link has no remaining uses", reason=REASON_LINK_EXHAUSTED)

    def remaining_uses(self, link: SchedulingLink) -> Optional[int]:
        if link.max_uses is None:
            return None
        return max(0, link.max_uses - (link.uses or 0))

    @staticmethod
    def policy_for(link: SchedulingLink) -> SlotPolicy:
        return build_policy(link.event_type, link)
