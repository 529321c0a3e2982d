"""RSVP token service - signed, stateless attendee credentials for emailed links"""

import hashlib
import hmac
import logging

from ... import config

logger = logging.getLogger(__name__)


class RsvpTokenService:
    """
    Issues and verifies deterministic RSVP tokens.

    token = HMAC-SHA256(secret, "<attendee_id>:<event_id>") as hex. Nothing is
    stored; verification recomputes the token and compares in constant time.
    """

    def __init__(self, secret: str = None):
        secret = secret or config.SCHEDULER_TOKEN_SECRET
        self._secret = secret.encode("utf-8")

    def issue(self, attendee_id: str, event_id: str) -> str:
        message = f"{attendee_id}:{event_id}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def verify(self, attendee_id: str, event_id: str, token: str) -> bool:
        if not attendee_id or not event_id or not token:
            return False
        expected = self.issue(attendee_id, event_id)
        return hmac.compare_digest(expected.encode("utf-8"), str(token).encode("utf-8"))
