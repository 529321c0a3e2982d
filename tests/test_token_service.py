"""Tests for signed RSVP tokens"""

from meeting_scheduler.domain.scheduling.token_service import RsvpTokenService


def test_issue_is_deterministic():
    service = RsvpTokenService("secret-a")
    assert service.issue("att-1", "evt-1") == service.issue("att-1", "evt-1")
    assert len(service.issue("att-1", "evt-1")) == 64


def test_verify_accepts_own_token():
    service = RsvpTokenService("secret-a")
    token = service.issue("att-1", "evt-1")
    assert service.verify("att-1", "evt-1", token)


def test_verify_rejects_token_for_other_attendee_or_event():
    service = RsvpTokenService("secret-a")
    token = service.issue("att-1", "evt-1")
    assert not service.verify("att-2", "evt-1", token)
    assert not service.verify("att-1", "evt-2", token)


def test_verify_rejects_token_signed_with_other_secret():
    token = RsvpTokenService("secret-a").issue("att-1", "evt-1")
    assert not RsvpTokenService("secret-b").verify("att-1", "evt-1", token)


def test_verify_rejects_missing_values():
    service = RsvpTokenService("secret-a")
    assert not service.verify("att-1", "evt-1", "")
    assert not service.verify("att-1", "evt-1", None)
    assert not service.verify("", "evt-1", "abc")
