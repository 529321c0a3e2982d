"""HTTP tests for the scheduling API"""

from datetime import timedelta

from conftest import NOW
from meeting_scheduler.domain.scheduling.token_service import RsvpTokenService

SLOT = "2025-06-02T17:00:00Z"


def create_event_type(client):
    response = client.post(
        "/scheduler/event-types",
        json={
            "name": "Discovery Call",
            "durationMinutes": 30,
            "bufferBeforeMinutes": 15,
            "bufferAfterMinutes": 15,
            "meetingMode": "video",
        },
    )
    assert response.status_code == 200
    return response.json()


def create_link(client, **extra):
    event_type = create_event_type(client)
    body = {"timezone": "America/Los_Angeles", "eventTypeId": event_type["id"], "slug": "intro-call"}
    body.update(extra)
    response = client.post("/scheduler/links", json=body)
    assert response.status_code == 200
    return response.json()


def book(client, start=SLOT, email="guest@example.com"):
    return client.post(
        "/scheduler/book/from-link",
        json={
            "slug": "intro-call",
            "startAt": start,
            "attendee": {"email": email, "name": "Gina Guest"},
        },
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_weekly_availability_round_trip(client):
    response = client.post(
        "/scheduler/availability",
        json=[
            {"weekday": 1, "startMinutes": 540, "endMinutes": 1020, "timezone": "America/Los_Angeles"},
            {"weekday": 2, "startMinutes": 540, "endMinutes": 720, "timezone": "America/Los_Angeles"},
        ],
    )
    assert response.json() == {"status": "ok", "saved": 2}

    rules = client.get("/scheduler/availability/me").json()
    assert sorted(r["weekday"] for r in rules) == [1, 2]
    assert all(r["isActive"] for r in rules)


def test_invalid_weekly_rule_is_rejected(client):
    response = client.post(
        "/scheduler/availability",
        json=[{"weekday": 1, "startMinutes": 600, "endMinutes": 540, "timezone": "America/Los_Angeles"}],
    )
    assert response.status_code == 422
    assert response.json()["reason"] == "invalid_request"


def test_get_availability_for_owner(client, owner, weekday_rules):
    response = client.get(
        "/scheduler/availability",
        params={"userId": owner.id, "startDate": "2025-06-02", "endDate": "2025-06-02"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["timezone"] == "America/Los_Angeles"
    assert body["truncated"] is False
    assert body["slots"][0] == {"start": "2025-06-02T16:00:00Z", "end": "2025-06-02T16:30:00Z"}


def test_get_availability_unknown_timezone(client, owner, weekday_rules):
    response = client.get(
        "/scheduler/availability",
        params={"userId": owner.id, "startDate": "2025-06-02", "endDate": "2025-06-02", "timezone": "Nowhere/City"},
    )
    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_timezone"


def test_get_availability_by_slug(client, weekday_rules):
    create_link(client)

    response = client.get(
        "/scheduler/availability",
        params={"slug": "intro-call", "startDate": "2025-06-02", "endDate": "2025-06-03"},
    )
    assert response.status_code == 200
    assert response.json()["slots"]


def test_overrides_endpoints(client, owner, weekday_rules):
    response = client.post("/scheduler/availability/overrides", json={"date": "2025-06-02", "isAvailable": False})
    created = response.json()["created"]
    assert len(created) == 1

    listed = client.get("/scheduler/availability/overrides", params={"startDate": "2025-06-02", "endDate": "2025-06-02"})
    assert [o["id"] for o in listed.json()] == created

    slots = client.get(
        "/scheduler/availability",
        params={"userId": owner.id, "startDate": "2025-06-02", "endDate": "2025-06-02"},
    ).json()["slots"]
    assert slots == []

    assert client.delete(f"/scheduler/availability/overrides/{created[0]}").status_code == 200
    missing = client.delete(f"/scheduler/availability/overrides/{created[0]}")
    assert missing.status_code == 404
    assert missing.json()["reason"] == "override_not_found"


def test_resolve_link(client, owner):
    create_link(client, minLeadMinutes=60)

    response = client.get("/scheduler/links/intro-call")

    body = response.json()
    assert body["ownerId"] == owner.id
    assert body["title"] == "Discovery Call"
    assert body["minLeadMinutes"] == 60
    assert client.get("/scheduler/links/missing-link").status_code == 404


def test_duplicate_slug(client):
    create_link(client)
    response = client.post("/scheduler/links", json={"timezone": "UTC", "slug": "intro-call"})
    assert response.status_code == 409
    assert response.json()["reason"] == "slug_taken"


def test_book_from_link_then_conflict(client, notifier):
    create_link(client)

    first = book(client)
    assert first.status_code == 200
    body = first.json()
    assert body["event"]["startAt"] == SLOT
    assert body["event"]["endAt"] == "2025-06-02T17:30:00Z"
    assert len(body["confirmationCode"]) == 8

    second = book(client, email="other@example.com")
    assert second.status_code == 409
    assert second.json()["reason"] == "conflict"
    assert notifier.names() == ["booking_confirmed"]


def test_book_inside_lead_time(client):
    create_link(client, minLeadMinutes=120)

    response = book(client, start=(NOW + timedelta(minutes=60)).isoformat())

    assert response.status_code == 422
    assert response.json()["reason"] == "lead_time"


def test_book_with_invalid_body(client):
    create_link(client)
    response = client.post("/scheduler/book/from-link", json={"slug": "intro-call", "startAt": SLOT})
    assert response.status_code == 422
    assert response.json()["reason"] == "invalid_request"


def test_event_lifecycle(client, notifier):
    created = client.post("/scheduler/events", json={"startAt": SLOT, "durationMinutes": 45, "title": "Sync"})
    assert created.status_code == 200
    event_id = created.json()["id"]
    assert created.json()["endAt"] == "2025-06-02T17:45:00Z"

    patched = client.patch(f"/scheduler/events/{event_id}", json={"location": "Room 4"})
    assert patched.json() == {"status": "ok", "updated": ["location"]}

    moved = client.patch(f"/scheduler/events/{event_id}/reschedule", json={"startAt": "2025-06-03T18:00:00Z"})
    assert moved.json() == {
        "status": "ok",
        "rescheduled": True,
        "startAt": "2025-06-03T18:00:00Z",
        "endAt": "2025-06-03T18:45:00Z",
    }

    first = client.post(f"/scheduler/events/{event_id}/cancel", json={"reason": "No longer needed"})
    second = client.post(f"/scheduler/events/{event_id}/cancel")
    assert first.json()["changed"] is True
    assert second.status_code == 200
    assert second.json()["changed"] is False

    event = client.get(f"/scheduler/events/{event_id}").json()
    assert event["status"] == "cancelled"
    assert event["location"] == "Room 4"
    assert event["attendees"] == []

    again = client.patch(f"/scheduler/events/{event_id}/reschedule", json={"startAt": "2025-06-04T18:00:00Z"})
    assert again.status_code == 409
    assert again.json()["reason"] == "event_cancelled"


def test_event_not_found(client):
    response = client.get("/scheduler/events/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"detail": "Event not found", "reason": "event_not_found"}


def test_attendee_rsvp_flow(client, notifier):
    event_id = client.post("/scheduler/events", json={"startAt": SLOT}).json()["id"]
    attendee_id = client.post(
        f"/scheduler/events/{event_id}/attendees", json={"email": "pat@example.com", "name": "Pat"}
    ).json()["id"]
    assert notifier.names() == ["attendee_invited"]

    token = RsvpTokenService().issue(attendee_id, event_id)
    accepted = client.get(
        f"/scheduler/events/{event_id}/attendees/{attendee_id}/rsvp",
        params={"status": "accepted", "token": token},
    )
    assert accepted.status_code == 200
    assert "accepted" in accepted.text

    attendees = client.get(f"/scheduler/events/{event_id}/attendees").json()
    assert attendees[0]["status"] == "accepted"

    forged = client.get(
        f"/scheduler/events/{event_id}/attendees/{attendee_id}/rsvp",
        params={"status": "declined", "token": "0" * 64},
    )
    assert forged.status_code == 401
    assert "Invalid or expired RSVP token" in forged.text

    reminders = client.post(f"/scheduler/events/{event_id}/reminders")
    assert reminders.json() == {"status": "ok", "sent": 1}

    removed = client.delete(f"/scheduler/events/{event_id}/attendees", params={"email": "pat@example.com"})
    assert removed.json() == {"status": "ok", "deleted": True}


def test_security_headers_on_api_responses(client):
    response = client.get("/scheduler/links/missing-link")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Referrer-Policy"] == "no-referrer"
    assert "no-store" in response.headers["Cache-Control"]
