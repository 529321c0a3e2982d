"""
Scheduling Domain

Availability, slot generation, conflict-free booking, rescheduling and
cancellation, public scheduling links and signed RSVP links.

Structure:
```
domain/scheduling/
├── schemas.py              # Request/response models
├── repository.py           # Database queries
├── time_calculator.py      # Timezone arithmetic (local midnight, weekdays)
├── availability_service.py # Weekly rules + date overrides -> daily windows
├── conflicts.py            # Buffered interval overlap
├── policy.py               # Duration, buffers, lead time, horizon
├── slot_generator.py       # Bookable slots (read path)
├── booking_service.py      # Book / reschedule / cancel / attendees (write path)
├── links_service.py        # Public scheduling links
├── token_service.py        # RSVP token issue/verify
├── ics.py                  # Calendar invites
├── notifications.py        # Notification dispatcher and triggers
├── exceptions.py           # Error taxonomy with reason codes
└── router.py               # /scheduler endpoints
```

WRITE PATH:
Book and reschedule re-read the owner's events and re-run the conflict check
under a per-owner lock, in the same transaction as the insert/update. Link
uses are claimed with a conditional UPDATE. Emails are queued after commit
and never fail the request.
"""
