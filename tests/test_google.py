"""Tests for goalpost/google.py: calendar and email arrivals."""

from datetime import datetime, timezone

import httpx

from goalpost.google import (
    calendar_event_to_arrival,
    email_to_arrival,
    parse_calendar_event,
    parse_email,
    sync_calendar,
    sync_email,
)
from goalpost.store import INBOX

EVENT = {
    "id": "evt1",
    "summary": "Design review",
    "start": {"dateTime": "2024-06-17T14:30:00Z"},
    "end": {"dateTime": "2024-06-17T15:00:00Z"},
    "location": "Room 4",
    "attendees": [{"email": "a@example.com"}, {"email": "b@example.com"}],
    "hangoutLink": "https://meet.test/abc",
}

MESSAGE = {
    "id": "msg1",
    "threadId": "thr1",
    "snippet": "Can you send the numbers?",
    "internalDate": "1718000000000",
    "labelIds": ["INBOX", "UNREAD", "IMPORTANT"],
    "payload": {"headers": [
        {"name": "From", "value": "Dana <dana@example.com>"},
        {"name": "To", "value": "me@example.com, team@example.com"},
        {"name": "Subject", "value": "Q2 numbers"},
    ]},
}


def test_parse_calendar_event():
    event = parse_calendar_event(EVENT)
    assert event.title == "Design review"
    assert event.start_time == datetime(2024, 6, 17, 14, 30, tzinfo=timezone.utc)
    assert event.is_all_day is False
    assert event.attendees == ["a@example.com", "b@example.com"]
    assert event.meeting_link == "https://meet.test/abc"


def test_all_day_event_arrival():
    event = parse_calendar_event({"id": "e2", "start": {"date": "2024-06-18"}, "end": {"date": "2024-06-19"}})
    assert event.title == "Untitled Event"
    assert event.is_all_day is True
    arrival = calendar_event_to_arrival(event)
    assert arrival["source"] == "calendar"
    assert arrival["sourceId"] == "e2"
    assert arrival["description"] == "All day - No location"


def test_timed_event_description():
    arrival = calendar_event_to_arrival(parse_calendar_event(EVENT))
    assert arrival["description"] == "2:30 PM - Room 4"
    assert arrival["sourceDate"].startswith("2024-06-17T14:30:00")


def test_email_arrival():
    email = parse_email(MESSAGE)
    assert email.sender == "Dana <dana@example.com>"
    assert email.to == ["me@example.com", "team@example.com"]
    assert email.is_read is False
    arrival = email_to_arrival(email)
    assert arrival["source"] == "email"
    assert arrival["title"] == "Q2 numbers"
    assert arrival["sourceId"] == "msg1"
    assert arrival["sourceUrl"].endswith("#inbox/thr1")


def test_email_without_subject():
    email = parse_email({"id": "m", "payload": {"headers": []}})
    assert email.subject == "(No Subject)"
    assert email.received_at is None


def test_sync_calendar_dedups(store, owner):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer tok"
        assert request.url.path == "/calendar/v3/calendars/primary/events"
        return httpx.Response(200, json={"items": [EVENT]})

    transport = httpx.MockTransport(handler)
    assert sync_calendar(store, owner, "tok", transport) == {"synced": 1, "errors": []}
    assert sync_calendar(store, owner, "tok", transport) == {"synced": 0, "errors": []}
    assert len(store.query(owner, INBOX)) == 1


def test_sync_email(store, owner):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/messages"):
            assert request.url.params["q"] == "is:unread"
            return httpx.Response(200, json={"messages": [{"id": "msg1"}]})
        return httpx.Response(200, json=MESSAGE)

    result = sync_email(store, owner, "tok", query="is:unread", transport=httpx.MockTransport(handler))
    assert result == {"synced": 1, "errors": []}
    assert store.query(owner, INBOX)[0]["sourceSender"] == "Dana <dana@example.com>"


def test_sync_expired_token_reports_error(store, owner):
    transport = httpx.MockTransport(lambda request: httpx.Response(401))
    result = sync_email(store, owner, "stale", transport=transport)
    assert result["synced"] == 0
    assert "expired" in result["errors"][0]
