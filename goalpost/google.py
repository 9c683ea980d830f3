"""Google Calendar and Gmail as inbox sources.

Fetches upcoming events and matching emails with a caller-supplied OAuth
bearer token, maps them to inbox arrivals and ingests them. Event and
message ids become the arrival sourceId, so repeated syncs do not
duplicate items.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from goalpost.errors import GoalpostError, IntegrationError
from goalpost.inbox import add_item
from goalpost.models import CalendarEvent, EmailMessage, iso
from goalpost.store import DocumentStore
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)

CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GMAIL_API = "https://www.googleapis.com/gmail/v1"
CALENDAR_WINDOW = timedelta(days=7)
EMAIL_DETAIL_LIMIT = 10
DEFAULT_EMAIL_QUERY = "is:unread is:important"


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _format_time(value: datetime) -> str:
    return value.strftime("%I:%M %p").lstrip("0")


def parse_calendar_event(raw: dict[str, Any]) -> CalendarEvent:
    start = raw.get("start") or {}
    end = raw.get("end") or {}
    entry_points = (raw.get("conferenceData") or {}).get("entryPoints") or [{}]
    return CalendarEvent(
        id=raw["id"],
        title=raw.get("summary") or "Untitled Event",
        description=raw.get("description") or None,
        start_time=_parse_time(start.get("dateTime") or start.get("date")),
        end_time=_parse_time(end.get("dateTime") or end.get("date")),
        is_all_day=not start.get("dateTime"),
        location=raw.get("location") or None,
        attendees=[a.get("email", "") for a in raw.get("attendees") or []],
        meeting_link=raw.get("hangoutLink") or entry_points[0].get("uri") or None,
    )


def parse_email(raw: dict[str, Any]) -> EmailMessage:
    headers = (raw.get("payload") or {}).get("headers") or []

    def header(name: str) -> str:
        for h in headers:
            if h.get("name", "").lower() == name.lower():
                return h.get("value") or ""
        return ""

    labels = list(raw.get("labelIds") or [])
    internal = raw.get("internalDate")
    return EmailMessage(
        id=raw["id"],
        thread_id=raw.get("threadId", ""),
        sender=header("From"),
        to=[part.strip() for part in header("To").split(",") if part.strip()],
        subject=header("Subject") or "(No Subject)",
        snippet=raw.get("snippet") or "",
        received_at=datetime.fromtimestamp(int(internal) / 1000, tz=timezone.utc) if internal else None,
        is_read="UNREAD" not in labels,
        labels=labels,
    )


def _content(record: CalendarEvent | EmailMessage) -> str:
    return json.dumps(asdict(record), default=iso, sort_keys=True)


def calendar_event_to_arrival(event: CalendarEvent) -> dict[str, Any]:
    if event.description:
        description = event.description
    else:
        when = "All day" if event.is_all_day or event.start_time is None else _format_time(event.start_time)
        description = f"{when} - {event.location or 'No location'}"
    return {
        "source": "calendar",
        "title": event.title,
        "description": description,
        "originalContent": _content(event),
        "sourceId": event.id,
        "sourceUrl": event.meeting_link,
        "sourceDate": iso(event.start_time),
    }


def email_to_arrival(email: EmailMessage) -> dict[str, Any]:
    return {
        "source": "email",
        "title": email.subject,
        "description": email.snippet,
        "originalContent": _content(email),
        "sourceId": email.id,
        "sourceUrl": f"https://mail.google.com/mail/u/0/#inbox/{email.thread_id}",
        "sourceSender": email.sender,
        "sourceDate": iso(email.received_at),
    }


class GoogleClient:
    """Calendar and Gmail reads with one bearer token."""

    def __init__(self, access_token: str, transport: httpx.BaseTransport | None = None):
        self._client = httpx.Client(
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
            timeout=httpx.Timeout(10.0, connect=5.0),
        )

    def __enter__(self) -> GoogleClient:
        return self

    def __exit__(self, *exc) -> None:
        self._client.close()

    def _get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = self._client.get(url, params=params)
        if response.status_code == 401:
            raise IntegrationError("Google session expired. Please reconnect your account.")
        response.raise_for_status()
        return response.json()

    def calendar_events(self, time_min: datetime, time_max: datetime, max_results: int = 50) -> list[CalendarEvent]:
        data = self._get(
            f"{CALENDAR_API}/calendars/primary/events",
            params={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return [parse_calendar_event(raw) for raw in data.get("items") or []]

    def emails(self, query: str = DEFAULT_EMAIL_QUERY, max_results: int = 20) -> list[EmailMessage]:
        listing = self._get(f"{GMAIL_API}/users/me/messages", params={"q": query, "maxResults": max_results})
        ids = [m["id"] for m in listing.get("messages") or []]
        out = []
        for message_id in ids[:EMAIL_DETAIL_LIMIT]:
            raw = self._get(
                f"{GMAIL_API}/users/me/messages/{message_id}",
                params={"format": "metadata", "metadataHeaders": ["From", "To", "Subject"]},
            )
            out.append(parse_email(raw))
        return out


def sync_calendar(
    store: DocumentStore, owner: str, access_token: str, transport: httpx.BaseTransport | None = None
) -> dict[str, Any]:
    """Ingest the next week of calendar events. Returns {synced, errors}."""
    errors: list[str] = []
    synced = 0
    now = now_local(store.root)
    try:
        with GoogleClient(access_token, transport) as client:
            events = client.calendar_events(now, now + CALENDAR_WINDOW)
    except (GoalpostError, httpx.HTTPError, ValueError) as e:
        logger.exception("Calendar fetch failed for %s", owner)
        return {"synced": 0, "errors": [str(e)]}

    for event in events:
        try:
            if add_item(store, owner, calendar_event_to_arrival(event)):
                synced += 1
        except GoalpostError:
            logger.exception("Failed to ingest calendar event %s", event.id)
            errors.append(f"Failed to sync event: {event.title}")
    return {"synced": synced, "errors": errors}


def sync_email(
    store: DocumentStore,
    owner: str,
    access_token: str,
    query: str = DEFAULT_EMAIL_QUERY,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """Ingest emails matching query. Returns {synced, errors}."""
    errors: list[str] = []
    synced = 0
    try:
        with GoogleClient(access_token, transport) as client:
            emails = client.emails(query)
    except (GoalpostError, httpx.HTTPError, ValueError) as e:
        logger.exception("Gmail fetch failed for %s", owner)
        return {"synced": 0, "errors": [str(e)]}

    for email in emails:
        try:
            if add_item(store, owner, email_to_arrival(email)):
                synced += 1
        except GoalpostError:
            logger.exception("Failed to ingest email %s", email.id)
            errors.append(f"Failed to sync email: {email.subject}")
    return {"synced": synced, "errors": errors}
