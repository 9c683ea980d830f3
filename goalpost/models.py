"""Typed dataclasses for the goalpost data model.

All models use from_dict/to_dict for the document store boundary.
camelCase in stored documents is mapped to snake_case in Python.
Dates travel as ISO strings in documents and as date/datetime here.
Unknown keys are ignored; missing keys use defaults. The document id is
not part of to_dict(): the store keeps it as the document key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


GOAL_TIERS = ("long-term", "mid-term", "weekly", "daily")  # broadest first
GOAL_STATUSES = ("not-started", "in-progress", "completed", "on-hold", "cancelled")
PRIORITIES = ("low", "medium", "high", "urgent")
TRACKING_MODES = ("manual", "automatic")
TODO_STATUSES = ("pending", "in-progress", "completed", "cancelled")
TODO_SOURCES = ("manual", "inbox", "calendar", "slack", "email")
FREQUENCIES = ("daily", "weekly", "monthly", "yearly")
INBOX_SOURCES = ("slack", "email", "calendar")
INBOX_STATUSES = ("pending", "converted", "dismissed")


# ── Date conversion ───────────────────────────────────────────


def parse_date(value: Any) -> date | None:
    """Stored timestamp -> calendar date (time component dropped)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if len(text) > 10:
        return datetime.fromisoformat(text).date()
    return date.fromisoformat(text)


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value))


def iso(value: date | datetime | None) -> str | None:
    """date/datetime -> stored timestamp string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return value.isoformat()


# ── Categories ────────────────────────────────────────────────


@dataclass
class GoalCategory:
    id: str = ""
    user_id: str = ""
    name: str = ""
    color: str = ""
    icon: str = ""
    is_active: bool = True
    order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GoalCategory:
        return cls(
            id=str(d.get("id", "")),
            user_id=str(d.get("userId", "")),
            name=str(d.get("name", "")),
            color=str(d.get("color", "")),
            icon=str(d.get("icon", "")),
            is_active=bool(d.get("isActive", True)),
            order=int(d.get("order", 0)),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "isActive": self.is_active,
            "order": self.order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


# ── Goals ─────────────────────────────────────────────────────


@dataclass
class Goal:
    id: str = ""
    user_id: str = ""
    category_id: str = ""
    type: str = "daily"  # long-term, mid-term, weekly, daily
    title: str = ""
    description: str = ""
    status: str = "not-started"
    priority: str = "medium"
    progress: int = 0  # cached snapshot, 0-100
    parent_goal_id: str | None = None
    start_date: date | None = None
    target_date: date | None = None
    completed_date: date | None = None
    tracking_mode: str = "manual"
    target_days: int | None = None
    tracking_start_date: date | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def tier(self) -> int:
        """Position in GOAL_TIERS; lower is broader."""
        return GOAL_TIERS.index(self.type) if self.type in GOAL_TIERS else len(GOAL_TIERS)

    @property
    def is_auto_tracked(self) -> bool:
        return self.tracking_mode == "automatic" and bool(self.target_days)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Goal:
        target_days = d.get("targetDays")
        return cls(
            id=str(d.get("id", "")),
            user_id=str(d.get("userId", "")),
            category_id=str(d.get("categoryId", "")),
            type=str(d.get("type", "daily")),
            title=str(d.get("title", "")),
            description=str(d.get("description", "")),
            status=str(d.get("status", "not-started")),
            priority=str(d.get("priority", "medium")),
            progress=int(d.get("progress", 0) or 0),
            parent_goal_id=d.get("parentGoalId") or None,
            start_date=parse_date(d.get("startDate")),
            target_date=parse_date(d.get("targetDate")),
            completed_date=parse_date(d.get("completedDate")),
            tracking_mode=str(d.get("trackingMode") or "manual"),
            target_days=int(target_days) if target_days else None,
            tracking_start_date=parse_date(d.get("trackingStartDate")),
            tags=list(d.get("tags") or []),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "categoryId": self.category_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "progress": self.progress,
            "parentGoalId": self.parent_goal_id,
            "startDate": iso(self.start_date),
            "targetDate": iso(self.target_date),
            "completedDate": iso(self.completed_date),
            "trackingMode": self.tracking_mode,
            "targetDays": self.target_days,
            "trackingStartDate": iso(self.tracking_start_date),
            "tags": list(self.tags),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


# ── Check-ins ─────────────────────────────────────────────────


@dataclass
class DailyCheckIn:
    id: str = ""
    user_id: str = ""
    goal_id: str = ""
    date: date | None = None  # normalized: no time component
    completed: bool = False
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DailyCheckIn:
        return cls(
            id=str(d.get("id", "")),
            user_id=str(d.get("userId", "")),
            goal_id=str(d.get("goalId", "")),
            date=parse_date(d.get("date")),
            completed=bool(d.get("completed", False)),
            notes=d.get("notes") or None,
            created_at=parse_datetime(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "goalId": self.goal_id,
            "date": iso(self.date),
            "completed": self.completed,
            "notes": self.notes,
            "createdAt": iso(self.created_at),
        }


# ── Todos ─────────────────────────────────────────────────────


@dataclass
class RecurrencePattern:
    frequency: str = "daily"  # daily, weekly, monthly, yearly
    interval: int = 1
    days_of_week: list[int] = field(default_factory=list)  # 0-6, Sunday first
    day_of_month: int | None = None  # 1-31
    end_date: date | None = None  # exclusive upper bound

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> RecurrencePattern | None:
        if not d or not isinstance(d, dict):
            return None
        dom = d.get("dayOfMonth")
        return cls(
            frequency=str(d.get("frequency", "daily")),
            interval=int(d.get("interval", 1)),
            days_of_week=[int(x) for x in (d.get("daysOfWeek") or [])],
            day_of_month=int(dom) if dom else None,
            end_date=parse_date(d.get("endDate")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"frequency": self.frequency, "interval": self.interval}
        if self.days_of_week:
            d["daysOfWeek"] = list(self.days_of_week)
        if self.day_of_month:
            d["dayOfMonth"] = self.day_of_month
        d["endDate"] = iso(self.end_date)
        return d


@dataclass
class Todo:
    id: str = ""
    user_id: str = ""
    category_id: str = ""
    goal_id: str | None = None
    title: str = ""
    description: str = ""
    status: str = "pending"
    priority: str = "medium"
    due_date: date | None = None
    scheduled_date: date | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    source: str = "manual"  # manual, inbox, calendar, slack, email
    source_id: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Todo:
        return cls(
            id=str(d.get("id", "")),
            user_id=str(d.get("userId", "")),
            category_id=str(d.get("categoryId", "")),
            goal_id=d.get("goalId") or None,
            title=str(d.get("title", "")),
            description=str(d.get("description", "")),
            status=str(d.get("status", "pending")),
            priority=str(d.get("priority", "medium")),
            due_date=parse_date(d.get("dueDate")),
            scheduled_date=parse_date(d.get("scheduledDate")),
            is_recurring=bool(d.get("isRecurring", False)),
            recurrence_pattern=RecurrencePattern.from_dict(d.get("recurrencePattern")),
            source=str(d.get("source", "manual")),
            source_id=d.get("sourceId") or None,
            tags=list(d.get("tags") or []),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
            completed_at=parse_datetime(d.get("completedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "categoryId": self.category_id,
            "goalId": self.goal_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dueDate": iso(self.due_date),
            "scheduledDate": iso(self.scheduled_date),
            "isRecurring": self.is_recurring,
            "recurrencePattern": self.recurrence_pattern.to_dict() if self.recurrence_pattern else None,
            "source": self.source,
            "sourceId": self.source_id,
            "tags": list(self.tags),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "completedAt": iso(self.completed_at),
        }


# ── Inbox ─────────────────────────────────────────────────────


@dataclass
class InboxItem:
    id: str = ""
    user_id: str = ""
    source: str = "slack"
    status: str = "pending"  # pending, converted, dismissed
    title: str = ""
    description: str = ""
    original_content: str = ""
    source_id: str = ""  # id in the originating system, used for dedup
    source_url: str | None = None
    source_sender: str | None = None
    source_channel: str | None = None
    source_date: datetime | None = None
    converted_to_id: str | None = None
    converted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> InboxItem:
        return cls(
            id=str(d.get("id", "")),
            user_id=str(d.get("userId", "")),
            source=str(d.get("source", "slack")),
            status=str(d.get("status", "pending")),
            title=str(d.get("title", "")),
            description=str(d.get("description", "")),
            original_content=str(d.get("originalContent", "")),
            source_id=str(d.get("sourceId", "")),
            source_url=d.get("sourceUrl") or None,
            source_sender=d.get("sourceSender") or None,
            source_channel=d.get("sourceChannel") or None,
            source_date=parse_datetime(d.get("sourceDate")),
            converted_to_id=d.get("convertedToId") or None,
            converted_at=parse_datetime(d.get("convertedAt")),
            created_at=parse_datetime(d.get("createdAt")),
            updated_at=parse_datetime(d.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "source": self.source,
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "originalContent": self.original_content,
            "sourceId": self.source_id,
            "sourceUrl": self.source_url,
            "sourceSender": self.source_sender,
            "sourceChannel": self.source_channel,
            "sourceDate": iso(self.source_date),
            "convertedToId": self.converted_to_id,
            "convertedAt": iso(self.converted_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


# ── Integrations ──────────────────────────────────────────────


@dataclass
class SlackIntegration:
    access_token: str = ""
    bot_access_token: str = ""
    token_type: str = ""
    team_id: str = ""
    team_name: str = ""
    slack_user_id: str = ""
    scope: str = ""
    is_connected: bool = False
    connected_at: datetime | None = None
    last_sync_at: datetime | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> SlackIntegration:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            access_token=str(d.get("accessToken", "")),
            bot_access_token=str(d.get("botAccessToken", "")),
            token_type=str(d.get("tokenType", "")),
            team_id=str(d.get("teamId", "")),
            team_name=str(d.get("teamName", "")),
            slack_user_id=str(d.get("slackUserId", d.get("authedUserId", ""))),
            scope=str(d.get("scope", "")),
            is_connected=bool(d.get("isConnected", False)),
            connected_at=parse_datetime(d.get("connectedAt")),
            last_sync_at=parse_datetime(d.get("lastSyncAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "botAccessToken": self.bot_access_token,
            "tokenType": self.token_type,
            "teamId": self.team_id,
            "teamName": self.team_name,
            "slackUserId": self.slack_user_id,
            "scope": self.scope,
            "isConnected": self.is_connected,
            "connectedAt": iso(self.connected_at),
            "lastSyncAt": iso(self.last_sync_at),
        }


# ── External source records ───────────────────────────────────


@dataclass
class CalendarEvent:
    id: str = ""
    calendar_id: str = "primary"
    title: str = ""
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    is_all_day: bool = False
    location: str | None = None
    attendees: list[str] = field(default_factory=list)
    meeting_link: str | None = None


@dataclass
class EmailMessage:
    id: str = ""
    thread_id: str = ""
    sender: str = ""
    to: list[str] = field(default_factory=list)
    subject: str = ""
    snippet: str = ""
    received_at: datetime | None = None
    is_read: bool = False
    labels: list[str] = field(default_factory=list)
