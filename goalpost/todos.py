"""Todo CRUD, completion toggling, recurrence follow-ups and list views."""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Iterable

from goalpost.aggregator import GoalProgressAggregator
from goalpost.errors import ValidationError
from goalpost.models import PRIORITIES, TODO_SOURCES, TODO_STATUSES, RecurrencePattern, Todo, iso
from goalpost.recurrence import next_occurrence, validate_pattern
from goalpost.store import TODOS, DocumentStore
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"urgent": 0, "high": 1, "medium": 2, "low": 3}
SORT_OPTIONS = ("priority", "dueDate", "createdAt", "title")


def validate_todo(todo: dict[str, Any]) -> list[str]:
    """Validate a todo document and return list of errors (empty if valid)."""
    errors = []
    if not str(todo.get("title", "")).strip():
        errors.append("Missing required field: title")
    if "status" in todo and todo["status"] not in TODO_STATUSES:
        errors.append(f"Invalid status: {todo['status']}")
    if "priority" in todo and todo["priority"] not in PRIORITIES:
        errors.append(f"Invalid priority: {todo['priority']}")
    if "source" in todo and todo["source"] not in TODO_SOURCES:
        errors.append(f"Invalid source: {todo['source']}")

    if todo.get("isRecurring"):
        pattern = RecurrencePattern.from_dict(todo.get("recurrencePattern"))
        if pattern is None:
            errors.append("Recurring todo needs a recurrencePattern")
        else:
            errors.extend(validate_pattern(pattern))
    return errors


# ── Views ─────────────────────────────────────────────────────


def _sort_key(sort_by: str):
    if sort_by == "priority":
        return lambda t: PRIORITY_ORDER.get(t.priority, len(PRIORITY_ORDER))
    if sort_by == "dueDate":
        return lambda t: t.due_date.toordinal() if t.due_date else math.inf
    if sort_by == "createdAt":
        return lambda t: t.created_at.timestamp() if t.created_at else 0.0
    if sort_by == "title":
        return lambda t: t.title.lower()
    raise ValueError(f"Unknown sort option: {sort_by}")


def sort_todos(todos: Iterable[Todo], sort_by: str = "priority", direction: str = "asc") -> list[Todo]:
    return sorted(todos, key=_sort_key(sort_by), reverse=direction == "desc")


def today_todos(
    todos: Iterable[Todo], today: date, sort_by: str = "priority", direction: str = "asc"
) -> list[Todo]:
    """Scheduled today, due today, or undated and still pending. Completed sink to the bottom."""
    picked = [
        t for t in todos
        if t.scheduled_date == today
        or t.due_date == today
        or (t.scheduled_date is None and t.due_date is None and t.status == "pending")
    ]
    ordered = sort_todos(picked, sort_by, direction)
    return sorted(ordered, key=lambda t: t.status == "completed")


def todos_for_goal(todos: Iterable[Todo], goal_id: str) -> list[Todo]:
    return [t for t in todos if t.goal_id == goal_id]


def filter_todos(
    todos: Iterable[Todo],
    category_id: str | None = None,
    goal_id: str | None = None,
    statuses: Iterable[str] | None = None,
    priorities: Iterable[str] | None = None,
    date_range: tuple[date, date] | None = None,
    search: str | None = None,
) -> list[Todo]:
    """Todos matching every given filter. A date range matches on due date, else scheduled date."""
    statuses = set(statuses or [])
    priorities = set(priorities or [])
    needle = (search or "").lower()
    out = []
    for t in todos:
        if category_id and t.category_id != category_id:
            continue
        if goal_id and t.goal_id != goal_id:
            continue
        if statuses and t.status not in statuses:
            continue
        if priorities and t.priority not in priorities:
            continue
        if date_range:
            when = t.due_date or t.scheduled_date
            if when is None or not date_range[0] <= when <= date_range[1]:
                continue
        if needle and needle not in t.title.lower() and needle not in t.description.lower():
            continue
        out.append(t)
    return out


# ── CRUD ──────────────────────────────────────────────────────


def load_todos(store: DocumentStore, owner: str) -> list[Todo]:
    docs = store.query(owner, TODOS, order_by="createdAt", descending=True)
    return [Todo.from_dict(d) for d in docs]


def get_todo(store: DocumentStore, owner: str, todo_id: str) -> Todo | None:
    doc = store.get(owner, TODOS, todo_id)
    return Todo.from_dict(doc) if doc else None


def create_todo(
    store: DocumentStore, owner: str, data: dict[str, Any], doc_id: str | None = None
) -> Todo:
    """Validate and insert a todo. Raises ValidationError."""
    errors = validate_todo(data)
    if errors:
        raise ValidationError(errors)
    now = now_local(store.root)
    todo = Todo.from_dict({**data, "userId": owner})
    todo.created_at = todo.updated_at = now
    todo.completed_at = now if todo.status == "completed" else None
    todo.id = store.create(owner, TODOS, todo.to_dict(), doc_id=doc_id)
    logger.info("Created todo %s", todo.id)
    return todo


def update_todo(store: DocumentStore, owner: str, todo_id: str, updates: dict[str, Any]) -> Todo | None:
    """Apply a partial update. Returns None when the todo no longer exists."""
    todo = get_todo(store, owner, todo_id)
    if todo is None:
        return None
    merged = todo.to_dict()
    merged.update({k: v for k, v in updates.items() if k not in ("id", "userId")})
    errors = validate_todo(merged)
    if errors:
        raise ValidationError(errors)
    updated = Todo.from_dict({**merged, "id": todo_id})
    updated.updated_at = now_local(store.root)
    if updated.status != "completed":
        updated.completed_at = None
    elif updated.completed_at is None:
        updated.completed_at = updated.updated_at
    store.update(owner, TODOS, todo_id, updated.to_dict())
    return updated


def delete_todo(store: DocumentStore, owner: str, todo_id: str) -> bool:
    return store.delete(owner, TODOS, todo_id)


def create_next_recurrence(store: DocumentStore, owner: str, todo: Todo) -> str | None:
    """Insert the next instance of a recurring todo. Returns its id, or None when the series ended."""
    if not todo.is_recurring or todo.recurrence_pattern is None:
        return None
    base = todo.scheduled_date or todo.due_date or now_local(store.root).date()
    nxt = next_occurrence(base, todo.recurrence_pattern)
    if nxt is None:
        logger.info("Recurring todo %s reached its end date", todo.id)
        return None

    now = now_local(store.root)
    follow_up = Todo(
        user_id=owner,
        category_id=todo.category_id,
        goal_id=todo.goal_id,
        title=todo.title,
        description=todo.description,
        status="pending",
        priority=todo.priority,
        due_date=nxt if todo.due_date else None,
        scheduled_date=nxt if todo.scheduled_date else None,
        is_recurring=True,
        recurrence_pattern=todo.recurrence_pattern,
        source=todo.source,
        source_id=todo.source_id,
        tags=list(todo.tags),
        created_at=now,
        updated_at=now,
    )
    return store.create(owner, TODOS, follow_up.to_dict())


def toggle_todo_status(store: DocumentStore, owner: str, todo_id: str) -> str | None:
    """Flip a todo between completed and pending.

    Completing a recurring todo spawns its next instance. Either direction
    refreshes the linked goal's progress. Returns the new status, or None
    for an unknown id.
    """
    todo = get_todo(store, owner, todo_id)
    if todo is None:
        return None
    now = now_local(store.root)
    if todo.status == "completed":
        store.update(owner, TODOS, todo_id, {"status": "pending", "completedAt": None, "updatedAt": iso(now)})
        status = "pending"
    else:
        store.update(owner, TODOS, todo_id, {"status": "completed", "completedAt": iso(now), "updatedAt": iso(now)})
        status = "completed"
        if todo.is_recurring and todo.recurrence_pattern is not None:
            create_next_recurrence(store, owner, todo)

    if todo.goal_id:
        GoalProgressAggregator(store, owner).refresh_progress(todo.goal_id)
    return status
