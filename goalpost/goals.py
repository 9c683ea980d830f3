"""Goal CRUD, validation, hierarchy helpers and categories."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from goalpost.errors import ValidationError
from goalpost.models import (
    GOAL_STATUSES,
    GOAL_TIERS,
    PRIORITIES,
    TRACKING_MODES,
    Goal,
    GoalCategory,
)
from goalpost.store import CATEGORIES, GOALS, DocumentStore
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)


DEFAULT_CATEGORIES = [
    {"id": "professional", "name": "Professional", "color": "#3b82f6", "icon": "briefcase"},
    {"id": "personal", "name": "Personal", "color": "#10b981", "icon": "user"},
    {"id": "health", "name": "Health", "color": "#ef4444", "icon": "heart"},
    {"id": "learning", "name": "Learning", "color": "#f59e0b", "icon": "book"},
]


# ── Validation ────────────────────────────────────────────────


def validate_goal(goal: dict[str, Any]) -> list[str]:
    """Validate a goal document and return list of errors (empty if valid)."""
    errors = []
    if not str(goal.get("title", "")).strip():
        errors.append("Missing required field: title")
    if "type" not in goal:
        errors.append("Missing required field: type")
    elif goal["type"] not in GOAL_TIERS:
        errors.append(f"Invalid goal type: {goal['type']}")

    if "status" in goal and goal["status"] not in GOAL_STATUSES:
        errors.append(f"Invalid status: {goal['status']}")
    if "priority" in goal and goal["priority"] not in PRIORITIES:
        errors.append(f"Invalid priority: {goal['priority']}")

    progress = goal.get("progress", 0)
    if not isinstance(progress, int) or not 0 <= progress <= 100:
        errors.append("progress must be integer 0-100")

    mode = goal.get("trackingMode") or "manual"
    if mode not in TRACKING_MODES:
        errors.append(f"Invalid tracking mode: {mode}")
    elif mode == "automatic":
        days = goal.get("targetDays")
        if not isinstance(days, int) or days < 1:
            errors.append("automatic tracking needs targetDays >= 1")
    return errors


# ── Hierarchy ─────────────────────────────────────────────────


def find_goal(goals: Iterable[Goal], goal_id: str | None) -> Goal | None:
    for g in goals:
        if g.id == goal_id:
            return g
    return None


def child_goals(goals: Iterable[Goal], goal_id: str) -> list[Goal]:
    return [g for g in goals if g.parent_goal_id == goal_id]


def parent_options(goals: Iterable[Goal], goal_type: str, exclude_id: str | None = None) -> list[Goal]:
    """Goals that may be chosen as parent: strictly broader tier than goal_type."""
    if goal_type not in GOAL_TIERS:
        return []
    tier = GOAL_TIERS.index(goal_type)
    return [g for g in goals if g.tier < tier and g.id != exclude_id]


def orphaned_goals(goals: Iterable[Goal]) -> list[Goal]:
    """Goals whose parent reference no longer resolves (left behind by a delete)."""
    goals = list(goals)
    ids = {g.id for g in goals}
    return [g for g in goals if g.parent_goal_id and g.parent_goal_id not in ids]


def goals_by_type(
    goals: Iterable[Goal],
    goal_type: str,
    category_id: str | None = None,
    statuses: Iterable[str] | None = None,
    priorities: Iterable[str] | None = None,
    search: str | None = None,
) -> list[Goal]:
    statuses = set(statuses or [])
    priorities = set(priorities or [])
    needle = (search or "").lower()
    out = []
    for g in goals:
        if g.type != goal_type:
            continue
        if category_id and g.category_id != category_id:
            continue
        if statuses and g.status not in statuses:
            continue
        if priorities and g.priority not in priorities:
            continue
        if needle and needle not in g.title.lower() and needle not in g.description.lower():
            continue
        out.append(g)
    return out


def _check_parent(goals: list[Goal], goal: dict[str, Any], goal_id: str | None = None) -> list[str]:
    parent_id = goal.get("parentGoalId")
    if not parent_id:
        return []
    if parent_id == goal_id:
        return ["A goal cannot be its own parent"]
    allowed = {g.id for g in parent_options(goals, goal.get("type", ""), exclude_id=goal_id)}
    if parent_id not in allowed:
        return [f"Parent goal {parent_id} must exist and belong to a broader tier"]
    return []


# ── CRUD ──────────────────────────────────────────────────────


def load_goals(store: DocumentStore, owner: str) -> list[Goal]:
    docs = store.query(owner, GOALS, order_by="createdAt", descending=True)
    return [Goal.from_dict(d) for d in docs]


def create_goal(store: DocumentStore, owner: str, data: dict[str, Any]) -> Goal:
    """Validate and insert a goal. Raises ValidationError."""
    goals = load_goals(store, owner)
    errors = validate_goal(data) + _check_parent(goals, data)
    if errors:
        raise ValidationError(errors)

    now = now_local(store.root)
    goal = Goal.from_dict({**data, "userId": owner})
    goal.created_at = goal.updated_at = now
    if goal.tracking_mode == "automatic" and goal.tracking_start_date is None:
        goal.tracking_start_date = now.date()
    if goal.status == "completed" and goal.completed_date is None:
        goal.completed_date = now.date()
    goal.id = store.create(owner, GOALS, goal.to_dict())
    logger.info("Created %s goal %s", goal.type, goal.id)
    return goal


def update_goal(store: DocumentStore, owner: str, goal_id: str, updates: dict[str, Any]) -> Goal | None:
    """Apply a partial update. Returns None when the goal no longer exists."""
    goals = load_goals(store, owner)
    goal = find_goal(goals, goal_id)
    if goal is None:
        return None

    merged = goal.to_dict()
    merged.update({k: v for k, v in updates.items() if k not in ("id", "userId")})
    errors = validate_goal(merged) + _check_parent(goals, merged, goal_id)
    if errors:
        raise ValidationError(errors)

    updated = Goal.from_dict({**merged, "id": goal_id})
    updated.updated_at = now_local(store.root)
    if updated.status == "completed" and updated.completed_date is None:
        updated.completed_date = updated.updated_at.date()
    if updated.tracking_mode == "automatic" and updated.tracking_start_date is None:
        updated.tracking_start_date = updated.updated_at.date()
    store.update(owner, GOALS, goal_id, updated.to_dict())
    return updated


def delete_goal(store: DocumentStore, owner: str, goal_id: str) -> list[Goal]:
    """Delete a goal without cascading. Returns the children left orphaned."""
    goals = load_goals(store, owner)
    if find_goal(goals, goal_id) is None:
        return []
    orphans = child_goals(goals, goal_id)
    store.delete(owner, GOALS, goal_id)
    if orphans:
        logger.warning("Deleting goal %s orphaned %d child goal(s)", goal_id, len(orphans))
    return orphans


# ── Categories ────────────────────────────────────────────────


def load_categories(store: DocumentStore, owner: str) -> list[GoalCategory]:
    docs = store.query(owner, CATEGORIES, order_by="order")
    return [GoalCategory.from_dict(d) for d in docs]


def seed_categories(store: DocumentStore, owner: str) -> list[GoalCategory]:
    """Create the default category set for an owner that has none."""
    existing = load_categories(store, owner)
    if existing:
        return existing
    now = now_local(store.root)
    for order, entry in enumerate(DEFAULT_CATEGORIES):
        category = GoalCategory(
            user_id=owner, name=entry["name"], color=entry["color"], icon=entry["icon"],
            order=order, created_at=now, updated_at=now,
        )
        store.create(owner, CATEGORIES, category.to_dict(), doc_id=entry["id"])
    return load_categories(store, owner)
