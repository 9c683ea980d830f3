"""Streak and completion-percentage views over daily check-ins.

Pure functions: every call recomputes from the full check-in set, no
streak state is cached anywhere.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Iterable

from goalpost.models import DailyCheckIn, Goal


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negatives (40.5 -> 41)."""
    return int(math.floor(value + 0.5))


def completed_for_goal(check_ins: Iterable[DailyCheckIn], goal_id: str) -> list[DailyCheckIn]:
    return [c for c in check_ins if c.goal_id == goal_id and c.completed and c.date is not None]


def percent_complete(check_ins: Iterable[DailyCheckIn], goal_id: str, target_days: int) -> int:
    """round(100 * completed / target_days), capped at 100.

    Every completed check-in for the goal counts, including ones dated
    before the goal's tracking start date.
    """
    if target_days < 1:
        raise ValueError("target_days must be at least 1")
    done = len(completed_for_goal(check_ins, goal_id))
    return min(100, round_half_up(100 * done / target_days))


def current_streak(check_ins: Iterable[DailyCheckIn], goal_id: str, today: date) -> int:
    """Consecutive completed days ending at (and including) today."""
    records = sorted(
        completed_for_goal(check_ins, goal_id), key=lambda c: c.date, reverse=True
    )
    streak = 0
    cursor = today
    for record in records:
        if record.date == cursor:
            streak += 1
            cursor -= timedelta(days=1)
        elif record.date < cursor:
            break
        # dated after the cursor: a duplicate day already counted, or future
    return streak


def tracking_summary(goal: Goal, check_ins: Iterable[DailyCheckIn], today: date) -> dict[str, Any]:
    """Progress figures shown for a goal on its tracking card.

    Automatic goals with a target show the check-in percentage; everything
    else shows the stored progress value.
    """
    check_ins = list(check_ins)
    completed_days = len(completed_for_goal(check_ins, goal.id))
    if goal.is_auto_tracked:
        progress = percent_complete(check_ins, goal.id, goal.target_days)
        streak = current_streak(check_ins, goal.id, today)
    else:
        progress = goal.progress
        streak = 0
    return {
        "goalId": goal.id,
        "trackingMode": goal.tracking_mode,
        "targetDays": goal.target_days,
        "completedDays": completed_days,
        "progress": progress,
        "streak": streak,
    }
