"""Check-in ledger: one completion record per (goal, calendar day).

toggle() is the single write path used by clients. The ledger itself does
not refuse future dates; callers check with ensure_not_future() first.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from goalpost.errors import NotAuthenticated, ValidationError
from goalpost.models import DailyCheckIn
from goalpost.store import CHECK_INS, DocumentStore
from goalpost.workspace import now_local

logger = logging.getLogger(__name__)


def normalize_date(value: date | datetime) -> date:
    """Drop the time component."""
    if isinstance(value, datetime):
        return value.date()
    return value


def ensure_not_future(day: date | datetime, today: date) -> date:
    """Caller-side guard: check-ins may not be marked for days after today."""
    day = normalize_date(day)
    if day > today:
        raise ValidationError(f"Cannot check in for a future date: {day.isoformat()}")
    return day


class CheckInLedger:
    """Daily completion records for goals under automatic tracking."""

    def __init__(self, store: DocumentStore, owner: str | None):
        if not owner:
            raise NotAuthenticated()
        self.store = store
        self.owner = owner

    def all_records(self) -> list[DailyCheckIn]:
        docs = self.store.query(self.owner, CHECK_INS, order_by="date", descending=True)
        return [DailyCheckIn.from_dict(d) for d in docs]

    def records_for_goal(self, goal_id: str) -> list[DailyCheckIn]:
        docs = self.store.query(self.owner, CHECK_INS, where={"goalId": goal_id})
        return [DailyCheckIn.from_dict(d) for d in docs]

    def record_for_date(self, goal_id: str, day: date | datetime) -> DailyCheckIn | None:
        """The record for the goal on day; a completed row wins over stray incomplete ones."""
        day = normalize_date(day)
        matches = [c for c in self.records_for_goal(goal_id) if c.date == day]
        if not matches:
            return None
        for record in matches:
            if record.completed:
                return record
        return matches[0]

    def add_check_in(
        self, goal_id: str, day: date | datetime, completed: bool = True, notes: str | None = None
    ) -> str:
        record = DailyCheckIn(
            user_id=self.owner,
            goal_id=goal_id,
            date=normalize_date(day),
            completed=completed,
            notes=notes or None,
            created_at=now_local(self.store.root),
        )
        return self.store.create(self.owner, CHECK_INS, record.to_dict())

    def remove_check_in(self, check_in_id: str) -> None:
        if not self.store.delete(self.owner, CHECK_INS, check_in_id):
            logger.debug("Check-in %s already gone", check_in_id)

    def toggle(self, goal_id: str, day: date | datetime) -> bool:
        """Flip the day for the goal. Returns True if the day is now marked completed.

        A completed record is deleted. No record creates a completed one.
        A record that exists but is not completed is flipped to completed
        in place, which has the same outcome as creating a completed row.
        """
        day = normalize_date(day)
        existing = self.record_for_date(goal_id, day)
        if existing is None:
            self.add_check_in(goal_id, day, completed=True)
            return True
        if existing.completed:
            self.remove_check_in(existing.id)
            return False
        self.store.update(self.owner, CHECK_INS, existing.id, {"completed": True})
        return True
