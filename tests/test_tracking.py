"""Tests for goalpost/tracking.py and goalpost/streaks.py."""

from datetime import date, datetime, timedelta

import pytest

from goalpost.errors import NotAuthenticated, ValidationError
from goalpost.models import DailyCheckIn, Goal
from goalpost.store import CHECK_INS
from goalpost.streaks import current_streak, percent_complete, round_half_up, tracking_summary
from goalpost.tracking import CheckInLedger, ensure_not_future, normalize_date

TODAY = date(2024, 6, 15)


def _done(goal_id: str, *days: date) -> list[DailyCheckIn]:
    return [DailyCheckIn(id=f"c{i}", goal_id=goal_id, date=d, completed=True) for i, d in enumerate(days)]


# ── Ledger ────────────────────────────────────────────────────


def test_ledger_requires_owner(store):
    with pytest.raises(NotAuthenticated):
        CheckInLedger(store, "")


def test_toggle_twice_restores_state(store, owner):
    ledger = CheckInLedger(store, owner)
    assert ledger.toggle("g1", TODAY) is True
    assert ledger.record_for_date("g1", TODAY).completed is True
    assert ledger.toggle("g1", TODAY) is False
    assert ledger.record_for_date("g1", TODAY) is None
    assert ledger.records_for_goal("g1") == []


def test_toggle_normalizes_datetime(store, owner):
    ledger = CheckInLedger(store, owner)
    ledger.toggle("g1", datetime(2024, 6, 15, 18, 45))
    record = ledger.record_for_date("g1", datetime(2024, 6, 15, 7, 0))
    assert record is not None
    assert record.date == TODAY


def test_toggle_incomplete_record_flips_to_completed(store, owner):
    ledger = CheckInLedger(store, owner)
    ledger.add_check_in("g1", TODAY, completed=False)
    assert ledger.toggle("g1", TODAY) is True
    records = ledger.records_for_goal("g1")
    assert len(records) == 1
    assert records[0].completed is True


def test_record_for_date_prefers_completed(store, owner):
    ledger = CheckInLedger(store, owner)
    ledger.add_check_in("g1", TODAY, completed=False)
    ledger.add_check_in("g1", TODAY, completed=True)
    assert ledger.record_for_date("g1", TODAY).completed is True


def test_records_scoped_by_goal(store, owner):
    ledger = CheckInLedger(store, owner)
    ledger.toggle("g1", TODAY)
    ledger.toggle("g2", TODAY)
    ledger.toggle("g2", TODAY - timedelta(days=1))
    assert len(ledger.records_for_goal("g1")) == 1
    assert len(ledger.records_for_goal("g2")) == 2
    assert len(ledger.all_records()) == 3


def test_remove_missing_check_in_is_noop(store, owner):
    CheckInLedger(store, owner).remove_check_in("nope")
    assert store.query(owner, CHECK_INS) == []


def test_ensure_not_future():
    assert ensure_not_future(TODAY, TODAY) == TODAY
    assert ensure_not_future(datetime(2024, 6, 14, 9), TODAY) == date(2024, 6, 14)
    with pytest.raises(ValidationError, match="future"):
        ensure_not_future(TODAY + timedelta(days=1), TODAY)


def test_normalize_date():
    assert normalize_date(datetime(2024, 1, 2, 3, 4)) == date(2024, 1, 2)
    assert normalize_date(date(2024, 1, 2)) == date(2024, 1, 2)


# ── Streaks & progress ────────────────────────────────────────


def test_round_half_up():
    assert round_half_up(40.5) == 41
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_streak_three_consecutive_days():
    records = _done("g", TODAY, TODAY - timedelta(days=1), TODAY - timedelta(days=2), TODAY - timedelta(days=4))
    assert current_streak(records, "g", TODAY) == 3


def test_streak_gap_at_yesterday_is_zero():
    records = _done("g", TODAY - timedelta(days=2))
    assert current_streak(records, "g", TODAY) == 0


def test_streak_ignores_incomplete_and_other_goals():
    records = _done("g", TODAY) + _done("other", TODAY - timedelta(days=1))
    records.append(DailyCheckIn(goal_id="g", date=TODAY - timedelta(days=1), completed=False))
    assert current_streak(records, "g", TODAY) == 1


def test_streak_duplicate_day_counted_once():
    records = _done("g", TODAY, TODAY, TODAY - timedelta(days=1))
    assert current_streak(records, "g", TODAY) == 2


def test_percent_complete_half():
    records = _done("g", *[TODAY - timedelta(days=i) for i in range(15)])
    assert percent_complete(records, "g", 30) == 50


def test_percent_complete_clamped():
    records = _done("g", *[TODAY - timedelta(days=i) for i in range(31)])
    assert percent_complete(records, "g", 30) == 100


def test_percent_complete_counts_days_before_tracking_start():
    records = _done("g", date(2020, 1, 1), TODAY)
    assert percent_complete(records, "g", 4) == 50


def test_percent_complete_rejects_zero_target():
    with pytest.raises(ValueError):
        percent_complete([], "g", 0)


def test_tracking_summary_automatic():
    goal = Goal(id="g", tracking_mode="automatic", target_days=10, progress=5)
    records = _done("g", TODAY, TODAY - timedelta(days=1))
    summary = tracking_summary(goal, records, TODAY)
    assert summary["progress"] == 20
    assert summary["streak"] == 2
    assert summary["completedDays"] == 2


def test_tracking_summary_manual_uses_stored_progress():
    goal = Goal(id="g", tracking_mode="manual", progress=35)
    summary = tracking_summary(goal, _done("g", TODAY), TODAY)
    assert summary["progress"] == 35
    assert summary["streak"] == 0
