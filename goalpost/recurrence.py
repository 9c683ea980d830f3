"""Next-occurrence computation for recurring todos.

Month and year steps keep the day-of-month and let it overflow into the
following month when the target month is shorter (Jan 31 + 1 month lands
on Mar 2 or Mar 3). Forcing dayOfMonth after a monthly step overflows the
same way. This rollover is accepted behaviour, not corrected.
"""

from __future__ import annotations

from datetime import date, timedelta

from goalpost.errors import ValidationError
from goalpost.models import FREQUENCIES, RecurrencePattern


def _with_overflow(year: int, month: int, day: int) -> date:
    """Build a date, spilling days past the end of the month into the next."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1) + timedelta(days=day - 1)


def add_months(d: date, months: int) -> date:
    return _with_overflow(d.year, d.month + months, d.day)


def add_years(d: date, years: int) -> date:
    return _with_overflow(d.year + years, d.month, d.day)


def validate_pattern(pattern: RecurrencePattern) -> list[str]:
    errors = []
    if pattern.frequency not in FREQUENCIES:
        errors.append(f"Invalid frequency: {pattern.frequency}")
    if not isinstance(pattern.interval, int) or pattern.interval < 1:
        errors.append("interval must be a positive integer")
    if pattern.day_of_month is not None and not 1 <= pattern.day_of_month <= 31:
        errors.append("dayOfMonth must be 1-31")
    if any(not 0 <= d <= 6 for d in pattern.days_of_week):
        errors.append("daysOfWeek entries must be 0-6")
    return errors


def next_occurrence(from_date: date, pattern: RecurrencePattern) -> date | None:
    """Next scheduled date after from_date, or None once the series has ended.

    end_date is an exclusive upper bound: a next date on or after it ends
    the series, as does a from_date already on or after it.
    """
    errors = validate_pattern(pattern)
    if errors:
        raise ValidationError(errors)

    if pattern.end_date is not None and from_date >= pattern.end_date:
        return None

    if pattern.frequency == "daily":
        nxt = from_date + timedelta(days=pattern.interval)
    elif pattern.frequency == "weekly":
        nxt = from_date + timedelta(days=7 * pattern.interval)
    elif pattern.frequency == "monthly":
        nxt = add_months(from_date, pattern.interval)
        if pattern.day_of_month:
            nxt = _with_overflow(nxt.year, nxt.month, pattern.day_of_month)
    else:
        nxt = add_years(from_date, pattern.interval)

    if pattern.end_date is not None and nxt >= pattern.end_date:
        return None
    return nxt
