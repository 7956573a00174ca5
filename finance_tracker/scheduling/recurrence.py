"""
Recurrence date arithmetic.

Pure functions, no I/O. Monthly and yearly steps use calendar arithmetic
from dateutil: when the target month is shorter, the date is clamped to
its last day (Jan 31 -> Feb 28/29).

Clamping alone drifts: Jan 31 -> Feb 28 -> Mar 28. Passing the template's
anchor day (the day of month of its start date) pulls the date back to that
day whenever the target month has it: Jan 31 -> Feb 28 -> Mar 31.
"""

from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from finance_tracker.models.finance import RecurrenceFrequency, RecurringTransaction


def calculate_next_due_date(
    current_date: date,
    frequency: RecurrenceFrequency,
    anchor_day: Optional[int] = None,
) -> date:
    """
    Return the due date one frequency step after current_date.

    The result is always strictly after current_date.
    """
    if frequency == RecurrenceFrequency.WEEKLY:
        return current_date + timedelta(days=7)
    if frequency == RecurrenceFrequency.BIWEEKLY:
        return current_date + timedelta(days=14)
    if frequency == RecurrenceFrequency.MONTHLY:
        if anchor_day:
            # relativedelta clamps an absolute day to the month's length
            return current_date + relativedelta(months=1, day=anchor_day)
        return current_date + relativedelta(months=1)
    if frequency == RecurrenceFrequency.YEARLY:
        if anchor_day:
            return current_date + relativedelta(years=1, day=anchor_day)
        return current_date + relativedelta(years=1)
    raise ValueError(f"Unknown frequency: {frequency}")


def next_due_after(recurring: RecurringTransaction) -> date:
    """Next due date for a template, anchored on its start date's day."""
    return calculate_next_due_date(
        recurring.next_due_date,
        recurring.frequency,
        anchor_day=recurring.start_date.day,
    )


def is_due(recurring: RecurringTransaction, today: date) -> bool:
    return recurring.is_active and recurring.next_due_date <= today


def is_upcoming(
    recurring: RecurringTransaction,
    today: date,
    window_days: int = 7,
) -> bool:
    """
    Active and due on or before today + window_days.

    Overdue templates count as upcoming so they stay visible until paid.
    """
    horizon = today + timedelta(days=window_days)
    return recurring.is_active and recurring.next_due_date <= horizon
