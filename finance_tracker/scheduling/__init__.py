"""Recurring transaction scheduling."""

from finance_tracker.scheduling.recurrence import (
    calculate_next_due_date,
    is_due,
    is_upcoming,
    next_due_after,
)
from finance_tracker.scheduling.scheduler import (
    RecurringScheduler,
    build_occurrence,
    occurrence_id,
)

__all__ = [
    "RecurringScheduler",
    "build_occurrence",
    "calculate_next_due_date",
    "is_due",
    "is_upcoming",
    "next_due_after",
    "occurrence_id",
]
