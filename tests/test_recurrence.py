"""
Tests for recurrence date arithmetic.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_tracker.models import RecurrenceFrequency, RecurringTransaction
from finance_tracker.scheduling import (
    calculate_next_due_date,
    is_due,
    is_upcoming,
    next_due_after,
)


def make_recurring(**overrides) -> RecurringTransaction:
    data = {
        "owner_id": "user-1",
        "account_id": uuid4(),
        "payee": "Rent",
        "amount": Decimal("1200"),
        "frequency": RecurrenceFrequency.MONTHLY,
        "start_date": date(2024, 1, 1),
    }
    data.update(overrides)
    return RecurringTransaction(**data)


class TestCalculateNextDueDate:
    """Tests for one frequency step."""

    def test_weekly(self):
        assert calculate_next_due_date(date(2024, 1, 1), RecurrenceFrequency.WEEKLY) == date(2024, 1, 8)

    def test_biweekly(self):
        assert calculate_next_due_date(date(2024, 1, 1), RecurrenceFrequency.BIWEEKLY) == date(2024, 1, 15)

    def test_weekly_crosses_year(self):
        assert calculate_next_due_date(date(2024, 12, 28), RecurrenceFrequency.WEEKLY) == date(2025, 1, 4)

    def test_monthly(self):
        assert calculate_next_due_date(date(2024, 1, 15), RecurrenceFrequency.MONTHLY) == date(2024, 2, 15)

    def test_monthly_clamps_to_month_end(self):
        """Jan 31 lands on the last day of February, not in March."""
        assert calculate_next_due_date(date(2024, 1, 31), RecurrenceFrequency.MONTHLY) == date(2024, 2, 29)
        assert calculate_next_due_date(date(2023, 1, 31), RecurrenceFrequency.MONTHLY) == date(2023, 2, 28)

    def test_monthly_anchor_restores_day(self):
        """After a clamp, the anchor day pulls the date back to the 31st."""
        feb = calculate_next_due_date(date(2024, 1, 31), RecurrenceFrequency.MONTHLY, anchor_day=31)
        mar = calculate_next_due_date(feb, RecurrenceFrequency.MONTHLY, anchor_day=31)
        apr = calculate_next_due_date(mar, RecurrenceFrequency.MONTHLY, anchor_day=31)
        assert (feb, mar, apr) == (date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30))

    def test_yearly_leap_day(self):
        assert calculate_next_due_date(date(2024, 2, 29), RecurrenceFrequency.YEARLY) == date(2025, 2, 28)

    @pytest.mark.parametrize("frequency", list(RecurrenceFrequency))
    @pytest.mark.parametrize("start", [date(2024, 1, 31), date(2024, 2, 29), date(2023, 12, 31), date(2024, 6, 1)])
    def test_always_strictly_after(self, frequency, start):
        current = start
        for _ in range(24):
            following = calculate_next_due_date(current, frequency, anchor_day=start.day)
            assert following > current
            current = following


class TestTemplateHelpers:
    """Tests for the template-level helpers."""

    def test_next_due_after_uses_start_day_as_anchor(self):
        recurring = make_recurring(start_date=date(2024, 1, 31), next_due_date=date(2024, 2, 29))
        assert next_due_after(recurring) == date(2024, 3, 31)

    def test_is_due_includes_today_and_past(self):
        recurring = make_recurring(next_due_date=date(2024, 3, 1))
        assert is_due(recurring, date(2024, 3, 1)) is True
        assert is_due(recurring, date(2024, 3, 5)) is True
        assert is_due(recurring, date(2024, 2, 28)) is False

    def test_paused_is_never_due(self):
        recurring = make_recurring(next_due_date=date(2024, 3, 1), is_active=False)
        assert is_due(recurring, date(2024, 4, 1)) is False
        assert is_upcoming(recurring, date(2024, 3, 1)) is False

    def test_upcoming_window(self):
        recurring = make_recurring(next_due_date=date(2024, 3, 8))
        assert is_upcoming(recurring, date(2024, 3, 1), window_days=7) is True
        assert is_upcoming(recurring, date(2024, 3, 1), window_days=6) is False

    def test_overdue_counts_as_upcoming(self):
        recurring = make_recurring(next_due_date=date(2024, 2, 1))
        assert is_upcoming(recurring, date(2024, 3, 1)) is True
