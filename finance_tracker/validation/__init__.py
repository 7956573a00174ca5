"""Form validation package."""

from finance_tracker.validation.validator import FinanceValidator, InvalidInputError

__all__ = ["FinanceValidator", "InvalidInputError"]
