"""
Two-Stage Form Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, positive amounts
- Delegated to the pydantic input models
- Each pydantic error becomes one ValidationIssue

STAGE 2 - SEMANTIC VALIDATION:
- Checks that need other records or today's date
- Budget category uniqueness, recurring schedule direction,
  far-future transaction dates

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the UI shows them next to the form.
"""

from datetime import date, timedelta
from typing import Any, Optional, Sequence, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError

from finance_tracker.models.finance import (
    Account,
    AccountInput,
    Budget,
    BudgetInput,
    RecurringInput,
    RecurringTransaction,
    TransactionInput,
)
from finance_tracker.models.receipt import ReceiptInput
from finance_tracker.models.validation import ValidationIssue, ValidationResult


InputModel = TypeVar("InputModel", bound=BaseModel)


class InvalidInputError(Exception):
    """Raised by mutators when a form fails validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Invalid {result.entity_type}: {messages}")


class FinanceValidator:
    """
    Validates user-submitted finance forms.

    Every validate_* method returns (parsed_input_or_None, ValidationResult).
    The parsed input is None only when schema validation failed.
    """

    def __init__(self, future_date_tolerance_days: int = 7):
        self._future_tolerance = timedelta(days=future_date_tolerance_days)

    def _validate_schema(
        self,
        model_cls: type[InputModel],
        data: dict[str, Any],
    ) -> tuple[Optional[InputModel], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_model_or_None, list_of_issues)
        """
        try:
            return model_cls.model_validate(data), []
        except ValidationError as e:
            issues = []
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "form"
                issues.append(ValidationIssue(
                    field=field,
                    issue_type=error["type"],
                    message=f"{field.replace('_', ' ').capitalize()}: {error['msg']}",
                    severity="error",
                ))
            return None, issues

    @staticmethod
    def _result(
        entity_type: str,
        schema_issues: list[ValidationIssue],
        semantic_issues: list[ValidationIssue],
    ) -> ValidationResult:
        return ValidationResult(
            entity_type=entity_type,
            schema_valid=not schema_issues,
            semantic_valid=not any(i.severity == "error" for i in semantic_issues),
            issues=schema_issues + semantic_issues,
        )

    def validate_account(
        self,
        data: dict[str, Any],
        existing: Sequence[Account] = (),
        editing_id: Optional[UUID] = None,
    ) -> tuple[Optional[AccountInput], ValidationResult]:
        parsed, schema_issues = self._validate_schema(AccountInput, data)
        semantic = []

        if parsed is not None:
            duplicate = any(
                a.name.lower() == parsed.name.lower() and a.id != editing_id
                for a in existing
            )
            if duplicate:
                # Imports match accounts by name, so duplicates are ambiguous
                semantic.append(ValidationIssue(
                    field="name",
                    issue_type="duplicate",
                    message=f"You already have an account named '{parsed.name}'",
                    severity="warning",
                    suggested_fix="Use a distinct name so CSV imports can tell them apart",
                ))

        return parsed, self._result("account", schema_issues, semantic)

    def validate_transaction(
        self,
        data: dict[str, Any],
        today: Optional[date] = None,
    ) -> tuple[Optional[TransactionInput], ValidationResult]:
        parsed, schema_issues = self._validate_schema(TransactionInput, data)
        semantic = []
        today = today or date.today()

        if parsed is not None and parsed.date > today + self._future_tolerance:
            semantic.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({parsed.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        return parsed, self._result("transaction", schema_issues, semantic)

    def validate_budget(
        self,
        data: dict[str, Any],
        existing: Sequence[Budget] = (),
        editing_id: Optional[UUID] = None,
    ) -> tuple[Optional[BudgetInput], ValidationResult]:
        parsed, schema_issues = self._validate_schema(BudgetInput, data)
        semantic = []

        if parsed is not None:
            taken = any(
                b.category.lower() == parsed.category.lower() and b.id != editing_id
                for b in existing
            )
            if taken:
                semantic.append(ValidationIssue(
                    field="category",
                    issue_type="duplicate",
                    message=f"A budget for '{parsed.category}' already exists",
                    severity="error",
                    suggested_fix="Edit the existing budget instead",
                ))

        return parsed, self._result("budget", schema_issues, semantic)

    def validate_recurring(
        self,
        data: dict[str, Any],
        current: Optional[RecurringTransaction] = None,
    ) -> tuple[Optional[RecurringInput], ValidationResult]:
        """
        Validate a recurring template form.

        Args:
            data: Submitted fields
            current: The stored template when editing, None when creating
        """
        parsed, schema_issues = self._validate_schema(RecurringInput, data)
        semantic = []

        if parsed is not None:
            if parsed.next_due_date < parsed.start_date:
                semantic.append(ValidationIssue(
                    field="next_due_date",
                    issue_type="inconsistent",
                    message="Next due date cannot be before start date",
                    severity="error",
                ))
            if current is not None and parsed.next_due_date < current.next_due_date:
                semantic.append(ValidationIssue(
                    field="next_due_date",
                    issue_type="backwards",
                    message=(
                        f"Next due date can't move back from {current.next_due_date}; "
                        "past occurrences are never regenerated"
                    ),
                    severity="error",
                    suggested_fix="Add the missed transaction manually instead",
                ))

        return parsed, self._result("recurring", schema_issues, semantic)

    def validate_receipt(
        self,
        data: dict[str, Any],
    ) -> tuple[Optional[ReceiptInput], ValidationResult]:
        parsed, schema_issues = self._validate_schema(ReceiptInput, data)
        semantic = []

        if (
            parsed is not None
            and parsed.total_amount is not None
            and parsed.tax_amount is not None
            and parsed.tax_amount > parsed.total_amount
        ):
            semantic.append(ValidationIssue(
                field="tax_amount",
                issue_type="inconsistent",
                message="Tax is larger than the total",
                severity="warning",
                suggested_fix="Please verify both amounts",
            ))

        return parsed, self._result("receipt", schema_issues, semantic)

    def get_user_friendly_messages(self, result: ValidationResult) -> list[str]:
        """
        Lines to show under a form.

        This is what we show to non-technical users.
        """
        lines = []
        for issue in result.errors:
            line = f"❌ {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        for issue in result.warnings:
            line = f"⚠️ {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        return lines
