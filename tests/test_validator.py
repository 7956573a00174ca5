"""
Tests for the two-stage form validator.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_tracker.models import Account, Budget, RecurringTransaction
from finance_tracker.validation import FinanceValidator


TODAY = date(2024, 3, 15)


class TestSchemaStage:
    """Stage 1: pydantic errors become issues."""

    def test_missing_fields_reported_per_field(self):
        validator = FinanceValidator()
        parsed, result = validator.validate_transaction({"payee": "Cafe"}, TODAY)
        assert parsed is None
        assert result.schema_valid is False
        fields = {issue.field for issue in result.errors}
        assert {"account_id", "amount", "date"} <= fields

    def test_valid_transaction(self):
        parsed, result = FinanceValidator().validate_transaction({
            "account_id": uuid4(),
            "payee": "Cafe",
            "amount": "4.5",
            "date": TODAY,
        }, TODAY)
        assert result.is_valid is True
        assert parsed.amount == Decimal("4.50")


class TestSemanticStage:
    """Stage 2: checks needing other records or today's date."""

    def test_future_transaction_warns(self):
        parsed, result = FinanceValidator(future_date_tolerance_days=7).validate_transaction({
            "account_id": uuid4(),
            "payee": "Cafe",
            "amount": "4.5",
            "date": date(2024, 3, 30),
        }, TODAY)
        assert result.is_valid is True
        assert result.warnings[0].issue_type == "future_date"

    def test_duplicate_account_name_warns(self):
        existing = [Account(owner_id="u", name="Checking")]
        _, result = FinanceValidator().validate_account({"name": "checking"}, existing)
        assert result.is_valid is True
        assert result.warnings[0].issue_type == "duplicate"

    def test_renaming_account_to_itself_is_fine(self):
        account = Account(owner_id="u", name="Checking")
        _, result = FinanceValidator().validate_account({"name": "Checking"}, [account], editing_id=account.id)
        assert result.issues == []

    def test_duplicate_budget_category_is_error(self):
        existing = [Budget(owner_id="u", category="Dining", amount=Decimal("100"))]
        _, result = FinanceValidator().validate_budget({"category": "DINING", "amount": "50"}, existing)
        assert result.is_valid is False
        assert result.errors[0].field == "category"

    def test_recurring_next_before_start(self):
        _, result = FinanceValidator().validate_recurring({
            "account_id": uuid4(),
            "payee": "Rent",
            "amount": "1000",
            "start_date": date(2024, 3, 1),
            "next_due_date": date(2024, 2, 1),
        })
        assert result.is_valid is False

    def test_recurring_next_cannot_move_backwards(self):
        current = RecurringTransaction(
            owner_id="u", account_id=uuid4(), payee="Rent", amount=Decimal("1000"),
            start_date=date(2024, 1, 1), next_due_date=date(2024, 4, 1),
        )
        _, result = FinanceValidator().validate_recurring({
            "account_id": current.account_id,
            "payee": "Rent",
            "amount": "1000",
            "start_date": date(2024, 1, 1),
            "next_due_date": date(2024, 3, 1),
        }, current=current)
        assert [issue.issue_type for issue in result.errors] == ["backwards"]

    def test_receipt_tax_above_total_warns(self):
        _, result = FinanceValidator().validate_receipt({"total_amount": "5", "tax_amount": "6"})
        assert result.is_valid is True
        assert result.warnings[0].field == "tax_amount"


class TestFriendlyMessages:
    """Tests for the lines shown under forms."""

    def test_errors_before_warnings_with_fix(self):
        existing = [Budget(owner_id="u", category="Dining", amount=Decimal("100"))]
        validator = FinanceValidator()
        _, result = validator.validate_budget({"category": "Dining", "amount": "50"}, existing)
        lines = validator.get_user_friendly_messages(result)
        assert lines == ["❌ A budget for 'Dining' already exists (Edit the existing budget instead)"]
