"""
Tests for FinanceStore: derived balances, budgets and the snapshot lifecycle.
"""

import asyncio
import gc
import weakref
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.models import AuditEventType, TransactionType
from finance_tracker.services.storage import Collection, NotFoundError
from finance_tracker.store import FinanceStore, UNKNOWN_ACCOUNT
from finance_tracker.validation import InvalidInputError

from tests.conftest import OWNER, TODAY


def run(coro):
    return asyncio.run(coro)


async def add_expense(store, account, amount, category="Dining", when=TODAY, payee="Cafe"):
    return await store.add_transaction({
        "account_id": account.id,
        "payee": payee,
        "category": category,
        "amount": Decimal(amount),
        "type": TransactionType.EXPENSE,
        "date": when,
    })


class TestAccounts:
    """Tests for accounts and derived balances."""

    def test_balance_is_derived(self, store):
        async def scenario():
            account = await store.add_account({"name": "Checking", "starting_balance": "1000"})
            await add_expense(store, account, "200")
            await store.add_transaction({
                "account_id": account.id, "payee": "Employer", "category": "Salary",
                "amount": Decimal("500"), "type": TransactionType.INCOME, "date": TODAY,
            })
            return account

        account = run(scenario())
        assert store.get_account_balance(account.id) == Decimal("1300.00")
        assert store.get_total_balance() == Decimal("1300.00")

    def test_deleting_transaction_updates_balance(self, store):
        async def scenario():
            account = await store.add_account({"name": "Checking", "starting_balance": "100"})
            txn = await add_expense(store, account, "40")
            assert store.get_account_balance(account.id) == Decimal("60.00")
            await store.delete_transaction(txn.id)
            return account

        account = run(scenario())
        assert store.get_account_balance(account.id) == Decimal("100.00")

    def test_deleting_account_leaves_others_alone(self, store):
        async def scenario():
            checking = await store.add_account({"name": "Checking", "starting_balance": "100"})
            savings = await store.add_account({"name": "Savings", "starting_balance": "500"})
            txn = await add_expense(store, checking, "30")
            await store.delete_account(checking.id)
            return savings, txn

        savings, txn = run(scenario())
        assert store.get_account_balance(savings.id) == Decimal("500.00")
        assert store.get_total_balance() == Decimal("500.00")
        # Orphaned transaction is kept and shown against an unknown account
        assert [t.id for t in store.transactions] == [txn.id]
        assert store.account_name(txn.account_id) == UNKNOWN_ACCOUNT

    def test_update_account_keeps_identity(self, store):
        async def scenario():
            account = await store.add_account({"name": "Checking"})
            updated = await store.update_account(account.id, {"name": "Everyday", "starting_balance": "5"})
            return account, updated

        account, updated = run(scenario())
        assert updated.id == account.id
        assert updated.owner_id == OWNER
        assert updated.created_at == account.created_at
        assert store.accounts[0].name == "Everyday"

    def test_invalid_account_raises_with_result(self, store):
        with pytest.raises(InvalidInputError) as exc_info:
            run(store.add_account({"name": ""}))
        assert exc_info.value.result.errors[0].field == "name"

    def test_unrepresentable_starting_balance_is_invalid_input(self, store):
        with pytest.raises(InvalidInputError) as exc_info:
            run(store.add_account({"name": "Huge", "starting_balance": "1e40"}))
        assert exc_info.value.result.errors[0].field == "starting_balance"
        assert store.accounts == []

    def test_other_owners_data_is_invisible(self, storage, store):
        other = FinanceStore(storage, "someone-else", today=TODAY)
        run(other.add_account({"name": "Theirs", "starting_balance": "999"}))
        run(store.refresh())
        assert store.accounts == []
        assert store.get_total_balance() == Decimal("0.00")

    def test_month_totals_and_recent(self, store):
        async def scenario():
            account = await store.add_account({"name": "Checking"})
            await add_expense(store, account, "10", when=date(2024, 3, 1))
            await add_expense(store, account, "99", when=date(2024, 2, 28))
            await store.add_transaction({
                "account_id": account.id, "payee": "Employer", "amount": Decimal("50"),
                "type": TransactionType.INCOME, "date": date(2024, 3, 2),
            })

        run(scenario())
        assert store.get_month_totals() == (Decimal("50.00"), Decimal("10.00"))
        assert [t.date for t in store.get_recent_transactions(2)] == [date(2024, 3, 2), date(2024, 3, 1)]


class TestBudgets:
    """Tests for monthly budget progress."""

    def test_over_budget(self, store):
        async def scenario():
            account = await store.add_account({"name": "Checking"})
            await store.add_budget({"category": "Dining", "amount": "500"})
            await add_expense(store, account, "400")
            await add_expense(store, account, "220", category="dining")
            # Last month and income don't count
            await add_expense(store, account, "1000", when=date(2024, 2, 10))

        run(scenario())
        [progress] = store.get_budget_progress()
        assert progress.spent == Decimal("620.00")
        assert progress.remaining == Decimal("-120.00")
        assert progress.is_over is True
        assert progress.percentage == Decimal("124.00")

    def test_zero_budget_percentage(self, store):
        run(store.add_budget({"category": "Fun", "amount": "0"}))
        [progress] = store.get_budget_progress()
        assert progress.percentage == Decimal("0.00")
        assert progress.is_over is False

    def test_duplicate_category_rejected(self, store):
        run(store.add_budget({"category": "Dining", "amount": "100"}))
        with pytest.raises(InvalidInputError):
            run(store.add_budget({"category": "dining", "amount": "200"}))


class TestRecurringThroughStore:
    """Tests for the recurring actions the pages call."""

    def _add_template(self, store, **overrides):
        async def scenario():
            account = await store.add_account({"name": "Checking"})
            data = {
                "account_id": account.id,
                "payee": "Rent",
                "category": "Housing",
                "amount": "1200",
                "frequency": "monthly",
                "start_date": date(2024, 3, 1),
            }
            data.update(overrides)
            return await store.add_recurring(data)

        return run(scenario())

    def test_double_click_mark_as_paid(self, store):
        recurring = self._add_template(store)

        shown = recurring.next_due_date

        async def scenario():
            return await asyncio.gather(
                store.mark_as_paid(recurring.id, expected_due_date=shown),
                store.mark_as_paid(recurring.id, expected_due_date=shown),
            )

        results = run(scenario())
        assert sum(1 for r in results if r is not None) == 1
        assert len(store.transactions) == 1
        assert store.recurring[0].next_due_date == date(2024, 4, 1)

    def test_second_click_after_refresh_is_ignored(self, store):
        """A click on a date that was already paid does nothing."""
        recurring = self._add_template(store)
        shown = recurring.next_due_date
        run(store.mark_as_paid(recurring.id, expected_due_date=shown))
        assert run(store.mark_as_paid(recurring.id, expected_due_date=shown)) is None
        assert run(store.skip_next_occurrence(recurring.id, expected_due_date=shown)) is None
        assert len(store.transactions) == 1

    def test_due_check_generates_and_refreshes(self, store, audit_storage):
        self._add_template(store)
        generated = run(store.generate_due_transactions())
        assert len(generated) == 1
        assert store.transactions[0].recurring_id == store.recurring[0].id
        assert any(e.event_type == AuditEventType.DUE_CHECK_COMPLETED for e in audit_storage.events)

    def test_moving_next_due_backwards_rejected(self, store):
        recurring = self._add_template(store, next_due_date=date(2024, 4, 1))
        with pytest.raises(InvalidInputError):
            run(store.update_recurring(recurring.id, {
                "account_id": recurring.account_id,
                "payee": "Rent",
                "amount": "1200",
                "start_date": date(2024, 3, 1),
                "next_due_date": date(2024, 3, 1),
            }))

    def test_upcoming_from_snapshot(self, store):
        self._add_template(store, start_date=date(2024, 3, 20))
        assert [r.payee for r in store.get_upcoming_recurring()] == ["Rent"]

    def test_sub_cent_amount_is_invalid_input(self, store):
        """0.001 rounds to 0.00, which is not a payable amount."""
        with pytest.raises(InvalidInputError) as exc_info:
            self._add_template(store, amount="0.001")
        assert exc_info.value.result.errors[0].field == "amount"
        assert store.recurring == []

    def test_unknown_template_not_found(self, store):
        with pytest.raises(NotFoundError):
            run(store.mark_as_paid(uuid4()))


class TestRealtime:
    """Tests for the change feed and the stale flag."""

    def test_other_session_write_marks_stale(self, storage, store):
        run(store.refresh())
        store.start_realtime()
        assert store.is_stale is False

        other_session = FinanceStore(storage, OWNER, today=TODAY)
        run(other_session.add_account({"name": "Added elsewhere"}))
        assert store.is_stale is True

        run(store.ensure_fresh())
        assert store.is_stale is False
        assert [a.name for a in store.accounts] == ["Added elsewhere"]

    def test_other_owner_write_does_not_mark_stale(self, storage, store):
        run(store.refresh())
        store.start_realtime()
        run(FinanceStore(storage, "someone-else", today=TODAY).add_account({"name": "X"}))
        assert store.is_stale is False

    def test_stop_realtime(self, storage, store):
        run(store.refresh())
        store.start_realtime()
        store.stop_realtime()
        run(FinanceStore(storage, OWNER, today=TODAY).add_account({"name": "Y"}))
        assert store.is_stale is False
        assert storage._subscribers == []

    def test_dropped_store_leaves_the_feed(self, storage):
        """A session that goes away without stop_realtime() is not kept alive."""
        abandoned = FinanceStore(storage, OWNER, today=TODAY)
        abandoned.start_realtime()
        ref = weakref.ref(abandoned)
        del abandoned
        gc.collect()
        assert ref() is None

        run(FinanceStore(storage, OWNER, today=TODAY).add_account({"name": "Z"}))
        assert storage._subscribers == []

    def test_fresh_store_starts_stale(self, store):
        assert store.is_stale is True
        run(store.ensure_fresh())
        assert store.is_stale is False
        assert storage_collections_empty(store)


def storage_collections_empty(store) -> bool:
    return not (store.accounts or store.transactions or store.budgets or store.recurring)
