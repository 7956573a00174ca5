"""
Finance Store

The explicit application state for one signed-in user: snapshots of the
four finance collections plus every reader and mutator the pages need.

DESIGN DECISION: Snapshot + invalidate-and-reload.
- refresh() reloads all four collections from storage
- every mutation writes, audits, then refreshes
- start_realtime() subscribes to the storage change feed; a change to this
  owner's data marks the snapshot stale and the next ensure_fresh() reloads

Balances and budget progress are DERIVED on every read and never stored.
Dangling account references are tolerated everywhere.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import (
    Account,
    Budget,
    BudgetProgress,
    OwnedRecord,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from finance_tracker.scheduling import RecurringScheduler, is_upcoming
from finance_tracker.services.storage import (
    Collection,
    NotFoundError,
    RecordChange,
    RecordStorageInterface,
    Subscription,
)
from finance_tracker.validation import FinanceValidator, InvalidInputError


logger = structlog.get_logger(__name__)

FINANCE_COLLECTIONS = (
    Collection.ACCOUNTS,
    Collection.TRANSACTIONS,
    Collection.BUDGETS,
    Collection.RECURRING,
)

UNKNOWN_ACCOUNT = "Unknown account"

ZERO = Decimal("0.00")


class FinanceStore:
    """
    Accounts, transactions, budgets and recurring templates of one owner.

    Usage:
        store = FinanceStore(storage, owner_id, audit_logger)
        await store.refresh()
        await store.add_account({"name": "Checking", "starting_balance": "100"})
        store.get_total_balance()
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[FinanceValidator] = None,
        today: Optional[date] = None,
        upcoming_window_days: int = 7,
    ):
        """
        Args:
            storage: Record storage backend
            owner_id: Identity of the signed-in user; scopes every query
            audit_logger: Audit trail; a local-only logger when None
            validator: Form validator
            today: Fixed "today" for tests. None follows the calendar.
            upcoming_window_days: How far ahead recurring items count as upcoming
        """
        self._storage = storage
        self.owner_id = owner_id
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or FinanceValidator()
        self._today = today
        self._window_days = upcoming_window_days
        self.scheduler = RecurringScheduler(
            storage,
            owner_id,
            audit_logger=self._audit,
            upcoming_window_days=upcoming_window_days,
        )

        self.accounts: list[Account] = []
        self.transactions: list[Transaction] = []
        self.budgets: list[Budget] = []
        self.recurring: list[RecurringTransaction] = []

        self._stale = True
        self._subscription: Optional[Subscription] = None

    # =========================================================================
    # SNAPSHOT
    # =========================================================================

    def today(self) -> date:
        return self._today or date.today()

    @property
    def is_stale(self) -> bool:
        return self._stale

    async def refresh(self) -> None:
        """Reload all four collections for this owner."""
        accounts = await self._storage.list_records(Collection.ACCOUNTS, self.owner_id)
        transactions = await self._storage.list_records(Collection.TRANSACTIONS, self.owner_id)
        budgets = await self._storage.list_records(Collection.BUDGETS, self.owner_id)
        recurring = await self._storage.list_records(Collection.RECURRING, self.owner_id)

        self.accounts = sorted(accounts, key=lambda a: a.created_at)
        self.transactions = sorted(
            transactions,
            key=lambda t: (t.date, t.created_at),
            reverse=True,
        )
        self.budgets = sorted(budgets, key=lambda b: b.category.lower())
        self.recurring = sorted(recurring, key=lambda r: r.next_due_date)
        self._stale = False

    async def ensure_fresh(self) -> None:
        if self._stale:
            await self.refresh()

    def _on_change(self, change: RecordChange) -> None:
        if change.owner_id == self.owner_id and change.collection in FINANCE_COLLECTIONS:
            self._stale = True

    def start_realtime(self) -> None:
        """
        Invalidate the snapshot whenever this owner's data changes.

        The feed holds this store weakly, so a store dropped without
        stop_realtime() simply stops receiving changes.
        """
        if self._subscription is None:
            self._subscription = self._storage.subscribe(self._on_change)

    def stop_realtime(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    # =========================================================================
    # GENERIC MUTATION HELPERS
    # =========================================================================

    def _find(self, records: Sequence[OwnedRecord], record_id: UUID, label: str):
        for record in records:
            if record.id == record_id:
                return record
        raise NotFoundError(f"{label} not found: {record_id}")

    async def _insert(
        self,
        collection: Collection,
        record: OwnedRecord,
        event_type: AuditEventType,
        entity_type: str,
        description: str,
    ) -> None:
        await self._storage.insert_record(collection, record)
        await self._audit.log_record_changed(
            event_type=event_type,
            owner_id=self.owner_id,
            entity_type=entity_type,
            entity_id=record.id,
            description=description,
        )
        await self.refresh()

    async def _update(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict[str, Any],
        event_type: AuditEventType,
        entity_type: str,
        description: str,
    ) -> OwnedRecord:
        updated = await self._storage.update_record(collection, record_id, changes)
        await self._audit.log_record_changed(
            event_type=event_type,
            owner_id=self.owner_id,
            entity_type=entity_type,
            entity_id=record_id,
            description=description,
            details={"fields": sorted(changes)},
        )
        await self.refresh()
        return updated

    async def _delete(
        self,
        collection: Collection,
        record_id: UUID,
        event_type: AuditEventType,
        entity_type: str,
        description: str,
    ) -> bool:
        deleted = await self._storage.delete_record(collection, record_id)
        if deleted:
            await self._audit.log_record_changed(
                event_type=event_type,
                owner_id=self.owner_id,
                entity_type=entity_type,
                entity_id=record_id,
                description=description,
            )
        await self.refresh()
        return deleted

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def add_account(self, data: dict[str, Any]) -> Account:
        parsed, result = self._validator.validate_account(data, self.accounts)
        if not result.is_valid:
            raise InvalidInputError(result)

        account = Account(owner_id=self.owner_id, **parsed.model_dump())
        await self._insert(
            Collection.ACCOUNTS, account,
            AuditEventType.ACCOUNT_CREATED, "account",
            f"Account created: {account.name}",
        )
        return account

    async def update_account(self, account_id: UUID, data: dict[str, Any]) -> Account:
        self._find(self.accounts, account_id, "Account")
        parsed, result = self._validator.validate_account(data, self.accounts, editing_id=account_id)
        if not result.is_valid:
            raise InvalidInputError(result)

        return await self._update(
            Collection.ACCOUNTS, account_id, parsed.model_dump(exclude_unset=True),
            AuditEventType.ACCOUNT_UPDATED, "account",
            f"Account updated: {parsed.name}",
        )

    async def delete_account(self, account_id: UUID) -> bool:
        """
        Delete an account.

        Its transactions and recurring templates are kept and show up as
        belonging to an unknown account.
        """
        account = self._find(self.accounts, account_id, "Account")
        return await self._delete(
            Collection.ACCOUNTS, account_id,
            AuditEventType.ACCOUNT_DELETED, "account",
            f"Account deleted: {account.name}",
        )

    def account_name(self, account_id: UUID) -> str:
        for account in self.accounts:
            if account.id == account_id:
                return account.name
        return UNKNOWN_ACCOUNT

    def get_account_balance(self, account_id: UUID) -> Decimal:
        """Starting balance plus the signed sum of the account's transactions."""
        account = self._find(self.accounts, account_id, "Account")
        movement = sum(
            (t.signed_amount for t in self.transactions if t.account_id == account_id),
            ZERO,
        )
        return account.starting_balance + movement

    def get_account_balances(self) -> dict[UUID, Decimal]:
        return {a.id: self.get_account_balance(a.id) for a in self.accounts}

    def get_total_balance(self) -> Decimal:
        return sum(self.get_account_balances().values(), ZERO)

    def get_transactions_for_account(self, account_id: UUID) -> list[Transaction]:
        return [t for t in self.transactions if t.account_id == account_id]

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(self, data: dict[str, Any]) -> Transaction:
        parsed, result = self._validator.validate_transaction(data, self.today())
        if not result.is_valid:
            raise InvalidInputError(result)

        transaction = Transaction(owner_id=self.owner_id, **parsed.model_dump())
        await self._insert(
            Collection.TRANSACTIONS, transaction,
            AuditEventType.TRANSACTION_CREATED, "transaction",
            f"Transaction created: {transaction.payee} {transaction.amount}",
        )
        return transaction

    async def update_transaction(self, transaction_id: UUID, data: dict[str, Any]) -> Transaction:
        self._find(self.transactions, transaction_id, "Transaction")
        parsed, result = self._validator.validate_transaction(data, self.today())
        if not result.is_valid:
            raise InvalidInputError(result)

        return await self._update(
            Collection.TRANSACTIONS, transaction_id, parsed.model_dump(exclude_unset=True),
            AuditEventType.TRANSACTION_UPDATED, "transaction",
            f"Transaction updated: {parsed.payee}",
        )

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        transaction = self._find(self.transactions, transaction_id, "Transaction")
        return await self._delete(
            Collection.TRANSACTIONS, transaction_id,
            AuditEventType.TRANSACTION_DELETED, "transaction",
            f"Transaction deleted: {transaction.payee} {transaction.amount}",
        )

    def get_recent_transactions(self, limit: int = 5) -> list[Transaction]:
        return self.transactions[:limit]

    def get_month_totals(self) -> tuple[Decimal, Decimal]:
        """(income, expenses) for the current calendar month."""
        today = self.today()
        income = expenses = ZERO
        for t in self.transactions:
            if (t.date.year, t.date.month) != (today.year, today.month):
                continue
            if t.type == TransactionType.INCOME:
                income += t.amount
            else:
                expenses += t.amount
        return income, expenses

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def add_budget(self, data: dict[str, Any]) -> Budget:
        parsed, result = self._validator.validate_budget(data, self.budgets)
        if not result.is_valid:
            raise InvalidInputError(result)

        budget = Budget(owner_id=self.owner_id, **parsed.model_dump())
        await self._insert(
            Collection.BUDGETS, budget,
            AuditEventType.BUDGET_CREATED, "budget",
            f"Budget created: {budget.category} {budget.amount}",
        )
        return budget

    async def update_budget(self, budget_id: UUID, data: dict[str, Any]) -> Budget:
        self._find(self.budgets, budget_id, "Budget")
        parsed, result = self._validator.validate_budget(data, self.budgets, editing_id=budget_id)
        if not result.is_valid:
            raise InvalidInputError(result)

        return await self._update(
            Collection.BUDGETS, budget_id, parsed.model_dump(exclude_unset=True),
            AuditEventType.BUDGET_UPDATED, "budget",
            f"Budget updated: {parsed.category}",
        )

    async def delete_budget(self, budget_id: UUID) -> bool:
        budget = self._find(self.budgets, budget_id, "Budget")
        return await self._delete(
            Collection.BUDGETS, budget_id,
            AuditEventType.BUDGET_DELETED, "budget",
            f"Budget deleted: {budget.category}",
        )

    def get_category_spending(self, category: str) -> Decimal:
        """Expenses in a category (case-insensitive) this calendar month."""
        today = self.today()
        wanted = category.lower()
        return sum(
            (
                t.amount for t in self.transactions
                if t.type == TransactionType.EXPENSE
                and t.category.lower() == wanted
                and t.date.year == today.year
                and t.date.month == today.month
            ),
            ZERO,
        )

    def get_budget_progress(self) -> list[BudgetProgress]:
        progress = []
        for budget in self.budgets:
            spent = self.get_category_spending(budget.category)
            if budget.amount > 0:
                percentage = (spent / budget.amount * 100).quantize(Decimal("0.01"))
            else:
                percentage = ZERO
            progress.append(BudgetProgress(
                budget=budget,
                spent=spent,
                remaining=budget.amount - spent,
                percentage=percentage,
                is_over=spent > budget.amount,
            ))
        return progress

    # =========================================================================
    # RECURRING
    # =========================================================================

    async def add_recurring(self, data: dict[str, Any]) -> RecurringTransaction:
        parsed, result = self._validator.validate_recurring(data)
        if not result.is_valid:
            raise InvalidInputError(result)

        recurring = RecurringTransaction(owner_id=self.owner_id, **parsed.model_dump())
        await self._insert(
            Collection.RECURRING, recurring,
            AuditEventType.RECURRING_CREATED, "recurring",
            f"Recurring created: {recurring.payee} ({recurring.frequency.value})",
        )
        return recurring

    async def update_recurring(
        self,
        recurring_id: UUID,
        data: dict[str, Any],
    ) -> RecurringTransaction:
        current = self._find(self.recurring, recurring_id, "Recurring transaction")
        parsed, result = self._validator.validate_recurring(data, current=current)
        if not result.is_valid:
            raise InvalidInputError(result)

        return await self._update(
            Collection.RECURRING, recurring_id, parsed.model_dump(exclude_unset=True),
            AuditEventType.RECURRING_UPDATED, "recurring",
            f"Recurring updated: {parsed.payee}",
        )

    async def delete_recurring(self, recurring_id: UUID) -> bool:
        """Delete a template. Transactions it generated are kept."""
        recurring = self._find(self.recurring, recurring_id, "Recurring transaction")
        return await self._delete(
            Collection.RECURRING, recurring_id,
            AuditEventType.RECURRING_DELETED, "recurring",
            f"Recurring deleted: {recurring.payee}",
        )

    async def mark_as_paid(
        self,
        recurring_id: UUID,
        expected_due_date: Optional[date] = None,
    ) -> Optional[Transaction]:
        """
        Pay the occurrence the user was shown for this template.

        Pass the due date that was on screen; it defaults to the snapshot's.
        Repeated clicks on the same displayed date generate one transaction.
        """
        recurring = self._find(self.recurring, recurring_id, "Recurring transaction")
        occurrence = await self.scheduler.mark_as_paid(
            recurring_id,
            expected_due_date=expected_due_date or recurring.next_due_date,
        )
        await self.refresh()
        return occurrence

    async def skip_next_occurrence(
        self,
        recurring_id: UUID,
        expected_due_date: Optional[date] = None,
    ) -> Optional[RecurringTransaction]:
        recurring = self._find(self.recurring, recurring_id, "Recurring transaction")
        updated = await self.scheduler.skip_next_occurrence(
            recurring_id,
            expected_due_date=expected_due_date or recurring.next_due_date,
        )
        await self.refresh()
        return updated

    async def toggle_recurring_transaction(self, recurring_id: UUID) -> RecurringTransaction:
        self._find(self.recurring, recurring_id, "Recurring transaction")
        updated = await self.scheduler.toggle_recurring_transaction(recurring_id)
        await self.refresh()
        return updated

    async def generate_due_transactions(self) -> list[Transaction]:
        """Run the due check for today; one occurrence per stale template."""
        generated = await self.scheduler.generate_due_transactions(self.today())
        if generated:
            logger.info(
                "due_transactions_generated",
                owner_id=self.owner_id,
                count=len(generated),
            )
        await self.refresh()
        return generated

    def get_upcoming_recurring(self) -> list[RecurringTransaction]:
        """Active templates due within the window (overdue included), from the snapshot."""
        today = self.today()
        upcoming = [r for r in self.recurring if is_upcoming(r, today, self._window_days)]
        return sorted(upcoming, key=lambda r: r.next_due_date)
