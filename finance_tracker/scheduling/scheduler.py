"""
Recurring Transaction Scheduler

Materializes concrete transactions from recurring templates. There is no
background timer: everything is driven by user actions and by the due
check that runs when the dashboard loads.

CRITICAL: Paying an occurrence is two writes (insert the transaction,
advance the template). They can't share a backend transaction, so the
pair is made safe to repeat instead:

1. The occurrence id is derived from (template id, due date). A retry
   after a partial failure hits DuplicateError instead of inserting a
   second copy.
2. The advance is a compare-and-set on next_due_date. Whoever loses the
   race gets ConflictError and changes nothing.
3. Within one event loop, calls for the same template are serialized by
   a per-template asyncio.Lock. Sessions on other threads use other loops;
   for them the storage backends run each check-then-write under a
   process-wide lock, which keeps 1 and 2 atomic.

An occurrence is identified by the due date the caller saw. Two clicks on
"mark as paid" for the same displayed date produce one transaction.
"""

import asyncio
import weakref
from datetime import date
from typing import Optional
from uuid import UUID, uuid5

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import RecurringTransaction, Transaction
from finance_tracker.scheduling.recurrence import is_due, is_upcoming, next_due_after
from finance_tracker.services.storage import (
    Collection,
    ConflictError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


def occurrence_id(recurring_id: UUID, due_date: date) -> UUID:
    """Deterministic id of the transaction generated for one due date."""
    return uuid5(recurring_id, due_date.isoformat())


def build_occurrence(recurring: RecurringTransaction, due_date: date) -> Transaction:
    """The transaction a template generates for one due date."""
    return Transaction(
        id=occurrence_id(recurring.id, due_date),
        owner_id=recurring.owner_id,
        account_id=recurring.account_id,
        payee=recurring.payee,
        category=recurring.category,
        amount=recurring.amount,
        type=recurring.type,
        date=due_date,
        notes=f"Auto-generated from recurring: {recurring.payee}",
        recurring_id=recurring.id,
    )


class RecurringScheduler:
    """
    Pays, skips and toggles recurring templates for one owner.

    Usage:
        scheduler = RecurringScheduler(storage, owner_id, audit_logger)
        generated = await scheduler.generate_due_transactions(date.today())
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
        upcoming_window_days: int = 7,
    ):
        self._storage = storage
        self._owner_id = owner_id
        self._audit = audit_logger or AuditLogger()
        self._window_days = upcoming_window_days
        # asyncio locks belong to one loop; keep a set per running loop
        self._locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[UUID, asyncio.Lock]]" = (
            weakref.WeakKeyDictionary()
        )

    def _lock_for(self, recurring_id: UUID) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        locks = self._locks.setdefault(loop, {})
        if recurring_id not in locks:
            locks[recurring_id] = asyncio.Lock()
        return locks[recurring_id]

    async def _get_owned(self, recurring_id: UUID) -> RecurringTransaction:
        recurring = await self._storage.get_record(Collection.RECURRING, recurring_id)
        if recurring is None or recurring.owner_id != self._owner_id:
            raise NotFoundError(f"Recurring transaction not found: {recurring_id}")
        return recurring

    async def mark_as_paid(
        self,
        recurring_id: UUID,
        expected_due_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Transaction]:
        """
        Generate the occurrence for the template's next due date and advance it.

        Args:
            recurring_id: Template to pay
            expected_due_date: The due date the caller is paying. When the
                               template has already moved past it, nothing
                               happens. Defaults to the stored next due date.
            correlation_id: Ties the audit events of one user action together

        Returns:
            The generated transaction, or None when the template is paused
            or the occurrence was already handled by someone else.

        Raises:
            NotFoundError: If the template doesn't exist for this owner
            StorageError: If a write fails (safe to retry)
        """
        async with self._lock_for(recurring_id):
            recurring = await self._get_owned(recurring_id)
            if not recurring.is_active:
                return None

            due_date = recurring.next_due_date
            if expected_due_date is not None and due_date != expected_due_date:
                return None

            occurrence = build_occurrence(recurring, due_date)
            try:
                await self._storage.insert_record(Collection.TRANSACTIONS, occurrence)
            except DuplicateError:
                # An earlier attempt inserted it but never advanced the schedule
                logger.info(
                    "occurrence_already_exists",
                    recurring_id=str(recurring_id),
                    due_date=due_date.isoformat(),
                )

            next_due = next_due_after(recurring)
            try:
                await self._storage.update_record(
                    Collection.RECURRING,
                    recurring_id,
                    {"next_due_date": next_due, "last_generated_date": due_date},
                    expected={"next_due_date": due_date},
                )
            except ConflictError:
                await self._audit.log_schedule_conflict(
                    owner_id=self._owner_id,
                    recurring_id=recurring_id,
                    expected_due_date=due_date.isoformat(),
                    correlation_id=correlation_id,
                )
                return None

        await self._audit.log_occurrence_generated(
            owner_id=self._owner_id,
            recurring_id=recurring_id,
            transaction_id=occurrence.id,
            due_date=due_date.isoformat(),
            next_due_date=next_due.isoformat(),
            correlation_id=correlation_id,
        )
        return occurrence

    async def skip_next_occurrence(
        self,
        recurring_id: UUID,
        expected_due_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[RecurringTransaction]:
        """
        Advance next_due_date one step without creating a transaction.

        Returns the updated template, or None when the due date the caller
        saw was already paid or skipped.
        """
        async with self._lock_for(recurring_id):
            recurring = await self._get_owned(recurring_id)
            due_date = recurring.next_due_date
            if expected_due_date is not None and due_date != expected_due_date:
                return None

            next_due = next_due_after(recurring)
            try:
                updated = await self._storage.update_record(
                    Collection.RECURRING,
                    recurring_id,
                    {"next_due_date": next_due},
                    expected={"next_due_date": due_date},
                )
            except ConflictError:
                await self._audit.log_schedule_conflict(
                    owner_id=self._owner_id,
                    recurring_id=recurring_id,
                    expected_due_date=due_date.isoformat(),
                    correlation_id=correlation_id,
                )
                return None

        await self._audit.log_occurrence_skipped(
            owner_id=self._owner_id,
            recurring_id=recurring_id,
            skipped_date=due_date.isoformat(),
            next_due_date=next_due.isoformat(),
            correlation_id=correlation_id,
        )
        return updated

    async def toggle_recurring_transaction(
        self,
        recurring_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringTransaction:
        """Flip is_active. Nothing else about the template changes."""
        async with self._lock_for(recurring_id):
            recurring = await self._get_owned(recurring_id)
            updated = await self._storage.update_record(
                Collection.RECURRING,
                recurring_id,
                {"is_active": not recurring.is_active},
                expected={"is_active": recurring.is_active},
            )

        await self._audit.log_record_changed(
            event_type=AuditEventType.RECURRING_TOGGLED,
            owner_id=self._owner_id,
            entity_type="recurring",
            entity_id=recurring_id,
            description=f"Recurring {'resumed' if updated.is_active else 'paused'}: {updated.payee}",
            correlation_id=correlation_id,
            details={"is_active": updated.is_active},
        )
        return updated

    async def generate_due_transactions(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Pay every active template due on or before today, once each.

        A template that is several periods behind gets one occurrence per
        call; the rest follow on later visits. A template that fails to
        write is logged and left due, the others still run.
        """
        today = today or date.today()
        templates = await self._storage.list_records(Collection.RECURRING, self._owner_id)
        due = [r for r in templates if is_due(r, today)]

        generated = []
        for recurring in due:
            try:
                occurrence = await self.mark_as_paid(
                    recurring.id,
                    expected_due_date=recurring.next_due_date,
                    correlation_id=correlation_id,
                )
            except StorageError as e:
                await self._audit.log_storage_error(
                    operation=f"generate occurrence for {recurring.id}",
                    error_message=str(e),
                    owner_id=self._owner_id,
                    correlation_id=correlation_id,
                )
                continue
            if occurrence is not None:
                generated.append(occurrence)

        await self._audit.log_due_check(
            owner_id=self._owner_id,
            generated_count=len(generated),
            checked_count=len(templates),
            correlation_id=correlation_id,
        )
        return generated

    async def get_upcoming_recurring(
        self,
        today: Optional[date] = None,
    ) -> list[RecurringTransaction]:
        """Active templates due within the upcoming window, soonest first."""
        today = today or date.today()
        templates = await self._storage.list_records(Collection.RECURRING, self._owner_id)
        upcoming = [r for r in templates if is_upcoming(r, today, self._window_days)]
        return sorted(upcoming, key=lambda r: r.next_due_date)
