"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every entity is a record in a named collection, owned by one user and
keyed by its UUID. Filtering beyond ownership happens in Python.

CRITICAL: update_record accepts an `expected` mapping. When given, the
update only applies if the stored record still has those values; otherwise
ConflictError is raised and nothing is written. The recurring scheduler
relies on this to advance a schedule exactly once.
"""

import inspect
import threading
import weakref
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

from pydantic import BaseModel

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import (
    Account,
    Budget,
    OwnedRecord,
    RecurringTransaction,
    Transaction,
)
from finance_tracker.models.receipt import Receipt
from finance_tracker.models.user import UserApproval


class Collection(str, Enum):
    """Named record collections. The value doubles as the worksheet title."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    BUDGETS = "budgets"
    RECURRING = "recurring_transactions"
    RECEIPTS = "receipts"
    USERS = "user_approvals"


MODEL_FOR_COLLECTION: dict[Collection, type[OwnedRecord]] = {
    Collection.ACCOUNTS: Account,
    Collection.TRANSACTIONS: Transaction,
    Collection.BUDGETS: Budget,
    Collection.RECURRING: RecurringTransaction,
    Collection.RECEIPTS: Receipt,
    Collection.USERS: UserApproval,
}


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class RecordChange(BaseModel):
    """A notification that one record changed."""

    collection: Collection
    action: ChangeAction
    record_id: UUID
    owner_id: str


ChangeCallback = Callable[[RecordChange], None]


def _callback_ref(callback: ChangeCallback) -> Callable[[], Optional[ChangeCallback]]:
    """
    Reference a subscriber without keeping its owner alive.

    Bound methods are held weakly, so an object that is dropped without
    unsubscribing (an abandoned UI session) falls out of the feed.
    """
    if inspect.ismethod(callback):
        return weakref.WeakMethod(callback)
    return lambda: callback


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop receiving changes."""

    def __init__(self, storage: "RecordStorageInterface", callback: ChangeCallback):
        self._storage = storage
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._storage._remove_subscriber(self._callback)
            self.active = False


class RecordStorageInterface(ABC):
    """
    Abstract interface for owned-record storage.

    Any storage implementation (Google Sheets, in-memory, SQL) must
    implement the abstract methods. The change feed is shared: concrete
    backends call _notify() after every successful write.
    """

    def __init__(self):
        self._subscribers: list[Callable[[], Optional[ChangeCallback]]] = []
        self._subscribers_lock = threading.Lock()

    @abstractmethod
    async def insert_record(
        self,
        collection: Collection,
        record: OwnedRecord,
    ) -> bool:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[OwnedRecord]:
        """Return the record with this id, or None."""
        pass

    @abstractmethod
    async def list_records(
        self,
        collection: Collection,
        owner_id: Optional[str] = None,
    ) -> list[OwnedRecord]:
        """
        List records in a collection.

        Args:
            collection: Which collection to read
            owner_id: Only return this owner's records. None returns all
                      records (admin views only).
        """
        pass

    @abstractmethod
    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> OwnedRecord:
        """
        Apply field changes to a record and return the updated record.

        Raises:
            NotFoundError: If the record doesn't exist
            ConflictError: If `expected` no longer matches the stored record
        """
        pass

    @abstractmethod
    async def delete_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        """Delete a record. Returns False when it did not exist."""
        pass

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        """
        Register a callback invoked after every write through this storage.

        A bound method is only held weakly; keep its owner alive for as long
        as it should receive changes.
        """
        with self._subscribers_lock:
            self._subscribers.append(_callback_ref(callback))
        return Subscription(self, callback)

    def _live_subscribers(self) -> list[ChangeCallback]:
        """Return live callbacks, dropping references whose owner is gone."""
        with self._subscribers_lock:
            live = [(ref, ref()) for ref in self._subscribers]
            self._subscribers = [ref for ref, callback in live if callback is not None]
        return [callback for _, callback in live if callback is not None]

    def _remove_subscriber(self, callback: ChangeCallback) -> None:
        with self._subscribers_lock:
            for ref in self._subscribers:
                if ref() == callback:
                    self._subscribers.remove(ref)
                    break

    def _notify(
        self,
        collection: Collection,
        action: ChangeAction,
        record: OwnedRecord,
    ) -> None:
        change = RecordChange(
            collection=collection,
            action=action,
            record_id=record.id,
            owner_id=record.owner_id,
        )
        for callback in self._live_subscribers():
            callback(change)


def apply_changes(
    collection: Collection,
    current: OwnedRecord,
    changes: dict[str, Any],
    expected: Optional[dict[str, Any]] = None,
) -> OwnedRecord:
    """
    Check `expected` against a stored record and build the updated record.

    Identity fields can't be changed. The result is re-validated so an
    update can never store an invalid record.
    """
    if expected:
        for field, value in expected.items():
            if getattr(current, field) != value:
                raise ConflictError(
                    f"{collection.value} {current.id}: expected {field}={value!r}, "
                    f"found {getattr(current, field)!r}"
                )

    data = current.model_dump()
    for field, value in changes.items():
        if field in ("id", "owner_id", "created_at"):
            continue
        data[field] = value

    return MODEL_FOR_COLLECTION[collection].model_validate(data)


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        owner_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).

        Args:
            limit: Maximum number of events to return
            owner_id: Only return events about this owner's data
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConflictError(StorageError):
    """A conditional update found the record already changed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
