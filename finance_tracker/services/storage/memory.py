"""
In-Memory Storage Implementation

Used by the test suite and as the fallback backend when Google Sheets is
not configured. Data lives only as long as the process.

Method bodies never await, so each call is atomic between coroutines.
A lock covers the check-then-write steps and the listing for callers
on other threads, which makes update_record a true compare-and-set here.
"""

import threading
from typing import Any, Optional
from uuid import UUID

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import OwnedRecord
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    ChangeAction,
    Collection,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    apply_changes,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Dictionary-backed record storage."""

    def __init__(self):
        super().__init__()
        self._data: dict[Collection, dict[UUID, OwnedRecord]] = {
            collection: {} for collection in Collection
        }
        self._lock = threading.Lock()

    async def insert_record(
        self,
        collection: Collection,
        record: OwnedRecord,
    ) -> bool:
        records = self._data[collection]
        with self._lock:
            if record.id in records:
                raise DuplicateError(f"{collection.value} {record.id} already exists")
            records[record.id] = record
        self._notify(collection, ChangeAction.INSERT, record)
        return True

    async def get_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[OwnedRecord]:
        return self._data[collection].get(record_id)

    async def list_records(
        self,
        collection: Collection,
        owner_id: Optional[str] = None,
    ) -> list[OwnedRecord]:
        with self._lock:
            records = list(self._data[collection].values())
        return [
            record
            for record in records
            if owner_id is None or record.owner_id == owner_id
        ]

    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> OwnedRecord:
        with self._lock:
            current = self._data[collection].get(record_id)
            if current is None:
                raise NotFoundError(f"{collection.value} {record_id} not found")

            updated = apply_changes(collection, current, changes, expected)
            self._data[collection][record_id] = updated
        self._notify(collection, ChangeAction.UPDATE, updated)
        return updated

    async def delete_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        with self._lock:
            record = self._data[collection].pop(record_id, None)
        if record is None:
            return False
        self._notify(collection, ChangeAction.DELETE, record)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed append-only audit storage."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
        owner_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if owner_id is None or e.owner_id == owner_id
        ]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
