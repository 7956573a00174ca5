"""
Tests for the in-memory storage backend and the shared change feed.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.models import Account, AuditEvent, AuditEventType, RecurringTransaction
from finance_tracker.services.storage import (
    ChangeAction,
    Collection,
    ConflictError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    NotFoundError,
)


def run(coro):
    return asyncio.run(coro)


class TestRecordStorage:
    """Tests for CRUD and compare-and-set."""

    def test_insert_and_get(self):
        storage = InMemoryRecordStorage()
        account = Account(owner_id="u", name="Checking")
        assert run(storage.insert_record(Collection.ACCOUNTS, account)) is True
        assert run(storage.get_record(Collection.ACCOUNTS, account.id)) == account
        assert run(storage.get_record(Collection.ACCOUNTS, uuid4())) is None

    def test_duplicate_id_rejected(self):
        storage = InMemoryRecordStorage()
        account = Account(owner_id="u", name="Checking")
        run(storage.insert_record(Collection.ACCOUNTS, account))
        with pytest.raises(DuplicateError):
            run(storage.insert_record(Collection.ACCOUNTS, account))

    def test_list_filters_by_owner(self):
        storage = InMemoryRecordStorage()
        run(storage.insert_record(Collection.ACCOUNTS, Account(owner_id="a", name="A")))
        run(storage.insert_record(Collection.ACCOUNTS, Account(owner_id="b", name="B")))
        assert [a.name for a in run(storage.list_records(Collection.ACCOUNTS, "a"))] == ["A"]
        assert len(run(storage.list_records(Collection.ACCOUNTS))) == 2

    def test_update_ignores_identity_fields(self):
        storage = InMemoryRecordStorage()
        account = Account(owner_id="u", name="Checking")
        run(storage.insert_record(Collection.ACCOUNTS, account))
        updated = run(storage.update_record(
            Collection.ACCOUNTS, account.id, {"name": "Main", "owner_id": "intruder"},
        ))
        assert updated.name == "Main"
        assert updated.owner_id == "u"

    def test_update_revalidates(self):
        storage = InMemoryRecordStorage()
        account = Account(owner_id="u", name="Checking")
        run(storage.insert_record(Collection.ACCOUNTS, account))
        with pytest.raises(ValueError):
            run(storage.update_record(Collection.ACCOUNTS, account.id, {"name": ""}))

    def test_compare_and_set(self):
        storage = InMemoryRecordStorage()
        recurring = RecurringTransaction(
            owner_id="u", account_id=uuid4(), payee="Rent", amount=Decimal("1"),
            start_date=date(2024, 1, 1),
        )
        run(storage.insert_record(Collection.RECURRING, recurring))

        run(storage.update_record(
            Collection.RECURRING, recurring.id,
            {"next_due_date": date(2024, 2, 1)},
            expected={"next_due_date": date(2024, 1, 1)},
        ))
        with pytest.raises(ConflictError):
            run(storage.update_record(
                Collection.RECURRING, recurring.id,
                {"next_due_date": date(2024, 2, 1)},
                expected={"next_due_date": date(2024, 1, 1)},
            ))

    def test_update_missing_record(self):
        with pytest.raises(NotFoundError):
            run(InMemoryRecordStorage().update_record(Collection.ACCOUNTS, uuid4(), {"name": "x"}))

    def test_delete(self):
        storage = InMemoryRecordStorage()
        account = Account(owner_id="u", name="Checking")
        run(storage.insert_record(Collection.ACCOUNTS, account))
        assert run(storage.delete_record(Collection.ACCOUNTS, account.id)) is True
        assert run(storage.delete_record(Collection.ACCOUNTS, account.id)) is False


class TestChangeFeed:
    """Tests for subscribe / unsubscribe."""

    def test_writes_are_published(self):
        storage = InMemoryRecordStorage()
        changes = []
        storage.subscribe(changes.append)

        account = Account(owner_id="u", name="Checking")
        run(storage.insert_record(Collection.ACCOUNTS, account))
        run(storage.update_record(Collection.ACCOUNTS, account.id, {"name": "Main"}))
        run(storage.delete_record(Collection.ACCOUNTS, account.id))
        run(storage.delete_record(Collection.ACCOUNTS, account.id))

        assert [c.action for c in changes] == [ChangeAction.INSERT, ChangeAction.UPDATE, ChangeAction.DELETE]
        assert all(c.owner_id == "u" and c.record_id == account.id for c in changes)

    def test_unsubscribe(self):
        storage = InMemoryRecordStorage()
        changes = []
        subscription = storage.subscribe(changes.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        run(storage.insert_record(Collection.ACCOUNTS, Account(owner_id="u", name="A")))
        assert changes == []
        assert subscription.active is False


class TestAuditStorage:
    """Tests for the append-only audit log."""

    def test_recent_and_correlated(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        for owner in ("a", "b", "a"):
            run(storage.append_event(AuditEvent(
                event_type=AuditEventType.ACCOUNT_CREATED,
                owner_id=owner,
                correlation_id=correlation_id,
                description="created",
            )))
        assert len(run(storage.get_recent_events(owner_id="a"))) == 2
        assert len(run(storage.get_recent_events(limit=1))) == 1
        assert len(run(storage.get_events_by_correlation_id(correlation_id))) == 3
