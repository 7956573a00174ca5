"""
Tests for the Google Sheets backend.

gspread is never contacted: FakeSheetsClient hands out in-memory
worksheets that behave like gspread.Worksheet for the calls the backend
makes.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_tracker.models import (
    Account,
    AuditEvent,
    AuditEventType,
    RecurringTransaction,
    Transaction,
)
from finance_tracker.services.storage import (
    ChangeAction,
    Collection,
    ConflictError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsRecordStorage,
    NotFoundError,
)
from finance_tracker.services.storage.google_sheets import columns_for, record_to_row

from tests.conftest import FakeSheetsClient


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def sheets(client):
    return GoogleSheetsRecordStorage(client)


def make_recurring(**overrides):
    data = dict(
        owner_id="u",
        account_id=uuid4(),
        payee="Rent",
        amount=Decimal("1200"),
        start_date=date(2024, 1, 1),
        next_due_date=date(2024, 3, 1),
    )
    data.update(overrides)
    return RecurringTransaction(**data)


class TestRowConversion:
    """Tests for record <-> row mapping."""

    def test_row_follows_header_order(self):
        account = Account(owner_id="u", name="Checking", starting_balance=Decimal("10"))
        header = ["name", "id", "missing"]
        assert record_to_row(account, header) == ["Checking", str(account.id), ""]

    def test_booleans_and_nulls(self):
        template = make_recurring(is_active=False)
        row = dict(zip(columns_for(Collection.RECURRING),
                       record_to_row(template, columns_for(Collection.RECURRING))))
        assert row["is_active"] == "false"
        assert row["last_generated_date"] == ""
        assert row["next_due_date"] == "2024-03-01"


class TestSheetsRecordStorage:
    """Tests for CRUD against worksheets."""

    def test_insert_creates_sheet_and_round_trips(self, sheets, client):
        txn = Transaction(
            owner_id="u",
            account_id=uuid4(),
            payee="Market",
            amount=Decimal("12.5"),
            date=date(2024, 3, 1),
        )
        run(sheets.insert_record(Collection.TRANSACTIONS, txn))

        sheet = client.sheets["transactions"]
        assert sheet.rows[0] == columns_for(Collection.TRANSACTIONS)
        assert run(sheets.get_record(Collection.TRANSACTIONS, txn.id)) == txn

    def test_duplicate_id_rejected(self, sheets):
        account = Account(owner_id="u", name="Checking")
        run(sheets.insert_record(Collection.ACCOUNTS, account))
        with pytest.raises(DuplicateError):
            run(sheets.insert_record(Collection.ACCOUNTS, account))

    def test_list_filters_owner_and_skips_bad_rows(self, sheets, client):
        run(sheets.insert_record(Collection.ACCOUNTS, Account(owner_id="a", name="A")))
        run(sheets.insert_record(Collection.ACCOUNTS, Account(owner_id="b", name="B")))
        client.sheets["accounts"].rows.append(["not-a-uuid", "a", "garbage"])
        client.sheets["accounts"].rows.append([])

        assert [a.name for a in run(sheets.list_records(Collection.ACCOUNTS, "a"))] == ["A"]
        assert len(run(sheets.list_records(Collection.ACCOUNTS))) == 2

    def test_conditional_update(self, sheets):
        template = make_recurring()
        run(sheets.insert_record(Collection.RECURRING, template))

        updated = run(sheets.update_record(
            Collection.RECURRING,
            template.id,
            {"next_due_date": date(2024, 4, 1)},
            expected={"next_due_date": date(2024, 3, 1)},
        ))
        assert updated.next_due_date == date(2024, 4, 1)

        with pytest.raises(ConflictError):
            run(sheets.update_record(
                Collection.RECURRING,
                template.id,
                {"next_due_date": date(2024, 5, 1)},
                expected={"next_due_date": date(2024, 3, 1)},
            ))
        stored = run(sheets.get_record(Collection.RECURRING, template.id))
        assert stored.next_due_date == date(2024, 4, 1)

    def test_update_missing_record(self, sheets):
        with pytest.raises(NotFoundError):
            run(sheets.update_record(Collection.ACCOUNTS, uuid4(), {"name": "X"}))

    def test_delete(self, sheets, client):
        keep = Account(owner_id="u", name="Keep")
        drop = Account(owner_id="u", name="Drop")
        run(sheets.insert_record(Collection.ACCOUNTS, keep))
        run(sheets.insert_record(Collection.ACCOUNTS, drop))

        assert run(sheets.delete_record(Collection.ACCOUNTS, drop.id)) is True
        assert run(sheets.delete_record(Collection.ACCOUNTS, drop.id)) is False
        assert [a.name for a in run(sheets.list_records(Collection.ACCOUNTS))] == ["Keep"]

    def test_writes_notify_subscribers(self, sheets):
        seen = []
        sheets.subscribe(seen.append)
        account = Account(owner_id="u", name="Checking")

        run(sheets.insert_record(Collection.ACCOUNTS, account))
        run(sheets.update_record(Collection.ACCOUNTS, account.id, {"name": "Main"}))
        run(sheets.delete_record(Collection.ACCOUNTS, account.id))

        assert [c.action for c in seen] == [ChangeAction.INSERT, ChangeAction.UPDATE, ChangeAction.DELETE]
        assert all(c.owner_id == "u" for c in seen)


class TestSheetsAuditStorage:
    """Tests for the append-only audit worksheet."""

    def test_recent_events_newest_first(self, client):
        audit = GoogleSheetsAuditStorage(client)
        start = datetime(2024, 3, 15, tzinfo=timezone.utc)
        correlation = uuid4()
        for minutes, owner in ((0, "a"), (5, "b"), (10, "a")):
            run(audit.append_event(AuditEvent(
                event_type=AuditEventType.ACCOUNT_CREATED,
                timestamp=start + timedelta(minutes=minutes),
                owner_id=owner,
                correlation_id=correlation,
                description=f"event at {minutes}",
                details={"minutes": minutes},
            )))
        client.sheets["AuditLog"].rows.append(["", "", ""])

        recent = run(audit.get_recent_events(limit=2))
        assert [e.description for e in recent] == ["event at 10", "event at 5"]

        mine = run(audit.get_recent_events(owner_id="a"))
        assert [e.details["minutes"] for e in mine] == [10, 0]

        related = run(audit.get_events_by_correlation_id(correlation))
        assert [e.description for e in related] == ["event at 0", "event at 5", "event at 10"]
