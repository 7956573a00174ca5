"""Shared fixtures: in-memory backends and a store pinned to a fixed day."""

import time

import pytest
from datetime import date

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AUDIT_COLUMNS
from finance_tracker.services.storage import InMemoryAuditStorage, InMemoryRecordStorage
from finance_tracker.store import FinanceStore


TODAY = date(2024, 3, 15)
OWNER = "user-1"


class FakeWorksheet:
    """
    Stands in for gspread.Worksheet.

    `delay` makes every call block like a network round trip.
    """

    def __init__(self, header, delay: float = 0.0):
        self.rows = [list(header)]
        self.delay = delay

    def _wait(self):
        if self.delay:
            time.sleep(self.delay)

    def get_all_values(self):
        self._wait()
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self._wait()
        self.rows.append([str(v) for v in values])

    def update(self, values, range_name, value_input_option=None):
        self._wait()
        self.rows[int(range_name[1:]) - 1] = list(values[0])

    def delete_rows(self, index):
        self._wait()
        del self.rows[index - 1]


class FakeSheetsClient:
    """Hands out FakeWorksheets by title, like GoogleSheetsClient."""

    def __init__(self, delay: float = 0.0):
        self.sheets = {}
        self.delay = delay

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns, self.delay)
        return self.sheets[title]

    def get_audit_sheet(self):
        return self.get_worksheet("AuditLog", AUDIT_COLUMNS)


@pytest.fixture
def storage():
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def store(storage, audit_logger):
    return FinanceStore(storage, OWNER, audit_logger=audit_logger, today=TODAY)
