"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the scheduler relies on idempotent ids instead)
- Limited query capabilities (we filter in Python)
- Writes are read-compare-write. A process-wide lock makes them atomic
  for every session in this process, but not across processes

Each collection is one worksheet whose first row holds the field names.
Cells are written RAW so Sheets never reinterprets amounts or dates.
"""

import threading
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import get_settings
from finance_tracker.models.audit import AUDIT_COLUMNS, AuditEvent
from finance_tracker.models.finance import OwnedRecord
from finance_tracker.services.storage.interface import (
    MODEL_FOR_COLLECTION,
    AuditStorageInterface,
    ChangeAction,
    Collection,
    ConflictError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    apply_changes,
)


logger = structlog.get_logger(__name__)

# Domain errors are answers, not transient failures.
sheets_retry = retry(
    retry=retry_if_not_exception_type((DuplicateError, ConflictError, NotFoundError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def columns_for(collection: Collection) -> list[str]:
    """Field names of a collection's model, in declaration order."""
    return list(MODEL_FOR_COLLECTION[collection].model_fields.keys())


def record_to_row(record: OwnedRecord, header: list[str]) -> list[str]:
    """Convert a record to a row of strings in header order."""
    data = record.model_dump(mode="json")
    row = []
    for column in header:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_record(
    collection: Collection,
    header: list[str],
    row: list[str],
) -> OwnedRecord:
    """
    Convert a worksheet row back to a record.

    Empty cells are dropped so the model's defaults (or None) apply.
    """
    data = {
        column: value
        for column, value in zip(header, row)
        if column and value != ""
    }
    return MODEL_FOR_COLLECTION[collection].model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet whose first row is `columns`."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)

        self._worksheets[title] = sheet
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """
    Google Sheets implementation of record storage.

    One worksheet per collection, one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        super().__init__()
        self._client = client or GoogleSheetsClient()
        # Streamlit sessions run on separate threads and share this instance
        self._write_lock = threading.Lock()

    def _sheet(self, collection: Collection) -> gspread.Worksheet:
        return self._client.get_worksheet(collection.value, columns_for(collection))

    def _read_all(
        self,
        collection: Collection,
    ) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._sheet(collection)
        values = sheet.get_all_values()
        if not values:
            return sheet, columns_for(collection), []
        return sheet, values[0], values[1:]

    @staticmethod
    def _find_row(rows: list[list[str]], header: list[str], record_id: UUID) -> Optional[int]:
        """Return the 1-based sheet row index holding record_id."""
        id_col = header.index("id")
        for idx, row in enumerate(rows, start=2):  # Row 1 is the header
            if len(row) > id_col and row[id_col] == str(record_id):
                return idx
        return None

    @sheets_retry
    async def insert_record(
        self,
        collection: Collection,
        record: OwnedRecord,
    ) -> bool:
        try:
            with self._write_lock:
                sheet, header, rows = self._read_all(collection)
                if self._find_row(rows, header, record.id) is not None:
                    raise DuplicateError(f"{collection.value} {record.id} already exists")
                sheet.append_row(record_to_row(record, header), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {collection.value}: {e}")

        self._notify(collection, ChangeAction.INSERT, record)
        return True

    async def get_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> Optional[OwnedRecord]:
        try:
            _, header, rows = self._read_all(collection)
            idx = self._find_row(rows, header, record_id)
            if idx is None:
                return None
            return row_to_record(collection, header, rows[idx - 2])
        except Exception as e:
            raise StorageError(f"Failed to get {collection.value} {record_id}: {e}")

    async def list_records(
        self,
        collection: Collection,
        owner_id: Optional[str] = None,
    ) -> list[OwnedRecord]:
        try:
            _, header, rows = self._read_all(collection)
        except Exception as e:
            raise StorageError(f"Failed to list {collection.value}: {e}")

        records = []
        for row in rows:
            if not row or not any(row):  # Skip empty rows
                continue
            try:
                record = row_to_record(collection, header, row)
            except ValueError as e:
                logger.warning(
                    "malformed_row_skipped",
                    collection=collection.value,
                    error=str(e),
                )
                continue
            if owner_id is None or record.owner_id == owner_id:
                records.append(record)
        return records

    @sheets_retry
    async def update_record(
        self,
        collection: Collection,
        record_id: UUID,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> OwnedRecord:
        try:
            with self._write_lock:
                sheet, header, rows = self._read_all(collection)
                idx = self._find_row(rows, header, record_id)
                if idx is None:
                    raise NotFoundError(f"{collection.value} {record_id} not found")

                current = row_to_record(collection, header, rows[idx - 2])
                updated = apply_changes(collection, current, changes, expected)
                sheet.update(
                    values=[record_to_row(updated, header)],
                    range_name=f"A{idx}",
                    value_input_option="RAW",
                )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {collection.value} {record_id}: {e}")

        self._notify(collection, ChangeAction.UPDATE, updated)
        return updated

    @sheets_retry
    async def delete_record(
        self,
        collection: Collection,
        record_id: UUID,
    ) -> bool:
        try:
            with self._write_lock:
                sheet, header, rows = self._read_all(collection)
                idx = self._find_row(rows, header, record_id)
                if idx is None:
                    return False
                record = row_to_record(collection, header, rows[idx - 2])
                sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete {collection.value} {record_id}: {e}")

        self._notify(collection, ChangeAction.DELETE, record)
        return True


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(AuditEvent.from_sheets_row(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in self._read_events()
                if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
        owner_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = [
                e for e in self._read_events()
                if owner_id is None or e.owner_id == owner_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
