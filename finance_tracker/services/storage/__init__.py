"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves tests
and unconfigured local runs.
"""

from finance_tracker.services.storage.interface import (
    MODEL_FOR_COLLECTION,
    AuditStorageInterface,
    ChangeAction,
    Collection,
    ConflictError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordChange,
    RecordStorageInterface,
    StorageError,
    Subscription,
)
from finance_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
)
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeAction",
    "Collection",
    "MODEL_FOR_COLLECTION",
    "RecordChange",
    "RecordStorageInterface",
    "Subscription",
    # Exceptions
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
]
