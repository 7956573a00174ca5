"""Services package."""

from finance_tracker.services.image import (
    ImageUploadError,
    ReceiptImageService,
    UnsupportedImageError,
)
from finance_tracker.services.notify import AdminNotifier
from finance_tracker.services.ocr import (
    ExtractionFailedError,
    MindeeOCRService,
    OCRError,
    extract_receipt_fields,
)
from finance_tracker.services.storage import (
    AuditStorageInterface,
    Collection,
    ConflictError,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)

__all__ = [
    # Image services
    "ImageUploadError",
    "ReceiptImageService",
    "UnsupportedImageError",
    # Notification
    "AdminNotifier",
    # OCR services
    "ExtractionFailedError",
    "MindeeOCRService",
    "OCRError",
    "extract_receipt_fields",
    # Storage services
    "AuditStorageInterface",
    "Collection",
    "ConflictError",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRecordStorage",
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
    "NotFoundError",
    "RecordStorageInterface",
    "StorageError",
]
