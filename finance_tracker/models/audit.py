"""
Audit Models for the Finance Tracker

Every mutation and every notable failure is recorded as an AuditEvent.
This provides:
1. Traceability of what changed, when, for whom
2. Debugging information when an external service misbehaves
3. A way to reconstruct partially-applied multi-write operations

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.finance import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_DELETED = "budget_deleted"

    # Recurring schedule
    RECURRING_CREATED = "recurring_created"
    RECURRING_UPDATED = "recurring_updated"
    RECURRING_DELETED = "recurring_deleted"
    RECURRING_TOGGLED = "recurring_toggled"
    OCCURRENCE_GENERATED = "occurrence_generated"
    OCCURRENCE_SKIPPED = "occurrence_skipped"
    DUE_CHECK_COMPLETED = "due_check_completed"
    SCHEDULE_CONFLICT = "schedule_conflict"

    # Import / export
    CSV_IMPORT_PARSED = "csv_import_parsed"
    CSV_IMPORT_COMMITTED = "csv_import_committed"

    # Receipts
    RECEIPT_SAVED = "receipt_saved"
    RECEIPT_DELETED = "receipt_deleted"
    OCR_COMPLETED = "ocr_completed"
    OCR_FAILED = "ocr_failed"

    # Users
    USER_SIGNED_UP = "user_signed_up"
    USER_APPROVAL_CHANGED = "user_approval_changed"
    ADMIN_NOTIFIED = "admin_notified"
    ADMIN_NOTIFICATION_FAILED = "admin_notification_failed"

    # System events
    STORAGE_ERROR = "storage_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class AuditEvent(BaseModel):
    """A single audit event."""

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - whose data, which entity
    owner_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'recurring', 'receipt')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate the events of one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """Convert to a row in AUDIT_COLUMNS order."""
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]

    @classmethod
    def from_sheets_row(cls, row: list) -> "AuditEvent":
        def safe_get(index: int) -> str:
            try:
                return row[index] or ""
            except IndexError:
                return ""

        return cls(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_changed(AuditEventType.ACCOUNT_CREATED, ...)
        event = AuditEventBuilder.occurrence_generated(recurring_id, ...)
    """

    @staticmethod
    def record_changed(
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: UUID,
        description: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def occurrence_generated(
        owner_id: str,
        recurring_id: UUID,
        transaction_id: UUID,
        due_date: str,
        next_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_GENERATED,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Occurrence for {due_date} generated",
            details={
                "transaction_id": str(transaction_id),
                "due_date": due_date,
                "next_due_date": next_due_date,
            },
        )

    @staticmethod
    def occurrence_skipped(
        owner_id: str,
        recurring_id: UUID,
        skipped_date: str,
        next_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCCURRENCE_SKIPPED,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description=f"Occurrence for {skipped_date} skipped",
            details={
                "skipped_date": skipped_date,
                "next_due_date": next_due_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def schedule_conflict(
        owner_id: str,
        recurring_id: UUID,
        expected_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULE_CONFLICT,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=recurring_id,
            correlation_id=correlation_id,
            description="Schedule was advanced concurrently; nothing changed",
            details={"expected_due_date": expected_due_date},
        )

    @staticmethod
    def due_check_completed(
        owner_id: str,
        generated_count: int,
        checked_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUE_CHECK_COMPLETED,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Due check generated {generated_count} transaction(s)",
            details={
                "generated_count": generated_count,
                "checked_count": checked_count,
            },
        )

    @staticmethod
    def csv_import_parsed(
        owner_id: str,
        row_count: int,
        error_count: int,
        warning_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_PARSED,
            severity=AuditSeverity.WARNING if error_count else AuditSeverity.INFO,
            owner_id=owner_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"CSV parsed: {row_count} rows ready, {error_count} errors",
            details={
                "row_count": row_count,
                "error_count": error_count,
                "warning_count": warning_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def csv_import_committed(
        owner_id: str,
        imported_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_COMMITTED,
            severity=AuditSeverity.WARNING if failed_count else AuditSeverity.INFO,
            owner_id=owner_id,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"CSV import wrote {imported_count} transaction(s)",
            details={
                "imported_count": imported_count,
                "failed_count": failed_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def ocr_completed(
        owner_id: str,
        filename: str,
        text_length: int,
        fields_found: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_COMPLETED,
            owner_id=owner_id,
            entity_type="receipt_image",
            correlation_id=correlation_id,
            description=f"OCR read {text_length} characters from {filename}",
            details={
                "filename": filename,
                "fields_found": fields_found,
            },
        )

    @staticmethod
    def ocr_failed(
        owner_id: str,
        filename: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="receipt_image",
            correlation_id=correlation_id,
            description=f"OCR failed for {filename}",
            error_message=error_message,
            details={"filename": filename},
        )

    @staticmethod
    def user_signed_up(
        owner_id: str,
        user_record_id: UUID,
        email: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_UP,
            owner_id=owner_id,
            entity_type="user",
            entity_id=user_record_id,
            description=f"New user registered: {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def admin_notification(
        email: str,
        success: bool,
        error_message: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.ADMIN_NOTIFIED
                if success
                else AuditEventType.ADMIN_NOTIFICATION_FAILED
            ),
            severity=AuditSeverity.INFO if success else AuditSeverity.WARNING,
            entity_type="user",
            description=(
                f"Admin notified about signup of {email}"
                if success
                else f"Could not notify admin about signup of {email}"
            ),
            error_message=error_message,
            details={"email": email},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Storage call failed: {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
