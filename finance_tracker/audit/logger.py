"""
Audit Logger

DESIGN DECISION: Every mutation of finance data is logged.
This provides:
1. Complete traceability
2. Debugging capability when Sheets, Cloudinary, Mindee or SMTP misbehave
3. A record of partially-applied multi-write operations (imports, occurrences)

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from finance_tracker.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit storage backend (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finance_tracker.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must never break the user action
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_record_changed(
        self,
        event_type: AuditEventType,
        owner_id: str,
        entity_type: str,
        entity_id: UUID,
        description: str,
        correlation_id: Optional[UUID] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log a create/update/delete of an owned record."""
        event = AuditEventBuilder.record_changed(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            correlation_id=correlation_id,
            details=details,
        )
        await self.log(event)

    async def log_occurrence_generated(
        self,
        owner_id: str,
        recurring_id: UUID,
        transaction_id: UUID,
        due_date: str,
        next_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.occurrence_generated(
            owner_id=owner_id,
            recurring_id=recurring_id,
            transaction_id=transaction_id,
            due_date=due_date,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_occurrence_skipped(
        self,
        owner_id: str,
        recurring_id: UUID,
        skipped_date: str,
        next_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.occurrence_skipped(
            owner_id=owner_id,
            recurring_id=recurring_id,
            skipped_date=skipped_date,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_schedule_conflict(
        self,
        owner_id: str,
        recurring_id: UUID,
        expected_due_date: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.schedule_conflict(
            owner_id=owner_id,
            recurring_id=recurring_id,
            expected_due_date=expected_due_date,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_due_check(
        self,
        owner_id: str,
        generated_count: int,
        checked_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.due_check_completed(
            owner_id=owner_id,
            generated_count=generated_count,
            checked_count=checked_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_parsed(
        self,
        owner_id: str,
        row_count: int,
        error_count: int,
        warning_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.csv_import_parsed(
            owner_id=owner_id,
            row_count=row_count,
            error_count=error_count,
            warning_count=warning_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_committed(
        self,
        owner_id: str,
        imported_count: int,
        failed_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.csv_import_committed(
            owner_id=owner_id,
            imported_count=imported_count,
            failed_count=failed_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ocr_completed(
        self,
        owner_id: str,
        filename: str,
        text_length: int,
        fields_found: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log OCR completion."""
        event = AuditEventBuilder.ocr_completed(
            owner_id=owner_id,
            filename=filename,
            text_length=text_length,
            fields_found=fields_found,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ocr_failed(
        self,
        owner_id: str,
        filename: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.ocr_failed(
            owner_id=owner_id,
            filename=filename,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_user_signed_up(
        self,
        owner_id: str,
        user_record_id: UUID,
        email: str,
    ) -> None:
        event = AuditEventBuilder.user_signed_up(
            owner_id=owner_id,
            user_record_id=user_record_id,
            email=email,
        )
        await self.log(event)

    async def log_admin_notification(
        self,
        email: str,
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.admin_notification(
            email=email,
            success=success,
            error_message=error_message,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage call."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a CSV import).
    Pass it through all subsequent operations.
    """
    return uuid4()
