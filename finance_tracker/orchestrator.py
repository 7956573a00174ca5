"""
Main Orchestrator for the Finance Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Receipts (image -> OCR pre-fill -> user review -> upload -> save)
2. CSV import (text -> preview -> user confirms -> sequential insert)
3. Signup (first sign-in -> pending approval -> admin notified)

DESIGN DECISION: The orchestrator enforces the boundaries:
- OCR output is only ever a suggestion; nothing is saved without the user
- Imports write nothing until the user confirms the preview
- Only approved users get a FinanceStore, only admins change approvals
- Every step is audited

Backends (storage, audit) are process-wide. Everything else is built per
signed-in user.
"""

from decimal import Decimal
from typing import Any, Callable, NamedTuple, Optional, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finance_tracker.audit import AuditLogger, configure_logging, create_correlation_id
from finance_tracker.config import get_settings, optional_section
from finance_tracker.csv_io import ImportResult, parse_transactions_csv
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.finance import ImportedTransaction, Transaction
from finance_tracker.models.receipt import ExtractedReceiptData, Receipt
from finance_tracker.models.user import UserApproval
from finance_tracker.services.image import (
    ImageUploadError,
    ReceiptImageService,
    UnsupportedImageError,
)
from finance_tracker.services.notify import AdminNotifier
from finance_tracker.services.ocr import MindeeOCRService, OCRError, extract_receipt_fields
from finance_tracker.services.storage import (
    Collection,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStorage,
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
)
from finance_tracker.store import FinanceStore
from finance_tracker.validation import FinanceValidator, InvalidInputError


logger = structlog.get_logger(__name__)


# =============================================================================
# RECEIPTS
# =============================================================================

class ScanResult(BaseModel):
    """What a receipt scan produced. Empty fields are normal."""

    extracted: ExtractedReceiptData = Field(default_factory=ExtractedReceiptData)
    tips: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class ReceiptFlow:
    """
    Orchestrates the receipt flow.

    Flow:
    1. Scan -> OCR the image, regex the text into suggested fields
    2. Review -> User edits the form (PAUSE)
    3. Save -> Upload image, insert receipt record

    Scanning is optional and NEVER blocks saving.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        owner_id: str,
        image_service: Optional[ReceiptImageService] = None,
        ocr_service: Optional[MindeeOCRService] = None,
        validator: Optional[FinanceValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._owner_id = owner_id
        self._image_service = image_service
        self._ocr_service = ocr_service
        self._validator = validator or FinanceValidator()
        self._audit = audit_logger or AuditLogger()

    @property
    def can_scan(self) -> bool:
        return self._ocr_service is not None

    @property
    def can_upload(self) -> bool:
        return self._image_service is not None

    async def scan(
        self,
        image_bytes: bytes,
        filename: str,
        progress: Optional[Callable[[int], None]] = None,
    ) -> ScanResult:
        """
        OCR a receipt image and suggest form values.

        Never raises: on failure the result carries an error message and
        empty fields, and the user fills the form by hand.
        """
        correlation_id = create_correlation_id()
        tips = self._image_service.photo_tips(image_bytes) if self._image_service else []

        if self._ocr_service is None:
            return ScanResult(tips=tips, error="Receipt scanning is not configured")

        try:
            text = await self._ocr_service.recognize_text(image_bytes, filename, progress)
        except OCRError as e:
            await self._audit.log_ocr_failed(
                owner_id=self._owner_id,
                filename=filename,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return ScanResult(tips=tips, error="Could not read this receipt. Please fill in the details manually.")

        extracted = extract_receipt_fields(text)
        found = [
            name for name in ("store_name", "receipt_date", "total_amount", "tax_amount")
            if getattr(extracted, name) is not None
        ]
        await self._audit.log_ocr_completed(
            owner_id=self._owner_id,
            filename=filename,
            text_length=len(text),
            fields_found=found,
            correlation_id=correlation_id,
        )
        return ScanResult(extracted=extracted, tips=tips)

    async def save(
        self,
        image_bytes: bytes,
        filename: str,
        data: dict[str, Any],
    ) -> Receipt:
        """
        Upload the image and store the receipt.

        Raises:
            InvalidInputError: If the form is invalid (nothing uploaded)
            ImageUploadError: If hosting is unavailable or the upload fails
            StorageError: If the record insert fails (the image stays uploaded)
        """
        parsed, result = self._validator.validate_receipt(data)
        if not result.is_valid:
            raise InvalidInputError(result)
        if self._image_service is None:
            raise ImageUploadError("Image hosting is not configured")

        try:
            image_url = await self._image_service.upload_receipt(
                image_bytes,
                filename,
                self._owner_id,
            )
        except UnsupportedImageError:
            raise
        except ImageUploadError as e:
            await self._audit.log_external_service_error(
                service="cloudinary",
                error_message=str(e),
                owner_id=self._owner_id,
            )
            raise

        receipt = Receipt(
            owner_id=self._owner_id,
            image_url=image_url,
            **parsed.model_dump(),
        )
        await self._storage.insert_record(Collection.RECEIPTS, receipt)
        await self._audit.log_record_changed(
            event_type=AuditEventType.RECEIPT_SAVED,
            owner_id=self._owner_id,
            entity_type="receipt",
            entity_id=receipt.id,
            description=f"Receipt saved: {receipt.store_name or filename}",
            details={"image_url": image_url},
        )
        return receipt

    async def delete(self, receipt_id: UUID) -> bool:
        """Delete the receipt record. The hosted image is left in place."""
        receipt = await self._storage.get_record(Collection.RECEIPTS, receipt_id)
        if receipt is None or receipt.owner_id != self._owner_id:
            raise NotFoundError(f"Receipt not found: {receipt_id}")

        deleted = await self._storage.delete_record(Collection.RECEIPTS, receipt_id)
        if deleted:
            await self._audit.log_record_changed(
                event_type=AuditEventType.RECEIPT_DELETED,
                owner_id=self._owner_id,
                entity_type="receipt",
                entity_id=receipt_id,
                description=f"Receipt deleted: {receipt.store_name or receipt_id}",
            )
        return deleted

    async def list(self) -> list[Receipt]:
        """This owner's receipts, newest receipt date first; undated ones last."""
        receipts = await self._storage.list_records(Collection.RECEIPTS, self._owner_id)
        dated = sorted(
            (r for r in receipts if r.receipt_date is not None),
            key=lambda r: (r.receipt_date, r.created_at),
            reverse=True,
        )
        undated = sorted(
            (r for r in receipts if r.receipt_date is None),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return dated + undated

    async def tax_deductible_total(self) -> Decimal:
        receipts = await self._storage.list_records(Collection.RECEIPTS, self._owner_id)
        return sum(
            (r.total_amount for r in receipts if r.is_tax_deductible and r.total_amount is not None),
            Decimal("0.00"),
        )


# =============================================================================
# CSV IMPORT
# =============================================================================

class ImportCommitResult(BaseModel):
    """Outcome of writing a confirmed import preview."""

    imported: int = 0
    failures: list[str] = Field(default_factory=list)


class ImportFlow:
    """
    Orchestrates a CSV import.

    Flow:
    1. Parse -> ImportResult preview with row errors (nothing written)
    2. Review -> User confirms (PAUSE)
    3. Commit -> Insert rows one by one

    CRITICAL: Commit has no rollback. Rows written before a failure stay
    written; the failures are reported back.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        store: FinanceStore,
        audit_logger: Optional[AuditLogger] = None,
        default_category: str = "Uncategorized",
        default_account: str = "Checking",
    ):
        self._storage = storage
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._default_category = default_category
        self._default_account = default_account

    async def parse(self, text: str) -> ImportResult:
        result = parse_transactions_csv(
            text,
            self._store.accounts,
            default_category=self._default_category,
            default_account=self._default_account,
        )
        await self._audit.log_csv_parsed(
            owner_id=self._store.owner_id,
            row_count=len(result.preview),
            error_count=len(result.errors),
            warning_count=len(result.warnings),
        )
        return result

    def _resolve_account(self, name: str) -> Optional[UUID]:
        """Account id by case-insensitive name, else the first account."""
        accounts = self._store.accounts
        for account in accounts:
            if account.name.lower() == name.lower():
                return account.id
        return accounts[0].id if accounts else None

    async def commit_import(
        self,
        preview: Sequence[ImportedTransaction],
    ) -> ImportCommitResult:
        correlation_id = create_correlation_id()
        result = ImportCommitResult()

        if preview and not self._store.accounts:
            result.failures.append("Create an account before importing transactions.")
            return result

        for position, row in enumerate(preview, start=1):
            transaction = Transaction(
                owner_id=self._store.owner_id,
                account_id=self._resolve_account(row.account),
                payee=row.payee,
                category=row.category,
                amount=row.amount,
                type=row.type,
                date=row.date,
            )
            try:
                await self._storage.insert_record(Collection.TRANSACTIONS, transaction)
                result.imported += 1
            except StorageError as e:
                result.failures.append(f"Transaction {position} ({row.payee}): {e}")

        await self._audit.log_csv_committed(
            owner_id=self._store.owner_id,
            imported_count=result.imported,
            failed_count=len(result.failures),
            correlation_id=correlation_id,
        )
        await self._store.refresh()
        return result


# =============================================================================
# SIGNUP AND APPROVAL
# =============================================================================

class SignupFlow:
    """
    First sign-in registration and admin approval.

    New users start pending. Emails listed in admin_emails are approved as
    administrators on first sign-in so a fresh install has someone who can
    approve others.
    """

    def __init__(
        self,
        storage: RecordStorageInterface,
        notifier: Optional[AdminNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        admin_emails: Sequence[str] = (),
    ):
        self._storage = storage
        self._notifier = notifier
        self._audit = audit_logger or AuditLogger()
        self._admin_emails = {e.lower() for e in admin_emails}

    async def get_user(self, owner_id: str) -> Optional[UserApproval]:
        users = await self._storage.list_records(Collection.USERS, owner_id)
        return users[0] if users else None

    async def ensure_registered(
        self,
        owner_id: str,
        email: str,
        name: Optional[str] = None,
    ) -> UserApproval:
        """Return the user's approval record, creating it on first sign-in."""
        existing = await self.get_user(owner_id)
        if existing is not None:
            return existing

        is_bootstrap_admin = email.lower() in self._admin_emails
        user = UserApproval(
            owner_id=owner_id,
            email=email,
            name=name,
            approved=is_bootstrap_admin,
            is_admin=is_bootstrap_admin,
        )
        await self._storage.insert_record(Collection.USERS, user)
        await self._audit.log_user_signed_up(
            owner_id=owner_id,
            user_record_id=user.id,
            email=email,
        )

        if self._notifier is not None and not is_bootstrap_admin:
            sent, message = self._notifier.notify_signup(email, name)
            await self._audit.log_admin_notification(
                email=email,
                success=sent,
                error_message=None if sent else message,
            )
        return user

    @staticmethod
    def _require_admin(actor: UserApproval) -> None:
        if not (actor.approved and actor.is_admin):
            raise PermissionError("Only administrators can manage users")

    async def list_users(self, actor: UserApproval) -> list[UserApproval]:
        self._require_admin(actor)
        users = await self._storage.list_records(Collection.USERS)
        return sorted(users, key=lambda u: u.created_at, reverse=True)

    async def _set_flags(
        self,
        actor: UserApproval,
        user_record_id: UUID,
        changes: dict[str, bool],
        description: str,
    ) -> UserApproval:
        self._require_admin(actor)
        updated = await self._storage.update_record(Collection.USERS, user_record_id, changes)
        await self._audit.log_record_changed(
            event_type=AuditEventType.USER_APPROVAL_CHANGED,
            owner_id=updated.owner_id,
            entity_type="user",
            entity_id=user_record_id,
            description=f"{description}: {updated.email}",
            details={**changes, "changed_by": actor.email},
        )
        return updated

    async def approve(self, actor: UserApproval, user_record_id: UUID) -> UserApproval:
        return await self._set_flags(actor, user_record_id, {"approved": True}, "User approved")

    async def revoke(self, actor: UserApproval, user_record_id: UUID) -> UserApproval:
        if user_record_id == actor.id:
            raise PermissionError("Administrators can't revoke their own access")
        return await self._set_flags(actor, user_record_id, {"approved": False}, "User access revoked")

    async def toggle_admin(self, actor: UserApproval, user_record_id: UUID) -> UserApproval:
        if user_record_id == actor.id:
            raise PermissionError("Administrators can't change their own admin flag")
        target = await self._storage.get_record(Collection.USERS, user_record_id)
        if target is None:
            raise NotFoundError(f"User not found: {user_record_id}")
        return await self._set_flags(
            actor,
            user_record_id,
            {"is_admin": not target.is_admin},
            "Admin granted" if not target.is_admin else "Admin removed",
        )


# =============================================================================
# FACTORIES
# =============================================================================

class Backends(NamedTuple):
    """Process-wide storage and audit trail."""

    record_storage: RecordStorageInterface
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient]


class UserComponents(NamedTuple):
    """Everything one approved user's session needs."""

    store: FinanceStore
    receipt_flow: ReceiptFlow
    import_flow: ImportFlow


def create_backends(use_storage: bool = True) -> Backends:
    """
    Create storage and audit backends.

    Args:
        use_storage: Whether to use Google Sheets. When False, or when
                     Sheets isn't configured, data lives in memory.
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if use_storage and optional_section("google_sheets") is not None:
        sheets_client = GoogleSheetsClient()
        return Backends(
            record_storage=GoogleSheetsRecordStorage(sheets_client),
            audit_logger=AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
            sheets_client=sheets_client,
        )

    if use_storage:
        logger.warning("storage_not_configured", fallback="in_memory")
    return Backends(
        record_storage=InMemoryRecordStorage(),
        audit_logger=AuditLogger(InMemoryAuditStorage()),
        sheets_client=None,
    )


def create_signup_flow(backends: Backends) -> SignupFlow:
    smtp = optional_section("smtp")
    return SignupFlow(
        storage=backends.record_storage,
        notifier=AdminNotifier(smtp) if smtp is not None else None,
        audit_logger=backends.audit_logger,
        admin_emails=get_settings().app.admin_emails_list,
    )


def create_user_components(owner_id: str, backends: Backends) -> UserComponents:
    """Factory for the per-user flows. The store starts stale."""
    app = get_settings().app
    validator = FinanceValidator(future_date_tolerance_days=app.future_date_tolerance_days)

    store = FinanceStore(
        backends.record_storage,
        owner_id,
        audit_logger=backends.audit_logger,
        validator=validator,
        upcoming_window_days=app.upcoming_window_days,
    )
    receipt_flow = ReceiptFlow(
        backends.record_storage,
        owner_id,
        image_service=ReceiptImageService() if optional_section("cloudinary") else None,
        ocr_service=MindeeOCRService() if optional_section("mindee") else None,
        validator=validator,
        audit_logger=backends.audit_logger,
    )
    import_flow = ImportFlow(
        backends.record_storage,
        store,
        audit_logger=backends.audit_logger,
        default_category=app.default_category,
        default_account=app.default_account_name,
    )
    return UserComponents(store, receipt_flow, import_flow)
