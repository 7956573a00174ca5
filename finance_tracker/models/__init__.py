"""
Data Models Package

This package contains all Pydantic models used in the Finance Tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.finance import (
    Account,
    AccountInput,
    AccountType,
    Budget,
    BudgetInput,
    BudgetProgress,
    ImportedTransaction,
    OwnedRecord,
    RecurrenceFrequency,
    RecurringInput,
    RecurringTransaction,
    Transaction,
    TransactionInput,
    TransactionType,
    to_money,
    utcnow,
)
from finance_tracker.models.receipt import (
    RECEIPT_CATEGORIES,
    ExtractedReceiptData,
    Receipt,
    ReceiptInput,
)
from finance_tracker.models.user import UserApproval
from finance_tracker.models.validation import ValidationIssue, ValidationResult
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountInput",
    "AccountType",
    "Budget",
    "BudgetInput",
    "BudgetProgress",
    "ImportedTransaction",
    "OwnedRecord",
    "RecurrenceFrequency",
    "RecurringInput",
    "RecurringTransaction",
    "Transaction",
    "TransactionInput",
    "TransactionType",
    "to_money",
    "utcnow",
    # Receipt models
    "RECEIPT_CATEGORIES",
    "ExtractedReceiptData",
    "Receipt",
    "ReceiptInput",
    # Users
    "UserApproval",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
