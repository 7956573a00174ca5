"""
Core Finance Models

These models define the schemas for everything the tracker persists:
accounts, transactions, budgets and recurring templates. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage, export and logging

Every persisted entity belongs to exactly one owner. Input models carry the
user-editable fields; the persisted models add identity and ownership.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# Field names such as `date` shadow the type inside class bodies.
CalendarDay = date

CENT = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value) -> Decimal:
    """
    Quantize any numeric value to cents.

    Raises ValueError when the value has no cent representation in the
    default decimal context.
    """
    try:
        money = Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value}")
    if not money.is_finite():
        raise ValueError(f"Invalid amount: {value}")
    return money


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Kinds of account a user can track."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    Amounts are always stored positive; the type decides the sign when
    aggregating into balances.
    """
    INCOME = "income"
    EXPENSE = "expense"


class RecurrenceFrequency(str, Enum):
    """How often a recurring template repeats."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# =============================================================================
# BASE
# =============================================================================

class OwnedRecord(BaseModel):
    """Identity and ownership shared by every persisted entity."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Identity-provider subject of the owning user"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the record was created"
    )


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountInput(BaseModel):
    """User-editable account fields."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Kind of account"
    )
    starting_balance: Decimal = Field(
        default=Decimal("0.00"),
        description="Balance before any tracked transaction"
    )
    color: str = Field(
        default="#10b981",
        max_length=20,
        description="Color tag used in the UI"
    )

    @field_validator("starting_balance")
    @classmethod
    def quantize_balance(cls, v: Decimal) -> Decimal:
        return to_money(v)


class Account(AccountInput, OwnedRecord):
    """
    A bank, credit or cash account.

    The current balance is NOT stored: it is derived from the starting
    balance plus the signed sum of the account's transactions.
    """


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionInput(BaseModel):
    """User-editable transaction fields."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID = Field(
        ...,
        description="Account this transaction belongs to (not enforced)"
    )
    payee: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Who was paid / who paid"
    )
    category: str = Field(
        default="Uncategorized",
        min_length=1,
        max_length=100,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Always positive; sign comes from type"
    )
    type: TransactionType = Field(
        default=TransactionType.EXPENSE,
    )
    date: CalendarDay = Field(
        ...,
        description="Calendar day, no time component"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    recurring_id: Optional[UUID] = Field(
        default=None,
        description="Recurring template this occurrence was generated from"
    )

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        v = to_money(v)
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v


class Transaction(TransactionInput, OwnedRecord):
    """A concrete income or expense on one account."""

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign its type implies."""
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetInput(BaseModel):
    """User-editable budget fields."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Expense category (unique per owner)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Monthly limit"
    )
    color: str = Field(
        default="#6366f1",
        max_length=20,
    )

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return to_money(v)


class Budget(BudgetInput, OwnedRecord):
    """A monthly spending limit for one category."""


class BudgetProgress(BaseModel):
    """
    How much of a budget has been used in the current calendar month.

    Recomputed on every read; never stored.
    """

    budget: Budget
    spent: Decimal
    remaining: Decimal
    percentage: Decimal
    is_over: bool


# =============================================================================
# RECURRING TEMPLATES
# =============================================================================

class RecurringInput(BaseModel):
    """User-editable recurring template fields."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    payee: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    category: str = Field(
        default="Uncategorized",
        min_length=1,
        max_length=100,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
    )
    type: TransactionType = TransactionType.EXPENSE
    frequency: RecurrenceFrequency = RecurrenceFrequency.MONTHLY
    start_date: CalendarDay
    next_due_date: Optional[CalendarDay] = Field(
        default=None,
        description="Defaults to start_date for a new template"
    )
    is_active: bool = True

    @field_validator("amount")
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        v = to_money(v)
        if v <= 0:
            raise ValueError("Amount must be greater than zero")
        return v

    @model_validator(mode='after')
    def default_next_due(self) -> 'RecurringInput':
        if self.next_due_date is None:
            self.next_due_date = self.start_date
        return self


class RecurringTransaction(RecurringInput, OwnedRecord):
    """
    A rule describing a transaction that repeats on a fixed schedule.

    States are active/paused. next_due_date only ever moves forward, each
    time an occurrence is paid or skipped.
    """

    last_generated_date: Optional[CalendarDay] = Field(
        default=None,
        description="Due date of the most recently generated occurrence"
    )

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurringTransaction':
        if self.next_due_date and self.next_due_date < self.start_date:
            raise ValueError("Next due date cannot be before start date")
        return self


# =============================================================================
# IMPORT / EXPORT
# =============================================================================

class ImportedTransaction(BaseModel):
    """
    One validated row of a CSV import, before it is written.

    The account is kept as the name from the file; it is resolved to an
    account id only when the import is confirmed.
    """

    date: CalendarDay
    payee: str
    category: str
    account: str
    amount: Decimal = Field(gt=0)
    type: TransactionType
