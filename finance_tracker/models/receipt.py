"""
Receipt Models

A receipt is an uploaded image plus whatever the user (optionally helped by
OCR) typed in about it. OCR output is a SUGGESTION: every extracted field is
optional and the user can save a receipt without any of them.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finance_tracker.models.finance import CalendarDay, OwnedRecord, to_money


RECEIPT_CATEGORIES = [
    "Business Expense",
    "Office Supplies",
    "Travel",
    "Meals & Entertainment",
    "Medical",
    "Charitable Donation",
    "Home Office",
    "Equipment",
    "Software/Subscriptions",
    "Other",
]


class ReceiptInput(BaseModel):
    """User-editable receipt fields."""
    model_config = ConfigDict(str_strip_whitespace=True)

    store_name: Optional[str] = Field(
        default=None,
        max_length=200,
    )
    receipt_date: Optional[CalendarDay] = None
    total_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
    )
    tax_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
    )
    category: Optional[str] = Field(
        default=None,
        max_length=100,
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    raw_text: Optional[str] = Field(
        default=None,
        description="Raw OCR text kept for reference"
    )
    is_tax_deductible: bool = False

    @field_validator("total_amount", "tax_amount")
    @classmethod
    def quantize_amounts(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return to_money(v) if v is not None else None

    @field_validator("store_name", "category", "notes", "raw_text")
    @classmethod
    def empty_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class Receipt(ReceiptInput, OwnedRecord):
    """
    A stored receipt.

    Deleting a receipt removes only this record; the hosted image stays.
    """

    image_url: str = Field(
        ...,
        min_length=1,
        description="Public URL of the uploaded image"
    )


class ExtractedReceiptData(BaseModel):
    """
    Fields pulled out of OCR text by the regex heuristics.

    CRITICAL: This is PROPOSED data used only to pre-fill the form.
    """

    store_name: Optional[str] = None
    receipt_date: Optional[CalendarDay] = None
    total_amount: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    raw_text: str = ""

    @property
    def is_empty(self) -> bool:
        return not any([
            self.store_name,
            self.receipt_date,
            self.total_amount is not None,
            self.tax_amount is not None,
        ])
