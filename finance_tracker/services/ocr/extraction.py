"""
Receipt field extraction from OCR text.

DESIGN DECISION: Ordered regex heuristics, first match wins. This is a
best-effort pre-fill; the user reviews every field and can save a receipt
with none of them.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Optional

from dateutil import parser as date_parser

from finance_tracker.models.finance import to_money
from finance_tracker.models.receipt import ExtractedReceiptData


DATE_PATTERNS = [
    re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4})"),
    re.compile(r"(\d{1,2}-\d{1,2}-\d{2,4})"),
    re.compile(r"([A-Za-z]{3}\s+\d{1,2},?\s+\d{4})"),
]

TOTAL_PATTERNS = [
    re.compile(r"\btotal[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
    re.compile(r"\bgrand total[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
    re.compile(r"\bamount[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
]

TAX_PATTERNS = [
    re.compile(r"\btax[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
    re.compile(r"\bsales tax[:\s]*\$?(\d+\.?\d*)", re.IGNORECASE),
]


def _first_match(patterns: list[re.Pattern], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _to_date(value: Optional[str]) -> Optional[date]:
    """Month-first parse of a matched date string."""
    if not value:
        return None
    try:
        return date_parser.parse(value, dayfirst=False).date()
    except (ValueError, OverflowError):
        return None


def _to_amount(value: Optional[str]) -> Optional[Decimal]:
    if not value:
        return None
    try:
        return to_money(value)
    except ValueError:
        return None


def extract_receipt_fields(text: str) -> ExtractedReceiptData:
    """
    Pull store name, date, total and tax out of raw OCR text.

    Store name is the first non-empty line. Fields that don't match stay None.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]

    return ExtractedReceiptData(
        store_name=lines[0][:200] if lines else None,
        receipt_date=_to_date(_first_match(DATE_PATTERNS, text)),
        total_amount=_to_amount(_first_match(TOTAL_PATTERNS, text)),
        tax_amount=_to_amount(_first_match(TAX_PATTERNS, text)),
        raw_text=text,
    )
