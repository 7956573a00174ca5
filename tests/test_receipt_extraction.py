"""
Tests for receipt field extraction from OCR text.
"""

from datetime import date
from decimal import Decimal

from finance_tracker.services.ocr import extract_receipt_fields


SAMPLE_RECEIPT = """
CORNER MARKET
123 Main St
03/14/2024 10:42

Milk            3.49
Bread           2.99
Subtotal        6.48
Tax: 0.52
Total: $7.00
"""


class TestExtractReceiptFields:
    """Tests for the regex heuristics."""

    def test_full_receipt(self):
        data = extract_receipt_fields(SAMPLE_RECEIPT)
        assert data.store_name == "CORNER MARKET"
        assert data.receipt_date == date(2024, 3, 14)
        assert data.total_amount == Decimal("7.00")
        assert data.tax_amount == Decimal("0.52")
        assert data.raw_text == SAMPLE_RECEIPT

    def test_subtotal_is_not_total(self):
        data = extract_receipt_fields("Shop\nSubtotal 5.00\n")
        assert data.total_amount is None

    def test_amount_label_as_fallback(self):
        data = extract_receipt_fields("Shop\nAmount $12.5\n")
        assert data.total_amount == Decimal("12.50")

    def test_dash_and_month_name_dates(self):
        assert extract_receipt_fields("Shop\n1-5-2024").receipt_date == date(2024, 1, 5)
        assert extract_receipt_fields("Shop\nJan 5, 2024").receipt_date == date(2024, 1, 5)

    def test_impossible_date_is_dropped(self):
        data = extract_receipt_fields("Shop\n13/45/2024\nTotal 3.00")
        assert data.receipt_date is None
        assert data.total_amount == Decimal("3.00")

    def test_nothing_recognized(self):
        data = extract_receipt_fields("")
        assert data.is_empty is True
        assert data.store_name is None

    def test_store_name_is_capped(self):
        data = extract_receipt_fields("X" * 300)
        assert len(data.store_name) == 200
