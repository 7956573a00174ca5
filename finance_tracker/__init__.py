"""
Finance Tracker - Source Package

A multi-user personal finance tracker: accounts, transactions, monthly
budgets, recurring bills, receipts and CSV import/export.

DESIGN PRINCIPLES:
1. OCR suggests → Human confirms → System stores
2. Fail early, fail visibly
3. No silent corrections
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "0.1.0"
__author__ = "Finance Tracker Team"
