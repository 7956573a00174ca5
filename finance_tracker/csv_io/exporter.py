"""
CSV and JSON export.

The CSV layout matches what the importer reads, so an export can be
imported again unchanged. The JSON backup is a full snapshot; there is no
restore path.
"""

import json
from typing import Optional, Sequence
from uuid import UUID

from finance_tracker.models.finance import (
    Account,
    Budget,
    RecurringTransaction,
    Transaction,
    utcnow,
)


CSV_HEADERS = ["Date", "Payee", "Category", "Account", "Amount", "Type"]

BACKUP_VERSION = "1.0"

TEMPLATE_CSV = """Date,Payee,Category,Account,Amount,Type
2024-01-15,Grocery Store,Groceries,Checking,85.50,expense
2024-01-14,Employer,Salary,Checking,3500.00,income
2024-01-13,Electric Company,Utilities,Checking,120.00,expense
2024-01-12,Restaurant,Dining,Credit Card,45.00,expense"""


def escape_csv(value: str) -> str:
    """Quote a field if it holds a comma, a quote or a line break."""
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def transactions_to_csv(
    transactions: Sequence[Transaction],
    accounts: Optional[Sequence[Account]] = None,
) -> str:
    """
    Render transactions as CSV text.

    The Account column holds the account name when it is known, otherwise
    the raw account id.
    """
    names: dict[UUID, str] = {a.id: a.name for a in accounts or []}

    rows = [",".join(CSV_HEADERS)]
    for txn in transactions:
        rows.append(",".join([
            txn.date.isoformat(),
            escape_csv(txn.payee),
            escape_csv(txn.category),
            escape_csv(names.get(txn.account_id, str(txn.account_id))),
            f"{txn.amount:.2f}",
            txn.type.value,
        ]))
    return "\n".join(rows)


def build_backup(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    budgets: Sequence[Budget],
    recurring: Sequence[RecurringTransaction],
) -> dict:
    """Full JSON-ready snapshot of one user's finance data."""
    return {
        "exportDate": utcnow().isoformat(),
        "version": BACKUP_VERSION,
        "data": {
            "accounts": [a.model_dump(mode="json") for a in accounts],
            "transactions": [t.model_dump(mode="json") for t in transactions],
            "budgets": [b.model_dump(mode="json") for b in budgets],
            "recurringTransactions": [r.model_dump(mode="json") for r in recurring],
        },
    }


def backup_to_json(backup: dict) -> str:
    return json.dumps(backup, indent=2)


def export_filename(prefix: str, extension: str) -> str:
    """e.g. transactions-2024-01-15.csv"""
    return f"{prefix}-{utcnow().date().isoformat()}.{extension}"
