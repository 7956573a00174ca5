"""
CSV Import Parser

Turns a loosely structured bank export into validated transaction rows.

Tolerates:
- Reordered columns and case differences in the header
- "Description" or "Merchant" in place of "Payee"
- Currency symbols and thousands separators in amounts
- Missing Type column (type is inferred)

Validation NEVER raises. Every problem becomes a row-numbered message and
the row is left out of the preview. Row numbers count non-empty lines,
header included, so the first data row is "Row 2".
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from finance_tracker.models.finance import (
    Account,
    ImportedTransaction,
    TransactionType,
    to_money,
)


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Longest numeric prefix, the way a lenient float parser reads "12.50abc"
LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

PAYEE_ALIASES = ("payee", "description", "merchant")


class ImportResult(BaseModel):
    """Outcome of parsing one CSV file."""

    preview: list[ImportedTransaction] = Field(default_factory=list)
    errors: list[str] = Field(
        default_factory=list,
        description="Row-level and header-level problems shown to the user"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-fatal notes, e.g. unknown account names"
    )

    @property
    def can_import(self) -> bool:
        return bool(self.preview)


def parse_csv_line(line: str) -> list[str]:
    """
    Split one CSV line into trimmed fields.

    Double quotes toggle quoting; inside quotes "" is a literal quote and
    commas don't split.
    """
    fields = []
    current = []
    in_quotes = False
    i = 0

    while i < len(line):
        char = line[i]
        if in_quotes:
            if char == '"' and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            elif char == '"':
                in_quotes = False
            else:
                current.append(char)
        elif char == '"':
            in_quotes = True
        elif char == ",":
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_amount(raw: str) -> Optional[Decimal]:
    """
    Read the leading number of an amount string, or None.

    "$" and "," must already be stripped. Sign is preserved.
    """
    match = LEADING_NUMBER.match(raw)
    if not match:
        return None
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return None


def infer_type(type_str: str, amount_str: str, category: str) -> TransactionType:
    """
    Decide income vs expense for one row.

    An explicit Type wins. Otherwise a negative amount means expense, a
    salary/income category means income, and anything else is an expense.
    """
    if type_str == "income":
        return TransactionType.INCOME
    if type_str == "expense":
        return TransactionType.EXPENSE

    parsed = parse_amount(amount_str)
    if amount_str.startswith("-") or (parsed is not None and parsed < 0):
        return TransactionType.EXPENSE

    lowered = category.lower()
    if "salary" in lowered or "income" in lowered:
        return TransactionType.INCOME
    return TransactionType.EXPENSE


def _find_column(headers: list[str], *names: str) -> Optional[int]:
    for idx, header in enumerate(headers):
        if header in names:
            return idx
    return None


def _cell(values: list[str], idx: Optional[int]) -> Optional[str]:
    if idx is None or idx >= len(values):
        return None
    return values[idx].strip()


def parse_transactions_csv(
    text: str,
    accounts: Sequence[Account] = (),
    default_category: str = "Uncategorized",
    default_account: str = "Checking",
) -> ImportResult:
    """
    Parse CSV text into a preview of transactions to import.

    Args:
        text: Raw file content
        accounts: The user's accounts, used for defaults and name checks
        default_category: Category for rows without one
        default_account: Account name when the user has no accounts

    Returns:
        ImportResult. A header problem yields only header errors and an
        empty preview.
    """
    # Only "\n" ends a record; "\r" inside a quoted field is data
    lines = [line.removesuffix("\r") for line in text.split("\n")]
    lines = [line for line in lines if line.strip()]
    if len(lines) < 2:
        return ImportResult(errors=["File is empty or has no data rows."])

    headers = [h.lower().strip() for h in parse_csv_line(lines[0])]
    date_idx = _find_column(headers, "date")
    payee_idx = _find_column(headers, *PAYEE_ALIASES)
    category_idx = _find_column(headers, "category")
    account_idx = _find_column(headers, "account")
    amount_idx = _find_column(headers, "amount")
    type_idx = _find_column(headers, "type")

    errors = []
    if date_idx is None:
        errors.append("Missing 'Date' column")
    if payee_idx is None:
        errors.append("Missing 'Payee' column")
    if amount_idx is None:
        errors.append("Missing 'Amount' column")
    if errors:
        return ImportResult(errors=errors)

    fallback_account = accounts[0].name if accounts else default_account
    known_accounts = {a.name.lower() for a in accounts}

    result = ImportResult()
    for row_number, line in enumerate(lines[1:], start=2):
        values = parse_csv_line(line)
        if len(values) < 3:
            continue

        raw_date = _cell(values, date_idx) or ""
        payee = _cell(values, payee_idx) or ""
        category = _cell(values, category_idx) or default_category
        account = _cell(values, account_idx) or fallback_account
        amount_str = (_cell(values, amount_idx) or "").replace("$", "").replace(",", "")
        type_str = (_cell(values, type_idx) or "").lower()

        row_date = None
        if DATE_PATTERN.match(raw_date):
            try:
                row_date = date.fromisoformat(raw_date)
            except ValueError:
                pass
        if row_date is None:
            result.errors.append(
                f"Row {row_number}: Invalid date format '{raw_date}' (use YYYY-MM-DD)"
            )
            continue

        parsed = parse_amount(amount_str)
        try:
            amount = to_money(abs(parsed)) if parsed is not None else None
        except ValueError:
            amount = None
        if amount is None or amount <= 0:
            result.errors.append(f"Row {row_number}: Invalid amount '{amount_str}'")
            continue

        if not payee:
            result.errors.append(f"Row {row_number}: Missing payee")
            continue

        if account_idx is not None and account.lower() not in known_accounts:
            result.warnings.append(
                f"Row {row_number}: Account '{account}' not found, will use as-is"
            )

        result.preview.append(ImportedTransaction(
            date=row_date,
            payee=payee,
            category=category,
            account=account,
            amount=amount,
            type=infer_type(type_str, amount_str, category),
        ))

    return result
