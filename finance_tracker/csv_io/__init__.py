"""CSV import and CSV/JSON export."""

from finance_tracker.csv_io.exporter import (
    CSV_HEADERS,
    TEMPLATE_CSV,
    backup_to_json,
    build_backup,
    escape_csv,
    export_filename,
    transactions_to_csv,
)
from finance_tracker.csv_io.parser import (
    ImportResult,
    infer_type,
    parse_amount,
    parse_csv_line,
    parse_transactions_csv,
)

__all__ = [
    "CSV_HEADERS",
    "TEMPLATE_CSV",
    "ImportResult",
    "backup_to_json",
    "build_backup",
    "escape_csv",
    "export_filename",
    "infer_type",
    "parse_amount",
    "parse_csv_line",
    "parse_transactions_csv",
    "transactions_to_csv",
]
