"""
CSV rendering of statements.
Rows and totals match the JSON reports line for line.
"""
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

CSV_CONTENT_TYPE = "text/csv"


def format_value(value: Any) -> str:
    """Format a value for export."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def _write(rows: List[List[Any]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    for row in rows:
        writer.writerow([format_value(v) for v in row])
    return output.getvalue()


def daily_statement_csv(statement: Dict[str, Any]) -> str:
    credit_columns = [c for c in statement["columns"] if c["side"] == "credit"]
    debit_columns = [c for c in statement["columns"] if c["side"] == "debit"]

    header = (
        ["Date"]
        + [c["label"] for c in credit_columns]
        + ["Total Credit"]
        + [c["label"] for c in debit_columns]
        + ["Total Debit", "Balance"]
    )
    rows = [header, ["Opening Balance"] + [""] * (len(header) - 2) + [statement["opening_balance"]]]

    for row in statement["rows"]:
        rows.append(
            [row["date"]]
            + [row["credits"][c["key"]] for c in credit_columns]
            + [row["total_credit"]]
            + [row["debits"][c["key"]] for c in debit_columns]
            + [row["total_debit"], row["balance"]]
        )

    totals = statement["totals"]
    rows.append(
        ["Total"]
        + [totals["credits"][c["key"]] for c in credit_columns]
        + [totals["total_credit"]]
        + [totals["debits"][c["key"]] for c in debit_columns]
        + [totals["total_debit"], statement["closing_balance"]]
    )
    return _write(rows)


def account_statement_csv(statement: Dict[str, Any]) -> str:
    summary = statement["summary"]
    rows = [
        ["Date", "Reference", "Type", "Category", "Description", "Deposit", "Withdraw", "Balance"],
        ["", "", "", "", "Opening Balance", "", "", summary["opening_balance"]],
    ]
    for entry in statement["entries"]:
        rows.append([
            entry["date"],
            entry["reference"],
            entry["type"],
            entry["category"],
            entry["description"],
            entry["deposit"],
            entry["withdraw"],
            entry["running_balance"],
        ])
    rows.append([
        "", "", "", "", f"Total ({summary['transaction_count']} entries)",
        summary["total_deposit"], summary["total_withdraw"], summary["closing_balance"],
    ])
    return _write(rows)


def csv_filename(domain: Any, kind: str, from_date: date, to_date: date) -> str:
    return f"{format_value(domain)}_{kind}_{from_date:%Y%m%d}_{to_date:%Y%m%d}.csv"
