import csv
import io
from datetime import date
from decimal import Decimal

from clinic_ledger.models import LedgerDomain
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.services.statement_service import StatementBuilder
from clinic_ledger.utils.export import (
    account_statement_csv,
    csv_filename,
    daily_statement_csv,
    format_value,
)

from tests.conftest import DAY


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


def _seed(db):
    optics = LedgerPostingService(db, "optics")
    optics.add_fund(1000, "Owner capital", date=DAY)
    optics.add_income(250.5, "Sales", "Frames, lenses", date=DAY)
    optics.add_expense(100, "Rent", "March", date=DAY)


def test_format_value():
    assert format_value(None) == ""
    assert format_value(Decimal("5")) == "5.00"
    assert format_value(date(2026, 3, 1)) == "2026-03-01"
    assert format_value(LedgerDomain.OPTICS) == "optics"


def test_daily_statement_csv_matches_json(db):
    _seed(db)
    statement = StatementBuilder(db).daily_statement("optics", DAY, DAY)

    rows = _rows(daily_statement_csv(statement))

    assert rows[0] == [
        "Date", "Fund In", "Sales", "Other Income", "Total Credit",
        "Fund Out", "Purchases", "Expense", "Total Debit", "Balance",
    ]
    assert rows[1][0] == "Opening Balance" and rows[1][-1] == "0.00"
    assert rows[2] == ["2026-03-01", "1000.00", "250.50", "0.00", "1250.50", "0.00", "0.00", "100.00", "100.00", "1150.50"]
    assert rows[-1][0] == "Total"
    assert rows[-1][-1] == "1150.50"


def test_account_statement_csv(db):
    _seed(db)
    statement = StatementBuilder(db).account_statement("optics", DAY, DAY)

    rows = _rows(account_statement_csv(statement))

    assert rows[0][0] == "Date" and rows[0][-1] == "Balance"
    assert rows[1][4] == "Opening Balance"
    assert len(rows) == 2 + 3 + 1
    assert "Frames, lenses" in [row[4] for row in rows]
    assert rows[-1][4] == "Total (3 entries)"
    assert rows[-1][5:] == ["1250.50", "100.00", "1150.50"]


def test_csv_filename():
    assert csv_filename(LedgerDomain.MAIN, "daily", DAY, date(2026, 3, 31)) == "main_daily_20260301_20260331.csv"
