from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from clinic_ledger.common.exceptions import StatementRangeError, ValidationError
from clinic_ledger.models import Account, LedgerDomain
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.services.statement_service import Posting, StatementBuilder
from clinic_ledger.services.taxonomy import CREDIT

from tests.conftest import DAY

BEFORE = DAY - timedelta(days=1)


@pytest.fixture
def hospital_history(db):
    hospital = LedgerPostingService(db, "hospital")
    hospital.add_fund(1000, "Owner capital", date=BEFORE)
    hospital.add_income(200, "OPD Income", "Evening OPD", date=BEFORE)

    hospital.add_income(500, "Medical Test", "Group G1", date=DAY)
    hospital.add_income(300, "Blood Bank", "Donation", date=DAY)
    hospital.add_expense(100, "Medicine Purchase", "Saline", date=DAY)
    hospital.add_expense(40, "Tea", "Staff tea", date=DAY)
    hospital.withdraw_fund(60, "Owner drawing", date=DAY)

    hospital.add_income(50, "OPD Income", "Walk-in", date=DAY + timedelta(days=2))
    return hospital


def test_opening_balance_is_net_of_history_before_date(db, hospital_history):
    builder = StatementBuilder(db)

    assert builder.opening_balance("hospital", BEFORE) == Decimal("0.00")
    assert builder.opening_balance("hospital", DAY) == Decimal("1200.00")
    assert builder.opening_balance("hospital", DAY + timedelta(days=3)) == Decimal("1850.00")


def test_daily_statement_buckets_and_carried_balance(db, hospital_history):
    statement = StatementBuilder(db).daily_statement("hospital", DAY, DAY + timedelta(days=2))

    assert statement["opening_balance"] == Decimal("1200.00")
    assert [row["date"] for row in statement["rows"]] == [DAY, DAY + timedelta(days=1), DAY + timedelta(days=2)]

    first = statement["rows"][0]
    assert first["credits"]["medical_test"] == Decimal("500.00")
    assert first["credits"]["other_income"] == Decimal("300.00")
    assert first["debits"]["medicine_purchase"] == Decimal("100.00")
    assert first["debits"]["other_expenses"] == Decimal("40.00")
    assert first["debits"]["fund_out"] == Decimal("60.00")
    assert first["total_credit"] == Decimal("800.00")
    assert first["total_debit"] == Decimal("200.00")
    assert first["balance"] == Decimal("1800.00")

    empty = statement["rows"][1]
    assert empty["total_credit"] == Decimal("0.00")
    assert empty["balance"] == Decimal("1800.00")

    assert statement["rows"][2]["credits"]["opd_income"] == Decimal("50.00")
    assert statement["totals"]["total_credit"] == Decimal("850.00")
    assert statement["totals"]["total_debit"] == Decimal("200.00")
    assert statement["closing_balance"] == Decimal("1850.00")
    assert statement["current_balance"] == Decimal("1850.00")


def test_every_posting_lands_in_exactly_one_bucket(db, hospital_history):
    statement = StatementBuilder(db).daily_statement("hospital", BEFORE, DAY + timedelta(days=2))
    totals = statement["totals"]

    assert sum(totals["credits"].values()) == totals["total_credit"] == Decimal("2050.00")
    assert sum(totals["debits"].values()) == totals["total_debit"] == Decimal("200.00")
    assert statement["closing_balance"] == statement["current_balance"]


def test_account_statement_running_balance(db, hospital_history):
    statement = StatementBuilder(db).account_statement("hospital", DAY, DAY + timedelta(days=2))
    entries = statement["entries"]
    summary = statement["summary"]

    assert summary["opening_balance"] == Decimal("1200.00")
    assert summary["transaction_count"] == len(entries) == 6
    assert summary["total_deposit"] == Decimal("850.00")
    assert summary["total_withdraw"] == Decimal("200.00")
    assert summary["closing_balance"] == Decimal("1850.00")

    running = summary["opening_balance"]
    for entry in entries:
        assert (entry["deposit"] == 0) != (entry["withdraw"] == 0)
        running = running + entry["deposit"] - entry["withdraw"]
        assert entry["running_balance"] == running
    assert [e["date"] for e in entries] == sorted(e["date"] for e in entries)


def test_same_instant_orders_fund_before_transaction_then_id():
    stamp = datetime(2026, 3, 1, 10, 0, 0)

    def posting(order, id_):
        return Posting(DAY, stamp, order, id_, CREDIT, "income", None, Decimal("1.00"), "X", None)

    ordered = sorted([posting(1, 2), posting(0, 9), posting(1, 1)], key=Posting.sort_key)
    assert [(p.order, p.id) for p in ordered] == [(0, 9), (1, 1), (1, 2)]


def test_invalid_ranges_rejected(db):
    builder = StatementBuilder(db)

    with pytest.raises(StatementRangeError):
        builder.daily_statement("hospital", DAY, BEFORE)
    with pytest.raises(ValidationError):
        builder.daily_statement("pharmacy", DAY, DAY)


def test_span_cap_applies_only_when_requested(db):
    long_span = DAY + timedelta(days=366)

    assert len(StatementBuilder(db).daily_statement("hospital", DAY, long_span)["rows"]) == 367
    with pytest.raises(StatementRangeError):
        StatementBuilder(db, max_days=366).account_statement("hospital", DAY, long_span)


def test_full_history_replay_matches_live_balance(db):
    today = date.today()
    epoch = today - timedelta(days=400)
    hospital = LedgerPostingService(db, "hospital")
    hospital.add_income(700, "OPD Income", "Opening week", date=epoch)
    hospital.add_income(300, "OPD Income", "Today", date=today)

    statement = StatementBuilder(db).daily_statement("hospital", epoch, today)

    assert len(statement["rows"]) == 401
    assert statement["opening_balance"] == Decimal("0.00")
    assert statement["closing_balance"] == hospital.get_balance() == Decimal("1000.00")


def test_reconcile_detects_drift(db, hospital_history):
    builder = StatementBuilder(db)
    assert builder.reconcile("hospital")["is_consistent"]

    account = db.query(Account).filter(Account.domain == LedgerDomain.HOSPITAL).one()
    account.balance = Decimal("9999.00")
    db.commit()

    result = builder.reconcile("hospital")
    assert not result["is_consistent"]
    assert result["expected"] == Decimal("1850.00")
    assert result["drift"] == Decimal("8149.00")


def test_reconcile_all_covers_every_domain(db, hospital_history):
    results = StatementBuilder(db).reconcile_all()

    assert [r["domain"] for r in results] == list(LedgerDomain)
    assert all(r["is_consistent"] for r in results)


def test_main_statement_replays_vouchers(db):
    hospital = LedgerPostingService(db, "hospital")
    optics = LedgerPostingService(db, "optics")
    hospital.add_income_with_voucher(500, "Medical Test", "G1", date=DAY)
    hospital.add_income_with_voucher(300, "Medical Test", "G2", date=DAY)
    optics.add_income_with_voucher(120, "Sales", "Frames", date=DAY)
    hospital.add_expense_with_voucher(80, "Cleaning", "Floor", date=DAY)

    builder = StatementBuilder(db)
    statement = builder.daily_statement("main", DAY, DAY)
    row = statement["rows"][0]

    assert row["credits"]["hospital_credit"] == Decimal("800.00")
    assert row["credits"]["optics_credit"] == Decimal("120.00")
    assert row["debits"]["hospital_debit"] == Decimal("80.00")
    assert statement["closing_balance"] == statement["current_balance"] == Decimal("840.00")

    account = builder.account_statement("main", DAY, DAY)
    assert account["summary"]["transaction_count"] == 3
    assert account["summary"]["closing_balance"] == Decimal("840.00")


def test_monthly_report(db, hospital_history):
    report = StatementBuilder(db).monthly_report("hospital", 2026, 3)

    assert report["from_date"] == date(2026, 3, 1)
    assert report["to_date"] == date(2026, 3, 31)
    assert report["income"] == Decimal("850.00")
    assert report["expense"] == Decimal("140.00")
    assert report["profit"] == Decimal("710.00")
    assert report["fund_out"] == Decimal("60.00")
    assert report["opening_balance"] == Decimal("1200.00")
    assert report["income_by_category"]["Medical Test"] == Decimal("500.00")

    with pytest.raises(ValidationError):
        StatementBuilder(db).monthly_report("hospital", 2026, 13)


def test_receipt_and_payment_groups_main_vouchers_by_source(db):
    hospital = LedgerPostingService(db, "hospital")
    optics = LedgerPostingService(db, "optics")
    hospital.add_income_with_voucher(400, "OPD Income", "Earlier", date=BEFORE)
    hospital.add_income_with_voucher(500, "Medical Test", "G1", date=DAY)
    hospital.add_income_with_voucher(300, "Medical Test", "G2", date=DAY + timedelta(days=1))
    optics.add_income_with_voucher(120, "Sales", "Frames", date=DAY)
    hospital.add_expense_with_voucher(80, "Cleaning", "Floor", date=DAY)

    report = StatementBuilder(db).receipt_and_payment(DAY, DAY + timedelta(days=1))

    assert report["opening_balance"] == Decimal("400.00")
    receipts = {(r["source_account"], r["source_transaction_type"]): r for r in report["receipts"]}
    hospital_income = receipts[(LedgerDomain.HOSPITAL, "income")]
    assert hospital_income["amount"] == Decimal("800.00")
    assert hospital_income["cumulative"] == Decimal("1200.00")
    assert hospital_income["voucher_count"] == 2
    assert receipts[(LedgerDomain.OPTICS, "income")]["amount"] == Decimal("120.00")
    assert [(p["source_account"], p["amount"]) for p in report["payments"]] == [
        (LedgerDomain.HOSPITAL, Decimal("80.00")),
    ]
    assert report["total_receipts"] == Decimal("920.00")
    assert report["total_payments"] == Decimal("80.00")
    assert report["closing_balance"] == Decimal("1240.00")
    assert report["receipt_side_total"] == report["payment_side_total"]


def test_receipt_and_payment_rejects_reversed_range(db):
    with pytest.raises(StatementRangeError):
        StatementBuilder(db).receipt_and_payment(DAY, BEFORE)
