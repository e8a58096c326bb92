from datetime import date, timedelta
from decimal import Decimal

import pytest

from clinic_ledger.common.exceptions import (
    BusinessRuleError,
    CreditLimitExceededError,
    InsufficientBalanceError,
    UnknownDomainError,
    ValidationError,
    VendorNotFoundError,
)
from clinic_ledger.models import (
    BalanceType,
    LedgerDomain,
    LedgerTransaction,
    MainAccountVoucher,
    PaymentStatus,
    VendorPayment,
    VendorTransaction,
    VoucherType,
)
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.services.statement_service import StatementBuilder
from clinic_ledger.services.vendor_service import VendorLedgerService, aging_bucket
from clinic_ledger.services.voucher_service import MainLedgerService

from tests.conftest import DAY


@pytest.fixture
def vendors(db):
    return VendorLedgerService(db)


@pytest.fixture
def medicine(db):
    service = LedgerPostingService(db, "medicine")
    service.add_fund(20000, "Owner capital", date=DAY)
    return service


def test_purchase_then_payment_settles_across_ledgers(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")

    purchase = vendors.record_purchase(vendor.id, 10000, "Lot A", paid_amount=4000, date=DAY)

    assert purchase.transaction_no == f"VT{vendor.id}-{date.today():%Y%m%d}-0001"
    assert purchase.due_amount == Decimal("6000.00")
    assert purchase.paid_amount == Decimal("4000.00")
    assert purchase.payment_status == PaymentStatus.PARTIAL
    assert purchase.due_date == DAY + timedelta(days=30)
    db.refresh(vendor)
    assert vendor.current_balance == Decimal("6000.00")
    assert vendor.balance_type == BalanceType.DUE
    assert medicine.get_balance() == Decimal("16000.00")
    expense = db.query(LedgerTransaction).filter(LedgerTransaction.category == "Medicine Purchase").one()
    assert expense.amount == Decimal("4000.00")

    payment = vendors.make_payment(vendor.id, 6000, payment_date=DAY, allocated_transactions=[purchase.id])

    db.refresh(purchase)
    db.refresh(vendor)
    assert purchase.due_amount == Decimal("0.00")
    assert purchase.payment_status == PaymentStatus.PAID
    assert vendor.signed_balance == Decimal("0.00")
    assert payment.allocated_transactions == [purchase.id]
    assert payment.ledger_transaction_id is not None
    assert medicine.get_balance() == Decimal("10000.00")

    voucher = db.query(MainAccountVoucher).one()
    assert voucher.voucher_type == VoucherType.DEBIT
    assert voucher.source_account == LedgerDomain.MEDICINE
    assert voucher.source_transaction_type == "vendor_payment"
    assert voucher.amount == Decimal("10000.00")
    assert MainLedgerService(db).get_balance() == Decimal("-10000.00")
    assert all(r["is_consistent"] for r in StatementBuilder(db).reconcile_all())


def test_purchase_categories_land_in_purchase_bucket(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    purchase = vendors.record_purchase(vendor.id, 1000, "Lot A", paid_amount=400, date=DAY)
    vendors.make_payment(vendor.id, 600, payment_date=DAY, allocated_transactions=[purchase.id])

    row = StatementBuilder(db).daily_statement("medicine", DAY, DAY)["rows"][0]
    assert row["debits"]["purchases"] == Decimal("1000.00")
    assert row["debits"]["expense"] == Decimal("0.00")


def test_credit_limit_blocks_purchase(db, vendors):
    vendor = vendors.create_vendor("Lens Works", domain="optics", credit_limit=5000)
    vendors.record_purchase(vendor.id, 4000, "Frames", date=DAY)

    with pytest.raises(CreditLimitExceededError):
        vendors.record_purchase(vendor.id, 1500, "More frames", date=DAY)

    db.refresh(vendor)
    assert vendor.current_balance == Decimal("4000.00")
    assert db.query(VendorTransaction).count() == 1


def test_payment_without_domain_funds_rolls_back(db, vendors):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    vendors.record_purchase(vendor.id, 1000, "Lot A", date=DAY)

    with pytest.raises(InsufficientBalanceError):
        vendors.make_payment(vendor.id, 500, payment_date=DAY)

    db.refresh(vendor)
    assert vendor.current_balance == Decimal("1000.00")
    assert db.query(VendorPayment).count() == 0
    assert db.query(LedgerTransaction).count() == 0
    assert db.query(MainAccountVoucher).count() == 0


def test_immediate_payment_needs_domain_funds(db, vendors):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")

    with pytest.raises(InsufficientBalanceError):
        vendors.record_purchase(vendor.id, 1000, "Lot A", paid_amount=200, date=DAY)
    assert db.query(VendorTransaction).count() == 0

    with pytest.raises(ValidationError):
        vendors.record_purchase(vendor.id, 1000, "Lot A", paid_amount=1200, date=DAY)


def test_payment_cannot_exceed_due(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    vendors.record_purchase(vendor.id, 300, "Lot A", date=DAY)

    with pytest.raises(BusinessRuleError):
        vendors.make_payment(vendor.id, 300.01, payment_date=DAY)
    assert medicine.get_balance() == Decimal("20000.00")


def test_allocation_follows_listed_order(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    first = vendors.record_purchase(vendor.id, 300, "Lot A", date=DAY)
    second = vendors.record_purchase(vendor.id, 500, "Lot B", date=DAY)

    payment = vendors.make_payment(vendor.id, 600, payment_date=DAY, allocated_transactions=[second.id, first.id])

    db.refresh(first)
    db.refresh(second)
    assert payment.allocated_transactions == [second.id, first.id]
    assert second.payment_status == PaymentStatus.PAID
    assert first.paid_amount == Decimal("100.00")
    assert first.due_amount == Decimal("200.00")
    assert first.payment_status == PaymentStatus.PARTIAL
    assert [t.id for t in vendors.pending_transactions(vendor.id)] == [first.id]


def test_allocation_to_foreign_transaction_rejected(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    other = vendors.create_vendor("Other Co", domain="medicine")
    vendors.record_purchase(vendor.id, 300, "Lot A", date=DAY)
    foreign = vendors.record_purchase(other.id, 300, "Lot X", date=DAY)

    with pytest.raises(ValidationError):
        vendors.make_payment(vendor.id, 100, payment_date=DAY, allocated_transactions=[foreign.id])
    assert db.query(VendorPayment).count() == 0


def test_adjustments_can_flip_to_advance(db, vendors):
    vendor = vendors.create_vendor("Pharma Co")

    vendors.adjust_balance(vendor.id, "increase", 200, "Missed invoice")
    db.refresh(vendor)
    assert vendor.signed_balance == Decimal("200.00")

    adjustment = vendors.adjust_balance(vendor.id, "decrease", 500, "Credit note")
    db.refresh(vendor)
    assert adjustment.description == "Balance decrease: Credit note"
    assert vendor.balance_type == BalanceType.ADVANCE
    assert vendor.current_balance == Decimal("300.00")
    assert vendor.signed_balance == Decimal("-300.00")

    with pytest.raises(ValidationError):
        vendors.adjust_balance(vendor.id, "sideways", 10, "x")


def test_due_report_ages_open_purchases(db, vendors):
    late = vendors.create_vendor("Alpha Supplies")
    fresh = vendors.create_vendor("Beta Supplies")
    vendors.create_vendor("Gamma Idle")

    vendors.record_purchase(late.id, 700, "Old lot", date=DAY - timedelta(days=30))
    vendors.record_purchase(fresh.id, 400, "New lot", date=DAY + timedelta(days=40))

    report = vendors.due_report(as_of=DAY + timedelta(days=45))

    assert [row["vendor_name"] for row in report["vendors"]] == ["Alpha Supplies", "Beta Supplies"]
    alpha, beta = report["vendors"]
    assert alpha["days_31_60"] == Decimal("700.00")
    assert alpha["total_due"] == Decimal("700.00")
    assert beta["current"] == Decimal("400.00")
    assert report["totals"]["total_due"] == Decimal("1100.00")


@pytest.mark.parametrize(
    "days, bucket",
    [(-3, "current"), (0, "current"), (1, "days_1_30"), (31, "days_31_60"), (90, "days_61_90"), (91, "over_90")],
)
def test_aging_bucket_edges(days, bucket):
    assert aging_bucket(days) == bucket


def test_vendor_lookup_and_validation(db, vendors):
    with pytest.raises(VendorNotFoundError):
        vendors.get_vendor(404)
    with pytest.raises(VendorNotFoundError):
        vendors.record_purchase(404, 100, "x")
    with pytest.raises(UnknownDomainError):
        vendors.create_vendor("Main Vendor", domain="main")
    with pytest.raises(ValidationError):
        vendors.create_vendor("  ")

    vendors.create_vendor("Pharma Co", company_name="Pharma Holdings", domain="medicine")
    vendors.create_vendor("Lens Works", domain="optics")
    rows, total = vendors.list_vendors(search="holdings")
    assert total == 1 and rows[0].name == "Pharma Co"
    rows, total = vendors.list_vendors(domain=LedgerDomain.OPTICS)
    assert [v.name for v in rows] == ["Lens Works"]


def test_inactive_vendor_rejects_purchases(db, vendors):
    vendor = vendors.create_vendor("Pharma Co")
    vendor.is_active = False
    db.commit()

    with pytest.raises(BusinessRuleError):
        vendors.record_purchase(vendor.id, 100, "x")


def test_vendor_payment_expense_is_locked_against_domain_edits(db, vendors, medicine):
    vendor = vendors.create_vendor("Pharma Co", domain="medicine")
    purchase = vendors.record_purchase(vendor.id, 6000, "Lot A", date=DAY)
    payment = vendors.make_payment(vendor.id, 6000, payment_date=DAY, allocated_transactions=[purchase.id])
    expense = db.query(LedgerTransaction).filter(LedgerTransaction.id == payment.ledger_transaction_id).one()

    with pytest.raises(BusinessRuleError):
        medicine.update_expense(expense, 1000)
    with pytest.raises(BusinessRuleError):
        medicine.reverse_transaction(expense, "Paid twice")

    db.refresh(expense)
    db.refresh(vendor)
    assert expense.amount == Decimal("6000.00")
    assert not expense.is_reversed
    assert vendor.signed_balance == Decimal("0.00")
    assert medicine.get_balance() == Decimal("14000.00")
    assert MainLedgerService(db).get_balance() == Decimal("-6000.00")
    assert db.query(LedgerTransaction).count() == 1


def test_hospital_vendor_postings_land_in_hospital_purchase_bucket(db, vendors):
    LedgerPostingService(db, "hospital").add_fund(5000, "Owner capital", date=DAY)
    vendor = vendors.create_vendor("Surgical Supplies", domain="hospital")
    purchase = vendors.record_purchase(vendor.id, 900, "Gloves", paid_amount=300, date=DAY)
    vendors.make_payment(vendor.id, 600, payment_date=DAY, allocated_transactions=[purchase.id])

    row = StatementBuilder(db).daily_statement("hospital", DAY, DAY)["rows"][0]
    assert row["debits"]["hospital_purchase"] == Decimal("900.00")
    assert row["debits"]["other_expenses"] == Decimal("0.00")
