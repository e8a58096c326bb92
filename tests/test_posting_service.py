from datetime import date
from decimal import Decimal

import pytest

from clinic_ledger.common.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    TransactionNotFoundError,
    UnknownDomainError,
    ValidationError,
)
from clinic_ledger.models import (
    FundTransaction,
    LedgerCategory,
    LedgerDomain,
    LedgerTransaction,
    TransactionType,
)
from clinic_ledger.services.posting_service import LedgerPostingService

from tests.conftest import DAY


@pytest.fixture
def hospital(db):
    return LedgerPostingService(db, "hospital")


def test_add_income_increments_balance(hospital):
    tx = hospital.add_income(500, "Medical Test", "Group G1", date=DAY)

    assert tx.type == TransactionType.INCOME
    assert tx.amount == Decimal("500.00")
    assert tx.transaction_date == DAY
    assert hospital.get_balance() == Decimal("500.00")


def test_add_expense_decrements_balance(hospital):
    hospital.add_income(1000, "OPD Income", "Morning OPD", date=DAY)
    hospital.add_expense(250.50, "Staff Salary", "Cleaner", date=DAY)

    assert hospital.get_balance() == Decimal("749.50")


def test_transaction_numbers_are_sequential_per_domain(db, hospital):
    first = hospital.add_income(10, "OPD Income", "a")
    second = hospital.add_income(20, "OPD Income", "b")
    medicine = LedgerPostingService(db, LedgerDomain.MEDICINE).add_income(30, "Sales", "c")

    stem = f"HT-{date.today():%Y%m%d}-"
    assert first.transaction_no == f"{stem}0001"
    assert second.transaction_no == f"{stem}0002"
    assert medicine.transaction_no == f"MT-{date.today():%Y%m%d}-0001"


@pytest.mark.parametrize("amount", [0, -5, "abc", None])
def test_non_positive_amount_rejected_without_mutation(db, hospital, amount):
    with pytest.raises(InvalidAmountError):
        hospital.add_income(amount, "OPD Income", "bad")
    with pytest.raises(InvalidAmountError):
        hospital.add_expense(amount, "Cleaning", "bad")

    assert hospital.get_balance() == Decimal("0.00")
    assert db.query(LedgerTransaction).count() == 0


def test_category_is_get_or_created_by_name(db, hospital):
    first = hospital.add_income(100, "Medical Test", "x")
    second = hospital.add_income(100, "Medical Test", "y")

    assert first.category_id is not None
    assert first.category_id == second.category_id
    assert db.query(LedgerCategory).count() == 1


def test_category_name_resolved_from_id(db, hospital):
    first = hospital.add_income(100, "Medical Test", "x")
    second = hospital.add_income(50, None, "y", category_id=first.category_id)

    assert second.category == "Medical Test"


def test_category_id_from_another_domain_rejected(db, hospital):
    medicine_tx = LedgerPostingService(db, "medicine").add_income(100, "Sales", "x")

    with pytest.raises(ValidationError):
        hospital.add_income(100, None, "y", category_id=medicine_tx.category_id)
    assert hospital.get_balance() == Decimal("0.00")


def test_category_required(hospital):
    with pytest.raises(ValidationError):
        hospital.add_income(100, "  ", "no category")


def test_main_and_unknown_domains_are_not_sub_ledgers(db):
    with pytest.raises(UnknownDomainError):
        LedgerPostingService(db, "main")
    with pytest.raises(UnknownDomainError):
        LedgerPostingService(db, "pharmacy")


def test_fund_in_and_out(db, hospital):
    fund_in = hospital.add_fund(5000, "Owner capital", date=DAY)
    fund_out = hospital.withdraw_fund(1200, "Owner drawing", date=DAY)

    assert fund_in.voucher_no == f"HFI-{date.today():%Y%m%d}-0001"
    assert fund_out.voucher_no == f"HFO-{date.today():%Y%m%d}-0001"
    assert hospital.get_balance() == Decimal("3800.00")
    assert db.query(FundTransaction).count() == 2


def test_withdraw_more_than_balance_rejected(db, hospital):
    hospital.add_fund(100, "Owner capital")

    with pytest.raises(InsufficientBalanceError):
        hospital.withdraw_fund(100.01, "Too much")

    assert hospital.get_balance() == Decimal("100.00")
    assert db.query(FundTransaction).count() == 1


def test_update_income_applies_delta(hospital):
    tx = hospital.add_income(500, "Medical Test", "G1", date=DAY)
    hospital.add_income(300, "Medical Test", "G2", date=DAY)

    updated = hospital.update_income(tx, 600, new_description="G1 corrected")

    assert updated.amount == Decimal("600.00")
    assert updated.description == "G1 corrected"
    assert hospital.get_balance() == Decimal("900.00")


def test_update_expense_applies_negative_delta(hospital):
    hospital.add_fund(1000, "Capital")
    tx = hospital.add_expense(200, "Cleaning", "March")

    hospital.update_expense(tx.id, 150)

    assert hospital.get_balance() == Decimal("850.00")


def test_update_with_wrong_type_rejected(hospital):
    tx = hospital.add_income(100, "OPD Income", "x")

    with pytest.raises(ValidationError):
        hospital.update_expense(tx, 50)
    assert hospital.get_balance() == Decimal("100.00")


def test_update_non_positive_rejected(hospital):
    tx = hospital.add_income(100, "OPD Income", "x")

    with pytest.raises(InvalidAmountError):
        hospital.update_income(tx, 0)
    assert hospital.get_balance() == Decimal("100.00")


def test_transaction_from_other_domain_not_found(db, hospital):
    tx = LedgerPostingService(db, "optics").add_income(100, "Sales", "x")

    with pytest.raises(TransactionNotFoundError):
        hospital.update_income(tx.id, 200)
    with pytest.raises(TransactionNotFoundError):
        hospital.get_transaction(9999)


def test_list_transactions_with_totals(hospital):
    hospital.add_income(100, "OPD Income", "Morning", date=date(2026, 3, 1))
    hospital.add_income(200, "Medical Test", "CBC", date=date(2026, 3, 2))
    hospital.add_expense(50, "Cleaning", "Floor", date=date(2026, 3, 2))

    rows, total, totals = hospital.list_transactions()
    assert total == 3
    assert totals == {"total_income": Decimal("300.00"), "total_expense": Decimal("50.00")}

    rows, total, totals = hospital.list_transactions(start_date=date(2026, 3, 2), type=TransactionType.INCOME)
    assert total == 1
    assert rows[0].category == "Medical Test"

    rows, total, _ = hospital.list_transactions(search="floor")
    assert total == 1


def test_opening_balance_seeded_on_account_creation(db, monkeypatch):
    from clinic_ledger.core.config import settings

    monkeypatch.setattr(settings, "HOSPITAL_OPENING_BALANCE", Decimal("114613.00"))
    service = LedgerPostingService(db, "hospital")

    assert service.get_balance() == Decimal("114613.00")
    service.add_income(100, "OPD Income", "x")
    assert service.get_balance() == Decimal("114713.00")
