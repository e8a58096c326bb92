from decimal import Decimal

import pytest

from clinic_ledger.common.exceptions import ReversalError, ValidationError
from clinic_ledger.models import LedgerCategory, MainAccountVoucher, TransactionType, VoucherType
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.services.statement_service import StatementBuilder
from clinic_ledger.services.voucher_service import MainLedgerService

from tests.conftest import DAY


def test_reversal_posts_offsetting_entry(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(500, "OPD Income", "Wrong patient", date=DAY)

    offset = hospital.reverse_transaction(tx, "Posted to the wrong account", date=DAY)

    assert offset.type == TransactionType.EXPENSE
    assert offset.amount == Decimal("500.00")
    assert offset.reversal_of_id == tx.id
    assert offset.category == "OPD Income"
    assert offset.is_reversal
    db.refresh(tx)
    assert tx.is_reversed
    assert hospital.get_balance() == Decimal("0.00")


def test_reversal_of_merged_posting_offsets_main_ledger(db):
    hospital = LedgerPostingService(db, "hospital")
    tx, voucher = hospital.add_income_with_voucher(500, "Medical Test", "Group G1", date=DAY)

    offset = hospital.reverse_transaction(tx.id, "Duplicate entry", date=DAY)

    reversal_voucher = (
        db.query(MainAccountVoucher)
        .filter(MainAccountVoucher.source_transaction_type == "reversal")
        .one()
    )
    assert reversal_voucher.voucher_type == VoucherType.DEBIT
    assert reversal_voucher.amount == Decimal("500.00")
    assert reversal_voucher.source_voucher_no == offset.transaction_no
    db.refresh(voucher)
    assert voucher.amount == Decimal("500.00")
    assert MainLedgerService(db).get_balance() == Decimal("0.00")
    assert all(r["is_consistent"] for r in StatementBuilder(db).reconcile_all())


def test_transaction_can_only_be_reversed_once(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(100, "OPD Income", "x")
    hospital.reverse_transaction(tx, "first")

    with pytest.raises(ReversalError):
        hospital.reverse_transaction(tx, "second")
    assert hospital.get_balance() == Decimal("0.00")


def test_reversal_entry_cannot_be_reversed_or_edited(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(100, "OPD Income", "x")
    offset = hospital.reverse_transaction(tx, "mistake")

    with pytest.raises(ReversalError):
        hospital.reverse_transaction(offset, "undo the undo")
    with pytest.raises(ReversalError):
        hospital.update_expense(offset, 50)


def test_reversed_transaction_cannot_be_edited(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(100, "OPD Income", "x")
    hospital.reverse_transaction(tx, "mistake")

    with pytest.raises(ReversalError):
        hospital.update_income(tx, 300)
    assert hospital.get_balance() == Decimal("0.00")


def test_reversal_requires_reason(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(100, "OPD Income", "x")

    with pytest.raises(ValidationError):
        hospital.reverse_transaction(tx, " ")


def test_reversal_files_offset_under_category_of_opposite_type(db):
    hospital = LedgerPostingService(db, "hospital")
    tx = hospital.add_income(250, "OPD Income", "Walk-in", date=DAY)

    offset = hospital.reverse_transaction(tx, "Refunded", date=DAY)

    assert offset.category_id is not None
    assert offset.category_id != tx.category_id
    category = db.query(LedgerCategory).filter(LedgerCategory.id == offset.category_id).one()
    assert category.name == "OPD Income"
    assert category.type == TransactionType.EXPENSE
