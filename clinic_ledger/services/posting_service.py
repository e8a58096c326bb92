"""
Ledger Posting Service
The only code path that changes a sub-ledger balance.

Each public call is one unit of work:
- validate (amount > 0, domain, category) before touching anything
- lock the domain Account row
- write the Transaction / FundTransaction and move the balance
- commit, or roll back everything on any error

With autocommit=False the service only flushes, so an outer operation
(e.g. a vendor purchase) can group several postings into one commit.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_ledger.common.exceptions import (
    BusinessRuleError,
    ConsistencyError,
    InsufficientBalanceError,
    LedgerError,
    ReversalError,
    TransactionNotFoundError,
    ValidationError,
)
from clinic_ledger.models.account import DOMAIN_PREFIX, LedgerDomain
from clinic_ledger.models.transaction import (
    FundTransaction,
    FundTransactionType,
    LedgerCategory,
    LedgerTransaction,
    TransactionType,
)
from clinic_ledger.models.voucher import MainAccountVoucher, VoucherType
from clinic_ledger.services.ledger_primitives import (
    apply_delta,
    day_stem,
    lock_or_create_account,
    next_sequence_no,
    read_balance,
)
from clinic_ledger.services.voucher_service import MainLedgerService
from clinic_ledger.utils.money import quantize, to_amount
from clinic_ledger.utils.validation import coerce_date, coerce_domain, require_text
from clinic_ledger.logger_config import logger

# Reference types that get their own Main-ledger voucher series instead of the generic "income" one
SEPARATE_VOUCHER_REFERENCE_TYPES = {"other_income", "bank_interest", "medicine_sale", "optics_sale"}

REVERSAL_SOURCE_TYPE = "reversal"

# Domain postings owned by the vendor ledger; edits must go through it
VENDOR_PAYMENT_REFERENCE_TYPE = "vendor_payment"
VENDOR_MANAGED_REFERENCE_TYPES = {VENDOR_PAYMENT_REFERENCE_TYPE}

_SIGN = {
    TransactionType.INCOME: 1,
    TransactionType.EXPENSE: -1,
    FundTransactionType.FUND_IN: 1,
    FundTransactionType.FUND_OUT: -1,
}


def source_transaction_type_for(transaction: LedgerTransaction) -> str:
    if transaction.reference_type in SEPARATE_VOUCHER_REFERENCE_TYPES:
        return transaction.reference_type
    return transaction.type.value


def voucher_type_for(transaction_type: TransactionType) -> VoucherType:
    return VoucherType.CREDIT if transaction_type == TransactionType.INCOME else VoucherType.DEBIT


def find_transaction(db: Session, transaction_id: int) -> LedgerTransaction:
    transaction = db.query(LedgerTransaction).filter(LedgerTransaction.id == transaction_id).first()
    if not transaction:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return transaction


class LedgerPostingService:
    """Postings against one sub-ledger (hospital, medicine, optics, operation)."""

    def __init__(self, db: Session, domain: Union[str, LedgerDomain], autocommit: bool = True):
        self.db = db
        self.domain = coerce_domain(domain, allow_main=False)
        self.autocommit = autocommit
        self.main_ledger = MainLedgerService(db, autocommit=False)

    # ================= INCOME / EXPENSE ===================

    def add_income(
        self,
        amount,
        category: Optional[str],
        description: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        date: Optional[Union[str, date]] = None,
        category_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> LedgerTransaction:
        """Record income and increase the domain balance. No Main-ledger effect."""
        amount = to_amount(amount)
        with self._unit_of_work("adding income"):
            transaction = self._create_transaction(
                TransactionType.INCOME, amount, category, description,
                reference_type=reference_type, reference_id=reference_id,
                transaction_date=coerce_date(date, "transaction_date"),
                category_id=category_id, created_by=created_by,
            )
        return self._finish(transaction)

    def add_expense(
        self,
        amount,
        category: Optional[str],
        description: str,
        category_id: Optional[int] = None,
        date: Optional[Union[str, date]] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> LedgerTransaction:
        """Record an expense and decrease the domain balance. No Main-ledger effect."""
        amount = to_amount(amount)
        with self._unit_of_work("adding expense"):
            transaction = self._create_transaction(
                TransactionType.EXPENSE, amount, category, description,
                reference_type=reference_type, reference_id=reference_id,
                transaction_date=coerce_date(date, "transaction_date"),
                category_id=category_id, created_by=created_by,
            )
        return self._finish(transaction)

    def add_income_with_voucher(self, amount, category, description, source_transaction_type=None, **kwargs):
        """add_income plus the Main-ledger Credit merge, committed together."""
        return self._post_with_voucher(TransactionType.INCOME, amount, category, description,
                                       source_transaction_type, **kwargs)

    def add_expense_with_voucher(self, amount, category, description, source_transaction_type=None, **kwargs):
        """add_expense plus the Main-ledger Debit merge, committed together."""
        return self._post_with_voucher(TransactionType.EXPENSE, amount, category, description,
                                       source_transaction_type, **kwargs)

    def update_income(
        self,
        transaction: Union[int, LedgerTransaction],
        new_amount,
        new_category: Optional[str] = None,
        new_description: Optional[str] = None,
        new_category_id: Optional[int] = None,
    ) -> LedgerTransaction:
        return self._update(TransactionType.INCOME, transaction, new_amount,
                            new_category, new_description, new_category_id)

    def update_expense(
        self,
        transaction: Union[int, LedgerTransaction],
        new_amount,
        new_category: Optional[str] = None,
        new_description: Optional[str] = None,
        new_category_id: Optional[int] = None,
    ) -> LedgerTransaction:
        return self._update(TransactionType.EXPENSE, transaction, new_amount,
                            new_category, new_description, new_category_id)

    def reverse_transaction(
        self,
        transaction: Union[int, LedgerTransaction],
        reason: str,
        created_by: Optional[int] = None,
        date: Optional[Union[str, date]] = None,
    ) -> LedgerTransaction:
        """
        Post an offsetting entry of the opposite type instead of editing history.
        If the original reached the Main ledger, the offset is merged there too
        (opposite voucher type, source type "reversal").
        """
        reason = require_text(reason, "reason")
        original = self._get_own_transaction(transaction)
        if original.is_reversal:
            raise ReversalError(f"{original.transaction_no} is itself a reversal and cannot be reversed")
        self._ensure_not_vendor_managed(original, "reversed")

        with self._unit_of_work("reversing transaction"):
            account = lock_or_create_account(self.db, self.domain)
            self.db.refresh(original, with_for_update=True)
            if original.is_reversed:
                raise ReversalError(f"{original.transaction_no} has already been reversed")

            offset = self._create_transaction(
                original.type.opposite,
                quantize(original.amount),
                original.category,
                f"Reversal of {original.transaction_no}: {reason}",
                reference_type=REVERSAL_SOURCE_TYPE,
                reference_id=original.id,
                transaction_date=coerce_date(date, "transaction_date"),
                category_id=None,
                created_by=created_by,
                reversal_of_id=original.id,
                account=account,
            )

            voucher = self.main_ledger.find_voucher_for_source(
                self.domain, original.transaction_no, original.id
            )
            if voucher is not None:
                self.main_ledger.update_main_account_voucher(
                    date=offset.transaction_date,
                    amount=offset.amount,
                    voucher_type=voucher.voucher_type.opposite,
                    source_account=self.domain,
                    source_transaction_type=REVERSAL_SOURCE_TYPE,
                    description=f"{original.transaction_no} reversed: {reason}",
                    source_voucher_no=offset.transaction_no,
                    source_reference_id=offset.id,
                    created_by=created_by,
                )

        logger.info(f"Reversed {original.transaction_no} with {offset.transaction_no}")
        return self._finish(offset)

    # ================= FUNDS ===================

    def add_fund(
        self,
        amount,
        purpose: str,
        description: Optional[str] = None,
        date: Optional[Union[str, date]] = None,
        added_by: Optional[int] = None,
    ) -> FundTransaction:
        return self._move_fund(FundTransactionType.FUND_IN, amount, purpose, description, date, added_by)

    def withdraw_fund(
        self,
        amount,
        purpose: str,
        description: Optional[str] = None,
        date: Optional[Union[str, date]] = None,
        added_by: Optional[int] = None,
    ) -> FundTransaction:
        return self._move_fund(FundTransactionType.FUND_OUT, amount, purpose, description, date, added_by)

    # ================= MAIN LEDGER ===================

    def update_main_account_voucher(
        self,
        date,
        amount,
        voucher_type,
        source_account,
        source_transaction_type: str,
        description: str,
        source_voucher_no: Optional[str] = None,
        source_reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> MainAccountVoucher:
        with self._unit_of_work("merging main account voucher"):
            voucher = self.main_ledger.update_main_account_voucher(
                date=date,
                amount=amount,
                voucher_type=voucher_type,
                source_account=source_account,
                source_transaction_type=source_transaction_type,
                description=description,
                source_voucher_no=source_voucher_no,
                source_reference_id=source_reference_id,
                created_by=created_by,
            )
        return self._finish(voucher)

    # ================= READS ===================

    def get_balance(self) -> Decimal:
        return read_balance(self.db, self.domain)

    def get_transaction(self, transaction_id: int) -> LedgerTransaction:
        return self._get_own_transaction(transaction_id)

    def list_transactions(
        self,
        skip: int = 0,
        limit: int = 50,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[LedgerTransaction], int, Dict[str, Decimal]]:
        """List transactions with filters. Returns (rows, total_count, totals)."""
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.domain == self.domain)

        if type is not None:
            query = query.filter(LedgerTransaction.type == type)
        if category:
            query = query.filter(LedgerTransaction.category == category)
        if start_date is not None:
            query = query.filter(LedgerTransaction.transaction_date >= start_date)
            logger.debug(f"Filtering by start_date: {start_date}")
        if end_date is not None:
            query = query.filter(LedgerTransaction.transaction_date <= end_date)
            logger.debug(f"Filtering by end_date: {end_date}")
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    LedgerTransaction.transaction_no.ilike(term),
                    LedgerTransaction.category.ilike(term),
                    LedgerTransaction.description.ilike(term),
                )
            )

        total_count = query.count()
        totals_row = query.with_entities(
            func.coalesce(func.sum(case(
                (LedgerTransaction.type == TransactionType.INCOME, LedgerTransaction.amount), else_=0)), 0),
            func.coalesce(func.sum(case(
                (LedgerTransaction.type == TransactionType.EXPENSE, LedgerTransaction.amount), else_=0)), 0),
        ).first()
        totals = {
            "total_income": quantize(totals_row[0]),
            "total_expense": quantize(totals_row[1]),
        }

        rows = (
            query.order_by(LedgerTransaction.transaction_date.desc(), LedgerTransaction.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return rows, total_count, totals

    def list_fund_transactions(
        self,
        skip: int = 0,
        limit: int = 50,
        type: Optional[FundTransactionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[FundTransaction], int]:
        query = self.db.query(FundTransaction).filter(FundTransaction.domain == self.domain)
        if type is not None:
            query = query.filter(FundTransaction.type == type)
        if start_date is not None:
            query = query.filter(FundTransaction.date >= start_date)
        if end_date is not None:
            query = query.filter(FundTransaction.date <= end_date)

        total_count = query.count()
        rows = query.order_by(FundTransaction.date.desc(), FundTransaction.id.desc()).offset(skip).limit(limit).all()
        return rows, total_count

    # ================= INTERNALS ===================

    @contextmanager
    def _unit_of_work(self, action: str):
        try:
            yield
            self.db.flush()
            if self.autocommit:
                self.db.commit()
        except IntegrityError as e:
            self._rollback()
            logger.error(f"Integrity error while {action} on {self.domain.value}: {str(e)}")
            raise ConsistencyError(f"Conflicting concurrent write while {action}; retry the posting")
        except LedgerError:
            self._rollback()
            raise
        except Exception:
            self._rollback()
            logger.exception(f"Error while {action} on {self.domain.value}")
            raise

    def _rollback(self):
        if self.autocommit:
            self.db.rollback()

    def _finish(self, instance):
        if self.autocommit:
            self.db.refresh(instance)
        return instance

    def _create_transaction(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        category: Optional[str],
        description: str,
        reference_type: Optional[str],
        reference_id: Optional[int],
        transaction_date: date,
        category_id: Optional[int],
        created_by: Optional[int],
        reversal_of_id: Optional[int] = None,
        account=None,
    ) -> LedgerTransaction:
        if account is None:
            account = lock_or_create_account(self.db, self.domain)

        category, category_id = self._resolve_category(transaction_type, category, category_id)
        prefix = f"{DOMAIN_PREFIX[self.domain]}T"

        transaction = LedgerTransaction(
            transaction_no=next_sequence_no(self.db, LedgerTransaction.transaction_no,
                                            day_stem(prefix, date.today())),
            domain=self.domain,
            type=transaction_type,
            category=category,
            category_id=category_id,
            amount=amount,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            transaction_date=transaction_date,
            created_by=created_by,
            reversal_of_id=reversal_of_id,
        )
        self.db.add(transaction)
        new_balance = apply_delta(account, amount * _SIGN[transaction_type])
        self.db.flush()

        logger.info(
            f"{self.domain.label} {transaction_type.value} {transaction.transaction_no}: "
            f"{amount} [{category}] -> balance {new_balance}"
        )
        return transaction

    def _post_with_voucher(
        self,
        transaction_type: TransactionType,
        amount,
        category,
        description,
        source_transaction_type: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        date: Optional[Union[str, date]] = None,
        category_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> Tuple[LedgerTransaction, MainAccountVoucher]:
        amount = to_amount(amount)
        with self._unit_of_work(f"posting {transaction_type.value} with voucher"):
            transaction = self._create_transaction(
                transaction_type, amount, category, description,
                reference_type=reference_type, reference_id=reference_id,
                transaction_date=coerce_date(date, "transaction_date"),
                category_id=category_id, created_by=created_by,
            )
            voucher = self.main_ledger.update_main_account_voucher(
                date=transaction.transaction_date,
                amount=amount,
                voucher_type=voucher_type_for(transaction_type),
                source_account=self.domain,
                source_transaction_type=source_transaction_type or source_transaction_type_for(transaction),
                description=description,
                source_voucher_no=transaction.transaction_no,
                source_reference_id=transaction.id,
                created_by=created_by,
            )
        return self._finish(transaction), self._finish(voucher)

    def _update(
        self,
        expected_type: TransactionType,
        transaction: Union[int, LedgerTransaction],
        new_amount,
        new_category: Optional[str],
        new_description: Optional[str],
        new_category_id: Optional[int],
    ) -> LedgerTransaction:
        new_amount = to_amount(new_amount, "new_amount")
        transaction = self._get_own_transaction(transaction)
        if transaction.type != expected_type:
            raise ValidationError(
                f"{transaction.transaction_no} is an {transaction.type.value}, not an {expected_type.value}"
            )
        if transaction.is_reversal:
            raise ReversalError(f"{transaction.transaction_no} is a reversal entry and cannot be edited")
        self._ensure_not_vendor_managed(transaction, "edited")

        with self._unit_of_work(f"updating {expected_type.value}"):
            account = lock_or_create_account(self.db, self.domain)
            self.db.refresh(transaction, with_for_update=True)
            if transaction.is_reversed:
                raise ReversalError(f"{transaction.transaction_no} has been reversed and cannot be edited")

            old_amount = quantize(transaction.amount)
            delta = new_amount - old_amount

            if new_category is not None or new_category_id is not None:
                category, category_id = self._resolve_category(expected_type, new_category, new_category_id)
                transaction.category = category
                transaction.category_id = category_id
            if new_description is not None:
                transaction.description = new_description
            transaction.amount = new_amount

            # Delta, not a re-derivation: other postings' contributions stay untouched
            apply_delta(account, delta * _SIGN[expected_type])

            voucher = self.main_ledger.adjust_for_source(
                self.domain, delta,
                source_voucher_no=transaction.transaction_no,
                source_reference_id=transaction.id,
            )
            if voucher is None:
                logger.warning(
                    f"No main account voucher carries {transaction.transaction_no}; main ledger not adjusted"
                )

        logger.info(f"Updated {transaction.transaction_no}: {old_amount} -> {new_amount} (delta {delta})")
        return self._finish(transaction)

    def _move_fund(
        self,
        fund_type: FundTransactionType,
        amount,
        purpose: str,
        description: Optional[str],
        on_date,
        added_by: Optional[int],
    ) -> FundTransaction:
        amount = to_amount(amount)
        purpose = require_text(purpose, "purpose")
        fund_date = coerce_date(on_date)

        with self._unit_of_work(f"recording {fund_type.value}"):
            account = lock_or_create_account(self.db, self.domain)
            if fund_type == FundTransactionType.FUND_OUT and quantize(account.balance) < amount:
                raise InsufficientBalanceError(
                    f"Insufficient balance in {self.domain.label} Account. "
                    f"Available: {quantize(account.balance)}, Required: {amount}"
                )

            suffix = "FI" if fund_type == FundTransactionType.FUND_IN else "FO"
            fund = FundTransaction(
                voucher_no=next_sequence_no(
                    self.db, FundTransaction.voucher_no,
                    day_stem(f"{DOMAIN_PREFIX[self.domain]}{suffix}", date.today()),
                ),
                domain=self.domain,
                type=fund_type,
                amount=amount,
                purpose=purpose,
                description=description,
                date=fund_date,
                added_by=added_by,
            )
            self.db.add(fund)
            new_balance = apply_delta(account, amount * _SIGN[fund_type])

        logger.info(f"{self.domain.label} {fund_type.value} {fund.voucher_no}: {amount} -> balance {new_balance}")
        return self._finish(fund)

    def _resolve_category(
        self,
        transaction_type: TransactionType,
        category: Optional[str],
        category_id: Optional[int],
    ) -> Tuple[str, Optional[int]]:
        """Name from id, or get-or-create id from name. Runs under the domain account lock."""
        name = category.strip() if category and category.strip() else None

        if category_id is not None:
            record = self.db.query(LedgerCategory).filter(LedgerCategory.id == category_id).first()
            if record is None or record.domain != self.domain or record.type != transaction_type:
                raise ValidationError(
                    f"Category {category_id} is not a {self.domain.value} {transaction_type.value} category"
                )
            return name or record.name, record.id

        if name is None:
            raise ValidationError("category is required")

        record = (
            self.db.query(LedgerCategory)
            .filter(
                LedgerCategory.domain == self.domain,
                LedgerCategory.type == transaction_type,
                LedgerCategory.name == name,
            )
            .first()
        )
        if record is None:
            record = LedgerCategory(domain=self.domain, type=transaction_type, name=name, is_active=True)
            self.db.add(record)
            self.db.flush()
        return name, record.id

    def _get_own_transaction(self, transaction: Union[int, LedgerTransaction]) -> LedgerTransaction:
        if isinstance(transaction, LedgerTransaction):
            record = transaction
        else:
            record = self.db.query(LedgerTransaction).filter(LedgerTransaction.id == transaction).first()
            if record is None:
                raise TransactionNotFoundError(f"Transaction {transaction} not found")
        if record.domain != self.domain:
            raise TransactionNotFoundError(
                f"Transaction {record.transaction_no} does not belong to the {self.domain.value} account"
            )
        return record

    @staticmethod
    def _ensure_not_vendor_managed(transaction: LedgerTransaction, action: str) -> None:
        if transaction.reference_type in VENDOR_MANAGED_REFERENCE_TYPES:
            raise BusinessRuleError(
                f"{transaction.transaction_no} settles vendor payment {transaction.reference_id} "
                f"and cannot be {action} here; adjust the vendor ledger instead"
            )
