"""
Vendor Ledger Service
Payables per vendor, paid out of a sub-ledger (hospital by default).

Example Scenario (a vendor paid from the medicine ledger):
- Purchase 10,000, paid 4,000 now -> vendor due 6,000, purchase PARTIAL,
  medicine expense "Medicine Purchase" 4,000, Main Debit 4,000
- Payment 6,000 allocated to that purchase -> purchase PAID, vendor due 0,
  medicine expense "Medicine Vendor Payment" 6,000, Main Debit 6,000

Vendor rows, the paying domain account and the Main voucher are written in
one storage transaction: the domain and Main legs run through
autocommit=False sub-services and this service commits once.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_ledger.common.exceptions import (
    BusinessRuleError,
    ConsistencyError,
    CreditLimitExceededError,
    InsufficientBalanceError,
    LedgerError,
    ValidationError,
    VendorNotFoundError,
)
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.vendor import (
    BalanceType,
    PaymentStatus,
    Vendor,
    VendorPayment,
    VendorTransaction,
    VendorTransactionType,
)
from clinic_ledger.services.ledger_primitives import (
    apply_signed_delta,
    day_stem,
    lock_or_create_account,
    lock_vendor,
    next_sequence_no,
)
from clinic_ledger.services.posting_service import VENDOR_PAYMENT_REFERENCE_TYPE, LedgerPostingService
from clinic_ledger.utils.money import ZERO, quantize, to_amount, to_non_negative
from clinic_ledger.utils.validation import coerce_date, coerce_domain, require_text
from clinic_ledger.logger_config import logger

VENDOR_PAYMENT_SOURCE_TYPE = VENDOR_PAYMENT_REFERENCE_TYPE

AGING_BUCKETS = ("current", "days_1_30", "days_31_60", "days_61_90", "over_90")


def aging_bucket(days_past_due: int) -> str:
    if days_past_due <= 0:
        return "current"
    if days_past_due <= 30:
        return "days_1_30"
    if days_past_due <= 60:
        return "days_31_60"
    if days_past_due <= 90:
        return "days_61_90"
    return "over_90"


def payment_status_for(due_amount: Decimal, paid_amount: Decimal) -> PaymentStatus:
    if due_amount <= ZERO:
        return PaymentStatus.PAID
    if paid_amount > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


class VendorLedgerService:

    def __init__(self, db: Session):
        self.db = db

    # ================= VENDORS ===================

    def create_vendor(
        self,
        name: str,
        company_name: Optional[str] = None,
        phone: Optional[str] = None,
        domain: Union[str, LedgerDomain] = LedgerDomain.HOSPITAL,
        opening_balance=0,
        opening_balance_type: Union[str, BalanceType] = BalanceType.DUE,
        credit_limit=0,
        payment_terms_days: int = 30,
        notes: Optional[str] = None,
    ) -> Vendor:
        name = require_text(name, "name")
        domain = coerce_domain(domain, allow_main=False)
        opening = to_non_negative(opening_balance, "opening_balance")
        credit_limit = to_non_negative(credit_limit, "credit_limit")
        try:
            balance_type = BalanceType(opening_balance_type)
        except ValueError:
            raise ValidationError(f"Invalid balance type '{opening_balance_type}', expected due or advance")
        if payment_terms_days is None or int(payment_terms_days) < 0:
            raise ValidationError("payment_terms_days cannot be negative")

        try:
            vendor = Vendor(
                name=name,
                company_name=company_name,
                phone=phone,
                domain=domain,
                opening_balance=opening,
                current_balance=opening,
                balance_type=balance_type,
                credit_limit=credit_limit,
                payment_terms_days=int(payment_terms_days),
                is_active=True,
                notes=notes,
            )
            self.db.add(vendor)
            self.db.commit()
            self.db.refresh(vendor)
            logger.info(f"Vendor created: {vendor.name} (id={vendor.id}, {balance_type.value} {opening})")
            return vendor
        except Exception:
            self.db.rollback()
            logger.exception("Error creating vendor")
            raise

    def get_vendor(self, vendor_id: int) -> Vendor:
        vendor = self.db.query(Vendor).filter(Vendor.id == vendor_id).first()
        if not vendor:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found")
        return vendor

    def list_vendors(
        self,
        skip: int = 0,
        limit: int = 50,
        search: Optional[str] = None,
        domain: Optional[LedgerDomain] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[Vendor], int]:
        query = self.db.query(Vendor)
        if search and search.strip():
            term = f"%{search.strip()}%"
            query = query.filter(or_(
                Vendor.name.ilike(term),
                Vendor.company_name.ilike(term),
                Vendor.phone.ilike(term),
            ))
            logger.debug(f"Filtering vendors by search: {search}")
        if domain is not None:
            query = query.filter(Vendor.domain == domain)
        if is_active is not None:
            query = query.filter(Vendor.is_active == is_active)

        total_count = query.count()
        rows = query.order_by(Vendor.name.asc(), Vendor.id.asc()).offset(skip).limit(limit).all()
        return rows, total_count

    # ================= PURCHASES ===================

    def record_purchase(
        self,
        vendor_id: int,
        amount,
        description: str,
        paid_amount=0,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        date=None,
        due_date=None,
        created_by: Optional[int] = None,
    ) -> VendorTransaction:
        """
        Record a purchase on credit, optionally paying part of it immediately.

        Raises:
            CreditLimitExceededError when the unpaid part would push the vendor past its limit
            InsufficientBalanceError when the paying domain cannot cover the immediate payment
        """
        amount = to_amount(amount)
        paid = to_non_negative(paid_amount, "paid_amount")
        if paid > amount:
            raise ValidationError(f"paid_amount {paid} exceeds purchase amount {amount}")
        due = amount - paid
        description = require_text(description, "description")
        purchase_date = coerce_date(date, "transaction_date")

        try:
            vendor = self._lock_active_vendor(vendor_id)

            credit_limit = quantize(vendor.credit_limit)
            if due > ZERO and credit_limit > ZERO and vendor.signed_balance + due > credit_limit:
                raise CreditLimitExceededError(
                    f"Credit limit exceeded for {vendor.name}. Limit: {credit_limit}, "
                    f"Current: {quantize(vendor.signed_balance)}, New due: {due}"
                )
            if paid > ZERO:
                self._check_domain_balance(vendor.domain, paid)

            purchase = VendorTransaction(
                transaction_no=next_sequence_no(
                    self.db, VendorTransaction.transaction_no, day_stem(f"VT{vendor.id}", date_today())
                ),
                vendor_id=vendor.id,
                type=VendorTransactionType.PURCHASE,
                amount=amount,
                due_amount=due,
                paid_amount=paid,
                payment_status=payment_status_for(due, paid),
                reference_type=reference_type,
                reference_id=reference_id,
                description=description,
                transaction_date=purchase_date,
                due_date=coerce_date(due_date, "due_date") if due_date
                else purchase_date + timedelta(days=vendor.payment_terms_days or 0),
                created_by=created_by,
            )
            self.db.add(purchase)
            self.db.flush()
            apply_signed_delta(vendor, amount)

            if paid > ZERO:
                self._pay_out(
                    vendor, paid, purchase_date,
                    category=f"{vendor.domain.label} Purchase",
                    description=f"{vendor.name}: {description}",
                    allocations=[purchase.id],
                    created_by=created_by,
                )

            self.db.commit()
            self.db.refresh(purchase)
            logger.info(
                f"Purchase {purchase.transaction_no} from {vendor.name}: {amount} "
                f"(paid {paid}, due {due}) -> vendor {vendor.balance_type.value} {vendor.current_balance}"
            )
            return purchase

        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error recording purchase: {str(e)}")
            raise ConsistencyError("Conflicting concurrent write while recording purchase; retry")
        except LedgerError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Error recording vendor purchase")
            raise

    # ================= PAYMENTS ===================

    def make_payment(
        self,
        vendor_id: int,
        amount,
        description: Optional[str] = None,
        payment_date=None,
        payment_method: str = "cash",
        reference_no: Optional[str] = None,
        allocated_transactions: Optional[List[int]] = None,
        created_by: Optional[int] = None,
    ) -> VendorPayment:
        """
        Pay a vendor from its paying domain. Listed purchases are settled in
        the given order, each receiving min(remaining, due).
        """
        amount = to_amount(amount)
        paid_on = coerce_date(payment_date, "payment_date")

        try:
            vendor = self._lock_active_vendor(vendor_id)

            outstanding = quantize(vendor.signed_balance)
            if amount > outstanding:
                raise BusinessRuleError(
                    f"Payment amount {amount} exceeds due amount {max(outstanding, ZERO)} for {vendor.name}"
                )
            self._check_domain_balance(vendor.domain, amount)

            allocations = self._allocate(vendor, amount, allocated_transactions or [])

            payment = self._pay_out(
                vendor, amount, paid_on,
                category=f"{vendor.domain.label} Vendor Payment",
                description=f"{vendor.name}: {description or 'Vendor payment'}",
                allocations=allocations,
                created_by=created_by,
                payment_method=payment_method,
                reference_no=reference_no,
                payment_description=description,
            )

            self.db.commit()
            self.db.refresh(payment)
            logger.info(
                f"Payment {payment.payment_no} to {vendor.name}: {amount} allocated to {allocations} "
                f"-> vendor {vendor.balance_type.value} {vendor.current_balance}"
            )
            return payment

        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error recording vendor payment: {str(e)}")
            raise ConsistencyError("Conflicting concurrent write while recording payment; retry")
        except LedgerError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Error recording vendor payment")
            raise

    # ================= ADJUSTMENTS ===================

    def adjust_balance(
        self,
        vendor_id: int,
        adjustment_type: str,
        amount,
        reason: str,
        created_by: Optional[int] = None,
    ) -> VendorTransaction:
        """Manual correction: 'increase' raises what we owe, 'decrease' lowers it."""
        amount = to_amount(amount)
        reason = require_text(reason, "reason")
        adjustment_type = str(adjustment_type or "").strip().lower()
        if adjustment_type not in ("increase", "decrease"):
            raise ValidationError(f"Invalid adjustment type '{adjustment_type}', expected increase or decrease")

        try:
            vendor = self._lock_active_vendor(vendor_id)
            increase = adjustment_type == "increase"

            adjustment = VendorTransaction(
                transaction_no=next_sequence_no(
                    self.db, VendorTransaction.transaction_no, day_stem(f"VA{vendor.id}", date_today())
                ),
                vendor_id=vendor.id,
                type=VendorTransactionType.ADJUSTMENT,
                amount=amount,
                due_amount=amount if increase else ZERO,
                paid_amount=ZERO,
                payment_status=PaymentStatus.UNPAID if increase else PaymentStatus.PAID,
                reference_type="adjustment",
                description=f"Balance {adjustment_type}: {reason}",
                transaction_date=date_today(),
                created_by=created_by,
            )
            self.db.add(adjustment)
            signed = apply_signed_delta(vendor, amount if increase else -amount)

            self.db.commit()
            self.db.refresh(adjustment)
            logger.info(f"Vendor {vendor.name} balance {adjustment_type} {amount} -> signed {signed}")
            return adjustment

        except LedgerError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.exception("Error adjusting vendor balance")
            raise

    # ================= REPORTS ===================

    def pending_transactions(self, vendor_id: int) -> List[VendorTransaction]:
        self.get_vendor(vendor_id)
        return (
            self.db.query(VendorTransaction)
            .filter(VendorTransaction.vendor_id == vendor_id, VendorTransaction.due_amount > 0)
            .order_by(VendorTransaction.transaction_date.asc(), VendorTransaction.id.asc())
            .all()
        )

    def due_report(self, as_of=None) -> Dict[str, object]:
        """Outstanding dues per vendor, aged by days past due date."""
        as_of = coerce_date(as_of, "as_of")
        vendors = (
            self.db.query(Vendor)
            .filter(Vendor.is_active.is_(True))
            .order_by(Vendor.name.asc(), Vendor.id.asc())
            .all()
        )

        totals = {key: ZERO for key in AGING_BUCKETS}
        totals["total_due"] = ZERO
        rows = []
        for vendor in vendors:
            aging = {key: ZERO for key in AGING_BUCKETS}
            for txn in self.pending_transactions(vendor.id):
                due_on = txn.due_date or txn.transaction_date + timedelta(days=vendor.payment_terms_days or 0)
                aging[aging_bucket((as_of - due_on).days)] += quantize(txn.due_amount)

            balance = quantize(vendor.signed_balance)
            if balance <= ZERO and not any(aging.values()):
                continue

            row = {
                "vendor_id": vendor.id,
                "vendor_name": vendor.name,
                "domain": vendor.domain,
                "balance_type": vendor.balance_type,
                "total_due": max(balance, ZERO),
                **aging,
            }
            rows.append(row)
            for key in AGING_BUCKETS:
                totals[key] += aging[key]
            totals["total_due"] += row["total_due"]

        return {"as_of": as_of, "vendors": rows, "totals": totals}

    # ================= HELPERS ===================

    def _lock_active_vendor(self, vendor_id: int) -> Vendor:
        vendor = lock_vendor(self.db, vendor_id)
        if vendor is None:
            raise VendorNotFoundError(f"Vendor {vendor_id} not found")
        if not vendor.is_active:
            raise BusinessRuleError(f"Vendor {vendor.name} is inactive")
        return vendor

    def _check_domain_balance(self, domain: LedgerDomain, amount: Decimal) -> None:
        account = lock_or_create_account(self.db, domain)
        available = quantize(account.balance)
        if available < amount:
            raise InsufficientBalanceError(
                f"Insufficient balance in {domain.label} Account. Available: {available}, Required: {amount}"
            )

    def _allocate(self, vendor: Vendor, amount: Decimal, transaction_ids: List[int]) -> List[int]:
        remaining = amount
        allocated = []
        for transaction_id in transaction_ids:
            if remaining <= ZERO:
                break
            txn = (
                self.db.query(VendorTransaction)
                .filter(VendorTransaction.id == transaction_id, VendorTransaction.vendor_id == vendor.id)
                .with_for_update()
                .first()
            )
            if txn is None:
                raise ValidationError(f"Vendor transaction {transaction_id} does not belong to {vendor.name}")

            due = quantize(txn.due_amount)
            portion = min(remaining, due)
            if portion <= ZERO:
                continue
            txn.paid_amount = quantize(txn.paid_amount) + portion
            txn.due_amount = due - portion
            txn.payment_status = payment_status_for(txn.due_amount, txn.paid_amount)
            remaining -= portion
            allocated.append(txn.id)
        return allocated

    def _pay_out(
        self,
        vendor: Vendor,
        amount: Decimal,
        paid_on: date,
        category: str,
        description: str,
        allocations: List[int],
        created_by: Optional[int],
        payment_method: str = "cash",
        reference_no: Optional[str] = None,
        payment_description: Optional[str] = None,
    ) -> VendorPayment:
        """VendorPayment + domain expense + Main Debit voucher; flush only."""
        payment = VendorPayment(
            payment_no=next_sequence_no(
                self.db, VendorPayment.payment_no, day_stem(f"VPM{vendor.id}", date_today())
            ),
            vendor_id=vendor.id,
            amount=amount,
            payment_method=payment_method or "cash",
            reference_no=reference_no,
            payment_date=paid_on,
            description=payment_description or description,
            allocated_transactions=list(allocations),
            created_by=created_by,
        )
        self.db.add(payment)
        self.db.flush()

        posting = LedgerPostingService(self.db, vendor.domain, autocommit=False)
        expense, _voucher = posting.add_expense_with_voucher(
            amount,
            category,
            description,
            source_transaction_type=VENDOR_PAYMENT_SOURCE_TYPE,
            reference_type=VENDOR_PAYMENT_SOURCE_TYPE,
            reference_id=payment.id,
            date=paid_on,
            created_by=created_by,
        )
        payment.ledger_transaction_id = expense.id
        apply_signed_delta(vendor, -amount)
        self.db.flush()
        return payment


def date_today() -> date:
    return date.today()
