"""
Statement Builder
Read-only reconstruction of balances and reports from posting history.

For a sub-ledger the history is its fund movements plus its income/expense
transactions; for the Main ledger it is the vouchers. Replaying the whole
history from the manual opening balance must give the live Account balance,
which is what reconcile() checks.
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from clinic_ledger.common.exceptions import StatementRangeError, ValidationError
from clinic_ledger.core.config import settings
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.transaction import (
    FundTransaction,
    FundTransactionType,
    LedgerTransaction,
    TransactionType,
)
from clinic_ledger.models.voucher import MainAccountVoucher, VoucherType
from clinic_ledger.services.ledger_primitives import read_balance
from clinic_ledger.services.taxonomy import CREDIT, DEBIT, DEFAULT_TAXONOMY, DomainTaxonomy
from clinic_ledger.utils.money import ZERO, quantize
from clinic_ledger.utils.validation import coerce_date, coerce_domain
from clinic_ledger.logger_config import logger

# Funds sort before transactions posted at the same instant
_FUND_ORDER = 0
_TRANSACTION_ORDER = 1


@dataclass
class Posting:
    on_date: date
    created_at: Optional[datetime]
    order: int
    id: int
    side: str
    kind: str
    category: Optional[str]
    amount: Decimal
    reference: str
    description: Optional[str]

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.side == CREDIT else -self.amount

    def sort_key(self):
        # created_at has one-second resolution on SQLite, so a fund and a
        # transaction saved in the same second tie on it; funds then sort first.
        created = self.created_at.replace(tzinfo=None) if self.created_at else datetime.min
        return self.on_date, created, self.order, self.id


class StatementBuilder:
    """Balances, statements and reports rebuilt from posting history."""

    def __init__(
        self,
        db: Session,
        taxonomy: Optional[Dict[LedgerDomain, DomainTaxonomy]] = None,
        max_days: Optional[int] = None,
    ):
        """`max_days` caps the span a caller may request; None leaves it open."""
        self.db = db
        self.max_days = max_days
        self.taxonomy = dict(DEFAULT_TAXONOMY)
        if taxonomy:
            self.taxonomy.update(taxonomy)

    # ================= OPENING BALANCE ===================

    def opening_balance(self, domain, from_date) -> Decimal:
        """Manual base plus the net of every posting strictly before `from_date`."""
        domain = coerce_domain(domain)
        from_date = coerce_date(from_date, "from_date")
        return quantize(self._manual_base(domain) + self._net_before(domain, from_date))

    # ================= DAILY STATEMENT ===================

    def daily_statement(self, domain, from_date, to_date) -> dict:
        domain = coerce_domain(domain)
        from_date, to_date = self._validate_range(from_date, to_date)
        taxonomy = self.taxonomy[domain]

        opening = self.opening_balance(domain, from_date)
        postings = self._postings(domain, from_date, to_date)

        per_day: Dict[date, Dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        for posting in postings:
            bucket = taxonomy.classify(posting.side, posting.kind, posting.category)
            per_day[posting.on_date][bucket.key] += posting.amount

        credit_keys = [b.key for b in taxonomy.credit]
        debit_keys = [b.key for b in taxonomy.debit]
        period_credits = {key: ZERO for key in credit_keys}
        period_debits = {key: ZERO for key in debit_keys}

        rows = []
        balance = opening
        day = from_date
        while day <= to_date:
            amounts = per_day.get(day, {})
            credits = {key: quantize(amounts.get(key, ZERO)) for key in credit_keys}
            debits = {key: quantize(amounts.get(key, ZERO)) for key in debit_keys}
            total_credit = quantize(sum(credits.values(), ZERO))
            total_debit = quantize(sum(debits.values(), ZERO))
            balance = quantize(balance + total_credit - total_debit)

            for key in credit_keys:
                period_credits[key] += credits[key]
            for key in debit_keys:
                period_debits[key] += debits[key]

            rows.append({
                "date": day,
                "credits": credits,
                "debits": debits,
                "total_credit": total_credit,
                "total_debit": total_debit,
                "balance": balance,
            })
            day += timedelta(days=1)

        total_credit = quantize(sum(period_credits.values(), ZERO))
        total_debit = quantize(sum(period_debits.values(), ZERO))

        logger.debug(f"Daily statement for {domain.value} {from_date}..{to_date}: {len(postings)} postings")
        return {
            "domain": domain,
            "from_date": from_date,
            "to_date": to_date,
            "columns": [
                {"key": b.key, "label": b.label, "side": side}
                for side in (CREDIT, DEBIT)
                for b in taxonomy.buckets(side)
            ],
            "opening_balance": opening,
            "rows": rows,
            "totals": {
                "credits": {k: quantize(v) for k, v in period_credits.items()},
                "debits": {k: quantize(v) for k, v in period_debits.items()},
                "total_credit": total_credit,
                "total_debit": total_debit,
            },
            "closing_balance": quantize(opening + total_credit - total_debit),
            "current_balance": read_balance(self.db, domain),
        }

    # ================= ACCOUNT STATEMENT ===================

    def account_statement(self, domain, from_date, to_date) -> dict:
        domain = coerce_domain(domain)
        from_date, to_date = self._validate_range(from_date, to_date)

        opening = self.opening_balance(domain, from_date)
        postings = sorted(self._postings(domain, from_date, to_date), key=Posting.sort_key)

        entries = []
        running = opening
        total_deposit = ZERO
        total_withdraw = ZERO
        for posting in postings:
            deposit = posting.amount if posting.side == CREDIT else ZERO
            withdraw = posting.amount if posting.side == DEBIT else ZERO
            running = quantize(running + deposit - withdraw)
            total_deposit += deposit
            total_withdraw += withdraw
            entries.append({
                "date": posting.on_date,
                "reference": posting.reference,
                "type": posting.kind,
                "category": posting.category,
                "description": posting.description,
                "deposit": quantize(deposit),
                "withdraw": quantize(withdraw),
                "running_balance": running,
            })

        return {
            "domain": domain,
            "from_date": from_date,
            "to_date": to_date,
            "entries": entries,
            "summary": {
                "opening_balance": opening,
                "total_deposit": quantize(total_deposit),
                "total_withdraw": quantize(total_withdraw),
                "closing_balance": running,
                "transaction_count": len(entries),
            },
        }

    # ================= RECONCILIATION ===================

    def reconcile(self, domain) -> dict:
        """Replay full history and compare with the live balance."""
        domain = coerce_domain(domain)
        expected = quantize(self._manual_base(domain) + self._net_before(domain, None))
        actual = read_balance(self.db, domain)
        drift = quantize(actual - expected)

        if drift != ZERO:
            logger.warning(
                f"Ledger drift on {domain.value}: live balance {actual}, replayed history {expected}, drift {drift}"
            )
        return {
            "domain": domain,
            "expected": expected,
            "actual": actual,
            "drift": drift,
            "is_consistent": drift == ZERO,
        }

    def reconcile_all(self) -> List[dict]:
        return [self.reconcile(domain) for domain in LedgerDomain]

    # ================= MONTHLY REPORT ===================

    def monthly_report(self, domain, year: int, month: int) -> dict:
        domain = coerce_domain(domain)
        if not 1 <= int(month) <= 12:
            raise ValidationError(f"month must be between 1 and 12, got {month}")
        start = date(int(year), int(month), 1)
        end = date(int(year), int(month), calendar.monthrange(int(year), int(month))[1])

        income_by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        expense_by_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        fund_in = ZERO
        fund_out = ZERO

        for posting in self._postings(domain, start, end):
            if posting.kind == FundTransactionType.FUND_IN.value:
                fund_in += posting.amount
            elif posting.kind == FundTransactionType.FUND_OUT.value:
                fund_out += posting.amount
            elif posting.side == CREDIT:
                income_by_category[posting.category or "Uncategorized"] += posting.amount
            else:
                expense_by_category[posting.category or "Uncategorized"] += posting.amount

        income = quantize(sum(income_by_category.values(), ZERO))
        expense = quantize(sum(expense_by_category.values(), ZERO))
        return {
            "domain": domain,
            "year": int(year),
            "month": int(month),
            "from_date": start,
            "to_date": end,
            "income": income,
            "expense": expense,
            "profit": quantize(income - expense),
            "fund_in": quantize(fund_in),
            "fund_out": quantize(fund_out),
            "income_by_category": {k: quantize(v) for k, v in sorted(income_by_category.items())},
            "expense_by_category": {k: quantize(v) for k, v in sorted(expense_by_category.items())},
            "opening_balance": self.opening_balance(domain, start),
            "current_balance": read_balance(self.db, domain),
        }

    # ================= RECEIPT & PAYMENT ===================

    def receipt_and_payment(self, from_date, to_date) -> dict:
        """
        Main ledger Receipt & Payment account.

        Receipts are Credit vouchers and payments are Debit vouchers, each
        grouped by (source_account, source_transaction_type). `amount` covers
        the range, `cumulative` everything up to `to_date`. Both sides balance:
        opening + receipts == payments + closing.
        """
        from_date, to_date = self._validate_range(from_date, to_date)
        opening = self.opening_balance(LedgerDomain.MAIN, from_date)

        in_range = MainAccountVoucher.date >= from_date
        rows = (
            self.db.query(
                MainAccountVoucher.voucher_type,
                MainAccountVoucher.source_account,
                MainAccountVoucher.source_transaction_type,
                func.coalesce(func.sum(case((in_range, MainAccountVoucher.amount), else_=0)), 0),
                func.coalesce(func.sum(case((in_range, 1), else_=0)), 0),
                func.coalesce(func.sum(MainAccountVoucher.amount), 0),
            )
            .filter(MainAccountVoucher.date <= to_date)
            .group_by(
                MainAccountVoucher.voucher_type,
                MainAccountVoucher.source_account,
                MainAccountVoucher.source_transaction_type,
            )
            .all()
        )

        receipts, payments = [], []
        for voucher_type, source_account, transaction_type, amount, count, cumulative in rows:
            group = receipts if voucher_type == VoucherType.CREDIT else payments
            group.append({
                "source_account": source_account,
                "source_transaction_type": transaction_type,
                "amount": quantize(amount),
                "cumulative": quantize(cumulative),
                "voucher_count": int(count),
            })
        for group in (receipts, payments):
            group.sort(key=lambda r: (r["source_account"].value, r["source_transaction_type"]))

        total_receipts = quantize(sum((r["amount"] for r in receipts), ZERO))
        total_payments = quantize(sum((p["amount"] for p in payments), ZERO))
        closing = quantize(opening + total_receipts - total_payments)

        return {
            "from_date": from_date,
            "to_date": to_date,
            "opening_balance": opening,
            "receipts": receipts,
            "payments": payments,
            "total_receipts": total_receipts,
            "total_payments": total_payments,
            "closing_balance": closing,
            "receipt_side_total": quantize(opening + total_receipts),
            "payment_side_total": quantize(total_payments + closing),
        }

    # ================= HELPERS ===================

    def _validate_range(self, from_date, to_date):
        from_date = coerce_date(from_date, "from_date")
        to_date = coerce_date(to_date, "to_date")
        if from_date > to_date:
            raise StatementRangeError(f"from_date {from_date} is after to_date {to_date}")
        days = (to_date - from_date).days + 1
        if self.max_days is not None and days > self.max_days:
            raise StatementRangeError(
                f"Statement range of {days} days exceeds the maximum of {self.max_days}"
            )
        return from_date, to_date

    def _manual_base(self, domain: LedgerDomain) -> Decimal:
        return quantize(settings.opening_balance_for(domain.value))

    def _net_before(self, domain: LedgerDomain, before: Optional[date]) -> Decimal:
        """Signed sum of postings dated before `before` (all history when None)."""
        if domain == LedgerDomain.MAIN:
            query = self.db.query(func.coalesce(func.sum(case(
                (MainAccountVoucher.voucher_type == VoucherType.CREDIT, MainAccountVoucher.amount),
                else_=-MainAccountVoucher.amount,
            )), 0))
            if before is not None:
                query = query.filter(MainAccountVoucher.date < before)
            return quantize(query.scalar())

        funds = self.db.query(func.coalesce(func.sum(case(
            (FundTransaction.type == FundTransactionType.FUND_IN, FundTransaction.amount),
            else_=-FundTransaction.amount,
        )), 0)).filter(FundTransaction.domain == domain)
        transactions = self.db.query(func.coalesce(func.sum(case(
            (LedgerTransaction.type == TransactionType.INCOME, LedgerTransaction.amount),
            else_=-LedgerTransaction.amount,
        )), 0)).filter(LedgerTransaction.domain == domain)

        if before is not None:
            funds = funds.filter(FundTransaction.date < before)
            transactions = transactions.filter(LedgerTransaction.transaction_date < before)
        return quantize(funds.scalar()) + quantize(transactions.scalar())

    def _postings(self, domain: LedgerDomain, start: date, end: date) -> List[Posting]:
        if domain == LedgerDomain.MAIN:
            vouchers = (
                self.db.query(MainAccountVoucher)
                .filter(MainAccountVoucher.date >= start, MainAccountVoucher.date <= end)
                .all()
            )
            return [
                Posting(
                    on_date=v.date,
                    created_at=v.created_at,
                    order=_TRANSACTION_ORDER,
                    id=v.id,
                    side=CREDIT if v.voucher_type == VoucherType.CREDIT else DEBIT,
                    kind=v.voucher_type.value,
                    category=v.source_account.value,
                    amount=quantize(v.amount),
                    reference=v.voucher_no,
                    description=v.narration,
                )
                for v in vouchers
            ]

        funds = (
            self.db.query(FundTransaction)
            .filter(FundTransaction.domain == domain, FundTransaction.date >= start, FundTransaction.date <= end)
            .all()
        )
        transactions = (
            self.db.query(LedgerTransaction)
            .filter(
                LedgerTransaction.domain == domain,
                LedgerTransaction.transaction_date >= start,
                LedgerTransaction.transaction_date <= end,
            )
            .all()
        )

        postings = [
            Posting(
                on_date=f.date,
                created_at=f.created_at,
                order=_FUND_ORDER,
                id=f.id,
                side=CREDIT if f.type == FundTransactionType.FUND_IN else DEBIT,
                kind=f.type.value,
                category=f.purpose,
                amount=quantize(f.amount),
                reference=f.voucher_no,
                description=f.description or f.purpose,
            )
            for f in funds
        ]
        postings.extend(
            Posting(
                on_date=t.transaction_date,
                created_at=t.created_at,
                order=_TRANSACTION_ORDER,
                id=t.id,
                side=CREDIT if t.type == TransactionType.INCOME else DEBIT,
                kind=t.type.value,
                category=t.category,
                amount=quantize(t.amount),
                reference=t.transaction_no,
                description=t.description,
            )
            for t in transactions
        )
        return postings
