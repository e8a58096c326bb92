"""
Main Account Voucher Service
Consolidates sub-ledger postings into the Main ledger.

Merge rule:
- One voucher per (date, source_account, source_transaction_type, voucher_type)
- A second posting with the same key on the same day is added to that voucher
  (amount summed, narration appended) instead of creating a new row

Example Scenario:
- Hospital income 500 "Group G1" on D -> Voucher 01, Credit 500
- Hospital income 300 "Group G2" on D -> Voucher 01, Credit 800,
  narration "Hospital - Income: Group G1 + Group G2"
- Main balance +800
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import Integer, case, cast, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from clinic_ledger.common.exceptions import ConsistencyError, LedgerError, VoucherNotFoundError
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.voucher import MainAccountVoucher, MainAccountVoucherLine, VoucherType
from clinic_ledger.services.ledger_primitives import apply_delta, lock_or_create_account, read_balance
from clinic_ledger.utils.money import ZERO, quantize, to_amount
from clinic_ledger.utils.validation import coerce_date, coerce_domain, coerce_voucher_type, require_text
from clinic_ledger.logger_config import logger


def voucher_narration(source_account: LedgerDomain, source_transaction_type: str, description: str) -> str:
    type_label = source_transaction_type.replace("_", " ").title()
    return f"{source_account.label} - {type_label}: {description}"


class MainLedgerService:
    """Merge-or-create of Main ledger vouchers plus voucher reads."""

    def __init__(self, db: Session, autocommit: bool = True):
        self.db = db
        self.autocommit = autocommit

    # ================= MERGE ===================

    def update_main_account_voucher(
        self,
        date: Optional[Union[str, date]],
        amount,
        voucher_type: Union[str, VoucherType],
        source_account: Union[str, LedgerDomain],
        source_transaction_type: str,
        description: str,
        source_voucher_no: Optional[str] = None,
        source_reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> MainAccountVoucher:
        """
        Merge a posting into the voucher for its key, creating the voucher if needed.
        The signed amount (Credit +, Debit -) is applied to the Main account balance.
        """
        amount = to_amount(amount)
        voucher_type = coerce_voucher_type(voucher_type)
        source_account = coerce_domain(source_account, allow_main=False)
        source_transaction_type = require_text(source_transaction_type, "source_transaction_type").lower()
        description = require_text(description, "description")
        voucher_date = coerce_date(date)

        try:
            # Main row lock serializes merges and voucher number allocation
            main_account = lock_or_create_account(self.db, LedgerDomain.MAIN)

            voucher = self._find_by_key_for_update(
                voucher_date, source_account, source_transaction_type, voucher_type
            )

            if voucher:
                apply_delta(voucher, amount, attr="amount")
                voucher.narration = f"{voucher.narration} + {description}"
                logger.info(
                    f"Merged {amount} into voucher {voucher.voucher_no} "
                    f"({source_account.value}/{source_transaction_type}/{voucher_type.value} on {voucher_date})"
                )
            else:
                voucher = MainAccountVoucher(
                    voucher_no=self._next_voucher_no(),
                    voucher_type=voucher_type,
                    date=voucher_date,
                    narration=voucher_narration(source_account, source_transaction_type, description),
                    amount=amount,
                    source_account=source_account,
                    source_transaction_type=source_transaction_type,
                    source_voucher_no=source_voucher_no,
                    source_reference_id=source_reference_id,
                    created_by=created_by,
                )
                self.db.add(voucher)
                logger.info(
                    f"Created voucher {voucher.voucher_no} {voucher_type.value} {amount} "
                    f"for {source_account.value}/{source_transaction_type} on {voucher_date}"
                )

            voucher.lines.append(MainAccountVoucherLine(
                source_voucher_no=source_voucher_no,
                source_reference_id=source_reference_id,
                amount=amount,
                description=description,
            ))
            apply_delta(main_account, amount * voucher_type.sign)

            self.db.flush()
            self._commit(voucher)
            return voucher

        except IntegrityError as e:
            self._rollback()
            logger.error(f"Voucher merge key conflict: {str(e)}")
            raise ConsistencyError("Concurrent voucher created for the same merge key; retry the posting")
        except LedgerError:
            self._rollback()
            raise
        except Exception:
            self._rollback()
            logger.exception("Error while merging main account voucher")
            raise

    def adjust_for_source(
        self,
        source_account: LedgerDomain,
        delta: Decimal,
        source_voucher_no: Optional[str] = None,
        source_reference_id: Optional[int] = None,
    ) -> Optional[MainAccountVoucher]:
        """
        Apply `delta` to the voucher that merged a given source posting.
        Returns None (and changes nothing) when no voucher carries that posting.
        Flushes only; the caller owns the transaction.
        """
        line = self._find_line(source_account, source_voucher_no, source_reference_id)
        if line is not None:
            voucher = line.voucher
        else:
            voucher = self._find_voucher_by_source(source_account, source_voucher_no, source_reference_id)
            line = None
        if voucher is None:
            return None

        delta = quantize(delta)
        if delta == ZERO:
            return voucher

        main_account = lock_or_create_account(self.db, LedgerDomain.MAIN)
        self.db.refresh(voucher, with_for_update=True)

        new_amount = apply_delta(voucher, delta, attr="amount")
        if new_amount <= ZERO:
            raise ConsistencyError(
                f"Voucher {voucher.voucher_no} would drop to {new_amount}; reverse the posting instead"
            )
        if line is not None:
            apply_delta(line, delta, attr="amount")
        apply_delta(main_account, delta * voucher.voucher_type.sign)
        self.db.flush()

        logger.info(f"Adjusted voucher {voucher.voucher_no} by {delta} (now {new_amount})")
        return voucher

    # ================= READS ===================

    def find_voucher_for_source(
        self,
        source_account: LedgerDomain,
        source_voucher_no: Optional[str] = None,
        source_reference_id: Optional[int] = None,
    ) -> Optional[MainAccountVoucher]:
        """Voucher that merged a given source posting, or None."""
        line = self._find_line(source_account, source_voucher_no, source_reference_id)
        if line is not None:
            return line.voucher
        return self._find_voucher_by_source(source_account, source_voucher_no, source_reference_id)

    def get_voucher(self, voucher_id: int) -> MainAccountVoucher:
        voucher = (
            self.db.query(MainAccountVoucher)
            .options(selectinload(MainAccountVoucher.lines))
            .filter(MainAccountVoucher.id == voucher_id)
            .first()
        )
        if not voucher:
            raise VoucherNotFoundError(f"Voucher {voucher_id} not found")
        return voucher

    def list_vouchers(
        self,
        skip: int = 0,
        limit: int = 50,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        voucher_type: Optional[VoucherType] = None,
        source_account: Optional[LedgerDomain] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[MainAccountVoucher], int, Dict[str, Decimal]]:
        query = self.db.query(MainAccountVoucher)

        if start_date:
            query = query.filter(MainAccountVoucher.date >= start_date)
        if end_date:
            query = query.filter(MainAccountVoucher.date <= end_date)
        if voucher_type:
            query = query.filter(MainAccountVoucher.voucher_type == voucher_type)
        if source_account:
            query = query.filter(MainAccountVoucher.source_account == source_account)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(MainAccountVoucher.narration.ilike(term))
            logger.debug(f"Filtering vouchers by search: {search}")

        total_count = query.count()
        totals = self._credit_debit_totals(query)

        rows = (
            query.order_by(MainAccountVoucher.date.desc(), MainAccountVoucher.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return rows, total_count, totals

    def daily_totals(self, on_date: date) -> Dict[str, object]:
        query = self.db.query(MainAccountVoucher).filter(MainAccountVoucher.date == on_date)
        totals = self._credit_debit_totals(query)
        return {
            "date": on_date,
            "credit_total": totals["total_credit"],
            "debit_total": totals["total_debit"],
            "net_change": totals["total_credit"] - totals["total_debit"],
            "voucher_count": query.count(),
        }

    def yearly_vouchers(self, year: int, voucher_type: Union[str, VoucherType]) -> Dict[str, object]:
        """Every voucher of one type dated in `year`, oldest first, with serial numbers."""
        year = int(year)
        voucher_type = coerce_voucher_type(voucher_type)
        vouchers = (
            self.db.query(MainAccountVoucher)
            .filter(
                MainAccountVoucher.date >= date(year, 1, 1),
                MainAccountVoucher.date <= date(year, 12, 31),
                MainAccountVoucher.voucher_type == voucher_type,
            )
            .order_by(MainAccountVoucher.date.asc(), MainAccountVoucher.id.asc())
            .all()
        )
        return {
            "year": year,
            "voucher_type": voucher_type,
            "vouchers": [
                {
                    "sl_no": f"{index:02d}",
                    "voucher_no": v.voucher_no,
                    "date": v.date,
                    "narration": v.narration,
                    "source_account": v.source_account,
                    "amount": quantize(v.amount),
                }
                for index, v in enumerate(vouchers, start=1)
            ],
            "total_amount": quantize(sum((v.amount for v in vouchers), ZERO)),
        }

    def source_account_summary(self) -> List[Dict[str, object]]:
        rows = (
            self.db.query(
                MainAccountVoucher.source_account,
                MainAccountVoucher.source_transaction_type,
                MainAccountVoucher.voucher_type,
                func.coalesce(func.sum(MainAccountVoucher.amount), 0),
                func.count(MainAccountVoucher.id),
            )
            .group_by(
                MainAccountVoucher.source_account,
                MainAccountVoucher.source_transaction_type,
                MainAccountVoucher.voucher_type,
            )
            .all()
        )

        summary: Dict[Tuple[LedgerDomain, str], Dict[str, object]] = {}
        for source_account, transaction_type, voucher_type, total, count in rows:
            entry = summary.setdefault((source_account, transaction_type), {
                "source_account": source_account,
                "source_transaction_type": transaction_type,
                "credit_total": ZERO,
                "debit_total": ZERO,
                "voucher_count": 0,
            })
            key = "credit_total" if voucher_type == VoucherType.CREDIT else "debit_total"
            entry[key] = quantize(total)
            entry["voucher_count"] += count
        return sorted(summary.values(), key=lambda e: (e["source_account"].value, e["source_transaction_type"]))

    def get_balance(self) -> Decimal:
        return read_balance(self.db, LedgerDomain.MAIN)

    # ================= HELPERS ===================

    def _find_by_key_for_update(
        self,
        voucher_date: date,
        source_account: LedgerDomain,
        source_transaction_type: str,
        voucher_type: VoucherType,
    ) -> Optional[MainAccountVoucher]:
        return (
            self.db.query(MainAccountVoucher)
            .filter(
                MainAccountVoucher.date == voucher_date,
                MainAccountVoucher.source_account == source_account,
                MainAccountVoucher.source_transaction_type == source_transaction_type,
                MainAccountVoucher.voucher_type == voucher_type,
            )
            .with_for_update()
            .first()
        )

    def _find_line(
        self,
        source_account: LedgerDomain,
        source_voucher_no: Optional[str],
        source_reference_id: Optional[int],
    ) -> Optional[MainAccountVoucherLine]:
        query = (
            self.db.query(MainAccountVoucherLine)
            .join(MainAccountVoucher)
            .filter(MainAccountVoucher.source_account == source_account)
        )
        if source_voucher_no:
            line = query.filter(MainAccountVoucherLine.source_voucher_no == source_voucher_no).first()
            if line:
                return line
        if source_reference_id is not None:
            return query.filter(MainAccountVoucherLine.source_reference_id == source_reference_id).first()
        return None

    def _find_voucher_by_source(
        self,
        source_account: LedgerDomain,
        source_voucher_no: Optional[str],
        source_reference_id: Optional[int],
    ) -> Optional[MainAccountVoucher]:
        query = self.db.query(MainAccountVoucher).filter(MainAccountVoucher.source_account == source_account)
        if source_reference_id is not None:
            voucher = query.filter(MainAccountVoucher.source_reference_id == source_reference_id).first()
            if voucher:
                return voucher
        if source_voucher_no:
            return query.filter(MainAccountVoucher.source_voucher_no == source_voucher_no).first()
        return None

    def _next_voucher_no(self) -> str:
        last = self.db.query(func.max(cast(MainAccountVoucher.voucher_no, Integer))).scalar()
        return f"{(last or 0) + 1:02d}"

    def _credit_debit_totals(self, query) -> Dict[str, Decimal]:
        row = query.with_entities(
            func.coalesce(func.sum(case(
                (MainAccountVoucher.voucher_type == VoucherType.CREDIT, MainAccountVoucher.amount), else_=0)), 0),
            func.coalesce(func.sum(case(
                (MainAccountVoucher.voucher_type == VoucherType.DEBIT, MainAccountVoucher.amount), else_=0)), 0),
        ).order_by(None).first()
        return {
            "total_credit": quantize(row[0]) if row else ZERO,
            "total_debit": quantize(row[1]) if row else ZERO,
        }

    def _commit(self, instance=None):
        if self.autocommit:
            self.db.commit()
            if instance is not None:
                self.db.refresh(instance)

    def _rollback(self):
        if self.autocommit:
            self.db.rollback()
