"""
Shared balance primitives.

Both the domain accounts and the vendor payables ledger move money through
these helpers: lock the owning row, then apply a delta to it. Nothing else
in the code base writes a balance column.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_ledger.core.config import settings
from clinic_ledger.models.account import Account, LedgerDomain
from clinic_ledger.models.vendor import BalanceType, Vendor
from clinic_ledger.utils.money import ZERO, quantize
from clinic_ledger.logger_config import logger


def _insert_account_if_missing(db: Session, domain: LedgerDomain) -> None:
    values = {
        "domain": domain,
        "balance": quantize(settings.opening_balance_for(domain.value)),
    }
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = postgresql.insert(Account.__table__).values(**values).on_conflict_do_nothing(
            index_elements=["domain"]
        )
        db.execute(stmt)
    elif dialect == "sqlite":
        stmt = sqlite.insert(Account.__table__).values(**values).on_conflict_do_nothing(
            index_elements=["domain"]
        )
        db.execute(stmt)
    else:
        # No portable insert-ignore; a savepoint keeps a lost race from poisoning the outer transaction
        if db.query(Account.id).filter(Account.domain == domain).first() is None:
            try:
                with db.begin_nested():
                    db.add(Account(**values))
            except IntegrityError:
                logger.debug(f"Account row for {domain.value} created concurrently")


def lock_or_create_account(db: Session, domain: LedgerDomain) -> Account:
    """
    Get-or-create the single Account row for `domain` and lock it
    (SELECT ... FOR UPDATE) until the surrounding transaction ends.

    A freshly created row starts at the configured manual opening balance.
    """
    # populate_existing below would discard unflushed changes to a row we already hold
    db.flush()
    account = (
        db.query(Account)
        .filter(Account.domain == domain)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if account is not None:
        return account

    _insert_account_if_missing(db, domain)
    logger.info(f"Created ledger account for domain '{domain.value}'")
    return (
        db.query(Account)
        .filter(Account.domain == domain)
        .with_for_update()
        .populate_existing()
        .one()
    )


def read_balance(db: Session, domain: LedgerDomain) -> Decimal:
    """Unlocked read; a missing row reads as the configured opening balance."""
    balance = db.query(Account.balance).filter(Account.domain == domain).scalar()
    if balance is None:
        return quantize(settings.opening_balance_for(domain.value))
    return quantize(balance)


def apply_delta(row, delta: Decimal, attr: str = "balance") -> Decimal:
    """Add a signed delta to a locked row's balance column and return the new value."""
    current = Decimal(getattr(row, attr) or 0)
    new_value = quantize(current + delta)
    setattr(row, attr, new_value)
    return new_value


def apply_signed_delta(vendor: Vendor, delta: Decimal) -> Decimal:
    """
    Move a vendor's payable by `delta` (positive = we owe more).
    The row stores a magnitude plus due/advance; returns the new signed balance.
    """
    signed = quantize(vendor.signed_balance + delta)
    vendor.current_balance = abs(signed)
    vendor.balance_type = BalanceType.DUE if signed >= ZERO else BalanceType.ADVANCE
    return signed


def lock_vendor(db: Session, vendor_id: int) -> Optional[Vendor]:
    db.flush()
    return (
        db.query(Vendor)
        .filter(Vendor.id == vendor_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def next_sequence_no(db: Session, column, stem: str, width: int = 4) -> str:
    """
    Next `<stem>NNNN` number. Rows are never deleted, so the count of
    existing numbers with this stem gives the sequence. Callers hold the
    lock that owns the series.
    """
    used = db.query(func.count(column)).filter(column.like(f"{stem}%")).scalar() or 0
    return f"{stem}{used + 1:0{width}d}"


def day_stem(prefix: str, on_date: date) -> str:
    return f"{prefix}-{on_date:%Y%m%d}-"
