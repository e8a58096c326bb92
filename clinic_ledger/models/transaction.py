import enum
from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clinic_ledger.core.database import Base
from clinic_ledger.models.account import LedgerDomain


class TransactionType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"

    @property
    def opposite(self) -> "TransactionType":
        return TransactionType.EXPENSE if self == TransactionType.INCOME else TransactionType.INCOME


class FundTransactionType(str, enum.Enum):
    FUND_IN = "fund_in"
    FUND_OUT = "fund_out"


class LedgerCategory(Base):
    """Income / expense categories per domain (Medical Test, OPD Income, Medicine Purchase, ...)."""
    __tablename__ = "ledger_categories"
    __table_args__ = (
        UniqueConstraint("domain", "type", "name", name="uq_ledger_category_domain_type_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Enum(LedgerDomain), nullable=False)
    type = Column(Enum(TransactionType), nullable=False)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    transactions = relationship("LedgerTransaction", back_populates="category_ref")


class LedgerTransaction(Base):
    """Income or expense posted to one domain account."""
    __tablename__ = "ledger_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_no = Column(String(30), unique=True, nullable=False, index=True)
    domain = Column(Enum(LedgerDomain), nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False)

    category = Column(String(100), nullable=False)
    category_id = Column(Integer, ForeignKey("ledger_categories.id"), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)

    # Polymorphic pointer to the business record (informational only)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    transaction_date = Column(Date, nullable=False, index=True)
    created_by = Column(Integer, nullable=True)

    # Set on an offsetting entry; points at the transaction it reverses
    reversal_of_id = Column(Integer, ForeignKey("ledger_transactions.id"), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category_ref = relationship("LedgerCategory", back_populates="transactions")
    reversal_of = relationship("LedgerTransaction", remote_side=[id], backref="reversed_by")

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    @property
    def is_reversed(self) -> bool:
        return bool(self.reversed_by)

    def __repr__(self):
        return f"<LedgerTransaction(no='{self.transaction_no}', type='{self.type.value}', amount={self.amount})>"


class FundTransaction(Base):
    """Capital injection / withdrawal for a domain account."""
    __tablename__ = "ledger_fund_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    voucher_no = Column(String(30), unique=True, nullable=False)
    domain = Column(Enum(LedgerDomain), nullable=False, index=True)
    type = Column(Enum(FundTransactionType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    purpose = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, index=True)
    added_by = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
