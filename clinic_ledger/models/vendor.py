import enum
from decimal import Decimal
from sqlalchemy import (
    JSON, Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clinic_ledger.core.database import Base
from clinic_ledger.models.account import LedgerDomain


class BalanceType(str, enum.Enum):
    DUE = "due"          # we owe the vendor
    ADVANCE = "advance"  # vendor holds our money


class VendorTransactionType(str, enum.Enum):
    PURCHASE = "purchase"
    ADJUSTMENT = "adjustment"


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    company_name = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)

    # Sub-ledger that pays this vendor
    domain = Column(Enum(LedgerDomain), nullable=False, default=LedgerDomain.HOSPITAL)

    opening_balance = Column(Numeric(15, 2), nullable=False, default=0)
    current_balance = Column(Numeric(15, 2), nullable=False, default=0)
    balance_type = Column(Enum(BalanceType), nullable=False, default=BalanceType.DUE)
    credit_limit = Column(Numeric(15, 2), nullable=False, default=0)
    payment_terms_days = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    transactions = relationship("VendorTransaction", back_populates="vendor", order_by="VendorTransaction.id")
    payments = relationship("VendorPayment", back_populates="vendor", order_by="VendorPayment.id")

    @property
    def signed_balance(self) -> Decimal:
        """Positive when we owe the vendor, negative when we hold an advance."""
        balance = Decimal(self.current_balance or 0)
        return balance if self.balance_type == BalanceType.DUE else -balance

    def __repr__(self):
        return f"<Vendor(name='{self.name}', {self.balance_type.value}={self.current_balance})>"


class VendorTransaction(Base):
    __tablename__ = "vendor_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_no = Column(String(30), unique=True, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    type = Column(Enum(VendorTransactionType), nullable=False)

    amount = Column(Numeric(15, 2), nullable=False)
    due_amount = Column(Numeric(15, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(15, 2), nullable=False, default=0)
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID)

    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    transaction_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    created_by = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vendor = relationship("Vendor", back_populates="transactions")


class VendorPayment(Base):
    __tablename__ = "vendor_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_no = Column(String(30), unique=True, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")
    reference_no = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    allocated_transactions = Column(JSON, nullable=False, default=list)

    # Domain expense produced by this payment
    ledger_transaction_id = Column(Integer, ForeignKey("ledger_transactions.id"), nullable=True)
    created_by = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    vendor = relationship("Vendor", back_populates="payments")
    ledger_transaction = relationship("LedgerTransaction")
