import enum
from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from clinic_ledger.core.database import Base
from clinic_ledger.models.account import LedgerDomain


class VoucherType(str, enum.Enum):
    CREDIT = "Credit"   # money into the main account (+)
    DEBIT = "Debit"     # money out of the main account (-)

    @property
    def sign(self) -> int:
        return 1 if self == VoucherType.CREDIT else -1

    @property
    def opposite(self) -> "VoucherType":
        return VoucherType.DEBIT if self == VoucherType.CREDIT else VoucherType.CREDIT


class MainAccountVoucher(Base):
    """Main ledger row; same-day postings from one source and direction merge into one voucher."""
    __tablename__ = "main_account_vouchers"
    __table_args__ = (
        UniqueConstraint(
            "date", "source_account", "source_transaction_type", "voucher_type",
            name="uq_main_voucher_merge_key",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    voucher_no = Column(String(20), nullable=False, index=True)
    voucher_type = Column(Enum(VoucherType), nullable=False)
    date = Column(Date, nullable=False, index=True)
    narration = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

    source_account = Column(Enum(LedgerDomain), nullable=False)
    source_transaction_type = Column(String(50), nullable=False)
    source_voucher_no = Column(String(30), nullable=True)
    source_reference_id = Column(Integer, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    lines = relationship(
        "MainAccountVoucherLine",
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="MainAccountVoucherLine.id",
    )

    @property
    def sl_no(self) -> int:
        return self.id

    @property
    def source_account_name(self) -> str:
        return f"{self.source_account.label} Account"

    @property
    def transaction_type_name(self) -> str:
        return self.source_transaction_type.replace("_", " ").title()

    @property
    def signed_amount(self):
        return self.amount if self.voucher_type == VoucherType.CREDIT else -self.amount

    def __repr__(self):
        return f"<MainAccountVoucher(no='{self.voucher_no}', type='{self.voucher_type.value}', amount={self.amount})>"


class MainAccountVoucherLine(Base):
    """One posting merged into a voucher; lets updates find the voucher of any merged transaction."""
    __tablename__ = "main_account_voucher_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    voucher_id = Column(Integer, ForeignKey("main_account_vouchers.id", ondelete="CASCADE"), nullable=False, index=True)
    source_voucher_no = Column(String(30), nullable=True, index=True)
    source_reference_id = Column(Integer, nullable=True, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    voucher = relationship("MainAccountVoucher", back_populates="lines")
