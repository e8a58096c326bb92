import enum
from sqlalchemy import Column, DateTime, Enum, Integer, Numeric
from sqlalchemy.sql import func

from clinic_ledger.core.database import Base


class LedgerDomain(str, enum.Enum):
    MAIN = "main"
    HOSPITAL = "hospital"
    MEDICINE = "medicine"
    OPTICS = "optics"
    OPERATION = "operation"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def sub_ledgers(cls):
        return [d for d in cls if d != cls.MAIN]


# Prefixes for human readable numbers (transaction_no / fund voucher_no)
DOMAIN_PREFIX = {
    LedgerDomain.MAIN: "MA",
    LedgerDomain.HOSPITAL: "H",
    LedgerDomain.MEDICINE: "M",
    LedgerDomain.OPTICS: "O",
    LedgerDomain.OPERATION: "OP",
}


class Account(Base):
    """One balance row per ledger domain. Only the posting services write `balance`."""
    __tablename__ = "ledger_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(Enum(LedgerDomain), unique=True, nullable=False)
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Account(domain='{self.domain.value}', balance={self.balance})>"
