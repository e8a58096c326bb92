from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime

from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.voucher import VoucherType

DateType = date


class VoucherMerge(BaseModel):
    """Merge a posting into the Main ledger voucher for (date, source, type, direction)."""
    date: Optional[DateType] = None
    amount: Decimal = Field(..., gt=0)
    voucher_type: VoucherType
    source_account: LedgerDomain
    source_transaction_type: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1)
    source_voucher_no: Optional[str] = Field(default=None, max_length=30)
    source_reference_id: Optional[int] = None
    created_by: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "date": "2026-03-01",
                "amount": 500.00,
                "voucher_type": "Credit",
                "source_account": "hospital",
                "source_transaction_type": "income",
                "description": "Group G1",
            }
        }


class VoucherLineResponse(BaseModel):
    id: int
    source_voucher_no: Optional[str] = None
    source_reference_id: Optional[int] = None
    amount: Decimal
    description: Optional[str] = None

    class Config:
        from_attributes = True


class VoucherResponse(BaseModel):
    id: int
    sl_no: int
    voucher_no: str
    voucher_type: VoucherType
    date: DateType
    narration: str
    amount: Decimal
    source_account: LedgerDomain
    source_account_name: str
    source_transaction_type: str
    transaction_type_name: str
    source_voucher_no: Optional[str] = None
    source_reference_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VoucherDetailResponse(VoucherResponse):
    lines: List[VoucherLineResponse] = []


class VoucherListResponse(BaseModel):
    total: int
    total_credit: Decimal
    total_debit: Decimal
    vouchers: List[VoucherResponse]


class VoucherDailyTotalsResponse(BaseModel):
    date: DateType
    credit_total: Decimal
    debit_total: Decimal
    net_change: Decimal
    voucher_count: int


class SourceAccountSummary(BaseModel):
    source_account: LedgerDomain
    source_transaction_type: str
    credit_total: Decimal
    debit_total: Decimal
    voucher_count: int


class YearlyVoucherRow(BaseModel):
    sl_no: str
    voucher_no: str
    date: DateType
    narration: str
    source_account: LedgerDomain
    amount: Decimal


class YearlyVoucherResponse(BaseModel):
    year: int
    voucher_type: VoucherType
    vouchers: List[YearlyVoucherRow]
    total_amount: Decimal
