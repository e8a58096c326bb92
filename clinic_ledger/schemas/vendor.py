from decimal import Decimal
from pydantic import BaseModel, Field, field_validator
from typing import List, Literal, Optional
from datetime import date, datetime

from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.vendor import BalanceType, PaymentStatus, VendorTransactionType

DateType = date


class VendorCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    company_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    domain: LedgerDomain = LedgerDomain.HOSPITAL
    opening_balance: Decimal = Field(default=Decimal("0.00"), ge=0)
    opening_balance_type: BalanceType = BalanceType.DUE
    credit_limit: Decimal = Field(default=Decimal("0.00"), ge=0)
    payment_terms_days: int = Field(default=30, ge=0)
    notes: Optional[str] = None

    @field_validator("domain")
    @classmethod
    def not_main(cls, v):
        if v == LedgerDomain.MAIN:
            raise ValueError("Vendors are paid from a sub-ledger, not the main account")
        return v


class VendorResponse(BaseModel):
    id: int
    name: str
    company_name: Optional[str] = None
    phone: Optional[str] = None
    domain: LedgerDomain
    opening_balance: Decimal
    current_balance: Decimal
    balance_type: BalanceType
    credit_limit: Decimal
    payment_terms_days: int
    is_active: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VendorListResponse(BaseModel):
    total: int
    vendors: List[VendorResponse]


class VendorPurchaseCreate(BaseModel):
    """Purchase on credit; `paid_amount` > 0 pays part of it immediately."""
    amount: Decimal = Field(..., gt=0)
    paid_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    description: str = Field(..., min_length=1)
    reference_type: Optional[str] = Field(default=None, max_length=50)
    reference_id: Optional[int] = None
    date: Optional[DateType] = None
    due_date: Optional[DateType] = None
    created_by: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 10000.00,
                "paid_amount": 4000.00,
                "description": "Paracetamol 500mg x 200 boxes",
            }
        }


class VendorTransactionResponse(BaseModel):
    id: int
    transaction_no: str
    vendor_id: int
    type: VendorTransactionType
    amount: Decimal
    due_amount: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    description: Optional[str] = None
    transaction_date: DateType
    due_date: Optional[DateType] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VendorPaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = None
    payment_date: Optional[DateType] = None
    payment_method: str = Field(default="cash", max_length=30)
    reference_no: Optional[str] = Field(default=None, max_length=100)
    allocated_transactions: List[int] = []
    created_by: Optional[int] = None


class VendorPaymentResponse(BaseModel):
    id: int
    payment_no: str
    vendor_id: int
    amount: Decimal
    payment_method: str
    reference_no: Optional[str] = None
    payment_date: DateType
    description: Optional[str] = None
    allocated_transactions: List[int] = []
    ledger_transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VendorAdjustment(BaseModel):
    adjustment_type: Literal["increase", "decrease"]
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    created_by: Optional[int] = None


class VendorDueRow(BaseModel):
    vendor_id: int
    vendor_name: str
    domain: LedgerDomain
    balance_type: BalanceType
    total_due: Decimal
    current: Decimal
    days_1_30: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    over_90: Decimal


class VendorDueTotals(BaseModel):
    total_due: Decimal
    current: Decimal
    days_1_30: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    over_90: Decimal


class VendorDueReportResponse(BaseModel):
    as_of: DateType
    vendors: List[VendorDueRow]
    totals: VendorDueTotals
