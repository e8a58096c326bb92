from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime

from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.transaction import FundTransactionType

DateType = date


class AccountBalanceResponse(BaseModel):
    domain: LedgerDomain
    balance: Decimal
    updated_at: Optional[datetime] = None


class AccountListResponse(BaseModel):
    total: int
    accounts: List[AccountBalanceResponse]


class FundCreate(BaseModel):
    """Fund in / fund out - date defaults to today on server if not provided."""
    amount: Decimal = Field(..., gt=0)
    purpose: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    date: Optional[DateType] = None
    added_by: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 50000.00,
                "purpose": "Owner capital",
                "description": "Opening cash for the month",
            }
        }


class FundResponse(BaseModel):
    id: int
    voucher_no: str
    domain: LedgerDomain
    type: FundTransactionType
    amount: Decimal
    purpose: str
    description: Optional[str] = None
    date: DateType
    added_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FundListResponse(BaseModel):
    total: int
    funds: List[FundResponse]
