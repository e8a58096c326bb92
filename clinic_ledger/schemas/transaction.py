from decimal import Decimal
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import date, datetime

from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.transaction import TransactionType
from clinic_ledger.schemas.voucher import VoucherResponse

# Alias to avoid field name 'date' shadowing type 'date' in annotations (Pydantic v2)
DateType = date


class TransactionCreate(BaseModel):
    """Income or expense posting. Either `category` or `category_id` is required."""
    amount: Decimal = Field(..., gt=0)
    category: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    description: str = Field(..., min_length=1)
    reference_type: Optional[str] = Field(default=None, max_length=50)
    reference_id: Optional[int] = None
    date: Optional[DateType] = None
    created_by: Optional[int] = None

    # Also merge into the Main ledger in the same commit
    post_to_main: bool = False
    source_transaction_type: Optional[str] = Field(default=None, max_length=50)

    @model_validator(mode="after")
    def require_category(self):
        if not (self.category and self.category.strip()) and self.category_id is None:
            raise ValueError("Either category or category_id is required")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 500.00,
                "category": "Medical Test",
                "description": "Group G1",
                "post_to_main": True,
            }
        }


class TransactionUpdate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    category: Optional[str] = Field(default=None, max_length=100)
    category_id: Optional[int] = None
    description: Optional[str] = None


class TransactionReverse(BaseModel):
    reason: str = Field(..., min_length=1)
    date: Optional[DateType] = None
    created_by: Optional[int] = None


class TransactionResponse(BaseModel):
    id: int
    transaction_no: str
    domain: LedgerDomain
    type: TransactionType
    category: str
    category_id: Optional[int] = None
    amount: Decimal
    description: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    transaction_date: DateType
    reversal_of_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PostingResponse(BaseModel):
    transaction: TransactionResponse
    voucher: Optional[VoucherResponse] = None
    balance: Decimal


class TransactionListResponse(BaseModel):
    total: int
    total_income: Decimal
    total_expense: Decimal
    transactions: List[TransactionResponse]
