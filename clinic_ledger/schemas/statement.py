from decimal import Decimal
from pydantic import BaseModel
from typing import Dict, List, Optional
from datetime import date

from clinic_ledger.models.account import LedgerDomain

DateType = date


class StatementColumn(BaseModel):
    key: str
    label: str
    side: str


class DailyStatementRow(BaseModel):
    date: DateType
    credits: Dict[str, Decimal]
    debits: Dict[str, Decimal]
    total_credit: Decimal
    total_debit: Decimal
    balance: Decimal


class DailyStatementTotals(BaseModel):
    credits: Dict[str, Decimal]
    debits: Dict[str, Decimal]
    total_credit: Decimal
    total_debit: Decimal


class DailyStatementResponse(BaseModel):
    domain: LedgerDomain
    from_date: DateType
    to_date: DateType
    columns: List[StatementColumn]
    opening_balance: Decimal
    rows: List[DailyStatementRow]
    totals: DailyStatementTotals
    closing_balance: Decimal
    current_balance: Decimal


class AccountStatementEntry(BaseModel):
    date: DateType
    reference: str
    type: str
    category: Optional[str] = None
    description: Optional[str] = None
    deposit: Decimal
    withdraw: Decimal
    running_balance: Decimal


class AccountStatementSummary(BaseModel):
    opening_balance: Decimal
    total_deposit: Decimal
    total_withdraw: Decimal
    closing_balance: Decimal
    transaction_count: int


class AccountStatementResponse(BaseModel):
    domain: LedgerDomain
    from_date: DateType
    to_date: DateType
    entries: List[AccountStatementEntry]
    summary: AccountStatementSummary


class MonthlyReportResponse(BaseModel):
    domain: LedgerDomain
    year: int
    month: int
    from_date: DateType
    to_date: DateType
    income: Decimal
    expense: Decimal
    profit: Decimal
    fund_in: Decimal
    fund_out: Decimal
    income_by_category: Dict[str, Decimal]
    expense_by_category: Dict[str, Decimal]
    opening_balance: Decimal
    current_balance: Decimal


class ReceiptPaymentRow(BaseModel):
    source_account: LedgerDomain
    source_transaction_type: str
    amount: Decimal
    cumulative: Decimal
    voucher_count: int


class ReceiptPaymentResponse(BaseModel):
    from_date: DateType
    to_date: DateType
    opening_balance: Decimal
    receipts: List[ReceiptPaymentRow]
    payments: List[ReceiptPaymentRow]
    total_receipts: Decimal
    total_payments: Decimal
    closing_balance: Decimal
    receipt_side_total: Decimal
    payment_side_total: Decimal


class ReconciliationResult(BaseModel):
    domain: LedgerDomain
    expected: Decimal
    actual: Decimal
    drift: Decimal
    is_consistent: bool


class ReconciliationResponse(BaseModel):
    is_consistent: bool
    accounts: List[ReconciliationResult]
