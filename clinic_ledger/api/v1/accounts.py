from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.core.dependencies import get_db, get_domain, get_sub_ledger_domain
from clinic_ledger.models.account import Account, LedgerDomain
from clinic_ledger.models.transaction import FundTransactionType, TransactionType
from clinic_ledger.schemas.account import (
    AccountBalanceResponse,
    AccountListResponse,
    FundCreate,
    FundListResponse,
    FundResponse,
)
from clinic_ledger.schemas.transaction import (
    PostingResponse,
    TransactionCreate,
    TransactionListResponse,
    TransactionResponse,
)
from clinic_ledger.schemas.voucher import VoucherResponse
from clinic_ledger.services.ledger_primitives import read_balance
from clinic_ledger.services.posting_service import LedgerPostingService
from clinic_ledger.logger_config import logger

router = APIRouter()


def _balance_response(db: Session, domain: LedgerDomain) -> AccountBalanceResponse:
    account = db.query(Account).filter(Account.domain == domain).first()
    return AccountBalanceResponse(
        domain=domain,
        balance=read_balance(db, domain),
        updated_at=account.updated_at if account else None,
    )


@router.get("", response_model=AccountListResponse)
def list_accounts(db: Session = Depends(get_db)):
    """Live balance of every ledger domain, Main first."""
    try:
        accounts = [_balance_response(db, domain) for domain in LedgerDomain]
        return AccountListResponse(total=len(accounts), accounts=accounts)
    except Exception:
        logger.exception("Error fetching account balances")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch account balances",
        )


@router.get("/{domain}", response_model=AccountBalanceResponse)
def get_account(domain: LedgerDomain = Depends(get_domain), db: Session = Depends(get_db)):
    return _balance_response(db, domain)


# ================= FUNDS ===================

@router.post("/{domain}/funds/in", response_model=FundResponse, status_code=status.HTTP_201_CREATED)
def add_fund(
    data: FundCreate,
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
):
    """Capital injection into a sub-ledger."""
    try:
        fund = LedgerPostingService(db, domain).add_fund(
            data.amount, data.purpose, data.description, date=data.date, added_by=data.added_by
        )
        return FundResponse.model_validate(fund)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error adding fund")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add fund",
        )


@router.post("/{domain}/funds/out", response_model=FundResponse, status_code=status.HTTP_201_CREATED)
def withdraw_fund(
    data: FundCreate,
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
):
    """Capital withdrawal; rejected when the balance cannot cover it."""
    try:
        fund = LedgerPostingService(db, domain).withdraw_fund(
            data.amount, data.purpose, data.description, date=data.date, added_by=data.added_by
        )
        return FundResponse.model_validate(fund)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error withdrawing fund")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to withdraw fund",
        )


@router.get("/{domain}/funds", response_model=FundListResponse)
def list_funds(
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    type: Optional[FundTransactionType] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    rows, total_count = LedgerPostingService(db, domain).list_fund_transactions(
        skip=skip, limit=limit, type=type, start_date=start_date, end_date=end_date
    )
    return FundListResponse(total=total_count, funds=[FundResponse.model_validate(r) for r in rows])


# ================= INCOME / EXPENSE ===================

def _post(db: Session, domain: LedgerDomain, data: TransactionCreate, transaction_type: TransactionType):
    service = LedgerPostingService(db, domain)
    fields = dict(
        reference_type=data.reference_type,
        reference_id=data.reference_id,
        date=data.date,
        category_id=data.category_id,
        created_by=data.created_by,
    )
    voucher = None
    if data.post_to_main:
        post = (
            service.add_income_with_voucher
            if transaction_type == TransactionType.INCOME
            else service.add_expense_with_voucher
        )
        transaction, voucher = post(
            data.amount, data.category, data.description,
            source_transaction_type=data.source_transaction_type, **fields
        )
    elif transaction_type == TransactionType.INCOME:
        transaction = service.add_income(data.amount, data.category, data.description, **fields)
    else:
        transaction = service.add_expense(data.amount, data.category, data.description, **fields)

    return PostingResponse(
        transaction=TransactionResponse.model_validate(transaction),
        voucher=VoucherResponse.model_validate(voucher) if voucher is not None else None,
        balance=service.get_balance(),
    )


@router.post("/{domain}/income", response_model=PostingResponse, status_code=status.HTTP_201_CREATED)
def add_income(
    data: TransactionCreate,
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
):
    """Record income; with post_to_main the Main ledger Credit voucher is merged in the same commit."""
    try:
        return _post(db, domain, data, TransactionType.INCOME)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error adding income")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add income",
        )


@router.post("/{domain}/expense", response_model=PostingResponse, status_code=status.HTTP_201_CREATED)
def add_expense(
    data: TransactionCreate,
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
):
    """Record an expense; with post_to_main the Main ledger Debit voucher is merged in the same commit."""
    try:
        return _post(db, domain, data, TransactionType.EXPENSE)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error adding expense")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add expense",
        )


@router.get("/{domain}/transactions", response_model=TransactionListResponse)
def list_transactions(
    domain: LedgerDomain = Depends(get_sub_ledger_domain),
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    type: Optional[TransactionType] = Query(None),
    category: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Transaction no, category or description"),
):
    """List income/expense for a domain with filters and totals."""
    try:
        rows, total_count, totals = LedgerPostingService(db, domain).list_transactions(
            skip=skip,
            limit=limit,
            type=type,
            category=category,
            start_date=start_date,
            end_date=end_date,
            search=search,
        )
        return TransactionListResponse(
            total=total_count,
            total_income=totals["total_income"],
            total_expense=totals["total_expense"],
            transactions=[TransactionResponse.model_validate(r) for r in rows],
        )
    except Exception:
        logger.exception("Error fetching transactions")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch transactions",
        )
