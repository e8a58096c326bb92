from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Literal, Optional

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.core.config import settings
from clinic_ledger.core.dependencies import get_db, get_domain
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.schemas.statement import (
    AccountStatementResponse,
    DailyStatementResponse,
    MonthlyReportResponse,
    ReceiptPaymentResponse,
    ReconciliationResponse,
    ReconciliationResult,
)
from clinic_ledger.services.statement_service import StatementBuilder
from clinic_ledger.utils.export import (
    CSV_CONTENT_TYPE,
    account_statement_csv,
    csv_filename,
    daily_statement_csv,
)
from clinic_ledger.logger_config import logger

router = APIRouter()


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _bounded_builder(db: Session) -> StatementBuilder:
    return StatementBuilder(db, max_days=settings.STATEMENT_MAX_DAYS)


@router.get("/receipt-payment", response_model=ReceiptPaymentResponse)
def receipt_payment(
    db: Session = Depends(get_db),
    from_date: Optional[date] = Query(None, description="Defaults to the first day of this month"),
    to_date: Optional[date] = Query(None, description="Defaults to today"),
):
    """Main ledger receipts and payments by source, with opening and closing balance."""
    today = date.today()
    from_date = from_date or today.replace(day=1)
    to_date = to_date or today
    try:
        return _bounded_builder(db).receipt_and_payment(from_date, to_date)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error building receipt and payment report")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build receipt and payment report",
        )


@router.get("/reconciliation", response_model=ReconciliationResponse)
def reconciliation(db: Session = Depends(get_db)):
    """Replay every domain's history and compare it with the live balance."""
    results = StatementBuilder(db).reconcile_all()
    return ReconciliationResponse(
        is_consistent=all(r["is_consistent"] for r in results),
        accounts=[ReconciliationResult(**r) for r in results],
    )


@router.get("/{domain}/daily", response_model=DailyStatementResponse)
def daily_statement(
    domain: LedgerDomain = Depends(get_domain),
    db: Session = Depends(get_db),
    from_date: Optional[date] = Query(None, description="Defaults to the first day of this month"),
    to_date: Optional[date] = Query(None, description="Defaults to today"),
    format: Literal["json", "csv"] = Query("json"),
):
    """Per-day credit/debit buckets with carried balance."""
    today = date.today()
    from_date = from_date or today.replace(day=1)
    to_date = to_date or today
    try:
        statement = _bounded_builder(db).daily_statement(domain, from_date, to_date)
        if format == "csv":
            return _csv_response(
                daily_statement_csv(statement), csv_filename(domain, "daily_statement", from_date, to_date)
            )
        return statement
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error building daily statement")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build daily statement",
        )


@router.get("/{domain}/account", response_model=AccountStatementResponse)
def account_statement(
    domain: LedgerDomain = Depends(get_domain),
    db: Session = Depends(get_db),
    from_date: Optional[date] = Query(None, description="Defaults to the first day of this month"),
    to_date: Optional[date] = Query(None, description="Defaults to today"),
    format: Literal["json", "csv"] = Query("json"),
):
    """Chronological entries with deposit/withdraw and running balance."""
    today = date.today()
    from_date = from_date or today.replace(day=1)
    to_date = to_date or today
    try:
        statement = _bounded_builder(db).account_statement(domain, from_date, to_date)
        if format == "csv":
            return _csv_response(
                account_statement_csv(statement), csv_filename(domain, "account_statement", from_date, to_date)
            )
        return statement
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error building account statement")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build account statement",
        )


@router.get("/{domain}/monthly", response_model=MonthlyReportResponse)
def monthly_report(
    domain: LedgerDomain = Depends(get_domain),
    db: Session = Depends(get_db),
    year: Optional[int] = Query(None, ge=2000, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
):
    today = date.today()
    return StatementBuilder(db).monthly_report(domain, year or today.year, month or today.month)
