from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.core.dependencies import get_db
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.voucher import VoucherType
from clinic_ledger.schemas.voucher import (
    SourceAccountSummary,
    VoucherDailyTotalsResponse,
    VoucherDetailResponse,
    VoucherListResponse,
    VoucherMerge,
    VoucherResponse,
    YearlyVoucherResponse,
)
from clinic_ledger.services.voucher_service import MainLedgerService
from clinic_ledger.logger_config import logger

router = APIRouter()


@router.post("/merge", response_model=VoucherResponse, status_code=status.HTTP_201_CREATED)
def merge_voucher(data: VoucherMerge, db: Session = Depends(get_db)):
    """
    Merge a posting into the Main ledger. Same date, source account,
    source type and direction add to one voucher; otherwise a new voucher is numbered.
    """
    try:
        voucher = MainLedgerService(db).update_main_account_voucher(
            date=data.date,
            amount=data.amount,
            voucher_type=data.voucher_type,
            source_account=data.source_account,
            source_transaction_type=data.source_transaction_type,
            description=data.description,
            source_voucher_no=data.source_voucher_no,
            source_reference_id=data.source_reference_id,
            created_by=data.created_by,
        )
        return VoucherResponse.model_validate(voucher)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error merging voucher")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to merge voucher",
        )


@router.get("", response_model=VoucherListResponse)
def list_vouchers(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    voucher_type: Optional[VoucherType] = Query(None),
    source_account: Optional[LedgerDomain] = Query(None),
    search: Optional[str] = Query(None, description="Search in narration"),
):
    """List Main ledger vouchers with credit/debit totals for the filter."""
    try:
        rows, total_count, totals = MainLedgerService(db).list_vouchers(
            skip=skip,
            limit=limit,
            start_date=start_date,
            end_date=end_date,
            voucher_type=voucher_type,
            source_account=source_account,
            search=search,
        )
        return VoucherListResponse(
            total=total_count,
            total_credit=totals["total_credit"],
            total_debit=totals["total_debit"],
            vouchers=[VoucherResponse.model_validate(r) for r in rows],
        )
    except Exception:
        logger.exception("Error fetching vouchers")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch vouchers",
        )


@router.get("/daily-totals", response_model=VoucherDailyTotalsResponse)
def voucher_daily_totals(
    db: Session = Depends(get_db),
    on_date: Optional[date] = Query(None, alias="date", description="Defaults to today"),
):
    return VoucherDailyTotalsResponse(**MainLedgerService(db).daily_totals(on_date or date.today()))


@router.get("/summary", response_model=List[SourceAccountSummary])
def voucher_source_summary(db: Session = Depends(get_db)):
    """Credit/debit totals per source account and transaction type."""
    return [SourceAccountSummary(**row) for row in MainLedgerService(db).source_account_summary()]


@router.get("/yearly", response_model=YearlyVoucherResponse)
def yearly_vouchers(
    db: Session = Depends(get_db),
    year: int = Query(..., ge=2000, le=2100),
    voucher_type: VoucherType = Query(...),
):
    """All Credit or all Debit vouchers of one year, numbered in date order."""
    return YearlyVoucherResponse(**MainLedgerService(db).yearly_vouchers(year, voucher_type))


@router.get("/{voucher_id}", response_model=VoucherDetailResponse)
def get_voucher(voucher_id: int, db: Session = Depends(get_db)):
    return VoucherDetailResponse.model_validate(MainLedgerService(db).get_voucher(voucher_id))
