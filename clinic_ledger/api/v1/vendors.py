from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.core.dependencies import get_db
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.schemas.vendor import (
    VendorAdjustment,
    VendorCreate,
    VendorDueReportResponse,
    VendorListResponse,
    VendorPaymentCreate,
    VendorPaymentResponse,
    VendorPurchaseCreate,
    VendorResponse,
    VendorTransactionResponse,
)
from clinic_ledger.services.vendor_service import VendorLedgerService
from clinic_ledger.logger_config import logger

router = APIRouter()


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
def create_vendor(data: VendorCreate, db: Session = Depends(get_db)):
    try:
        vendor = VendorLedgerService(db).create_vendor(**data.model_dump())
        return VendorResponse.model_validate(vendor)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error creating vendor")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create vendor",
        )


@router.get("", response_model=VendorListResponse)
def list_vendors(
    db: Session = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = Query(None, description="Name, company or phone"),
    domain: Optional[LedgerDomain] = Query(None),
    is_active: Optional[bool] = Query(None),
):
    rows, total_count = VendorLedgerService(db).list_vendors(
        skip=skip, limit=limit, search=search, domain=domain, is_active=is_active
    )
    return VendorListResponse(total=total_count, vendors=[VendorResponse.model_validate(v) for v in rows])


@router.get("/due-report", response_model=VendorDueReportResponse)
def due_report(
    db: Session = Depends(get_db),
    as_of: Optional[date] = Query(None, description="Defaults to today"),
):
    """Outstanding vendor dues aged into current / 1-30 / 31-60 / 61-90 / 90+ days past due."""
    return VendorLedgerService(db).due_report(as_of)


@router.get("/{vendor_id}", response_model=VendorResponse)
def get_vendor(vendor_id: int, db: Session = Depends(get_db)):
    return VendorResponse.model_validate(VendorLedgerService(db).get_vendor(vendor_id))


@router.get("/{vendor_id}/pending", response_model=List[VendorTransactionResponse])
def pending_transactions(vendor_id: int, db: Session = Depends(get_db)):
    rows = VendorLedgerService(db).pending_transactions(vendor_id)
    return [VendorTransactionResponse.model_validate(r) for r in rows]


@router.post("/{vendor_id}/purchases", response_model=VendorTransactionResponse, status_code=status.HTTP_201_CREATED)
def record_purchase(vendor_id: int, data: VendorPurchaseCreate, db: Session = Depends(get_db)):
    """Purchase on credit; a paid_amount also posts the domain expense and Main Debit voucher."""
    try:
        purchase = VendorLedgerService(db).record_purchase(
            vendor_id,
            data.amount,
            data.description,
            paid_amount=data.paid_amount,
            reference_type=data.reference_type,
            reference_id=data.reference_id,
            date=data.date,
            due_date=data.due_date,
            created_by=data.created_by,
        )
        return VendorTransactionResponse.model_validate(purchase)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error recording vendor purchase")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record purchase",
        )


@router.post("/{vendor_id}/payments", response_model=VendorPaymentResponse, status_code=status.HTTP_201_CREATED)
def make_payment(vendor_id: int, data: VendorPaymentCreate, db: Session = Depends(get_db)):
    try:
        payment = VendorLedgerService(db).make_payment(
            vendor_id,
            data.amount,
            description=data.description,
            payment_date=data.payment_date,
            payment_method=data.payment_method,
            reference_no=data.reference_no,
            allocated_transactions=data.allocated_transactions,
            created_by=data.created_by,
        )
        return VendorPaymentResponse.model_validate(payment)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error recording vendor payment")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record payment",
        )


@router.post("/{vendor_id}/adjustments", response_model=VendorTransactionResponse, status_code=status.HTTP_201_CREATED)
def adjust_balance(vendor_id: int, data: VendorAdjustment, db: Session = Depends(get_db)):
    try:
        adjustment = VendorLedgerService(db).adjust_balance(
            vendor_id, data.adjustment_type, data.amount, data.reason, created_by=data.created_by
        )
        return VendorTransactionResponse.model_validate(adjustment)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error adjusting vendor balance")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to adjust vendor balance",
        )
