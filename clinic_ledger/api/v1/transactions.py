from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from clinic_ledger.common.exceptions import LedgerError
from clinic_ledger.core.dependencies import get_db
from clinic_ledger.models.transaction import TransactionType
from clinic_ledger.schemas.transaction import TransactionResponse, TransactionReverse, TransactionUpdate
from clinic_ledger.services.posting_service import LedgerPostingService, find_transaction
from clinic_ledger.logger_config import logger

router = APIRouter()


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return TransactionResponse.model_validate(find_transaction(db, transaction_id))


@router.put("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(transaction_id: int, data: TransactionUpdate, db: Session = Depends(get_db)):
    """
    Correct an income/expense in place. The domain balance moves by the
    difference and so does the Main ledger voucher that merged it, if any.
    """
    try:
        transaction = find_transaction(db, transaction_id)
        service = LedgerPostingService(db, transaction.domain)
        update = service.update_income if transaction.type == TransactionType.INCOME else service.update_expense
        updated = update(
            transaction,
            data.amount,
            new_category=data.category,
            new_description=data.description,
            new_category_id=data.category_id,
        )
        return TransactionResponse.model_validate(updated)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error updating transaction")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update transaction",
        )


@router.post("/{transaction_id}/reverse", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def reverse_transaction(transaction_id: int, data: TransactionReverse, db: Session = Depends(get_db)):
    """Post the offsetting entry; returns the new reversal transaction."""
    try:
        transaction = find_transaction(db, transaction_id)
        offset = LedgerPostingService(db, transaction.domain).reverse_transaction(
            transaction, data.reason, created_by=data.created_by, date=data.date
        )
        return TransactionResponse.model_validate(offset)
    except LedgerError:
        raise
    except Exception:
        logger.exception("Error reversing transaction")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reverse transaction",
        )
