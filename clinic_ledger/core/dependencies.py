from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from clinic_ledger.core.database import SessionLocal
from clinic_ledger.models.account import LedgerDomain


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_domain(domain: str) -> LedgerDomain:
    """
    Resolve the `{domain}` path parameter to a LedgerDomain.
    Raises 404 for names that are not a ledger domain.
    """
    try:
        return LedgerDomain(domain.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown ledger domain '{domain}'",
        )


def get_sub_ledger_domain(domain: str) -> LedgerDomain:
    """Like get_domain, but the Main ledger is rejected (it only receives vouchers)."""
    resolved = get_domain(domain)
    if resolved == LedgerDomain.MAIN:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The main account only receives vouchers; post to a sub-ledger instead",
        )
    return resolved
