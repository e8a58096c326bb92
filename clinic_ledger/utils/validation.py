from datetime import date, datetime
from typing import Optional, Union

from clinic_ledger.common.exceptions import UnknownDomainError, ValidationError
from clinic_ledger.models.account import LedgerDomain
from clinic_ledger.models.voucher import VoucherType


def coerce_domain(value: Union[str, LedgerDomain], allow_main: bool = True) -> LedgerDomain:
    """
    Resolve a domain name ('hospital', 'Hospital', LedgerDomain.HOSPITAL).

    Raises:
        UnknownDomainError for anything that is not a ledger domain
    """
    if isinstance(value, LedgerDomain):
        domain = value
    else:
        try:
            domain = LedgerDomain(str(value).strip().lower())
        except ValueError:
            raise UnknownDomainError(f"Unknown ledger domain '{value}'")

    if domain == LedgerDomain.MAIN and not allow_main:
        raise UnknownDomainError("The main account is not a sub-ledger")
    return domain


def coerce_voucher_type(value: Union[str, VoucherType]) -> VoucherType:
    if isinstance(value, VoucherType):
        return value
    key = str(value).strip().capitalize()
    try:
        return VoucherType(key)
    except ValueError:
        raise ValidationError(f"Invalid voucher type '{value}', expected Credit or Debit")


def coerce_date(value: Optional[Union[str, date, datetime]], field: str = "date") -> date:
    """None means today; strings must be ISO dates."""
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field} '{value}', expected YYYY-MM-DD")


def require_text(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()
