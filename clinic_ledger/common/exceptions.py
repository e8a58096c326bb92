"""
Ledger error taxonomy.

Every error derives from ValueError so routers can keep the
`except ValueError -> 400` handling; the error handlers refine the
status code from the concrete class.
"""


class LedgerError(ValueError):
    status_code = 400
    error = "Ledger Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ---------------- Validation ----------------

class ValidationError(LedgerError):
    error = "Validation Error"


class InvalidAmountError(ValidationError):
    error = "Invalid Amount"


class UnknownDomainError(ValidationError):
    error = "Unknown Domain"


class StatementRangeError(ValidationError):
    error = "Invalid Date Range"


class ReversalError(ValidationError):
    error = "Reversal Not Allowed"


# ---------------- Business rules ----------------

class BusinessRuleError(LedgerError):
    status_code = 409
    error = "Business Rule Violation"


class InsufficientBalanceError(BusinessRuleError):
    error = "Insufficient Balance"


class CreditLimitExceededError(BusinessRuleError):
    error = "Credit Limit Exceeded"


# ---------------- Consistency ----------------

class ConsistencyError(LedgerError):
    status_code = 409
    error = "Consistency Error"


# ---------------- Not found ----------------

class NotFoundError(LedgerError):
    status_code = 404
    error = "Not Found"


class TransactionNotFoundError(NotFoundError):
    error = "Transaction Not Found"


class VoucherNotFoundError(NotFoundError):
    error = "Voucher Not Found"


class VendorNotFoundError(NotFoundError):
    error = "Vendor Not Found"
