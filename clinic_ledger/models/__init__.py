# clinic_ledger/models/__init__.py
from .account import Account, LedgerDomain, DOMAIN_PREFIX
from .transaction import (
    FundTransaction, FundTransactionType, LedgerCategory, LedgerTransaction, TransactionType
)
from .voucher import MainAccountVoucher, MainAccountVoucherLine, VoucherType
from .vendor import (
    BalanceType, PaymentStatus, Vendor, VendorPayment, VendorTransaction, VendorTransactionType
)
