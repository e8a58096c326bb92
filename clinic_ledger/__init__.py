"""Multi-ledger accounting engine for a clinic: domain accounts, Main ledger vouchers, statements and vendor payables."""

__version__ = "1.0.0"
