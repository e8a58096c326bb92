"""create ledger tables (domain accounts, transactions, funds, main vouchers, vendor payables)

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "ledgerdomain": ("MAIN", "HOSPITAL", "MEDICINE", "OPTICS", "OPERATION"),
    "transactiontype": ("INCOME", "EXPENSE"),
    "fundtransactiontype": ("FUND_IN", "FUND_OUT"),
    "vouchertype": ("CREDIT", "DEBIT"),
    "balancetype": ("DUE", "ADVANCE"),
    "vendortransactiontype": ("PURCHASE", "ADJUSTMENT"),
    "paymentstatus": ("PAID", "PARTIAL", "UNPAID"),
}


def _enum(name: str):
    # PostgreSQL types are created once in upgrade(); several tables share ledgerdomain
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), "postgresql"
    )


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "ledger_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain", _enum("ledgerdomain"), nullable=False, unique=True),
        sa.Column("balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "ledger_categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("domain", _enum("ledgerdomain"), nullable=False),
        sa.Column("type", _enum("transactiontype"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("domain", "type", "name", name="uq_ledger_category_domain_type_name"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_no", sa.String(30), nullable=False, unique=True),
        sa.Column("domain", _enum("ledgerdomain"), nullable=False),
        sa.Column("type", _enum("transactiontype"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("ledger_categories.id"), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column(
            "reversal_of_id", sa.Integer(), sa.ForeignKey("ledger_transactions.id"), nullable=True, unique=True
        ),
        *_timestamps(),
    )
    op.create_index("ix_ledger_transactions_transaction_no", "ledger_transactions", ["transaction_no"])
    op.create_index("ix_ledger_transactions_domain", "ledger_transactions", ["domain"])
    op.create_index("ix_ledger_transactions_transaction_date", "ledger_transactions", ["transaction_date"])

    op.create_table(
        "ledger_fund_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("voucher_no", sa.String(30), nullable=False, unique=True),
        sa.Column("domain", _enum("ledgerdomain"), nullable=False),
        sa.Column("type", _enum("fundtransactiontype"), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("purpose", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("added_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_ledger_fund_transactions_domain", "ledger_fund_transactions", ["domain"])
    op.create_index("ix_ledger_fund_transactions_date", "ledger_fund_transactions", ["date"])

    op.create_table(
        "main_account_vouchers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("voucher_no", sa.String(20), nullable=False),
        sa.Column("voucher_type", _enum("vouchertype"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("narration", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("source_account", _enum("ledgerdomain"), nullable=False),
        sa.Column("source_transaction_type", sa.String(50), nullable=False),
        sa.Column("source_voucher_no", sa.String(30), nullable=True),
        sa.Column("source_reference_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "date", "source_account", "source_transaction_type", "voucher_type",
            name="uq_main_voucher_merge_key",
        ),
    )
    op.create_index("ix_main_account_vouchers_voucher_no", "main_account_vouchers", ["voucher_no"])
    op.create_index("ix_main_account_vouchers_date", "main_account_vouchers", ["date"])

    op.create_table(
        "main_account_voucher_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "voucher_id", sa.Integer(),
            sa.ForeignKey("main_account_vouchers.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("source_voucher_no", sa.String(30), nullable=True),
        sa.Column("source_reference_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_main_account_voucher_lines_voucher_id", "main_account_voucher_lines", ["voucher_id"])
    op.create_index(
        "ix_main_account_voucher_lines_source_voucher_no", "main_account_voucher_lines", ["source_voucher_no"]
    )
    op.create_index(
        "ix_main_account_voucher_lines_source_reference_id", "main_account_voucher_lines", ["source_reference_id"]
    )

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("domain", _enum("ledgerdomain"), nullable=False),
        sa.Column("opening_balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("current_balance", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("balance_type", _enum("balancetype"), nullable=False),
        sa.Column("credit_limit", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("payment_terms_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "vendor_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("transaction_no", sa.String(30), nullable=False, unique=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("type", _enum("vendortransactiontype"), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("due_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", _enum("paymentstatus"), nullable=False),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_vendor_transactions_vendor_id", "vendor_transactions", ["vendor_id"])

    op.create_table(
        "vendor_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_no", sa.String(30), nullable=False, unique=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_method", sa.String(30), nullable=False, server_default="cash"),
        sa.Column("reference_no", sa.String(100), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("allocated_transactions", sa.JSON(), nullable=False),
        sa.Column("ledger_transaction_id", sa.Integer(), sa.ForeignKey("ledger_transactions.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_vendor_payments_vendor_id", "vendor_payments", ["vendor_id"])


def downgrade() -> None:
    op.drop_index("ix_vendor_payments_vendor_id", table_name="vendor_payments")
    op.drop_table("vendor_payments")
    op.drop_index("ix_vendor_transactions_vendor_id", table_name="vendor_transactions")
    op.drop_table("vendor_transactions")
    op.drop_table("vendors")
    op.drop_index("ix_main_account_voucher_lines_source_reference_id", table_name="main_account_voucher_lines")
    op.drop_index("ix_main_account_voucher_lines_source_voucher_no", table_name="main_account_voucher_lines")
    op.drop_index("ix_main_account_voucher_lines_voucher_id", table_name="main_account_voucher_lines")
    op.drop_table("main_account_voucher_lines")
    op.drop_index("ix_main_account_vouchers_date", table_name="main_account_vouchers")
    op.drop_index("ix_main_account_vouchers_voucher_no", table_name="main_account_vouchers")
    op.drop_table("main_account_vouchers")
    op.drop_index("ix_ledger_fund_transactions_date", table_name="ledger_fund_transactions")
    op.drop_index("ix_ledger_fund_transactions_domain", table_name="ledger_fund_transactions")
    op.drop_table("ledger_fund_transactions")
    op.drop_index("ix_ledger_transactions_transaction_date", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_domain", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_transaction_no", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("ledger_categories")
    op.drop_table("ledger_accounts")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
