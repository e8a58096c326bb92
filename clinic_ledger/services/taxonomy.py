"""
Statement bucket taxonomy.

Each domain declares ordered credit and debit buckets for the daily
statement. A posting lands in the first bucket whose kinds and categories
match, otherwise in the side's catch-all bucket, so every posting is
counted exactly once. Adding a category to a bucket is a data change here.

Kinds:
- sub-ledgers: "fund_in", "fund_out", "income", "expense"
- main: "Credit", "Debit" with the voucher's source account as category
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from clinic_ledger.models.account import LedgerDomain

CREDIT = "credit"
DEBIT = "debit"


@dataclass(frozen=True)
class StatementBucket:
    key: str
    label: str
    kinds: FrozenSet[str]
    categories: FrozenSet[str] = field(default_factory=frozenset)
    catch_all: bool = False

    def matches(self, kind: str, category: Optional[str]) -> bool:
        if kind not in self.kinds:
            return False
        return not self.categories or category in self.categories


@dataclass(frozen=True)
class DomainTaxonomy:
    credit: Tuple[StatementBucket, ...]
    debit: Tuple[StatementBucket, ...]

    def __post_init__(self):
        for side, buckets in ((CREDIT, self.credit), (DEBIT, self.debit)):
            catch_alls = [b for b in buckets if b.catch_all]
            if len(catch_alls) != 1:
                raise ValueError(f"{side} buckets need exactly one catch-all, found {len(catch_alls)}")

    def buckets(self, side: str) -> Tuple[StatementBucket, ...]:
        return self.credit if side == CREDIT else self.debit

    def classify(self, side: str, kind: str, category: Optional[str]) -> StatementBucket:
        catch_all = None
        for bucket in self.buckets(side):
            if bucket.catch_all:
                catch_all = bucket
                continue
            if bucket.matches(kind, category):
                return bucket
        return catch_all

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(b.key for b in self.credit) + tuple(b.key for b in self.debit)


def _bucket(key, label, kinds, categories=(), catch_all=False) -> StatementBucket:
    return StatementBucket(key, label, frozenset(kinds), frozenset(categories), catch_all)


HOSPITAL_TAXONOMY = DomainTaxonomy(
    credit=(
        _bucket("fund_in", "Fund In", ["fund_in"]),
        _bucket("medicine_income", "Medicine Income", ["income"], ["Medicine Income"]),
        _bucket("optics_income", "Optics Income", ["income"], ["Optics Income"]),
        _bucket("medical_test", "Medical Test", ["income"], ["Medical Test"]),
        _bucket("opd_income", "OPD Income", ["income"], ["OPD Income"]),
        _bucket("operation_income", "Operation Income", ["income"], ["Operation Income"]),
        _bucket("other_income", "Other Income", ["income"], catch_all=True),
    ),
    debit=(
        _bucket("fund_out", "Fund Out", ["fund_out"]),
        _bucket("advance_house_rent", "Advance House Rent", ["expense"], ["Advance House Rent"]),
        _bucket("medicine_purchase", "Medicine Purchase", ["expense"], ["Medicine Purchase"]),
        _bucket("hospital_purchase", "Hospital Purchase", ["expense"],
                ["Hospital Purchase", "Hospital Vendor Payment"]),
        _bucket("optics_purchase", "Optics Purchase", ["expense"], ["Optics Vendor Payment"]),
        _bucket("fixed_assets", "Fixed Assets", ["expense"],
                ["Fixed Asset Purchase", "Fixed Asset Vendor Payment"]),
        _bucket("other_expenses", "Other Expenses", ["expense"], catch_all=True),
    ),
)


def corner_taxonomy(domain: LedgerDomain) -> DomainTaxonomy:
    """Sales / purchases layout used by the medicine, optics and operation corners."""
    label = domain.label
    return DomainTaxonomy(
        credit=(
            _bucket("fund_in", "Fund In", ["fund_in"]),
            _bucket("sales", "Sales", ["income"], ["Sales", f"{label} Sale", f"{label} Sales"]),
            _bucket("other_income", "Other Income", ["income"], catch_all=True),
        ),
        debit=(
            _bucket("fund_out", "Fund Out", ["fund_out"]),
            _bucket("purchases", "Purchases", ["expense"],
                    ["Purchase", f"{label} Purchase", f"{label} Vendor Payment"]),
            _bucket("expense", "Expense", ["expense"], catch_all=True),
        ),
    )


MAIN_TAXONOMY = DomainTaxonomy(
    credit=tuple(
        _bucket(f"{d.value}_credit", f"{d.label} Account", ["Credit"], [d.value])
        for d in LedgerDomain.sub_ledgers()
    ) + (_bucket("other_credit", "Other Credit", ["Credit"], catch_all=True),),
    debit=tuple(
        _bucket(f"{d.value}_debit", f"{d.label} Account", ["Debit"], [d.value])
        for d in LedgerDomain.sub_ledgers()
    ) + (_bucket("other_debit", "Other Debit", ["Debit"], catch_all=True),),
)


DEFAULT_TAXONOMY: Dict[LedgerDomain, DomainTaxonomy] = {
    LedgerDomain.MAIN: MAIN_TAXONOMY,
    LedgerDomain.HOSPITAL: HOSPITAL_TAXONOMY,
    LedgerDomain.MEDICINE: corner_taxonomy(LedgerDomain.MEDICINE),
    LedgerDomain.OPTICS: corner_taxonomy(LedgerDomain.OPTICS),
    LedgerDomain.OPERATION: corner_taxonomy(LedgerDomain.OPERATION),
}
