"""
Category and merchant breakdowns for presentation.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List

from fintrack.models.schemas import CanonicalRecord, CategorySlice, MerchantTotal
from fintrack.services.metrics import to_decimal


def _group(records: Iterable[CanonicalRecord], key) -> Dict[str, List[Decimal]]:
    groups: Dict[str, List[Decimal]] = defaultdict(list)
    for record in records:
        name = key(record)
        if name:
            groups[name].append(to_decimal(record.amount))
    return groups


def build_breakdown(records: Iterable[CanonicalRecord]) -> Dict[str, float]:
    """Sum amounts per category; categories summing to exactly zero are left out."""
    breakdown: Dict[str, float] = {}
    for category, amounts in _group(records, lambda r: r.category).items():
        total = sum(amounts, Decimal("0"))
        if total != 0:
            breakdown[category] = float(total)
    return breakdown


def category_slices(records: Iterable[CanonicalRecord]) -> List[CategorySlice]:
    """Breakdown with counts and percentage of the grand total, largest first."""
    groups = _group(records, lambda r: r.category)
    grand_total = sum((sum(amounts, Decimal("0")) for amounts in groups.values()), Decimal("0"))

    slices = []
    for category, amounts in groups.items():
        total = sum(amounts, Decimal("0"))
        if total == 0:
            continue
        percentage = float(total * 100 / grand_total) if grand_total > 0 else 0.0
        slices.append(CategorySlice(
            category=category,
            total_amount=float(total),
            transaction_count=len(amounts),
            percentage=round(percentage, 2),
        ))
    slices.sort(key=lambda s: s.total_amount, reverse=True)
    return slices


def top_merchants(records: Iterable[CanonicalRecord], limit: int = 10) -> List[MerchantTotal]:
    groups = _group(records, lambda r: r.merchant_name)
    merchants = [
        MerchantTotal(merchant_name=name, total_amount=float(sum(amounts, Decimal("0"))), transaction_count=len(amounts))
        for name, amounts in groups.items()
    ]
    merchants.sort(key=lambda m: m.total_amount, reverse=True)
    return merchants[:limit]
