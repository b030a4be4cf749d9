"""
Spending metrics and month-over-month trend classification.

Pure functions of their inputs: the reference date is always supplied by the
caller, never read from the clock here.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from fintrack.models.schemas import CanonicalRecord, MetricsSnapshot, MonthlyTotal, Trend

# Relative change (fraction of the previous period) that must be exceeded
# before spending counts as increasing/decreasing. Exactly at the threshold is stable.
TREND_THRESHOLD = 0.05

_CENT = Decimal("0.01")


def to_decimal(amount: float) -> Decimal:
    return Decimal(str(amount)).quantize(_CENT)


def _sum(amounts: Iterable[float]) -> Decimal:
    return sum((to_decimal(amount) for amount in amounts), Decimal("0"))


def _parse_date(value: str) -> date:
    return date.fromisoformat(value[:10])


def previous_month(reference: date) -> Tuple[int, int]:
    if reference.month == 1:
        return reference.year - 1, 12
    return reference.year, reference.month - 1


def period_total(records: Iterable[CanonicalRecord], year: int, month: int) -> Decimal:
    total = Decimal("0")
    for record in records:
        record_date = _parse_date(record.date)
        if record_date.year == year and record_date.month == month:
            total += to_decimal(record.amount)
    return total


def classify_trend(current, previous, threshold: float = TREND_THRESHOLD) -> Trend:
    """
    Compare two period totals.

    previous == 0 -> increasing if current > 0, else stable.
    Otherwise the relative change must be strictly beyond +/- threshold.
    """
    current = current if isinstance(current, Decimal) else to_decimal(current)
    previous = previous if isinstance(previous, Decimal) else to_decimal(previous)
    limit = Decimal(str(threshold))

    if previous == 0:
        return Trend.INCREASING if current > 0 else Trend.STABLE

    change = (current - previous) / previous
    if change > limit:
        return Trend.INCREASING
    if change < -limit:
        return Trend.DECREASING
    return Trend.STABLE


def compute_metrics(
    records: Sequence[CanonicalRecord],
    reference_date: date,
    previous_period_amount: Optional[float] = None,
    threshold: float = TREND_THRESHOLD,
) -> MetricsSnapshot:
    """
    Aggregate canonical records into a ``MetricsSnapshot``.

    Args:
        records: Normalized expenses or transactions
        reference_date: "Now"; its calendar month is the current period
        previous_period_amount: Prior period total if the caller already has
            it; derived from the month before ``reference_date`` otherwise
        threshold: Trend threshold as a fraction
    """
    total = _sum(record.amount for record in records)
    current = period_total(records, reference_date.year, reference_date.month)

    if previous_period_amount is None:
        previous = period_total(records, *previous_month(reference_date))
    else:
        previous = to_decimal(previous_period_amount)

    average = total / max(1, len(records))

    return MetricsSnapshot(
        total_amount=float(total),
        current_period_amount=float(current),
        previous_period_amount=float(previous),
        average_per_record=float(average.quantize(_CENT)),
        trend=classify_trend(current, previous, threshold),
    )


def monthly_totals(records: Iterable[CanonicalRecord], limit: int = 12) -> List[MonthlyTotal]:
    """Per-month totals (``YYYY-MM``), newest month first, at most ``limit`` buckets."""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    counts: Dict[str, int] = defaultdict(int)
    for record in records:
        month = record.date[:7]
        totals[month] += to_decimal(record.amount)
        counts[month] += 1

    months = sorted(totals, reverse=True)[:limit]
    return [
        MonthlyTotal(month=month, total_amount=float(totals[month]), transaction_count=counts[month])
        for month in months
    ]
