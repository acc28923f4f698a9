"""Derived metric calculations.

Every ratio KPI goes through :func:`safe_divide`, so a zero denominator
always yields ``0`` rather than NaN, infinity, or an exception.

Ratios (all fractions, never percentages):
    CTR  = clicks / impressions
    CVR  = conversions / clicks
    CPA  = cost / conversions
    ROAS = conversion_value / cost
    AOV  = conversion_value / conversions
    CPC  = cost / clicks
"""

import math
from typing import Iterable

from ..schema.models import MeasureTotals


# ---------------------------------------------------------------------------
# Safe math
# ---------------------------------------------------------------------------

def safe_divide(numerator, denominator) -> float:
    """Divide, returning ``0.0`` when the denominator is zero or missing."""
    if denominator is None or numerator is None:
        return 0.0
    if isinstance(denominator, float) and math.isnan(denominator):
        return 0.0
    if denominator == 0:
        return 0.0
    return numerator / denominator


# ---------------------------------------------------------------------------
# Ratio KPIs
# ---------------------------------------------------------------------------

def ctr(clicks, impressions) -> float:
    return safe_divide(clicks, impressions)


def cvr(conversions, clicks) -> float:
    return safe_divide(conversions, clicks)


def cpa(cost, conversions) -> float:
    return safe_divide(cost, conversions)


def roas(conversion_value, cost) -> float:
    return safe_divide(conversion_value, cost)


def aov(conversion_value, conversions) -> float:
    return safe_divide(conversion_value, conversions)


def cpc(cost, clicks) -> float:
    return safe_divide(cost, clicks)


# Derived column -> (numerator measure, denominator measure).  Totals rows
# recompute ratios from these summed measures, never by averaging ratios.
RATIO_COLUMNS = {
    "ctr": ("clicks", "impressions"),
    "cvr": ("conversions", "clicks"),
    "cpa": ("cost", "conversions"),
    "roas": ("conversion_value", "cost"),
    "aov": ("conversion_value", "conversions"),
    "cpc": ("cost", "clicks"),
}


def derived_metrics(totals: MeasureTotals) -> dict[str, float]:
    """Compute every ratio KPI from one bucket's summed measures."""
    return {
        name: safe_divide(getattr(totals, num), getattr(totals, den))
        for name, (num, den) in RATIO_COLUMNS.items()
    }


def metric_row(totals: MeasureTotals) -> dict[str, float]:
    """Summed measures and derived ratios as a single dict."""
    row = totals.to_dict()
    row.update(derived_metrics(totals))
    return row


# ---------------------------------------------------------------------------
# Weighted rollups
# ---------------------------------------------------------------------------

def weighted_share(pairs: Iterable[tuple[float | None, float]]) -> float:
    """Cost-weighted average of a share metric.

    Each pair is ``(share, cost)``.  Entries with ``cost <= 0`` or a missing
    share are excluded from both the numerator and the denominator.
    """
    weighted = 0.0
    weight = 0.0
    for share, cost in pairs:
        if share is None or cost is None or cost <= 0:
            continue
        weighted += share * cost
        weight += cost
    return safe_divide(weighted, weight)
