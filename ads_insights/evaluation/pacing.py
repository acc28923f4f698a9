"""Budget pacing evaluation.

Compares the cost spent over the elapsed part of a period with the spend
a daily budget implies for the same days:

    expected   = daily_budget * days_elapsed
    pace_ratio = safe_divide(actual_cost, expected)

    pace_ratio > high              -> over
    0 < pace_ratio < low           -> under
    pace_ratio == 0                -> not-applicable
    otherwise                      -> on-track

A zero or missing budget with non-zero cost is its own classification
("no-budget"), never folded into on-track.
"""

from typing import Mapping

from ..processor.metrics import safe_divide
from ..processor.tables import synthesize_totals
from ..schema.config import PacingThresholds
from ..schema.models import PacingResult, PacingStatus, Table

PACING_COLUMNS = (
    "campaign_id", "campaign_name", "daily_budget", "days_elapsed",
    "expected_cost", "actual_cost", "pace_ratio", "status",
)


class PacingEvaluator:
    """Classifies spend against budget using configured thresholds."""

    def __init__(self, thresholds: PacingThresholds):
        self.thresholds = thresholds

    def evaluate(self, daily_budget: float | None, actual_cost: float,
                 days_elapsed: int) -> PacingResult:
        budget = daily_budget or 0.0
        cost = actual_cost or 0.0
        expected = budget * max(days_elapsed, 0)
        pace = safe_divide(cost, expected)

        if budget <= 0:
            status = PacingStatus.NO_BUDGET if cost > 0 else PacingStatus.NOT_APPLICABLE
        elif pace > self.thresholds.high:
            status = PacingStatus.OVER
        elif pace < self.thresholds.low:
            status = PacingStatus.UNDER if pace > 0 else PacingStatus.NOT_APPLICABLE
        else:
            status = PacingStatus.ON_TRACK

        return PacingResult(
            status=status,
            pace_ratio=pace,
            expected_cost=expected,
            actual_cost=cost,
            daily_budget=budget,
            days_elapsed=days_elapsed,
        )

    def evaluate_campaigns(self, budgets: Mapping[str, float | None],
                           costs: Mapping[str, float],
                           days_elapsed: int) -> dict[str, PacingResult]:
        """Evaluate every campaign appearing in either mapping, sorted by id."""
        campaign_ids = sorted(set(budgets) | set(costs))
        return {
            cid: self.evaluate(budgets.get(cid), costs.get(cid, 0.0), days_elapsed)
            for cid in campaign_ids
        }


def pacing_table(results: Mapping[str, PacingResult],
                 names: Mapping[str, str] | None = None) -> Table:
    """Render per-campaign pacing with an account-level totals row."""
    names = names or {}
    rows = [
        (
            cid,
            names.get(cid, ""),
            r.daily_budget,
            r.days_elapsed,
            r.expected_cost,
            r.actual_cost,
            r.pace_ratio,
            r.status.value,
        )
        for cid, r in results.items()
    ]
    totals = None
    if rows:
        totals = synthesize_totals(
            PACING_COLUMNS, rows,
            ("daily_budget", "expected_cost", "actual_cost"),
            {"pace_ratio": ("actual_cost", "expected_cost")},
        )
    return Table(name="pacing", columns=PACING_COLUMNS, rows=rows, totals=totals)
