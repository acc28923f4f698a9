"""Rule-based recommendation engine.

Rules are an ordered tuple of ``(predicate, builder)`` pairs.  Each rule
is evaluated independently against one :class:`RuleInput` and emits at
most one :class:`Recommendation`; when no rule fires for a row, a default
"healthy" finding is emitted instead.  Findings are listed in row order,
then rule order, so identical inputs always produce an identical list.

Rules only read metrics that have already been computed - nothing here
aggregates records.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence

from ..processor.metrics import derived_metrics
from ..schema.config import RecommendationThresholds
from ..schema.models import (
    Aggregate,
    MeasureTotals,
    PacingResult,
    PacingStatus,
    Recommendation,
    Table,
)
from .impression_share import CampaignShare

RECOMMENDATION_COLUMNS = ("area", "observation", "detail", "source")


# ---------------------------------------------------------------------------
# Rule input and rule definition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuleInput:
    """Everything a rule may read about one aggregate row."""
    source: str
    label: str
    totals: MeasureTotals
    metrics: Mapping[str, float]
    account_metrics: Mapping[str, float]
    lost_is_rank: float | None = None
    lost_is_budget: float | None = None
    pacing: PacingResult | None = None


@dataclass(frozen=True)
class Rule:
    """A named predicate and the finding it produces when true."""
    name: str
    predicate: Callable[[RuleInput, RecommendationThresholds], bool]
    build: Callable[[RuleInput, RecommendationThresholds], Recommendation]


def _finding(row: RuleInput, area: str, observation: str, detail: str) -> Recommendation:
    return Recommendation(area=area, observation=observation, detail=detail,
                          source=row.source)


# ---------------------------------------------------------------------------
# Default rules (evaluation order matters)
# ---------------------------------------------------------------------------

def _no_conversions(row, t):
    return row.totals.conversions == 0 and row.totals.clicks >= t.min_clicks


def _no_conversions_finding(row, t):
    return _finding(
        row, "Conversions",
        f"No conversions despite {row.totals.clicks:,} clicks",
        f"{row.label}: {row.totals.cost:,.2f} spent without a conversion. "
        "Check conversion tracking, search terms and landing page.",
    )


def _low_roas(row, t):
    return row.totals.cost > 0 and row.metrics["roas"] < t.target_roas


def _low_roas_finding(row, t):
    return _finding(
        row, "Efficiency",
        f"ROAS {row.metrics['roas']:.2f} below target {t.target_roas:.2f}",
        f"{row.label}: review bids and targeting or lower spend.",
    )


def _high_cpa(row, t):
    account_cpa = row.account_metrics.get("cpa", 0.0)
    return (row.totals.conversions > 0 and account_cpa > 0
            and row.metrics["cpa"] > account_cpa * t.cpa_factor)


def _high_cpa_finding(row, t):
    return _finding(
        row, "Efficiency",
        f"CPA {row.metrics['cpa']:,.2f} above {t.cpa_factor:g}x account CPA "
        f"{row.account_metrics['cpa']:,.2f}",
        f"{row.label}: conversions cost more than the account average.",
    )


def _low_ctr(row, t):
    return row.totals.impressions >= t.min_impressions and row.metrics["ctr"] < t.ctr_floor


def _low_ctr_finding(row, t):
    return _finding(
        row, "Engagement",
        f"CTR {row.metrics['ctr']:.2%} below floor {t.ctr_floor:.2%}",
        f"{row.label}: {row.totals.impressions:,} impressions. Refresh ads and review relevance.",
    )


def _lost_rank(row, t):
    return row.lost_is_rank is not None and row.lost_is_rank > t.lost_share_threshold


def _lost_rank_finding(row, t):
    return _finding(
        row, "Impression share",
        f"{row.lost_is_rank:.0%} of impression share lost to rank",
        f"{row.label}: improve ad rank through quality or bids.",
    )


def _lost_budget(row, t):
    return row.lost_is_budget is not None and row.lost_is_budget > t.lost_share_threshold


def _lost_budget_finding(row, t):
    return _finding(
        row, "Budget",
        f"{row.lost_is_budget:.0%} of impression share lost to budget",
        f"{row.label}: budget limits delivery; consider raising it if ROAS allows.",
    )


_PACING_TEXT = {
    PacingStatus.OVER: "Spending ahead of budget",
    PacingStatus.UNDER: "Spending behind budget",
    PacingStatus.NO_BUDGET: "Spending without a defined budget",
}


def _off_pace(row, t):
    return row.pacing is not None and row.pacing.status in _PACING_TEXT


def _off_pace_finding(row, t):
    return _finding(
        row, "Pacing",
        _PACING_TEXT[row.pacing.status],
        f"{row.label}: pace ratio {row.pacing.pace_ratio:.2f} "
        f"({row.pacing.actual_cost:,.2f} spent vs {row.pacing.expected_cost:,.2f} expected).",
    )


DEFAULT_RULES: tuple[Rule, ...] = (
    Rule("no_conversions", _no_conversions, _no_conversions_finding),
    Rule("low_roas", _low_roas, _low_roas_finding),
    Rule("high_cpa", _high_cpa, _high_cpa_finding),
    Rule("low_ctr", _low_ctr, _low_ctr_finding),
    Rule("lost_is_rank", _lost_rank, _lost_rank_finding),
    Rule("lost_is_budget", _lost_budget, _lost_budget_finding),
    Rule("pacing", _off_pace, _off_pace_finding),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class RecommendationEngine:
    """Evaluates an ordered rule list over rule inputs."""

    def __init__(self, thresholds: RecommendationThresholds,
                 rules: Sequence[Rule] = DEFAULT_RULES):
        self.thresholds = thresholds
        self.rules = tuple(rules)

    def evaluate_row(self, row: RuleInput) -> list[Recommendation]:
        findings = [
            rule.build(row, self.thresholds)
            for rule in self.rules
            if rule.predicate(row, self.thresholds)
        ]
        if not findings:
            findings.append(_finding(row, "Performance", "Healthy",
                                     f"{row.label}: no issues detected; monitor."))
        return findings

    def evaluate(self, rows: Iterable[RuleInput]) -> list[Recommendation]:
        findings = []
        for row in rows:
            findings.extend(self.evaluate_row(row))
        return findings


def campaign_rule_inputs(campaigns: Aggregate,
                         shares: Mapping[str, CampaignShare] | None = None,
                         pacing: Mapping[str, PacingResult] | None = None) -> list[RuleInput]:
    """Build rule inputs for campaign aggregate rows.

    Rows are ordered by cost descending, then campaign id.
    """
    shares = shares or {}
    pacing = pacing or {}
    account = derived_metrics(campaigns.totals())

    inputs = []
    for row in campaigns.sorted_rows(lambda r: r.totals.cost, descending=True):
        cid = row.key.values[0]
        share = shares.get(cid)
        name = row.metadata.get("campaign_name") or cid
        inputs.append(RuleInput(
            source=f"campaigns:{cid}",
            label=name,
            totals=row.totals,
            metrics=derived_metrics(row.totals),
            account_metrics=account,
            lost_is_rank=share.share("search_lost_is_rank") if share else None,
            lost_is_budget=share.share("search_lost_is_budget") if share else None,
            pacing=pacing.get(cid),
        ))
    return inputs


def recommendation_table(findings: list[Recommendation]) -> Table:
    return Table(name="recommendations", columns=RECOMMENDATION_COLUMNS,
                 rows=[f.as_row() for f in findings])
