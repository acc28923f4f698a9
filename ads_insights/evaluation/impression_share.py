"""Impression-share evaluation.

Per-campaign share metrics and the account-level rollup.  Account totals
weight each campaign's share by its cost; campaigns without cost are left
out of both sides of the weighted average.
"""

from dataclasses import dataclass, field
from typing import Iterable

from ..processor.aggregation import aggregate, key_by
from ..processor.metrics import weighted_share
from ..processor.tables import TOTAL_LABEL
from ..schema.models import SHARE_FIELDS, MetricRecord, Table

IMPRESSION_SHARE_COLUMNS = ("campaign_id", "campaign_name", "cost", "impressions") + SHARE_FIELDS


@dataclass(frozen=True)
class CampaignShare:
    """Share metrics for one campaign (``None`` where not reported)."""
    campaign_id: str
    campaign_name: str
    cost: float
    impressions: int
    shares: dict[str, float | None] = field(default_factory=dict)

    def share(self, name: str) -> float | None:
        return self.shares.get(name)


def _combine(pairs: list[tuple[float | None, float]]) -> float | None:
    values = [(s, c) for s, c in pairs if s is not None]
    if not values:
        return None
    if any(c > 0 for _, c in values):
        return weighted_share(values)
    # No cost to weight by: plain mean of the reported rows
    return sum(s for s, _ in values) / len(values)


def campaign_shares(records: Iterable[MetricRecord]) -> list[CampaignShare]:
    """Collapse impression-share records to one entry per campaign.

    Ordered by cost descending, then campaign id.
    """
    records = list(records)
    by_campaign = aggregate(records, key_by("campaign_id"),
                            metadata_fields=("campaign_name",))

    pairs: dict[str, dict[str, list]] = {}
    for record in records:
        if not record.campaign_id:
            continue
        per_field = pairs.setdefault(record.campaign_id, {})
        for name in SHARE_FIELDS:
            per_field.setdefault(name, []).append((record.get(name), record.cost))

    result = []
    for row in by_campaign.sorted_rows(lambda r: r.totals.cost, descending=True):
        cid = row.key.values[0]
        result.append(CampaignShare(
            campaign_id=cid,
            campaign_name=row.metadata.get("campaign_name") or "",
            cost=row.totals.cost,
            impressions=row.totals.impressions,
            shares={name: _combine(pairs[cid].get(name, [])) for name in SHARE_FIELDS},
        ))
    return result


def account_shares(campaigns: Iterable[CampaignShare]) -> dict[str, float | None]:
    """Cost-weighted account-level value of every share metric.

    A metric no campaign with cost reports is ``None``.
    """
    campaigns = list(campaigns)
    result = {}
    for name in SHARE_FIELDS:
        pairs = [(c.share(name), c.cost) for c in campaigns
                 if c.share(name) is not None and c.cost > 0]
        result[name] = weighted_share(pairs) if pairs else None
    return result


def impression_share_table(campaigns: list[CampaignShare]) -> Table:
    """Render campaign shares with a cost-weighted account totals row."""
    rows = [
        (c.campaign_id, c.campaign_name, c.cost, c.impressions)
        + tuple("" if c.share(name) is None else c.share(name) for name in SHARE_FIELDS)
        for c in campaigns
    ]
    totals = None
    if rows:
        account = account_shares(campaigns)
        totals = (
            TOTAL_LABEL, "",
            sum(c.cost for c in campaigns),
            sum(c.impressions for c in campaigns),
        ) + tuple("" if account[name] is None else account[name] for name in SHARE_FIELDS)
    return Table(name="impression_share", columns=IMPRESSION_SHARE_COLUMNS,
                 rows=rows, totals=totals)
