"""Tests for impression-share evaluation."""

import pytest

from ads_insights.evaluation.impression_share import (
    IMPRESSION_SHARE_COLUMNS,
    account_shares,
    campaign_shares,
    impression_share_table,
)
from ads_insights.schema.models import MetricRecord


def _make_share(campaign_id, cost, share=None, lost_rank=None, lost_budget=None,
                name=None, impressions=100):
    return MetricRecord(
        campaign_id=campaign_id, campaign_name=name, cost=cost,
        impressions=impressions, search_impression_share=share,
        search_lost_is_rank=lost_rank, search_lost_is_budget=lost_budget,
    )


@pytest.fixture
def records():
    return [
        _make_share("1", 100.0, share=0.5, lost_rank=0.3, name="Brand"),
        _make_share("2", 300.0, share=0.8, lost_rank=0.1, name="Generic"),
        _make_share("3", 0.0, share=0.1, lost_rank=0.9, name="Paused"),
    ]


class TestCampaignShares:
    def test_ordered_by_cost(self, records):
        shares = campaign_shares(records)
        assert [c.campaign_id for c in shares] == ["2", "1", "3"]
        assert shares[0].campaign_name == "Generic"

    def test_per_campaign_values(self, records):
        shares = {c.campaign_id: c for c in campaign_shares(records)}
        assert shares["1"].share("search_impression_share") == 0.5
        assert shares["1"].share("search_lost_is_budget") is None

    def test_multiple_rows_per_campaign_weighted(self):
        shares = campaign_shares([
            _make_share("1", 100.0, share=0.2),
            _make_share("1", 300.0, share=0.6),
        ])
        assert len(shares) == 1
        assert shares[0].cost == 400.0
        assert shares[0].impressions == 200
        assert shares[0].share("search_impression_share") == pytest.approx(0.5)

    def test_zero_cost_rows_use_plain_mean(self):
        single = campaign_shares([_make_share("1", 0.0, lost_rank=0.5)])
        double = campaign_shares([
            _make_share("1", 0.0, lost_rank=0.5),
            _make_share("1", 0.0, lost_rank=0.5),
        ])
        assert single[0].share("search_lost_is_rank") == 0.5
        assert double[0].share("search_lost_is_rank") == pytest.approx(0.5)

    def test_zero_cost_row_ignored_when_others_have_cost(self):
        shares = campaign_shares([
            _make_share("1", 0.0, lost_rank=0.9),
            _make_share("1", 100.0, lost_rank=0.2),
        ])
        assert shares[0].share("search_lost_is_rank") == pytest.approx(0.2)

    def test_records_without_campaign_skipped(self):
        shares = campaign_shares([_make_share(None, 10.0, share=0.4),
                                  _make_share("1", 10.0, share=0.2)])
        assert [c.campaign_id for c in shares] == ["1"]


class TestAccountShares:
    def test_cost_weighted_excluding_zero_cost(self, records):
        account = account_shares(campaign_shares(records))
        assert account["search_impression_share"] == pytest.approx(0.725)
        assert account["search_lost_is_rank"] == pytest.approx((30 + 30) / 400)

    def test_missing_metric(self, records):
        assert account_shares(campaign_shares(records))["search_lost_is_budget"] is None

    def test_no_campaign_with_cost(self):
        account = account_shares(campaign_shares([
            _make_share("1", 0.0, share=0.4, lost_rank=0.5),
            _make_share("2", 0.0, share=0.6, lost_rank=0.3),
        ]))
        assert account["search_impression_share"] is None
        assert account["search_lost_is_rank"] is None


class TestImpressionShareTable:
    def test_table(self, records):
        table = impression_share_table(campaign_shares(records))
        idx = IMPRESSION_SHARE_COLUMNS.index
        assert table.name == "impression_share"
        assert table.column("search_lost_is_budget") == ["", "", ""]
        assert table.totals[0] == "Total"
        assert table.totals[idx("cost")] == 400.0
        assert table.totals[idx("impressions")] == 300
        assert table.totals[idx("search_impression_share")] == pytest.approx(0.725)

    def test_totals_blank_without_cost(self):
        table = impression_share_table(campaign_shares([
            _make_share("1", 0.0, share=0.4),
            _make_share("2", 0.0, share=0.6),
        ]))
        idx = IMPRESSION_SHARE_COLUMNS.index
        assert table.column("search_impression_share") == [0.4, 0.6]
        assert table.totals[idx("search_impression_share")] == ""
        assert table.totals[idx("cost")] == 0.0

    def test_empty(self):
        table = impression_share_table([])
        assert table.rows == []
        assert table.totals is None
