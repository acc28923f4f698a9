"""Tests for derived metrics and output table builders."""

import pytest

from ads_insights.processor.aggregation import aggregate, key_by
from ads_insights.processor.metrics import (
    RATIO_COLUMNS,
    aov,
    cpa,
    cpc,
    ctr,
    cvr,
    derived_metrics,
    metric_row,
    roas,
    safe_divide,
    weighted_share,
)
from ads_insights.processor.tables import (
    METRIC_COLUMNS,
    build_metric_table,
    key_column,
    metadata_column,
    synthesize_totals,
)
from ads_insights.schema.models import MeasureTotals, MetricRecord, TableStatus


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def totals():
    return MeasureTotals(cost=50.0, impressions=1000, clicks=100,
                         conversions=5.0, conversion_value=250.0)


def _make_record(product_id, cost=0.0, impressions=0, clicks=0,
                 conversions=0.0, conversion_value=0.0, title=None):
    return MetricRecord(product_id=product_id, product_title=title, cost=cost,
                        impressions=impressions, clicks=clicks,
                        conversions=conversions, conversion_value=conversion_value)


# ---------------------------------------------------------------------------
# safe_divide
# ---------------------------------------------------------------------------

class TestSafeDivide:
    @pytest.mark.parametrize("numerator", [0, 5, -3, 12.5])
    def test_zero_denominator(self, numerator):
        assert safe_divide(numerator, 0) == 0

    def test_zero_numerator(self):
        assert safe_divide(0, 5) == 0

    def test_normal(self):
        assert safe_divide(10, 4) == 2.5

    def test_missing_denominator(self):
        assert safe_divide(10, None) == 0.0

    def test_nan_denominator(self):
        assert safe_divide(10, float("nan")) == 0.0

    def test_missing_numerator(self):
        assert safe_divide(None, 4) == 0.0


# ---------------------------------------------------------------------------
# Ratio KPIs
# ---------------------------------------------------------------------------

class TestRatios:
    def test_individual_ratios(self):
        assert ctr(100, 1000) == pytest.approx(0.1)
        assert cvr(5, 100) == pytest.approx(0.05)
        assert cpa(50, 5) == pytest.approx(10.0)
        assert roas(250, 50) == pytest.approx(5.0)
        assert aov(250, 5) == pytest.approx(50.0)
        assert cpc(50, 100) == pytest.approx(0.5)

    def test_ratios_are_fractions(self):
        assert ctr(1, 2) == 0.5

    def test_derived_metrics(self, totals):
        metrics = derived_metrics(totals)
        assert set(metrics) == set(RATIO_COLUMNS)
        assert metrics["roas"] == pytest.approx(5.0)
        assert metrics["cpa"] == pytest.approx(10.0)

    def test_derived_metrics_all_zero(self):
        metrics = derived_metrics(MeasureTotals())
        assert all(v == 0 for v in metrics.values())

    def test_metric_row(self, totals):
        row = metric_row(totals)
        assert row["cost"] == 50.0
        assert row["ctr"] == pytest.approx(0.1)
        assert "record_count" not in row


# ---------------------------------------------------------------------------
# weighted_share
# ---------------------------------------------------------------------------

class TestWeightedShare:
    def test_cost_weighted(self):
        assert weighted_share([(0.5, 100), (0.8, 300)]) == pytest.approx(0.725)

    def test_zero_cost_excluded(self):
        pairs = [(0.5, 100), (0.8, 300), (0.1, 0), (0.9, -5)]
        assert weighted_share(pairs) == pytest.approx(0.725)

    def test_missing_share_excluded(self):
        assert weighted_share([(None, 500), (0.4, 100)]) == pytest.approx(0.4)

    def test_nothing_eligible(self):
        assert weighted_share([(0.5, 0), (None, 10)]) == 0.0
        assert weighted_share([]) == 0.0


# ---------------------------------------------------------------------------
# synthesize_totals
# ---------------------------------------------------------------------------

class TestSynthesizeTotals:
    def test_sum_and_ratio(self):
        columns = ("name", "clicks", "impressions", "ctr")
        rows = [("A", 10, 100, 0.1), ("B", 0, 900, 0.0)]
        totals = synthesize_totals(columns, rows, ("clicks", "impressions"),
                                   {"ctr": ("clicks", "impressions")})
        assert totals[:3] == ("Total", 10, 1000)
        # 10/1000, not the average of 0.1 and 0.0
        assert totals[3] == pytest.approx(0.01)

    def test_other_columns_blank(self):
        columns = ("name", "note", "cost")
        totals = synthesize_totals(columns, [("A", "x", 1.0), ("B", "y", 2.0)],
                                   ("cost",))
        assert totals == ("Total", "", 3.0)

    def test_zero_denominator_ratio(self):
        columns = ("name", "clicks", "impressions", "ctr")
        totals = synthesize_totals(columns, [("A", 0, 0, 0.0)],
                                   ("clicks", "impressions"),
                                   {"ctr": ("clicks", "impressions")})
        assert totals[3] == 0


# ---------------------------------------------------------------------------
# build_metric_table
# ---------------------------------------------------------------------------

class TestBuildMetricTable:
    def _products(self):
        records = [
            _make_record("A", cost=5, impressions=100, clicks=10,
                         conversions=1, conversion_value=20, title="Shoe"),
            _make_record("B", cost=2, impressions=50),
            _make_record("C", cost=1, impressions=10, clicks=1,
                         conversions=3, conversion_value=9),
        ]
        return aggregate(records, key_by("product_id"),
                         metadata_fields=("product_title",))

    def test_columns(self):
        table = build_metric_table("products", self._products(),
                                   [("product_id", key_column("product_id"))])
        assert table.columns == ("product_id",) + METRIC_COLUMNS
        assert table.status is TableStatus.OK

    def test_sorted_and_limited(self):
        table = build_metric_table(
            "products", self._products(),
            [("product_id", key_column("product_id"))],
            sort_key=lambda r: r.totals.conversions, descending=True, limit=2,
        )
        assert table.column("product_id") == ["C", "A"]

    def test_totals_cover_shown_rows(self):
        table = build_metric_table(
            "products", self._products(),
            [("product_id", key_column("product_id"))],
            sort_key=lambda r: r.totals.conversions, descending=True, limit=2,
        )
        idx = table.columns.index
        assert table.totals[0] == "Total"
        assert table.totals[idx("impressions")] == 110
        assert table.totals[idx("conversions")] == 4
        assert table.totals[idx("ctr")] == pytest.approx(11 / 110)
        assert table.totals[idx("roas")] == pytest.approx(29 / 6)

    def test_metadata_column(self):
        table = build_metric_table(
            "products", self._products(),
            [("product_id", key_column("product_id")),
             ("product_title", metadata_column("product_title"))],
        )
        assert table.column("product_title") == ["Shoe", "", ""]

    def test_no_totals(self):
        table = build_metric_table("products", self._products(),
                                   [("product_id", key_column("product_id"))],
                                   include_totals=False)
        assert table.totals is None

    def test_empty_aggregate(self):
        table = build_metric_table("products", aggregate([], key_by("product_id")),
                                   [("product_id", key_column("product_id"))])
        assert table.rows == []
        assert table.totals is None

    def test_as_rows_and_frame(self):
        table = build_metric_table("products", self._products(),
                                   [("product_id", key_column("product_id"))])
        rows = table.as_rows()
        assert rows[0] == table.columns
        assert rows[-1][0] == "Total"
        assert len(rows) == 5
        df = table.to_frame()
        assert list(df.columns) == list(table.columns)
        assert len(df) == 4
        assert len(table.to_frame(include_totals=False)) == 3
