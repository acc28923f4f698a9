"""Tests for the historical conversion-lag model."""

from datetime import date, timedelta

import pytest

from ads_insights.forecast.lag_model import (
    DEFAULT_LAG_BUCKETS,
    LAG_FACTOR_COLUMNS,
    LagBucketModel,
    lag_factor_table,
    validate_buckets,
)
from ads_insights.schema.config import LagModelConfig
from ads_insights.schema.models import LagBucket, MetricRecord


TODAY = date(2026, 6, 30)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def config():
    return LagModelConfig(lookback_days=30, stable_offset_days=10)


@pytest.fixture
def model(config):
    return LagBucketModel(config)


def _make_lag(bucket, conversions, day=date(2026, 6, 1), value=None):
    return MetricRecord(date=day, lag_bucket=bucket, conversions=conversions,
                        conversion_value=conversions * 10 if value is None else value)


# ---------------------------------------------------------------------------
# Bucket catalogue
# ---------------------------------------------------------------------------

class TestBuckets:
    def test_default_catalogue_is_ordered(self):
        validate_buckets(DEFAULT_LAG_BUCKETS)

    def test_first_buckets(self):
        assert DEFAULT_LAG_BUCKETS[0] == LagBucket("LESS_THAN_ONE_DAY", "<1d", 0)
        assert DEFAULT_LAG_BUCKETS[1].label == "1-2d"
        assert DEFAULT_LAG_BUCKETS[1].max_days == 1
        assert DEFAULT_LAG_BUCKETS[13].name == "THIRTEEN_TO_FOURTEEN_DAYS"
        assert DEFAULT_LAG_BUCKETS[13].max_days == 13

    def test_terminal_bucket_unbounded(self):
        assert not DEFAULT_LAG_BUCKETS[-1].is_bounded
        assert all(b.is_bounded for b in DEFAULT_LAG_BUCKETS[:-1])

    def test_out_of_order(self):
        with pytest.raises(ValueError, match="out of order"):
            validate_buckets([LagBucket("A", "a", 3), LagBucket("B", "b", 1)])

    def test_duplicate_max_days(self):
        with pytest.raises(ValueError):
            validate_buckets([LagBucket("A", "a", 1), LagBucket("B", "b", 1)])

    def test_unbounded_not_last(self):
        with pytest.raises(ValueError, match="must be last"):
            validate_buckets([LagBucket("U", "u", None), LagBucket("A", "a", 1)])

    def test_duplicate_names(self):
        with pytest.raises(ValueError, match="unique"):
            validate_buckets([LagBucket("A", "a", 1), LagBucket("A", "b", 2)])

    def test_resolve_by_name_or_label(self, model):
        assert model.resolve("ONE_TO_TWO_DAYS").max_days == 1
        assert model.resolve("one_to_two_days").max_days == 1
        assert model.resolve("<1d").name == "LESS_THAN_ONE_DAY"
        assert model.resolve(" 14-21D ").max_days == 20
        assert model.resolve("nonsense") is None
        assert model.resolve(None) is None


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------

class TestWindow:
    def test_window(self, model):
        assert model.window(TODAY) == (date(2026, 5, 22), date(2026, 6, 20))

    def test_default_window(self):
        start, end = LagBucketModel(LagModelConfig()).window(TODAY)
        assert end == TODAY - timedelta(days=30)
        assert (end - start).days == 89

    def test_records_outside_window_ignored(self, model):
        records = [
            _make_lag("LESS_THAN_ONE_DAY", 10),
            _make_lag("LESS_THAN_ONE_DAY", 500, day=date(2026, 6, 25)),
            _make_lag("LESS_THAN_ONE_DAY", 500, day=date(2026, 5, 21)),
        ]
        lag = model.build(records, TODAY)
        assert lag.total_conversions == 10
        assert lag.excluded_count == 0


# ---------------------------------------------------------------------------
# build
# ---------------------------------------------------------------------------

class TestBuild:
    def test_shares_and_uplift(self, model):
        records = [
            _make_lag("LESS_THAN_ONE_DAY", 40),
            _make_lag("ONE_TO_TWO_DAYS", 30),
            _make_lag("THREE_TO_FOUR_DAYS", 30),
        ]
        lag = model.build(records, TODAY)
        assert lag.has_data
        assert [r.bucket.label for r in lag.rows] == ["<1d", "1-2d", "3-4d"]
        assert [r.share for r in lag.rows] == pytest.approx([0.4, 0.3, 0.3])
        assert [r.cumulative_share for r in lag.rows] == pytest.approx([0.4, 0.7, 1.0])
        assert [r.uplift_factor for r in lag.rows] == pytest.approx([2.5, 1 / 0.7, 1.0])

    def test_unobserved_buckets_skipped(self, model):
        records = [_make_lag("LESS_THAN_ONE_DAY", 1), _make_lag("SIXTY_TO_NINETY_DAYS", 1)]
        lag = model.build(records, TODAY)
        assert [r.bucket.name for r in lag.rows] == [
            "LESS_THAN_ONE_DAY", "SIXTY_TO_NINETY_DAYS",
        ]
        assert lag.rows[1].cumulative_share == pytest.approx(1.0)

    def test_records_summed_per_bucket(self, model):
        records = [
            _make_lag("ONE_TO_TWO_DAYS", 2, day=date(2026, 6, 1)),
            _make_lag("1-2d", 3, day=date(2026, 6, 2)),
        ]
        lag = model.build(records, TODAY)
        assert len(lag.rows) == 1
        assert lag.rows[0].conversions == 5
        assert lag.rows[0].conversion_value == 50

    def test_excluded_records(self, model):
        records = [
            _make_lag("LESS_THAN_ONE_DAY", 4),
            _make_lag("NOT_A_BUCKET", 4),
            MetricRecord(lag_bucket="LESS_THAN_ONE_DAY", conversions=4),
        ]
        lag = model.build(records, TODAY)
        assert lag.excluded_count == 2
        assert lag.total_conversions == 4

    def test_empty(self, model):
        lag = model.build([], TODAY)
        assert not lag.has_data
        assert lag.rows == ()
        assert lag.total_conversions == 0

    def test_zero_conversions(self, model):
        lag = model.build([_make_lag("LESS_THAN_ONE_DAY", 0)], TODAY)
        assert not lag.has_data
        assert lag.rows[0].cumulative_share == 0
        assert lag.rows[0].uplift_factor == 1.0

    def test_monotonic(self, model):
        conversions = [7, 0, 3, 11, 2, 5, 1, 0, 4, 9, 1, 2, 3, 1, 6, 2, 1, 1, 1, 2]
        records = [
            _make_lag(bucket.name, n)
            for bucket, n in zip(DEFAULT_LAG_BUCKETS, conversions)
        ]
        lag = model.build(records, TODAY)
        cumulative = [r.cumulative_share for r in lag.rows]
        uplift = [r.uplift_factor for r in lag.rows]
        assert all(0 <= c <= 1 for c in cumulative)
        assert cumulative == sorted(cumulative)
        assert uplift == sorted(uplift, reverse=True)
        assert cumulative[-1] == pytest.approx(1.0)

    def test_custom_buckets(self, config):
        buckets = [LagBucket("FAST", "fast", 2), LagBucket("SLOW", "slow", None)]
        model = LagBucketModel(config, buckets)
        lag = model.build([_make_lag("fast", 1), _make_lag("SLOW", 3)], TODAY)
        assert [r.cumulative_share for r in lag.rows] == pytest.approx([0.25, 1.0])


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

class TestLagFactorTable:
    def test_table(self, model):
        lag = model.build([_make_lag("LESS_THAN_ONE_DAY", 1),
                           _make_lag("UNKNOWN", 3)], TODAY)
        table = lag_factor_table(lag)
        assert table.name == "lag_factors"
        assert table.columns == LAG_FACTOR_COLUMNS
        assert table.column("bucket") == ["<1d", "beyond known range"]
        assert table.column("max_days") == [0, ""]
        assert table.totals[0] == "Total"
        assert table.totals[LAG_FACTOR_COLUMNS.index("share")] == pytest.approx(1.0)

    def test_empty_table(self, model):
        table = lag_factor_table(model.build([], TODAY))
        assert table.rows == []
        assert table.totals is None
