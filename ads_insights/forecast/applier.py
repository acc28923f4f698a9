"""Lag-adjusted forecast for recent days.

For each day in the recent window, the number of days since that day
selects the first lag bucket (ascending) whose upper bound covers it; the
bucket's uplift factor scales the reported conversions and value up to an
estimate of their eventual total.  Days older than every bounded bucket
are marked "beyond known lag range" and left unadjusted.
"""

import logging
from datetime import date, timedelta
from typing import Iterable

from ..processor.aggregation import aggregate, key_by
from ..processor.tables import synthesize_totals
from ..schema.config import LagModelConfig
from ..schema.models import ForecastRow, LagFactorRow, LagModel, MetricRecord, Table

logger = logging.getLogger(__name__)

BEYOND_RANGE_LABEL = "beyond known lag range"

FORECAST_COLUMNS = (
    "date", "days_ago", "bucket", "cumulative_share", "uplift_factor",
    "reported_conversions", "adjusted_conversions",
    "reported_value", "adjusted_value",
)


class ForecastApplier:
    """Applies a :class:`LagModel` to recent per-day performance.

    Args:
        model: Lag factors learned from the historical window.
        config: Forecast window length and uplift ceiling.
    """

    def __init__(self, model: LagModel, config: LagModelConfig):
        self.model = model
        self.config = config

    def match(self, days_ago: int) -> LagFactorRow | None:
        """First bounded lag row whose upper bound covers *days_ago*."""
        for row in self.model.rows:
            if row.bucket.max_days is not None and row.bucket.max_days >= days_ago:
                return row
        return None

    def uplift_for(self, days_ago: int) -> float:
        """Clamped uplift factor for a day *days_ago* days old."""
        row = self.match(days_ago)
        if row is None:
            return 1.0
        return min(row.uplift_factor, self.config.uplift_ceiling)

    def apply_to_value(self, measure: float, days_ago: int) -> float:
        """Lag-adjust a single reported measure."""
        return measure * self.uplift_for(days_ago)

    def forecast_day(self, day: date, today: date,
                     conversions: float, value: float) -> ForecastRow:
        days_ago = (today - day).days
        row = self.match(days_ago)
        if row is None:
            return ForecastRow(
                date=day,
                days_ago=days_ago,
                bucket_label=BEYOND_RANGE_LABEL,
                cumulative_share=None,
                uplift_factor=1.0,
                reported_conversions=conversions,
                adjusted_conversions=conversions,
                reported_value=value,
                adjusted_value=value,
                beyond_known_range=True,
            )
        uplift = min(row.uplift_factor, self.config.uplift_ceiling)
        return ForecastRow(
            date=day,
            days_ago=days_ago,
            bucket_label=row.bucket.label,
            cumulative_share=row.cumulative_share,
            uplift_factor=uplift,
            reported_conversions=conversions,
            adjusted_conversions=conversions * uplift,
            reported_value=value,
            adjusted_value=value * uplift,
        )

    def apply(self, records: Iterable[MetricRecord], today: date) -> list[ForecastRow]:
        """Forecast every day of the recent window, oldest first.

        Records are summed per date; dates outside
        ``[today - forecast_days + 1, today]`` are ignored.
        """
        start = today - timedelta(days=self.config.forecast_days - 1)
        recent = [r for r in records if r.date is not None and start <= r.date <= today]
        by_date = aggregate(recent, key_by("date"))

        rows = [
            self.forecast_day(agg_row.key.values[0], today,
                              agg_row.totals.conversions,
                              agg_row.totals.conversion_value)
            for agg_row in by_date.sorted_rows()
        ]
        beyond = sum(1 for r in rows if r.beyond_known_range)
        if beyond:
            logger.info("%d forecast day(s) beyond the known lag range", beyond)
        return rows


def forecast_table(rows: list[ForecastRow]) -> Table:
    """Render forecast rows as an output table.

    The totals row sums reported and adjusted measures; its uplift is the
    overall ratio of adjusted to reported conversions.
    """
    out = [
        (
            r.date,
            r.days_ago,
            r.bucket_label,
            r.cumulative_share if r.cumulative_share is not None else "",
            r.uplift_factor,
            r.reported_conversions,
            r.adjusted_conversions,
            r.reported_value,
            r.adjusted_value,
        )
        for r in rows
    ]
    totals = None
    if out:
        totals = synthesize_totals(
            FORECAST_COLUMNS, out,
            ("reported_conversions", "adjusted_conversions",
             "reported_value", "adjusted_value"),
            {"uplift_factor": ("adjusted_conversions", "reported_conversions")},
        )
    return Table(name="forecast", columns=FORECAST_COLUMNS, rows=out, totals=totals)

