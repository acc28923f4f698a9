"""Historical conversion-lag model.

Learns, from a stable historical window, what share of a day's eventual
conversions has typically been reported within each lag bucket.  The
inverse of the cumulative share is the uplift factor the forecast applies
to recent, still-maturing days.

Algorithm:
    1. Sum conversions and value per lag bucket inside the window.
    2. Total = sum of all bucketed conversions.
    3. Walk buckets in ascending lag order, skipping buckets with no
       observed records, accumulating ``cumulative += bucket / total``.
    4. ``uplift = 1 / cumulative`` (``1`` when cumulative is 0).

The learning window ends ``stable_offset_days`` before today so that days
still accumulating conversions do not bias the shares.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Sequence

from ..processor.aggregation import aggregate
from ..processor.metrics import safe_divide
from ..processor.tables import synthesize_totals
from ..schema.config import LagModelConfig
from ..schema.models import (
    AggregationKey,
    LagBucket,
    LagFactorRow,
    LagModel,
    MetricRecord,
    Table,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Bucket catalogue
# ---------------------------------------------------------------------------

_DAILY_NAMES = [
    "LESS_THAN_ONE_DAY", "ONE_TO_TWO_DAYS", "TWO_TO_THREE_DAYS",
    "THREE_TO_FOUR_DAYS", "FOUR_TO_FIVE_DAYS", "FIVE_TO_SIX_DAYS",
    "SIX_TO_SEVEN_DAYS", "SEVEN_TO_EIGHT_DAYS", "EIGHT_TO_NINE_DAYS",
    "NINE_TO_TEN_DAYS", "TEN_TO_ELEVEN_DAYS", "ELEVEN_TO_TWELVE_DAYS",
    "TWELVE_TO_THIRTEEN_DAYS", "THIRTEEN_TO_FOURTEEN_DAYS",
]

DEFAULT_LAG_BUCKETS: tuple[LagBucket, ...] = (
    LagBucket("LESS_THAN_ONE_DAY", "<1d", 0),
    *(
        LagBucket(name, f"{days}-{days + 1}d", days)
        for days, name in enumerate(_DAILY_NAMES[1:], start=1)
    ),
    LagBucket("FOURTEEN_TO_TWENTY_ONE_DAYS", "14-21d", 20),
    LagBucket("TWENTY_ONE_TO_THIRTY_DAYS", "21-30d", 29),
    LagBucket("THIRTY_TO_FORTY_FIVE_DAYS", "30-45d", 44),
    LagBucket("FORTY_FIVE_TO_SIXTY_DAYS", "45-60d", 59),
    LagBucket("SIXTY_TO_NINETY_DAYS", "60-90d", 89),
    LagBucket("UNKNOWN", "beyond known range", None),
)

LAG_FACTOR_COLUMNS = (
    "bucket", "max_days", "conversions", "conversion_value",
    "share", "cumulative_share", "uplift_factor",
)


def validate_buckets(buckets: Sequence[LagBucket]) -> None:
    """Check buckets are strictly ordered by max_days, unbounded last.

    Raises:
        ValueError: If the order is violated or a name repeats.
    """
    names = [b.name for b in buckets]
    if len(set(names)) != len(names):
        raise ValueError("Lag bucket names must be unique")
    previous = None
    for i, bucket in enumerate(buckets):
        if bucket.max_days is None:
            if i != len(buckets) - 1:
                raise ValueError(f"Unbounded bucket '{bucket.name}' must be last")
            continue
        if previous is not None and bucket.max_days <= previous:
            raise ValueError(
                f"Lag bucket '{bucket.name}' is out of order "
                f"({bucket.max_days} after {previous})"
            )
        previous = bucket.max_days


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class LagBucketModel:
    """Builds a :class:`LagModel` from lag-learning records.

    Args:
        config: Lookback and stable-offset windows.
        buckets: Bucket catalogue in ascending lag order.
    """

    def __init__(self, config: LagModelConfig,
                 buckets: Sequence[LagBucket] = DEFAULT_LAG_BUCKETS):
        validate_buckets(buckets)
        self.config = config
        self.buckets = tuple(buckets)
        self._lookup = {}
        for bucket in self.buckets:
            self._lookup[bucket.name.upper()] = bucket
            self._lookup[bucket.label.upper()] = bucket

    def resolve(self, value) -> LagBucket | None:
        """Find a bucket by name or label, case-insensitively."""
        if value is None:
            return None
        return self._lookup.get(str(value).strip().upper())

    def window(self, today: date) -> tuple[date, date]:
        """Inclusive (start, end) of the learning window."""
        end = today - timedelta(days=self.config.stable_offset_days)
        start = end - timedelta(days=self.config.lookback_days - 1)
        return start, end

    def _bucket_key(self, record: MetricRecord) -> AggregationKey | None:
        bucket = self.resolve(record.lag_bucket)
        if bucket is None:
            return None
        return AggregationKey(values=(bucket.name,), names=("lag_bucket",))

    def build(self, records: Iterable[MetricRecord], today: date) -> LagModel:
        """Learn lag shares from records inside the window ending before *today*."""
        start, end = self.window(today)

        undated = 0
        in_window = []
        for record in records:
            if record.date is None:
                undated += 1
            elif start <= record.date <= end:
                in_window.append(record)

        by_bucket = aggregate(in_window, self._bucket_key)
        excluded = undated + by_bucket.excluded_count
        if excluded:
            logger.warning("Lag model excluded %d record(s) without a date or known bucket",
                           excluded)

        grand = by_bucket.totals()
        total = grand.conversions

        rows = []
        cumulative = 0.0
        for bucket in self.buckets:
            key = AggregationKey(values=(bucket.name,), names=("lag_bucket",))
            if key not in by_bucket:
                continue  # unobserved buckets do not interrupt the walk
            totals = by_bucket[key].totals
            share = safe_divide(totals.conversions, total)
            cumulative = min(cumulative + share, 1.0)
            uplift = 1 / cumulative if cumulative > 0 else 1.0
            rows.append(LagFactorRow(
                bucket=bucket,
                conversions=totals.conversions,
                conversion_value=totals.conversion_value,
                share=share,
                cumulative_share=cumulative,
                uplift_factor=uplift,
            ))

        logger.debug("Lag model: %d bucket(s), %.2f conversion(s) in %s..%s",
                     len(rows), total, start, end)
        return LagModel(
            rows=tuple(rows),
            total_conversions=total,
            total_value=grand.conversion_value,
            window_start=start,
            window_end=end,
            excluded_count=excluded,
        )


def lag_factor_table(model: LagModel) -> Table:
    """Render the lag model as an output table."""
    rows = [
        (
            r.bucket.label,
            r.bucket.max_days if r.bucket.max_days is not None else "",
            r.conversions,
            r.conversion_value,
            r.share,
            r.cumulative_share,
            r.uplift_factor,
        )
        for r in model.rows
    ]
    totals = None
    if rows:
        totals = synthesize_totals(LAG_FACTOR_COLUMNS, rows,
                                   ("conversions", "conversion_value", "share"))
    return Table(name="lag_factors", columns=LAG_FACTOR_COLUMNS,
                 rows=rows, totals=totals)
