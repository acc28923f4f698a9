"""Core models - the contract between ingestion, aggregation, and evaluation.

Defines the typed records produced by the normalizer, the structured keys
and immutable aggregates produced by the aggregator, the lag-model and
forecast rows, pacing results, recommendations, and the output tables
handed to an external sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

import pandas as pd


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ReportType(Enum):
    """Kinds of input report the engine understands."""
    CAMPAIGN = "campaign"
    DAILY = "daily"
    PRODUCT = "product"
    ASSET = "asset"
    IMPRESSION_SHARE = "impression_share"
    LAG_LEARNING = "lag_learning"
    RECENT_PERFORMANCE = "recent_performance"


class PacingStatus(Enum):
    """Budget pacing classification."""
    OVER = "over"
    UNDER = "under"
    ON_TRACK = "on-track"
    NOT_APPLICABLE = "not-applicable"
    NO_BUDGET = "no-budget"          # Spending without a defined budget


class TableStatus(Enum):
    """Availability marker carried by every output table."""
    OK = "ok"
    NO_DATA = "no-data"              # Input present but empty
    UNAVAILABLE = "unavailable"      # Input missing or the build failed


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

MEASURE_FIELDS = ("cost", "impressions", "clicks", "conversions", "conversion_value")

SHARE_FIELDS = (
    "search_impression_share",
    "search_lost_is_rank",
    "search_lost_is_budget",
    "search_top_impression_share",
    "search_abs_top_impression_share",
)


@dataclass(frozen=True)
class MetricRecord:
    """One row of a performance report after normalization.

    Dimensions a report does not carry are ``None``.  Measures default to
    zero; share metrics stay ``None`` when the report does not supply them.
    """
    # Dimensions
    campaign_id: str | None = None
    campaign_name: str | None = None
    date: date | None = None
    device: str | None = None
    product_id: str | None = None
    product_title: str | None = None
    asset_id: str | None = None
    asset_type: str | None = None
    asset_text: str | None = None
    lag_bucket: str | None = None

    # Measures
    cost: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0
    conversion_value: float = 0.0

    # Budget and share metrics
    daily_budget: float | None = None
    search_impression_share: float | None = None
    search_lost_is_rank: float | None = None
    search_lost_is_budget: float | None = None
    search_top_impression_share: float | None = None
    search_abs_top_impression_share: float | None = None

    def get(self, name: str, default=None):
        """Read any field by name."""
        return getattr(self, name, default)

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

@dataclass(frozen=True, order=True)
class AggregationKey:
    """Ordered tuple of dimension values identifying one aggregate bucket.

    ``names`` documents which dimensions the values belong to and takes no
    part in equality or ordering.
    """
    values: tuple
    names: tuple[str, ...] = field(default=(), compare=False)

    def get(self, name: str, default=None):
        if name in self.names:
            return self.values[self.names.index(name)]
        return default

    def __str__(self) -> str:
        return " / ".join(str(v) for v in self.values)


@dataclass(frozen=True)
class MeasureTotals:
    """Summed measures of one aggregate bucket."""
    cost: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0
    conversion_value: float = 0.0
    record_count: int = 0

    def __add__(self, other: "MeasureTotals") -> "MeasureTotals":
        return MeasureTotals(
            cost=self.cost + other.cost,
            impressions=self.impressions + other.impressions,
            clicks=self.clicks + other.clicks,
            conversions=self.conversions + other.conversions,
            conversion_value=self.conversion_value + other.conversion_value,
            record_count=self.record_count + other.record_count,
        )

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in MEASURE_FIELDS}


@dataclass(frozen=True)
class AggregateRow:
    """One aggregate bucket: its key, summed measures, and merged metadata."""
    key: AggregationKey
    totals: MeasureTotals
    metadata: Mapping[str, Any] = field(default_factory=dict)


class Aggregate(Mapping):
    """Read-only mapping of :class:`AggregationKey` to :class:`AggregateRow`.

    Built once by the aggregator.  Iteration order is unspecified; sort
    explicitly (see :meth:`sorted_rows`) when presenting.
    """

    def __init__(self, rows: Mapping[AggregationKey, AggregateRow],
                 excluded_count: int = 0):
        self._rows = MappingProxyType(dict(rows))
        self.excluded_count = excluded_count

    def __getitem__(self, key: AggregationKey) -> AggregateRow:
        return self._rows[key]

    def __iter__(self) -> Iterator[AggregationKey]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"Aggregate({len(self)} rows, excluded={self.excluded_count})"

    @property
    def is_empty(self) -> bool:
        return len(self._rows) == 0

    def totals(self) -> MeasureTotals:
        """Grand totals across every bucket."""
        result = MeasureTotals()
        for row in self._rows.values():
            result = result + row.totals
        return result

    def sorted_rows(self, sort_key=None, descending: bool = False) -> list[AggregateRow]:
        """Rows sorted by *sort_key* with the aggregation key as tie-breaker.

        *sort_key* maps a row to a comparable value; ``None`` sorts by key.
        """
        if sort_key is None:
            return sorted(self._rows.values(), key=lambda r: r.key, reverse=descending)
        rows = sorted(self._rows.values(), key=lambda r: r.key)
        # reverse=True keeps sort stability, so ties stay in key order.
        return sorted(rows, key=sort_key, reverse=descending)


# ---------------------------------------------------------------------------
# Lag model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LagBucket:
    """A conversion-lag interval.

    ``max_days`` is the largest whole number of days-ago covered by the
    bucket; ``None`` marks the unbounded terminal bucket.
    """
    name: str
    label: str
    max_days: int | None

    @property
    def is_bounded(self) -> bool:
        return self.max_days is not None


@dataclass(frozen=True)
class LagFactorRow:
    """Historical share and uplift for one observed lag bucket."""
    bucket: LagBucket
    conversions: float
    conversion_value: float
    share: float
    cumulative_share: float
    uplift_factor: float


@dataclass(frozen=True)
class LagModel:
    """Lag-factor rows in ascending lag order plus window metadata."""
    rows: tuple[LagFactorRow, ...]
    total_conversions: float
    total_value: float
    window_start: date
    window_end: date
    excluded_count: int = 0

    @property
    def has_data(self) -> bool:
        return bool(self.rows) and self.total_conversions > 0


@dataclass(frozen=True)
class ForecastRow:
    """Lag-adjusted forecast for one recent day."""
    date: date
    days_ago: int
    bucket_label: str
    cumulative_share: float | None
    uplift_factor: float
    reported_conversions: float
    adjusted_conversions: float
    reported_value: float
    adjusted_value: float
    beyond_known_range: bool = False


# ---------------------------------------------------------------------------
# Evaluation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PacingResult:
    """Pacing classification and the ratio that produced it."""
    status: PacingStatus
    pace_ratio: float
    expected_cost: float
    actual_cost: float
    daily_budget: float
    days_elapsed: int


@dataclass(frozen=True)
class Recommendation:
    """A single finding emitted by the recommendation engine."""
    area: str
    observation: str
    detail: str
    source: str

    def as_row(self) -> tuple:
        return (self.area, self.observation, self.detail, self.source)


# ---------------------------------------------------------------------------
# Output tables
# ---------------------------------------------------------------------------

@dataclass
class Table:
    """A header row, data rows, and an optional synthesized totals row."""
    name: str
    columns: tuple[str, ...]
    rows: list[tuple] = field(default_factory=list)
    totals: tuple | None = None
    status: TableStatus = TableStatus.OK
    note: str = ""

    @property
    def is_available(self) -> bool:
        return self.status is not TableStatus.UNAVAILABLE

    def as_rows(self) -> list[tuple]:
        """Header, data rows, then totals (if any) as plain tuples."""
        out = [tuple(self.columns)]
        out.extend(self.rows)
        if self.totals is not None:
            out.append(self.totals)
        return out

    def column(self, name: str) -> list:
        """Values of one column across data rows (totals excluded)."""
        idx = self.columns.index(name)
        return [row[idx] for row in self.rows]

    def to_frame(self, include_totals: bool = True) -> pd.DataFrame:
        """Hand the table to a sink as a DataFrame."""
        data = list(self.rows)
        if include_totals and self.totals is not None:
            data.append(self.totals)
        return pd.DataFrame(data, columns=list(self.columns))

    @classmethod
    def unavailable(cls, name: str, columns, note: str) -> "Table":
        return cls(name=name, columns=tuple(columns),
                   status=TableStatus.UNAVAILABLE, note=note)

    @classmethod
    def no_data(cls, name: str, columns, note: str = "No data") -> "Table":
        return cls(name=name, columns=tuple(columns),
                   status=TableStatus.NO_DATA, note=note)
