"""Performance transformation - from report records to output tables.

Takes the records of each input report (from the ingestion module or any
upstream data source) and produces every analytics table: aggregates with
derived KPIs, impression share, the lag model and forecast, pacing, and
recommendations.

The ``PerformanceTransformer`` class accepts a ``ReportContext`` (today and
the reporting date range) and an ``AnalysisConfig``, then builds each table
independently:

    campaigns        - campaign report, by campaign, cost descending
    daily            - daily report in range, by date ascending
    devices          - daily report in range, by device, cost descending
    products         - product report, by product, conversions descending
    assets           - asset report, by asset, cost descending
    impression_share - impression-share report, cost-weighted account total
    lag_factors      - lag-learning report, stable historical window
    forecast         - recent-performance report adjusted by lag factors
    pacing           - daily cost month-to-date vs campaign daily budgets
    recommendations  - rule findings over campaigns, shares, and pacing

A report that is missing (or ``None``) marks its tables "unavailable"; an
empty report marks them "no-data".  A failure inside one table never
blocks the others.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from ..evaluation.impression_share import (
    IMPRESSION_SHARE_COLUMNS,
    campaign_shares,
    impression_share_table,
)
from ..evaluation.pacing import PACING_COLUMNS, PacingEvaluator, pacing_table
from ..evaluation.recommendations import (
    RECOMMENDATION_COLUMNS,
    RecommendationEngine,
    campaign_rule_inputs,
    recommendation_table,
)
from ..forecast.applier import FORECAST_COLUMNS, ForecastApplier, forecast_table
from ..forecast.lag_model import LAG_FACTOR_COLUMNS, LagBucketModel, lag_factor_table
from ..schema.config import AnalysisConfig
from ..schema.models import (
    Aggregate,
    LagModel,
    MetricRecord,
    Recommendation,
    ReportType,
    Table,
    TableStatus,
)
from ..schema.report_fields import coerce_report_type
from .aggregation import aggregate, key_by
from .ingestion import normalize_records, records_from_frame
from .tables import METRIC_COLUMNS, build_metric_table, key_column, metadata_column

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Report context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReportContext:
    """Dates for the run: "today" and the inclusive reporting range."""
    today: date
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date {self.start_date} is after end_date {self.end_date}"
            )

    @property
    def pacing_period_start(self) -> date:
        """First day of the month containing end_date."""
        return self.end_date.replace(day=1)

    @property
    def days_elapsed(self) -> int:
        """Days of the pacing period up to and including end_date."""
        return (self.end_date - self.pacing_period_start).days + 1

    def in_range(self, day: date | None) -> bool:
        return day is not None and self.start_date <= day <= self.end_date


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass
class TransformResult:
    """Output of :meth:`PerformanceTransformer.transform`."""
    tables: dict[str, Table]
    recommendations: list[Recommendation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    has_data: bool = True

    def table(self, name: str) -> Table:
        return self.tables[name]

    @property
    def unavailable(self) -> list[str]:
        return [n for n, t in self.tables.items() if t.status is TableStatus.UNAVAILABLE]


SourceData = Iterable[Mapping[str, Any] | MetricRecord] | pd.DataFrame | None


# ---------------------------------------------------------------------------
# PerformanceTransformer
# ---------------------------------------------------------------------------

class PerformanceTransformer:
    """Transforms report records into analytics tables.

    Args:
        context: ReportContext with today and the reporting range.
        config: AnalysisConfig; defaults apply when omitted.

    Usage::

        ctx = ReportContext(today=date(2026, 3, 15),
                            start_date=date(2026, 3, 1),
                            end_date=date(2026, 3, 14))
        transformer = PerformanceTransformer(ctx, load_config("config.yaml"))
        result = transformer.transform({
            "campaign": ingest("campaigns.csv", "campaign"),
            "daily": ingest("daily.csv", "daily"),
            "lag_learning": ingest("lag.csv", "lag_learning"),
            "recent_performance": ingest("recent.csv", "recent_performance"),
        })
        result.table("campaigns").to_frame()
    """

    def __init__(self, context: ReportContext, config: AnalysisConfig | None = None):
        self.ctx = context
        self.config = config or AnalysisConfig()
        self._records: dict[ReportType, list[MetricRecord] | None] = {}
        self._warnings: list[str] = []
        self._campaigns: Aggregate | None = None
        self._shares: dict = {}
        self._pacing: dict = {}
        self._lag_model: LagModel | None = None
        self._findings: list[Recommendation] = []

    def transform(self, sources: Mapping[ReportType | str, SourceData]) -> TransformResult:
        """Build every table from the given sources.

        Args:
            sources: Mapping of report type to its rows (dicts, records, or a
                DataFrame).  A missing key or ``None`` value means the report
                could not be fetched.

        Raises:
            ValueError: If a source key is not a known report type.
        """
        self._reset()
        self._records = self._normalize_sources(sources)

        builders: list[tuple[str, tuple[str, ...], Callable[[], Table]]] = [
            ("campaigns", ("campaign_id", "campaign_name") + METRIC_COLUMNS,
             self._build_campaigns),
            ("daily", ("date",) + METRIC_COLUMNS, self._build_daily),
            ("devices", ("device",) + METRIC_COLUMNS, self._build_devices),
            ("products", ("product_id", "product_title") + METRIC_COLUMNS,
             self._build_products),
            ("assets", ("asset_id", "asset_type", "asset_text") + METRIC_COLUMNS,
             self._build_assets),
            ("impression_share", IMPRESSION_SHARE_COLUMNS, self._build_impression_share),
            ("lag_factors", LAG_FACTOR_COLUMNS, self._build_lag_factors),
            ("forecast", FORECAST_COLUMNS, self._build_forecast),
            ("pacing", PACING_COLUMNS, self._build_pacing),
            ("recommendations", RECOMMENDATION_COLUMNS, self._build_recommendations),
        ]

        tables = {
            name: self._build_isolated(name, columns, builder)
            for name, columns, builder in builders
        }

        has_data = any(self._records.get(rt) for rt in ReportType)
        if not has_data:
            self._warn("No usable input records; dependent computations skipped")

        return TransformResult(
            tables=tables,
            recommendations=list(self._findings),
            warnings=list(self._warnings),
            has_data=has_data,
        )

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _reset(self):
        self._warnings = []
        self._campaigns = None
        self._shares = {}
        self._pacing = {}
        self._lag_model = None
        self._findings = []

    def _warn(self, msg: str):
        logger.warning(msg)
        self._warnings.append(msg)

    def _normalize_sources(self, sources) -> dict[ReportType, list[MetricRecord] | None]:
        result: dict[ReportType, list[MetricRecord] | None] = {rt: None for rt in ReportType}
        for key, data in (sources or {}).items():
            report_type = coerce_report_type(key)
            if data is None:
                continue
            try:
                if isinstance(data, pd.DataFrame):
                    result[report_type] = records_from_frame(data, report_type)
                else:
                    result[report_type] = normalize_records(data, report_type)
            except Exception as exc:
                # The report is treated as unavailable; other reports still load.
                logger.exception("Failed to read %s report", report_type.value)
                self._warn(f"{report_type.value}: report could not be read ({exc})")
        return result

    def _build_isolated(self, name: str, columns: tuple[str, ...],
                        builder: Callable[[], Table]) -> Table:
        try:
            table = builder()
        except Exception as exc:
            # A failing table is reported as unavailable; its siblings still build.
            logger.exception("Failed to build %s table", name)
            self._warn(f"{name}: build failed ({exc})")
            return Table.unavailable(name, columns, f"build failed: {exc}")
        if table.status is TableStatus.OK and not table.rows:
            table.status = TableStatus.NO_DATA
            table.note = table.note or "No data"
        return table

    def _missing(self, name: str, columns, *report_types: ReportType) -> Table | None:
        """Marker table when a required report is unavailable or empty."""
        for report_type in report_types:
            records = self._records.get(report_type)
            if records is None:
                self._warn(f"{name}: {report_type.value} report unavailable")
                return Table.unavailable(name, columns,
                                         f"{report_type.value} report unavailable")
        for report_type in report_types:
            if not self._records[report_type]:
                return Table.no_data(name, columns,
                                     f"{report_type.value} report is empty")
        return None

    def _in_range(self, records: list[MetricRecord]) -> list[MetricRecord]:
        return [r for r in records if self.ctx.in_range(r.date)]

    # -------------------------------------------------------------------
    # Aggregate tables
    # -------------------------------------------------------------------

    def _build_campaigns(self) -> Table:
        columns = ("campaign_id", "campaign_name") + METRIC_COLUMNS
        marker = self._missing("campaigns", columns, ReportType.CAMPAIGN)
        if marker is not None:
            return marker
        self._campaigns = aggregate(self._records[ReportType.CAMPAIGN],
                                    key_by("campaign_id"),
                                    metadata_fields=("campaign_name",))
        return build_metric_table(
            "campaigns", self._campaigns,
            [("campaign_id", key_column("campaign_id")),
             ("campaign_name", metadata_column("campaign_name"))],
            sort_key=lambda r: r.totals.cost, descending=True,
        )

    def _build_daily(self) -> Table:
        columns = ("date",) + METRIC_COLUMNS
        marker = self._missing("daily", columns, ReportType.DAILY)
        if marker is not None:
            return marker
        by_date = aggregate(self._in_range(self._records[ReportType.DAILY]), key_by("date"))
        return build_metric_table("daily", by_date, [("date", key_column("date"))])

    def _build_devices(self) -> Table:
        columns = ("device",) + METRIC_COLUMNS
        marker = self._missing("devices", columns, ReportType.DAILY)
        if marker is not None:
            return marker
        by_device = aggregate(self._in_range(self._records[ReportType.DAILY]),
                              key_by("device"))
        return build_metric_table(
            "devices", by_device, [("device", key_column("device"))],
            sort_key=lambda r: r.totals.cost, descending=True,
        )

    def _build_products(self) -> Table:
        columns = ("product_id", "product_title") + METRIC_COLUMNS
        marker = self._missing("products", columns, ReportType.PRODUCT)
        if marker is not None:
            return marker
        by_product = aggregate(self._records[ReportType.PRODUCT], key_by("product_id"),
                               metadata_fields=("product_title",))
        return build_metric_table(
            "products", by_product,
            [("product_id", key_column("product_id")),
             ("product_title", metadata_column("product_title"))],
            sort_key=lambda r: r.totals.conversions, descending=True,
            limit=self.config.product_limit,
        )

    def _build_assets(self) -> Table:
        columns = ("asset_id", "asset_type", "asset_text") + METRIC_COLUMNS
        marker = self._missing("assets", columns, ReportType.ASSET)
        if marker is not None:
            return marker
        by_asset = aggregate(self._records[ReportType.ASSET], key_by("asset_id"),
                             metadata_fields=("asset_type", "asset_text"))
        return build_metric_table(
            "assets", by_asset,
            [("asset_id", key_column("asset_id")),
             ("asset_type", metadata_column("asset_type")),
             ("asset_text", metadata_column("asset_text"))],
            sort_key=lambda r: r.totals.cost, descending=True,
        )

    # -------------------------------------------------------------------
    # Impression share
    # -------------------------------------------------------------------

    def _build_impression_share(self) -> Table:
        marker = self._missing("impression_share", IMPRESSION_SHARE_COLUMNS,
                               ReportType.IMPRESSION_SHARE)
        if marker is not None:
            return marker
        shares = campaign_shares(self._records[ReportType.IMPRESSION_SHARE])
        self._shares = {s.campaign_id: s for s in shares}
        return impression_share_table(shares)

    # -------------------------------------------------------------------
    # Lag model and forecast
    # -------------------------------------------------------------------

    def _build_lag_factors(self) -> Table:
        marker = self._missing("lag_factors", LAG_FACTOR_COLUMNS, ReportType.LAG_LEARNING)
        if marker is not None:
            return marker
        model = LagBucketModel(self.config.lag).build(
            self._records[ReportType.LAG_LEARNING], self.ctx.today
        )
        if not model.has_data:
            return Table.no_data("lag_factors", LAG_FACTOR_COLUMNS,
                                 f"No conversions in {model.window_start}..{model.window_end}")
        self._lag_model = model
        return lag_factor_table(model)

    def _build_forecast(self) -> Table:
        if self._lag_model is None:
            self._warn("forecast: lag model unavailable, forecast skipped")
            return Table.unavailable("forecast", FORECAST_COLUMNS,
                                     "lag model unavailable")
        marker = self._missing("forecast", FORECAST_COLUMNS, ReportType.RECENT_PERFORMANCE)
        if marker is not None:
            return marker
        applier = ForecastApplier(self._lag_model, self.config.lag)
        rows = applier.apply(self._records[ReportType.RECENT_PERFORMANCE], self.ctx.today)
        return forecast_table(rows)

    # -------------------------------------------------------------------
    # Pacing
    # -------------------------------------------------------------------

    def _build_pacing(self) -> Table:
        marker = self._missing("pacing", PACING_COLUMNS,
                               ReportType.CAMPAIGN, ReportType.DAILY)
        if marker is not None:
            return marker

        campaign_meta = aggregate(self._records[ReportType.CAMPAIGN], key_by("campaign_id"),
                                  metadata_fields=("campaign_name", "daily_budget"))
        period = [
            r for r in self._records[ReportType.DAILY]
            if r.date is not None and self.ctx.pacing_period_start <= r.date <= self.ctx.end_date
        ]
        period_cost = aggregate(period, key_by("campaign_id"),
                                metadata_fields=("campaign_name",))

        budgets = {k.values[0]: row.metadata.get("daily_budget")
                   for k, row in campaign_meta.items()}
        costs = {k.values[0]: row.totals.cost for k, row in period_cost.items()}
        names = {k.values[0]: row.metadata.get("campaign_name") or ""
                 for k, row in period_cost.items()}
        names.update({k.values[0]: row.metadata.get("campaign_name")
                      for k, row in campaign_meta.items()
                      if row.metadata.get("campaign_name")})

        evaluator = PacingEvaluator(self.config.pacing)
        self._pacing = evaluator.evaluate_campaigns(budgets, costs, self.ctx.days_elapsed)
        return pacing_table(self._pacing, names)

    # -------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------

    def _build_recommendations(self) -> Table:
        marker = self._missing("recommendations", RECOMMENDATION_COLUMNS,
                               ReportType.CAMPAIGN)
        if marker is not None:
            return marker
        if self._campaigns is None:
            return Table.unavailable("recommendations", RECOMMENDATION_COLUMNS,
                                     "campaign aggregates unavailable")
        inputs = campaign_rule_inputs(self._campaigns, self._shares, self._pacing)
        engine = RecommendationEngine(self.config.recommendations)
        self._findings = engine.evaluate(inputs)
        return recommendation_table(self._findings)
