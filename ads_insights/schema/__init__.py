"""Schema package - typed models and configuration for the analytics core.

Provides the contract between ingestion, aggregation, forecasting, and
evaluation:

- models.py: Records, keys, aggregates, lag rows, results, output tables
- config.py: Immutable AnalysisConfig and its sections
- report_fields.py: Field set and parser kind per report type
- loader.py: YAML serialization/deserialization of the config
"""

from .config import (
    AnalysisConfig,
    LagModelConfig,
    PacingThresholds,
    RecommendationThresholds,
)
from .loader import load_config, save_config
from .models import (
    Aggregate,
    AggregateRow,
    AggregationKey,
    ForecastRow,
    LagBucket,
    LagFactorRow,
    LagModel,
    MeasureTotals,
    MetricRecord,
    PacingResult,
    PacingStatus,
    Recommendation,
    ReportType,
    Table,
    TableStatus,
)
from .report_fields import REPORT_FIELDS, coerce_report_type, fields_for

__all__ = [
    # Models
    "Aggregate",
    "AggregateRow",
    "AggregationKey",
    "ForecastRow",
    "LagBucket",
    "LagFactorRow",
    "LagModel",
    "MeasureTotals",
    "MetricRecord",
    "PacingResult",
    "PacingStatus",
    "Recommendation",
    "ReportType",
    "Table",
    "TableStatus",
    # Config
    "AnalysisConfig",
    "LagModelConfig",
    "PacingThresholds",
    "RecommendationThresholds",
    "load_config",
    "save_config",
    # Report fields
    "REPORT_FIELDS",
    "coerce_report_type",
    "fields_for",
]
