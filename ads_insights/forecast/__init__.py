"""Conversion-lag model and lag-adjusted forecast."""

from .applier import BEYOND_RANGE_LABEL, ForecastApplier, forecast_table
from .lag_model import (
    DEFAULT_LAG_BUCKETS,
    LagBucketModel,
    lag_factor_table,
    validate_buckets,
)
