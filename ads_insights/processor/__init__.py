"""Data processor module: normalization, aggregation, and derived metrics.

The orchestrating ``PerformanceTransformer`` lives in
``ads_insights.processor.transform``.
"""

from .aggregation import aggregate, key_by, prefer_non_empty
from .ingestion import (
    clean_columns,
    detect_encoding,
    ingest,
    normalize_column_name,
    normalize_record,
    normalize_records,
    parse_date,
    parse_numeric,
    parse_share,
    parse_text,
    read_csv_auto,
    records_from_frame,
)
from .metrics import (
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
from .tables import METRIC_COLUMNS, build_metric_table, synthesize_totals
