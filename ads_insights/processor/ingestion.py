"""Record ingestion and normalization.

Turns raw report rows (dicts, pandas rows, or exported CSV files) into
immutable :class:`MetricRecord` values.  Field values are coerced to the
kind documented for their report type in ``schema.report_fields``:

- Numeric fields default to ``0`` for null, empty, or non-numeric input
  (after stripping thousands separators).  Currency in micros is divided
  by 1,000,000.
- Share metrics become fractions in [0, 1], or ``None`` when absent.
- Dates accept ``date``/``datetime``/``Timestamp`` values, ISO strings,
  and the compact ``YYYYMMDD`` form.

A malformed value is data, not failure: none of the value parsers raise.
"""

import logging
import math
import numbers
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from ..schema.models import MetricRecord, ReportType
from ..schema.report_fields import coerce_report_type, fields_for

logger = logging.getLogger(__name__)

MICROS = 1_000_000

NUMERIC_KINDS = ("integer", "decimal", "micros")

# Export headers that differ from record field names after snake-casing.
COLUMN_ALIASES = {
    "cost_micros": "cost",
    "campaign": "campaign_name",
    "title": "product_title",
    "impr": "impressions",
    "search_impr_share": "search_impression_share",
    "search_top_is": "search_top_impression_share",
    "search_abs_top_is": "search_abs_top_impression_share",
    "conv": "conversions",
    "conv_value": "conversion_value",
    "conversions_value": "conversion_value",
    "all_conv_value": "conversion_value",
    "day": "date",
    "segments_date": "date",
    "budget": "daily_budget",
    "budget_amount_micros": "daily_budget",
    "conversion_lag_bucket": "lag_bucket",
    "offer_id": "product_id",
    "item_id": "product_id",
}


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def _is_missing(value) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False  # non-scalar


def _to_float(value) -> float:
    """Coerce to float, returning 0.0 for anything that is not a finite number."""
    if _is_missing(value):
        return 0.0
    if isinstance(value, numbers.Real):
        f = float(value)
    else:
        s = str(value).strip().replace(",", "")
        if not s:
            return 0.0
        try:
            f = float(s)
        except ValueError:
            return 0.0
    if math.isnan(f) or math.isinf(f):
        return 0.0
    return f


def parse_numeric(value, kind: str = "decimal"):
    """Parse a numeric value of the given kind.

    Examples:
        parse_numeric("63,571", "integer") -> 63571
        parse_numeric("12.5")              -> 12.5
        parse_numeric(2_500_000, "micros") -> 2.5
        parse_numeric(None)                -> 0.0
        parse_numeric("n/a", "integer")    -> 0

    Raises:
        ValueError: If *kind* is not one of ``NUMERIC_KINDS``.
    """
    if kind not in NUMERIC_KINDS:
        raise ValueError(
            f"Unknown numeric kind '{kind}'. Valid kinds: {', '.join(NUMERIC_KINDS)}"
        )
    number = _to_float(value)
    if kind == "integer":
        return int(number)
    if kind == "micros":
        return number / MICROS
    return number


def parse_share(value) -> float | None:
    """Parse a share metric into a fraction in [0, 1].

    Handles the formats reports use for share columns:
        0.452     -> 0.452
        "45.2%"   -> 0.452
        "< 10%"   -> 0.10  (censored values keep their bound)
        "> 90%"   -> 0.90
        "--"      -> None
    """
    if _is_missing(value):
        return None
    if isinstance(value, numbers.Real):
        f = float(value)
    else:
        s = str(value).strip().lstrip("<>").strip()
        is_pct = s.endswith("%")
        s = s.rstrip("%").strip().replace(",", "")
        try:
            f = float(s)
        except ValueError:
            return None
        if is_pct:
            f = f / 100
    if math.isnan(f):
        return None
    return min(max(f, 0.0), 1.0)


def parse_date(value) -> date | None:
    """Parse a calendar date, returning ``None`` when it cannot be read."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if re.fullmatch(r"\d{8}", s):
        try:
            return datetime.strptime(s, "%Y%m%d").date()
        except ValueError:
            return None
    parsed = pd.to_datetime(s, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def parse_text(value) -> str | None:
    """Parse a dimension value, returning ``None`` for empty input."""
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # Numeric IDs read from a column containing blanks arrive as floats.
        value = int(value)
    s = str(value).strip()
    return s or None


_PARSERS = {
    "text": parse_text,
    "date": parse_date,
    "share": parse_share,
    "integer": lambda v: parse_numeric(v, "integer"),
    "decimal": lambda v: parse_numeric(v, "decimal"),
    "micros": lambda v: parse_numeric(v, "micros"),
}


# ---------------------------------------------------------------------------
# Column cleaning
# ---------------------------------------------------------------------------

def normalize_column_name(name) -> str:
    """Snake-case a report header and resolve known aliases.

    "Conversion Value" -> "conversion_value"
    "Search Lost IS (rank)" -> "search_lost_is_rank"
    "Cost (micros)" -> "cost"
    """
    s = re.sub(r"[^0-9a-z]+", "_", str(name).strip().lower()).strip("_")
    if s.endswith("_micros") and s != "budget_amount_micros":
        s = s[: -len("_micros")]
    return COLUMN_ALIASES.get(s, s)


def clean_columns(df):
    """Strip whitespace from column names."""
    df.columns = [c.strip() if isinstance(c, str) else c for c in df.columns]
    return df


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------

def normalize_record(raw: Mapping[str, Any] | MetricRecord,
                     report_type: ReportType | str) -> MetricRecord:
    """Build a :class:`MetricRecord` from one raw row.

    Only fields documented for *report_type* are read; anything else on the
    row is ignored.  Already-normalized records pass through unchanged.
    """
    if isinstance(raw, MetricRecord):
        return raw
    field_kinds = fields_for(report_type)
    row = {normalize_column_name(k): v for k, v in dict(raw).items()}
    values = {}
    for name, kind in field_kinds.items():
        if name not in row:
            continue
        values[name] = _PARSERS[kind](row[name])
    return MetricRecord(**values)


def normalize_records(rows: Iterable[Mapping[str, Any] | MetricRecord],
                      report_type: ReportType | str) -> list[MetricRecord]:
    """Normalize every row of one report."""
    report_type = coerce_report_type(report_type)
    records = [normalize_record(r, report_type) for r in rows]
    logger.debug("Normalized %d %s record(s)", len(records), report_type.value)
    return records


# ---------------------------------------------------------------------------
# Encoding detection and CSV reading
# ---------------------------------------------------------------------------

def detect_encoding(path):
    """Detect whether a file is UTF-16 LE (with BOM) or UTF-8.

    Returns (encoding, delimiter) tuple.
    """
    with open(path, "rb") as f:
        raw = f.read(4)
    if raw[:2] == b"\xff\xfe":
        return "utf-16-le", "\t"
    return "utf-8", ","


def read_csv_auto(path):
    """Read a CSV file with automatic encoding and delimiter detection."""
    encoding, sep = detect_encoding(path)
    df = pd.read_csv(path, encoding=encoding, sep=sep, dtype=str,
                     keep_default_na=False)
    return clean_columns(df)


def records_from_frame(df: pd.DataFrame,
                       report_type: ReportType | str) -> list[MetricRecord]:
    """Normalize every row of an exported report DataFrame."""
    if df is None or df.empty:
        return []
    frame = df.rename(columns=normalize_column_name)
    return normalize_records(frame.to_dict(orient="records"), report_type)


def ingest(path, report_type: ReportType | str) -> list[MetricRecord]:
    """Ingest an exported report file.

    Args:
        path: Path to a CSV export (UTF-8 comma- or UTF-16 tab-delimited).
        report_type: A :class:`ReportType` or its string value.

    Returns:
        List of normalized records.

    Raises:
        ValueError: If report_type is not recognized.
    """
    report_type = coerce_report_type(report_type)
    df = read_csv_auto(Path(path))
    records = records_from_frame(df, report_type)
    logger.info("Ingested %d %s record(s) from %s",
                len(records), report_type.value, path)
    return records
