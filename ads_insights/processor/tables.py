"""Output table builders.

Every table is a fixed header, zero or more data rows, and (where
applicable) one synthesized totals row.  Totals are arithmetic: additive
columns are summed and ratio columns are recomputed from the summed
numerator and denominator with ``safe_divide`` - never an average of the
row ratios.
"""

from typing import Any, Callable, Mapping, Sequence

from ..schema.models import MEASURE_FIELDS, Aggregate, AggregateRow, Table
from .metrics import RATIO_COLUMNS, metric_row, safe_divide


METRIC_COLUMNS = MEASURE_FIELDS + tuple(RATIO_COLUMNS)

TOTAL_LABEL = "Total"

# (header, cell getter) pairs describing the dimension columns of a table.
DimensionColumns = Sequence[tuple[str, Callable[[AggregateRow], Any]]]


def synthesize_totals(columns: Sequence[str], rows: Sequence[Sequence],
                      sum_columns: Sequence[str],
                      ratio_columns: Mapping[str, tuple[str, str]] | None = None,
                      label_column: str | None = None) -> tuple:
    """Build a totals row for *rows*.

    Columns in *sum_columns* are summed; columns in *ratio_columns* are
    recomputed as ``safe_divide(total[num], total[den])``; the
    *label_column* (default: the first column) reads "Total"; every other
    column is left blank.
    """
    ratio_columns = ratio_columns or {}
    label_column = label_column or columns[0]
    index = {name: i for i, name in enumerate(columns)}

    sums = {name: sum(row[index[name]] for row in rows) for name in sum_columns}

    out = []
    for name in columns:
        if name in sums:
            out.append(sums[name])
        elif name in ratio_columns:
            num, den = ratio_columns[name]
            out.append(safe_divide(sums[num], sums[den]))
        elif name == label_column:
            out.append(TOTAL_LABEL)
        else:
            out.append("")
    return tuple(out)


def build_metric_table(name: str, aggregate: Aggregate,
                       dimensions: DimensionColumns,
                       sort_key: Callable[[AggregateRow], Any] | None = None,
                       descending: bool = False,
                       limit: int | None = None,
                       include_totals: bool = True) -> Table:
    """Render an aggregate as dimension columns plus every metric column.

    Rows are sorted by *sort_key* (ties broken by aggregation key) and
    optionally truncated to *limit*.  The totals row covers the rows shown.
    """
    headers = tuple(h for h, _ in dimensions)
    columns = headers + METRIC_COLUMNS

    ordered = aggregate.sorted_rows(sort_key, descending=descending)
    if limit is not None:
        ordered = ordered[:limit]

    rows = []
    for agg_row in ordered:
        metrics = metric_row(agg_row.totals)
        dims = tuple(getter(agg_row) for _, getter in dimensions)
        rows.append(dims + tuple(metrics[c] for c in METRIC_COLUMNS))

    totals = None
    if include_totals and rows:
        totals = synthesize_totals(columns, rows, MEASURE_FIELDS, RATIO_COLUMNS,
                                   label_column=headers[0] if headers else None)
    return Table(name=name, columns=columns, rows=rows, totals=totals)


def key_column(field_name: str) -> Callable[[AggregateRow], Any]:
    """Cell getter reading one dimension of the aggregation key."""
    return lambda row: row.key.get(field_name)


def metadata_column(field_name: str, default: str = "") -> Callable[[AggregateRow], Any]:
    """Cell getter reading a merged metadata field."""
    def _get(row: AggregateRow):
        value = row.metadata.get(field_name)
        return default if value is None else value
    return _get
