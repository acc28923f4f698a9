"""Grouping of records into immutable aggregates.

Usage::

    from ads_insights.processor.aggregation import aggregate, key_by

    by_product = aggregate(records, key_by("product_id"),
                           metadata_fields=("product_title",))
    for row in by_product.sorted_rows(lambda r: r.totals.conversions,
                                      descending=True):
        ...

Records are loaded into a DataFrame and summed with a pandas ``groupby``
over the aggregation key, then frozen into an :class:`Aggregate`.

Metadata merge rule
-------------------
Descriptive fields (a display name, an asset text) are not measures and
are merged with :func:`prefer_non_empty`: the first non-empty value seen is
retained, and any later record that supplies a non-empty value overwrites
it.  An empty value never clears a retained one.
"""

import logging
import math
from functools import reduce
from typing import Any, Callable, Iterable

import pandas as pd

from ..schema.models import (
    MEASURE_FIELDS,
    Aggregate,
    AggregateRow,
    AggregationKey,
    MeasureTotals,
    MetricRecord,
)

logger = logging.getLogger(__name__)

KeyFn = Callable[[MetricRecord], AggregationKey | None]

_KEY = "_key"
_COUNT = "_record_count"


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float):
        return math.isnan(value)
    return isinstance(value, str) and not value.strip()


def key_by(*field_names: str) -> KeyFn:
    """Build a key function over the named record dimensions.

    The key function returns ``None`` when any requested dimension is
    missing, which excludes the record from the aggregation.
    """
    if not field_names:
        raise ValueError("key_by() needs at least one field name")
    names = tuple(field_names)

    def _key(record: MetricRecord) -> AggregationKey | None:
        values = tuple(record.get(name) for name in names)
        if any(_is_empty(v) for v in values):
            return None
        return AggregationKey(values=values, names=names)

    return _key


def prefer_non_empty(current: Any, incoming: Any) -> Any:
    """Metadata merge rule: a non-empty incoming value wins."""
    if _is_empty(incoming):
        return current
    return incoming


def _merge_metadata(values: pd.Series) -> Any:
    return reduce(prefer_non_empty, values, None)


def _scalar(value) -> Any:
    return None if _is_empty(value) else value


def aggregate(records: Iterable[MetricRecord], key_fn: KeyFn,
              metadata_fields: Iterable[str] = ()) -> Aggregate:
    """Group *records* by ``key_fn`` and sum their measures.

    Records for which ``key_fn`` returns ``None`` are excluded and counted
    on the result's ``excluded_count``.
    """
    metadata_fields = tuple(metadata_fields)
    keys: list[AggregationKey] = []
    kept: list[MetricRecord] = []
    excluded = 0

    for record in records:
        key = key_fn(record)
        if key is None:
            excluded += 1
            continue
        keys.append(key)
        kept.append(record)

    if excluded:
        logger.warning("Excluded %d record(s) missing a key dimension", excluded)
    if not kept:
        return Aggregate({}, excluded_count=excluded)

    df = pd.DataFrame({
        name: [record.get(name) for record in kept]
        for name in MEASURE_FIELDS + metadata_fields
    })
    df[_KEY] = pd.Series(keys, dtype=object)
    df[_COUNT] = 1

    spec: dict[str, Any] = {name: "sum" for name in MEASURE_FIELDS + (_COUNT,)}
    spec.update({name: _merge_metadata for name in metadata_fields})
    grouped = df.groupby(_KEY, sort=False).agg(spec)

    rows = {}
    for key, values in zip(grouped.index, grouped.to_dict(orient="records")):
        totals = MeasureTotals(
            cost=float(values["cost"]),
            impressions=int(values["impressions"]),
            clicks=int(values["clicks"]),
            conversions=float(values["conversions"]),
            conversion_value=float(values["conversion_value"]),
            record_count=int(values[_COUNT]),
        )
        metadata = {name: _scalar(values[name]) for name in metadata_fields}
        rows[key] = AggregateRow(key=key, totals=totals, metadata=metadata)

    return Aggregate(rows, excluded_count=excluded)
