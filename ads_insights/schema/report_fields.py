"""Documented field set per report type.

Each entry maps a record field to the parser kind used by the normalizer:

    "text"     - dimension kept as a stripped string
    "date"     - calendar date
    "integer"  - whole-number measure
    "decimal"  - fractional measure
    "micros"   - currency in micros (divided by 1,000,000)
    "share"    - fraction in [0, 1], ``None`` when absent

Fields absent from a report type are simply not present on its records.
"""

from .models import ReportType


_MEASURES = {
    "cost": "micros",
    "impressions": "integer",
    "clicks": "integer",
    "conversions": "decimal",
    "conversion_value": "decimal",
}

REPORT_FIELDS: dict[ReportType, dict[str, str]] = {
    ReportType.CAMPAIGN: {
        "campaign_id": "text",
        "campaign_name": "text",
        "daily_budget": "micros",
        **_MEASURES,
    },
    ReportType.DAILY: {
        "date": "date",
        "campaign_id": "text",
        "campaign_name": "text",
        "device": "text",
        **_MEASURES,
    },
    ReportType.PRODUCT: {
        "product_id": "text",
        "product_title": "text",
        "campaign_id": "text",
        **_MEASURES,
    },
    ReportType.ASSET: {
        "asset_id": "text",
        "asset_type": "text",
        "asset_text": "text",
        "campaign_id": "text",
        **_MEASURES,
    },
    ReportType.IMPRESSION_SHARE: {
        "campaign_id": "text",
        "campaign_name": "text",
        "cost": "micros",
        "impressions": "integer",
        "search_impression_share": "share",
        "search_lost_is_rank": "share",
        "search_lost_is_budget": "share",
        "search_top_impression_share": "share",
        "search_abs_top_impression_share": "share",
    },
    ReportType.LAG_LEARNING: {
        "date": "date",
        "lag_bucket": "text",
        "conversions": "decimal",
        "conversion_value": "decimal",
    },
    ReportType.RECENT_PERFORMANCE: {
        "date": "date",
        **_MEASURES,
    },
}


def fields_for(report_type: ReportType | str) -> dict[str, str]:
    """Return the field map for a report type.

    Raises:
        ValueError: If report_type is not recognized.
    """
    return REPORT_FIELDS[coerce_report_type(report_type)]


def coerce_report_type(report_type: ReportType | str) -> ReportType:
    """Accept a ReportType or its string value."""
    if isinstance(report_type, ReportType):
        return report_type
    try:
        return ReportType(str(report_type))
    except ValueError:
        valid = ", ".join(sorted(rt.value for rt in ReportType))
        raise ValueError(
            f"Unknown report type '{report_type}'. Valid types: {valid}"
        ) from None
