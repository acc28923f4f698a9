"""Analysis configuration - immutable values passed into every component.

No component reads module-level settings; each receives the relevant
section of an :class:`AnalysisConfig` through its constructor.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LagModelConfig:
    """Windows for the conversion-lag model and the forecast."""
    lookback_days: int = 90          # Length of the historical learning window
    stable_offset_days: int = 30     # Gap before today excluded from learning
    forecast_days: int = 14          # Recent days to lag-adjust
    uplift_ceiling: float = 5.0      # Tunable clamp on the applied uplift

    def __post_init__(self):
        if self.lookback_days <= 0:
            raise ValueError(f"lookback_days must be positive, got {self.lookback_days}")
        if self.stable_offset_days < 0:
            raise ValueError(
                f"stable_offset_days must be >= 0, got {self.stable_offset_days}"
            )
        if self.forecast_days <= 0:
            raise ValueError(f"forecast_days must be positive, got {self.forecast_days}")
        if self.uplift_ceiling < 1:
            raise ValueError(f"uplift_ceiling must be >= 1, got {self.uplift_ceiling}")

    def to_dict(self) -> dict:
        return {
            "lookback_days": self.lookback_days,
            "stable_offset_days": self.stable_offset_days,
            "forecast_days": self.forecast_days,
            "uplift_ceiling": self.uplift_ceiling,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LagModelConfig":
        return cls(
            lookback_days=int(d.get("lookback_days", 90)),
            stable_offset_days=int(d.get("stable_offset_days", 30)),
            forecast_days=int(d.get("forecast_days", 14)),
            uplift_ceiling=float(d.get("uplift_ceiling", 5.0)),
        )


@dataclass(frozen=True)
class PacingThresholds:
    """Pace-ratio bounds for the on-track band."""
    low: float = 0.9
    high: float = 1.1

    def __post_init__(self):
        if self.low < 0 or self.low > self.high:
            raise ValueError(
                f"pacing thresholds must satisfy 0 <= low <= high, got {self.low}/{self.high}"
            )

    def to_dict(self) -> dict:
        return {"low": self.low, "high": self.high}

    @classmethod
    def from_dict(cls, d: dict) -> "PacingThresholds":
        return cls(low=float(d.get("low", 0.9)), high=float(d.get("high", 1.1)))


@dataclass(frozen=True)
class RecommendationThresholds:
    """Thresholds read by the recommendation rules."""
    target_roas: float = 2.0
    cpa_factor: float = 1.5          # Flag CPA above account CPA x factor
    ctr_floor: float = 0.01          # Fraction, not percent
    min_impressions: int = 1000      # Guard for the CTR rule
    min_clicks: int = 50             # Guard for the zero-conversion rule
    lost_share_threshold: float = 0.20

    def to_dict(self) -> dict:
        return {
            "target_roas": self.target_roas,
            "cpa_factor": self.cpa_factor,
            "ctr_floor": self.ctr_floor,
            "min_impressions": self.min_impressions,
            "min_clicks": self.min_clicks,
            "lost_share_threshold": self.lost_share_threshold,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RecommendationThresholds":
        return cls(
            target_roas=float(d.get("target_roas", 2.0)),
            cpa_factor=float(d.get("cpa_factor", 1.5)),
            ctr_floor=float(d.get("ctr_floor", 0.01)),
            min_impressions=int(d.get("min_impressions", 1000)),
            min_clicks=int(d.get("min_clicks", 50)),
            lost_share_threshold=float(d.get("lost_share_threshold", 0.20)),
        )


@dataclass(frozen=True)
class AnalysisConfig:
    """Complete configuration for one analysis run."""
    lag: LagModelConfig = field(default_factory=LagModelConfig)
    pacing: PacingThresholds = field(default_factory=PacingThresholds)
    recommendations: RecommendationThresholds = field(
        default_factory=RecommendationThresholds
    )
    product_limit: int = 50

    def to_dict(self) -> dict:
        return {
            "lag": self.lag.to_dict(),
            "pacing": self.pacing.to_dict(),
            "recommendations": self.recommendations.to_dict(),
            "product_limit": self.product_limit,
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> "AnalysisConfig":
        d = d or {}
        return cls(
            lag=LagModelConfig.from_dict(d.get("lag") or {}),
            pacing=PacingThresholds.from_dict(d.get("pacing") or {}),
            recommendations=RecommendationThresholds.from_dict(
                d.get("recommendations") or {}
            ),
            product_limit=int(d.get("product_limit", 50)),
        )
