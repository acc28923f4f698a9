"""Evaluators consuming aggregates: pacing, impression share, recommendations."""

from .impression_share import (
    CampaignShare,
    account_shares,
    campaign_shares,
    impression_share_table,
)
from .pacing import PacingEvaluator, pacing_table
from .recommendations import (
    DEFAULT_RULES,
    RecommendationEngine,
    Rule,
    RuleInput,
    campaign_rule_inputs,
    recommendation_table,
)
