"""Scoring, tiering and selection of published startups."""

from .tier_validation import (
    TierValidation,
    TierRequirement,
    PublishCheck,
    StartupNotFoundError,
    evaluate_tier,
    validate_startup_tier,
    can_publish_startup,
    publish_startup,
    get_tier_badge,
)
from .feature_score import (
    FeatureScoreBreakdown,
    ScoreComponents,
    FeatureSuggestion,
    calculate_feature_score,
    get_feature_suggestions,
    update_all_feature_scores,
)
from .fair_selection import select_diverse, select_featured, get_featured_showcase
from .featuring import feature_startup, unfeature_startup, extend_featured, click_through_rate
from .milestones import check_all_milestones

__all__ = [
    "TierValidation",
    "TierRequirement",
    "PublishCheck",
    "StartupNotFoundError",
    "evaluate_tier",
    "validate_startup_tier",
    "can_publish_startup",
    "publish_startup",
    "get_tier_badge",
    "FeatureScoreBreakdown",
    "ScoreComponents",
    "FeatureSuggestion",
    "calculate_feature_score",
    "get_feature_suggestions",
    "update_all_feature_scores",
    "select_diverse",
    "select_featured",
    "get_featured_showcase",
    "feature_startup",
    "unfeature_startup",
    "extend_featured",
    "click_through_rate",
    "check_all_milestones",
]
