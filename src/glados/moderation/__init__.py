"""Youth-protection pre-screening: risk classification and behavior policy."""

from glados.moderation.classifier import (
    CLASSIFICATION_ERROR_FLAG,
    ClaudeRiskClassifier,
    ContentClassifier,
)
from glados.moderation.models import (
    ClassificationResult,
    RiskLevel,
    RiskLevelBehavior,
    clamp_risk_level,
)
from glados.moderation.policy import (
    FORBIDDEN_RESPONSE_TOKENS,
    NEUTRAL_BLOCK_RESPONSE,
    behavior_for,
    contains_forbidden_token,
)
from glados.moderation.prescreen import PrescreenResult, prescreen_message

__all__ = [
    "CLASSIFICATION_ERROR_FLAG",
    "ClassificationResult",
    "ClaudeRiskClassifier",
    "ContentClassifier",
    "FORBIDDEN_RESPONSE_TOKENS",
    "NEUTRAL_BLOCK_RESPONSE",
    "PrescreenResult",
    "RiskLevel",
    "RiskLevelBehavior",
    "behavior_for",
    "clamp_risk_level",
    "contains_forbidden_token",
    "prescreen_message",
]
