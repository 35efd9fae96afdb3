"""Data models for youth-protection pre-screening."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class RiskLevel(IntEnum):
    """Ordered youth-protection risk levels (higher is more severe)."""

    SAFE = 0  # Proceed normally
    FLAG_ONLY = 1  # Log for review, proceed
    ALERT_MENTOR = 2  # Alert contacts, proceed with caution
    BLOCK = 3  # Do not proceed, escalate immediately


def clamp_risk_level(value: int | float) -> RiskLevel:
    """Clamp an arbitrary numeric level into the valid range."""
    return RiskLevel(min(int(RiskLevel.BLOCK), max(int(RiskLevel.SAFE), int(value))))


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying a single message."""

    risk_level: RiskLevel
    flags: frozenset[str] = field(default_factory=frozenset)
    reasoning: str | None = None


@dataclass(frozen=True)
class RiskLevelBehavior:
    """What the pipeline is permitted to do at a given risk level."""

    should_proceed: bool
    should_log: bool
    should_alert_mentor: bool
    should_block: bool
    neutral_response: str | None = None

    def __post_init__(self) -> None:
        if self.should_block and self.should_proceed:
            raise ValueError("a blocking behavior cannot proceed")
        if self.should_block != (self.neutral_response is not None):
            raise ValueError("neutral_response is required exactly when blocking")
