"""Mandatory classify-then-gate step run before any model or tool executes."""

from __future__ import annotations

import time
from dataclasses import dataclass

from glados.logging import get_logger
from glados.moderation.classifier import ContentClassifier, classification_error_result
from glados.moderation.forensics import log_moderation_event
from glados.moderation.models import (
    ClassificationResult,
    RiskLevel,
    RiskLevelBehavior,
    clamp_risk_level,
)
from glados.moderation.policy import behavior_for

log = get_logger("glados.moderation.prescreen")


@dataclass(frozen=True)
class PrescreenResult:
    """Classification of a message plus the behavior it permits."""

    classification: ClassificationResult
    behavior: RiskLevelBehavior


async def prescreen_message(
    content: str,
    classifier: ContentClassifier,
    *,
    team_id: str,
    user_id: str,
    channel_id: str | None = None,
    request_id: str = "",
) -> PrescreenResult:
    """Classify *content* and look up the behavior for its risk level.

    Injected classifiers are not trusted to clamp, so the level is clamped
    again here before the policy lookup. A classifier that raises fails open
    to FLAG_ONLY like any other classification failure.
    """
    start = time.perf_counter()
    try:
        classification = await classifier.classify(content)
    except Exception:
        log.exception("prescreen_classifier_failed", team_id=team_id, request_id=request_id)
        classification = classification_error_result()
    level = clamp_risk_level(classification.risk_level)
    if level is not classification.risk_level:
        classification = ClassificationResult(
            risk_level=level,
            flags=classification.flags,
            reasoning=classification.reasoning,
        )
    behavior = behavior_for(level)

    log.debug(
        "message_prescreened",
        risk_level=level.name,
        flags=sorted(classification.flags),
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )

    if level > RiskLevel.SAFE:
        log_moderation_event(
            team_id=team_id,
            user_id=user_id,
            channel_id=channel_id,
            content=content,
            classification=classification,
            behavior=behavior,
            request_id=request_id,
        )

    return PrescreenResult(classification=classification, behavior=behavior)
