"""Forensic logging for moderation events.

All WARNING+ events land in the JSON log file where reviewers can
correlate them with alerts by content hash.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

from glados.logging import FORENSICS_LOGGER, get_logger
from glados.moderation.models import ClassificationResult, RiskLevelBehavior

log = get_logger(FORENSICS_LOGGER)


def log_moderation_event(
    *,
    team_id: str,
    user_id: str,
    channel_id: str | None,
    content: str,
    classification: ClassificationResult,
    behavior: RiskLevelBehavior,
    request_id: str = "",
) -> None:
    """Log a detailed forensic record for a non-safe classification."""
    content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()

    log.warning(
        "moderation_event",
        event_type="message_flagged",
        request_id=request_id,
        team_id=team_id,
        user_id=user_id,
        channel_id=channel_id,
        timestamp=datetime.now(UTC).isoformat(),
        risk_level=classification.risk_level.name,
        flags=sorted(classification.flags),
        blocked=behavior.should_block,
        alert_mentor=behavior.should_alert_mentor,
        content_hash=content_hash,
        content_length=len(content),
        content_preview=content[:200],
        reasoning=classification.reasoning[:300] if classification.reasoning else None,
    )
