"""Risk level to behavior policy.

This table is the only place that decides what each risk level permits.
Callers look behavior up here; they never re-derive it.
"""

from __future__ import annotations

from types import MappingProxyType

from glados.moderation.models import RiskLevel, RiskLevelBehavior

NEUTRAL_BLOCK_RESPONSE = (
    "I want to make sure you get the right support. Let me check with one of your mentors."
)

# Public crisis resources could stigmatize a student in a shared channel,
# so user-visible text under BLOCK must never contain these.
FORBIDDEN_RESPONSE_TOKENS: tuple[str, ...] = (
    "988",
    "741741",
    "crisis",
    "hotline",
    "Suicide",
)


def contains_forbidden_token(text: str) -> bool:
    """Return ``True`` if *text* mentions any forbidden crisis-resource token."""
    lowered = text.lower()
    return any(token.lower() in lowered for token in FORBIDDEN_RESPONSE_TOKENS)


_BEHAVIORS: MappingProxyType[RiskLevel, RiskLevelBehavior] = MappingProxyType(
    {
        RiskLevel.SAFE: RiskLevelBehavior(
            should_proceed=True,
            should_log=False,
            should_alert_mentor=False,
            should_block=False,
        ),
        RiskLevel.FLAG_ONLY: RiskLevelBehavior(
            should_proceed=True,
            should_log=True,
            should_alert_mentor=False,
            should_block=False,
        ),
        RiskLevel.ALERT_MENTOR: RiskLevelBehavior(
            should_proceed=True,
            should_log=True,
            should_alert_mentor=True,
            should_block=False,
        ),
        RiskLevel.BLOCK: RiskLevelBehavior(
            should_proceed=False,
            should_log=True,
            should_alert_mentor=True,
            should_block=True,
            neutral_response=NEUTRAL_BLOCK_RESPONSE,
        ),
    }
)

for _behavior in _BEHAVIORS.values():
    if _behavior.neutral_response and contains_forbidden_token(_behavior.neutral_response):
        raise RuntimeError("neutral responses must not reference crisis resources")


def behavior_for(risk_level: RiskLevel | int) -> RiskLevelBehavior:
    """Return the behavior for a risk level.

    Raises:
        ValueError: If *risk_level* is outside 0-3. Clamping is the
            classifier's job, so reaching this is a programming error.
    """
    return _BEHAVIORS[RiskLevel(risk_level)]
