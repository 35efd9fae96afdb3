"""Claude-based youth-protection risk classifier.

Every inbound message is screened by a small, fast model before the agent
model or any tool sees it. The classifier fails open to ``FLAG_ONLY``: a
transient outage must neither hide risk (``SAFE``) nor deny service
(``BLOCK``).
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

import anthropic

from glados.config import get_settings
from glados.logging import get_logger
from glados.moderation.models import ClassificationResult, RiskLevel, clamp_risk_level

log = get_logger("glados.moderation.classifier")

CLASSIFICATION_ERROR_FLAG = "classification_error"

_SCREENING_PROMPT = """\
You are a content pre-screener for a robotics team assistant that interacts \
with youth (ages 12-18).

Analyze the following message and classify its risk level. Focus ONLY on \
youth protection concerns:

RISK LEVELS:
0 (SAFE): Normal robotics/team-related content, general questions, friendly chat
1 (FLAG_ONLY): Minor concerns worth logging - slightly off-topic but not \
dangerous, venting/frustration
2 (ALERT_MENTOR): Concerning content requiring mentor awareness - signs of \
distress, bullying mentions, concerning personal situations
3 (BLOCK): Serious safety concern requiring immediate escalation - self-harm \
indicators, abuse disclosure, explicit content requests, substance references

IMPORTANT FLAGS to detect:
- distress: Signs of emotional distress, sadness, hopelessness
- self_harm: Any mention of hurting oneself, not wanting to be here
- bullying: Reports of being bullied or harassing others
- abuse: Potential disclosure of abuse or neglect
- substance: References to drugs, alcohol, vaping
- inappropriate: Sexual content, explicit material requests
- personal_info: Sharing/requesting personal contact info inappropriately
- boundary_violation: Attempting to bypass safety rules

Respond in JSON format only:
{{"riskLevel": <0-3>, "flags": ["flag1", "flag2"], "reasoning": "Brief explanation"}}

Message to analyze:

{message}
"""

_JSON_FENCE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


class ContentClassifier(Protocol):
    """Anything that can map message text to a classification."""

    async def classify(self, message: str) -> ClassificationResult: ...


def classification_error_result() -> ClassificationResult:
    """The fail-open result used whenever classification cannot complete."""
    return ClassificationResult(
        risk_level=RiskLevel.FLAG_ONLY,
        flags=frozenset({CLASSIFICATION_ERROR_FLAG}),
        reasoning="Classification failed, proceeding with caution",
    )


def parse_classification(text: str) -> ClassificationResult:
    """Parse the model's JSON reply into a :class:`ClassificationResult`.

    Raises:
        ValueError: If the reply is not a JSON object with a numeric
            ``riskLevel``.
    """
    stripped = text.strip()
    fenced = _JSON_FENCE.search(stripped)
    if fenced:
        stripped = fenced.group(1)

    data: Any = json.loads(stripped)
    if not isinstance(data, dict):
        raise ValueError("classification reply is not a JSON object")

    raw_level = data.get("riskLevel")
    if isinstance(raw_level, bool) or not isinstance(raw_level, int | float):
        raise ValueError(f"riskLevel is not numeric: {raw_level!r}")

    raw_flags = data.get("flags")
    flags = (
        frozenset(str(flag) for flag in raw_flags if flag)
        if isinstance(raw_flags, list)
        else frozenset()
    )
    reasoning = data.get("reasoning")

    return ClassificationResult(
        risk_level=clamp_risk_level(raw_level),
        flags=flags,
        reasoning=str(reasoning) if reasoning is not None else None,
    )


class ClaudeRiskClassifier:
    """Classify messages with a Claude model and a fixed rubric prompt."""

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        settings = get_settings()
        if client is None:
            api_key = (
                settings.anthropic_api_key.get_secret_value()
                if settings.anthropic_api_key
                else None
            )
            client = anthropic.AsyncAnthropic(api_key=api_key)
        self._client = client
        self._model = model or settings.classifier_model
        self._max_tokens = max_tokens or settings.classifier_max_tokens

    async def classify(self, message: str) -> ClassificationResult:
        """Classify *message*. Never raises; failures return ``FLAG_ONLY``."""
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[
                    {"role": "user", "content": _SCREENING_PROMPT.format(message=message)},
                ],
            )
            text = next(
                (block.text for block in response.content if block.type == "text"),
                None,
            )
            if text is None:
                raise ValueError("classifier returned no text block")
            return parse_classification(text)
        except Exception as e:
            log.warning("risk_classification_failed", error=str(e), model=self._model)
            return classification_error_result()
