"""Model client boundary for the agent loop.

The loop only sees :class:`ModelResponse`; the Anthropic SDK types stay
inside :class:`ClaudeModelClient`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

import anthropic
from anthropic import APIConnectionError, APITimeoutError, RateLimitError

from glados.config import get_settings
from glados.logging import get_logger

log = get_logger("glados.agent.model")


class StopReason(StrEnum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    OTHER = "other"


@dataclass(frozen=True)
class TextBlock:
    text: str

    def to_param(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_param(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


ContentBlock = TextBlock | ToolUseBlock


@dataclass(frozen=True)
class ModelResponse:
    """One model turn: why it stopped and what it produced."""

    stop_reason: StopReason
    content: list[ContentBlock] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    def to_assistant_message(self) -> dict[str, Any]:
        return {"role": "assistant", "content": [b.to_param() for b in self.content]}


class ModelClient(Protocol):
    """Anything that can run one model turn."""

    async def create(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelResponse: ...


async def retry_with_exponential_backoff(
    func: Callable[[], Awaitable[Any]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
) -> Any:
    """Retry a function with exponential backoff.

    Args:
        func: Async function to retry.
        max_retries: Maximum number of attempts.
        initial_delay: Initial delay in seconds.
        max_delay: Maximum delay in seconds.
        exponential_base: Base for exponential backoff.

    Returns:
        Result of the function call.

    Raises:
        The last exception if all retries fail.
    """
    delay = initial_delay
    last_exception: Exception | None = None

    for attempt in range(max_retries):
        try:
            return await func()
        except (APIConnectionError, APITimeoutError) as e:
            last_exception = e
            if attempt < max_retries - 1:
                log.warning(
                    "api_call_failed_retrying",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
                delay = min(delay * exponential_base, max_delay)
            else:
                log.error("api_call_failed_max_retries", max_retries=max_retries, error=str(e))
        except RateLimitError as e:
            last_exception = e
            # Rate limits back off twice as long.
            if attempt < max_retries - 1:
                rate_limit_delay = min(delay * 2, max_delay)
                log.warning(
                    "rate_limit_hit_retrying",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=rate_limit_delay,
                )
                await asyncio.sleep(rate_limit_delay)
                delay = min(delay * exponential_base, max_delay)
            else:
                log.error("rate_limit_max_retries", max_retries=max_retries)

    if last_exception:
        raise last_exception
    raise RuntimeError("Retry function failed without exception")


def _convert_block(block: Any) -> ContentBlock | None:
    if block.type == "text":
        return TextBlock(text=block.text)
    if block.type == "tool_use":
        return ToolUseBlock(id=block.id, name=block.name, input=dict(block.input or {}))
    return None


def _convert_stop_reason(value: str | None) -> StopReason:
    try:
        return StopReason(value)
    except ValueError:
        return StopReason.OTHER


class ClaudeModelClient:
    """Run agent turns against the Anthropic Messages API."""

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
        self._model = model or settings.agent_model
        self._max_tokens = max_tokens or settings.agent_max_tokens

    async def create(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelResponse:
        async def _call() -> Any:
            return await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                system=system,
                messages=messages,  # type: ignore[arg-type]
                tools=tools,  # type: ignore[arg-type]
            )

        response = await retry_with_exponential_backoff(_call)
        content = [b for b in map(_convert_block, response.content) if b is not None]
        log.debug(
            "model_turn_complete",
            model=self._model,
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return ModelResponse(
            stop_reason=_convert_stop_reason(response.stop_reason), content=content
        )
