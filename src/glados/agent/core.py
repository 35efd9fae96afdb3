"""Agent core: safety gating and the bounded tool-calling loop.

One :meth:`Agent.handle_message` call handles one inbound message:

    GATING -> (BLOCKED_TERMINAL | CONTEXT_LOADING -> MODEL_CALL
              <-> TOOL_EXECUTION -> FINALIZING)

Every message is pre-screened before any model call or tool runs. A
blocked message gets the fixed neutral reply and a high-severity alert.
The model is never called.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from glados.agent.model import ModelClient, StopReason, ToolUseBlock
from glados.agent.prompts import build_system_prompt
from glados.audit.log import AuditLog
from glados.audit.models import AuditLogEntry, MessageType, ToolCallRecord
from glados.constants import (
    EMPTY_RESPONSE_FALLBACK,
    TEAM_NOT_FOUND_RESPONSE,
    TOO_MANY_STEPS_RESPONSE,
)
from glados.conversation.store import ConversationStore
from glados.logging import get_logger
from glados.moderation.classifier import ContentClassifier
from glados.moderation.models import ClassificationResult, RiskLevelBehavior
from glados.moderation.prescreen import prescreen_message
from glados.safety.escalation import SafetyEscalation
from glados.safety.models import AlertSeverity
from glados.teamdata.models import TeamContext
from glados.teamdata.storage import TeamDataStore
from glados.tools.base import ToolContext
from glados.tools.registry import ToolRegistry

log = get_logger("glados.agent.core")

ALERT_TOOL_NAME = "safety_alert_mentor"


class AgentState(StrEnum):
    GATING = "gating"
    BLOCKED_TERMINAL = "blocked_terminal"
    CONTEXT_LOADING = "context_loading"
    MODEL_CALL = "model_call"
    TOOL_EXECUTION = "tool_execution"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class AgentRequest:
    """One inbound message addressed to the agent."""

    message: str
    team_id: str
    user_id: str
    channel_id: str | None = None
    user_name: str | None = None


@dataclass
class AgentReply:
    """What the agent answered and how it got there.

    Attributes:
        text: Reply to show the user.
        state: State the run ended in (``BLOCKED_TERMINAL`` or ``FINALIZING``,
            or ``CONTEXT_LOADING`` when the team was not found).
        classification: Pre-screen classification of the inbound message.
        behavior: Policy applied to the message.
        tool_calls: Completed tool calls, in call order.
        alert_id: Safety alert raised while handling the message, if any.
    """

    text: str
    state: AgentState
    classification: ClassificationResult
    behavior: RiskLevelBehavior
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    alert_id: str | None = None


class Agent:
    """Safety-gated conversational agent for one robotics team deployment."""

    def __init__(
        self,
        model_client: ModelClient,
        classifier: ContentClassifier,
        tools: ToolRegistry,
        escalation: SafetyEscalation,
        audit_log: AuditLog,
        conversations: ConversationStore,
        team_data: TeamDataStore,
        *,
        max_iterations: int = 10,
        history_limit: int = 10,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._model = model_client
        self._classifier = classifier
        self._tools = tools
        self._escalation = escalation
        self._audit = audit_log
        self._conversations = conversations
        self._team_data = team_data
        self._max_iterations = max_iterations
        self._history_limit = history_limit

    async def handle_message(self, request: AgentRequest) -> AgentReply:
        """Screen, answer and record one message."""
        request_id = uuid.uuid4().hex[:12]
        start = time.monotonic()

        # GATING
        screen = await prescreen_message(
            request.message,
            self._classifier,
            team_id=request.team_id,
            user_id=request.user_id,
            channel_id=request.channel_id,
            request_id=request_id,
        )
        behavior = screen.behavior

        if behavior.should_block:
            return await self._handle_blocked(request, screen.classification, behavior)

        alert_id: str | None = None
        if behavior.should_alert_mentor:
            alert_id = await self._raise_alert(
                request, AlertSeverity.MEDIUM, screen.classification
            )

        # CONTEXT_LOADING
        context = await self._team_data.load_team_context(request.team_id, request.user_id)
        if context is None:
            log.warning("agent_team_not_found", team_id=request.team_id, request_id=request_id)
            return AgentReply(
                text=TEAM_NOT_FOUND_RESPONSE,
                state=AgentState.CONTEXT_LOADING,
                classification=screen.classification,
                behavior=behavior,
                alert_id=alert_id,
            )

        history = await self._load_history(request)

        # MODEL_CALL <-> TOOL_EXECUTION
        text, tool_calls, tool_alert_id = await self._run_loop(
            request,
            context,
            history,
            serious_mode=behavior.should_alert_mentor,
            request_id=request_id,
        )
        alert_id = alert_id or tool_alert_id

        # FINALIZING
        await self._save_history(request, text)
        if behavior.should_log or tool_calls:
            await self._write_audit(
                request,
                text,
                tool_calls,
                contains_safety_alert=behavior.should_alert_mentor or alert_id is not None,
                message_type=MessageType.AGENT_RESPONSE,
            )

        log.info(
            "agent_message_handled",
            request_id=request_id,
            team_id=request.team_id,
            risk_level=int(screen.classification.risk_level),
            tool_calls=len(tool_calls),
            duration_ms=round((time.monotonic() - start) * 1000),
        )
        return AgentReply(
            text=text,
            state=AgentState.FINALIZING,
            classification=screen.classification,
            behavior=behavior,
            tool_calls=tool_calls,
            alert_id=alert_id,
        )

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    async def _handle_blocked(
        self,
        request: AgentRequest,
        classification: ClassificationResult,
        behavior: RiskLevelBehavior,
    ) -> AgentReply:
        if behavior.neutral_response is None:
            raise ValueError("blocking behavior has no neutral response")
        alert_id = await self._raise_alert(request, AlertSeverity.HIGH, classification)
        await self._write_audit(
            request,
            behavior.neutral_response,
            [],
            contains_safety_alert=True,
            message_type=MessageType.BLOCKED,
        )
        return AgentReply(
            text=behavior.neutral_response,
            state=AgentState.BLOCKED_TERMINAL,
            classification=classification,
            behavior=behavior,
            alert_id=alert_id,
        )

    async def _raise_alert(
        self,
        request: AgentRequest,
        severity: AlertSeverity,
        classification: ClassificationResult,
    ) -> str | None:
        flags = ", ".join(sorted(classification.flags)) or "unspecified"
        reason = f"Pre-screen flagged message ({flags})"
        if classification.reasoning:
            reason = f"{reason}: {classification.reasoning}"
        try:
            created = await self._escalation.create_alert(
                team_id=request.team_id,
                user_id=request.user_id,
                channel_id=request.channel_id,
                severity=severity,
                reason=reason,
                content=request.message,
            )
        except Exception:
            log.exception(
                "gating_alert_failed", team_id=request.team_id, severity=severity.value
            )
            return None
        return created.alert_id

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_loop(
        self,
        request: AgentRequest,
        context: TeamContext,
        history: list[dict[str, Any]],
        *,
        serious_mode: bool,
        request_id: str,
    ) -> tuple[str, list[ToolCallRecord], str | None]:
        system = build_system_prompt(context, request.user_name, serious_mode=serious_mode)
        tools = self._tools.to_model_tools()
        messages: list[dict[str, Any]] = [
            *history,
            {"role": "user", "content": request.message},
        ]
        tool_context = ToolContext(
            team_id=request.team_id,
            user_id=request.user_id,
            channel_id=request.channel_id,
            guild_id=context.team.discord_guild_id,
        )
        tool_calls: list[ToolCallRecord] = []
        alert_id: str | None = None

        for iteration in range(1, self._max_iterations + 1):
            response = await self._model.create(system=system, messages=messages, tools=tools)
            tool_uses = response.tool_uses
            if response.stop_reason != StopReason.TOOL_USE or not tool_uses:
                return response.text or EMPTY_RESPONSE_FALLBACK, tool_calls, alert_id

            log.debug(
                "agent_tool_turn",
                request_id=request_id,
                iteration=iteration,
                tools=[t.name for t in tool_uses],
            )
            records = await self._execute_tools(tool_uses, tool_context)
            tool_calls.extend(records)
            alert_id = alert_id or _alert_from_records(records)
            messages.append(response.to_assistant_message())
            messages.append(_tool_results_message(tool_uses, records))

        log.warning(
            "agent_iteration_limit_reached",
            request_id=request_id,
            team_id=request.team_id,
            max_iterations=self._max_iterations,
        )
        return TOO_MANY_STEPS_RESPONSE, tool_calls, alert_id

    async def _execute_tools(
        self, tool_uses: list[ToolUseBlock], context: ToolContext
    ) -> list[ToolCallRecord]:
        """Run one turn's tool calls.

        They run concurrently only when every call in the turn is marked
        ``concurrent_safe``; otherwise in order. A failure in one call never
        affects another.
        """
        concurrent = len(tool_uses) > 1 and all(
            (spec := self._tools.get_spec(t.name)) is not None and spec.concurrent_safe
            for t in tool_uses
        )
        if concurrent:
            return list(await asyncio.gather(*(self._run_tool(t, context) for t in tool_uses)))
        return [await self._run_tool(t, context) for t in tool_uses]

    async def _run_tool(self, tool_use: ToolUseBlock, context: ToolContext) -> ToolCallRecord:
        try:
            output = await self._tools.dispatch(tool_use.name, tool_use.input, context)
        except Exception as e:
            log.exception("tool_call_failed", tool=tool_use.name, team_id=context.team_id)
            return ToolCallRecord(
                name=tool_use.name, input=tool_use.input, error=str(e) or type(e).__name__
            )
        return ToolCallRecord(name=tool_use.name, input=tool_use.input, output=output)

    # ------------------------------------------------------------------
    # History and audit (best effort, independent of each other)
    # ------------------------------------------------------------------

    async def _load_history(self, request: AgentRequest) -> list[dict[str, Any]]:
        try:
            turns = await self._conversations.get_recent(
                request.team_id, request.channel_id, limit=self._history_limit
            )
        except Exception:
            log.exception("conversation_history_load_failed", team_id=request.team_id)
            return []
        return [t.to_message() for t in turns]

    async def _save_history(self, request: AgentRequest, text: str) -> None:
        try:
            await self._conversations.append_exchange(
                request.team_id, request.channel_id, request.user_id, request.message, text
            )
        except Exception:
            log.exception("conversation_history_save_failed", team_id=request.team_id)

    async def _write_audit(
        self,
        request: AgentRequest,
        response: str,
        tool_calls: list[ToolCallRecord],
        *,
        contains_safety_alert: bool,
        message_type: MessageType,
    ) -> None:
        try:
            await self._audit.log(
                AuditLogEntry(
                    team_id=request.team_id,
                    user_id=request.user_id,
                    channel_id=request.channel_id,
                    user_message=request.message,
                    agent_response=response,
                    tool_calls=tool_calls,
                    contains_safety_alert=contains_safety_alert,
                    message_type=message_type,
                )
            )
        except Exception:
            log.exception(
                "audit_log_write_failed", team_id=request.team_id, message_type=message_type
            )


def _alert_from_records(records: list[ToolCallRecord]) -> str | None:
    for record in records:
        if record.name == ALERT_TOOL_NAME and isinstance(record.output, dict):
            if record.output.get("success") and record.output.get("alert_id"):
                return str(record.output["alert_id"])
    return None


def _tool_results_message(
    tool_uses: list[ToolUseBlock], records: list[ToolCallRecord]
) -> dict[str, Any]:
    content = []
    for tool_use, record in zip(tool_uses, records, strict=True):
        if record.failed:
            content.append(
                {
                    "type": "tool_result",
                    "tool_use_id": tool_use.id,
                    "content": json.dumps({"error": record.error}),
                    "is_error": True,
                }
            )
        else:
            content.append(
                {
                    "type": "tool_result",
                    "tool_use_id": tool_use.id,
                    "content": json.dumps(record.output, default=str),
                }
            )
    return {"role": "user", "content": content}
