"""Task-type dispatchers for the priority queue.

Each :class:`QueueTaskType` maps to a handler that receives the item payload
and the services needed to fulfil it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from glados.logging import get_logger
from glados.queue.models import QueueTaskType

if TYPE_CHECKING:
    from glados.agent.core import Agent
    from glados.safety.notifications import AlertNotifier
    from glados.transport import ChatTransport

log = get_logger("glados.queue.processors")


class ProcessorResult:
    """Outcome of processing a single queue item."""

    __slots__ = ("success", "error", "data")

    def __init__(
        self,
        success: bool = True,
        error: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.success = success
        self.error = error
        self.data = data or {}


def agent_message_payload(
    *,
    message: str,
    team_id: str,
    user_id: str,
    reply_channel_id: str,
    channel_id: str | None = None,
    user_name: str | None = None,
) -> dict[str, Any]:
    """Build the payload of an ``agent_message`` task."""
    return {
        "message": message,
        "team_id": team_id,
        "user_id": user_id,
        "channel_id": channel_id,
        "user_name": user_name,
        "reply_channel_id": reply_channel_id,
    }


class QueueProcessors:
    """Dispatch queue items to the appropriate handler by task type.

    Unknown task types are logged and treated as successful (no retry) to
    avoid dead-letter loops.
    """

    def __init__(
        self,
        *,
        agent: Agent | None = None,
        transport: ChatTransport | None = None,
        notifier: AlertNotifier | None = None,
    ) -> None:
        self._agent = agent
        self._transport = transport
        self._notifier = notifier

    def bind(
        self,
        *,
        agent: Agent,
        transport: ChatTransport,
        notifier: AlertNotifier,
    ) -> None:
        """Wire services built after the queue.

        The agent depends on the queue through safety escalation, and the
        transport on the bot that owns the agent, so both usually exist only
        after the manager that owns these processors.
        """
        self._agent = agent
        self._transport = transport
        self._notifier = notifier

    async def process(self, task_type: str, payload: dict[str, Any]) -> ProcessorResult:
        """Route a queue item to its handler.

        Args:
            task_type: The :class:`QueueTaskType` value.
            payload: The JSON payload stored in the queue row.
        """
        handlers = {
            QueueTaskType.AGENT_MESSAGE: self._handle_agent_message,
            QueueTaskType.SAFETY_ALERT_DM: self._handle_safety_alert_dm,
        }

        try:
            key = QueueTaskType(task_type)
        except ValueError:
            log.warning("unknown_task_type", task_type=task_type)
            return ProcessorResult(success=True, error=f"Unknown task type: {task_type}")

        try:
            result: ProcessorResult = await handlers[key](payload)
            return result
        except Exception as exc:
            log.exception("processor_error", task_type=task_type)
            return ProcessorResult(success=False, error=str(exc))

    # ------------------------------------------------------------------
    # Individual handlers
    # ------------------------------------------------------------------

    async def _handle_agent_message(self, payload: dict[str, Any]) -> ProcessorResult:
        """Run the agent for a queued chat message and post the reply.

        Expected payload keys: see :func:`agent_message_payload`.
        """
        if self._agent is None or self._transport is None:
            return ProcessorResult(success=False, error="Agent or transport not available")

        from glados.agent.core import AgentRequest

        message = payload.get("message", "")
        if not message:
            return ProcessorResult(success=False, error="Empty message content")

        reply = await self._agent.handle_message(
            AgentRequest(
                message=message,
                team_id=payload["team_id"],
                user_id=str(payload.get("user_id", "")),
                channel_id=payload.get("channel_id"),
                user_name=payload.get("user_name"),
            )
        )

        sent = await self._transport.send_message(payload["reply_channel_id"], reply.text)
        if not sent.success:
            # Re-running the agent would duplicate alerts and audit rows.
            log.warning(
                "agent_reply_undelivered",
                channel_id=payload["reply_channel_id"],
                error=sent.error,
            )
            return ProcessorResult(success=True, error=sent.error)

        return ProcessorResult(
            success=True, data={"state": reply.state.value, "alert_id": reply.alert_id}
        )

    async def _handle_safety_alert_dm(self, payload: dict[str, Any]) -> ProcessorResult:
        """Send one YPP contact their alert DM (skipped if already delivered)."""
        if self._notifier is None:
            return ProcessorResult(success=False, error="Alert notifier not available")

        from glados.safety.notifications import AlertDM

        sent = await self._notifier.deliver(AlertDM.from_payload(payload))
        return ProcessorResult(success=True, data={"sent": sent})
