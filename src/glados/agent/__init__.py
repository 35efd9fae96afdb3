"""Safety-gated agent loop."""

from glados.agent.core import Agent, AgentReply, AgentRequest, AgentState
from glados.agent.model import ClaudeModelClient, ModelClient, ModelResponse, StopReason

__all__ = [
    "Agent",
    "AgentReply",
    "AgentRequest",
    "AgentState",
    "ClaudeModelClient",
    "ModelClient",
    "ModelResponse",
    "StopReason",
]
