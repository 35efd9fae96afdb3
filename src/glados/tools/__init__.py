"""Domain tools the agent can call, and the registry that dispatches them."""

from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)
from glados.tools.registry import ToolRegistry

__all__ = [
    "ToolContext",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolNamespace",
    "ToolRegistry",
    "ToolSpec",
]
