"""Tool specifications and the executor interface.

Every tool belongs to exactly one :class:`ToolNamespace`. The registry
routes a call by the namespace recorded on its spec, never by parsing the
tool name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel


class ToolNamespace(StrEnum):
    """Closed set of domains the model can act on."""

    PARTS = "parts"
    ORDERS = "orders"
    BOM = "bom"
    MEMBERS = "members"
    EVENTS = "events"
    DISCORD = "discord"
    SAFETY = "safety"


class ToolExecutionError(Exception):
    """A tool refused the request; the message is shown to the model."""


class NoInput(BaseModel):
    """Input model for tools without parameters."""


@dataclass(frozen=True)
class ToolSpec:
    """A named, schema-typed operation the model may invoke.

    Attributes:
        name: Unique tool name as presented to the model.
        description: What the tool does, for the model.
        namespace: Domain executor that owns the tool.
        input_model: Pydantic model validated once at dispatch.
        concurrent_safe: Whether the tool may run alongside other tools from
            the same model turn. Only side-effect-free reads set this.
    """

    name: str
    description: str
    namespace: ToolNamespace
    input_model: type[BaseModel] = NoInput
    concurrent_safe: bool = False

    def to_model_tool(self) -> dict[str, Any]:
        """Render as a tool definition for the model API."""
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": schema,
        }


@dataclass(frozen=True)
class ToolContext:
    """Who is asking, and from where."""

    team_id: str
    user_id: str
    channel_id: str | None = None
    guild_id: str | None = None


class ToolExecutor(ABC):
    """Domain executor: a narrow switch over its own operations."""

    namespace: ClassVar[ToolNamespace]

    @property
    @abstractmethod
    def specs(self) -> list[ToolSpec]:
        """Tool specs this executor handles."""

    @abstractmethod
    async def execute(
        self, name: str, params: BaseModel, context: ToolContext
    ) -> dict[str, Any]:
        """Run tool *name* with validated *params*."""
