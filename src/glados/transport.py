"""Chat transport boundary used by tools and alert delivery."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol


class ChannelKind(StrEnum):
    """Channel kinds the pipeline distinguishes."""

    TEXT = "text"
    VOICE = "voice"
    CATEGORY = "category"
    ANNOUNCEMENT = "announcement"
    STAGE = "stage"
    FORUM = "forum"
    OTHER = "other"


@dataclass(frozen=True)
class ChannelInfo:
    """A channel in a guild, as listed by the transport."""

    id: str
    name: str
    kind: ChannelKind
    position: int = 0
    parent_id: str | None = None


@dataclass
class RichContent:
    """Embed-style rich content attached to an outbound message."""

    title: str | None = None
    description: str | None = None
    color: int | None = None
    fields: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class SendResult:
    """Outcome of an outbound send."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class ChatTransport(Protocol):
    """Outbound capabilities the pipeline needs from a chat platform."""

    async def send_message(
        self,
        target_id: str,
        text: str,
        rich: RichContent | None = None,
    ) -> SendResult: ...

    async def send_direct_message(self, user_id: str, text: str) -> SendResult: ...

    async def list_channels(self, guild_id: str) -> list[ChannelInfo]: ...
