"""Chat-platform tools: post to team channels and list them."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from glados.tools.base import (
    ToolContext,
    ToolExecutionError,
    ToolExecutor,
    ToolNamespace,
    ToolSpec,
)
from glados.transport import ChannelInfo, ChannelKind, ChatTransport, RichContent

NO_GUILD_LINKED = (
    "This team doesn't have a Discord server linked. "
    "Please link your Discord server in the dashboard."
)

_TEXT_KINDS = frozenset({ChannelKind.TEXT, ChannelKind.ANNOUNCEMENT})
_VOICE_KINDS = frozenset({ChannelKind.VOICE, ChannelKind.STAGE})


class ChannelTypeFilter(StrEnum):
    TEXT = "text"
    VOICE = "voice"
    ALL = "all"


class EmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False


class Embed(BaseModel):
    title: str | None = None
    description: str | None = None
    color: int | None = Field(default=None, description="Embed color as a decimal number")
    fields: list[EmbedField] = Field(default_factory=list)


class SendMessageInput(BaseModel):
    message: str = Field(min_length=1, description="Message content; markdown is supported")
    channel_name: str | None = Field(
        default=None, description="Channel name, e.g. 'general'. See discord_list_channels."
    )
    channel_id: str | None = Field(default=None, description="Channel ID, if already known")
    embed: Embed | None = Field(default=None, description="Optional rich embed")


class ListChannelsInput(BaseModel):
    type: ChannelTypeFilter = Field(
        default=ChannelTypeFilter.TEXT, description="Filter by channel type"
    )


def filter_channels(channels: list[ChannelInfo], kind: ChannelTypeFilter) -> list[ChannelInfo]:
    """Filter by kind and order by display position. Categories are never listed."""
    if kind == ChannelTypeFilter.TEXT:
        selected = [c for c in channels if c.kind in _TEXT_KINDS]
    elif kind == ChannelTypeFilter.VOICE:
        selected = [c for c in channels if c.kind in _VOICE_KINDS]
    else:
        selected = [c for c in channels if c.kind != ChannelKind.CATEGORY]
    return sorted(selected, key=lambda c: c.position)


class MessagingExecutor(ToolExecutor):
    namespace = ToolNamespace.DISCORD

    def __init__(self, transport: ChatTransport) -> None:
        self._transport = transport

    @property
    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(
                name="discord_send_message",
                description=(
                    "Send a message to a Discord channel, e.g. announcements or reminders."
                ),
                namespace=self.namespace,
                input_model=SendMessageInput,
            ),
            ToolSpec(
                name="discord_list_channels",
                description=(
                    "List channels on the team's Discord server. Use this to find the "
                    "right channel before sending a message."
                ),
                namespace=self.namespace,
                input_model=ListChannelsInput,
                concurrent_safe=True,
            ),
        ]

    async def execute(self, name: str, params: BaseModel, context: ToolContext) -> dict[str, Any]:
        if not context.guild_id:
            raise ToolExecutionError(NO_GUILD_LINKED)
        guild_id = context.guild_id

        match params:
            case ListChannelsInput(type=kind):
                channels = filter_channels(await self._transport.list_channels(guild_id), kind)
                return {
                    "count": len(channels),
                    "channels": [
                        {
                            "id": c.id,
                            "name": c.name,
                            "type": "text" if c.kind in _TEXT_KINDS else "voice",
                        }
                        for c in channels
                    ],
                }
            case SendMessageInput(message=message, embed=embed):
                target = await self._resolve_channel(params, guild_id)
                rich = (
                    RichContent(
                        title=embed.title,
                        description=embed.description,
                        color=embed.color,
                        fields=[f.model_dump() for f in embed.fields],
                    )
                    if embed
                    else None
                )
                result = await self._transport.send_message(target, message, rich)
                if not result.success:
                    return {"success": False, "error": result.error or "Failed to send message"}
                return {"success": True, "message_id": result.message_id}
        raise ToolExecutionError(f"Unknown Discord tool: {name}")

    async def _resolve_channel(self, params: SendMessageInput, guild_id: str) -> str:
        if params.channel_id:
            return params.channel_id
        if not params.channel_name:
            raise ToolExecutionError("Please provide either channelId or channelName")
        wanted = params.channel_name.lower()
        for channel in await self._transport.list_channels(guild_id):
            if channel.name.lower() == wanted:
                return channel.id
        raise ToolExecutionError(
            f'Channel "{params.channel_name}" not found. '
            "Use discord_list_channels to see available channels."
        )
