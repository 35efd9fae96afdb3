"""Discord implementation of :class:`~glados.transport.ChatTransport`."""

from __future__ import annotations

import discord

from glados.constants import MAX_DISCORD_MESSAGE_LENGTH
from glados.logging import get_logger
from glados.transport import ChannelInfo, ChannelKind, RichContent, SendResult
from glados.utils import split_text_chunks

log = get_logger("glados.discord.transport")

_CHANNEL_KINDS: dict[discord.ChannelType, ChannelKind] = {
    discord.ChannelType.text: ChannelKind.TEXT,
    discord.ChannelType.voice: ChannelKind.VOICE,
    discord.ChannelType.category: ChannelKind.CATEGORY,
    discord.ChannelType.news: ChannelKind.ANNOUNCEMENT,
    discord.ChannelType.stage_voice: ChannelKind.STAGE,
    discord.ChannelType.forum: ChannelKind.FORUM,
}


def to_embed(rich: RichContent) -> discord.Embed:
    embed = discord.Embed(title=rich.title, description=rich.description, color=rich.color)
    for item in rich.fields:
        embed.add_field(
            name=str(item.get("name", "")),
            value=str(item.get("value", "")),
            inline=bool(item.get("inline", False)),
        )
    return embed


def _parse_id(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DiscordTransport:
    """Send messages and list channels through a connected ``discord.Client``."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    async def send_message(
        self,
        target_id: str,
        text: str,
        rich: RichContent | None = None,
    ) -> SendResult:
        channel_id = _parse_id(target_id)
        if channel_id is None:
            return SendResult(success=False, error=f"Invalid channel id: {target_id}")

        try:
            channel = self._client.get_channel(channel_id)
            if channel is None:
                channel = await self._client.fetch_channel(channel_id)
            if not isinstance(channel, discord.abc.Messageable):
                return SendResult(success=False, error="Channel cannot receive messages")
            message_id = await self._send_chunks(channel, text, rich)
        except discord.HTTPException as e:
            log.warning("discord_send_failed", channel_id=target_id, status=e.status)
            return SendResult(success=False, error=f"Failed to send message: {e.status}")
        return SendResult(success=True, message_id=message_id)

    async def send_direct_message(self, user_id: str, text: str) -> SendResult:
        discord_user_id = _parse_id(user_id)
        if discord_user_id is None:
            log.warning("send_dm_invalid_user_id", user_id=user_id)
            return SendResult(success=False, error=f"Invalid user id: {user_id}")

        try:
            user = self._client.get_user(discord_user_id)
            if user is None:
                user = await self._client.fetch_user(discord_user_id)
            message_id = await self._send_chunks(user, text)
        except discord.HTTPException as e:
            log.warning("send_dm_failed", user_id=user_id, status=e.status)
            return SendResult(success=False, error=f"Failed to send DM: {e.status}")
        return SendResult(success=True, message_id=message_id)

    async def list_channels(self, guild_id: str) -> list[ChannelInfo]:
        parsed = _parse_id(guild_id)
        if parsed is None:
            return []
        guild = self._client.get_guild(parsed)
        if guild is None:
            log.warning("discord_guild_unavailable", guild_id=guild_id)
            return []
        return [
            ChannelInfo(
                id=str(channel.id),
                name=channel.name,
                kind=_CHANNEL_KINDS.get(channel.type, ChannelKind.OTHER),
                position=channel.position,
                parent_id=str(channel.category_id) if channel.category_id else None,
            )
            for channel in guild.channels
        ]

    async def _send_chunks(
        self,
        target: discord.abc.Messageable,
        text: str,
        rich: RichContent | None = None,
    ) -> str | None:
        """Send *text* in as many messages as needed.

        The embed rides on the last chunk. Returns the id of the last message,
        which is the one carrying any instructions at the end of the text.
        """
        parts = split_text_chunks(text, max_length=MAX_DISCORD_MESSAGE_LENGTH) or [""]
        last: discord.Message | None = None
        for i, part in enumerate(parts):
            is_last = i == len(parts) - 1
            if is_last and rich is not None:
                last = await target.send(part or None, embed=to_embed(rich))
            elif part:
                last = await target.send(part)
        return str(last.id) if last is not None else None
