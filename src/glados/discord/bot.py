"""Discord bot implementation."""

from __future__ import annotations

from uuid import uuid4

import discord
import structlog
from discord import app_commands

from glados.agent.core import Agent, AgentRequest
from glados.config import get_settings
from glados.constants import (
    ACK_REACTION_EMOJI,
    MAX_DISCORD_MESSAGE_LENGTH,
    TEAM_NOT_FOUND_RESPONSE,
)
from glados.discord.rate_limiter import RATE_LIMIT_WARNING, RateLimiter
from glados.logging import get_logger
from glados.queue.manager import QueueManager
from glados.queue.models import QueuePriority, QueueTask, QueueTaskType
from glados.queue.processors import agent_message_payload
from glados.roles import PermissionDeniedError
from glados.safety.escalation import SafetyEscalation
from glados.safety.models import AckMethod, AcknowledgmentError
from glados.teamdata.models import Team
from glados.teamdata.storage import TeamDataStore
from glados.utils import split_text_chunks

log = get_logger("glados.discord.bot")

ACK_CONFIRMATION = "Thanks, this alert is now marked as acknowledged."
ACK_ALREADY_DONE = "This alert was already acknowledged."


class GladosBot(discord.Client):
    """GLaDOS Discord bot: routes mentions and DMs to the agent."""

    def __init__(
        self,
        agent: Agent,
        team_data: TeamDataStore,
        escalation: SafetyEscalation,
        queue_manager: QueueManager | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        intents.dm_reactions = True

        super().__init__(intents=intents)

        self._agent = agent
        self._team_data = team_data
        self._escalation = escalation
        self._queue_manager = queue_manager
        self._rate_limiter = rate_limiter or RateLimiter()
        self._tree = app_commands.CommandTree(self)

        self._setup_commands()

    def _setup_commands(self) -> None:
        """Set up slash commands."""

        @self._tree.command(name="ask", description="Ask GLaDOS a question")
        async def ask_command(
            interaction: discord.Interaction[discord.Client], question: str
        ) -> None:
            await self._handle_ask(interaction, question)

        @self._tree.command(name="ping", description="Check if GLaDOS is online")
        async def ping_command(interaction: discord.Interaction[discord.Client]) -> None:
            await interaction.response.send_message(
                f"Pong! Latency: {round(self.latency * 1000)}ms",
                ephemeral=True,
            )

        @self._tree.command(name="alerts", description="Pending safety alerts (mentors only)")
        async def alerts_command(interaction: discord.Interaction[discord.Client]) -> None:
            await self._handle_alerts(interaction)

    async def setup_hook(self) -> None:
        """Sync slash commands once connected."""
        await self._tree.sync()
        log.info("commands_synced")

    async def on_ready(self) -> None:
        """Called when the bot is fully ready."""
        log.info("bot_ready", user=str(self.user), guilds=len(self.guilds))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def on_message(self, message: discord.Message) -> None:
        """Handle incoming messages."""
        if message.author == self.user:
            return

        # Ignore messages from bots (unless explicitly allowed for testing)
        if message.author.bot and not get_settings().allow_bot_messages:
            return

        is_dm = isinstance(message.channel, discord.DMChannel)
        is_mention = self.user in message.mentions if self.user else False

        if not (is_dm or is_mention):
            return

        structlog.contextvars.bind_contextvars(
            request_id=str(uuid4())[:12],
            user_id=message.author.id,
            channel_id=message.channel.id,
        )
        try:
            if is_dm and message.reference and message.reference.message_id:
                if await self._acknowledge_reply(message):
                    return

            allowed, warning = self._rate_limiter.check(message.author.id)
            if not allowed:
                log.info(
                    "message_rate_limited",
                    retry_in=round(self._rate_limiter.remaining(message.author.id), 1),
                )
                if warning:
                    await message.reply(warning, mention_author=True)
                return

            content = message.content
            if is_mention and self.user:
                content = content.replace(f"<@{self.user.id}>", "").strip()

            if not content:
                await message.reply("How can I help you?", mention_author=True)
                return

            team = await self._resolve_team(message.guild, message.author.id)
            if team is None:
                log.info("message_from_unregistered_team")
                await message.reply(TEAM_NOT_FOUND_RESPONSE, mention_author=True)
                return

            if self._queue_manager is not None and self._queue_manager.is_running:
                await self._enqueue_message(message, content, team)
            else:
                await self._process_message_inline(message, content, team)
        finally:
            structlog.contextvars.clear_contextvars()

    async def _resolve_team(self, guild: discord.Guild | None, user_id: int) -> Team | None:
        if guild is not None:
            return await self._team_data.get_team_by_guild(str(guild.id))
        return await self._team_data.find_team_for_discord_user(str(user_id))

    async def _enqueue_message(self, message: discord.Message, content: str, team: Team) -> None:
        """Enqueue a message for processing by a queue worker."""
        assert self._queue_manager is not None  # caller checks

        try:
            await self._queue_manager.enqueue(
                QueueTask(
                    task_type=QueueTaskType.AGENT_MESSAGE,
                    payload=agent_message_payload(
                        message=content,
                        team_id=team.id,
                        user_id=str(message.author.id),
                        channel_id=str(message.channel.id),
                        user_name=message.author.display_name,
                        reply_channel_id=str(message.channel.id),
                    ),
                    user_id=str(message.author.id),
                    channel_id=str(message.channel.id),
                    priority=QueuePriority.INTERACTIVE,
                )
            )
            await message.channel.typing()
        except Exception:
            log.exception("enqueue_failed")
            await self._process_message_inline(message, content, team)

    async def _process_message_inline(
        self, message: discord.Message, content: str, team: Team
    ) -> None:
        """Run the agent directly (queue disabled or unavailable)."""
        async with message.channel.typing():
            try:
                reply = await self._agent.handle_message(
                    AgentRequest(
                        message=content,
                        team_id=team.id,
                        user_id=str(message.author.id),
                        channel_id=str(message.channel.id),
                        user_name=message.author.display_name,
                    )
                )
            except Exception:
                log.exception("response_generation_failed", message_length=len(content))
                await message.reply(
                    "I ran into an issue processing your message. Please try again.",
                    mention_author=True,
                )
                return

            await self._send_long_reply(message, reply.text)

    # ------------------------------------------------------------------
    # Alert acknowledgment (reply and reaction paths)
    # ------------------------------------------------------------------

    async def _acknowledge_reply(self, message: discord.Message) -> bool:
        """Treat a DM reply to an alert DM as an acknowledgment.

        Returns ``True`` if the referenced message was an alert DM.
        """
        assert message.reference is not None and message.reference.message_id is not None
        try:
            result = await self._escalation.acknowledge_delivery(
                str(message.reference.message_id),
                method=AckMethod.REPLY,
                acknowledged_by=str(message.author.id),
            )
        except AcknowledgmentError as e:
            log.info("alert_reply_ack_refused", kind=e.kind.value)
            await message.reply(ACK_ALREADY_DONE, mention_author=False)
            return True
        if result is None:
            return False
        await message.reply(ACK_CONFIRMATION, mention_author=False)
        return True

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        """Acknowledge an alert when its contact reacts to the DM."""
        if payload.guild_id is not None or str(payload.emoji) != ACK_REACTION_EMOJI:
            return
        if self.user is not None and payload.user_id == self.user.id:
            return

        try:
            result = await self._escalation.acknowledge_delivery(
                str(payload.message_id),
                method=AckMethod.EMOJI,
                acknowledged_by=str(payload.user_id),
            )
        except AcknowledgmentError as e:
            log.info("alert_reaction_ack_refused", kind=e.kind.value)
            return
        if result is None:
            return

        try:
            user = self.get_user(payload.user_id) or await self.fetch_user(payload.user_id)
            await user.send(ACK_CONFIRMATION)
        except discord.HTTPException:
            log.warning("ack_confirmation_dm_failed", user_id=payload.user_id)

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    async def _handle_ask(
        self,
        interaction: discord.Interaction[discord.Client],
        question: str,
    ) -> None:
        """Handle /ask command."""
        structlog.contextvars.bind_contextvars(
            request_id=str(uuid4())[:12],
            user_id=interaction.user.id,
            channel_id=interaction.channel_id or 0,
        )
        try:
            allowed, warning = self._rate_limiter.check(interaction.user.id)
            if not allowed:
                log.info(
                    "ask_rate_limited",
                    retry_in=round(self._rate_limiter.remaining(interaction.user.id), 1),
                )
                await interaction.response.send_message(
                    warning or RATE_LIMIT_WARNING, ephemeral=True
                )
                return

            await interaction.response.defer()

            team = await self._resolve_team(interaction.guild, interaction.user.id)
            if team is None:
                await interaction.followup.send(TEAM_NOT_FOUND_RESPONSE)
                return

            reply = await self._agent.handle_message(
                AgentRequest(
                    message=question,
                    team_id=team.id,
                    user_id=str(interaction.user.id),
                    channel_id=str(interaction.channel_id) if interaction.channel_id else None,
                    user_name=interaction.user.display_name,
                )
            )
            await self._send_long_interaction_response(interaction, reply.text)
        finally:
            structlog.contextvars.clear_contextvars()

    async def _handle_alerts(self, interaction: discord.Interaction[discord.Client]) -> None:
        """Handle /alerts: pending alert count for mentors."""
        await interaction.response.defer(ephemeral=True)

        team = await self._resolve_team(interaction.guild, interaction.user.id)
        if team is None:
            await interaction.followup.send(TEAM_NOT_FOUND_RESPONSE)
            return

        member = await self._team_data.get_member_by_discord_id(team.id, str(interaction.user.id))
        try:
            pending = await self._escalation.pending_count(
                team.id, viewer_role=member.role if member else None
            )
        except PermissionDeniedError:
            await interaction.followup.send("Only mentors can view safety alerts.")
            return

        await interaction.followup.send(
            f"Team {team.number} has {pending} pending safety alert(s). "
            "Review them on the dashboard."
        )

    # ------------------------------------------------------------------
    # Sending helpers
    # ------------------------------------------------------------------

    async def _send_long_reply(
        self,
        message: discord.Message,
        content: str,
        mention_author: bool = True,
        max_length: int = MAX_DISCORD_MESSAGE_LENGTH,
    ) -> None:
        """Send a reply to a message, splitting if it exceeds Discord's limit.

        First chunk is sent as a reply; subsequent chunks as channel messages.
        """
        parts = split_text_chunks(content, max_length=max_length)

        for i, part in enumerate(parts):
            if part:
                if i == 0:
                    await message.reply(part, mention_author=mention_author)
                else:
                    await message.channel.send(part)

    async def _send_long_interaction_response(
        self,
        interaction: discord.Interaction[discord.Client],
        content: str,
        max_length: int = MAX_DISCORD_MESSAGE_LENGTH,
    ) -> None:
        """Send an interaction followup, splitting if too long."""
        for part in split_text_chunks(content, max_length=max_length):
            if part:
                await interaction.followup.send(part)
