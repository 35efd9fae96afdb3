"""Discord transport and bot."""

from glados.discord.bot import GladosBot
from glados.discord.transport import DiscordTransport

__all__ = ["DiscordTransport", "GladosBot"]
