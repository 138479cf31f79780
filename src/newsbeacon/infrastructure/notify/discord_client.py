# File: src/newsbeacon/infrastructure/notify/discord_client.py
# Destination resolution and message sending through a connected discord.py client.

import logging
from typing import Optional

import discord

from newsbeacon.domain.value_objects import Destination

log = logging.getLogger(__name__)


def _snowflake(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DiscordCapabilityOracle:
    """
    Answers "can the bot post in this channel?" for a Destination.

    Returns the sendable channel, or None when the guild or channel is gone or
    the bot lacks SendMessages there. Transient API errors (rate limits, 5xx)
    propagate so the caller can retry.
    """

    def __init__(self, client: discord.Client):
        self.client = client

    async def _resolve_guild(self, guild_id: int) -> Optional[discord.Guild]:
        guild = self.client.get_guild(guild_id)
        if guild is not None:
            return guild
        try:
            return await self.client.fetch_guild(guild_id)
        except (discord.NotFound, discord.Forbidden):
            return None

    async def _resolve_channel(self, guild: discord.Guild, channel_id: int):
        channel = guild.get_channel(channel_id)
        if channel is not None:
            return channel
        try:
            return await guild.fetch_channel(channel_id)
        except (discord.NotFound, discord.Forbidden):
            return None

    async def _resolve_member(self, guild: discord.Guild):
        if guild.me is not None:
            return guild.me
        if self.client.user is None:
            return None
        try:
            return await guild.fetch_member(self.client.user.id)
        except (discord.NotFound, discord.Forbidden):
            return None

    async def resolve(self, destination: Destination):
        guild_id = _snowflake(destination.server_id)
        channel_id = _snowflake(destination.channel_id)
        if guild_id is None or channel_id is None:
            log.warning("Destination %s has a non-numeric id.", destination)
            return None

        guild = await self._resolve_guild(guild_id)
        if guild is None:
            log.warning("Guild %s not found for destination %s.", guild_id, destination)
            return None

        channel = await self._resolve_channel(guild, channel_id)
        if channel is None or not hasattr(channel, "send"):
            log.warning("Channel %s not found or not a text channel (%s).", channel_id, destination)
            return None

        member = await self._resolve_member(guild)
        if member is None:
            log.warning("Bot member not resolvable in guild %s.", guild_id)
            return None
        if not channel.permissions_for(member).send_messages:
            log.warning("Missing SendMessages permission in %s.", destination)
            return None
        return channel


class DiscordSender:
    """Posts embeds to a resolved channel, one embed per message."""

    async def send(self, channel, embed: discord.Embed, content: Optional[str] = None) -> discord.Message:
        return await channel.send(
            content=content,
            embed=embed,
            allowed_mentions=discord.AllowedMentions(roles=True, everyone=False, users=False),
        )

