from .discord_client import DiscordCapabilityOracle, DiscordSender

__all__ = ["DiscordCapabilityOracle", "DiscordSender"]
