"""
Notify layer: enrichment with retry and Discord delivery
"""

from .discord import DiscordNotifier, build_discord_message
from .pipeline import NormalizedStreamData, NotificationPipeline

__all__ = [
    "DiscordNotifier",
    "build_discord_message",
    "NormalizedStreamData",
    "NotificationPipeline",
]
