"""
Inbound webhook payload schemas
"""

from .events import (
    KickLivestreamStatusEvent,
    Platform,
    StreamOnlineEvent,
    TwitchWebhookPayload,
)

__all__ = [
    "KickLivestreamStatusEvent",
    "Platform",
    "StreamOnlineEvent",
    "TwitchWebhookPayload",
]
