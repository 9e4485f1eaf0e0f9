"""
Discord incoming-webhook delivery

Builds the "went live" rich embed and posts it. Delivery is fire-and-forget:
failures are logged and never retried or raised.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

import httpx

from streamalert.schemas.events import Platform
from streamalert.utils.logging import get_logger

if TYPE_CHECKING:
    from streamalert.notify.pipeline import NormalizedStreamData

logger = get_logger(__name__, category="notify")

EMBED_COLORS = {
    Platform.TWITCH: 9520895,
    Platform.KICK: 5504024,
}


def build_discord_message(
    platform: Platform,
    data: "NormalizedStreamData",
    username: str,
    avatar_url: Optional[str] = None,
    sent_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    sent_at = sent_at or datetime.now(timezone.utc)
    message: Dict[str, Any] = {
        "content": f"{data.username} just went live at {data.stream_url} !",
        "embeds": [
            {
                "title": data.stream_title,
                "description": "",
                "fields": [
                    {
                        "name": "Game",
                        "value": data.stream_category or "Unknown",
                        "inline": False,
                    }
                ],
                "author": {
                    "name": data.username,
                    "icon_url": data.user_thumbnail,
                },
                "url": data.stream_url,
                "image": {"url": data.stream_thumbnail},
                "timestamp": sent_at.isoformat(),
                "color": EMBED_COLORS[platform],
            }
        ],
        "username": username,
    }
    if avatar_url:
        message["avatar_url"] = avatar_url
    return message


class DiscordNotifier:
    """Posts live notifications to a Discord-compatible incoming webhook."""

    def __init__(
        self,
        webhook_url: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        username: str = "StreamAlert",
        avatar_url: Optional[str] = None,
    ):
        self.webhook_url = webhook_url
        self.username = username
        self.avatar_url = avatar_url
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))

    async def close(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    async def send(self, platform: Platform, data: "NormalizedStreamData") -> bool:
        """
        Post the notification.

        Returns:
            True if Discord accepted the message, False otherwise
        """
        if not self.webhook_url:
            logger.error("[%s] DISCORD_WEBHOOK_URL not set, dropping notification", platform.label)
            return False

        message = build_discord_message(platform, data, self.username, self.avatar_url)
        try:
            response = await self.http_client.post(self.webhook_url, json=message)
        except httpx.HTTPError as exc:
            logger.error("[%s] Error sending message to Discord: %s", platform.label, exc)
            return False

        if not response.is_success:
            logger.error(
                "[%s] Error sending message to Discord: %s - %s",
                platform.label,
                response.status_code,
                response.text,
            )
            return False

        logger.info("[%s] Sent Discord notification for %s", platform.label, data.username)
        return True
