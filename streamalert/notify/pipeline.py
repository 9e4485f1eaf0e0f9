"""
Live notification pipeline

A "went live" webhook usually arrives before the stream is queryable, so
enrichment is retried a fixed number of times with a fixed delay. A miss
("not live", "not found") is treated exactly like a transport error.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from streamalert.errors import StreamAlertError, StreamUnavailableError
from streamalert.notify.discord import DiscordNotifier
from streamalert.schemas.events import Platform
from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="notify")

DEFAULT_RETRIES = 6
DEFAULT_RETRY_DELAY_SECONDS = 5.0

TWITCH_THUMBNAIL_SIZE = ("1280", "720")


@dataclass(frozen=True)
class NormalizedStreamData:
    """Platform-agnostic stream details needed by the Discord formatter."""

    stream_title: str
    stream_category: str
    username: str
    stream_url: str
    stream_thumbnail: str
    user_thumbnail: str


def _first(result: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not result:
        return None
    data = result.get("data")
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


def normalize_twitch(
    stream: Dict[str, Any], user: Dict[str, Any], cache_buster_ms: Optional[int] = None
) -> NormalizedStreamData:
    width, height = TWITCH_THUMBNAIL_SIZE
    cache_buster_ms = cache_buster_ms if cache_buster_ms is not None else int(time.time() * 1000)
    thumbnail = (stream.get("thumbnail_url") or "").replace("{width}", width).replace("{height}", height)
    login = user.get("login") or stream.get("user_login") or user.get("display_name") or ""
    return NormalizedStreamData(
        stream_title=stream.get("title") or "",
        stream_category=stream.get("game_name") or "",
        username=user.get("display_name") or login,
        stream_url=f"https://twitch.tv/{login}",
        stream_thumbnail=f"{thumbnail}?t={cache_buster_ms}" if thumbnail else "",
        user_thumbnail=user.get("profile_image_url") or "",
    )


def _kick_is_live(channel: Dict[str, Any]) -> bool:
    stream = channel.get("stream")
    if isinstance(stream, dict) and "is_live" in stream:
        return bool(stream["is_live"])
    # Website endpoint: "livestream" is null while offline
    livestream = channel.get("livestream")
    if isinstance(livestream, dict):
        return bool(livestream.get("is_live", True))
    return False


def normalize_kick(
    channel: Dict[str, Any],
    user: Optional[Dict[str, Any]] = None,
    slug: Optional[str] = None,
) -> NormalizedStreamData:
    """
    Map either the official channel shape or the website channel shape.

    Official: stream_title, category.name, slug, stream.thumbnail
    Website:  livestream.session_title, livestream.categories[0].name,
              livestream.thumbnail.url, user.username, user.profile_pic
    """
    user = user or {}
    livestream = channel.get("livestream") if isinstance(channel.get("livestream"), dict) else {}
    channel_user = channel.get("user") if isinstance(channel.get("user"), dict) else {}
    stream = channel.get("stream") if isinstance(channel.get("stream"), dict) else {}

    category = channel.get("category") if isinstance(channel.get("category"), dict) else {}
    category_name = category.get("name")
    if not category_name:
        categories = livestream.get("categories") or []
        if categories and isinstance(categories[0], dict):
            category_name = categories[0].get("name")

    thumbnail = stream.get("thumbnail")
    if not thumbnail:
        legacy_thumbnail = livestream.get("thumbnail")
        thumbnail = legacy_thumbnail.get("url") if isinstance(legacy_thumbnail, dict) else legacy_thumbnail

    channel_slug = channel.get("slug") or slug or ""
    username = user.get("name") or user.get("username") or channel_user.get("username") or channel_slug
    if not username:
        raise StreamUnavailableError("Kick channel has no usable username")

    return NormalizedStreamData(
        stream_title=channel.get("stream_title") or livestream.get("session_title") or "",
        stream_category=category_name or "",
        username=username,
        stream_url=f"https://kick.com/{channel_slug or username}",
        stream_thumbnail=thumbnail or "",
        user_thumbnail=user.get("profile_picture") or channel_user.get("profile_pic") or "",
    )


class NotificationPipeline:
    """Enriches a broadcaster id with retry and posts it to Discord."""

    def __init__(
        self,
        notifier: DiscordNotifier,
        twitch_client: Optional[Any] = None,
        kick_client: Optional[Any] = None,
        retries: int = DEFAULT_RETRIES,
        delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.notifier = notifier
        self.twitch_client = twitch_client
        self.kick_client = kick_client
        self.retries = retries
        self.delay = delay
        self._sleep = sleep

    async def fetch_twitch(self, broadcaster_id: str) -> NormalizedStreamData:
        if self.twitch_client is None:
            raise StreamUnavailableError("Twitch client unavailable", broadcaster_id)

        stream = _first(await self.twitch_client.get_stream(broadcaster_id))
        if stream is None:
            raise StreamUnavailableError(
                f"Stream for user ID {broadcaster_id} not found or user is not live",
                broadcaster_id,
            )
        user = _first(await self.twitch_client.get_user_from_id(broadcaster_id))
        if user is None:
            raise StreamUnavailableError(
                f"Broadcaster for user ID {broadcaster_id} not found", broadcaster_id
            )
        return normalize_twitch(stream, user)

    async def fetch_kick(
        self, broadcaster_id: str, slug: Optional[str] = None
    ) -> NormalizedStreamData:
        if self.kick_client is None:
            raise StreamUnavailableError("Kick client unavailable", broadcaster_id)

        channel = await self.kick_client.get_channel(broadcaster_user_id=broadcaster_id, slug=slug)
        if not channel:
            raise StreamUnavailableError(
                f"Channel for broadcaster {broadcaster_id} not found", broadcaster_id
            )
        if not _kick_is_live(channel):
            raise StreamUnavailableError(
                f"Channel for broadcaster {broadcaster_id} is not live", broadcaster_id
            )
        user = await self.kick_client.get_user(broadcaster_id)
        try:
            return normalize_kick(channel, user, slug)
        except (AttributeError, TypeError, IndexError) as exc:
            raise StreamUnavailableError(
                f"Unexpected Kick channel payload: {exc}", broadcaster_id
            ) from exc

    async def _fetch(
        self, platform: Platform, broadcaster_id: str, slug: Optional[str]
    ) -> NormalizedStreamData:
        if platform is Platform.TWITCH:
            return await self.fetch_twitch(broadcaster_id)
        return await self.fetch_kick(broadcaster_id, slug)

    async def get_stream_with_retry(
        self,
        platform: Platform,
        broadcaster_id: str,
        retries: Optional[int] = None,
        delay: Optional[float] = None,
        slug: Optional[str] = None,
    ) -> Optional[NormalizedStreamData]:
        """
        Attempt enrichment up to ``retries`` times, ``delay`` seconds apart.

        Returns:
            Normalized stream data, or None once every attempt has failed
        """
        retries = self.retries if retries is None else retries
        delay = self.delay if delay is None else delay

        for attempt in range(1, retries + 1):
            try:
                return await self._fetch(platform, broadcaster_id, slug)
            except (StreamAlertError, httpx.HTTPError) as exc:
                logger.warning(
                    "[%s] %s. Retrying... (%s/%s)",
                    platform.label,
                    exc,
                    attempt,
                    retries,
                )
            if attempt < retries:
                await self._sleep(delay)
        return None

    async def notify(
        self, platform: Platform, broadcaster_id: str, slug: Optional[str] = None
    ) -> bool:
        """Run enrichment and post to Discord. Never raises for delivery problems."""
        data = await self.get_stream_with_retry(platform, broadcaster_id, slug=slug)
        if data is None:
            logger.error(
                "[%s] Failed to retrieve stream data for %s after %s attempts, notification dropped",
                platform.label,
                broadcaster_id,
                self.retries,
            )
            return False
        return await self.notifier.send(platform, data)
