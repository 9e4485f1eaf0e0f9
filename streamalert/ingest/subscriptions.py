"""
Webhook subscription management

At startup existing subscriptions are deleted and one "went live"
subscription is created per tracked channel. Failures for a single channel
are logged and skipped; nothing here is retried.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx

from streamalert.auth.kick import KickApiClient
from streamalert.auth.twitch import TwitchApiClient
from streamalert.errors import StreamAlertError
from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="system")

TWITCH_ONLINE_SUBSCRIPTION = ("stream.online", "1")

SUBSCRIPTION_ERRORS = (StreamAlertError, httpx.HTTPError)


# --- TWITCH ---


async def create_online_subscription(
    client: TwitchApiClient, broadcaster_id: str, callback_url: str
) -> List[Dict[str, Any]]:
    subscription_type, version = TWITCH_ONLINE_SUBSCRIPTION
    result = await client.create_eventsub_subscription(
        subscription_type,
        version,
        {"broadcaster_user_id": broadcaster_id},
        callback_url,
    )
    return result.get("data") or []


async def list_subscriptions(client: TwitchApiClient) -> List[Dict[str, Any]]:
    result = await client.list_eventsub_subscriptions()
    return result.get("data") or []


async def delete_all_subscriptions(client: TwitchApiClient) -> int:
    existing = await list_subscriptions(client)
    if existing:
        await asyncio.gather(
            *(client.delete_eventsub_subscription(sub["id"]) for sub in existing)
        )
    return len(existing)


async def sync_twitch_subscriptions(
    client: TwitchApiClient, channels: List[str], callback_url: str
) -> int:
    """Replace all EventSub subscriptions with one stream.online per channel."""
    deleted = await delete_all_subscriptions(client)
    logger.info("[Twitch] Deleted %s existing subscriptions", deleted)

    created = 0
    for channel in channels:
        try:
            result = await client.get_user_from_name(channel)
            users = result.get("data") or []
            user = users[0] if isinstance(users, list) and users else None
            if not user:
                logger.error("[Twitch] User not found: %s", channel)
                continue
            await create_online_subscription(client, user["id"], callback_url)
        except SUBSCRIPTION_ERRORS as exc:
            logger.error("[Twitch] Failed to create subscription for %s: %s", channel, exc)
            continue
        created += 1
        logger.info("[Twitch] Created subscription for %s", channel)
    return created


# --- KICK ---


async def create_kick_subscription(
    client: KickApiClient, broadcaster_user_id: int
) -> Optional[Any]:
    if not client.enabled:
        logger.warning("[Kick] Cannot create subscription: Kick is not configured.")
        return None
    return await client.create_event_subscription(broadcaster_user_id)


async def list_kick_subscriptions(client: KickApiClient) -> List[Dict[str, Any]]:
    if not client.enabled:
        logger.warning("[Kick] Cannot list subscriptions: Kick is not configured.")
        return []
    return await client.list_event_subscriptions()


async def delete_all_kick_subscriptions(client: KickApiClient) -> int:
    existing = await list_kick_subscriptions(client)
    if existing:
        await asyncio.gather(
            *(client.delete_event_subscription(sub["id"]) for sub in existing)
        )
    return len(existing)


def _kick_broadcaster_id(channel: Dict[str, Any]) -> Optional[int]:
    value = channel.get("broadcaster_user_id") or channel.get("user_id")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def sync_kick_subscriptions(client: KickApiClient, slugs: List[str]) -> int:
    if not client.enabled or not slugs:
        return 0

    deleted = await delete_all_kick_subscriptions(client)
    logger.info("[Kick] Deleted %s existing subscriptions", deleted)

    created = 0
    for slug in slugs:
        try:
            channel = await client.get_channel(slug=slug)
            broadcaster_id = _kick_broadcaster_id(channel or {})
            if broadcaster_id is None:
                logger.error("[Kick] Channel not found: %s", slug)
                continue
            await create_kick_subscription(client, broadcaster_id)
        except SUBSCRIPTION_ERRORS as exc:
            logger.error("[Kick] Failed to create subscription for %s: %s", slug, exc)
            continue
        created += 1
        logger.info("[Kick] Created subscription for %s", slug)
    return created


async def report_subscription_count(
    client: TwitchApiClient, expected: int, delay: float
) -> Optional[int]:
    """After ``delay`` seconds, compare the live subscription count with ``expected``."""
    await asyncio.sleep(delay)
    try:
        subs = await list_subscriptions(client)
    except SUBSCRIPTION_ERRORS as exc:
        logger.error("[Twitch] Could not list subscriptions: %s", exc)
        return None

    logger.info("[Twitch] Current subscriptions: %s", len(subs))
    if len(subs) < expected:
        logger.warning("[Twitch] Some subscriptions may not have been created successfully.")
    return len(subs)
