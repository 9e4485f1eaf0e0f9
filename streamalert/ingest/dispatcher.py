"""
Webhook dispatch

Every inbound delivery goes through the same steps: required headers are
present, the signature checks out, the body parses, then the message type
decides what happens. Live notifications are handed to the notification
pipeline as an independent task so the HTTP response never waits on
upstream APIs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Coroutine, Mapping, Optional, Set

from pydantic import ValidationError

from streamalert.schemas.events import (
    KickLivestreamStatusEvent,
    Platform,
    StreamOnlineEvent,
    TwitchWebhookPayload,
)
from streamalert.utils.logging import get_logger

if TYPE_CHECKING:
    from streamalert.auth.kick import KickApiClient
    from streamalert.auth.twitch import TwitchApiClient
    from streamalert.notify.pipeline import NotificationPipeline

logger = get_logger(__name__, category="webhook")

TWITCH_MESSAGE_ID = "twitch-eventsub-message-id"
TWITCH_MESSAGE_TIMESTAMP = "twitch-eventsub-message-timestamp"
TWITCH_MESSAGE_SIGNATURE = "twitch-eventsub-message-signature"
TWITCH_MESSAGE_TYPE = "twitch-eventsub-message-type"
TWITCH_REQUIRED_HEADERS = (
    TWITCH_MESSAGE_ID,
    TWITCH_MESSAGE_TIMESTAMP,
    TWITCH_MESSAGE_SIGNATURE,
    TWITCH_MESSAGE_TYPE,
)

KICK_MESSAGE_ID = "kick-event-message-id"
KICK_MESSAGE_TIMESTAMP = "kick-event-message-timestamp"
KICK_SIGNATURE = "kick-event-signature"
KICK_EVENT_TYPE = "kick-event-type"
KICK_REQUIRED_HEADERS = (
    KICK_MESSAGE_ID,
    KICK_MESSAGE_TIMESTAMP,
    KICK_SIGNATURE,
    KICK_EVENT_TYPE,
)

TWITCH_STREAM_ONLINE = "stream.online"
KICK_LIVESTREAM_STATUS = "livestream.status.updated"


class MessageType(Enum):
    VERIFICATION_CHALLENGE = "webhook_callback_verification"
    REVOCATION = "revocation"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


def parse_twitch_message_type(value: Optional[str]) -> MessageType:
    for message_type in (
        MessageType.VERIFICATION_CHALLENGE,
        MessageType.REVOCATION,
        MessageType.NOTIFICATION,
    ):
        if value == message_type.value:
            return message_type
    return MessageType.UNKNOWN


def parse_kick_message_type(value: Optional[str]) -> MessageType:
    if value == KICK_LIVESTREAM_STATUS:
        return MessageType.NOTIFICATION
    return MessageType.UNKNOWN


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: str = ""


def _normalize_headers(headers: Mapping[str, str]) -> dict:
    return {key.lower(): value for key, value in headers.items()}


def _missing(headers: dict, required) -> list:
    return [name for name in required if not headers.get(name)]


class TaskRunner:
    """Runs fire-and-forget coroutines, keeping references until they finish."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc, exc_info=exc
            )

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()


class WebhookDispatcher:
    """Verifies and routes webhook deliveries from Twitch and Kick."""

    def __init__(
        self,
        pipeline: "NotificationPipeline",
        twitch_client: Optional["TwitchApiClient"] = None,
        kick_client: Optional["KickApiClient"] = None,
        runner: Optional[TaskRunner] = None,
    ):
        self.pipeline = pipeline
        self.twitch_client = twitch_client
        self.kick_client = kick_client
        self.runner = runner or TaskRunner()

    # --- TWITCH ---

    async def handle_twitch(self, headers: Mapping[str, str], body: bytes) -> WebhookResult:
        headers = _normalize_headers(headers)
        missing = _missing(headers, TWITCH_REQUIRED_HEADERS)
        if missing:
            logger.warning("[Twitch] Rejected webhook, missing headers: %s", ", ".join(missing))
            return WebhookResult(400, "Missing required headers")

        if self.twitch_client is None or not self.twitch_client.verify_signature(
            headers[TWITCH_MESSAGE_ID],
            headers[TWITCH_MESSAGE_TIMESTAMP],
            body,
            headers[TWITCH_MESSAGE_SIGNATURE],
        ):
            logger.warning(
                "[Twitch] Rejected webhook %s: invalid signature", headers[TWITCH_MESSAGE_ID]
            )
            return WebhookResult(403, "Invalid signature")

        try:
            payload = TwitchWebhookPayload.model_validate_json(body)
        except ValidationError:
            logger.warning("[Twitch] Rejected webhook %s: malformed body", headers[TWITCH_MESSAGE_ID])
            return WebhookResult(400, "Malformed body")

        message_type = parse_twitch_message_type(headers[TWITCH_MESSAGE_TYPE])
        subscription_type = payload.subscription.type if payload.subscription else None

        if message_type is MessageType.VERIFICATION_CHALLENGE:
            if not payload.challenge:
                return WebhookResult(400, "Missing challenge")
            logger.info("[Twitch] Subscription verification request for %s", subscription_type)
            return WebhookResult(200, payload.challenge)

        if message_type is MessageType.REVOCATION:
            logger.warning(
                "[Twitch] Subscription %s revoked (%s)",
                payload.subscription.id if payload.subscription else "unknown",
                payload.subscription.status if payload.subscription else "unknown",
            )
            return WebhookResult(200)

        if message_type is MessageType.NOTIFICATION:
            if subscription_type and subscription_type != TWITCH_STREAM_ONLINE:
                logger.info("[Twitch] Ignoring %s notification", subscription_type)
                return WebhookResult(200)
            try:
                event = StreamOnlineEvent.model_validate(payload.event or {})
            except ValidationError:
                logger.warning("[Twitch] Notification without broadcaster id ignored")
                return WebhookResult(200)

            logger.info("[Twitch] Received notification for broadcaster ID %s", event.broadcaster_user_id)
            self.runner.spawn(
                self.pipeline.notify(Platform.TWITCH, event.broadcaster_user_id),
                name=f"notify-twitch-{event.broadcaster_user_id}",
            )
            return WebhookResult(200)

        logger.info("[Twitch] Unhandled message type %s", headers[TWITCH_MESSAGE_TYPE])
        return WebhookResult(200, "Listening for Twitch events")

    # --- KICK ---

    async def handle_kick(self, headers: Mapping[str, str], body: bytes) -> WebhookResult:
        headers = _normalize_headers(headers)
        missing = _missing(headers, KICK_REQUIRED_HEADERS)
        if missing:
            logger.warning("[Kick] Rejected webhook, missing headers: %s", ", ".join(missing))
            return WebhookResult(400, "Missing required headers")

        if self.kick_client is None or not self.kick_client.verify_signature(
            headers[KICK_MESSAGE_ID],
            headers[KICK_MESSAGE_TIMESTAMP],
            body,
            headers[KICK_SIGNATURE],
        ):
            logger.warning("[Kick] Rejected webhook %s: invalid signature", headers[KICK_MESSAGE_ID])
            return WebhookResult(403, "Invalid signature")

        message_type = parse_kick_message_type(headers[KICK_EVENT_TYPE])
        if message_type is not MessageType.NOTIFICATION:
            logger.info("[Kick] Unhandled event type %s", headers[KICK_EVENT_TYPE])
            return WebhookResult(200)

        try:
            event = KickLivestreamStatusEvent.model_validate_json(body)
        except ValidationError:
            logger.warning("[Kick] Rejected webhook %s: malformed body", headers[KICK_MESSAGE_ID])
            return WebhookResult(400, "Malformed body")

        broadcaster_id = str(event.broadcaster.user_id)
        if not event.is_live:
            logger.info("[Kick] Broadcaster %s went offline", broadcaster_id)
            return WebhookResult(200)

        logger.info("[Kick] Received live event for broadcaster %s", broadcaster_id)
        self.runner.spawn(
            self.pipeline.notify(
                Platform.KICK, broadcaster_id, slug=event.broadcaster.channel_slug
            ),
            name=f"notify-kick-{broadcaster_id}",
        )
        return WebhookResult(200)
