"""
Unit tests for webhook dispatch.

Signature checks run against real clients built from test settings; the
notification pipeline is mocked so only the hand-off is observed.
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from streamalert.auth.kick import KickApiClient
from streamalert.auth.twitch import TwitchApiClient
from streamalert.ingest.dispatcher import (
    MessageType,
    TaskRunner,
    WebhookDispatcher,
    parse_kick_message_type,
    parse_twitch_message_type,
)
from streamalert.ingest.signatures import compute_twitch_signature, load_public_key
from streamalert.schemas.events import Platform

SECRET = "eventsub-test-secret"
TIMESTAMP = "2024-05-01T12:00:00Z"


def twitch_headers(body, message_type, message_id="msg-1", secret=SECRET):
    return {
        "Twitch-Eventsub-Message-Id": message_id,
        "Twitch-Eventsub-Message-Timestamp": TIMESTAMP,
        "Twitch-Eventsub-Message-Signature": compute_twitch_signature(
            secret, message_id, TIMESTAMP, body
        ),
        "Twitch-Eventsub-Message-Type": message_type,
    }


def online_body(broadcaster_id="123", subscription_type="stream.online"):
    return json.dumps(
        {
            "subscription": {"id": "sub-1", "type": subscription_type, "version": "1", "status": "enabled"},
            "event": {
                "id": "9001",
                "broadcaster_user_id": broadcaster_id,
                "broadcaster_user_login": "somestreamer",
                "broadcaster_user_name": "SomeStreamer",
                "type": "live",
                "started_at": TIMESTAMP,
            },
        }
    ).encode()


def kick_body(is_live=True, user_id=42):
    return json.dumps(
        {
            "broadcaster": {
                "user_id": user_id,
                "username": "kickstreamer",
                "channel_slug": "kickstreamer",
            },
            "is_live": is_live,
            "title": "Live now",
            "started_at": TIMESTAMP,
            "ended_at": None,
        }
    ).encode()


def kick_headers(signer, body, event_type="livestream.status.updated", message_id="kick-1"):
    return {
        "Kick-Event-Message-Id": message_id,
        "Kick-Event-Message-Timestamp": TIMESTAMP,
        "Kick-Event-Signature": signer(message_id, TIMESTAMP, body),
        "Kick-Event-Type": event_type,
        "Kick-Event-Version": "1",
    }


def build_dispatcher(test_settings, rsa_keypair=None):
    pipeline = MagicMock()
    pipeline.notify = AsyncMock(return_value=True)
    twitch = TwitchApiClient.from_settings(test_settings)
    kick = KickApiClient.from_settings(test_settings)
    if rsa_keypair is not None:
        kick.public_key = load_public_key(rsa_keypair[1])
    runner = TaskRunner()
    return WebhookDispatcher(pipeline, twitch_client=twitch, kick_client=kick, runner=runner), pipeline


@pytest.mark.unit
class TestMessageTypes:
    def test_twitch_types(self):
        assert parse_twitch_message_type("webhook_callback_verification") is MessageType.VERIFICATION_CHALLENGE
        assert parse_twitch_message_type("notification") is MessageType.NOTIFICATION
        assert parse_twitch_message_type("revocation") is MessageType.REVOCATION
        assert parse_twitch_message_type("something_new") is MessageType.UNKNOWN
        assert parse_twitch_message_type(None) is MessageType.UNKNOWN

    def test_kick_types(self):
        assert parse_kick_message_type("livestream.status.updated") is MessageType.NOTIFICATION
        assert parse_kick_message_type("chat.message.sent") is MessageType.UNKNOWN


@pytest.mark.unit
class TestTwitchDispatch:
    @pytest.mark.asyncio
    async def test_verification_challenge_echoed(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = json.dumps(
            {"challenge": "abc123", "subscription": {"id": "sub-1", "type": "stream.online"}}
        ).encode()

        result = await dispatcher.handle_twitch(
            twitch_headers(body, "webhook_callback_verification"), body
        )

        assert result.status_code == 200
        assert result.body == "abc123"
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_notification_spawns_pipeline(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = online_body("123")

        result = await dispatcher.handle_twitch(twitch_headers(body, "notification"), body)
        await dispatcher.runner.wait_idle()

        assert result.status_code == 200
        pipeline.notify.assert_awaited_once_with(Platform.TWITCH, "123")

    @pytest.mark.asyncio
    async def test_response_does_not_wait_for_pipeline(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        release = asyncio.Event()

        async def slow_notify(*args, **kwargs):
            await release.wait()
            return True

        pipeline.notify = slow_notify
        body = online_body("123")

        result = await dispatcher.handle_twitch(twitch_headers(body, "notification"), body)

        assert result.status_code == 200
        assert dispatcher.runner.pending == 1
        release.set()
        await dispatcher.runner.wait_idle()
        assert dispatcher.runner.pending == 0

    @pytest.mark.asyncio
    async def test_other_subscription_type_ignored(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = online_body("123", subscription_type="channel.update")

        result = await dispatcher.handle_twitch(twitch_headers(body, "notification"), body)

        assert result.status_code == 200
        assert dispatcher.runner.pending == 0
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_revocation_acknowledged(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = json.dumps(
            {"subscription": {"id": "sub-1", "type": "stream.online", "status": "authorization_revoked"}}
        ).encode()

        result = await dispatcher.handle_twitch(twitch_headers(body, "revocation"), body)

        assert result.status_code == 200
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_type_acknowledged(self, test_settings):
        dispatcher, _ = build_dispatcher(test_settings)
        body = b"{}"

        result = await dispatcher.handle_twitch(twitch_headers(body, "mystery"), body)

        assert result.status_code == 200
        assert result.body == "Listening for Twitch events"

    @pytest.mark.asyncio
    async def test_missing_header_rejected(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = online_body()
        headers = twitch_headers(body, "notification")
        del headers["Twitch-Eventsub-Message-Signature"]

        result = await dispatcher.handle_twitch(headers, body)

        assert result.status_code == 400
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, test_settings):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = online_body()

        result = await dispatcher.handle_twitch(
            twitch_headers(body, "notification", secret="wrong-secret"), body
        )

        assert result.status_code == 403
        assert dispatcher.runner.pending == 0
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_body_rejected(self, test_settings):
        dispatcher, _ = build_dispatcher(test_settings)
        body = b"not json"

        result = await dispatcher.handle_twitch(twitch_headers(body, "notification"), body)

        assert result.status_code == 400


@pytest.mark.unit
class TestKickDispatch:
    @pytest.mark.asyncio
    async def test_live_event_spawns_pipeline(self, test_settings, rsa_keypair, kick_signer):
        dispatcher, pipeline = build_dispatcher(test_settings, rsa_keypair)
        body = kick_body(is_live=True, user_id=42)

        result = await dispatcher.handle_kick(kick_headers(kick_signer, body), body)
        await dispatcher.runner.wait_idle()

        assert result.status_code == 200
        pipeline.notify.assert_awaited_once_with(Platform.KICK, "42", slug="kickstreamer")

    @pytest.mark.asyncio
    async def test_offline_event_ignored(self, test_settings, rsa_keypair, kick_signer):
        dispatcher, pipeline = build_dispatcher(test_settings, rsa_keypair)
        body = kick_body(is_live=False)

        result = await dispatcher.handle_kick(kick_headers(kick_signer, body), body)

        assert result.status_code == 200
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_other_event_type_ignored(self, test_settings, rsa_keypair, kick_signer):
        dispatcher, pipeline = build_dispatcher(test_settings, rsa_keypair)
        body = b'{"message": "hi"}'

        result = await dispatcher.handle_kick(
            kick_headers(kick_signer, body, event_type="chat.message.sent"), body
        )

        assert result.status_code == 200
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_tampered_body_rejected(self, test_settings, rsa_keypair, kick_signer):
        dispatcher, pipeline = build_dispatcher(test_settings, rsa_keypair)
        body = kick_body()
        headers = kick_headers(kick_signer, body)

        result = await dispatcher.handle_kick(headers, kick_body(user_id=43))

        assert result.status_code == 403
        pipeline.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_public_key_rejected(self, test_settings, kick_signer):
        dispatcher, pipeline = build_dispatcher(test_settings)
        body = kick_body()

        result = await dispatcher.handle_kick(kick_headers(kick_signer, body), body)

        assert result.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_header_rejected(self, test_settings, rsa_keypair, kick_signer):
        dispatcher, _ = build_dispatcher(test_settings, rsa_keypair)
        body = kick_body()
        headers = kick_headers(kick_signer, body)
        del headers["Kick-Event-Type"]

        result = await dispatcher.handle_kick(headers, body)

        assert result.status_code == 400


@pytest.mark.unit
class TestTaskRunner:
    @pytest.mark.asyncio
    async def test_failed_task_is_logged_and_released(self):
        runner = TaskRunner()

        async def boom():
            raise RuntimeError("boom")

        runner.spawn(boom(), name="boom")
        await runner.wait_idle()

        assert runner.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        runner = TaskRunner()
        runner.spawn(asyncio.sleep(60), name="sleeper")

        await runner.cancel_all()

        assert runner.pending == 0
