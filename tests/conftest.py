import base64

import httpx
import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from streamalert.auth.kick import KickApiClient
from streamalert.auth.tokens import Token, now_ms
from streamalert.auth.twitch import TwitchApiClient
from streamalert.config import Settings


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("TWITCH_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("TWITCH_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/api/webhooks/1/abc")
    yield


@pytest.fixture(autouse=True)
def reset_singletons():
    TwitchApiClient.reset_instance()
    KickApiClient.reset_instance()
    yield
    TwitchApiClient.reset_instance()
    KickApiClient.reset_instance()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        _env_file=None,
        twitch_client_id="test-client-id",
        twitch_client_secret="test-client-secret",
        kick_client_id="kick-client-id",
        kick_client_secret="kick-client-secret",
        eventsub_secret="eventsub-test-secret",
        discord_webhook_url="https://discord.test/api/webhooks/1/abc",
        data_dir=str(tmp_path),
        hostname="alerts.example.com",
        dashboard_secret="dash-secret",
        kick_authorized_user_ids="42, 43",
    )


class FakeApi:
    """Route table for httpx.MockTransport; records every request it sees."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, url, status_code=200, json_body=None, text=None, repeat=False):
        self.routes.setdefault((method.upper(), url), []).append(
            {"status_code": status_code, "json": json_body, "text": text, "repeat": repeat}
        )

    def add_error(self, method, url, exc):
        self.routes.setdefault((method.upper(), url), []).append({"error": exc, "repeat": True})

    def _handler(self, request):
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, text=f"no route for {key}")
        entry = queue[0] if queue[0].get("repeat") or len(queue) == 1 else queue.pop(0)
        if "error" in entry:
            raise entry["error"]
        if entry["json"] is not None:
            return httpx.Response(entry["status_code"], json=entry["json"])
        return httpx.Response(entry["status_code"], text=entry["text"] or "")

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handler))

    def calls(self, method, url):
        return [
            request
            for request in self.requests
            if request.method == method.upper()
            and f"{request.url.scheme}://{request.url.host}{request.url.path}" == url
        ]


@pytest.fixture
def fake_api():
    return FakeApi()


def fresh_token(access_token="access", refresh_token=None, expires_in=3600):
    return Token(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        obtainment_timestamp=now_ms(),
    )


@pytest.fixture
def make_token():
    return fresh_token


@pytest.fixture(scope="session")
def rsa_keypair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return private_key, public_pem.decode("utf-8")


@pytest.fixture
def kick_signer(rsa_keypair):
    private_key, _ = rsa_keypair

    def sign(message_id, timestamp, body):
        payload = message_id.encode() + b"." + timestamp.encode() + b"." + body
        signature = private_key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
        return base64.b64encode(signature).decode("ascii")

    return sign
