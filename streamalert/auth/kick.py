"""
Kick public API client

Uses an app access token (client credentials) by default. When a user
completes the dashboard OAuth flow, the resulting user token is stored and
preferred for API calls; if it can no longer be refreshed it is dropped and
the user has to authenticate again.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx
from cryptography.hazmat.primitives.asymmetric import rsa

from streamalert.auth.base import BaseApiClient
from streamalert.auth.tokens import Token, TokenKind
from streamalert.config import Settings
from streamalert.errors import ApiError, AuthenticationError, ConfigurationError
from streamalert.ingest.signatures import load_public_key, verify_kick_signature
from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="kick")

KICK_API_BASE = "https://api.kick.com/public/v1"
KICK_AUTH_BASE = "https://id.kick.com"
KICK_PUBLIC_KEY_URL = f"{KICK_API_BASE}/public-key"
# Unauthenticated website endpoint, used when the official lookup fails
KICK_LEGACY_CHANNEL_URL = "https://kick.com/api/v1/channels/{slug}"

LIVESTREAM_STATUS_EVENT = "livestream.status.updated"


def generate_pkce_pair() -> Tuple[str, str]:
    """Generate PKCE code_verifier and S256 code_challenge."""
    code_verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    code_challenge = base64.urlsafe_b64encode(
        hashlib.sha256(code_verifier.encode("utf-8")).digest()
    ).decode("utf-8").rstrip("=")
    return code_verifier, code_challenge


def _first(result: Any) -> Optional[Dict[str, Any]]:
    """Unwrap ``{"data": [...]}`` / ``{"data": {...}}`` responses."""
    if not isinstance(result, dict):
        return None
    data = result.get("data", result)
    if isinstance(data, list):
        return data[0] if data else None
    return data if isinstance(data, dict) and data else None


class KickApiClient(BaseApiClient):
    """Kick client owning Kick tokens and the webhook public key."""

    PLATFORM = "kick"
    LABEL = "Kick"
    API_BASE_URL = KICK_API_BASE
    TOKEN_URL = f"{KICK_AUTH_BASE}/oauth/token"

    _instance: Optional["KickApiClient"] = None
    _instance_task = None

    def __init__(
        self,
        config: Settings,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config, client_id, client_secret, http_client)
        self.public_key: Optional[rsa.RSAPublicKey] = None

    @classmethod
    def from_settings(
        cls, config: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "KickApiClient":
        return cls(config, config.kick_client_id, config.kick_client_secret, http_client)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def is_authenticated(self) -> bool:
        return self.has_user_token

    async def initialize(self) -> None:
        if not self.enabled:
            logger.warning("[Kick] Missing Kick credentials. Kick integrations disabled.")
            return

        await self.fetch_public_key()

        if self.tokens[TokenKind.USER].load() is not None:
            logger.info("[Kick] Loaded stored user token")

        if self.tokens[TokenKind.APP].load() is None:
            try:
                await self.fetch_app_access_token()
            except AuthenticationError as exc:
                logger.error("[Kick] Failed to fetch app token at startup: %s", exc)

    async def fetch_public_key(self) -> None:
        """Fetch the webhook verification key. Failure leaves verification unable to succeed."""
        logger.info("[Kick] Fetching Kick Public Key...")
        try:
            response = await self.http_client.get(KICK_PUBLIC_KEY_URL)
        except httpx.HTTPError as exc:
            logger.error("[Kick] Failed to fetch public key: %s", exc)
            return
        if not response.is_success:
            logger.error("[Kick] Failed to fetch public key: HTTP %s", response.status_code)
            return

        pem = response.text.strip()
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            pem = (payload.get("data") or {}).get("public_key") or payload.get("public_key") or pem

        self.public_key = load_public_key(pem)
        if self.public_key is not None:
            logger.info("[Kick] Public key loaded")

    def verify_signature(
        self, message_id: str, timestamp: str, body: bytes, provided_signature: str
    ) -> bool:
        return verify_kick_signature(
            self.public_key, message_id, timestamp, body, provided_signature
        )

    # --- TOKEN MANAGEMENT ---

    async def refresh_user_access_token(self) -> Token:
        user_store = self.tokens[TokenKind.USER]
        current = user_store.token
        if current is None or not current.refresh_token:
            user_store.clear()
            raise AuthenticationError(
                "No Kick user token found. Please authenticate via the dashboard."
            )

        try:
            token = await self._request_token(
                {
                    "grant_type": "refresh_token",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": current.refresh_token,
                },
                "Failed to refresh Kick user token",
            )
        except AuthenticationError as exc:
            logger.error("[Kick] %s. Re-authentication required.", exc)
            user_store.clear()
            raise

        user_store.save(token)
        logger.info("[Kick] User access token refreshed successfully")
        return token

    @property
    def api_token_kind(self) -> TokenKind:
        return TokenKind.USER if self.has_user_token else TokenKind.APP

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        token_kind: Optional[TokenKind] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self.enabled:
            raise ConfigurationError("Kick config not set")
        return await super().request(
            endpoint,
            method,
            body=body,
            token_kind=token_kind or self.api_token_kind,
            params=params,
        )

    # --- OAUTH FLOW ---

    def generate_auth_url(self, redirect_uri: str, scopes: str) -> Tuple[str, str, str]:
        """
        Build the authorization URL for the PKCE flow.

        Returns:
            (url, code_verifier, state)
        """
        code_verifier, code_challenge = generate_pkce_pair()
        state = secrets.token_hex(16)
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": scopes,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        url = f"{KICK_AUTH_BASE}/oauth/authorize?{urlencode(params)}"
        return url, code_verifier, state

    async def exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> Token:
        token = await self._request_token(
            {
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
                "code_verifier": code_verifier,
            },
            "Failed Kick code exchange",
        )
        self.tokens[TokenKind.USER].save(token)
        logger.info("[Kick] User token obtained through OAuth")
        return token

    async def revoke_token(self) -> None:
        """Revoke the user token remotely; local state is cleared regardless."""
        user_store = self.tokens[TokenKind.USER]
        current = user_store.token
        if current is None:
            return
        try:
            await self.http_client.post(
                f"{KICK_AUTH_BASE}/oauth/revoke",
                params={"token": current.access_token, "token_hint_type": "access_token"},
            )
        except httpx.HTTPError as exc:
            logger.error("[Kick] Failed to revoke token: %s", exc)
        finally:
            user_store.clear()
            logger.info("[Kick] User token cleared")

    # --- LOOKUPS ---

    async def get_channel(
        self,
        broadcaster_user_id: Optional[Any] = None,
        slug: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch a channel by broadcaster id or slug.

        Falls back to the unauthenticated website endpoint (slug only) when
        the official call fails or finds nothing.
        """
        if broadcaster_user_id is None and not slug:
            return None

        params = (
            {"broadcaster_user_id": str(broadcaster_user_id)}
            if broadcaster_user_id is not None
            else {"slug": slug}
        )
        try:
            channel = _first(await self.request("channels", "GET", params=params))
            if channel:
                return channel
        except (ApiError, AuthenticationError, ConfigurationError, httpx.HTTPError) as exc:
            logger.warning(
                "[Kick] Official getChannel failed for %s: %s",
                broadcaster_user_id or slug,
                exc,
            )

        if not slug:
            return None
        try:
            response = await self.http_client.get(
                KICK_LEGACY_CHANNEL_URL.format(slug=quote(slug, safe=""))
            )
        except httpx.HTTPError as exc:
            logger.warning("[Kick] Fallback channel lookup failed for %s: %s", slug, exc)
            return None
        if not response.is_success:
            return None
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) and payload else None

    async def get_user(self, user_id: Any) -> Optional[Dict[str, Any]]:
        if user_id is None or user_id == "":
            return None
        try:
            return _first(await self.request("users", "GET", params={"id": str(user_id)}))
        except (ApiError, AuthenticationError, ConfigurationError, httpx.HTTPError) as exc:
            logger.error("[Kick] Error fetching user info for %s: %s", user_id, exc)
            return None

    async def get_authorized_user(self) -> Optional[Dict[str, Any]]:
        """User that owns the stored user token."""
        return _first(await self.request("users", "GET", token_kind=TokenKind.USER))

    # --- EVENT SUBSCRIPTIONS ---

    async def list_event_subscriptions(self) -> List[Dict[str, Any]]:
        result = await self.request("events/subscriptions", "GET")
        if not isinstance(result, dict):
            return []
        return result.get("data") or []

    async def create_event_subscription(self, broadcaster_user_id: int) -> Any:
        body = {
            "broadcaster_user_id": broadcaster_user_id,
            "events": [{"name": LIVESTREAM_STATUS_EVENT, "version": 1}],
            "method": "webhook",
        }
        result = await self.request("events/subscriptions", "POST", body=body)
        return result.get("data") if isinstance(result, dict) else result

    async def delete_event_subscription(self, subscription_id: str) -> None:
        await self.request("events/subscriptions", "DELETE", params={"id": subscription_id})
