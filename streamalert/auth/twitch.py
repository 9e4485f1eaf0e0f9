"""
Twitch Helix API client

Manages an app access token (client credentials) and an optional user
access token (refresh-token grant) and wraps the Helix calls used for
stream lookups and EventSub webhook subscriptions.
"""

from __future__ import annotations

import secrets
from typing import Any, Dict, List, Optional

import httpx

from streamalert.auth.base import BaseApiClient
from streamalert.auth.tokens import Token, TokenKind
from streamalert.config import Settings
from streamalert.errors import AuthenticationError, ConfigurationError
from streamalert.ingest.signatures import verify_twitch_signature
from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="twitch")

HELIX_API_BASE = "https://api.twitch.tv/helix"
TWITCH_AUTH_BASE = "https://id.twitch.tv/oauth2"


class TwitchApiClient(BaseApiClient):
    """Helix client owning Twitch tokens and the EventSub webhook secret."""

    PLATFORM = "twitch"
    LABEL = "Twitch"
    API_BASE_URL = HELIX_API_BASE
    TOKEN_URL = f"{TWITCH_AUTH_BASE}/token"

    _instance: Optional["TwitchApiClient"] = None
    _instance_task = None

    def __init__(
        self,
        config: Settings,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        eventsub_secret: Optional[str] = None,
    ):
        super().__init__(config, client_id, client_secret, http_client)
        # Generated once per process when not configured; remote senders
        # only know it if we registered it with the subscription
        self.eventsub_secret = eventsub_secret or secrets.token_hex(32)

    @classmethod
    def from_settings(
        cls, config: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "TwitchApiClient":
        if not config.twitch_client_id or not config.twitch_client_secret:
            raise ConfigurationError(
                "Missing one or more required environment variables: "
                "TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET"
            )
        if not config.eventsub_secret:
            logger.warning(
                "[Twitch] EVENTSUB_SECRET not set, generated a secret for this process"
            )
        return cls(
            config,
            config.twitch_client_id,
            config.twitch_client_secret,
            http_client=http_client,
            eventsub_secret=config.eventsub_secret,
        )

    async def initialize(self) -> None:
        """Load persisted tokens, fetching an app token when none is usable."""
        user_store = self.tokens[TokenKind.USER]
        if user_store.load() is None:
            logger.warning(
                "[Twitch] User token not found%s. Scoped calls will fail until a token is generated.",
                f" at {user_store.path}" if user_store.path else "",
            )

        app_store = self.tokens[TokenKind.APP]
        if app_store.load() is None:
            logger.info("[Twitch] App token not found, creating new one...")
            await self.fetch_app_access_token()

    # --- TOKEN MANAGEMENT ---

    async def refresh_user_access_token(self) -> Token:
        current = self.token(TokenKind.USER)
        if current is None or not current.refresh_token:
            raise AuthenticationError(
                "Cannot refresh Twitch user token: No refresh token found."
            )

        logger.info("[Twitch] Refreshing User Access Token...")
        token = await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            "Failed to refresh Twitch User Access Token",
        )
        self.tokens[TokenKind.USER].save(token)
        logger.info("[Twitch] User Access Token refreshed")
        return token

    @property
    def lookup_token_kind(self) -> TokenKind:
        """User tokens have better rate limits; fall back to the app token."""
        return TokenKind.USER if self.has_user_token else TokenKind.APP

    def _auth_headers(self, access_token: str) -> Dict[str, str]:
        headers = super()._auth_headers(access_token)
        headers["Client-Id"] = self.client_id
        return headers

    # --- SIGNATURES ---

    def verify_signature(
        self, message_id: str, timestamp: str, body: bytes, provided_signature: str
    ) -> bool:
        return verify_twitch_signature(
            self.eventsub_secret, message_id, timestamp, body, provided_signature
        )

    # --- EVENTSUB SUBSCRIPTIONS (app token) ---

    async def list_eventsub_subscriptions(
        self, status: Optional[str] = None
    ) -> Dict[str, Any]:
        params = {"status": status} if status else None
        result = await self.request(
            "eventsub/subscriptions", "GET", token_kind=TokenKind.APP, params=params
        )
        return result or {"data": []}

    async def create_eventsub_subscription(
        self,
        subscription_type: str,
        version: str,
        condition: Dict[str, str],
        callback_url: str,
    ) -> Dict[str, Any]:
        body = {
            "type": subscription_type,
            "version": version,
            "condition": condition,
            "transport": {
                "method": "webhook",
                "callback": callback_url,
                "secret": self.eventsub_secret,
            },
        }
        result = await self.request(
            "eventsub/subscriptions", "POST", body=body, token_kind=TokenKind.APP
        )
        return result or {"data": []}

    async def delete_eventsub_subscription(self, subscription_id: str) -> None:
        await self.request(
            "eventsub/subscriptions",
            "DELETE",
            token_kind=TokenKind.APP,
            params={"id": subscription_id},
        )

    # --- LOOKUPS ---

    async def _lookup(self, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        result = await self.request(
            endpoint, "GET", token_kind=self.lookup_token_kind, params=params
        )
        return result or {"data": None}

    async def get_user_from_id(self, user_id: str) -> Dict[str, Optional[List[Dict[str, Any]]]]:
        if not user_id:
            return {"data": None}
        return await self._lookup("users", {"id": user_id})

    async def get_user_from_name(self, login: str) -> Dict[str, Optional[List[Dict[str, Any]]]]:
        if not login:
            return {"data": None}
        return await self._lookup("users", {"login": login.lower()})

    async def get_stream(self, broadcaster_id: str) -> Dict[str, Optional[List[Dict[str, Any]]]]:
        if not broadcaster_id:
            return {"data": None}
        return await self._lookup("streams", {"user_id": broadcaster_id})
