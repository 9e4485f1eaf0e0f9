"""
Shared plumbing for the platform API clients.

Each platform client is a process-wide instance obtained through
``await Client.get_instance()``. Concurrent first callers await the same
in-flight creation task, so initialization runs exactly once.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from streamalert.auth.tokens import Token, TokenKind, TokenStore, is_token_expired
from streamalert.config import Settings, settings as default_settings
from streamalert.errors import ApiError, AuthenticationError
from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="system")


def build_http_client() -> httpx.AsyncClient:
    timeout = httpx.Timeout(30.0, connect=10.0)
    return httpx.AsyncClient(timeout=timeout)


class BaseApiClient:
    """Token-managing HTTP client for one streaming platform."""

    PLATFORM = ""
    LABEL = ""
    API_BASE_URL = ""
    TOKEN_URL = ""

    # Redefined by every subclass so instances are not shared across platforms
    _instance: Optional["BaseApiClient"] = None
    _instance_task: Optional["asyncio.Task[BaseApiClient]"] = None

    def __init__(
        self,
        config: Settings,
        client_id: Optional[str],
        client_secret: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.client_id = client_id or ""
        self.client_secret = client_secret or ""
        self._owns_http_client = http_client is None
        self.http_client = http_client or build_http_client()
        self.tokens: Dict[TokenKind, TokenStore] = {
            kind: TokenStore(
                f"{self.LABEL} {kind.value}", self._token_path(kind)
            )
            for kind in TokenKind
        }

    # --- SINGLETON INSTANCE ---

    @classmethod
    async def get_instance(
        cls,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if cls._instance is not None:
            return cls._instance
        if cls._instance_task is None:
            cls._instance_task = asyncio.ensure_future(
                cls._create(config or default_settings, http_client)
            )
        task = cls._instance_task
        try:
            # A cancelled caller must not cancel creation for everyone else
            return await asyncio.shield(task)
        except BaseException:
            # Let a later caller try again after a failed or cancelled creation
            if task.done() and cls._instance_task is task:
                cls._instance_task = None
            raise

    @classmethod
    async def _create(
        cls, config: Settings, http_client: Optional[httpx.AsyncClient]
    ) -> "BaseApiClient":
        client = cls.from_settings(config, http_client)
        await client.initialize()
        cls._instance = client
        return client

    @classmethod
    def from_settings(
        cls, config: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "BaseApiClient":
        raise NotImplementedError

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None
        cls._instance_task = None

    async def initialize(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        if self._owns_http_client:
            await self.http_client.aclose()

    # --- TOKEN MANAGEMENT ---

    def _token_path(self, kind: TokenKind) -> Optional[Path]:
        if not self.config.persist_tokens:
            return None
        return self.config.data_path / f"{self.PLATFORM}_{kind.value}_token.json"

    def token(self, kind: TokenKind) -> Optional[Token]:
        return self.tokens[kind].token

    @property
    def has_user_token(self) -> bool:
        return self.tokens[TokenKind.USER].token is not None

    async def get_valid_access_token(self, kind: TokenKind) -> str:
        if is_token_expired(self.token(kind)):
            if kind is TokenKind.APP:
                await self.fetch_app_access_token()
            else:
                await self.refresh_user_access_token()

        token = self.token(kind)
        if token is None:
            raise AuthenticationError(f"No {self.LABEL} {kind.value} token available")
        return token.access_token

    async def _request_token(self, data: Dict[str, str], failure: str) -> Token:
        try:
            response = await self.http_client.post(self.TOKEN_URL, data=data)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"{failure}: {exc}") from exc
        if not response.is_success:
            raise AuthenticationError(f"{failure}: {response.status_code} - {response.text}")
        try:
            return Token.from_oauth_response(response.json())
        except (ValueError, KeyError) as exc:
            raise AuthenticationError(f"{failure}: malformed token response") from exc

    async def fetch_app_access_token(self) -> Token:
        logger.info("[%s] Fetching new App Access Token...", self.LABEL)
        token = await self._request_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
            f"Failed to fetch {self.LABEL} App Access Token",
        )
        self.tokens[TokenKind.APP].save(token)
        logger.info("[%s] App Access Token fetched", self.LABEL)
        return token

    async def refresh_user_access_token(self) -> Token:
        raise NotImplementedError

    # --- GENERIC API REQUEST HANDLER ---

    def _auth_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Optional[Dict[str, Any]] = None,
        token_kind: TokenKind = TokenKind.APP,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make an authenticated API call.

        Returns:
            Parsed JSON, or None for a 204 No Content response

        Raises:
            AuthenticationError: token could not be obtained
            ApiError: non-2xx response
        """
        access_token = await self.get_valid_access_token(token_kind)
        url = endpoint if endpoint.startswith("http") else f"{self.API_BASE_URL}/{endpoint}"

        response = await self.http_client.request(
            method,
            url,
            headers=self._auth_headers(access_token),
            json=body,
            params=params,
        )
        if not response.is_success:
            raise ApiError(self.LABEL, response.status_code, response.text)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(self.LABEL, response.status_code, "malformed JSON body") from exc
