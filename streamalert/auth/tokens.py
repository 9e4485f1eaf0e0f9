"""
OAuth token values and their storage.

A Token is immutable: refreshing builds a new Token and the owning
TokenStore swaps it in with a single assignment.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="system")

# Tokens are treated as expired this many seconds before their real expiry
EXPIRY_MARGIN_SECONDS = 60


class TokenKind(str, Enum):
    APP = "app"
    USER = "user"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Token:
    """Bearer token as returned by an OAuth token endpoint."""

    access_token: str
    expires_in: int
    obtainment_timestamp: int
    refresh_token: Optional[str] = None

    @classmethod
    def from_oauth_response(
        cls, payload: Dict[str, Any], obtained_at: Optional[int] = None
    ) -> "Token":
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(payload.get("expires_in") or 0),
            obtainment_timestamp=obtained_at if obtained_at is not None else now_ms(),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(data["expires_in"]),
            obtainment_timestamp=int(data["obtainment_timestamp"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def expires_at_ms(self) -> int:
        return self.obtainment_timestamp + (self.expires_in - EXPIRY_MARGIN_SECONDS) * 1000

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        current = now_ms() if at_ms is None else at_ms
        return current > self.expires_at_ms


def is_token_expired(token: Optional[Token], at_ms: Optional[int] = None) -> bool:
    """A missing token counts as expired."""
    if token is None:
        return True
    return token.is_expired(at_ms)


class TokenStore:
    """
    Holds one token slot, optionally mirrored to a JSON file.

    Without a path the store is memory-only.
    """

    def __init__(self, label: str, path: Optional[Path] = None):
        self.label = label
        self.path = path
        self._token: Optional[Token] = None

    @property
    def token(self) -> Optional[Token]:
        return self._token

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def load(self) -> Optional[Token]:
        """Load the persisted token, if any. Unreadable files are logged and ignored."""
        if self.path is None or not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._token = Token.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Error parsing %s token file %s: %s", self.label, self.path, exc)
            return None
        return self._token

    def save(self, token: Token) -> None:
        self._token = token
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(token.to_dict(), indent=2), encoding="utf-8")

    def clear(self) -> None:
        self._token = None
        if self.path is not None and self.path.exists():
            self.path.unlink()
