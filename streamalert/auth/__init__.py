"""
Auth layer: platform API clients, token storage and pending OAuth state
"""

from .tokens import Token, TokenKind, TokenStore, is_token_expired
from .twitch import TwitchApiClient
from .kick import KickApiClient
from .oauth_state import PkceStateStore

__all__ = [
    "Token",
    "TokenKind",
    "TokenStore",
    "is_token_expired",
    "TwitchApiClient",
    "KickApiClient",
    "PkceStateStore",
]
