"""
Pending OAuth (PKCE) state

Maps the ``state`` parameter of an in-flight authorization to its
code_verifier. Entries are consumed once by the callback and expire after
a TTL whether or not they were used.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, Optional, Tuple

from streamalert.utils.logging import get_logger

logger = get_logger(__name__, category="kick")

DEFAULT_STATE_TTL_SECONDS = 10 * 60


class PkceStateStore:
    """In-memory state -> code_verifier mapping with self-expiring entries."""

    def __init__(self, ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, state: str) -> bool:
        return self._live_entry(state) is not None

    def add(self, state: str, code_verifier: str) -> None:
        self._cancel_timer(state)
        self._entries[state] = (code_verifier, time.monotonic() + self.ttl_seconds)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): expiry is still enforced on lookup
            return
        self._timers[state] = loop.call_later(self.ttl_seconds, self._expire, state)

    def consume(self, state: Optional[str]) -> Optional[str]:
        """Return and remove the code_verifier for ``state``; None if unknown or expired."""
        if not state:
            return None
        entry = self._live_entry(state)
        self._discard(state)
        if entry is None:
            return None
        return entry[0]

    def clear(self) -> None:
        for state in list(self._entries):
            self._discard(state)

    def _live_entry(self, state: str) -> Optional[Tuple[str, float]]:
        entry = self._entries.get(state)
        if entry is None:
            return None
        if time.monotonic() >= entry[1]:
            self._discard(state)
            return None
        return entry

    def _expire(self, state: str) -> None:
        self._timers.pop(state, None)
        if self._entries.pop(state, None) is not None:
            logger.info("[Kick] OAuth state expired before callback")

    def _discard(self, state: str) -> None:
        self._entries.pop(state, None)
        self._cancel_timer(state)

    def _cancel_timer(self, state: str) -> None:
        timer = self._timers.pop(state, None)
        if timer is not None:
            timer.cancel()
