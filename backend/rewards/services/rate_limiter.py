"""
Per-client request throttling.

Password-reset requests are limited to one per client address per window.
The limiter is an app-scoped object (``app.extensions["reset_rate_limiter"]``)
so tests and multiple apps in one process never share state.

Entries expire once their window has passed and are evicted lazily on
access, so memory stays bounded by the number of clients active within
one window.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

from flask import current_app

from ..errors import TooManyRequestsError


EXTENSION_KEY = "reset_rate_limiter"


class ClientRateLimiter:
    def __init__(self, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        cutoff = now - self.window_seconds
        expired = [key for key, seen in self._last_seen.items() if seen <= cutoff]
        for key in expired:
            del self._last_seen[key]

    def hit(self, client_key: str) -> None:
        """
        Record a request from ``client_key``.

        Raises TooManyRequestsError if the same client already made a
        request within the window.
        """
        with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if client_key in self._last_seen:
                raise TooManyRequestsError("Too many requests")
            self._last_seen[client_key] = now

    def reset(self) -> None:
        with self._lock:
            self._last_seen.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)


def get_reset_rate_limiter() -> ClientRateLimiter:
    return current_app.extensions[EXTENSION_KEY]
