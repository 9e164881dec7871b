"""Read-through TTL cache for documents fetched by path."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any


class TTLCache:
    """In-memory map whose entries expire ``ttl`` seconds after being set.

    Expiry is checked lazily on ``get``.  A disabled cache stores nothing and
    always misses.
    """

    def __init__(self, enabled: bool = True, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}
        self._enabled = enabled
        self._ttl = ttl
        self._clock = clock

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        if not self._enabled:
            return
        self._entries[key] = (self._clock() + (ttl if ttl is not None else self._ttl), value)

    def get(self, key: str) -> Any | None:
        if not self._enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False
        self.clear()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def __len__(self) -> int:
        return len(self._entries)
