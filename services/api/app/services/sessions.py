from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from typing import Generic, TypeVar

V = TypeVar("V")


class ExpiringStore(Generic[V]):
    """Thread-safe key/value store whose entries expire after a per-entry TTL.

    Expired entries are invisible to `get` and removed by `sweep`.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[V, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: V, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SessionRegistry:
    """Issues opaque bearer tokens and resolves them to user ids."""

    def __init__(self, ttl_seconds: float = 604800, store: ExpiringStore[str] | None = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._store: ExpiringStore[str] = store or ExpiringStore()

    def issue(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        self.register(token, user_id)
        return token

    def register(self, token: str, user_id: str) -> None:
        self._store.set(token, user_id, self.ttl_seconds)

    def resolve(self, token: str | None) -> str | None:
        if not token:
            return None
        return self._store.get(token)

    def revoke(self, token: str) -> None:
        self._store.delete(token)

    def sweep(self) -> int:
        return self._store.sweep()
