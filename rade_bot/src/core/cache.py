"""
Expiring key-value cache shared by the chat flows and the AI engine.

Entries expire after their TTL (milliseconds) and, once `max_entries` is
reached, the oldest inserted entry is evicted to make room for a new key.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ExpiringCache:
    def __init__(
        self,
        default_ttl_ms: int = 60_000,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_ms = default_ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.RLock()

    def set(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        """
        Stores `value` under `key`.

        Args:
            key: Namespaced cache key (e.g. ``conversation_<cpf>``).
            value: Any Python object; stored by reference.
            ttl_ms: Time to live in milliseconds. Defaults to ``default_ttl_ms``.
        """
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        expires_at = self._clock() + ttl / 1000.0

        with self._lock:
            if key in self._entries:
                # re-inserting moves the key to the newest position
                del self._entries[key]
            else:
                self._purge_expired()
                while len(self._entries) >= self.max_entries:
                    oldest_key, _ = self._entries.popitem(last=False)
                    logger.debug(f"Cache full, evicted {oldest_key}")
            self._entries[key] = (value, expires_at)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired()
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]


_MISSING = object()
