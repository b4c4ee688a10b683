from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from tokenauthority.logging import get_logger
from tokenauthority.service.clock import Clock, SystemClock
from tokenauthority.storage.registry import Namespace, registry_key, require_positive_ttl


class MemoryRegistry:
    """In-process registry for tests and local development.

    Entries carry an absolute expiry taken from ``clock``; anything at or past
    its expiry reads as missing and is dropped on the next access. Blacklist
    keys are rarely read again, so every ``purge_every`` writes the whole map
    is swept as well.
    """

    DEFAULT_PURGE_EVERY = 1000

    def __init__(self, clock: Optional[Clock] = None, *, purge_every: int = DEFAULT_PURGE_EVERY) -> None:
        if purge_every <= 0:
            raise ValueError("purge_every must be positive")
        self.logger = get_logger(__name__)
        self.clock = clock or SystemClock()
        self.purge_every = purge_every
        self._entries: Dict[str, Tuple[str, int]] = {}
        self._writes_since_purge = 0
        self._lock = threading.Lock()

    def _live(self, full_key: str) -> Optional[Tuple[str, int]]:
        # caller holds the lock
        entry = self._entries.get(full_key)
        if entry is None:
            return None
        if entry[1] <= self.clock.now_ms():
            self._entries.pop(full_key, None)
            return None
        return entry

    def _purge_locked(self) -> int:
        # caller holds the lock
        now = self.clock.now_ms()
        expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
        for full_key in expired:
            self._entries.pop(full_key, None)
        self._writes_since_purge = 0
        return len(expired)

    async def put(self, namespace: Namespace, key: str, value: str, ttl_ms: int) -> None:
        ttl_ms = require_positive_ttl(ttl_ms)
        removed = 0
        with self._lock:
            self._writes_since_purge += 1
            if self._writes_since_purge >= self.purge_every:
                removed = self._purge_locked()
            self._entries[registry_key(namespace, key)] = (
                value,
                self.clock.now_ms() + ttl_ms,
            )
        if removed:
            self.logger.debug("memory_registry_purged", removed=removed)

    async def get(self, namespace: Namespace, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(registry_key(namespace, key))
        return entry[0] if entry else None

    async def delete(self, namespace: Namespace, key: str) -> None:
        with self._lock:
            self._entries.pop(registry_key(namespace, key), None)

    async def exists(self, namespace: Namespace, key: str) -> bool:
        with self._lock:
            return self._live(registry_key(namespace, key)) is not None

    async def ttl(self, namespace: Namespace, key: str) -> Optional[int]:
        with self._lock:
            entry = self._live(registry_key(namespace, key))
            if entry is None:
                return None
            return entry[1] - self.clock.now_ms()

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            removed = self._purge_locked()
        if removed:
            self.logger.debug("memory_registry_purged", removed=removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["MemoryRegistry"]
