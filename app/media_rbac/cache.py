from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable

from media_rbac.core.context import PermissionContext

ContextKey = tuple[str, str]


def context_key(project_id: str, user_id: str) -> ContextKey:
    return (str(project_id or "").strip(), str(user_id or "").strip())


class ContextCache:
    """
    Thread-safe TTL + LRU cache of permission contexts keyed by (project_id, user_id).

    The TTL is the staleness window: an entry is never served after it expires.
    Membership mutations must call `invalidate` before returning to their caller.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        ttl_seconds: int,
        max_entries: int,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._enabled = bool(enabled)
        self._ttl_seconds = max(0, int(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._entries: OrderedDict[ContextKey, tuple[float, PermissionContext]] = OrderedDict()
        # Bumped on every invalidation so loads that started earlier are not cached.
        self._epoch = 0

    @property
    def active(self) -> bool:
        return self._enabled and self._ttl_seconds > 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._epoch += 1
            self._entries.clear()

    def get(self, key: ContextKey) -> PermissionContext | None:
        if not self.active:
            return None
        now = self._monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            self._entries.move_to_end(key, last=True)
            return value

    def set(self, key: ContextKey, value: PermissionContext, *, epoch: int | None = None) -> None:
        if not self.active:
            return
        now = self._monotonic()
        with self._lock:
            if epoch is not None and epoch != self._epoch:
                return
            self._evict_expired(now)
            self._entries[key] = (now + float(self._ttl_seconds), value)
            self._entries.move_to_end(key, last=True)
            self._evict_lru()

    def get_or_load(self, key: ContextKey, loader: Callable[[], PermissionContext]) -> PermissionContext:
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._lock:
            epoch = self._epoch
        loaded = loader()
        self.set(key, loaded, epoch=epoch)
        return loaded

    def invalidate(self, key: ContextKey) -> bool:
        with self._lock:
            self._epoch += 1
            return self._entries.pop(key, None) is not None

    def invalidate_project(self, project_id: str) -> int:
        project = str(project_id or "").strip()
        with self._lock:
            self._epoch += 1
            doomed = [key for key in self._entries if key[0] == project]
            for key in doomed:
                self._entries.pop(key, None)
            return len(doomed)

    def _evict_expired(self, now: float) -> None:
        expired_keys = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired_keys:
            self._entries.pop(key, None)

    def _evict_lru(self) -> None:
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
