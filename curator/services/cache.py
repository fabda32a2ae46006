"""Small TTL cache used for the global tag/category lists."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from curator.core.config import get_settings


class CacheStorage(Protocol):
    def get_raw(self, key: str) -> Any | None: ...

    def set_raw(self, key: str, entry: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage backend."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get_raw(self, key: str) -> Any | None:
        with self._lock:
            return self._data.get(key)

    def set_raw(self, key: str, entry: Any) -> None:
        with self._lock:
            self._data[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


@dataclass(frozen=True, slots=True)
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    def __init__(
        self,
        *,
        storage: CacheStorage | None = None,
        clock: Callable[[], float] = time.monotonic,
        default_ttl: float | None = None,
    ) -> None:
        self.storage = storage or MemoryStorage()
        self.clock = clock
        self.default_ttl = default_ttl if default_ttl is not None else get_settings().cache_ttl_seconds

    def get(self, key: str) -> Any | None:
        entry = self.storage.get_raw(key)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            self.storage.delete(key)
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        self.storage.set_raw(key, _Entry(value, self.clock() + lifetime))

    def invalidate(self, key: str) -> None:
        self.storage.delete(key)

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl: float | None = None) -> Any:
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value, ttl)
        return value
