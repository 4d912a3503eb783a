"""
Typed TTL cache over pluggable key-value storage.

``TTLCache`` owns the expiry rules; a ``CacheStore`` only moves serialized
entries in and out of memory or disk. Entries are written as
``{"data": ..., "createdOn": ..., "ttl": ...}`` JSON documents.
"""

from __future__ import annotations

import hashlib
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

from package_lifecycle.logging import get_logger

logger = get_logger("cache")

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and the time it was written."""

    data: T
    created_on: float  # epoch seconds
    ttl: float | None = None  # None = the cache's default TTL

    def to_json(self) -> str:
        return json.dumps({"data": self.data, "createdOn": self.created_on, "ttl": self.ttl})

    @classmethod
    def from_json(cls, raw: str) -> CacheEntry[Any]:
        payload = json.loads(raw)
        return cls(
            data=payload["data"],
            created_on=float(payload["createdOn"]),
            ttl=payload.get("ttl"),
        )


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class CacheStore(ABC):
    """String-keyed blob storage."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...


class MemoryStore(CacheStore):
    """In-process storage; contents vanish with the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStore(CacheStore):
    """
    One JSON file per key under ``directory``.

    File names are the first 16 hex characters of the SHA-256 digest of the
    key, so arbitrary keys map to safe, stable names.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()[:16]
        return self.directory / f"{digest}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# TTLCache
# ---------------------------------------------------------------------------


class TTLCache(Generic[T]):
    """
    Cache whose entries expire ``ttl`` seconds after they were written.

    Reads never hide expired data: :meth:`get` reports whatever is stored and
    callers ask :meth:`is_expired` to decide whether it is still fresh. That
    lets offline callers keep serving stale entries.

    Example:
        cache = TTLCache(MemoryStore(), ttl=600)
        cache.put("outdated", packages)
        value, found = cache.get("outdated")
        if found and not cache.is_expired("outdated"):
            ...
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        ttl: float = 600.0,
        clock: Clock = time.time,
    ) -> None:
        self.store = store or MemoryStore()
        self.ttl = ttl
        self._clock = clock

    def entry(self, key: str) -> CacheEntry[T] | None:
        """Return the stored entry, or None if missing or unreadable."""
        raw = self.store.get_item(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_json(raw)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding corrupt cache entry %s: %s", key, e)
            self.store.remove_item(key)
            return None

    def get(self, key: str) -> tuple[T | None, bool]:
        """Return ``(value, found)`` regardless of freshness."""
        entry = self.entry(key)
        if entry is None:
            return None, False
        return entry.data, True

    def put(self, key: str, value: T, ttl: float | None = None) -> CacheEntry[T]:
        """Store ``value``, superseding any previous entry for ``key``."""
        entry = CacheEntry(data=value, created_on=self._clock(), ttl=ttl)
        self.store.set_item(key, entry.to_json())
        return entry

    def is_expired(self, key: str) -> bool:
        """True if ``key`` is missing or older than its TTL."""
        entry = self.entry(key)
        if entry is None:
            return True
        ttl = entry.ttl if entry.ttl is not None else self.ttl
        return self._clock() - entry.created_on >= ttl

    def clear(self, key: str) -> None:
        self.store.remove_item(key)
