"""Short-lived cache of packages with newer versions available."""

from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Any

from package_lifecycle.cache import Clock, MemoryStore, TTLCache
from package_lifecycle.config import OUTDATED_CACHE_TTL_SECONDS

_SLOT = "outdated"


class OutdatedPackageCache:
    """
    Single-slot cache for the result of ``outdated --json``.

    The slot is cleared by every install, update and uninstall so the next
    query reflects the new state of the package directory.
    """

    def __init__(
        self,
        ttl: float = OUTDATED_CACHE_TTL_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self._cache: TTLCache[list[dict[str, Any]]] = TTLCache(
            MemoryStore(), ttl=ttl, clock=clock
        )

    def get(self) -> list[dict[str, Any]] | None:
        """Return the cached list while it is fresh, else None."""
        value, found = self._cache.get(_SLOT)
        if not found or self._cache.is_expired(_SLOT):
            return None
        return value

    def put(self, packages: list[dict[str, Any]]) -> None:
        self._cache.put(_SLOT, packages)

    def clear(self) -> None:
        self._cache.clear(_SLOT)


def filter_pinned(
    packages: Iterable[dict[str, Any]],
    pinned: Iterable[str],
) -> list[dict[str, Any]]:
    """Drop packages whose name is on the version-pinned list."""
    pinned_names = set(pinned)
    return [pack for pack in packages if pack.get("name") not in pinned_names]
