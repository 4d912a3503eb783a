"""Async client for the remote package registry with a 12-hour response cache."""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from package_lifecycle.cache import Clock, JsonFileStore, MemoryStore, TTLCache
from package_lifecycle.config import (
    DEFAULT_AVATAR_URL,
    DEFAULT_REGISTRY_URL,
    DEFAULT_USER_AGENT,
    REGISTRY_CACHE_TTL_SECONDS,
    get_home_dir,
)
from package_lifecycle.errors import NetworkFailure, ParseFailure
from package_lifecycle.logging import get_logger
from package_lifecycle.registry.avatars import AvatarCache

if TYPE_CHECKING:
    from package_lifecycle.packages.manager import PackageManager

logger = get_logger("registry.client")

# How long a transport failure keeps the client offline before it retries
OFFLINE_RETRY_SECONDS = 60.0


def flatten_search_results(items: Any) -> list[dict[str, Any]]:
    """
    Turn raw search hits into package metadata, most downloaded first.

    Hits without a released ``latest`` version are dropped.
    """
    if not isinstance(items, list):
        return []
    packages = []
    for item in items:
        releases = item.get("releases") if isinstance(item, dict) else None
        if not (isinstance(releases, dict) and releases.get("latest")):
            continue
        packages.append(
            {
                **(item.get("metadata") or {}),
                "readme": item.get("readme"),
                "downloads": item.get("downloads"),
                "stargazers_count": item.get("stargazers_count"),
            }
        )
    packages.sort(key=lambda pack: pack.get("downloads") or 0, reverse=True)
    return packages


class RegistryClient:
    """
    Registry client that prefers cached responses.

    Responses are cached per path for 12 hours. While offline, cached data is
    served no matter how old it is.

    Example:
        client = RegistryClient(manager, cache_dir=home / "cache")
        metadata = await client.package("minimap")
        themes = await client.featured_themes()
    """

    def __init__(
        self,
        package_manager: PackageManager,
        base_url: str = DEFAULT_REGISTRY_URL,
        *,
        cache: TTLCache[Any] | None = None,
        http: httpx.AsyncClient | None = None,
        cache_dir: Path | None = None,
        online: Callable[[], bool] | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        avatar_url: str = DEFAULT_AVATAR_URL,
        expiry: float = REGISTRY_CACHE_TTL_SECONDS,
        clock: Clock = time.time,
    ) -> None:
        self.package_manager = package_manager
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.expiry = expiry
        self.cache_dir = cache_dir
        if cache is None:
            store = JsonFileStore(cache_dir / "registry") if cache_dir else MemoryStore()
            cache = TTLCache(store, ttl=expiry, clock=clock)
        self.cache = cache
        self._http = http
        self._owns_http = http is None
        self._online = online
        self._offline_since: float | None = None
        self._user_agent = user_agent
        self._avatar_url = avatar_url
        self._clock = clock
        self._avatars: AvatarCache | None = None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                headers={"User-Agent": self._user_agent, "Accept": "application/json"},
                follow_redirects=True,
                timeout=httpx.Timeout(30.0),
            )
        return self._http

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def online(self) -> bool:
        """Whether the registry is believed reachable."""
        if self._online is not None:
            return self._online()
        if self._offline_since is None:
            return True
        return self._clock() - self._offline_since >= OFFLINE_RETRY_SECONDS

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @staticmethod
    def cache_key_for_path(path: str) -> str:
        return f"registry:{path}"

    def fetch_from_cache(self, path: str, force: bool = False) -> Any:
        """
        Cached payload for ``path``, or None when it should be refetched.

        Offline, any cached payload is returned and a missing one becomes
        ``{}``. Online, the payload is returned when ``force`` is set or it
        is still fresh.
        """
        key = self.cache_key_for_path(path)
        value, found = self.cache.get(key)
        if not self.online():
            logger.debug("Offline, serving %s from cache (found=%s)", path, found)
            return value if found else {}
        if found and (force or not self.cache.is_expired(key)):
            return value
        return None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _get_json(self, path: str, error_message: str, **params: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.http.get(url, params=params or None)
            response.raise_for_status()
        except httpx.TransportError as e:
            self._offline_since = self._clock()
            raise NetworkFailure(error_message, stderr=str(e)) from e
        except httpx.HTTPStatusError as e:
            self._offline_since = None
            raise NetworkFailure(error_message, stderr=str(e)) from e
        self._offline_since = None
        try:
            return response.json()
        except ValueError as e:
            raise ParseFailure(error_message, stdout=response.text, stderr=str(e)) from e

    async def request(self, path: str) -> Any:
        """
        Fetch ``path`` from the registry and cache the body.

        The ``versions`` map is dropped before caching to keep entries small.
        """
        body = await self._get_json(path, f"Requesting {path} failed.")
        if isinstance(body, dict):
            body.pop("versions", None)
        self.cache.put(self.cache_key_for_path(path), body)
        return body

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def package(self, name: str) -> Any:
        """Registry metadata for ``name``; a stale copy beats a failed request."""
        path = f"packages/{name}"
        cached = self.fetch_from_cache(path)
        if cached is not None:
            return cached
        try:
            return await self.request(path)
        except NetworkFailure as e:
            stale, found = self.cache.get(self.cache_key_for_path(path))
            if not found:
                raise
            logger.warning("Serving stale registry data for %s: %s", name, e.message)
            return stale

    async def featured_packages(self) -> Any:
        return await self.get_featured(load_themes=False)

    async def featured_themes(self) -> Any:
        return await self.get_featured(load_themes=True)

    async def get_featured(self, load_themes: bool = False) -> Any:
        """Featured listing from the package tool, cached like registry responses."""
        path = "themes/featured" if load_themes else "packages/featured"
        cached = self.fetch_from_cache(path)
        if cached is not None:
            return cached
        packages = await self.package_manager.get_featured(load_themes)
        self.cache.put(self.cache_key_for_path(path), packages)
        return packages

    async def search(self, query: str, themes: bool = False) -> list[dict[str, Any]]:
        params = {"q": query, "filter": "theme" if themes else "package"}
        body = await self._get_json(
            "packages/search", f"Searching for “{query}” failed.", **params
        )
        return flatten_search_results(body)

    # ------------------------------------------------------------------
    # Avatars
    # ------------------------------------------------------------------

    @property
    def avatars(self) -> AvatarCache:
        if self._avatars is None:
            directory = (self.cache_dir or get_home_dir() / "cache") / "avatars"
            self._avatars = AvatarCache(
                directory,
                http=self.http,
                avatar_url=self._avatar_url,
                expiry=self.expiry,
                online=self.online,
                clock=self._clock,
                user_agent=self._user_agent,
            )
        return self._avatars

    async def avatar(self, login: str) -> Path | None:
        return await self.avatars.avatar(login)
