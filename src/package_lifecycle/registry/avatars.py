"""
On-disk cache of user avatar images.

Avatars are stored as ``<login>-<epochMillis>`` files. Lookups return the
newest file for a login; a sweep on startup keeps only that newest file.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import httpx

from package_lifecycle.cache import Clock
from package_lifecycle.config import (
    DEFAULT_AVATAR_URL,
    DEFAULT_USER_AGENT,
    REGISTRY_CACHE_TTL_SECONDS,
)
from package_lifecycle.errors import NetworkFailure
from package_lifecycle.logging import get_logger

logger = get_logger("registry.avatars")

_AVATAR_FILE = re.compile(r"^(?P<login>.+)-(?P<stamp>\d+)$")


def newest_avatar_files(filenames: Iterable[str]) -> set[str]:
    """
    Pick the file to keep for each login.

    Timestamps are compared as numbers, so ``a-200`` beats ``a-50``.
    Names that are not avatar files are ignored.

    Example:
        newest_avatar_files(["a-100", "a-200", "a-50", "b-10"])
        # {"a-200", "b-10"}
    """
    newest: dict[str, tuple[int, str]] = {}
    for filename in filenames:
        match = _AVATAR_FILE.match(filename)
        if match is None:
            continue
        candidate = (int(match.group("stamp")), filename)
        login = match.group("login")
        if login not in newest or candidate > newest[login]:
            newest[login] = candidate
    return {filename for _, filename in newest.values()}


class AvatarCache:
    """
    Fetch avatars into ``directory`` and serve them from disk afterwards.

    Example:
        avatars = AvatarCache(cache_dir / "avatars")
        path = await avatars.avatar("octocat")
    """

    def __init__(
        self,
        directory: Path,
        http: httpx.AsyncClient | None = None,
        avatar_url: str = DEFAULT_AVATAR_URL,
        expiry: float = REGISTRY_CACHE_TTL_SECONDS,
        online: Callable[[], bool] | None = None,
        clock: Clock = time.time,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.directory = directory
        self.avatar_url = avatar_url
        self.expiry = expiry
        self._http = http
        self._online = online or (lambda: True)
        self._clock = clock
        self._user_agent = user_agent
        self.directory.mkdir(parents=True, exist_ok=True)
        self.expire()

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
                timeout=httpx.Timeout(30.0),
            )
        return self._http

    def _now_millis(self) -> int:
        return int(self._clock() * 1000)

    def avatar_path(self, login: str) -> Path:
        return self.directory / f"{login}-{self._now_millis()}"

    def cached_avatars(self, login: str) -> list[Path]:
        """Avatar files for ``login``, newest first."""
        found: list[tuple[int, Path]] = []
        for path in self.directory.iterdir():
            match = _AVATAR_FILE.match(path.name)
            if match and match.group("login") == login:
                found.append((int(match.group("stamp")), path))
        return [path for _, path in sorted(found, reverse=True)]

    def is_stale(self, path: Path) -> bool:
        stamp = int(path.name.rsplit("-", 1)[1])
        return self._now_millis() - stamp > self.expiry * 1000

    async def avatar(self, login: str) -> Path | None:
        """
        Path of an avatar image for ``login``.

        A cached file is used while fresh, and also when offline however old
        it is. Otherwise the avatar is downloaded. Returns None when nothing
        could be served.
        """
        cached = self.cached_avatars(login)
        if cached and (not self.is_stale(cached[0]) or not self._online()):
            return cached[0]
        return await self.fetch_and_cache_avatar(login)

    async def fetch_and_cache_avatar(self, login: str) -> Path | None:
        """
        Download the avatar for ``login``.

        The URL is HEAD-checked for an ``image/*`` content type before the
        body is streamed to disk. A partially written file is deleted.

        Raises:
            NetworkFailure: the avatar request failed
        """
        if not self._online():
            return None

        url = f"{self.avatar_url}{login}"
        try:
            head = await self.http.head(url)
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Fetching avatar for {login} failed.", stderr=str(e)) from e
        content_type = head.headers.get("content-type", "")
        if head.status_code != 200 or not content_type.startswith("image/"):
            logger.debug(
                "No avatar image for %s (status=%s, type=%s)",
                login,
                head.status_code,
                content_type,
            )
            return None

        image_path = self.avatar_path(login)
        try:
            async with self.http.stream("GET", url) as response:
                response.raise_for_status()
                with open(image_path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        except (httpx.HTTPError, OSError) as e:
            image_path.unlink(missing_ok=True)
            raise NetworkFailure(f"Fetching avatar for {login} failed.", stderr=str(e)) from e
        return image_path

    def expire(self) -> None:
        """Delete every avatar file except the newest one per login."""
        try:
            filenames = [p.name for p in self.directory.iterdir()]
        except FileNotFoundError:
            return
        keep = newest_avatar_files(filenames)
        for filename in filenames:
            if filename in keep or not _AVATAR_FILE.match(filename):
                continue
            path = self.directory / filename
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Error deleting avatar %s: %s", path, e)
