"""Tests for the registry client and its response cache."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from package_lifecycle.cache import MemoryStore, TTLCache
from package_lifecycle.errors import NetworkFailure, ParseFailure
from package_lifecycle.registry.client import RegistryClient, flatten_search_results

BASE_URL = "https://registry.test/api/"


class Registry:
    """Mock registry recording requests and serving canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, httpx.Response | Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.routes.get(request.url.path)
        if outcome is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
def package_manager() -> MagicMock:
    manager = MagicMock()
    manager.get_featured = AsyncMock(side_effect=lambda themes=False: [{"name": "themes" if themes else "pkgs"}])
    return manager


@pytest.fixture
def make_client(registry, package_manager, clock):
    def make(online=None, cache=None) -> RegistryClient:
        return RegistryClient(
            package_manager,
            BASE_URL,
            cache=cache or TTLCache(MemoryStore(), ttl=43200, clock=clock),
            http=httpx.AsyncClient(transport=httpx.MockTransport(registry)),
            online=online,
            clock=clock,
        )

    return make


def package_body(name: str = "foo") -> dict:
    return {
        "name": name,
        "metadata": {"name": name, "version": "1.0.0"},
        "versions": {"1.0.0": {"huge": "payload"}},
    }


class TestFetchFromCache:
    def test_offline_and_never_cached_is_empty(self, make_client) -> None:
        client = make_client(online=lambda: False)
        assert client.fetch_from_cache("packages/foo") == {}

    def test_online_and_missing_is_none(self, make_client) -> None:
        assert make_client().fetch_from_cache("packages/foo") is None

    def test_fresh_entry(self, make_client, clock) -> None:
        client = make_client()
        client.cache.put("registry:packages/foo", {"name": "foo"})
        clock.advance(43199)
        assert client.fetch_from_cache("packages/foo") == {"name": "foo"}

    def test_expired_entry_online(self, make_client, clock) -> None:
        client = make_client()
        client.cache.put("registry:packages/foo", {"name": "foo"})
        clock.advance(43200)

        assert client.fetch_from_cache("packages/foo") is None
        assert client.fetch_from_cache("packages/foo", force=True) == {"name": "foo"}

    def test_expired_entry_offline(self, make_client, clock) -> None:
        client = make_client(online=lambda: False)
        client.cache.put("registry:packages/foo", {"name": "foo"})
        clock.advance(10 * 43200)
        assert client.fetch_from_cache("packages/foo") == {"name": "foo"}

    def test_cache_key(self) -> None:
        assert RegistryClient.cache_key_for_path("packages/foo") == "registry:packages/foo"


class TestRequest:
    @pytest.mark.asyncio
    async def test_strips_versions_and_caches(self, make_client, registry) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        client = make_client()

        body = await client.request("packages/foo")

        assert "versions" not in body
        value, found = client.cache.get("registry:packages/foo")
        assert found and value == body

    @pytest.mark.asyncio
    async def test_sends_user_agent(self, registry, package_manager) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        client = RegistryClient(package_manager, BASE_URL, user_agent="tests/1.0")
        client._http = httpx.AsyncClient(
            transport=httpx.MockTransport(registry),
            headers={"User-Agent": "tests/1.0"},
        )

        await client.request("packages/foo")

        assert registry.requests[0].headers["user-agent"] == "tests/1.0"

    @pytest.mark.asyncio
    async def test_http_error(self, make_client, registry) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(500, text="oops")
        client = make_client()

        with pytest.raises(NetworkFailure) as exc_info:
            await client.request("packages/foo")

        assert exc_info.value.message == "Requesting packages/foo failed."
        assert "500" in exc_info.value.stderr
        assert client.online() is True

    @pytest.mark.asyncio
    async def test_transport_error_marks_offline(self, make_client, registry) -> None:
        registry.routes["/api/packages/foo"] = httpx.ConnectError("unreachable")
        client = make_client()

        with pytest.raises(NetworkFailure):
            await client.request("packages/foo")

        assert client.online() is False
        assert client.fetch_from_cache("packages/foo") == {}

    @pytest.mark.asyncio
    async def test_offline_state_expires(self, make_client, registry, clock) -> None:
        registry.routes["/api/packages/foo"] = httpx.ConnectError("unreachable")
        client = make_client()
        with pytest.raises(NetworkFailure):
            await client.package("foo")

        assert await client.package("foo") == {}
        assert len(registry.requests) == 1

        clock.advance(60)
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        assert (await client.package("foo"))["name"] == "foo"
        assert client.online() is True

    @pytest.mark.asyncio
    async def test_invalid_json(self, make_client, registry) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, text="<html>")

        with pytest.raises(ParseFailure) as exc_info:
            await make_client().request("packages/foo")

        assert exc_info.value.stdout == "<html>"


class TestPackage:
    @pytest.mark.asyncio
    async def test_served_from_cache_within_ttl(self, make_client, registry, clock) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        client = make_client()

        first = await client.package("foo")
        clock.advance(3600)
        second = await client.package("foo")

        assert first == second
        assert len(registry.requests) == 1

    @pytest.mark.asyncio
    async def test_refetched_after_ttl(self, make_client, registry, clock) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        client = make_client()

        await client.package("foo")
        clock.advance(43200)
        await client.package("foo")

        assert len(registry.requests) == 2

    @pytest.mark.asyncio
    async def test_stale_copy_when_request_fails(self, make_client, registry, clock) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())
        client = make_client()
        await client.package("foo")

        clock.advance(43200)
        registry.routes["/api/packages/foo"] = httpx.Response(503)

        assert (await client.package("foo"))["name"] == "foo"

    @pytest.mark.asyncio
    async def test_failure_without_cache_raises(self, make_client, registry) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(503)

        with pytest.raises(NetworkFailure):
            await make_client().package("foo")


class TestFeatured:
    @pytest.mark.asyncio
    async def test_featured_cached_under_separate_keys(self, make_client, package_manager) -> None:
        client = make_client()

        assert await client.featured_packages() == [{"name": "pkgs"}]
        assert await client.featured_themes() == [{"name": "themes"}]
        await client.featured_packages()
        await client.featured_themes()

        assert package_manager.get_featured.await_count == 2
        assert client.cache.get("registry:packages/featured")[1]
        assert client.cache.get("registry:themes/featured")[1]

    @pytest.mark.asyncio
    async def test_offline_without_cache(self, make_client, package_manager) -> None:
        client = make_client(online=lambda: False)

        assert await client.featured_themes() == {}
        package_manager.get_featured.assert_not_awaited()


class TestSearch:
    @pytest.mark.asyncio
    async def test_search(self, make_client, registry) -> None:
        registry.routes["/api/packages/search"] = httpx.Response(
            200,
            json=[
                {"metadata": {"name": "few"}, "releases": {"latest": "1.0.0"}, "downloads": 5},
                {"metadata": {"name": "unreleased"}, "releases": {}, "downloads": 999},
                {
                    "metadata": {"name": "many"},
                    "releases": {"latest": "2.0.0"},
                    "downloads": 50,
                    "readme": "# Many",
                    "stargazers_count": 7,
                },
            ],
        )

        results = await make_client().search("minimap")

        assert [r["name"] for r in results] == ["many", "few"]
        assert results[0]["readme"] == "# Many"
        assert results[0]["stargazers_count"] == 7
        assert dict(registry.requests[0].url.params) == {"q": "minimap", "filter": "package"}

    @pytest.mark.asyncio
    async def test_theme_filter(self, make_client, registry) -> None:
        registry.routes["/api/packages/search"] = httpx.Response(200, json=[])

        await make_client().search("dark", themes=True)

        assert dict(registry.requests[0].url.params) == {"q": "dark", "filter": "theme"}

    @pytest.mark.asyncio
    async def test_search_failure_message(self, make_client, registry) -> None:
        registry.routes["/api/packages/search"] = httpx.Response(500)

        with pytest.raises(NetworkFailure) as exc_info:
            await make_client().search("dark")

        assert exc_info.value.message == "Searching for “dark” failed."

    def test_flatten_ignores_non_list(self) -> None:
        assert flatten_search_results({"message": "error"}) == []


class TestPersistentCache:
    @pytest.mark.asyncio
    async def test_cache_survives_new_client(self, registry, package_manager, tmp_path, clock) -> None:
        registry.routes["/api/packages/foo"] = httpx.Response(200, json=package_body())

        def make() -> RegistryClient:
            return RegistryClient(
                package_manager,
                BASE_URL,
                http=httpx.AsyncClient(transport=httpx.MockTransport(registry)),
                cache_dir=tmp_path,
                clock=clock,
            )

        await make().package("foo")
        cached = await make().package("foo")

        assert cached["metadata"]["version"] == "1.0.0"
        assert len(registry.requests) == 1
        stored = json.loads(next((tmp_path / "registry").glob("*.json")).read_text())
        assert set(stored) == {"data", "createdOn", "ttl"}
