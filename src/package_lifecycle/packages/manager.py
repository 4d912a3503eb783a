"""Package lifecycle orchestration on top of the package tool."""

from __future__ import annotations

import asyncio
import json
import re
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from package_lifecycle.cache import Clock
from package_lifecycle.errors import (
    NonZeroExit,
    PackageManagerError,
    ParseFailure,
    SpawnFailure,
)
from package_lifecycle.events import (
    INSTALL_ALTERNATIVE_FAILED,
    INSTALLED_ALTERNATIVE,
    INSTALLING_ALTERNATIVE,
    AlternativeEvent,
    EventBus,
    EventHandler,
    LifecycleEvent,
    PackageAction,
)
from package_lifecycle.host import HostConfig, HostPackageRegistry
from package_lifecycle.logging import get_logger
from package_lifecycle.models import PackageDescriptor
from package_lifecycle.packages.outdated import OutdatedPackageCache, filter_pinned
from package_lifecycle.runtime.apm import CommandRunner
from package_lifecycle.runtime.base import ProcessResult
from package_lifecycle.versions import (
    can_upgrade,
    is_valid,
    normalize_version,
    satisfies_version,
)

if TYPE_CHECKING:
    from package_lifecycle.registry.client import RegistryClient

logger = get_logger("packages.manager")


def parse_install_metadata(stdout: str) -> dict[str, Any] | None:
    """
    Pull the first package's metadata out of ``install --json`` output.

    Older tools print no JSON at all, so anything unparseable yields None.
    """
    try:
        installed = json.loads(stdout)
        metadata = installed[0]["metadata"]
    except (ValueError, LookupError, TypeError):
        return None
    return metadata if isinstance(metadata, dict) else None


class PackageManager:
    """
    Installs, updates, uninstalls and queries packages.

    Every mutating operation emits ``<kind>-<action>ing`` first and exactly
    one of ``<kind>-<action>ed`` / ``<kind>-<action>-failed`` last, where
    ``kind`` is ``theme`` or ``package``. Failures are raised to the caller
    after the failure event has been emitted.

    Example:
        manager = PackageManager(host, host_config)
        manager.on("package-installed", lambda event: print(event.pack.name))
        await manager.install(PackageDescriptor("minimap", version="4.40.0"))
    """

    def __init__(
        self,
        host: HostPackageRegistry,
        config: HostConfig,
        runner: CommandRunner | None = None,
        events: EventBus | None = None,
        outdated_cache: OutdatedPackageCache | None = None,
        engine_key: str = "host",
        clock: Clock = time.time,
    ) -> None:
        self.host = host
        self.config = config
        self.runner = runner or CommandRunner(host, config)
        self.events = events or EventBus()
        self.outdated_cache = outdated_cache or OutdatedPackageCache(clock=clock)
        self.engine_key = engine_key
        self._package_requests: dict[str, asyncio.Future[Any]] = {}
        self._in_flight: dict[tuple[str, Any], asyncio.Future[Any]] = {}
        self._client: RegistryClient | None = None

    def get_client(self) -> RegistryClient:
        """Registry client bound to this manager, created on first use."""
        if self._client is None:
            from package_lifecycle.registry.client import RegistryClient

            self._client = RegistryClient(self)
        return self._client

    def set_client(self, client: RegistryClient) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Host helpers
    # ------------------------------------------------------------------

    def is_package_installed(self, name: str) -> bool:
        return self.host.is_package_loaded(name) or name in self.host.get_available_package_names()

    def unload(self, name: str) -> None:
        """Deactivate (if active) and unload a loaded package."""
        if self.host.is_package_loaded(name):
            if self.host.is_package_active(name):
                self.host.deactivate_package(name)
            self.host.unload_package(name)

    def clear_outdated_cache(self) -> None:
        self.outdated_cache.clear()

    def on(self, selectors: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe ``handler`` to space-separated event names."""
        return self.events.on(selectors, handler)  # type: ignore[return-value]

    async def _emit(
        self,
        action: PackageAction,
        pack: PackageDescriptor,
        error: Exception | None = None,
    ) -> None:
        await self.events.publish(LifecycleEvent.for_package(action, pack, error))

    # ------------------------------------------------------------------
    # Running the package tool
    # ------------------------------------------------------------------

    async def _run(
        self,
        args: list[str],
        error_message: str,
        package_install_error: bool = False,
    ) -> ProcessResult:
        """Run the tool; raise a tagged error unless it exits cleanly."""
        try:
            result = await self.runner.run(args)
        except SpawnFailure as e:
            raise SpawnFailure(
                error_message,
                stderr=e.stderr,
                package_install_error=package_install_error,
            ) from e
        if result.exit_code != 0:
            raise NonZeroExit(
                error_message,
                stdout=result.stdout,
                stderr=result.stderr,
                package_install_error=package_install_error,
                exit_code=result.exit_code,
            )
        return result

    async def _run_json(self, args: list[str], error_message: str) -> Any:
        result = await self._run(args, error_message)
        try:
            return json.loads(result.stdout) or []
        except ValueError as e:
            raise ParseFailure(
                error_message,
                stdout=result.stdout,
                stderr=f"{e}: {result.stdout}",
            ) from e

    def _compatible_args(self) -> list[str]:
        version = self.host.get_version()
        return ["--compatible", version] if is_valid(version) else []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def load_installed(self) -> Any:
        return await self._run_json(["ls", "--json"], "Fetching local packages failed.")

    async def load_featured(self, load_themes: bool = False) -> Any:
        args = ["featured", "--json"]
        if load_themes:
            args.append("--themes")
        args.extend(self._compatible_args())
        return await self._run_json(args, "Fetching featured packages failed.")

    async def load_outdated(self, clear_cache: bool = False) -> list[dict[str, Any]]:
        """
        List installed packages with newer compatible versions.

        Results are served from a 10-minute cache unless ``clear_cache`` is
        set. Pinned packages are dropped, and one ``update-available`` event
        is emitted per remaining package.
        """
        if clear_cache:
            self.clear_outdated_cache()
        else:
            cached = self.outdated_cache.get()
            if cached is not None:
                logger.debug("Serving %d outdated packages from cache", len(cached))
                return cached

        args = ["outdated", "--json", *self._compatible_args()]
        packages = await self._run_json(args, "Fetching outdated packages and themes failed.")
        if not isinstance(packages, list):
            raise ParseFailure(
                "Fetching outdated packages and themes failed.",
                stderr=f"Expected a list of packages: {packages!r}",
            )

        updatable = filter_pinned(packages, self.config.version_pinned_packages())
        self.outdated_cache.put(updatable)
        for pack in updatable:
            await self._emit(PackageAction.UPDATE_AVAILABLE, PackageDescriptor.from_dict(pack))
        return updatable

    async def load_package(self, name: str) -> Any:
        return await self._run_json(
            ["view", name, "--json"], f"Fetching package '{name}' failed."
        )

    async def load_compatible_package_version(self, name: str) -> Any:
        args = [
            "view",
            name,
            "--json",
            "--compatible",
            normalize_version(self.host.get_version()),
        ]
        return await self._run_json(args, f"Fetching package '{name}' failed.")

    # ------------------------------------------------------------------
    # Shared requests
    # ------------------------------------------------------------------

    async def _shared(
        self,
        key: tuple[str, Any],
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Join an in-flight request for ``key`` or start one."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(task)

    async def get_installed(self) -> Any:
        return await self._shared(("installed", None), self.load_installed)

    async def get_featured(self, load_themes: bool = False) -> Any:
        return await self._shared(
            ("featured", bool(load_themes)), lambda: self.load_featured(bool(load_themes))
        )

    async def get_outdated(self, clear_cache: bool = False) -> list[dict[str, Any]]:
        return await self._shared(
            ("outdated", bool(clear_cache)), lambda: self.load_outdated(clear_cache)
        )

    async def get_package(self, name: str) -> Any:
        """
        Fetch a package's registry entry once per process.

        Concurrent and later callers share the first request's result. A
        failed request is forgotten so the next call retries.
        """
        task = self._package_requests.get(name)
        if task is None:
            task = asyncio.ensure_future(self.load_package(name))
            self._package_requests[name] = task

            def forget_failure(done: asyncio.Future[Any]) -> None:
                if done.cancelled() or done.exception() is not None:
                    self._package_requests.pop(name, None)

            task.add_done_callback(forget_failure)
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def satisfies_version(self, version: str, metadata: dict[str, Any]) -> bool:
        return satisfies_version(version, metadata, self.engine_key)

    def normalize_version(self, version: str) -> str:
        return normalize_version(version)

    def can_upgrade(self, installed: PackageDescriptor | None, available_version: str) -> bool:
        if installed is None:
            return False
        return can_upgrade(installed.metadata.get("version", installed.version), available_version)

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def install(self, pack: PackageDescriptor) -> PackageDescriptor:
        """
        Install ``pack`` and load or activate it.

        Returns:
            The descriptor merged with the metadata reported by the tool

        Raises:
            PackageManagerError: after ``install-failed`` has been emitted
        """
        name = pack.name
        activate_on_success = not pack.is_theme and not self.host.is_package_disabled(name)
        activate_on_failure = self.host.is_package_active(name)
        error_message = f"Installing “{pack.name_with_version}” failed."

        self.unload(name)
        await self._emit(PackageAction.INSTALLING, pack)

        try:
            result = await self._run(
                ["install", pack.name_with_version, "--json"],
                error_message,
                package_install_error=not pack.is_theme,
            )
        except PackageManagerError as error:
            if activate_on_failure:
                self._restore(name)
            await self._emit(PackageAction.INSTALL_FAILED, pack, error)
            raise

        installed = pack.with_metadata(parse_install_metadata(result.stdout))
        self.clear_outdated_cache()
        try:
            if activate_on_success:
                self.host.activate_package(installed.name)
            else:
                self.host.load_package(installed.name)
        except Exception as e:
            logger.warning("Installed %s but could not load it: %s", installed.name, e)

        await self._emit(PackageAction.INSTALLED, installed)
        return installed

    def _restore(self, name: str) -> None:
        try:
            self.host.activate_package(name)
        except Exception as e:
            logger.warning("Could not reactivate %s after failed install: %s", name, e)

    async def uninstall(self, pack: PackageDescriptor) -> None:
        """Uninstall ``pack``, unloading it and clearing its disabled flag."""
        name = pack.name
        if self.host.is_package_active(name):
            self.host.deactivate_package(name)

        await self._emit(PackageAction.UNINSTALLING, pack)
        try:
            await self._run(
                ["uninstall", "--hard", name],
                f"Uninstalling “{name}” failed.",
            )
        except PackageManagerError as error:
            await self._emit(PackageAction.UNINSTALL_FAILED, pack, error)
            raise

        self.clear_outdated_cache()
        try:
            self.unload(name)
        except Exception as e:
            logger.warning("Uninstalled %s but could not unload it: %s", name, e)
        try:
            self.config.remove_disabled_package(name)
        except Exception as e:
            logger.warning("Uninstalled %s but could not re-enable it: %s", name, e)
        await self._emit(PackageAction.UNINSTALLED, pack)

    async def update(self, pack: PackageDescriptor, new_version: str | None = None) -> None:
        """Update ``pack`` to ``new_version``, or reinstall it from git."""
        if pack.install_source is not None and pack.install_source.is_git:
            args = ["install", pack.install_source.source]
        else:
            args = ["install", f"{pack.name}@{new_version}"]

        error_message = (
            f"Updating to “{pack.name}@{new_version}” failed."
            if new_version
            else "Updating to latest sha failed."
        )

        await self._emit(PackageAction.UPDATING, pack)
        try:
            await self._run(args, error_message, package_install_error=not pack.is_theme)
        except PackageManagerError as error:
            await self._emit(PackageAction.UPDATE_FAILED, pack, error)
            raise

        self.clear_outdated_cache()
        await self._emit(PackageAction.UPDATED, pack)

    async def install_alternative(
        self,
        pack: PackageDescriptor,
        alternative_name: str,
    ) -> AlternativeEvent:
        """
        Replace ``pack`` with ``alternative_name``.

        The uninstall and install run concurrently and both finish before the
        outcome is reported.
        """
        event = AlternativeEvent(pack=pack, alternative=alternative_name)
        await self.events.emit(INSTALLING_ALTERNATIVE, event)

        outcomes = await asyncio.gather(
            self.uninstall(pack),
            self.install(PackageDescriptor(name=alternative_name)),
            return_exceptions=True,
        )
        error = next((o for o in outcomes if isinstance(o, BaseException)), None)
        if error is None:
            await self.events.emit(INSTALLED_ALTERNATIVE, event)
            return event

        logger.error(
            "Replacing %s with %s failed: %s", pack.name, alternative_name, error,
            exc_info=error,
        )
        await self.events.emit(
            INSTALL_ALTERNATIVE_FAILED,
            AlternativeEvent(pack=pack, alternative=alternative_name, error=error),
        )
        raise error

    async def check_native_build_tools(self) -> None:
        """Raise unless the tool reports a working native build toolchain."""
        await self._run(["install", "--check"], "Native build tools are not available.")

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def get_package_title(pack: PackageDescriptor) -> str:
        """``"atom-beautify"`` -> ``"Atom Beautify"``; ``"minimapGit"`` -> ``"Minimap Git"``."""
        words = re.sub(r"([a-z\d])([A-Z])", r"\1 \2", pack.name)
        words = re.sub(r"[-_\s]+", " ", words).strip()
        return " ".join(word[:1].upper() + word[1:] for word in words.split(" "))

    @staticmethod
    def get_repository_url(pack: PackageDescriptor) -> str:
        repository = pack.metadata.get("repository")
        if isinstance(repository, dict):
            repo_url = repository.get("url") or ""
        else:
            repo_url = repository or ""
        if "git@github" in repo_url:
            repo_url = f"https://github.com/{repo_url.split(':', 1)[1]}"
        repo_url = re.sub(r"\.git$", "", repo_url)
        repo_url = re.sub(r"/+$", "", repo_url)
        return re.sub(r"^git\+", "", repo_url)
