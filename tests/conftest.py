"""Shared pytest fixtures for package-lifecycle tests."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest

from package_lifecycle.events import (
    INSTALL_ALTERNATIVE_FAILED,
    INSTALLED_ALTERNATIVE,
    INSTALLING_ALTERNATIVE,
    PackageAction,
)
from package_lifecycle.host import HostConfig, StandaloneHost
from package_lifecycle.packages.manager import PackageManager
from package_lifecycle.packages.outdated import OutdatedPackageCache
from package_lifecycle.runtime.base import ProcessResult

ALL_EVENTS = " ".join(
    [f"{kind}-{action.value}" for kind in ("package", "theme") for action in PackageAction]
    + [INSTALLING_ALTERNATIVE, INSTALLED_ALTERNATIVE, INSTALL_ALTERNATIVE_FAILED]
)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHost(StandaloneHost):
    """In-memory host that records activation calls."""

    def __init__(
        self,
        version: str = "1.40.0",
        disabled: Sequence[str] = (),
        available: Sequence[str] = (),
    ) -> None:
        super().__init__("apm", version, disabled=disabled)
        self.available = list(available)
        self.calls: list[tuple[str, str]] = []
        self.fail_activate = False

    def activate_package(self, name: str) -> str:
        self.calls.append(("activate", name))
        if self.fail_activate:
            raise RuntimeError(f"cannot activate {name}")
        return super().activate_package(name)

    def load_package(self, name: str) -> str:
        self.calls.append(("load", name))
        return super().load_package(name)

    def deactivate_package(self, name: str) -> None:
        self.calls.append(("deactivate", name))
        super().deactivate_package(name)

    def unload_package(self, name: str) -> None:
        self.calls.append(("unload", name))
        super().unload_package(name)

    def get_available_package_names(self) -> list[str]:
        return list(self.available)


class FakeHostConfig(HostConfig):
    def __init__(self, pinned: Sequence[str] = (), use_proxy: bool = False) -> None:
        self.pinned = list(pinned)
        self.use_proxy = use_proxy
        self.removed: list[str] = []

    def use_proxy_settings(self) -> bool:
        return self.use_proxy

    def version_pinned_packages(self) -> list[str]:
        return list(self.pinned)

    def remove_disabled_package(self, name: str) -> None:
        self.removed.append(name)


class ScriptedRunner:
    """
    Stand-in for CommandRunner keyed by the tool's subcommand.

    Set ``gate`` to an ``asyncio.Event`` to hold every run until it is set.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.responses: dict[str, ProcessResult | Exception] = {}
        self.default = ProcessResult(exit_code=0, stdout="[]")
        self.gate: asyncio.Event | None = None

    def respond(
        self,
        subcommand: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
    ) -> None:
        self.responses[subcommand] = ProcessResult(exit_code, stdout, stderr)

    def fail(self, subcommand: str, error: Exception) -> None:
        self.responses[subcommand] = error

    def calls_for(self, subcommand: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == subcommand]

    async def run(self, args: Sequence[str]) -> ProcessResult:
        self.calls.append(list(args))
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.responses.get(args[0], self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def host_config() -> FakeHostConfig:
    return FakeHostConfig()


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def manager(
    host: FakeHost,
    host_config: FakeHostConfig,
    runner: ScriptedRunner,
    clock: FakeClock,
) -> PackageManager:
    return PackageManager(
        host,
        host_config,
        runner=runner,
        outdated_cache=OutdatedPackageCache(clock=clock),
        clock=clock,
    )


@pytest.fixture
def events(manager: PackageManager) -> list:
    """Every event the manager emits, as ``(name, payload)`` pairs."""
    received: list = []
    for name in ALL_EVENTS.split():
        manager.on(name, lambda payload, name=name: received.append((name, payload)))
    return received
