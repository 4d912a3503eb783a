"""
Host capability interfaces.

The package manager never reaches for a global host object. Everything it
needs from the host application is passed in at construction time as one of
these capability objects, so tests and other hosts can substitute their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path
from typing import Any


class HostPackageRegistry(ABC):
    """The host's package registry and activation API."""

    @abstractmethod
    def is_package_loaded(self, name: str) -> bool: ...

    @abstractmethod
    def is_package_active(self, name: str) -> bool: ...

    @abstractmethod
    def is_package_disabled(self, name: str) -> bool: ...

    @abstractmethod
    def activate_package(self, name: str) -> Any: ...

    @abstractmethod
    def load_package(self, name: str) -> Any: ...

    @abstractmethod
    def unload_package(self, name: str) -> None: ...

    @abstractmethod
    def deactivate_package(self, name: str) -> None: ...

    @abstractmethod
    def get_loaded_package(self, name: str) -> Any | None: ...

    @abstractmethod
    def get_available_package_names(self) -> list[str]: ...

    @abstractmethod
    def get_apm_path(self) -> str:
        """Path of the package tool executable."""

    @abstractmethod
    def get_version(self) -> str:
        """Version string of the host application."""


class HostConfig(ABC):
    """The slice of the host settings store used by the package manager."""

    @abstractmethod
    def use_proxy_settings(self) -> bool:
        """Whether proxies are resolved before running the package tool."""

    @abstractmethod
    def version_pinned_packages(self) -> list[str]:
        """Packages excluded from update notifications."""

    @abstractmethod
    def remove_disabled_package(self, name: str) -> None:
        """Drop ``name`` from the disabled-packages list."""


class StandaloneHost(HostPackageRegistry):
    """
    Host registry for running outside an editor.

    Loaded and active packages are tracked in memory; available packages are
    the directories found under ``packages_dir``.
    """

    def __init__(
        self,
        apm_path: str,
        version: str,
        packages_dir: Path | None = None,
        disabled: Iterable[str] = (),
    ) -> None:
        self._apm_path = apm_path
        self._version = version
        self._packages_dir = packages_dir
        self._disabled = set(disabled)
        self._loaded: set[str] = set()
        self._active: set[str] = set()

    def is_package_loaded(self, name: str) -> bool:
        return name in self._loaded

    def is_package_active(self, name: str) -> bool:
        return name in self._active

    def is_package_disabled(self, name: str) -> bool:
        return name in self._disabled

    def activate_package(self, name: str) -> str:
        self._loaded.add(name)
        self._active.add(name)
        return name

    def load_package(self, name: str) -> str:
        self._loaded.add(name)
        return name

    def unload_package(self, name: str) -> None:
        if name in self._active:
            raise RuntimeError(f"Cannot unload active package '{name}'")
        self._loaded.discard(name)

    def deactivate_package(self, name: str) -> None:
        self._active.discard(name)

    def get_loaded_package(self, name: str) -> str | None:
        return name if name in self._loaded else None

    def get_available_package_names(self) -> list[str]:
        if self._packages_dir is None or not self._packages_dir.is_dir():
            return []
        return sorted(p.name for p in self._packages_dir.iterdir() if p.is_dir())

    def get_apm_path(self) -> str:
        return self._apm_path

    def get_version(self) -> str:
        return self._version
