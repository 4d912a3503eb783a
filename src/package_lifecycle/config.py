"""
Configuration for package lifecycle management.

Provides a configuration model that can be loaded from YAML files or
constructed programmatically, plus an adapter exposing it to the package
manager as a :class:`~package_lifecycle.host.HostConfig`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from package_lifecycle.host import HostConfig

DEFAULT_REGISTRY_URL = "https://api.pulsar-edit.dev/api/"
DEFAULT_AVATAR_URL = "https://avatars.githubusercontent.com/"
DEFAULT_USER_AGENT = "package-lifecycle/0.1"

REGISTRY_CACHE_TTL_SECONDS = 60 * 60 * 12
OUTDATED_CACHE_TTL_SECONDS = 60 * 10


def get_home_dir() -> Path:
    """Get the state directory, honouring ``PACKAGE_LIFECYCLE_HOME``."""
    override = os.environ.get("PACKAGE_LIFECYCLE_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".package-lifecycle"


@dataclass
class ManagerConfig:
    """
    Main configuration for the package manager.

    Example YAML:
        apm_path: /usr/local/bin/apm
        host_version: 1.63.0
        use_proxy_settings: true
        version_pinned_packages:
          - minimap
        disabled_packages:
          - linter
        registry_url: https://api.pulsar-edit.dev/api/
    """

    # Package tool
    apm_path: str = "apm"
    host_version: str = "0.0.0"
    packages_dir: Path = field(default_factory=lambda: get_home_dir() / "packages")
    engine_key: str = "host"  # key under metadata["engines"]

    # Host settings
    use_proxy_settings: bool = False
    version_pinned_packages: list[str] = field(default_factory=list)
    disabled_packages: list[str] = field(default_factory=list)

    # Registry
    registry_url: str = DEFAULT_REGISTRY_URL
    avatar_url: str = DEFAULT_AVATAR_URL
    user_agent: str = DEFAULT_USER_AGENT
    cache_dir: Path = field(default_factory=lambda: get_home_dir() / "cache")
    registry_cache_ttl_seconds: float = REGISTRY_CACHE_TTL_SECONDS
    outdated_cache_ttl_seconds: float = OUTDATED_CACHE_TTL_SECONDS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ManagerConfig:
        """Create config from a dictionary."""
        defaults = cls()
        return cls(
            apm_path=data.get("apm_path", defaults.apm_path),
            host_version=str(data.get("host_version", defaults.host_version)),
            packages_dir=(
                Path(data["packages_dir"]).expanduser()
                if data.get("packages_dir")
                else defaults.packages_dir
            ),
            engine_key=data.get("engine_key", defaults.engine_key),
            use_proxy_settings=bool(data.get("use_proxy_settings", False)),
            version_pinned_packages=list(data.get("version_pinned_packages") or []),
            disabled_packages=list(data.get("disabled_packages") or []),
            registry_url=data.get("registry_url", defaults.registry_url),
            avatar_url=data.get("avatar_url", defaults.avatar_url),
            user_agent=data.get("user_agent", defaults.user_agent),
            cache_dir=(
                Path(data["cache_dir"]).expanduser()
                if data.get("cache_dir")
                else defaults.cache_dir
            ),
            registry_cache_ttl_seconds=float(
                data.get("registry_cache_ttl_seconds", REGISTRY_CACHE_TTL_SECONDS)
            ),
            outdated_cache_ttl_seconds=float(
                data.get("outdated_cache_ttl_seconds", OUTDATED_CACHE_TTL_SECONDS)
            ),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> ManagerConfig:
        """Load config from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_yaml_string(cls, content: str) -> ManagerConfig:
        """Load config from a YAML string."""
        data = yaml.safe_load(content)
        return cls.from_dict(data or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a dictionary."""
        return {
            "apm_path": self.apm_path,
            "host_version": self.host_version,
            "packages_dir": str(self.packages_dir),
            "engine_key": self.engine_key,
            "use_proxy_settings": self.use_proxy_settings,
            "version_pinned_packages": list(self.version_pinned_packages),
            "disabled_packages": list(self.disabled_packages),
            "registry_url": self.registry_url,
            "avatar_url": self.avatar_url,
            "user_agent": self.user_agent,
            "cache_dir": str(self.cache_dir),
            "registry_cache_ttl_seconds": self.registry_cache_ttl_seconds,
            "outdated_cache_ttl_seconds": self.outdated_cache_ttl_seconds,
        }

    def save_yaml(self, path: Path) -> None:
        """Write config to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


class ConfigHostConfig(HostConfig):
    """
    Expose a :class:`ManagerConfig` as the host settings store.

    When ``path`` is given, changes to the disabled-packages list are written
    back to that YAML file.
    """

    def __init__(self, config: ManagerConfig, path: Path | None = None) -> None:
        self.config = config
        self.path = path

    def use_proxy_settings(self) -> bool:
        return self.config.use_proxy_settings

    def version_pinned_packages(self) -> list[str]:
        return list(self.config.version_pinned_packages)

    def remove_disabled_package(self, name: str) -> None:
        if name not in self.config.disabled_packages:
            return
        self.config.disabled_packages = [
            n for n in self.config.disabled_packages if n != name
        ]
        if self.path is not None:
            self.config.save_yaml(self.path)
