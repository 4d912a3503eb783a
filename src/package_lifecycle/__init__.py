"""
Package Lifecycle - install, update and discover host application packages.

This library drives an external package tool through install, uninstall and
update flows, emits lifecycle events for each step, shares concurrent
requests, and caches registry and "outdated" responses so the host keeps
working when the network is unavailable.

Example:
    from package_lifecycle import PackageDescriptor, PackageManager

    manager = PackageManager(host, host_config)
    manager.on("package-installed", lambda event: print(event.pack.name))

    await manager.install(PackageDescriptor("minimap", version="4.40.0"))
    outdated = await manager.get_outdated()
"""

from package_lifecycle.cache import (
    CacheEntry,
    CacheStore,
    JsonFileStore,
    MemoryStore,
    TTLCache,
)
from package_lifecycle.config import ConfigHostConfig, ManagerConfig
from package_lifecycle.errors import (
    NetworkFailure,
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
    LifecycleEvent,
    PackageAction,
    PackageKind,
)
from package_lifecycle.host import HostConfig, HostPackageRegistry, StandaloneHost
from package_lifecycle.models import InstallSource, PackageDescriptor
from package_lifecycle.packages import OutdatedPackageCache, PackageManager
from package_lifecycle.registry import AvatarCache, RegistryClient
from package_lifecycle.runtime import (
    AsyncioProcessSpawner,
    CommandRunner,
    ProcessResult,
    ProcessSpawner,
)
from package_lifecycle.versions import can_upgrade, normalize_version, satisfies_version

__version__ = "0.1.0"

__all__ = [
    # Manager
    "PackageManager",
    "OutdatedPackageCache",
    # Models
    "PackageDescriptor",
    "InstallSource",
    # Host
    "HostPackageRegistry",
    "HostConfig",
    "StandaloneHost",
    # Config
    "ManagerConfig",
    "ConfigHostConfig",
    # Runtime
    "CommandRunner",
    "ProcessResult",
    "ProcessSpawner",
    "AsyncioProcessSpawner",
    # Registry
    "RegistryClient",
    "AvatarCache",
    # Cache
    "TTLCache",
    "CacheEntry",
    "CacheStore",
    "MemoryStore",
    "JsonFileStore",
    # Events
    "EventBus",
    "LifecycleEvent",
    "AlternativeEvent",
    "PackageAction",
    "PackageKind",
    "INSTALLING_ALTERNATIVE",
    "INSTALLED_ALTERNATIVE",
    "INSTALL_ALTERNATIVE_FAILED",
    # Errors
    "PackageManagerError",
    "SpawnFailure",
    "NonZeroExit",
    "ParseFailure",
    "NetworkFailure",
    # Versions
    "can_upgrade",
    "satisfies_version",
    "normalize_version",
]
