"""
Package tool execution runtime.
"""

from package_lifecycle.runtime.apm import (
    CommandRunner,
    apply_proxy_to_env,
    proxy_probe_urls,
    system_proxy_resolver,
)
from package_lifecycle.runtime.base import (
    AsyncioProcessSpawner,
    ProcessResult,
    ProcessSpawner,
    SpawnedProcess,
)

__all__ = [
    "CommandRunner",
    "ProcessResult",
    "ProcessSpawner",
    "SpawnedProcess",
    "AsyncioProcessSpawner",
    "apply_proxy_to_env",
    "proxy_probe_urls",
    "system_proxy_resolver",
]
