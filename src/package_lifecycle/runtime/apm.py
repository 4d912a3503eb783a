"""
Runner for the external package tool.

Every invocation gets ``--no-color`` appended, optionally runs with proxy
settings resolved for the registry host, and returns a fully buffered
:class:`ProcessResult`. Non-zero exits are returned, not raised; only a
failure to start the process raises :class:`SpawnFailure`.
"""

from __future__ import annotations

import asyncio
import os
import urllib.request
from collections.abc import Awaitable, Callable, Mapping, Sequence
from urllib.parse import urlsplit

from package_lifecycle.config import DEFAULT_REGISTRY_URL
from package_lifecycle.errors import SpawnFailure
from package_lifecycle.host import HostConfig, HostPackageRegistry
from package_lifecycle.logging import get_logger
from package_lifecycle.runtime.base import (
    AsyncioProcessSpawner,
    ProcessResult,
    ProcessSpawner,
)

logger = get_logger("runtime.apm")

NO_COLOR_FLAG = "--no-color"

# Resolves a URL to a PAC-style answer: "DIRECT" or "PROXY host:port"
ProxyResolver = Callable[[str], Awaitable[str | None]]


async def system_proxy_resolver(url: str) -> str | None:
    """Resolve ``url`` against the proxy settings of the environment."""
    parts = urlsplit(url)
    if parts.hostname and urllib.request.proxy_bypass(parts.hostname):
        return "DIRECT"
    proxy = urllib.request.getproxies().get(parts.scheme)
    if not proxy:
        return "DIRECT"
    return f"PROXY {urlsplit(proxy).netloc or proxy}"


def proxy_probe_urls(registry_url: str = DEFAULT_REGISTRY_URL) -> dict[str, str]:
    """Map proxy environment variables to the URLs used to resolve them."""
    host = urlsplit(registry_url).netloc
    return {
        "http_proxy": f"http://{host}",
        "https_proxy": f"https://{host}",
    }


def apply_proxy_to_env(env: dict[str, str], name: str, proxy: str | None) -> None:
    """Set or clear ``name`` in ``env`` from a PAC-style proxy string."""
    if not proxy:
        return
    parts = proxy.split()
    kind = parts[0].strip().upper()
    if kind == "DIRECT":
        env.pop(name, None)
    elif kind == "PROXY" and len(parts) > 1:
        env[name] = f"http://{parts[1]}"


class CommandRunner:
    """
    Run the package tool asynchronously and collect its output.

    Example:
        runner = CommandRunner(host, host_config)
        result = await runner.run(["ls", "--json"])
        if result.ok:
            packages = json.loads(result.stdout)
    """

    def __init__(
        self,
        host: HostPackageRegistry,
        config: HostConfig,
        spawner: ProcessSpawner | None = None,
        resolve_proxy: ProxyResolver | None = None,
        proxy_urls: Mapping[str, str] | None = None,
    ) -> None:
        self.host = host
        self.config = config
        self.spawner = spawner or AsyncioProcessSpawner()
        self.resolve_proxy = resolve_proxy or system_proxy_resolver
        self.proxy_urls = dict(proxy_urls or proxy_probe_urls())

    async def run(self, args: Sequence[str]) -> ProcessResult:
        """
        Run the package tool with ``args``.

        Returns:
            ProcessResult with the exit code and joined stdout/stderr lines

        Raises:
            SpawnFailure: the executable could not be started, or proxy
                resolution failed before it was
        """
        command = self.host.get_apm_path()
        argv = [*args, NO_COLOR_FLAG]

        logger.debug("Running %s %s", command, " ".join(argv))
        try:
            env = None
            if self.config.use_proxy_settings():
                env = await self.proxy_environment()
            process = await self.spawner.spawn(command, argv, env)
        except Exception as e:
            raise SpawnFailure(f"Could not start {command}", stderr=str(e)) from e

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        await asyncio.gather(
            _read_lines(process.stdout, stdout_lines),
            _read_lines(process.stderr, stderr_lines),
        )
        exit_code = await process.wait()
        logger.debug("%s %s exited with %s", command, argv[0] if argv else "", exit_code)

        return ProcessResult(
            exit_code=exit_code,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
        )

    async def proxy_environment(self) -> dict[str, str]:
        """Build the child environment with proxies resolved for the registry."""
        env = dict(os.environ)
        names = list(self.proxy_urls)
        proxies = await asyncio.gather(
            *(self.resolve_proxy(self.proxy_urls[name]) for name in names)
        )
        for name, proxy in zip(names, proxies):
            apply_proxy_to_env(env, name, proxy)
        return env


async def _read_lines(stream: asyncio.StreamReader | None, lines: list[str]) -> None:
    """Collect complete lines from ``stream`` until EOF."""
    if stream is None:
        return
    buffer = b""
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            break
        buffer += chunk
        *complete, buffer = buffer.split(b"\n")
        lines.extend(_decode(line) for line in complete)
    if buffer:
        lines.append(_decode(buffer))


def _decode(line: bytes) -> str:
    return line.decode("utf-8", errors="replace").rstrip("\r")
