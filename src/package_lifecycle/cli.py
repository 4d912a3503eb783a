"""
Command-line interface for the package manager.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from package_lifecycle.config import ConfigHostConfig, ManagerConfig, get_home_dir
from package_lifecycle.errors import PackageManagerError
from package_lifecycle.events import LifecycleEvent, PackageAction
from package_lifecycle.host import StandaloneHost
from package_lifecycle.logging import setup_logging
from package_lifecycle.models import PackageDescriptor
from package_lifecycle.packages.manager import PackageManager
from package_lifecycle.packages.outdated import OutdatedPackageCache
from package_lifecycle.registry.client import RegistryClient
from package_lifecycle.runtime.apm import CommandRunner, proxy_probe_urls

console = Console()

CONFIG_FILENAME = "package-lifecycle.yaml"

_PROGRESS_EVENTS = " ".join(
    f"{kind}-{action.value}"
    for kind in ("package", "theme")
    for action in PackageAction
    if action is not PackageAction.UPDATE_AVAILABLE
)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Install, update and discover packages",
        prog="pkgs",
    )

    # Global options
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output (debug logging)",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to a config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    installed_parser = subparsers.add_parser("installed", help="List installed packages")
    installed_parser.add_argument("--json", action="store_true", help="Output as JSON")

    featured_parser = subparsers.add_parser("featured", help="List featured packages")
    featured_parser.add_argument("--themes", action="store_true", help="List featured themes")
    featured_parser.add_argument("--json", action="store_true", help="Output as JSON")

    outdated_parser = subparsers.add_parser("outdated", help="List packages with updates")
    outdated_parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore the cached result",
    )
    outdated_parser.add_argument("--json", action="store_true", help="Output as JSON")

    view_parser = subparsers.add_parser("view", help="Show package details")
    view_parser.add_argument("name", help="Package name")
    view_parser.add_argument(
        "--compatible",
        action="store_true",
        help="Show the newest version compatible with the host",
    )

    install_parser = subparsers.add_parser("install", help="Install a package")
    install_parser.add_argument("name", help="Package name, optionally NAME@VERSION")

    uninstall_parser = subparsers.add_parser("uninstall", help="Uninstall a package")
    uninstall_parser.add_argument("name", help="Package name")

    update_parser = subparsers.add_parser("update", help="Update a package")
    update_parser.add_argument("name", help="Package name")
    update_parser.add_argument("version", nargs="?", help="Target version (default: latest)")

    search_parser = subparsers.add_parser("search", help="Search the registry")
    search_parser.add_argument("query", help="Search terms")
    search_parser.add_argument("--themes", action="store_true", help="Only search themes")
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    avatar_parser = subparsers.add_parser("avatar", help="Fetch a user's avatar image")
    avatar_parser.add_argument("login", help="User login")

    args = parser.parse_args()

    # Setup logging based on verbosity
    if getattr(args, "verbose", False):
        setup_logging("DEBUG")
    else:
        setup_logging("WARNING")

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        asyncio.run(_run(handler, args))
    except PackageManagerError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        if e.stderr:
            console.print(f"[dim]{e.stderr}[/dim]")
        sys.exit(1)


async def _run(handler: Any, args: argparse.Namespace) -> None:
    manager = create_manager(args.config)
    try:
        await handler(manager, args)
    finally:
        await manager.get_client().close()


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def find_config(explicit: Path | None = None) -> Path | None:
    """Locate the config file: explicit path, current directory, then home."""
    if explicit is not None:
        return explicit
    for path in (Path.cwd() / CONFIG_FILENAME, get_home_dir() / "config.yaml"):
        if path.exists():
            return path
    return None


def create_manager(config_path: Path | None = None) -> PackageManager:
    """Build a manager, host and registry client from a config file."""
    path = find_config(config_path)
    config = ManagerConfig.from_yaml(path) if path else ManagerConfig()

    host = StandaloneHost(
        apm_path=config.apm_path,
        version=config.host_version,
        packages_dir=config.packages_dir,
        disabled=config.disabled_packages,
    )
    host_config = ConfigHostConfig(config, path)
    manager = PackageManager(
        host,
        host_config,
        runner=CommandRunner(
            host, host_config, proxy_urls=proxy_probe_urls(config.registry_url)
        ),
        outdated_cache=OutdatedPackageCache(ttl=config.outdated_cache_ttl_seconds),
        engine_key=config.engine_key,
    )
    manager.set_client(
        RegistryClient(
            manager,
            config.registry_url,
            cache_dir=config.cache_dir,
            user_agent=config.user_agent,
            avatar_url=config.avatar_url,
            expiry=config.registry_cache_ttl_seconds,
        )
    )
    manager.on(_PROGRESS_EVENTS, print_progress)
    return manager


def print_progress(event: LifecycleEvent) -> None:
    """Print one line per lifecycle event."""
    name = event.pack.name_with_version
    if event.error is not None:
        console.print(f"[red]✗[/red] {event.name}: {name}")
    elif event.action.value.endswith("ing"):
        console.print(f"[dim]… {event.name}: {name}[/dim]")
    else:
        console.print(f"[green]✓[/green] {event.name}: {name}")


def _print_packages(title: str, packages: list[dict[str, Any]], version_key: str = "version") -> None:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Description")

    for pack in packages:
        table.add_row(
            pack.get("name", ""),
            str(pack.get(version_key) or ""),
            (pack.get("description") or "")[:60],
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(packages)} packages[/dim]")


def _installed_packages(installed: Any) -> list[dict[str, Any]]:
    """Flatten ``ls --json`` output, which groups packages by origin."""
    if isinstance(installed, list):
        return installed
    if isinstance(installed, dict):
        return [
            pack
            for group in ("core", "dev", "user", "git")
            for pack in installed.get(group) or []
        ]
    return []


def split_name_version(spec: str) -> tuple[str, str | None]:
    """``"minimap@4.40.0"`` -> ``("minimap", "4.40.0")``."""
    name, sep, version = spec.rpartition("@")
    if not sep or not name:
        return spec, None
    return name, version or None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_installed(manager: PackageManager, args: argparse.Namespace) -> None:
    """List installed packages."""
    packages = _installed_packages(await manager.get_installed())
    if args.json:
        console.print_json(json.dumps(packages))
        return
    _print_packages("Installed Packages", packages)


async def cmd_featured(manager: PackageManager, args: argparse.Namespace) -> None:
    """List featured packages or themes."""
    client = manager.get_client()
    packages = await (client.featured_themes() if args.themes else client.featured_packages())
    packages = packages or []
    if args.json:
        console.print_json(json.dumps(packages))
        return
    _print_packages("Featured Themes" if args.themes else "Featured Packages", packages)


async def cmd_outdated(manager: PackageManager, args: argparse.Namespace) -> None:
    """List packages with newer compatible versions."""
    packages = await manager.get_outdated(clear_cache=args.refresh)
    if args.json:
        console.print_json(json.dumps(packages))
        return
    if not packages:
        console.print("[green]All packages are up to date.[/green]")
        return
    _print_packages("Outdated Packages", packages, version_key="latestVersion")


async def cmd_view(manager: PackageManager, args: argparse.Namespace) -> None:
    """Show package details."""
    if args.compatible:
        metadata = await manager.load_compatible_package_version(args.name)
    else:
        metadata = await manager.get_package(args.name)

    pack = PackageDescriptor(name=args.name).with_metadata(metadata)
    console.print(f"\n[bold]{manager.get_package_title(pack)}[/bold] {pack.version or ''}")
    if pack.metadata.get("description"):
        console.print(f"[dim]{pack.metadata['description']}[/dim]\n")

    repository = manager.get_repository_url(pack)
    if repository:
        console.print(f"  Repository: {repository}")
    if "downloads" in pack.metadata:
        console.print(f"  Downloads: {pack.metadata['downloads']}")

    host_version = manager.host.get_version()
    compatible = manager.satisfies_version(host_version, pack.metadata)
    status = "[green]yes[/green]" if compatible else "[red]no[/red]"
    console.print(f"  Compatible with {host_version}: {status}")


async def cmd_install(manager: PackageManager, args: argparse.Namespace) -> None:
    """Install a package."""
    name, version = split_name_version(args.name)
    installed = await manager.install(PackageDescriptor(name=name, version=version))
    console.print(f"[green]Installed {installed.name_with_version}[/green]")


async def cmd_uninstall(manager: PackageManager, args: argparse.Namespace) -> None:
    """Uninstall a package."""
    await manager.uninstall(PackageDescriptor(name=args.name))
    console.print(f"[green]Uninstalled {args.name}[/green]")


async def cmd_update(manager: PackageManager, args: argparse.Namespace) -> None:
    """Update a package to a version, or to the newest compatible one."""
    installed = _installed_packages(await manager.get_installed())
    match = next((p for p in installed if p.get("name") == args.name), None)
    pack = PackageDescriptor.from_dict(match) if match else PackageDescriptor(name=args.name)

    version = args.version
    is_git = pack.install_source is not None and pack.install_source.is_git
    if version is None and not is_git:
        outdated = await manager.get_outdated()
        available = next((p for p in outdated if p.get("name") == args.name), None)
        if available is None:
            console.print(f"[green]{args.name} is up to date.[/green]")
            return
        version = available.get("latestVersion")

    await manager.update(pack, version)
    console.print(f"[green]Updated {args.name}[/green]")


async def cmd_search(manager: PackageManager, args: argparse.Namespace) -> None:
    """Search the registry."""
    packages = await manager.get_client().search(args.query, themes=args.themes)
    if args.json:
        console.print_json(json.dumps(packages))
        return

    table = Table(title=f"Results for “{args.query}”")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Downloads", justify="right")
    table.add_column("Description")

    for pack in packages:
        table.add_row(
            pack.get("name", ""),
            str(pack.get("version") or ""),
            str(pack.get("downloads") or 0),
            (pack.get("description") or "")[:60],
        )

    console.print(table)


async def cmd_avatar(manager: PackageManager, args: argparse.Namespace) -> None:
    """Fetch a user's avatar and print where it is stored."""
    path = await manager.get_client().avatar(args.login)
    if path is None:
        console.print(f"[yellow]No avatar available for {args.login}[/yellow]")
        sys.exit(1)
    console.print(str(path))


COMMANDS = {
    "installed": cmd_installed,
    "featured": cmd_featured,
    "outdated": cmd_outdated,
    "view": cmd_view,
    "install": cmd_install,
    "uninstall": cmd_uninstall,
    "update": cmd_update,
    "search": cmd_search,
    "avatar": cmd_avatar,
}


if __name__ == "__main__":
    main()
