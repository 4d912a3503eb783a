"""Tests for CLI commands."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from package_lifecycle.cli import (
    COMMANDS,
    _installed_packages,
    cmd_install,
    cmd_outdated,
    cmd_update,
    create_manager,
    find_config,
    split_name_version,
)
from package_lifecycle.events import LifecycleEvent, PackageAction
from package_lifecycle.models import PackageDescriptor


class TestHelpers:
    @pytest.mark.parametrize(
        ("spec", "expected"),
        [
            ("minimap", ("minimap", None)),
            ("minimap@4.40.0", ("minimap", "4.40.0")),
            ("minimap@", ("minimap", None)),
            ("@scope", ("@scope", None)),
        ],
    )
    def test_split_name_version(self, spec: str, expected) -> None:
        assert split_name_version(spec) == expected

    def test_installed_packages_flattens_groups(self) -> None:
        installed = {"core": [{"name": "a"}], "user": [{"name": "b"}], "git": None}
        assert _installed_packages(installed) == [{"name": "a"}, {"name": "b"}]
        assert _installed_packages([{"name": "c"}]) == [{"name": "c"}]
        assert _installed_packages(None) == []

    def test_commands(self) -> None:
        assert set(COMMANDS) == {
            "installed",
            "featured",
            "outdated",
            "view",
            "install",
            "uninstall",
            "update",
            "search",
            "avatar",
        }


class TestCreateManager:
    def test_find_config(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("PACKAGE_LIFECYCLE_HOME", str(tmp_path / "home"))
        assert find_config() is None

        (tmp_path / "package-lifecycle.yaml").write_text("apm_path: apm\n")
        assert find_config() == tmp_path / "package-lifecycle.yaml"
        assert find_config(Path("other.yaml")) == Path("other.yaml")

    @pytest.mark.asyncio
    async def test_create_manager_from_config(self, tmp_path: Path, capsys) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            f"apm_path: /opt/apm\nhost_version: 1.2.3\nengine_key: pulsar\ncache_dir: {tmp_path / 'cache'}\n"
            "registry_url: https://mirror.example/api\n"
        )

        manager = create_manager(path)

        assert manager.host.get_apm_path() == "/opt/apm"
        assert manager.host.get_version() == "1.2.3"
        assert manager.engine_key == "pulsar"
        assert manager.get_client().cache_dir == tmp_path / "cache"
        assert manager.runner.proxy_urls == {
            "http_proxy": "http://mirror.example",
            "https_proxy": "https://mirror.example",
        }

        await manager.events.publish(
            LifecycleEvent.for_package(PackageAction.INSTALLED, PackageDescriptor("foo", version="1.0.0"))
        )
        assert "package-installed" in capsys.readouterr().out


class TestCommands:
    @pytest.mark.asyncio
    async def test_install(self, manager, runner, capsys) -> None:
        await cmd_install(manager, argparse.Namespace(name="foo@1.0.0"))

        assert runner.calls == [["install", "foo@1.0.0", "--json"]]
        assert "Installed foo@1.0.0" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_outdated_json(self, manager, runner, capsys) -> None:
        runner.respond("outdated", json.dumps([{"name": "foo", "latestVersion": "2.0.0"}]))

        await cmd_outdated(manager, argparse.Namespace(refresh=False, json=True))

        assert json.loads(capsys.readouterr().out) == [{"name": "foo", "latestVersion": "2.0.0"}]

    @pytest.mark.asyncio
    async def test_update_uses_latest_version(self, manager, runner) -> None:
        runner.respond("ls", json.dumps({"user": [{"name": "foo", "version": "1.0.0"}]}))
        runner.respond("outdated", json.dumps([{"name": "foo", "latestVersion": "2.0.0"}]))

        await cmd_update(manager, argparse.Namespace(name="foo", version=None))

        assert runner.calls_for("install") == [["install", "foo@2.0.0"]]

    @pytest.mark.asyncio
    async def test_update_git_package(self, manager, runner) -> None:
        installed = {"git": [{"name": "foo", "apmInstallSource": {"type": "git", "source": "me/foo"}}]}
        runner.respond("ls", json.dumps(installed))

        await cmd_update(manager, argparse.Namespace(name="foo", version=None))

        assert runner.calls_for("install") == [["install", "me/foo"]]
        assert runner.calls_for("outdated") == []

    @pytest.mark.asyncio
    async def test_update_up_to_date(self, manager, runner, capsys) -> None:
        await cmd_update(manager, argparse.Namespace(name="foo", version=None))

        assert runner.calls_for("install") == []
        assert "up to date" in capsys.readouterr().out

    def test_progress_handler_prints(self, capsys) -> None:
        from package_lifecycle.cli import print_progress
        from package_lifecycle.events import LifecycleEvent, PackageAction

        print_progress(LifecycleEvent.for_package(PackageAction.INSTALLING, PackageDescriptor("foo")))
        print_progress(
            LifecycleEvent.for_package(
                PackageAction.INSTALL_FAILED, PackageDescriptor("foo"), RuntimeError("x")
            )
        )

        out = capsys.readouterr().out
        assert "package-installing: foo" in out
        assert "package-install-failed: foo" in out
