"""
Error types raised by package operations.

Every error carries the captured ``stdout``/``stderr`` of whatever failed so
callers can render an actionable message. ``package_install_error`` is set by
lifecycle operations: ``True`` for regular packages, ``False`` for themes.
"""

from __future__ import annotations


class PackageManagerError(Exception):
    """Base class for command and network failures."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        package_install_error: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.package_install_error = package_install_error

    def __str__(self) -> str:
        if self.stderr:
            return f"{self.message}\n{self.stderr}"
        return self.message


class SpawnFailure(PackageManagerError):
    """The package tool could not be started."""


class NonZeroExit(PackageManagerError):
    """The package tool ran but exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        package_install_error: bool = False,
        exit_code: int = 1,
    ) -> None:
        super().__init__(message, stdout, stderr, package_install_error)
        self.exit_code = exit_code


class ParseFailure(PackageManagerError):
    """The package tool exited cleanly but its output was not valid JSON."""


class NetworkFailure(PackageManagerError):
    """A registry or avatar request failed."""
