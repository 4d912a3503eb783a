"""
Core data models for package lifecycle management.

Descriptors identify a package and carry the metadata the lifecycle needs.
They are plain dataclasses so they serialize cleanly and stay host-agnostic.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class InstallSource:
    """Where an installed package came from."""

    type: str  # "git" for version-control installs
    source: str = ""

    @property
    def is_git(self) -> bool:
        return self.type == "git"


@dataclass(frozen=True)
class PackageDescriptor:
    """
    Identifies a package and the bits of metadata the lifecycle needs.

    Descriptors are never mutated: merging install metadata produces a new
    descriptor via :meth:`with_metadata`.
    """

    name: str
    version: str | None = None
    theme: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    install_source: InstallSource | None = None

    @property
    def is_theme(self) -> bool:
        """True if the package is a theme, by flag or by its metadata."""
        return bool(self.theme or self.metadata.get("theme"))

    @property
    def name_with_version(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name

    def with_metadata(self, metadata: dict[str, Any] | None) -> PackageDescriptor:
        """Return a copy with ``metadata`` merged over this descriptor."""
        if not metadata:
            return self
        return replace(
            self,
            name=metadata.get("name") or self.name,
            version=metadata.get("version") or self.version,
            metadata={**self.metadata, **metadata},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PackageDescriptor:
        """Create from the package tool's JSON representation."""
        metadata = data.get("metadata") or {}
        source = data.get("apmInstallSource") or data.get("installSource")
        return cls(
            name=data.get("name") or metadata.get("name", ""),
            version=data.get("version") or metadata.get("version"),
            theme=bool(data.get("theme")),
            metadata=dict(metadata),
            install_source=(
                InstallSource(type=source.get("type", ""), source=source.get("source", ""))
                if isinstance(source, dict)
                else None
            ),
        )
