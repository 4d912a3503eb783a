"""
Package lifecycle operations.
"""

from package_lifecycle.packages.manager import PackageManager, parse_install_metadata
from package_lifecycle.packages.outdated import OutdatedPackageCache, filter_pinned

__all__ = ["PackageManager", "OutdatedPackageCache", "filter_pinned", "parse_install_metadata"]
