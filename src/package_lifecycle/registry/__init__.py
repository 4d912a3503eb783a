"""
Remote package registry access.
"""

from package_lifecycle.registry.avatars import AvatarCache, newest_avatar_files
from package_lifecycle.registry.client import RegistryClient, flatten_search_results

__all__ = ["RegistryClient", "AvatarCache", "flatten_search_results", "newest_avatar_files"]
