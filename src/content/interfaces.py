"""Collaborator protocols consumed by the package content service.

Implementations (database index, blob storage, upstream mirror client) live
outside this package.
"""

from __future__ import annotations

from typing import BinaryIO, Optional, Protocol, Sequence

import semantic_version

from .models import PackageRecord


class MirrorService(Protocol):
    """Read-through cache of an upstream feed."""

    async def find_package_versions(self, package_id: str) -> Sequence[semantic_version.Version]:
        """All known versions of a package id; empty if unknown."""
        ...

    async def mirror(self, package_id: str, version: semantic_version.Version) -> None:
        """Fetch the package into local index/storage if it is missing.

        Idempotent; a no-op when mirroring is disabled or the package is local.
        """
        ...


class PackageService(Protocol):
    """The package index."""

    async def find_or_none(
        self,
        package_id: str,
        version: semantic_version.Version,
        include_unlisted: bool = False,
    ) -> Optional[PackageRecord]:
        ...

    async def exists(self, package_id: str, version: semantic_version.Version) -> bool:
        ...

    async def add_download(self, package_id: str, version: semantic_version.Version) -> bool:
        """Increment the download counter; False if the package vanished."""
        ...


class PackageStorageService(Protocol):
    """Blob storage for package artifacts."""

    async def get_package_stream(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        ...

    async def get_nuspec_stream(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        ...

    async def get_readme_stream(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        ...

    async def get_icon_stream(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        ...
