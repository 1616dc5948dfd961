"""Package content service with read-through mirroring and license filtering.

Tracks package state through the index (``PackageService``) and reads
artifacts from ``PackageStorageService``. Every operation lets the mirror
fetch the package first so that packages only present upstream become
visible to the checks that follow.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Optional

import semantic_version

from common.logging_utils import extra_context
from licensing.checker import DeclaredLicense, LicenseChecker
from licensing.exceptions import RestrictedLicenseError

from .interfaces import MirrorService, PackageService, PackageStorageService
from .models import PackageIdentity, PackageRecord, PackageVersionsResponse
from .versioning import to_normalized_string

logger = logging.getLogger(__name__)


class PackageContentService:
    """Implements the NuGet package content resource.

    Only the package content stream is license gated. Manifests, readmes and
    icons stay available so clients can show why a download was refused.
    """

    def __init__(
        self,
        mirror: MirrorService,
        packages: PackageService,
        storage: PackageStorageService,
        license_checker: LicenseChecker,
    ):
        for name, value in (
            ("mirror", mirror),
            ("packages", packages),
            ("storage", storage),
            ("license_checker", license_checker),
        ):
            if value is None:
                raise ValueError(f"{name} is required")
        self._mirror = mirror
        self._packages = packages
        self._storage = storage
        self._license_checker = license_checker

    async def get_package_versions_or_none(
        self, package_id: str
    ) -> Optional[PackageVersionsResponse]:
        """Get all versions of a package, normalized and lower-cased.

        Args:
            package_id: Package id.

        Returns:
            The versions, or None if the package is unknown.
        """
        versions = await self._mirror.find_package_versions(package_id)
        if not versions:
            logger.debug("No versions found for %s", package_id)
            return None

        return PackageVersionsResponse(
            versions=[to_normalized_string(v).lower() for v in versions]
        )

    async def get_package_content_stream_or_none(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        """Get the package content (.nupkg) stream.

        Args:
            package_id: Package id.
            version: Package version.

        Returns:
            The content stream, or None if the package does not exist.

        Raises:
            RestrictedLicenseError: If the package license is blocked. Raised
                before the download is counted.
        """
        # Allow read-through caching if it is configured.
        await self._mirror.mirror(package_id, version)

        package = await self._packages.find_or_none(package_id, version, include_unlisted=True)
        if package is not None:
            await self._enforce_license(package_id, version, package)

        if not await self._packages.add_download(package_id, version):
            logger.debug(
                "Download not recorded for %s %s, package is gone",
                package_id, to_normalized_string(version),
            )
            return None

        return await self._storage.get_package_stream(package_id, version)

    async def _enforce_license(
        self,
        package_id: str,
        version: semantic_version.Version,
        package: PackageRecord,
    ) -> None:
        """Raise RestrictedLicenseError if the package's license is blocked.

        The nuspec is authoritative when storage has one; otherwise the
        index record's license URL is used.
        """
        if not self._license_checker.is_enabled:
            return

        declared: Optional[DeclaredLicense] = None
        nuspec = await self._storage.get_nuspec_stream(package_id, version)
        if nuspec is not None:
            with nuspec:
                declared = self._license_checker.inspect_nuspec(nuspec)
            # An unreadable nuspec declares nothing and is allowed.
            restricted = declared is not None and (
                self._license_checker.is_restricted_declared_license(declared)
            )
        else:
            restricted = self._license_checker.is_restricted_license_url(package.license_url)

        if not restricted:
            return

        if declared is not None:
            license_info = LicenseChecker.get_license_info(declared.url, declared.expression)
        else:
            license_info = LicenseChecker.get_license_info(package.license_url)
        identity = PackageIdentity(package_id, version)
        logger.warning(
            "Blocked: %s - %s",
            identity, license_info,
            extra=extra_context(
                event="license_blocked",
                component="content_service",
                package=package_id,
                version=to_normalized_string(version),
            ),
        )
        raise RestrictedLicenseError(package_id, version, license_info)

    async def get_package_manifest_stream_or_none(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        """Get the package manifest (.nuspec) stream, or None if missing."""
        # Allow read-through caching if it is configured.
        await self._mirror.mirror(package_id, version)

        if not await self._packages.exists(package_id, version):
            return None

        return await self._storage.get_nuspec_stream(package_id, version)

    async def get_package_readme_stream_or_none(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        """Get the package readme stream, or None if missing."""
        # Allow read-through caching if it is configured.
        await self._mirror.mirror(package_id, version)

        package = await self._packages.find_or_none(package_id, version, include_unlisted=True)
        if package is None or not package.has_readme:
            return None

        return await self._storage.get_readme_stream(package_id, version)

    async def get_package_icon_stream_or_none(
        self, package_id: str, version: semantic_version.Version
    ) -> Optional[BinaryIO]:
        """Get the package icon stream, or None if missing."""
        # Allow read-through caching if it is configured.
        await self._mirror.mirror(package_id, version)

        package = await self._packages.find_or_none(package_id, version, include_unlisted=True)
        if package is None or not package.has_embedded_icon:
            return None

        return await self._storage.get_icon_stream(package_id, version)
