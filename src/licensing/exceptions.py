"""Exception hierarchy for feedgate.

Absent packages are never errors; only a restricted license and startup-time
misconfiguration are raised from this library.
"""

from __future__ import annotations

from typing import Optional

import semantic_version


class FeedgateError(Exception):
    """Base exception for all feedgate errors."""


class InvalidLicensePatternError(FeedgateError, ValueError):
    """Raised when a blocked license pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid blocked license pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class RestrictedLicenseError(FeedgateError):
    """Raised when a package's license matches a blocked pattern.

    Carries the package identity and a human-readable license description
    so the HTTP layer can render a "forbidden" response.
    """

    def __init__(
        self,
        package_id: str,
        package_version: semantic_version.Version,
        license_info: str,
    ):
        if not package_id:
            raise ValueError("package_id is required")
        if package_version is None:
            raise ValueError("package_version is required")
        if license_info is None:
            raise ValueError("license_info is required")
        super().__init__(
            f"Package {package_id} {package_version} has a restricted license "
            f"({license_info}) and cannot be mirrored or downloaded."
        )
        self.package_id = package_id
        self.package_version = package_version
        self.license_info = license_info

    def to_dict(self, version_string: Optional[str] = None) -> dict:
        """Serialize for an API error body."""
        return {
            "error": "Package blocked by license policy",
            "package": self.package_id,
            "version": version_string or str(self.package_version),
            "license": self.license_info,
            "message": str(self),
        }
