"""License checker: decide whether a package's declared license is blocked."""

from __future__ import annotations

import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Pattern, Union

from yarl import URL

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url

from .exceptions import InvalidLicensePatternError
from .options import LicenseFilterOptions

logger = logging.getLogger(__name__)

LicenseUrl = Union[str, URL]
NuspecSource = Union[bytes, bytearray, BinaryIO]


@dataclass(frozen=True)
class DeclaredLicense:
    """License declared by a nuspec document.

    expression is only set from a ``<license type="expression">`` element;
    url is the legacy ``<licenseUrl>`` text.
    """

    expression: Optional[str] = None
    url: Optional[str] = None


def _absolute_uri(license_url: Optional[LicenseUrl]) -> Optional[str]:
    """Return the absolute string form of a URL, or None if it is not absolute."""
    if license_url is None:
        return None
    if isinstance(license_url, URL):
        url = license_url
    else:
        text = str(license_url).strip()
        if not text:
            return None
        try:
            url = URL(text)
        except (ValueError, TypeError):
            return None
    if not url.scheme:
        return None
    return str(url)


def _read_nuspec_bytes(nuspec: NuspecSource) -> bytes:
    """Read a nuspec from bytes or a binary stream, rewinding seekable streams."""
    if isinstance(nuspec, (bytes, bytearray)):
        return bytes(nuspec)
    if nuspec.seekable():
        nuspec.seek(0)
    return nuspec.read()


def _namespace_of(tag: str) -> str:
    """Return the ``{uri}`` prefix of an ElementTree tag, or ''."""
    if tag.startswith("{"):
        return tag[: tag.index("}") + 1]
    return ""


class LicenseChecker:
    """Check whether a package has a restricted license.

    Blocked patterns are compiled once here, case-insensitively, and shared
    read-only by every call.
    """

    def __init__(self, options: Optional[LicenseFilterOptions] = None):
        """Initialize the checker.

        Args:
            options: License filter options. None means filtering disabled.

        Raises:
            InvalidLicensePatternError: If a blocked pattern does not compile.
        """
        self._options = options or LicenseFilterOptions()
        self._blocked_patterns: List[Pattern[str]] = []
        for pattern in self._options.blocked_license_patterns:
            try:
                self._blocked_patterns.append(re.compile(pattern, re.IGNORECASE))
            except re.error as e:
                raise InvalidLicensePatternError(pattern, str(e)) from e

        logger.info(
            "License filter %s with %d blocked pattern(s)",
            "enabled" if self.is_enabled else "disabled",
            len(self._blocked_patterns),
        )

    @property
    def is_enabled(self) -> bool:
        """Whether license filtering is enabled."""
        return self._options.enabled

    @property
    def options(self) -> LicenseFilterOptions:
        return self._options

    @property
    def pattern_count(self) -> int:
        return len(self._blocked_patterns)

    def _is_active(self) -> bool:
        return self.is_enabled and bool(self._blocked_patterns)

    def _matches(self, subject: str) -> bool:
        return any(pattern.search(subject) for pattern in self._blocked_patterns)

    def is_restricted_license_url(self, license_url: Optional[LicenseUrl]) -> bool:
        """Check if a license URL matches any blocked pattern.

        Args:
            license_url: The license URL to check.

        Returns:
            True if the license is restricted, False otherwise.
        """
        if not self._is_active() or license_url is None:
            return False

        url_string = _absolute_uri(license_url)
        if url_string is None:
            return False
        return self._matches(url_string)

    def is_restricted_license_expression(self, license_expression: Optional[str]) -> bool:
        """Check if a license expression matches any blocked pattern.

        An empty or whitespace-only expression is never restricted.

        Args:
            license_expression: The license expression to check.

        Returns:
            True if the license is restricted, False otherwise.
        """
        if not self._is_active() or not license_expression or not license_expression.strip():
            return False
        return self._matches(license_expression)

    def is_restricted_license(
        self,
        license_url: Optional[LicenseUrl] = None,
        license_expression: Optional[str] = None,
    ) -> bool:
        """Check both license signals; either one matching restricts the package."""
        return (
            self.is_restricted_license_url(license_url)
            or self.is_restricted_license_expression(license_expression)
        )

    def read_declared_license(self, nuspec: NuspecSource) -> DeclaredLicense:
        """Extract the declared license from a nuspec document.

        Args:
            nuspec: Nuspec bytes or a readable binary stream.

        Returns:
            DeclaredLicense with the expression and/or legacy URL found.

        Raises:
            ET.ParseError, OSError: If the document cannot be read or parsed.
        """
        root = ET.parse(io.BytesIO(_read_nuspec_bytes(nuspec))).getroot()
        ns = _namespace_of(root.tag)

        metadata = root.find(f"{ns}{Constants.NUSPEC_METADATA}")
        if metadata is None:
            return DeclaredLicense()

        expression: Optional[str] = None
        license_elem = metadata.find(f"{ns}{Constants.NUSPEC_LICENSE}")
        if license_elem is not None:
            license_type = license_elem.get(Constants.NUSPEC_LICENSE_TYPE_ATTR)
            if license_type == Constants.NUSPEC_LICENSE_TYPE_EXPRESSION:
                value = "".join(license_elem.itertext()).strip()
                expression = value or None

        url: Optional[str] = None
        url_elem = metadata.find(f"{ns}{Constants.NUSPEC_LICENSE_URL}")
        if url_elem is not None:
            value = "".join(url_elem.itertext()).strip()
            url = value or None

        return DeclaredLicense(expression=expression, url=url)

    def is_restricted_declared_license(self, declared: DeclaredLicense) -> bool:
        """Classify a declared license: the expression decides alone when present."""
        if declared.expression:
            return self.is_restricted_license_expression(declared.expression)
        if declared.url:
            return self.is_restricted_license_url(declared.url)
        return False

    def inspect_nuspec(self, nuspec: NuspecSource) -> Optional[DeclaredLicense]:
        """Read the declared license, or None if the nuspec is unreadable."""
        try:
            return self.read_declared_license(nuspec)
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.warning(
                "Could not parse nuspec, allowing package: %s", e,
                extra=extra_context(event="nuspec_parse_failed", component="license_checker"),
            )
            return None

    def is_restricted_license_from_nuspec(self, nuspec: Optional[NuspecSource]) -> bool:
        """Check if a package has a restricted license by reading its nuspec.

        Documents that cannot be read or parsed are treated as not restricted.

        Args:
            nuspec: Nuspec bytes or a readable binary stream.

        Returns:
            True if the license is restricted, False otherwise.
        """
        if not self._is_active() or nuspec is None:
            return False

        declared = self.inspect_nuspec(nuspec)
        if declared is None:
            return False

        restricted = self.is_restricted_declared_license(declared)
        if is_debug_enabled(logger):
            logger.debug(
                "Classified nuspec license",
                extra=extra_context(
                    event="decision",
                    component="license_checker",
                    expression=declared.expression,
                    target=safe_url(declared.url) if declared.url else None,
                    outcome="restricted" if restricted else "allowed",
                ),
            )
        return restricted

    @staticmethod
    def get_license_info(
        license_url: Optional[LicenseUrl],
        license_expression: Optional[str] = None,
    ) -> str:
        """Describe a license for error messages.

        Args:
            license_url: The license URL.
            license_expression: The license expression.

        Returns:
            A string describing the license.
        """
        if license_expression and license_expression.strip():
            return f"License Expression: {license_expression}"

        url_string = _absolute_uri(license_url)
        if url_string is not None:
            return f"License URL: {url_string}"

        return "Unknown license"
