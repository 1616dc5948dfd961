"""Constants used in the project."""

from enum import Enum


class PackageFileKind(Enum):
    """Artifacts served by the package content resource.

    Args:
        Enum (string): Artifact kinds served per package version.
    """

    CONTENT = "nupkg"
    MANIFEST = "nuspec"
    README = "readme"
    ICON = "icon"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "FEEDGATE_LOG_LEVEL"
    ENV_LICENSE_FILTER_ENABLED = "FEEDGATE_LICENSE_FILTER_ENABLED"

    # Package content resource
    PACKAGE_CONTENT_BASE_PATH = "/v3/package"
    HEALTH_PATH = "/_feedgate/health"
    CONTENT_TYPE_NUPKG = "application/octet-stream"
    CONTENT_TYPE_NUSPEC = "application/xml"
    CONTENT_TYPE_README = "text/markdown"
    CONTENT_TYPE_ICON = "image/xyz"
    STREAM_CHUNK_SIZE = 64 * 1024

    # Configuration file section holding the license filter options
    LICENSE_FILTER_SECTION = "license_filter"

    # Nuspec element/attribute names
    NUSPEC_METADATA = "metadata"
    NUSPEC_LICENSE = "license"
    NUSPEC_LICENSE_URL = "licenseUrl"
    NUSPEC_LICENSE_TYPE_ATTR = "type"
    NUSPEC_LICENSE_TYPE_EXPRESSION = "expression"
