"""Package content resource: versions, nupkg, nuspec, readme and icon streams."""

from .models import PackageIdentity, PackageRecord, PackageVersionsResponse
from .interfaces import MirrorService, PackageService, PackageStorageService
from .service import PackageContentService
from .versioning import parse_version, to_normalized_string, try_parse_version

__all__ = [
    "PackageIdentity",
    "PackageRecord",
    "PackageVersionsResponse",
    "MirrorService",
    "PackageService",
    "PackageStorageService",
    "PackageContentService",
    "parse_version",
    "to_normalized_string",
    "try_parse_version",
]
