"""Data models for package content retrieval."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import semantic_version

from .versioning import to_normalized_string


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """Package id and version; the id compares case-insensitively."""

    id: str
    version: semantic_version.Version

    def __post_init__(self):
        if not self.id or not self.id.strip():
            raise ValueError("package id is required")
        if self.version is None:
            raise ValueError("package version is required")

    def _key(self):
        return (self.id.lower(), to_normalized_string(self.version).lower())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return f"{self.id} {to_normalized_string(self.version)}"


@dataclass
class PackageRecord:
    """What the package index knows about one package version."""

    id: str
    version: semantic_version.Version
    listed: bool = True
    license_url: Optional[str] = None
    license_expression: Optional[str] = None
    has_readme: bool = False
    has_embedded_icon: bool = False
    downloads: int = 0

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.id, self.version)


@dataclass
class PackageVersionsResponse:
    """Versions of a package id, as served by the package content resource."""

    versions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"versions": list(self.versions)}
