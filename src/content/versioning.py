"""NuGet version parsing and normalization on top of semantic_version."""

from __future__ import annotations

from typing import Optional, Union

import semantic_version

VersionLike = Union[str, semantic_version.Version]


def parse_version(value: VersionLike) -> semantic_version.Version:
    """Parse a NuGet version string.

    Strict SemVer first, then ``Version.coerce`` for NuGet's short and legacy
    forms ("1.0", "1.0.0.0").

    Raises:
        ValueError: If the value is not a version at all.
    """
    if isinstance(value, semantic_version.Version):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("Empty version string")
    try:
        return semantic_version.Version(text)
    except ValueError:
        return semantic_version.Version.coerce(text)


def try_parse_version(value: Optional[str]) -> Optional[semantic_version.Version]:
    """Safely parse a version string, returning None when invalid."""
    if value is None:
        return None
    try:
        return parse_version(value)
    except ValueError:
        return None


def to_normalized_string(version: VersionLike) -> str:
    """Return the normalized form: ``major.minor.patch[-prerelease]``.

    Build metadata is dropped, as NuGet does when normalizing.
    """
    ver = parse_version(version)
    text = f"{ver.major}.{ver.minor}.{ver.patch}"
    if ver.prerelease:
        text += "-" + ".".join(ver.prerelease)
    return text
