"""License filter configuration and its YAML loader."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class LicenseFilterOptions:
    """Configuration options for license filtering.

    Attributes:
        enabled: If True, packages with restricted licenses are blocked.
        blocked_license_patterns: Case-insensitive regular expressions matched
            against a license URL or a license expression, e.g. "AGPL",
            "GPL", "AFFERO.*GPL".
    """

    enabled: bool = False
    blocked_license_patterns: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LicenseFilterOptions":
        """Build options from a config mapping.

        Accepts ``blocked_license_patterns`` or its camelCase alias
        ``blockedLicensePatterns``. Raises ValueError on wrong types.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("license filter config must be a mapping")

        enabled = data.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ValueError(f"license filter 'enabled' must be a boolean, got {enabled!r}")

        patterns = data.get("blocked_license_patterns")
        if patterns is None:
            patterns = data.get("blockedLicensePatterns")
        if patterns is None:
            patterns = []
        if isinstance(patterns, str) or not isinstance(patterns, (list, tuple)):
            raise ValueError("license filter 'blocked_license_patterns' must be a list of strings")
        for pattern in patterns:
            if not isinstance(pattern, str):
                raise ValueError(f"blocked license pattern must be a string, got {pattern!r}")

        return cls(enabled=enabled, blocked_license_patterns=tuple(patterns))

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly view."""
        return {
            "enabled": self.enabled,
            "blocked_license_patterns": list(self.blocked_license_patterns),
        }


def _env_enabled_override() -> Optional[bool]:
    """Read the FEEDGATE_LICENSE_FILTER_ENABLED override, if set."""
    raw = os.environ.get(Constants.ENV_LICENSE_FILTER_ENABLED)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    logger.warning(
        "Ignoring %s=%r: expected a boolean",
        Constants.ENV_LICENSE_FILTER_ENABLED, raw,
    )
    return None


def load_license_filter_options(config_path: Optional[str]) -> LicenseFilterOptions:
    """Load license filter options from a YAML file.

    The ``license_filter`` section is used when present, otherwise the whole
    document. A missing file yields defaults; a malformed one raises
    ValueError so a broken blocklist never silently disables filtering.

    Args:
        config_path: Path to the YAML config file.

    Returns:
        LicenseFilterOptions instance.
    """
    data: Dict[str, Any] = {}
    if not config_path:
        logger.info("No license filter config given - license filtering disabled")
    elif not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
    else:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse config {config_path}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config {config_path} must contain a mapping")
        data = loaded.get(Constants.LICENSE_FILTER_SECTION, loaded)
        if data is None:
            data = {}

    options = LicenseFilterOptions.from_dict(data)

    override = _env_enabled_override()
    if override is not None and override != options.enabled:
        options = LicenseFilterOptions(
            enabled=override,
            blocked_license_patterns=options.blocked_license_patterns,
        )
    return options
