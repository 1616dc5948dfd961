"""License filtering for served packages.

- options.py: LicenseFilterOptions and the YAML loader
- checker.py: LicenseChecker, classifying license URLs, expressions and nuspecs
- exceptions.py: RestrictedLicenseError and the feedgate error hierarchy
"""

from .options import LicenseFilterOptions, load_license_filter_options
from .checker import DeclaredLicense, LicenseChecker
from .exceptions import FeedgateError, InvalidLicensePatternError, RestrictedLicenseError

__all__ = [
    "LicenseFilterOptions",
    "load_license_filter_options",
    "DeclaredLicense",
    "LicenseChecker",
    "FeedgateError",
    "InvalidLicensePatternError",
    "RestrictedLicenseError",
]
