"""
Version comparison and extraction utilities for m365pkg.

Modules
-------
keys : module
    Numeric (never lexical) version comparison.
exe : module
    File version extraction from the ODT setup.exe.

Public API
----------
DiscoveredVersion : dataclass
    Container for a discovered version with its source.
compare_versions : function
    Compare two version strings, returning -1, 0, or 1.
is_newer : function
    Check if a candidate version is newer than the current one.
version_key : function
    Generate a sortable key for any version string.

Examples
--------
    >>> from m365pkg.versioning import compare_versions
    >>> compare_versions("9.10", "9.9")
    1
    >>> compare_versions("10.0", "9.0")
    1
"""

from .keys import DiscoveredVersion, compare_versions, is_newer, version_key

__all__ = ["DiscoveredVersion", "compare_versions", "is_newer", "version_key"]
