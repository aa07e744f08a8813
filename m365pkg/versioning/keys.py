# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Version comparison utilities for m365pkg.

This module is format-agnostic: it does NOT read files or call services.
It only parses and compares version strings such as the ODT installer
version ("16.0.18129.20030") or an Intune display version.

Comparison is numeric per component, never lexical, so "9.10" is newer than
"9.9" and "10.0" is newer than "9.0". Missing trailing components count as
zero ("16.0" == "16.0.0").
"""

from __future__ import annotations

from dataclasses import dataclass
import re

_NUM_SEP = re.compile(r"[._-]")


@dataclass(frozen=True)
class DiscoveredVersion:
    """Container for a discovered version string.

    Attributes:
        version: Raw version string (e.g., "16.0.18129.20030").
        source: Where it came from (e.g., "pefile", "powershell", "override").

    """

    version: str
    source: str


def _ints_from_text(text: str) -> tuple[int, ...]:
    """Parse numeric components only.

    Raises ValueError if any non-numeric token is encountered to avoid
    silently mapping "1.2a" -> (1, 2, 0).
    """
    parts = [p for p in _NUM_SEP.split(text.strip()) if p]
    nums: list[int] = []
    for p in parts:
        if not p.isdigit():
            raise ValueError(f"non-numeric version component {p!r} in {text!r}")
        nums.append(int(p))
    return tuple(nums) if nums else (0,)


def _leading_release_tuple(text: str) -> tuple[int, ...]:
    """Extract the leading numeric tuple from a version-like string.

    A leading "v" is dropped and parsing stops at the first token that is not
    purely numeric (its leading digits are kept). Returns () when the string
    carries no digits at all.
    """
    s = text.strip().lower()
    if s.startswith("v"):
        s = s[1:]
    nums: list[int] = []
    for p in _NUM_SEP.split(s):
        if not p:
            continue
        if p.isdigit():
            nums.append(int(p))
            continue
        m = re.match(r"(\d+)", p)
        if m:
            nums.append(int(m.group(1)))
        break
    return tuple(nums)


def _pad_equal(
    a: tuple[int, ...], b: tuple[int, ...]
) -> tuple[tuple[int, ...], tuple[int, ...]]:
    """Pad tuples with zeros so they align for element-wise comparison."""
    n = max(len(a), len(b))
    return a + (0,) * (n - len(a)), b + (0,) * (n - len(b))


def version_key(text: str) -> tuple:
    """Compute a sortable key for a version string.

    Purely numeric versions sort by their integer components. Versions with
    a non-numeric suffix sort by their leading numeric part and then by the
    raw text. Strings with no digits sort before everything else.
    """
    try:
        return (1, _ints_from_text(text), "")
    except ValueError:
        release = _leading_release_tuple(text)
        if release:
            return (1, release, text.strip().lower())
        return (0, (), text.strip().lower())


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings.

    Returns -1 if a < b, 0 if equal, 1 if a > b.

    Example:
        ```python
        compare_versions("9.10", "9.9")   # 1
        compare_versions("16.0", "16.0.0")  # 0
        ```
    """
    ka = version_key(a)
    kb = version_key(b)
    if ka[0] == kb[0] == 1:
        ra, rb = _pad_equal(ka[1], kb[1])
        ka = (1, ra, ka[2])
        kb = (1, rb, kb[2])
    return (ka > kb) - (ka < kb)


def is_newer(candidate: str, current: str | None) -> bool:
    """Return True iff candidate is strictly newer than current.

    A missing current version means anything is newer.
    """
    if current is None:
        return True
    return compare_versions(candidate, current) > 0
