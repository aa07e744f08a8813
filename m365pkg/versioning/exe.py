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

"""Installer file version extraction for m365pkg.

The package version published to Intune is the version of the Office
Deployment Tool binary (setup.exe), not the Microsoft 365 Apps build it
installs. This module reads it from the executable's version resource.

Backends, in order:
    1. pefile: reads VS_FIXEDFILEINFO from the PE resource section
       (works on any platform)
    2. PowerShell: (Get-Item).VersionInfo.FileVersion on Windows

Example:
    ```python
    from m365pkg.versioning.exe import version_from_exe_file_version

    discovered = version_from_exe_file_version("cache/setup.exe")
    print(discovered.version)  # 16.0.18129.20030
    ```
"""

from __future__ import annotations

from pathlib import Path
import subprocess
import sys

import pefile

from m365pkg.exceptions import PackagingError

from .keys import DiscoveredVersion


def _version_via_pefile(path: Path) -> str | None:
    """Read FileVersion from the fixed file info block of a PE file."""
    pe = pefile.PE(str(path), fast_load=True)
    try:
        pe.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_RESOURCE"]]
        )
        fixed = getattr(pe, "VS_FIXEDFILEINFO", None)
        if not fixed:
            return None
        info = fixed[0]
        ms, ls = info.FileVersionMS, info.FileVersionLS
        return f"{ms >> 16}.{ms & 0xFFFF}.{ls >> 16}.{ls & 0xFFFF}"
    finally:
        pe.close()


def _version_via_powershell(path: Path) -> str | None:
    result = subprocess.run(
        [
            "powershell",
            "-NoProfile",
            "-NonInteractive",
            "-Command",
            f"(Get-Item -LiteralPath '{path}').VersionInfo.FileVersion",
        ],
        check=True,
        capture_output=True,
        text=True,
        timeout=30,
    )
    return result.stdout.strip() or None


def version_from_exe_file_version(file_path: str | Path) -> DiscoveredVersion:
    """Extract the file version from a Windows executable.

    Args:
        file_path: Path to the executable (e.g., setup.exe).

    Returns:
        Discovered version with the backend that produced it.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        PackagingError: If no backend could read a version.

    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    p = Path(file_path)
    if not p.exists():
        raise FileNotFoundError(f"Installer not found: {p}")

    logger.verbose("VERSION", f"Extracting file version from: {p.name}")

    logger.debug("VERSION", "Trying backend: pefile...")
    try:
        version = _version_via_pefile(p)
    except pefile.PEFormatError as err:
        raise PackagingError(f"Not a valid Windows executable: {p}: {err}") from err
    if version:
        logger.verbose("VERSION", f"Success! Extracted: {version} (via pefile)")
        return DiscoveredVersion(version=version, source="pefile")

    if sys.platform.startswith("win"):
        logger.debug("VERSION", "pefile found no version resource, trying PowerShell...")
        try:
            version = _version_via_powershell(p)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as err:
            raise PackagingError(f"PowerShell version query failed: {err}") from err
        if version:
            logger.verbose("VERSION", f"Success! Extracted: {version} (via PowerShell)")
            return DiscoveredVersion(version=version, source="powershell")

    raise PackagingError(f"No file version resource found in {p}")
