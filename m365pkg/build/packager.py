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

""".intunewin package generation for m365pkg.

This module wraps Microsoft's IntuneWinAppUtil.exe behind the PackagingTool
port used by the assembler.

Design Principles:
    - IntuneWinAppUtil.exe is cached globally (not per-build)
    - The produced archive is found by its .intunewin extension
    - A failing tool run is fatal and never retried

Example:
    ```python
    from pathlib import Path
    from m365pkg.build.packager import IntuneWinAppUtil, get_intunewin_tool

    tool = IntuneWinAppUtil(get_intunewin_tool(Path("cache/tools")))
    tool.run(Path("build/source"), "setup.exe", Path("build/output"))
    ```
"""

from __future__ import annotations

from pathlib import Path
import subprocess
from typing import Protocol

from m365pkg.exceptions import PackagingError
from m365pkg.io import download_file

INTUNEWIN_TOOL_URL = (
    "https://github.com/microsoft/Microsoft-Win32-Content-Prep-Tool"
    "/raw/master/IntuneWinAppUtil.exe"
)
INTUNEWIN_TOOL_NAME = "IntuneWinAppUtil.exe"
PACKAGE_SUFFIX = ".intunewin"


class PackagingTool(Protocol):
    """Port for the tool that turns a staged folder into a package."""

    def run(
        self,
        source_dir: Path,
        setup_file: str,
        output_dir: Path,
        overwrite: bool = True,
    ) -> None:
        """Package source_dir into output_dir.

        Raises:
            PackagingError: If the tool reports failure.
        """
        ...


def get_intunewin_tool(cache_dir: Path, url: str = INTUNEWIN_TOOL_URL) -> Path:
    """Return a cached IntuneWinAppUtil.exe, downloading it on first use.

    Raises:
        NetworkError: If the download fails.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    cache_dir = Path(cache_dir)
    tool_path = cache_dir / INTUNEWIN_TOOL_NAME

    if tool_path.exists():
        logger.verbose("PACKAGE", f"Using cached IntuneWinAppUtil: {tool_path}")
        return tool_path

    logger.verbose("PACKAGE", "Downloading IntuneWinAppUtil.exe...")
    tool_path, _ = download_file(url, cache_dir, filename=INTUNEWIN_TOOL_NAME)
    logger.verbose("PACKAGE", f"[OK] IntuneWinAppUtil.exe cached: {tool_path}")
    return tool_path


def find_package_file(output_dir: Path) -> Path:
    """Locate the archive the packaging tool produced in output_dir.

    Raises:
        PackagingError: If no .intunewin file exists.
    """
    candidates = sorted(Path(output_dir).glob(f"*{PACKAGE_SUFFIX}"))
    if not candidates:
        raise PackagingError(f"No {PACKAGE_SUFFIX} file found in {output_dir}")
    # Most recent wins if an overwrite left an older archive behind
    return max(candidates, key=lambda p: p.stat().st_mtime)


class IntuneWinAppUtil:
    """PackagingTool backed by IntuneWinAppUtil.exe.

    Attributes:
        tool_path: Path to IntuneWinAppUtil.exe.
        timeout: Seconds to wait for the tool before giving up.
        catalog_dir: Optional catalog folder passed with -a.
    """

    def __init__(
        self,
        tool_path: Path,
        timeout: int = 300,
        catalog_dir: Path | None = None,
    ) -> None:
        self.tool_path = Path(tool_path)
        self.timeout = timeout
        self.catalog_dir = catalog_dir

    def command(self, source_dir: Path, setup_file: str, output_dir: Path) -> list[str]:
        # IntuneWinAppUtil.exe -c <source> -s <setup file> -o <output> [-a <catalog>] -q
        cmd = [
            str(self.tool_path),
            "-c",
            str(source_dir),
            "-s",
            setup_file,
            "-o",
            str(output_dir),
        ]
        if self.catalog_dir is not None:
            cmd += ["-a", str(self.catalog_dir)]
        cmd.append("-q")
        return cmd

    def run(
        self,
        source_dir: Path,
        setup_file: str,
        output_dir: Path,
        overwrite: bool = True,
    ) -> None:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        # -q makes the tool overwrite silently
        if not overwrite and any(output_dir.glob(f"*{PACKAGE_SUFFIX}")):
            raise PackagingError(f"Package already exists in {output_dir}")

        cmd = self.command(source_dir, setup_file, output_dir)
        logger.verbose("PACKAGE", f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as err:
            error_msg = f"IntuneWinAppUtil.exe failed (exit code {err.returncode})"
            detail = (err.stderr or err.stdout or "").strip()
            if detail:
                error_msg += f"\n{detail}"
            raise PackagingError(error_msg) from err
        except subprocess.TimeoutExpired as err:
            raise PackagingError(
                f"IntuneWinAppUtil.exe timed out after {err.timeout}s"
            ) from err
        except OSError as err:
            raise PackagingError(f"Could not start {self.tool_path}: {err}") from err

        for line in (result.stdout or "").strip().splitlines():
            logger.debug("PACKAGE", f"  {line}")
