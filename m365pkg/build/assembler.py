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

"""Package source staging for m365pkg.

Stages setup.exe, the edited configuration and support files into a source
folder, then hands that folder to a PackagingTool.

Layouts:
    flat:  everything at the stage root; the setup file is the installer
    files: an optional source tree (e.g. a PSADT template) at the root,
           installer, configuration and support files under Files/; the
           setup file defaults to Invoke-AppDeployToolkit.exe

Design Principles:
    - Every input is checked before anything is copied
    - Stage and output folders must be absent or empty
    - The staged configuration is always named Configuration.xml
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
import shutil
from typing import Literal

from m365pkg.build.packager import PackagingTool, find_package_file
from m365pkg.exceptions import (
    ConfigError,
    DestinationNotEmpty,
    MissingInputError,
)
from m365pkg.results import AssembleResult

Layout = Literal["flat", "files"]
LAYOUTS: tuple[str, ...] = ("flat", "files")

STAGED_CONFIGURATION_NAME = "Configuration.xml"
FILES_SUBDIR = "Files"
PSADT_SETUP_FILE = "Invoke-AppDeployToolkit.exe"


def check_required_inputs(paths: Iterable[Path]) -> None:
    """Raise MissingInputError for the first path that doesn't exist."""
    for path in paths:
        if not Path(path).exists():
            raise MissingInputError(path)


def ensure_empty_directory(path: Path) -> None:
    """Raise DestinationNotEmpty if path exists and has any entries."""
    path = Path(path)
    if path.exists() and (not path.is_dir() or any(path.iterdir())):
        raise DestinationNotEmpty(path)


def _copy_tree_contents(source: Path, destination: Path) -> None:
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    for item in source.iterdir():
        dest = destination / item.name
        if item.is_dir():
            shutil.copytree(item, dest, dirs_exist_ok=True)
            logger.debug("ASSEMBLE", f"  Copied directory: {item.name}/")
        else:
            shutil.copy2(item, dest)
            logger.debug("ASSEMBLE", f"  Copied file: {item.name}")


def assemble_package(
    stage_dir: Path,
    output_dir: Path,
    configuration_path: Path,
    installer_path: Path,
    tool: PackagingTool,
    *,
    layout: Layout = "flat",
    source_tree: Path | None = None,
    support_files: Iterable[Path] = (),
    setup_file: str | None = None,
    overwrite: bool = True,
) -> AssembleResult:
    """Stage package sources and run the packaging tool.

    Args:
        stage_dir: Folder to stage into. Must be absent or empty.
        output_dir: Folder for the package. Must be absent or empty.
        configuration_path: Edited configuration; staged as Configuration.xml.
        installer_path: setup.exe to package.
        tool: Packaging tool implementation.
        layout: "flat" or "files".
        source_tree: Folder whose contents go to the stage root. Required for
            the "files" layout, optional for "flat".
        support_files: Extra files staged next to the configuration.
        setup_file: Override for the setup file path relative to stage_dir.
        overwrite: Passed to the packaging tool.

    Returns:
        AssembleResult with the staged folder and produced package.

    Raises:
        ConfigError: If the layout is unknown or "files" has no source tree.
        MissingInputError: If an input doesn't exist.
        DestinationNotEmpty: If stage_dir or output_dir has content.
        PackagingError: If the tool fails or produces no package.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()

    if layout not in LAYOUTS:
        raise ConfigError(f"Unknown layout {layout!r}. Expected one of: {', '.join(LAYOUTS)}")
    if layout == "files" and source_tree is None:
        raise ConfigError("The 'files' layout needs a source tree")

    stage_dir = Path(stage_dir)
    output_dir = Path(output_dir)
    configuration_path = Path(configuration_path)
    installer_path = Path(installer_path)
    support_files = [Path(p) for p in support_files]

    required = [configuration_path, installer_path, *support_files]
    if source_tree is not None:
        required.insert(0, Path(source_tree))
    check_required_inputs(required)

    ensure_empty_directory(stage_dir)
    ensure_empty_directory(output_dir)

    stage_dir.mkdir(parents=True, exist_ok=True)
    output_dir.mkdir(parents=True, exist_ok=True)

    if source_tree is not None:
        logger.verbose("ASSEMBLE", f"Copying source tree: {source_tree}")
        _copy_tree_contents(Path(source_tree), stage_dir)

    if layout == "files":
        files_dir = stage_dir / FILES_SUBDIR
        files_dir.mkdir(exist_ok=True)
        default_setup = PSADT_SETUP_FILE
    else:
        files_dir = stage_dir
        default_setup = installer_path.name

    shutil.copy2(installer_path, files_dir / installer_path.name)
    shutil.copy2(configuration_path, files_dir / STAGED_CONFIGURATION_NAME)
    for support in support_files:
        shutil.copy2(support, files_dir / support.name)
    logger.verbose("ASSEMBLE", f"[OK] Staged {layout} layout in: {stage_dir}")

    setup = setup_file or default_setup
    if not (stage_dir / setup).exists():
        raise MissingInputError(
            stage_dir / setup, f"Setup file not found in staged source: {setup}"
        )

    tool.run(stage_dir, setup, output_dir, overwrite)
    package_path = find_package_file(output_dir)
    logger.verbose("ASSEMBLE", f"[OK] Package created: {package_path}")

    return AssembleResult(
        staged_dir=stage_dir,
        output_dir=output_dir,
        package_path=package_path,
        setup_file=setup,
        layout=layout,
    )
