"""
Package building for m365pkg.

This module stages setup.exe and its configuration into a package source,
runs IntuneWinAppUtil.exe, and derives the App.json manifest.

Public API:

assemble_package : function
    Stage sources in the flat or files layout and run the packaging tool.
build_manifest : function
    Build the App.json manifest from a template and the configuration.
write_manifest : function
    Write a manifest to disk.
load_manifest_template : function
    Load an App.json template.
IntuneWinAppUtil : class
    PackagingTool implementation backed by IntuneWinAppUtil.exe.
get_intunewin_tool : function
    Download and cache IntuneWinAppUtil.exe.

Example:
    from pathlib import Path
    from m365pkg.build import IntuneWinAppUtil, assemble_package, get_intunewin_tool

    result = assemble_package(
        stage_dir=Path("build/source"),
        output_dir=Path("build/output"),
        configuration_path=Path("build/Configuration.xml"),
        installer_path=Path("cache/setup.exe"),
        tool=IntuneWinAppUtil(get_intunewin_tool(Path("cache/tools"))),
    )

    print(f"Package: {result.package_path}")
"""

from .assembler import LAYOUTS, assemble_package
from .manifest import (
    PRODUCT_LABELS,
    build_manifest,
    load_manifest_template,
    write_manifest,
)
from .packager import IntuneWinAppUtil, PackagingTool, get_intunewin_tool

__all__ = [
    "LAYOUTS",
    "PRODUCT_LABELS",
    "IntuneWinAppUtil",
    "PackagingTool",
    "assemble_package",
    "build_manifest",
    "get_intunewin_tool",
    "load_manifest_template",
    "write_manifest",
]
