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

"""Command-line interface for m365pkg.

This module provides the main CLI entry point for the m365pkg tool.

Commands:

    package: Edit a configuration, build the .intunewin package and
        publish it to Intune
    validate: Check a folder of configuration documents

Example:
    Build and publish:
        ```bash
        $ m365pkg package configs/O365ProPlus.xml --channel MonthlyEnterprise \\
            --company-name Contoso --tenant-id 00000000-0000-0000-0000-000000000000
        ```

    Build only:
        ```bash
        $ m365pkg package configs/O365ProPlus.xml --channel Current \\
            --company-name Contoso --tenant-id ... --build-only
        ```

    Validate a configuration library:
        ```bash
        $ m365pkg validate configs/
        ```

Exit Codes:

- 0: Success (including "no update needed")
- 1: Error (configuration, packaging, network or validation failure)

Note:
    Errors are printed to stderr. Verbose mode shows full tracebacks.
    Debug mode implies verbose mode and dumps request details with secrets
    redacted. Client credentials can also come from M365PKG_CLIENT_ID and
    M365PKG_CLIENT_SECRET (a .env file is honored).

"""

from __future__ import annotations

import argparse
import dataclasses
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
import sys

from m365pkg.build.assembler import LAYOUTS
from m365pkg.config import load_settings
from m365pkg.core import PublishOrchestrator, PublishRequest
from m365pkg.document import SUPPORTED_CHANNELS
from m365pkg.exceptions import ConfigError, M365PkgError
from m365pkg.intune import ClientCredentialAuth, GraphCatalogClient
from m365pkg.logging import get_logger, set_global_logger
from m365pkg.validation import validate_configurations


def _package_version() -> str:
    try:
        return version("m365pkg")
    except PackageNotFoundError:
        return "unknown"


def _print_error(err: BaseException, show_traceback: bool) -> None:
    print(f"Error: {err}", file=sys.stderr)
    for note in getattr(err, "__notes__", []):
        print(f"  {note}", file=sys.stderr)
    if show_traceback:
        import traceback

        traceback.print_exc()


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'm365pkg validate' command.

    Returns:
        Exit code (0 for a valid library, 1 otherwise).
    """
    logger = get_logger(verbose=args.verbose, debug=False)
    set_global_logger(logger)

    configs_dir = Path(args.configs_dir).resolve()
    print(f"Validating configurations in: {configs_dir}")
    print()

    result = validate_configurations(configs_dir)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Folder:      {result.configs_dir}")
    print(f"Status:      {result.status.upper()}")
    print(f"Files:       {result.file_count}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):", file=sys.stderr)
        for error in result.errors:
            print(f"  [X] {error}", file=sys.stderr)
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Configurations are valid!")
        return 0
    print()
    print(f"[FAILED] Validation failed with {len(result.errors)} error(s).")
    return 1


def _build_catalog(args: argparse.Namespace, settings) -> GraphCatalogClient:
    auth = ClientCredentialAuth(
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        client_secret=args.client_secret,
    )
    if not auth.has_credentials():
        raise ConfigError(
            "Publishing needs client credentials: pass --client-id and "
            "--client-secret, set M365PKG_CLIENT_ID and M365PKG_CLIENT_SECRET, "
            "or use --build-only"
        )
    return GraphCatalogClient(
        auth,
        base_url=settings.graph_base_url,
        timeout=settings.graph_timeout,
        poll_interval=settings.poll_interval,
        poll_attempts=settings.poll_attempts,
    )


def cmd_package(args: argparse.Namespace) -> int:
    """Handler for 'm365pkg package' command.

    Edits the configuration into the working directory, stages and packages
    it, builds App.json and, unless --build-only, publishes the package and
    supersedes older versions.

    Returns:
        Exit code (0 for success or no update needed, 1 for failure).
    """
    logger = get_logger(verbose=args.verbose, debug=args.debug)
    set_global_logger(logger)

    configuration = Path(args.configuration).resolve()
    print(f"Packaging configuration: {configuration}")
    print(f"Channel: {args.channel}")
    print()

    try:
        settings = load_settings(Path(args.settings) if args.settings else None)
        overrides = {}
        if args.layout:
            overrides["layout"] = args.layout
        if args.work_dir:
            overrides["work_dir"] = Path(args.work_dir).resolve()
        if overrides:
            settings = dataclasses.replace(settings, **overrides)

        catalog = None if args.build_only else _build_catalog(args, settings)
        orchestrator = PublishOrchestrator(settings, catalog=catalog, logger=logger)
        result = orchestrator.run(
            PublishRequest(
                configuration=configuration,
                channel=args.channel,
                organization_name=args.company_name,
                tenant_id=args.tenant_id,
                installer=Path(args.installer).resolve() if args.installer else None,
                publish=not args.build_only,
                force=args.force,
                clean=args.clean,
            )
        )
    except M365PkgError as err:
        _print_error(err, args.verbose or args.debug)
        return 1

    print("=" * 70)
    print("PACKAGE RESULTS")
    print("=" * 70)
    print(f"Display Name:    {result.display_name}")
    print(f"Version:         {result.version}")
    print(f"Tracking GUID:   {result.tracking_guid}")
    print(f"Package Path:    {result.package_path}")
    print(f"Manifest:        {result.manifest_path}")
    if result.decision is not None:
        print(f"Decision:        {result.decision.reason}")
    if result.published_id:
        print(f"Published ID:    {result.published_id}")
    if result.superseded_ids:
        print(f"Superseded:      {', '.join(result.superseded_ids)}")
    print(f"Status:          {result.status}")
    print("=" * 70)
    print()

    if result.status == "skipped":
        print("[SUCCESS] No update needed.")
    elif result.status == "published":
        print("[SUCCESS] Package published to Intune!")
    else:
        print("[SUCCESS] .intunewin package created successfully!")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the m365pkg CLI.

    This function is registered as the 'm365pkg' console script in pyproject.toml.
    """
    parser = argparse.ArgumentParser(
        prog="m365pkg",
        description="m365pkg - Microsoft 365 Apps packaging for Intune",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"m365pkg {_package_version()}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate a folder of configuration documents",
        description="Check configuration XML files for parse errors, bad or duplicate IDs and missing fields.",
    )
    parser_validate.add_argument(
        "configs_dir",
        help="Folder containing configuration XML files",
    )
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    # 'package' command
    parser_package = subparsers.add_parser(
        "package",
        help="Build a .intunewin package and publish it to Intune",
        description="Edit a configuration, package it with setup.exe and publish it as a Win32 app.",
    )
    parser_package.add_argument(
        "configuration",
        help="Path to the configuration XML template",
    )
    parser_package.add_argument(
        "--channel",
        required=True,
        choices=SUPPORTED_CHANNELS,
        help="Release channel to write into the configuration",
    )
    parser_package.add_argument(
        "--company-name",
        required=True,
        help="Organization name for the Company setting",
    )
    parser_package.add_argument(
        "--tenant-id",
        required=True,
        help="Microsoft Entra tenant id (GUID)",
    )
    parser_package.add_argument(
        "--client-id",
        default=None,
        help="App registration client id (default: M365PKG_CLIENT_ID)",
    )
    parser_package.add_argument(
        "--client-secret",
        default=None,
        help="App registration client secret (default: M365PKG_CLIENT_SECRET)",
    )
    parser_package.add_argument(
        "--build-only",
        action="store_true",
        help="Build the package and manifest without contacting Intune",
    )
    parser_package.add_argument(
        "--force",
        action="store_true",
        help="Publish even if Intune already has this version",
    )
    parser_package.add_argument(
        "--clean",
        action="store_true",
        help="Remove previous staging and output folders first",
    )
    parser_package.add_argument(
        "--layout",
        choices=LAYOUTS,
        default=None,
        help="Staging layout (default: from settings or flat)",
    )
    parser_package.add_argument(
        "--work-dir",
        default=None,
        help="Working directory (default: from settings or ./build)",
    )
    parser_package.add_argument(
        "--installer",
        default=None,
        help="Path to setup.exe (default: download from the Office CDN)",
    )
    parser_package.add_argument(
        "--settings",
        default=None,
        help="YAML settings file",
    )
    parser_package.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser_package.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )
    parser_package.set_defaults(func=cmd_package)

    # Parse and dispatch
    args = parser.parse_args(argv)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
