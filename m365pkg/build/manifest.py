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

"""Package manifest (App.json) generation for m365pkg.

This module derives the manifest that drives publishing to Intune from a
JSON template, the edited configuration document and facts about the
packaged installer.

Computed Fields:
    - PackageInformation.Version: version of setup.exe (not the Office build)
    - Information.DisplayName: product labels, excluded default apps,
      channel and architecture, joined by ", "
    - Information.Description: configuration description, a fixed suffix
      and the sorted product ids
    - Information.TrackingGuid: the configuration document's ID
    - DetectionRule[*].Value for ProductReleaseIds, VersionToReport and
      SharedComputerLicensing, located by ValueName tag

Design Principles:
    - The template is never mutated; every build starts from a deep copy
    - Unknown product ids are skipped in the display name (debug log only)
    - A template missing an expected detection rule is a fatal error

Example:
    ```python
    from pathlib import Path
    from m365pkg.build.manifest import build_manifest, load_manifest_template
    from m365pkg.channels import StaticVersionLookup
    from m365pkg.document import ConfigurationDocument

    manifest = build_manifest(
        load_manifest_template(Path("App.json")),
        ConfigurationDocument.load(Path("build/Configuration.xml")),
        installer_version="16.0.18129.20030",
        channel="Current",
        version_lookup=StaticVersionLookup({"Current": "16.0.18025.20160"}),
    )
    print(manifest["Information"]["DisplayName"])
    # Microsoft 365 Apps for enterprise, Current, x64
    ```
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

from m365pkg.channels import VersionLookup
from m365pkg.document.configuration import (
    SHARED_LICENSING_PROPERTY,
    ConfigurationDocument,
)
from m365pkg.exceptions import ConfigError, DetectionRuleNotFound, MissingInputError

# Product id -> display label. Ids not listed here are left out of the
# display name on purpose.
PRODUCT_LABELS: dict[str, str] = {
    "O365ProPlusRetail": "Microsoft 365 Apps for enterprise",
    "O365BusinessRetail": "Microsoft 365 Apps for business",
    "VisioProRetail": "Visio Plan 2",
    "ProjectProRetail": "Project Plan 3",
    "AccessRuntimeRetail": "Access Runtime",
}

# ExcludeApp id -> display name suffix, in display order
EXCLUDED_APP_SUFFIXES: tuple[tuple[str, str], ...] = (
    ("Outlook", "without Outlook (classic)"),
    ("OutlookForWindows", "without Outlook (new)"),
)

DESCRIPTION_SUFFIX = (
    "Installed with the Office Deployment Tool. Products in this package:"
)

RULE_PRODUCT_IDS = "ProductReleaseIds"
RULE_VERSION_TO_REPORT = "VersionToReport"
RULE_SHARED_LICENSING = "SharedComputerLicensing"

# PSADT entry point arguments for the "files" layout
PSADT_INSTALL_ARGS = "-DeploymentType Install -DeployMode Silent"
PSADT_UNINSTALL_ARGS = "-DeploymentType Uninstall -DeployMode Silent"


def architecture_for_edition(edition: str) -> str:
    """Map OfficeClientEdition to an architecture suffix ("64" -> "x64")."""
    return "x64" if edition.strip() == "64" else "x86"


def applicable_architectures(edition: str) -> str:
    """Device architectures an edition installs on.

    32-bit Office runs on both x64 and x86 Windows; 64-bit Office needs x64.
    """
    return "x64" if edition.strip() == "64" else "x64,x86"


def load_manifest_template(path: Path) -> dict[str, Any]:
    """Load a JSON manifest template.

    Raises:
        MissingInputError: If the file doesn't exist.
        ConfigError: If the file is not a JSON object.
    """
    path = Path(path)
    if not path.is_file():
        raise MissingInputError(path)
    try:
        with path.open("r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as err:
        raise ConfigError(f"Invalid JSON in manifest template {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigError(f"Manifest template must be a JSON object: {path}")
    return data


def find_detection_rule(manifest: dict[str, Any], tag: str) -> dict[str, Any]:
    """Return the detection rule whose ValueName contains tag.

    Raises:
        DetectionRuleNotFound: If no rule carries the tag.
    """
    for rule in manifest.get("DetectionRule") or []:
        if isinstance(rule, dict) and tag in str(rule.get("ValueName", "")):
            return rule
    raise DetectionRuleNotFound(tag)


def build_display_name(
    document: ConfigurationDocument, channel: str, fallback: str = ""
) -> str:
    """Compose the display name for a configuration.

    Order: known product labels (document order), excluded default app
    suffixes, channel, architecture. When no product is recognized the
    fallback (the template display name) leads.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    parts: list[str] = []
    for product_id in document.product_ids:
        label = PRODUCT_LABELS.get(product_id)
        if label is None:
            logger.debug("MANIFEST", f"No display label for product: {product_id}")
            continue
        parts.append(label)

    if not parts and fallback:
        parts.append(fallback)

    excluded = document.excluded_apps
    parts.extend(suffix for app_id, suffix in EXCLUDED_APP_SUFFIXES if app_id in excluded)
    parts.append(channel)
    parts.append(architecture_for_edition(document.edition))
    return ", ".join(parts)


def build_description(document: ConfigurationDocument) -> str:
    ids = ", ".join(sorted(document.product_ids))
    text = document.description.strip()
    if text and not text.endswith("."):
        text += "."
    return " ".join(p for p in (text, DESCRIPTION_SUFFIX, ids) if p)


def build_manifest(
    template: dict[str, Any],
    document: ConfigurationDocument,
    installer_version: str,
    channel: str,
    version_lookup: VersionLookup,
    setup_file: str | None = None,
    icon_file: Path | None = None,
    layout: str = "flat",
) -> dict[str, Any]:
    """Build a manifest from template and the edited configuration.

    Args:
        template: Parsed manifest template (not modified).
        document: The edited configuration document.
        installer_version: File version of the packaged setup.exe.
        channel: Release channel of this package.
        version_lookup: Resolves the current version of channel.
        setup_file: Setup file path relative to the package source, if known.
        icon_file: Icon to reference from the manifest, if any.
        layout: Staging layout. In the "files" layout the install and
            uninstall commands run the PSADT entry point (setup_file);
            otherwise the template commands are kept.

    Returns:
        A new manifest dict.

    Raises:
        DetectionRuleNotFound: If the template lacks ProductReleaseIds,
            VersionToReport or SharedComputerLicensing.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    manifest = copy.deepcopy(template)

    # Resolve all rules first so a bad template fails before the version lookup
    product_rule = find_detection_rule(manifest, RULE_PRODUCT_IDS)
    version_rule = find_detection_rule(manifest, RULE_VERSION_TO_REPORT)
    licensing_rule = find_detection_rule(manifest, RULE_SHARED_LICENSING)

    package_info = manifest.setdefault("PackageInformation", {})
    information = manifest.setdefault("Information", {})

    package_info["Version"] = installer_version
    if setup_file:
        package_info["SetupFile"] = setup_file
    if icon_file:
        package_info["IconFile"] = str(icon_file)

    if layout == "files":
        entry_point = package_info.get("SetupFile", "")
        program = manifest.setdefault("Program", {})
        program["InstallCommand"] = f"{entry_point} {PSADT_INSTALL_ARGS}"
        program["UninstallCommand"] = f"{entry_point} {PSADT_UNINSTALL_ARGS}"

    information["DisplayName"] = build_display_name(
        document, channel, fallback=str(information.get("DisplayName", ""))
    )
    information["Description"] = build_description(document)
    information["TrackingGuid"] = document.id

    requirement = manifest.setdefault("RequirementRule", {})
    requirement["Architecture"] = applicable_architectures(document.edition)

    product_rule["Value"] = ",".join(sorted(document.product_ids))
    version_rule["Value"] = version_lookup.current_version(channel)
    shared = document.property_value(SHARED_LICENSING_PROPERTY)
    if shared is None:
        logger.verbose(
            "MANIFEST", f"{SHARED_LICENSING_PROPERTY} not set in configuration, using 0"
        )
        shared = "0"
    licensing_rule["Value"] = shared

    logger.verbose("MANIFEST", f"Display name: {information['DisplayName']}")
    logger.verbose("MANIFEST", f"Version: {installer_version}")
    logger.verbose("MANIFEST", f"Tracking GUID: {document.id}")
    return manifest


def write_manifest(manifest: dict[str, Any], path: Path) -> Path:
    """Write manifest as indented JSON, overwriting path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
        f.write("\n")
    return path
