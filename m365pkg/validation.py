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

"""Configuration library validation module.

This module checks a folder of ODT configuration documents without building
or publishing anything. Each document's ID is the tracking GUID that ties
Intune apps to it, so IDs must be present, GUID-shaped and unique across the
library. This is meant for quick feedback in CI pipelines.

Validation Checks:

- Every *.xml file, in any subfolder, parses and has a Configuration root
- Configuration@ID is present and is a GUID
- No two files share an ID (case-insensitive)
- The Add element lists at least one Product
- Channel is one the ODT accepts (warning)
- The TenantId property and Company setting exist (warning; packaging
  would fail without them)

The uninstall document (Uninstall-Microsoft365Apps.xml) is skipped.

Example:
    Validate a library and handle results:
        ```python
        from pathlib import Path
        from m365pkg.validation import validate_configurations

        result = validate_configurations(Path("configs"))
        if result.status == "valid":
            print(f"{result.file_count} configuration(s) are valid")
        else:
            for error in result.errors:
                print(f"Error: {error}")
        ```

"""

from __future__ import annotations

from pathlib import Path

from m365pkg.document.configuration import (
    COMPANY_SETTING,
    SUPPORTED_CHANNELS,
    TENANT_ID_PROPERTY,
    ConfigurationDocument,
    is_guid,
)
from m365pkg.exceptions import ConfigError
from m365pkg.results import ValidationResult

__all__ = ["UNINSTALL_CONFIGURATION_NAME", "validate_configurations"]

UNINSTALL_CONFIGURATION_NAME = "Uninstall-Microsoft365Apps.xml"


def _check_document(
    document: ConfigurationDocument, name: str, errors: list[str], warnings: list[str]
) -> None:
    config_id = document.id
    if not config_id:
        errors.append(f"{name}: Configuration has no ID attribute")
    elif not is_guid(config_id):
        errors.append(f"{name}: Configuration ID is not a GUID: {config_id!r}")

    if document.root.find("Add") is None:
        errors.append(f"{name}: missing Add element")
        return
    if not document.product_ids:
        errors.append(f"{name}: Add element lists no Product")

    channel = document.channel
    if not channel:
        warnings.append(f"{name}: Add element has no Channel")
    elif channel not in SUPPORTED_CHANNELS:
        warnings.append(f"{name}: unsupported channel {channel!r}")

    if document.find_property(TENANT_ID_PROPERTY) is None:
        warnings.append(f"{name}: no {TENANT_ID_PROPERTY} property")
    if document.find_setting(COMPANY_SETTING) is None:
        warnings.append(f"{name}: no AppSettings/Setup {COMPANY_SETTING} setting")


def validate_configurations(configs_dir: Path) -> ValidationResult:
    """Validate every configuration document in configs_dir.

    Does NOT:

    - Make network calls
    - Modify any file

    Args:
        configs_dir: Folder holding *.xml configuration documents. Subfolders
            are searched too; messages name files by their relative path.

    Returns:
        ValidationResult; status is "invalid" when any error was found.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()
    configs_dir = Path(configs_dir)
    errors: list[str] = []
    warnings: list[str] = []

    logger.verbose("VALIDATION", f"Validating configurations in: {configs_dir}")

    if not configs_dir.is_dir():
        errors.append(f"Configuration folder not found: {configs_dir}")
        return ValidationResult("invalid", errors, warnings, 0, str(configs_dir))

    files = sorted(
        p
        for p in configs_dir.rglob("*.xml")
        if p.name.lower() != UNINSTALL_CONFIGURATION_NAME.lower()
    )
    if not files:
        warnings.append(f"No configuration files found in {configs_dir}")

    seen: dict[str, str] = {}
    for path in files:
        name = path.relative_to(configs_dir).as_posix()
        try:
            document = ConfigurationDocument.load(path)
        except ConfigError as err:
            errors.append(f"{name}: {err}")
            continue

        _check_document(document, name, errors, warnings)

        key = document.id.strip().lower()
        if key:
            if key in seen:
                errors.append(
                    f"{name}: duplicate Configuration ID {document.id} "
                    f"(also in {seen[key]})"
                )
            else:
                seen[key] = name
        logger.debug("VALIDATION", f"  Checked {name}")

    status = "invalid" if errors else "valid"
    logger.verbose(
        "VALIDATION",
        f"{len(files)} file(s), {len(errors)} error(s), {len(warnings)} warning(s)",
    )
    return ValidationResult(status, errors, warnings, len(files), str(configs_dir))
