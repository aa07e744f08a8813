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

"""Public API return types for m365pkg.

This module defines dataclasses for return values from public API functions.
These types represent the results of assembling, publishing and validating.

All dataclasses are frozen (immutable) to prevent accidental mutation of
return values.

Example:
    Using result types:
        ```python
        from m365pkg.core import PublishOrchestrator, PublishRequest
        from m365pkg.results import PublishResult

        result: PublishResult = orchestrator.run(request)
        print(result.stage, result.version)
        ```

Note:
    Only public API return types belong in this module. Domain types
    (like PublishedPackageRecord) stay with their related logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Stage(str, Enum):
    """Pipeline stages, in order. A result carries the last stage reached."""

    STAGED = "staged"
    ASSEMBLED = "assembled"
    MANIFEST_BUILT = "manifest_built"
    VERSION_CHECKED = "version_checked"
    PUBLISHED = "published"
    SKIPPED_NO_UPDATE = "skipped_no_update"
    SUPERSEDENCE_APPLIED = "supersedence_applied"
    DONE = "done"


@dataclass(frozen=True)
class AssembleResult:
    """Result from staging and packaging a source tree.

    Attributes:
        staged_dir: Directory handed to the packaging tool.
        output_dir: Directory the package was written to.
        package_path: Path to the created .intunewin file.
        setup_file: Setup file path relative to staged_dir.
        layout: Layout used ("flat" or "files").
    """

    staged_dir: Path
    output_dir: Path
    package_path: Path
    setup_file: str
    layout: str


@dataclass(frozen=True)
class PublishDecision:
    """Outcome of comparing a new build against the catalog.

    Attributes:
        proceed: True if the new build should be published.
        reason: Short human-readable explanation.
        existing_version: Highest version already published, if any.
    """

    proceed: bool
    reason: str
    existing_version: str | None = None


@dataclass(frozen=True)
class PublishResult:
    """Result from a pipeline run.

    Attributes:
        stage: Last stage reached (DONE on a full run).
        tracking_guid: Configuration ID used to find related records.
        display_name: Manifest display name.
        version: Installer version written to the manifest.
        configuration_path: Edited configuration in the working directory.
        manifest_path: Written manifest.
        package_path: Created .intunewin file.
        decision: Publish decision, or None when no catalog was consulted.
        published_id: Id of the created catalog record, if published.
        superseded_ids: Ids of records superseded by the new one.
        status: "published", "skipped" or "built".
    """

    stage: Stage
    tracking_guid: str
    display_name: str
    version: str
    configuration_path: Path
    manifest_path: Path
    package_path: Path
    decision: PublishDecision | None
    published_id: str | None = None
    superseded_ids: list[str] = field(default_factory=list)
    status: str = "built"


@dataclass(frozen=True)
class ValidationResult:
    """Result from validating a configuration library.

    Attributes:
        status: Validation status ("valid" or "invalid").
        errors: List of error messages (empty if valid).
        warnings: List of warning messages.
        file_count: Number of configuration files checked.
        configs_dir: String path to the validated directory.
    """

    status: str
    errors: list[str]
    warnings: list[str]
    file_count: int
    configs_dir: str
