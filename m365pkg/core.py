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

"""Core orchestration for m365pkg.

This module runs the packaging pipeline for one configuration document:

    Staged -> Assembled -> ManifestBuilt -> VersionChecked
           -> Published | SkippedNoUpdate -> SupersedenceApplied -> Done

1. Check inputs and edit the configuration into the working directory.
2. Stage the package source and run the packaging tool.
3. Read the setup.exe version and build the App.json manifest.
4. Ask the catalog for records with the same tracking GUID and decide
   whether the new build is an update.
5. Publish the package, then supersede every older record.

Design Principles:

- Each stage runs under a named operation; on failure the operation name is
  logged and attached to the exception as a note, and the exception
  propagates unchanged
- No rollback and no retry at this level; HTTP retries live in the session
- "No update needed" is a successful result, not an error
- The packaging tool, catalog and version lookup are injected ports

Example:
    Programmatic usage:
        ```python
        from pathlib import Path
        from m365pkg.config import load_settings
        from m365pkg.core import PublishOrchestrator, PublishRequest

        orchestrator = PublishOrchestrator(load_settings())
        result = orchestrator.run(
            PublishRequest(
                configuration=Path("configs/O365ProPlus.xml"),
                channel="MonthlyEnterprise",
                organization_name="Contoso",
                tenant_id="00000000-0000-0000-0000-000000000000",
                publish=False,
            )
        )
        print(result.package_path)
        ```
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
import shutil

from m365pkg.build.assembler import (
    assemble_package,
    check_required_inputs,
    ensure_empty_directory,
)
from m365pkg.build.manifest import build_manifest, load_manifest_template, write_manifest
from m365pkg.build.packager import IntuneWinAppUtil, PackagingTool, get_intunewin_tool
from m365pkg.channels import OfficeReleasesLookup, StaticVersionLookup, VersionLookup
from m365pkg.config import PipelineSettings
from m365pkg.document import SUPPORTED_CHANNELS, update_configuration
from m365pkg.exceptions import InvalidInputError
from m365pkg.intune.catalog import CatalogClient, PublishedPackageRecord
from m365pkg.io import download_file
from m365pkg.logging import Logger, get_global_logger
from m365pkg.results import PublishDecision, PublishResult, Stage
from m365pkg.versioning import compare_versions
from m365pkg.versioning.exe import version_from_exe_file_version

__all__ = [
    "PublishOrchestrator",
    "PublishRequest",
    "Stage",
    "decide_publish",
    "select_latest_record",
]

CONFIGURATION_NAME = "Configuration.xml"
MANIFEST_NAME = "App.json"
SOURCE_DIR_NAME = "source"
OUTPUT_DIR_NAME = "output"
INSTALLER_NAME = "setup.exe"

TOTAL_STEPS = 6


def select_latest_record(
    records: Iterable[PublishedPackageRecord],
) -> PublishedPackageRecord | None:
    """Return the record with the highest display_version.

    Records without a version rank below every versioned record. Among equal
    versions the first record wins.
    """
    best: PublishedPackageRecord | None = None
    for record in records:
        if best is None:
            best = record
        elif not best.display_version:
            if record.display_version:
                best = record
        elif record.display_version and (
            compare_versions(record.display_version, best.display_version) > 0
        ):
            best = record
    return best


def decide_publish(
    new_version: str, existing_version: str | None, force: bool = False
) -> PublishDecision:
    """Decide whether a build with new_version should be published.

    Args:
        new_version: Installer version of the new build.
        existing_version: Highest published version, or None if nothing is
            published for this tracking GUID.
        force: Publish regardless of versions.

    Returns:
        PublishDecision. Rules, in order: force publishes; no existing
        record publishes; an existing record without a version skips; a
        new version not above the existing one skips; otherwise publish.
    """
    if force:
        return PublishDecision(True, "forced", existing_version)
    if existing_version is None:
        return PublishDecision(True, "no existing record", None)
    if not existing_version.strip():
        return PublishDecision(False, "existing record has no version", existing_version)
    if compare_versions(new_version, existing_version) > 0:
        return PublishDecision(
            True, f"{new_version} is newer than {existing_version}", existing_version
        )
    return PublishDecision(
        False, f"{new_version} is not newer than {existing_version}", existing_version
    )


@dataclass(frozen=True)
class PublishRequest:
    """Inputs for one pipeline run.

    Attributes:
        configuration: Configuration template (never modified).
        channel: Release channel to write into the configuration.
        organization_name: Value for the Company setting.
        tenant_id: Tenant id to write into the configuration.
        installer: Local setup.exe; downloaded to the cache when None.
        publish: Publish to the catalog when the decision allows it.
        force: Publish even if the catalog already has this version.
        clean: Remove previous staging and output folders first.
    """

    configuration: Path
    channel: str
    organization_name: str
    tenant_id: str
    installer: Path | None = None
    publish: bool = True
    force: bool = False
    clean: bool = False


class PublishOrchestrator:
    """Run the pipeline with injected settings and ports.

    Attributes:
        settings: Effective settings.
        packaging_tool: Tool used to build the package. Built from settings
            (cached IntuneWinAppUtil.exe) on first use when None.
        catalog: Remote catalog. Without one the run is build-only.
        version_lookup: Resolves the current channel version. Built from
            settings when None.
        logger: Progress logger.
        stage: Last stage reached by the current or most recent run.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        packaging_tool: PackagingTool | None = None,
        catalog: CatalogClient | None = None,
        version_lookup: VersionLookup | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.settings = settings
        self.packaging_tool = packaging_tool
        self.catalog = catalog
        self.version_lookup = version_lookup
        self.logger = logger or get_global_logger()
        self.stage = Stage.STAGED

    @contextmanager
    def _operation(self, label: str) -> Iterator[None]:
        self.logger.debug("PIPELINE", f"Begin: {label}")
        try:
            yield
        except Exception as err:
            self.logger.verbose("PIPELINE", f"Operation failed: {label}")
            err.add_note(f"Operation: {label}")
            raise
        self.logger.debug("PIPELINE", f"Done: {label}")

    def _get_packaging_tool(self) -> PackagingTool:
        if self.packaging_tool is None:
            s = self.settings
            tool_path = s.tool_path or get_intunewin_tool(s.cache_dir / "tools", s.tool_url)
            self.packaging_tool = IntuneWinAppUtil(
                tool_path, timeout=s.tool_timeout, catalog_dir=s.catalog_dir
            )
        return self.packaging_tool

    def _get_version_lookup(self) -> VersionLookup:
        if self.version_lookup is None:
            s = self.settings
            if s.channel_source == "static":
                self.version_lookup = StaticVersionLookup(s.channel_versions)
            else:
                self.version_lookup = OfficeReleasesLookup(s.releases_url)
        return self.version_lookup

    def _acquire_installer(self, installer: Path | None) -> Path:
        if installer is not None:
            return Path(installer)
        s = self.settings
        self.logger.verbose("PIPELINE", f"No installer given, downloading {s.installer_url}")
        path, _ = download_file(
            s.installer_url,
            s.cache_dir,
            filename=INSTALLER_NAME,
            expected_sha256=s.installer_sha256,
        )
        return path

    def _installer_version(self, installer: Path) -> str:
        if self.settings.installer_version:
            self.logger.verbose(
                "PIPELINE", f"Using installer version override: {self.settings.installer_version}"
            )
            return self.settings.installer_version
        return version_from_exe_file_version(installer).version

    def _clean_work_dir(self, work_dir: Path) -> None:
        for name in (SOURCE_DIR_NAME, OUTPUT_DIR_NAME):
            target = work_dir / name
            if target.exists():
                self.logger.verbose("PIPELINE", f"Removing previous {name}: {target}")
                shutil.rmtree(target)

    def run(self, request: PublishRequest) -> PublishResult:
        """Run the pipeline for request.

        Returns:
            PublishResult. stage is DONE after a publish, SKIPPED_NO_UPDATE
            when the catalog already has this version, and VERSION_CHECKED
            for a build-only run.

        Raises:
            ConfigError: On invalid or missing inputs.
            PackagingError: If packaging or version extraction fails.
            NetworkError: On download, lookup or catalog failures.
        """
        s = self.settings
        work_dir = Path(s.work_dir)
        configuration_path = work_dir / CONFIGURATION_NAME
        manifest_path = work_dir / MANIFEST_NAME
        self.stage = Stage.STAGED

        # Staged -> Assembled
        self.logger.step(1, TOTAL_STEPS, "Checking inputs...")
        with self._operation("check inputs"):
            if request.channel not in SUPPORTED_CHANNELS:
                raise InvalidInputError(
                    f"Unsupported channel {request.channel!r}. "
                    f"Expected one of: {', '.join(SUPPORTED_CHANNELS)}"
                )
            required = [Path(request.configuration), s.manifest_template, *s.support_files]
            if request.installer is not None:
                required.append(Path(request.installer))
            if s.source_tree is not None:
                required.append(s.source_tree)
            if s.icon is not None:
                required.append(s.icon)
            check_required_inputs(required)
            if request.clean:
                self._clean_work_dir(work_dir)
            for name in (SOURCE_DIR_NAME, OUTPUT_DIR_NAME):
                ensure_empty_directory(work_dir / name)
            installer = self._acquire_installer(request.installer)

        self.logger.step(2, TOTAL_STEPS, "Editing configuration...")
        with self._operation("edit configuration"):
            work_dir.mkdir(parents=True, exist_ok=True)
            document = update_configuration(
                Path(request.configuration),
                configuration_path,
                channel=request.channel,
                tenant_id=request.tenant_id,
                organization_name=request.organization_name,
            )

        self.logger.step(3, TOTAL_STEPS, "Assembling package...")
        with self._operation("assemble package"):
            assembled = assemble_package(
                work_dir / SOURCE_DIR_NAME,
                work_dir / OUTPUT_DIR_NAME,
                configuration_path,
                installer,
                self._get_packaging_tool(),
                layout=s.layout,
                source_tree=s.source_tree,
                support_files=s.support_files,
                setup_file=s.setup_file,
            )
        self.stage = Stage.ASSEMBLED

        # Assembled -> ManifestBuilt
        self.logger.step(4, TOTAL_STEPS, "Building manifest...")
        with self._operation("build manifest"):
            version = self._installer_version(installer)
            manifest = build_manifest(
                load_manifest_template(s.manifest_template),
                document,
                installer_version=version,
                channel=request.channel,
                version_lookup=self._get_version_lookup(),
                setup_file=assembled.setup_file,
                icon_file=s.icon,
                layout=assembled.layout,
            )
            write_manifest(manifest, manifest_path)
        self.stage = Stage.MANIFEST_BUILT
        display_name = manifest["Information"]["DisplayName"]
        tracking_guid = document.id

        def result(
            stage: Stage,
            decision: PublishDecision | None,
            status: str,
            published_id: str | None = None,
            superseded_ids: list[str] | None = None,
        ) -> PublishResult:
            self.stage = stage
            return PublishResult(
                stage=stage,
                tracking_guid=tracking_guid,
                display_name=display_name,
                version=version,
                configuration_path=configuration_path,
                manifest_path=manifest_path,
                package_path=assembled.package_path,
                decision=decision,
                published_id=published_id,
                superseded_ids=superseded_ids or [],
                status=status,
            )

        # ManifestBuilt -> VersionChecked
        self.logger.step(5, TOTAL_STEPS, "Checking catalog...")
        if self.catalog is None:
            self.logger.verbose("PIPELINE", "No catalog client, skipping version check")
            if request.publish:
                self.logger.warning("PIPELINE", "No catalog client configured, not publishing")
            return result(Stage.VERSION_CHECKED, None, "built")

        catalog = self.catalog
        with self._operation("check catalog version"):
            catalog.authenticate()
            existing = catalog.list_packages(tracking_guid=tracking_guid)
            latest = select_latest_record(existing)
            decision = decide_publish(
                version,
                latest.display_version if latest is not None else None,
                force=request.force,
            )
        self.stage = Stage.VERSION_CHECKED
        self.logger.verbose("PIPELINE", f"Decision: {decision.reason}")

        if not decision.proceed:
            return result(Stage.SKIPPED_NO_UPDATE, decision, "skipped")
        if not request.publish:
            return result(Stage.VERSION_CHECKED, decision, "built")

        # VersionChecked -> Published
        self.logger.step(6, TOTAL_STEPS, "Publishing...")
        with self._operation("publish package"):
            created = catalog.create_package(manifest, assembled.package_path)
        self.stage = Stage.PUBLISHED

        # Published -> SupersedenceApplied
        with self._operation("apply supersedence"):
            older = [
                r.id
                for r in catalog.list_packages(tracking_guid=tracking_guid)
                if r.id != created.id
            ]
            if older:
                catalog.supersede(created.id, older)
            else:
                self.logger.verbose("PIPELINE", "No older records to supersede")
        self.stage = Stage.SUPERSEDENCE_APPLIED

        return result(Stage.DONE, decision, "published", created.id, older)
