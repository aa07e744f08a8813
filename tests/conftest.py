"""
Pytest configuration and shared fixtures for m365pkg tests.

This module provides reusable fixtures, sample documents and fake port
implementations used across the test suite.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from m365pkg.build.manifest import load_manifest_template
from m365pkg.config import DEFAULT_MANIFEST_TEMPLATE, PipelineSettings
from m365pkg.exceptions import PackagingError
from m365pkg.intune.catalog import PublishedPackageRecord, build_notes
from m365pkg.logging import SilentLogger, set_global_logger

CONFIG_ID = "a3b5c1e0-1f2d-4c3b-9a8e-7d6c5b4a3f21"
TENANT_ID = "11111111-2222-3333-4444-555555555555"

SAMPLE_CONFIGURATION = f"""<Configuration ID="{CONFIG_ID}">
  <Info Description="Microsoft 365 Apps for enterprise, 64-bit" />
  <Add OfficeClientEdition="64" Channel="Current">
    <Product ID="O365ProPlusRetail">
      <Language ID="MatchOS" />
      <ExcludeApp ID="Groove" />
      <ExcludeApp ID="Lync" />
    </Product>
  </Add>
  <Property Name="SharedComputerLicensing" Value="0" />
  <Property Name="FORCEAPPSHUTDOWN" Value="FALSE" />
  <Property Name="TenantId" Value="00000000-0000-0000-0000-000000000000" />
  <Updates Enabled="TRUE" />
  <AppSettings>
    <Setup Name="Company" Value="Placeholder" />
  </AppSettings>
  <Display Level="None" AcceptEULA="TRUE" />
</Configuration>
"""


@pytest.fixture(autouse=True)
def silent_global_logger():
    """Restore the silent global logger after every test."""
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def configuration_text() -> str:
    return SAMPLE_CONFIGURATION


@pytest.fixture
def configuration_file(tmp_test_dir: Path) -> Path:
    """Write the sample configuration document to disk."""
    path = tmp_test_dir / "configs" / "O365ProPlus.xml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SAMPLE_CONFIGURATION, encoding="utf-8")
    return path


@pytest.fixture
def manifest_template() -> dict[str, Any]:
    """The bundled App.json template."""
    return load_manifest_template(DEFAULT_MANIFEST_TEMPLATE)


@pytest.fixture
def installer_file(tmp_test_dir: Path) -> Path:
    path = tmp_test_dir / "downloads" / "setup.exe"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"MZ fake setup")
    return path


@pytest.fixture
def settings(tmp_test_dir: Path) -> PipelineSettings:
    """Settings that never touch the network or the PE parser."""
    return PipelineSettings(
        work_dir=tmp_test_dir / "work",
        cache_dir=tmp_test_dir / "cache",
        installer_version="16.0.18129.20030",
        channel_source="static",
        channel_versions={
            "Current": "16.0.18025.20160",
            "MonthlyEnterprise": "16.0.17928.20216",
        },
        poll_interval=0,
    )


class FakePackagingTool:
    """PackagingTool that writes a dummy archive and records calls."""

    def __init__(self, fail: str | None = None) -> None:
        self.calls: list[tuple[Path, str, Path, bool]] = []
        self.fail = fail

    def run(
        self,
        source_dir: Path,
        setup_file: str,
        output_dir: Path,
        overwrite: bool = True,
    ) -> None:
        self.calls.append((source_dir, setup_file, output_dir, overwrite))
        if self.fail:
            raise PackagingError(self.fail)
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / (Path(setup_file).stem + ".intunewin")).write_bytes(b"PK")


class FakeCatalog:
    """CatalogClient keeping records in memory."""

    def __init__(self, records: list[PublishedPackageRecord] | None = None) -> None:
        self.records = list(records or [])
        self.authenticated = 0
        self.created: list[tuple[dict[str, Any], Path]] = []
        self.superseded: list[tuple[str, list[str]]] = []

    def authenticate(self) -> None:
        self.authenticated += 1

    def list_packages(self, tracking_guid=None, display_name_pattern=None):
        return [
            r
            for r in self.records
            if tracking_guid is None or r.tracking_guid == tracking_guid
        ]

    def create_package(self, manifest, package_path):
        self.created.append((copy.deepcopy(manifest), package_path))
        info = manifest["Information"]
        record = PublishedPackageRecord(
            id=f"new-{len(self.created)}",
            display_name=info["DisplayName"],
            notes=build_notes(info["TrackingGuid"]),
            display_version=manifest["PackageInformation"]["Version"],
        )
        self.records.append(record)
        return record

    def supersede(self, new_id, old_ids):
        self.superseded.append((new_id, list(old_ids)))


def make_record(
    record_id: str, version: str, guid: str = CONFIG_ID, name: str = "Existing"
) -> PublishedPackageRecord:
    return PublishedPackageRecord(
        id=record_id,
        display_name=name,
        notes=build_notes(guid),
        display_version=version,
    )


@pytest.fixture
def fake_tool() -> FakePackagingTool:
    return FakePackagingTool()


@pytest.fixture
def failing_tool() -> FakePackagingTool:
    return FakePackagingTool(fail="IntuneWinAppUtil.exe failed (exit code 1)")


@pytest.fixture
def config_id() -> str:
    return CONFIG_ID


@pytest.fixture
def tenant_id() -> str:
    return TENANT_ID


@pytest.fixture
def record_factory():
    """Build PublishedPackageRecord objects tied to the sample configuration."""
    return make_record


@pytest.fixture
def catalog_factory():
    """Build in-memory catalogs: catalog_factory([record, ...])."""
    return FakeCatalog
