"""
Tests for m365pkg.build.manifest module.

Tests manifest generation including:
- Display name composition and ordering
- Description and tracking GUID
- Detection rule values
- Template immutability and missing rules
"""

from __future__ import annotations

import copy
import json

import pytest

from m365pkg.build.manifest import (
    DESCRIPTION_SUFFIX,
    build_display_name,
    build_manifest,
    find_detection_rule,
    load_manifest_template,
    write_manifest,
)
from m365pkg.channels import StaticVersionLookup
from m365pkg.document import ConfigurationDocument
from m365pkg.exceptions import ConfigError, DetectionRuleNotFound, MissingInputError

pytestmark = pytest.mark.unit

LOOKUP = StaticVersionLookup(
    {"Current": "16.0.18025.20160", "MonthlyEnterprise": "16.0.17928.20216"}
)


def _doc(products: str, edition: str = "64", extra: str = "") -> ConfigurationDocument:
    return ConfigurationDocument.from_string(
        f'<Configuration ID="guid-1"><Info Description="Test build" />'
        f'<Add OfficeClientEdition="{edition}" Channel="Current">{products}</Add>'
        f"{extra}</Configuration>"
    )


class TestDisplayName:
    """Tests for build_display_name."""

    def test_enterprise_current_x64(self, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)
        assert (
            build_display_name(doc, "Current")
            == "Microsoft 365 Apps for enterprise, Current, x64"
        )

    def test_order_labels_exclusions_channel_arch(self):
        doc = _doc(
            '<Product ID="O365ProPlusRetail"><ExcludeApp ID="OutlookForWindows" />'
            '<ExcludeApp ID="Outlook" /></Product>'
            '<Product ID="VisioProRetail" />',
            edition="32",
        )
        assert build_display_name(doc, "MonthlyEnterprise") == (
            "Microsoft 365 Apps for enterprise, Visio Plan 2, "
            "without Outlook (classic), without Outlook (new), MonthlyEnterprise, x86"
        )

    def test_unknown_products_skipped(self):
        doc = _doc(
            '<Product ID="LanguagePack" /><Product ID="ProjectProRetail" />'
        )
        assert build_display_name(doc, "Current") == "Project Plan 3, Current, x64"

    def test_fallback_when_no_label(self):
        doc = _doc('<Product ID="LanguagePack" />')
        assert (
            build_display_name(doc, "Current", fallback="Microsoft 365 Apps")
            == "Microsoft 365 Apps, Current, x64"
        )


class TestBuildManifest:
    """Tests for build_manifest."""

    def test_computed_fields(self, manifest_template, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)

        manifest = build_manifest(
            manifest_template, doc, "16.0.18129.20030", "Current", LOOKUP
        )

        assert manifest["PackageInformation"]["Version"] == "16.0.18129.20030"
        assert manifest["Information"]["TrackingGuid"] == doc.id
        assert manifest["Information"]["DisplayName"] == (
            "Microsoft 365 Apps for enterprise, Current, x64"
        )
        assert manifest["RequirementRule"]["Architecture"] == "x64"
        assert find_detection_rule(manifest, "ProductReleaseIds")["Value"] == (
            "O365ProPlusRetail"
        )
        assert find_detection_rule(manifest, "VersionToReport")["Value"] == (
            "16.0.18025.20160"
        )
        assert find_detection_rule(manifest, "SharedComputerLicensing")["Value"] == "0"

    def test_description(self, manifest_template):
        doc = _doc('<Product ID="VisioProRetail" /><Product ID="O365ProPlusRetail" />')
        manifest = build_manifest(manifest_template, doc, "1.0", "Current", LOOKUP)
        assert manifest["Information"]["Description"] == (
            f"Test build. {DESCRIPTION_SUFFIX} O365ProPlusRetail, VisioProRetail"
        )
        assert find_detection_rule(manifest, "ProductReleaseIds")["Value"] == (
            "O365ProPlusRetail,VisioProRetail"
        )

    def test_shared_licensing_default_and_explicit(self, manifest_template):
        absent = _doc('<Product ID="O365ProPlusRetail" />')
        present = _doc(
            '<Product ID="O365ProPlusRetail" />',
            extra='<Property Name="SharedComputerLicensing" Value="1" />',
        )

        m1 = build_manifest(manifest_template, absent, "1.0", "Current", LOOKUP)
        m2 = build_manifest(manifest_template, present, "1.0", "Current", LOOKUP)

        assert find_detection_rule(m1, "SharedComputerLicensing")["Value"] == "0"
        assert find_detection_rule(m2, "SharedComputerLicensing")["Value"] == "1"

    def test_template_not_mutated(self, manifest_template, configuration_text):
        original = copy.deepcopy(manifest_template)
        doc = ConfigurationDocument.from_string(configuration_text)
        build_manifest(manifest_template, doc, "1.0", "Current", LOOKUP)
        assert manifest_template == original

    def test_setup_file_and_icon(self, manifest_template, configuration_text, tmp_path):
        doc = ConfigurationDocument.from_string(configuration_text)
        icon = tmp_path / "icon.png"
        manifest = build_manifest(
            manifest_template,
            doc,
            "1.0",
            "Current",
            LOOKUP,
            setup_file="Invoke-AppDeployToolkit.exe",
            icon_file=icon,
        )
        assert manifest["PackageInformation"]["SetupFile"] == "Invoke-AppDeployToolkit.exe"
        assert manifest["PackageInformation"]["IconFile"] == str(icon)

    def test_missing_rule_raises(self, manifest_template, configuration_text):
        template = copy.deepcopy(manifest_template)
        template["DetectionRule"] = [
            r for r in template["DetectionRule"] if r["ValueName"] != "VersionToReport"
        ]
        doc = ConfigurationDocument.from_string(configuration_text)

        with pytest.raises(DetectionRuleNotFound) as exc_info:
            build_manifest(template, doc, "1.0", "Current", LOOKUP)
        assert exc_info.value.tag == "VersionToReport"

    def test_files_layout_commands_use_entry_point(
        self, manifest_template, configuration_text
    ):
        doc = ConfigurationDocument.from_string(configuration_text)

        manifest = build_manifest(
            manifest_template,
            doc,
            "1.0",
            "Current",
            LOOKUP,
            setup_file="Invoke-AppDeployToolkit.exe",
            layout="files",
        )

        program = manifest["Program"]
        assert program["InstallCommand"] == (
            "Invoke-AppDeployToolkit.exe -DeploymentType Install -DeployMode Silent"
        )
        assert program["UninstallCommand"] == (
            "Invoke-AppDeployToolkit.exe -DeploymentType Uninstall -DeployMode Silent"
        )

    def test_flat_layout_keeps_template_commands(
        self, manifest_template, configuration_text
    ):
        doc = ConfigurationDocument.from_string(configuration_text)
        manifest = build_manifest(manifest_template, doc, "1.0", "Current", LOOKUP)
        assert manifest["Program"] == manifest_template["Program"]

    def test_32_bit_edition_applies_to_both_architectures(self, manifest_template):
        doc = _doc('<Product ID="O365ProPlusRetail" />', edition="32")

        manifest = build_manifest(manifest_template, doc, "1.0", "Current", LOOKUP)

        assert manifest["RequirementRule"]["Architecture"] == "x64,x86"
        assert manifest["Information"]["DisplayName"].endswith(", x86")

    def test_unknown_channel_in_static_lookup(self, manifest_template, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)
        with pytest.raises(ConfigError, match="BetaChannel"):
            build_manifest(manifest_template, doc, "1.0", "BetaChannel", LOOKUP)


class TestTemplateIO:
    def test_write_and_load(self, tmp_path, manifest_template):
        path = write_manifest(manifest_template, tmp_path / "out" / "App.json")
        assert json.loads(path.read_text(encoding="utf-8")) == manifest_template
        assert load_manifest_template(path) == manifest_template

    def test_load_missing(self, tmp_path):
        with pytest.raises(MissingInputError):
            load_manifest_template(tmp_path / "App.json")

    def test_load_invalid_json(self, tmp_path):
        path = tmp_path / "App.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_manifest_template(path)

    def test_load_non_object(self, tmp_path):
        path = tmp_path / "App.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigError, match="JSON object"):
            load_manifest_template(path)
