"""
Tests for m365pkg.document.configuration module.

Tests configuration document handling including:
- Read accessors (id, channel, edition, products, exclusions)
- Property lookup (exact, case-sensitive)
- update_configuration round trip and idempotence
- Missing fields leave no output behind
"""

from __future__ import annotations

from pathlib import Path

import pytest

from m365pkg.document import (
    ConfigurationDocument,
    find_property,
    is_guid,
    update_configuration,
)
from m365pkg.exceptions import (
    ConfigError,
    ConfigFieldNotFound,
    InvalidInputError,
    MissingInputError,
)

pytestmark = pytest.mark.unit


class TestReadAccessors:
    """Tests for ConfigurationDocument accessors."""

    def test_fields(self, configuration_text, config_id):
        doc = ConfigurationDocument.from_string(configuration_text)

        assert doc.id == config_id
        assert doc.channel == "Current"
        assert doc.edition == "64"
        assert doc.description == "Microsoft 365 Apps for enterprise, 64-bit"
        assert doc.product_ids == ["O365ProPlusRetail"]
        assert doc.excluded_apps == {"Groove", "Lync"}
        assert doc.property_value("SharedComputerLicensing") == "0"
        assert doc.find_setting("Company").get("Value") == "Placeholder"

    def test_product_order_is_document_order(self):
        doc = ConfigurationDocument.from_string(
            '<Configuration ID="x"><Add>'
            '<Product ID="VisioProRetail" /><Product ID="O365ProPlusRetail" />'
            "</Add></Configuration>"
        )
        assert doc.product_ids == ["VisioProRetail", "O365ProPlusRetail"]

    def test_missing_optional_fields(self):
        doc = ConfigurationDocument.from_string("<Configuration />")

        assert doc.id == ""
        assert doc.description == ""
        assert doc.product_ids == []
        assert doc.excluded_apps == set()
        with pytest.raises(ConfigFieldNotFound, match="Add"):
            _ = doc.channel

    def test_wrong_root_rejected(self):
        with pytest.raises(InvalidInputError, match="root element"):
            ConfigurationDocument.from_string("<Settings />")

    def test_malformed_xml_rejected(self):
        with pytest.raises(InvalidInputError, match="Malformed"):
            ConfigurationDocument.from_string("<Configuration>")

    def test_load_missing_file(self, tmp_test_dir):
        with pytest.raises(MissingInputError) as exc_info:
            ConfigurationDocument.load(tmp_test_dir / "nope.xml")
        assert exc_info.value.path == tmp_test_dir / "nope.xml"


class TestFindProperty:
    """Tests for the property name lookup."""

    def test_exact_match(self, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)
        element = find_property(doc.root, "TenantId")
        assert element is not None
        assert element.get("Value") == "00000000-0000-0000-0000-000000000000"

    def test_case_sensitive(self, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)
        assert find_property(doc.root, "tenantid") is None
        assert find_property(doc.root, "TENANTID") is None

    def test_absent(self, configuration_text):
        doc = ConfigurationDocument.from_string(configuration_text)
        assert find_property(doc.root, "DeviceBasedLicensing") is None


class TestIsGuid:
    @pytest.mark.parametrize(
        "value",
        ["11111111-2222-3333-4444-555555555555", "A3B5C1E0-1F2D-4C3B-9A8E-7D6C5B4A3F21"],
    )
    def test_valid(self, value):
        assert is_guid(value)

    @pytest.mark.parametrize("value", ["", None, "not-a-guid", "1111-2222"])
    def test_invalid(self, value):
        assert not is_guid(value)


class TestUpdateConfiguration:
    """Tests for update_configuration."""

    def test_round_trip(self, configuration_file, tmp_test_dir, tenant_id):
        output = tmp_test_dir / "work" / "Configuration.xml"

        update_configuration(
            configuration_file, output, "MonthlyEnterprise", tenant_id, "Contoso"
        )

        reloaded = ConfigurationDocument.load(output)
        assert reloaded.channel == "MonthlyEnterprise"
        assert reloaded.property_value("TenantId") == tenant_id
        assert reloaded.find_setting("Company").get("Value") == "Contoso"
        # Untouched fields survive
        assert reloaded.product_ids == ["O365ProPlusRetail"]
        assert reloaded.property_value("FORCEAPPSHUTDOWN") == "FALSE"

    def test_template_not_modified(self, configuration_file, tmp_test_dir, tenant_id):
        before = configuration_file.read_bytes()
        update_configuration(
            configuration_file,
            tmp_test_dir / "out.xml",
            "SemiAnnual",
            tenant_id,
            "Contoso",
        )
        assert configuration_file.read_bytes() == before

    def test_idempotent(self, configuration_file, tmp_test_dir, tenant_id):
        first = tmp_test_dir / "first.xml"
        second = tmp_test_dir / "second.xml"

        update_configuration(configuration_file, first, "Current", tenant_id, "Contoso")
        update_configuration(first, second, "Current", tenant_id, "Contoso")

        assert first.read_text(encoding="utf-8") == second.read_text(encoding="utf-8")

    def test_missing_tenant_property_writes_nothing(self, tmp_test_dir, tenant_id):
        source = tmp_test_dir / "no-tenant.xml"
        source.write_text(
            '<Configuration ID="x"><Add Channel="Current" />'
            '<AppSettings><Setup Name="Company" Value="" /></AppSettings>'
            "</Configuration>",
            encoding="utf-8",
        )
        output = tmp_test_dir / "out" / "Configuration.xml"

        with pytest.raises(ConfigFieldNotFound, match="TenantId"):
            update_configuration(source, output, "Current", tenant_id, "Contoso")

        assert not output.exists()

    def test_missing_company_setting(self, tmp_test_dir, tenant_id):
        source = tmp_test_dir / "no-company.xml"
        source.write_text(
            '<Configuration ID="x"><Add Channel="Current" />'
            '<Property Name="TenantId" Value="" /></Configuration>',
            encoding="utf-8",
        )
        output = tmp_test_dir / "out.xml"

        with pytest.raises(ConfigFieldNotFound, match="Company"):
            update_configuration(source, output, "Current", tenant_id, "Contoso")
        assert not output.exists()

    def test_rejects_bad_tenant_id(self, configuration_file, tmp_test_dir):
        with pytest.raises(InvalidInputError, match="GUID"):
            update_configuration(
                configuration_file, tmp_test_dir / "o.xml", "Current", "contoso", "C"
            )

    def test_refuses_to_overwrite_template(self, configuration_file, tenant_id):
        with pytest.raises(ConfigError, match="overwrite"):
            update_configuration(
                configuration_file, Path(configuration_file), "Current", tenant_id, "C"
            )

    def test_comments_preserved(self, tmp_test_dir, tenant_id, configuration_text):
        source = tmp_test_dir / "commented.xml"
        source.write_text(
            configuration_text.replace(
                "<Updates", "<!-- keep me --><Updates"
            ),
            encoding="utf-8",
        )
        output = tmp_test_dir / "out.xml"
        update_configuration(source, output, "Current", tenant_id, "Contoso")
        assert "keep me" in output.read_text(encoding="utf-8")
