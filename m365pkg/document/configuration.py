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

"""Office Deployment Tool configuration document handling.

This module reads and edits the ODT configuration XML that drives setup.exe.
It exposes read accessors used by the manifest builder and a single update
operation that sets the release channel, tenant id and organization name.

Document Shape:

    <Configuration ID="a3b5c1e0-...">
      <Info Description="Microsoft 365 Apps for enterprise, 64-bit" />
      <Add OfficeClientEdition="64" Channel="MonthlyEnterprise">
        <Product ID="O365ProPlusRetail">
          <Language ID="MatchOS" />
          <ExcludeApp ID="Groove" />
        </Product>
      </Add>
      <Property Name="SharedComputerLicensing" Value="0" />
      <Property Name="TenantId" Value="00000000-0000-0000-0000-000000000000" />
      <AppSettings>
        <Setup Name="Company" Value="Contoso" />
      </AppSettings>
    </Configuration>

Design Principles:
    - Fields are located by predicate (name equality), never by position
    - Property lookup goes through find_property() only
    - All lookups happen before any mutation, so a failed update writes nothing
    - The template is never written; updates go to a caller-supplied path

Example:
    ```python
    from pathlib import Path
    from m365pkg.document import update_configuration

    document = update_configuration(
        Path("configs/O365ProPlus.xml"),
        Path("build/Configuration.xml"),
        channel="MonthlyEnterprise",
        tenant_id="00000000-0000-0000-0000-000000000000",
        organization_name="Contoso",
    )
    print(document.id)
    ```
"""

from __future__ import annotations

from pathlib import Path
import re
import xml.etree.ElementTree as ET

from m365pkg.exceptions import (
    ConfigError,
    ConfigFieldNotFound,
    InvalidInputError,
    MissingInputError,
)

# Release channels accepted by the Office Deployment Tool
SUPPORTED_CHANNELS = (
    "BetaChannel",
    "CurrentPreview",
    "Current",
    "MonthlyEnterprise",
    "SemiAnnualPreview",
    "SemiAnnual",
    "PerpetualVL2019",
    "PerpetualVL2021",
    "PerpetualVL2024",
)

TENANT_ID_PROPERTY = "TenantId"
SHARED_LICENSING_PROPERTY = "SharedComputerLicensing"
COMPANY_SETTING = "Company"

_GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_guid(value: str | None) -> bool:
    """Return True if value looks like a GUID (8-4-4-4-12 hex)."""
    return bool(value) and bool(_GUID_RE.match(value.strip()))


def find_property(root: ET.Element, name: str) -> ET.Element | None:
    """Locate a top-level <Property> element by its Name attribute.

    Matching is exact and case-sensitive ("TenantId" does not match
    "tenantid"). This is the only place property names are matched.

    Args:
        root: The <Configuration> element.
        name: Property name to find.

    Returns:
        The matching element, or None if the document has no such property.
    """
    for element in root.findall("Property"):
        if element.get("Name") == name:
            return element
    return None


def _parser() -> ET.XMLParser:
    # Keep comments so a round trip does not strip template annotations
    return ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))


class ConfigurationDocument:
    """In-memory ODT configuration document.

    Attributes:
        tree: Parsed element tree (owned by this instance).
        path: File the document was loaded from, if any.

    """

    def __init__(self, tree: ET.ElementTree, path: Path | None = None) -> None:
        root = tree.getroot()
        if root is None or root.tag != "Configuration":
            tag = None if root is None else root.tag
            raise InvalidInputError(
                f"Not an Office configuration document (root element {tag!r}): "
                f"{path or '<string>'}"
            )
        self.tree = tree
        self.path = path

    @classmethod
    def load(cls, path: Path) -> ConfigurationDocument:
        """Parse a configuration XML file.

        Raises:
            MissingInputError: If the file doesn't exist.
            InvalidInputError: If the XML is malformed or not a configuration.
        """
        path = Path(path)
        if not path.is_file():
            raise MissingInputError(path)
        try:
            tree = ET.parse(path, parser=_parser())
        except ET.ParseError as err:
            raise InvalidInputError(f"Malformed XML in {path}: {err}") from err
        return cls(tree, path)

    @classmethod
    def from_string(cls, text: str) -> ConfigurationDocument:
        try:
            root = ET.fromstring(text, parser=_parser())
        except ET.ParseError as err:
            raise InvalidInputError(f"Malformed configuration XML: {err}") from err
        return cls(ET.ElementTree(root))

    @property
    def root(self) -> ET.Element:
        return self.tree.getroot()

    @property
    def id(self) -> str:
        """The configuration's own identifier (used as the tracking GUID)."""
        return self.root.get("ID", "")

    @property
    def add_element(self) -> ET.Element:
        add = self.root.find("Add")
        if add is None:
            raise ConfigFieldNotFound("Add", self.path)
        return add

    @property
    def channel(self) -> str:
        return self.add_element.get("Channel", "")

    @property
    def edition(self) -> str:
        """OfficeClientEdition code ("64" or "32")."""
        return self.add_element.get("OfficeClientEdition", "")

    @property
    def description(self) -> str:
        info = self.root.find("Info")
        return info.get("Description", "") if info is not None else ""

    @property
    def product_ids(self) -> list[str]:
        """Product IDs in document order."""
        add = self.root.find("Add")
        if add is None:
            return []
        return [p.get("ID", "") for p in add.findall("Product") if p.get("ID")]

    @property
    def excluded_apps(self) -> set[str]:
        """Union of ExcludeApp IDs across all products."""
        add = self.root.find("Add")
        if add is None:
            return set()
        return {
            e.get("ID", "")
            for product in add.findall("Product")
            for e in product.findall("ExcludeApp")
            if e.get("ID")
        }

    def find_property(self, name: str) -> ET.Element | None:
        return find_property(self.root, name)

    def property_value(self, name: str) -> str | None:
        element = self.find_property(name)
        return element.get("Value") if element is not None else None

    def find_setting(self, name: str) -> ET.Element | None:
        """Locate AppSettings/Setup[@Name=name]."""
        for element in self.root.findall("AppSettings/Setup"):
            if element.get("Name") == name:
                return element
        return None

    def write(self, path: Path) -> Path:
        """Write the document to path, overwriting any existing file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.tree.write(path, encoding="utf-8", xml_declaration=True)
        return path


def apply_update(
    document: ConfigurationDocument,
    channel: str,
    tenant_id: str,
    organization_name: str,
) -> ConfigurationDocument:
    """Set channel, tenant id and organization name on document in place.

    Every target field is located before anything is changed.

    Raises:
        ConfigFieldNotFound: If Add, the TenantId property, or the Company
            setting is missing.
    """
    add = document.add_element
    tenant = document.find_property(TENANT_ID_PROPERTY)
    if tenant is None:
        raise ConfigFieldNotFound(TENANT_ID_PROPERTY, document.path)
    company = document.find_setting(COMPANY_SETTING)
    if company is None:
        raise ConfigFieldNotFound(f"AppSettings/Setup[{COMPANY_SETTING}]", document.path)

    add.set("Channel", channel)
    tenant.set("Value", tenant_id)
    company.set("Value", organization_name)
    return document


def update_configuration(
    source: Path,
    output_path: Path,
    channel: str,
    tenant_id: str,
    organization_name: str,
) -> ConfigurationDocument:
    """Load a configuration template, update it, and write it to output_path.

    Args:
        source: Template configuration XML (never modified).
        output_path: Destination for the edited copy. Overwritten.
        channel: Release channel, written verbatim. Callers validate it
            against SUPPORTED_CHANNELS.
        tenant_id: Microsoft Entra tenant id (GUID).
        organization_name: Value for the Company setting.

    Returns:
        The updated document.

    Raises:
        InvalidInputError: If tenant_id is not a GUID or the source is not a
            configuration document.
        ConfigFieldNotFound: If a target field is missing. No file is written.
        ConfigError: If output_path is the template itself.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()

    if not is_guid(tenant_id):
        raise InvalidInputError(f"Tenant id is not a valid GUID: {tenant_id!r}")

    source = Path(source)
    output_path = Path(output_path)
    if output_path.resolve() == source.resolve():
        raise ConfigError(f"Refusing to overwrite configuration template: {source}")

    document = ConfigurationDocument.load(source)
    apply_update(document, channel, tenant_id, organization_name)

    logger.verbose("CONFIG", f"Channel: {channel}")
    logger.verbose("CONFIG", f"Tenant id: {tenant_id}")
    logger.verbose("CONFIG", f"Organization: {organization_name}")

    document.write(output_path)
    logger.verbose("CONFIG", f"[OK] Configuration written to: {output_path}")
    return document
