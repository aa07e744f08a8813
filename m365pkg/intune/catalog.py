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

"""Intune app catalog access for m365pkg.

The pipeline needs exactly three things from Intune: list the Win32 apps
that belong to a configuration, create a new one from a manifest and a
.intunewin package, and mark older apps as superseded by the new one.
CatalogClient is that port; GraphCatalogClient implements it against the
Microsoft Graph beta endpoint.

Records are tied to a configuration through a JSON token in the app notes:

    {"CreatedBy": "m365pkg", "Guid": "<Configuration ID>", "Date": "<iso>"}

Publishing Flow:
    1. POST mobileApps (win32LobApp built from the manifest)
    2. POST contentVersions, then POST files
    3. Wait for azureStorageUriRequestSuccess, upload blocks to the SAS URI
    4. POST commit with the encryption info, wait for commitFileSuccess
    5. PATCH committedContentVersion on the app

Example:
    ```python
    from m365pkg.intune import ClientCredentialAuth, GraphCatalogClient

    client = GraphCatalogClient(ClientCredentialAuth())
    client.authenticate()
    for record in client.list_packages(tracking_guid="a3b5c1e0-..."):
        print(record.id, record.display_version)
    ```
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import datetime, timezone
import fnmatch
import json
from pathlib import Path
import re
import time
from typing import Any, Protocol

import requests

from m365pkg.exceptions import ConfigError, NetworkError
from m365pkg.intune.auth import ClientCredentialAuth
from m365pkg.intune.upload import (
    BLOCK_SIZE,
    IntuneWinMetadata,
    read_intunewin_metadata,
    upload_package_content,
)
from m365pkg.io import make_session
from m365pkg.logging import redact

GRAPH_BETA_URL = "https://graph.microsoft.com/beta"
WIN32_APP_TYPE = "#microsoft.graph.win32LobApp"
WIN32_APP_FILTER = "(isof('microsoft.graph.win32LobApp'))"
NOTES_CREATOR = "m365pkg"

DEFAULT_RETURN_CODES = [
    {"returnCode": 0, "type": "success"},
    {"returnCode": 1707, "type": "success"},
    {"returnCode": 3010, "type": "softReboot"},
    {"returnCode": 1641, "type": "hardReboot"},
    {"returnCode": 1618, "type": "retry"},
]

_JSON_OBJECT_RE = re.compile(r"\{[^{}]*\}")


@dataclass(frozen=True)
class PublishedPackageRecord:
    """A Win32 app as listed by the catalog.

    Attributes:
        id: Catalog identifier.
        display_name: App display name.
        notes: Raw notes text (holds the tracking token).
        display_version: Version string shown in the catalog ("" if unset).
    """

    id: str
    display_name: str
    notes: str
    display_version: str

    @property
    def tracking_guid(self) -> str | None:
        return parse_tracking_guid(self.notes)


class CatalogClient(Protocol):
    """Port for the remote app catalog."""

    def authenticate(self) -> None:
        """Acquire credentials for subsequent calls."""
        ...

    def list_packages(
        self,
        tracking_guid: str | None = None,
        display_name_pattern: str | None = None,
    ) -> list[PublishedPackageRecord]:
        """Return records matching every given filter."""
        ...

    def create_package(
        self, manifest: dict[str, Any], package_path: Path
    ) -> PublishedPackageRecord:
        """Create a record and upload its package content."""
        ...

    def supersede(self, new_id: str, old_ids: list[str]) -> None:
        """Mark every old_ids record as superseded by new_id."""
        ...


def build_notes(tracking_guid: str, now: datetime | None = None) -> str:
    """Serialize the tracking token stored in an app's notes."""
    now = now or datetime.now(timezone.utc)
    return json.dumps(
        {
            "CreatedBy": NOTES_CREATOR,
            "Guid": tracking_guid,
            "Date": now.isoformat(timespec="seconds"),
        }
    )


def parse_tracking_guid(notes: str | None) -> str | None:
    """Return the GUID from a tracking token in notes, or None.

    The token may be the whole notes field or embedded in other text.
    """
    if not notes:
        return None
    candidates = [notes.strip()] + _JSON_OBJECT_RE.findall(notes)
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict) and data.get("CreatedBy") == NOTES_CREATOR:
            guid = data.get("Guid")
            return str(guid) if guid else None
    return None


def _detection_rules(manifest: dict[str, Any]) -> list[dict[str, Any]]:
    rules = []
    for rule in manifest.get("DetectionRule") or []:
        rules.append(
            {
                "@odata.type": "#microsoft.graph.win32LobAppRegistryRule",
                "ruleType": "detection",
                "check32BitOn64System": bool(rule.get("Check32BitOn64System", False)),
                "keyPath": rule.get("KeyPath", ""),
                "valueName": rule.get("ValueName", ""),
                "operationType": rule.get("DetectionMethod", "string"),
                "operator": rule.get("Operator", "equal"),
                "comparisonValue": rule.get("Value", ""),
            }
        )
    return rules


def build_win32_app_body(
    manifest: dict[str, Any],
    metadata: IntuneWinMetadata,
    notes: str,
) -> dict[str, Any]:
    """Translate a manifest into a Graph win32LobApp body."""
    info = manifest.get("Information", {})
    package = manifest.get("PackageInformation", {})
    program = manifest.get("Program", {})
    requirement = manifest.get("RequirementRule", {})

    body: dict[str, Any] = {
        "@odata.type": WIN32_APP_TYPE,
        "displayName": info.get("DisplayName", ""),
        "description": info.get("Description", ""),
        "publisher": info.get("Publisher", ""),
        "displayVersion": package.get("Version", ""),
        "informationUrl": info.get("InformationURL") or None,
        "privacyInformationUrl": info.get("PrivacyURL") or None,
        "owner": info.get("Owner", ""),
        "developer": info.get("Developer", ""),
        "notes": notes,
        "isFeatured": False,
        "fileName": metadata.file_name,
        "setupFilePath": metadata.setup_file,
        "installCommandLine": program.get("InstallCommand", ""),
        "uninstallCommandLine": program.get("UninstallCommand", ""),
        "applicableArchitectures": requirement.get("Architecture", "x64"),
        "minimumSupportedWindowsRelease": requirement.get(
            "MinimumSupportedWindowsRelease", "1607"
        ),
        "installExperience": {
            "runAsAccount": program.get("InstallExperience", "system"),
            "deviceRestartBehavior": program.get("DeviceRestartBehavior", "suppress"),
        },
        "returnCodes": DEFAULT_RETURN_CODES,
        "rules": _detection_rules(manifest),
    }

    icon = package.get("IconFile")
    if icon:
        icon_path = Path(icon)
        body["largeIcon"] = {
            "@odata.type": "#microsoft.graph.mimeContent",
            "type": "image/png" if icon_path.suffix.lower() == ".png" else "image/jpeg",
            "value": base64.b64encode(icon_path.read_bytes()).decode("ascii"),
        }
    return body


class GraphCatalogClient:
    """CatalogClient backed by Microsoft Graph (beta).

    Attributes:
        auth: Token source.
        base_url: Graph base URL.
        poll_interval: Seconds between upload/commit state checks.
        poll_attempts: State checks before giving up.
        block_size: Azure Storage block size in bytes.
    """

    def __init__(
        self,
        auth: ClientCredentialAuth,
        *,
        session: requests.Session | None = None,
        storage_session: requests.Session | None = None,
        base_url: str = GRAPH_BETA_URL,
        timeout: int = 60,
        poll_interval: float = 5.0,
        poll_attempts: int = 60,
        block_size: int = BLOCK_SIZE,
    ) -> None:
        self.auth = auth
        self.session = session or make_session(("GET", "HEAD", "PUT"))
        # Storage requests carry the SAS token in the URL, never the Graph token
        self.storage_session = storage_session or make_session(("GET", "HEAD", "PUT"))
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.block_size = block_size
        self._token: str | None = None

    def authenticate(self) -> None:
        self._token = self.auth.get_token()

    def _url(self, path: str) -> str:
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        if self._token is None:
            self.authenticate()

        url = self._url(path)
        logger.debug("GRAPH", f"{method} {url}")
        if json_body is not None:
            logger.debug("GRAPH", json.dumps(redact(json_body))[:2000])

        try:
            resp = self.session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers={"Authorization": f"Bearer {self._token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as err:
            raise NetworkError(f"Graph {method} {url} failed: {err}") from err

        if resp.status_code >= 400:
            detail = resp.text[:500]
            try:
                detail = resp.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                pass
            raise NetworkError(
                f"Graph {method} {url} returned {resp.status_code}: {detail}"
            )

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as err:
            raise NetworkError(f"Graph {method} {url} returned invalid JSON") from err

    def list_packages(
        self,
        tracking_guid: str | None = None,
        display_name_pattern: str | None = None,
    ) -> list[PublishedPackageRecord]:
        """List Win32 apps, filtered client-side by tracking GUID and name.

        Args:
            tracking_guid: Keep only records whose notes token has this GUID
                (case-insensitive).
            display_name_pattern: fnmatch-style pattern for the display name.
        """
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        records: list[PublishedPackageRecord] = []
        data = self._request(
            "GET", "deviceAppManagement/mobileApps", params={"$filter": WIN32_APP_FILTER}
        )
        while True:
            for item in data.get("value", []):
                records.append(
                    PublishedPackageRecord(
                        id=item.get("id", ""),
                        display_name=item.get("displayName") or "",
                        notes=item.get("notes") or "",
                        display_version=item.get("displayVersion") or "",
                    )
                )
            next_link = data.get("@odata.nextLink")
            if not next_link:
                break
            data = self._request("GET", next_link)

        if tracking_guid is not None:
            wanted = tracking_guid.lower()
            records = [
                r for r in records if (r.tracking_guid or "").lower() == wanted
            ]
        if display_name_pattern is not None:
            records = [
                r
                for r in records
                if fnmatch.fnmatchcase(r.display_name, display_name_pattern)
            ]
        logger.verbose("GRAPH", f"Found {len(records)} matching app(s)")
        return records

    def _wait_for_state(self, file_url: str, wanted: str) -> dict[str, Any]:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        for attempt in range(1, self.poll_attempts + 1):
            data = self._request("GET", file_url)
            state = str(data.get("uploadState", ""))
            logger.debug("GRAPH", f"uploadState={state} (attempt {attempt})")
            if state == wanted:
                return data
            if state.endswith("Failed") or state.endswith("TimedOut"):
                raise NetworkError(f"Intune content upload failed: {state}")
            time.sleep(self.poll_interval)
        raise NetworkError(
            f"Timed out waiting for {wanted} after {self.poll_attempts} attempt(s)"
        )

    def _upload_content(
        self, app_id: str, package_path: Path, metadata: IntuneWinMetadata
    ) -> str:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        app_path = f"deviceAppManagement/mobileApps/{app_id}/microsoft.graph.win32LobApp"

        version = self._request("POST", f"{app_path}/contentVersions", json_body={})
        version_id = str(version["id"])
        files_path = f"{app_path}/contentVersions/{version_id}/files"

        file_body = {
            "@odata.type": "#microsoft.graph.mobileAppContentFile",
            "name": metadata.file_name,
            "size": metadata.unencrypted_size,
            "sizeEncrypted": metadata.encrypted_size,
            "manifest": None,
            "isDependency": False,
        }
        content_file = self._request("POST", files_path, json_body=file_body)
        file_url = f"{files_path}/{content_file['id']}"

        ready = self._wait_for_state(file_url, "azureStorageUriRequestSuccess")
        sas_uri = ready.get("azureStorageUri")
        if not sas_uri:
            raise NetworkError("Intune did not return an Azure Storage URI")

        logger.verbose("UPLOAD", f"Uploading {package_path.name}")
        upload_package_content(
            self.storage_session,
            sas_uri,
            package_path,
            block_size=self.block_size,
            timeout=self.timeout,
        )

        self._request(
            "POST",
            f"{file_url}/commit",
            json_body={"fileEncryptionInfo": metadata.encryption_info},
        )
        self._wait_for_state(file_url, "commitFileSuccess")
        logger.verbose("UPLOAD", "[OK] Content committed")
        return version_id

    def create_package(
        self, manifest: dict[str, Any], package_path: Path
    ) -> PublishedPackageRecord:
        """Create a Win32 app from manifest and upload package_path.

        Raises:
            ConfigError: If the manifest has no tracking GUID.
            PackagingError: If the package metadata can't be read.
            NetworkError: On any Graph or storage failure.
        """
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        package_path = Path(package_path)
        tracking_guid = manifest.get("Information", {}).get("TrackingGuid")
        if not tracking_guid:
            raise ConfigError("Manifest has no Information.TrackingGuid")

        metadata = read_intunewin_metadata(package_path)
        body = build_win32_app_body(manifest, metadata, build_notes(tracking_guid))

        created = self._request("POST", "deviceAppManagement/mobileApps", json_body=body)
        app_id = str(created["id"])
        logger.verbose("GRAPH", f"Created app {app_id}: {body['displayName']}")

        version_id = self._upload_content(app_id, package_path, metadata)
        self._request(
            "PATCH",
            f"deviceAppManagement/mobileApps/{app_id}",
            json_body={"@odata.type": WIN32_APP_TYPE, "committedContentVersion": version_id},
        )
        logger.verbose("GRAPH", f"[OK] Committed content version {version_id}")

        return PublishedPackageRecord(
            id=app_id,
            display_name=body["displayName"],
            notes=body["notes"],
            display_version=body["displayVersion"],
        )

    def supersede(self, new_id: str, old_ids: list[str]) -> None:
        """Supersede old_ids with new_id in a single relationships update."""
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        if not old_ids:
            return
        relationships = [
            {
                "@odata.type": "#microsoft.graph.mobileAppSupersedence",
                "supersedenceType": "update",
                "targetId": old_id,
            }
            for old_id in old_ids
        ]
        self._request(
            "POST",
            f"deviceAppManagement/mobileApps/{new_id}/updateRelationships",
            json_body={"relationships": relationships},
        )
        logger.verbose("GRAPH", f"[OK] {new_id} supersedes {', '.join(old_ids)}")
