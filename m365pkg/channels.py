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

"""Current Microsoft 365 Apps version per release channel.

The VersionToReport detection rule in the manifest needs the build that is
currently shipping on the configured channel. This module provides the
lookup port and two implementations:

- OfficeReleasesLookup: queries the public Office releases feed
- StaticVersionLookup: returns versions pinned in settings

Example:
    ```python
    from m365pkg.channels import OfficeReleasesLookup

    lookup = OfficeReleasesLookup()
    print(lookup.current_version("MonthlyEnterprise"))  # 16.0.17928.20216
    ```
"""

from __future__ import annotations

from typing import Any, Protocol

import requests

from m365pkg.exceptions import ConfigError, NetworkError
from m365pkg.io import make_session

OFFICE_RELEASES_URL = "https://clients.config.office.net/releases/v1.0/OfficeReleases"

# Feed builds omit the fixed "16.0." product prefix that VersionToReport carries
VERSION_PREFIX = "16.0."


class VersionLookup(Protocol):
    """Port for resolving the current version of a release channel."""

    def current_version(self, channel: str) -> str:
        """Return the currently shipping version for channel."""
        ...


class StaticVersionLookup:
    """Version lookup backed by a fixed channel -> version mapping."""

    def __init__(self, versions: dict[str, str]) -> None:
        self.versions = dict(versions)

    def current_version(self, channel: str) -> str:
        try:
            return self.versions[channel]
        except KeyError:
            raise ConfigError(
                f"No version configured for channel {channel!r}. "
                f"Known channels: {', '.join(sorted(self.versions)) or 'none'}"
            ) from None


class OfficeReleasesLookup:
    """Version lookup backed by the Office releases JSON feed.

    The feed is fetched once per instance and cached.
    """

    def __init__(
        self,
        url: str = OFFICE_RELEASES_URL,
        session: requests.Session | None = None,
        timeout: int = 30,
    ) -> None:
        self.url = url
        self.session = session or make_session()
        self.timeout = timeout
        self._releases: list[dict[str, Any]] | None = None

    def _fetch(self) -> list[dict[str, Any]]:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        if self._releases is not None:
            return self._releases

        logger.verbose("CHANNEL", f"Fetching Office releases: {self.url}")
        try:
            resp = self.session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as err:
            raise NetworkError(f"Failed to fetch Office releases: {err}") from err
        try:
            data = resp.json()
        except ValueError as err:
            raise NetworkError(f"Office releases feed is not valid JSON: {err}") from err

        if not isinstance(data, list):
            raise NetworkError("Office releases feed returned an unexpected payload")
        self._releases = data
        return data

    def current_version(self, channel: str) -> str:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        wanted = channel.lower()
        for release in self._fetch():
            if str(release.get("channelId", "")).lower() != wanted:
                continue
            build = release.get("latestBuild")
            if build:
                build = str(build)
                version = build if build.startswith(VERSION_PREFIX) else VERSION_PREFIX + build
            else:
                version = str(release.get("latestVersion") or "")
            if not version:
                break
            logger.verbose("CHANNEL", f"{channel}: {version}")
            return version
        raise NetworkError(f"Channel {channel!r} not found in Office releases feed")
