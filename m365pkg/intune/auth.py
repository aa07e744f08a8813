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

"""Microsoft Graph app-only authentication for m365pkg.

Loads M365PKG_* environment variables (optionally from .env) and manages a
cached access token from the client-credentials flow that is refreshed
shortly before it expires. Explicit arguments take precedence over the
environment.

Environment:
    M365PKG_TENANT_ID, M365PKG_CLIENT_ID, M365PKG_CLIENT_SECRET
"""

from __future__ import annotations

import getpass
import os
import time

from dotenv import load_dotenv
import requests

from m365pkg.exceptions import ConfigError, NetworkError
from m365pkg.io import make_session

AUTHORITY_URL = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
ENV_PREFIX = "M365PKG_"


class ClientCredentialAuth:
    """Client-credentials token source for Microsoft Graph.

    Attributes:
        env_prefix: Prefix used for environment variables.
        refresh_margin: Seconds before real expiry when the token is refreshed.
        interactive: Prompt for a missing client secret instead of failing.
    """

    def __init__(
        self,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        env_prefix: str = ENV_PREFIX,
        refresh_margin: int = 60,
        interactive: bool = False,
        session: requests.Session | None = None,
        authority: str = AUTHORITY_URL,
        timeout: int = 30,
    ) -> None:
        load_dotenv()
        self.env_prefix = env_prefix
        self.refresh_margin = refresh_margin
        self.interactive = interactive
        self.session = session or make_session()
        self.authority = authority.rstrip("/")
        self.timeout = timeout
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._token: str | None = None
        self._token_expires_at: float | None = None  # UNIX epoch

    def _value(self, explicit: str | None, key: str) -> str | None:
        if explicit:
            return explicit
        return os.getenv(f"{self.env_prefix}{key}") or None

    def _require(self, explicit: str | None, key: str) -> str:
        value = self._value(explicit, key)
        if value is None:
            raise ConfigError(
                f"Missing credential: pass it explicitly or set {self.env_prefix}{key}"
            )
        return value

    @property
    def tenant_id(self) -> str:
        return self._require(self._tenant_id, "TENANT_ID")

    @property
    def client_id(self) -> str:
        return self._require(self._client_id, "CLIENT_ID")

    @property
    def client_secret(self) -> str:
        value = self._value(self._client_secret, "CLIENT_SECRET")
        if value is None and self.interactive:
            value = getpass.getpass("Enter your client secret: ")
            self._client_secret = value
        if not value:
            raise ConfigError(
                f"Missing credential: pass it explicitly or set {self.env_prefix}CLIENT_SECRET"
            )
        return value

    def has_credentials(self) -> bool:
        """True if a client id and secret are available without prompting."""
        return bool(
            self._value(self._client_id, "CLIENT_ID")
            and self._value(self._client_secret, "CLIENT_SECRET")
        )

    def _token_expired(self) -> bool:
        if self._token is None or self._token_expires_at is None:
            return True
        return time.time() >= (self._token_expires_at - self.refresh_margin)

    def _fetch_token(self) -> None:
        from m365pkg.logging import get_global_logger

        logger = get_global_logger()
        url = f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
            "scope": GRAPH_SCOPE,
        }

        logger.verbose("AUTH", f"Requesting token for tenant {self.tenant_id}")
        try:
            response = self.session.post(url, data=data, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as err:
            raise NetworkError(f"Token request failed: {err}") from err
        try:
            token_data = response.json()
        except ValueError as err:
            raise NetworkError(f"Token response is not valid JSON: {err}") from err

        token = token_data.get("access_token")
        if not token:
            raise NetworkError("Token response did not contain an access_token")
        self._token = token
        # expires_in is seconds until expiry
        self._token_expires_at = time.time() + int(token_data.get("expires_in", 0))
        logger.verbose("AUTH", "[OK] Access token acquired")

    def get_token(self) -> str:
        """Return a valid access token, refreshing it when necessary.

        Raises:
            ConfigError: If a credential is missing.
            NetworkError: If the token endpoint fails.
        """
        if self._token_expired():
            self._fetch_token()
        return self._token  # type: ignore[return-value]
