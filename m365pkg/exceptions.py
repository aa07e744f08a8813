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

"""Exception hierarchy for m365pkg.

This module defines a custom exception hierarchy that allows library users
to distinguish between different types of errors:

- ConfigError: Settings, document and input errors (missing files, malformed
  identifiers, fields or detection rules missing from a document)
- NetworkError: Download, authentication and Microsoft Graph failures
- PackagingError: Packaging tool failures and installer inspection errors

All exceptions inherit from M365PkgError, allowing users to catch all
m365pkg errors with a single except clause if needed.

Example:
    Catching specific error types:
        ```python
        from m365pkg.core import PublishOrchestrator
        from m365pkg.exceptions import ConfigError, NetworkError

        try:
            result = orchestrator.run(request)
        except ConfigError as e:
            print(f"Configuration error: {e}")
        except NetworkError as e:
            print(f"Network error: {e}")
        ```

    Catching all m365pkg errors:
        ```python
        from m365pkg.exceptions import M365PkgError

        try:
            result = orchestrator.run(request)
        except M365PkgError as e:
            print(f"m365pkg error: {e}")
        ```
"""

from __future__ import annotations

__all__ = [
    "M365PkgError",
    "ConfigError",
    "InvalidInputError",
    "MissingInputError",
    "ConfigFieldNotFound",
    "DetectionRuleNotFound",
    "DestinationNotEmpty",
    "NetworkError",
    "PackagingError",
]


class M365PkgError(Exception):
    """Base exception for all m365pkg errors.

    All m365pkg-specific exceptions inherit from this class, allowing users
    to catch all m365pkg errors with a single except clause if needed.
    """

    pass


class ConfigError(M365PkgError):
    """Raised for configuration-related errors.

    This exception is raised when there are problems with:

    - YAML settings parsing (syntax errors, invalid structure)
    - Configuration XML or manifest JSON documents
    - Missing or malformed pipeline inputs

    Example:
        Catching configuration errors:
            ```python
            from m365pkg.exceptions import ConfigError

            try:
                settings = load_settings(Path("m365pkg.yaml"))
            except ConfigError as e:
                print(f"Config error: {e}")
            ```
    """

    pass


class InvalidInputError(ConfigError):
    """Raised when an input has the wrong shape.

    Examples are a tenant id that is not a GUID, or an XML document whose
    root element is not ``Configuration``.
    """

    pass


class MissingInputError(ConfigError):
    """Raised when a required input file or directory does not exist.

    Attributes:
        path: The first missing path that was found.
    """

    def __init__(self, path, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"Required input not found: {path}")


class ConfigFieldNotFound(ConfigError):
    """Raised when a configuration document lacks a field the editor must set.

    Attributes:
        field: Name of the missing field (e.g., "TenantId").
    """

    def __init__(self, field: str, document=None) -> None:
        self.field = field
        self.document = document
        where = f" in {document}" if document else ""
        super().__init__(f"Configuration field not found{where}: {field}")


class DetectionRuleNotFound(ConfigError):
    """Raised when the manifest template lacks an expected detection rule.

    Attributes:
        tag: The detection rule tag that could not be matched.
    """

    def __init__(self, tag: str) -> None:
        self.tag = tag
        super().__init__(
            f"Detection rule not found in manifest template: {tag}. "
            f"The template does not match the expected manifest schema."
        )


class DestinationNotEmpty(ConfigError):
    """Raised when a staging or output directory already contains files.

    Attributes:
        path: The directory that was expected to be empty.
    """

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(
            f"Destination directory is not empty: {path}. "
            f"Remove it or choose another working directory."
        )


class NetworkError(M365PkgError):
    """Raised for network-related errors.

    This exception is raised when there are problems with:

    - Download failures (HTTP errors, connection timeouts)
    - Authentication against Microsoft Entra ID
    - Microsoft Graph calls (listing, creating, uploading, superseding)
    - Channel version lookups

    Example:
        Catching network errors:
            ```python
            from m365pkg.exceptions import NetworkError

            try:
                records = client.list_packages(tracking_guid)
            except NetworkError as e:
                print(f"Network error: {e}")
            ```
    """

    pass


class PackagingError(M365PkgError):
    """Raised for packaging/build-related errors.

    This exception is raised when there are problems with:

    - IntuneWinAppUtil.exe failures (non-zero exit, timeout)
    - A packaging run that produces no .intunewin archive
    - Installer version extraction

    Example:
        Catching packaging errors:
            ```python
            from m365pkg.exceptions import PackagingError

            try:
                result = assemble_package(...)
            except PackagingError as e:
                print(f"Packaging error: {e}")
            ```
    """

    pass
