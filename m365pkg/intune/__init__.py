"""
Microsoft Intune integration for m365pkg.

Public API:

CatalogClient : protocol
    Port for listing, creating and superseding catalog records.
GraphCatalogClient : class
    CatalogClient backed by Microsoft Graph (beta).
ClientCredentialAuth : class
    Client-credentials token source.
PublishedPackageRecord : dataclass
    A Win32 app as listed by the catalog.

Example:
    from m365pkg.intune import ClientCredentialAuth, GraphCatalogClient

    client = GraphCatalogClient(ClientCredentialAuth(tenant_id="..."))
    client.authenticate()
"""

from .auth import ClientCredentialAuth
from .catalog import (
    CatalogClient,
    GraphCatalogClient,
    PublishedPackageRecord,
    build_notes,
    parse_tracking_guid,
)

__all__ = [
    "CatalogClient",
    "ClientCredentialAuth",
    "GraphCatalogClient",
    "PublishedPackageRecord",
    "build_notes",
    "parse_tracking_guid",
]
