"""Office Deployment Tool configuration documents for m365pkg.

Public API:

- ConfigurationDocument: Parsed configuration XML with read accessors
- update_configuration: Edit channel, tenant id and organization name
- find_property: The single Property name lookup
- SUPPORTED_CHANNELS: Release channels accepted by the ODT

Example:
    from pathlib import Path
    from m365pkg.document import ConfigurationDocument

    document = ConfigurationDocument.load(Path("configs/O365ProPlus.xml"))
    print(document.product_ids)

"""

from .configuration import (
    SUPPORTED_CHANNELS,
    ConfigurationDocument,
    apply_update,
    find_property,
    is_guid,
    update_configuration,
)

__all__ = [
    "SUPPORTED_CHANNELS",
    "ConfigurationDocument",
    "apply_update",
    "find_property",
    "is_guid",
    "update_configuration",
]
