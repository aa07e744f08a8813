"""
m365pkg - Microsoft 365 Apps packaging for Intune

A Python-based CLI tool for turning Office Deployment Tool configuration
documents into Intune Win32 apps.

m365pkg provides:
  - Configuration editing (channel, tenant id, organization name)
  - Package staging in a flat or PSADT-style layout
  - .intunewin package creation with IntuneWinAppUtil.exe
  - App.json manifest generation with registry detection rules
  - Version-aware publishing to Microsoft Intune through Microsoft Graph
  - Supersedence of older packages built from the same configuration
  - Validation of a configuration library (unique IDs, required fields)

Quick Start
-----------
Validate a configuration library:

    $ m365pkg validate configs/

Build a package without publishing:

    $ m365pkg package configs/O365ProPlus.xml --channel Current \\
        --company-name Contoso --tenant-id <guid> --build-only

For full CLI documentation:

    $ m365pkg --help

Package Structure
-----------------
cli : module
    Command-line interface with argparse.
core : module
    Pipeline orchestration and the publish decision.
document : package
    ODT configuration document reading and editing.
build : package
    Staging, packaging and manifest generation.
intune : package
    Microsoft Graph authentication, catalog access and content upload.
channels : module
    Current version per release channel.
config : package
    YAML settings loading and merging.
versioning : package
    Version comparison and setup.exe version extraction.
io : package
    Download operations.

Public API
----------
The primary interface is the CLI, but key functions are exported for
programmatic use:

    from m365pkg.core import PublishOrchestrator, PublishRequest
    from m365pkg.config import load_settings
    from m365pkg.document import update_configuration
    from m365pkg.validation import validate_configurations

For more details, see the individual module docstrings.
"""

__version__ = "0.1.0"
__author__ = "Roger Cibrian"
__license__ = "Apache-2.0"
__description__ = "Microsoft 365 Apps packaging and publishing for Intune"

# Re-export commonly used functions for convenience
from m365pkg.config import PipelineSettings, load_settings
from m365pkg.core import PublishOrchestrator, PublishRequest, decide_publish
from m365pkg.document import ConfigurationDocument, update_configuration
from m365pkg.validation import validate_configurations
from m365pkg.versioning import DiscoveredVersion, compare_versions, is_newer

__all__ = [
    "__version__",
    "__author__",
    "__license__",
    "__description__",
    "ConfigurationDocument",
    "DiscoveredVersion",
    "PipelineSettings",
    "PublishOrchestrator",
    "PublishRequest",
    "compare_versions",
    "decide_publish",
    "is_newer",
    "load_settings",
    "update_configuration",
    "validate_configurations",
]
