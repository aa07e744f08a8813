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

"""Settings loading for m365pkg.

Settings are a YAML file deep-merged over built-in defaults. Dicts are merged
recursively and lists/scalars are replaced (last wins). Relative paths are
resolved against the settings file location.

Public API:

- load_settings: Load effective settings from an optional YAML file
- PipelineSettings: The settings object passed to the orchestrator

Example:
    Basic usage:

        from pathlib import Path
        from m365pkg.config import load_settings

        settings = load_settings(Path("m365pkg.yaml"))
        print(settings.work_dir, settings.layout)

"""

from .loader import (
    DEFAULT_MANIFEST_TEMPLATE,
    DEFAULT_UNINSTALL_CONFIGURATION,
    ODT_SETUP_URL,
    PipelineSettings,
    load_settings,
)

__all__ = [
    "DEFAULT_MANIFEST_TEMPLATE",
    "DEFAULT_UNINSTALL_CONFIGURATION",
    "ODT_SETUP_URL",
    "PipelineSettings",
    "load_settings",
]
