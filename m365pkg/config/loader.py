"""
Settings loading and merging for m365pkg.

Settings control where the pipeline works, which layout it stages, where
setup.exe and IntuneWinAppUtil.exe come from, how the channel version is
resolved and how Microsoft Graph is polled. Everything has a built-in
default; a YAML settings file only needs the keys it changes.

Merge Behavior
--------------
The loader deep-merges the settings file over the built-in defaults with
"overlay wins" semantics:
  - **Dicts**: Recursively merged (keys from overlay override base)
  - **Lists**: Completely replaced (NOT appended/extended)
  - **Scalars**: Overwritten (strings, numbers, booleans)

Path Resolution
---------------
Relative paths are resolved against the SETTINGS FILE location, so a
settings file can live next to the configuration library it builds.
Without a settings file they resolve against the current directory.

Credentials
-----------
Secrets never come from the settings file. The client secret is read from
the command line or from M365PKG_CLIENT_SECRET (optionally via .env).

Example settings file
---------------------
    work_dir: build
    layout: files
    source_tree: psadt/Template
    channels:
      source: static
      versions:
        MonthlyEnterprise: 16.0.17928.20216
    graph:
      poll_interval: 10

Functions
---------
load_settings : function
    Load settings from an optional YAML file (main public API).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from m365pkg.build.assembler import LAYOUTS
from m365pkg.build.packager import INTUNEWIN_TOOL_URL
from m365pkg.channels import OFFICE_RELEASES_URL
from m365pkg.exceptions import ConfigError, MissingInputError
from m365pkg.intune.catalog import GRAPH_BETA_URL

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "resources"
DEFAULT_MANIFEST_TEMPLATE = RESOURCES_DIR / "App.json"
DEFAULT_UNINSTALL_CONFIGURATION = RESOURCES_DIR / "Uninstall-Microsoft365Apps.xml"

ODT_SETUP_URL = "https://officecdn.microsoft.com/pr/wsus/setup.exe"

CHANNEL_SOURCES = ("releases", "static")

DEFAULTS: dict[str, Any] = {
    "work_dir": "build",
    "cache_dir": "cache",
    "layout": "flat",
    "setup_file": None,
    "source_tree": None,
    "manifest_template": None,
    "support_files": None,
    "icon": None,
    "installer": {
        "url": ODT_SETUP_URL,
        "sha256": None,
        "version": None,
    },
    "packaging": {
        "tool_path": None,
        "tool_url": INTUNEWIN_TOOL_URL,
        "timeout": 300,
        "catalog_dir": None,
    },
    "channels": {
        "source": "releases",
        "releases_url": OFFICE_RELEASES_URL,
        "versions": {},
    },
    "graph": {
        "base_url": GRAPH_BETA_URL,
        "timeout": 60,
        "poll_interval": 5,
        "poll_attempts": 60,
    },
}


@dataclass(frozen=True)
class PipelineSettings:
    """Effective settings for one pipeline run.

    Attributes:
        work_dir: Working directory for staged files and outputs.
        cache_dir: Cache for downloaded setup.exe and IntuneWinAppUtil.exe.
        layout: Staging layout ("flat" or "files").
        setup_file: Setup file override, relative to the staged source.
        source_tree: Folder copied to the stage root (PSADT template).
        manifest_template: App.json template.
        support_files: Files staged next to the configuration.
        icon: Icon uploaded with the app.
        installer_url: Where setup.exe is downloaded from.
        installer_sha256: Expected SHA-256 of the downloaded setup.exe.
        installer_version: Version override for the manifest.
        tool_path: Local IntuneWinAppUtil.exe; downloaded when None.
        tool_url: Where IntuneWinAppUtil.exe is downloaded from.
        tool_timeout: Seconds allowed for one packaging run.
        catalog_dir: Catalog folder passed to IntuneWinAppUtil.exe.
        channel_source: "releases" (Office releases feed) or "static".
        releases_url: Office releases feed URL.
        channel_versions: Static channel -> version mapping.
        graph_base_url: Microsoft Graph base URL.
        graph_timeout: Per-request Graph timeout in seconds.
        poll_interval: Seconds between upload state checks.
        poll_attempts: Upload state checks before giving up.
        source_path: Settings file these values came from, if any.
    """

    work_dir: Path
    cache_dir: Path
    layout: str = "flat"
    setup_file: str | None = None
    source_tree: Path | None = None
    manifest_template: Path = DEFAULT_MANIFEST_TEMPLATE
    support_files: list[Path] = field(
        default_factory=lambda: [DEFAULT_UNINSTALL_CONFIGURATION]
    )
    icon: Path | None = None
    installer_url: str = ODT_SETUP_URL
    installer_sha256: str | None = None
    installer_version: str | None = None
    tool_path: Path | None = None
    tool_url: str = INTUNEWIN_TOOL_URL
    tool_timeout: int = 300
    catalog_dir: Path | None = None
    channel_source: str = "releases"
    releases_url: str = OFFICE_RELEASES_URL
    channel_versions: dict[str, str] = field(default_factory=dict)
    graph_base_url: str = GRAPH_BETA_URL
    graph_timeout: int = 60
    poll_interval: float = 5
    poll_attempts: int = 60
    source_path: Path | None = None


def _load_yaml_file(p: Path) -> dict[str, Any]:
    """
    Load a YAML settings file.

    Raises:
      MissingInputError - when file does not exist
      ConfigError       - for invalid YAML or a non-mapping document
    """
    if not p.exists():
        raise MissingInputError(p, f"Settings file not found: {p}")
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"Error parsing YAML: {p}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {p}")
    return data


def _deep_merge_dicts(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge two dicts with "overlay wins".

    Rules:
      - dict + dict -> deep merge
      - list + list -> overlay REPLACES base (not concatenated)
      - everything else -> overlay overwrites base

    This function does not mutate inputs; returns a new dict.
    """
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def _resolve(raw: Any, base_dir: Path) -> Path | None:
    """Resolve a relative path string against base_dir; None stays None."""
    if raw is None or raw == "":
        return None
    p = Path(str(raw))
    return p if p.is_absolute() else (base_dir / p).resolve()


def _int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Setting {key} must be an integer, got {value!r}") from err


def _number(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Setting {key} must be a number, got {value!r}") from err


def load_settings(path: Path | None = None) -> PipelineSettings:
    """Load settings, merging an optional YAML file over the defaults.

    Args:
        path: Settings file. When None only the built-in defaults apply.

    Returns:
        PipelineSettings with every path resolved.

    Raises:
        MissingInputError: If path is given but doesn't exist.
        ConfigError: On invalid YAML or invalid values.
    """
    from m365pkg.logging import get_global_logger

    logger = get_global_logger()

    if path is not None:
        path = Path(path).resolve()
        logger.verbose("CONFIG", f"Loading settings: {path}")
        overlay = _load_yaml_file(path)
        base_dir = path.parent
    else:
        overlay = {}
        base_dir = Path.cwd()

    cfg = _deep_merge_dicts(DEFAULTS, overlay)
    for section in ("installer", "packaging", "channels", "graph"):
        if not isinstance(cfg.get(section), dict):
            raise ConfigError(f"Setting {section} must be a mapping")

    layout = str(cfg["layout"])
    if layout not in LAYOUTS:
        raise ConfigError(f"Unknown layout {layout!r}. Expected one of: {', '.join(LAYOUTS)}")

    channels = cfg["channels"]
    channel_source = str(channels.get("source"))
    if channel_source not in CHANNEL_SOURCES:
        raise ConfigError(
            f"Unknown channels.source {channel_source!r}. "
            f"Expected one of: {', '.join(CHANNEL_SOURCES)}"
        )
    versions = channels.get("versions") or {}
    if not isinstance(versions, dict):
        raise ConfigError("Setting channels.versions must be a mapping")

    support_raw = cfg["support_files"]
    if support_raw is None:
        support_files = [DEFAULT_UNINSTALL_CONFIGURATION]
    elif isinstance(support_raw, list):
        support_files = [_resolve(p, base_dir) for p in support_raw if p]
    else:
        raise ConfigError("Setting support_files must be a list")

    installer = cfg["installer"]
    packaging = cfg["packaging"]
    graph = cfg["graph"]

    settings = PipelineSettings(
        work_dir=_resolve(cfg["work_dir"], base_dir) or base_dir / "build",
        cache_dir=_resolve(cfg["cache_dir"], base_dir) or base_dir / "cache",
        layout=layout,
        setup_file=cfg["setup_file"] or None,
        source_tree=_resolve(cfg["source_tree"], base_dir),
        manifest_template=(
            _resolve(cfg["manifest_template"], base_dir) or DEFAULT_MANIFEST_TEMPLATE
        ),
        support_files=support_files,
        icon=_resolve(cfg["icon"], base_dir),
        installer_url=str(installer.get("url") or ODT_SETUP_URL),
        installer_sha256=installer.get("sha256") or None,
        installer_version=(
            str(installer["version"]) if installer.get("version") else None
        ),
        tool_path=_resolve(packaging.get("tool_path"), base_dir),
        tool_url=str(packaging.get("tool_url") or INTUNEWIN_TOOL_URL),
        tool_timeout=_int(packaging.get("timeout"), "packaging.timeout"),
        catalog_dir=_resolve(packaging.get("catalog_dir"), base_dir),
        channel_source=channel_source,
        releases_url=str(channels.get("releases_url") or OFFICE_RELEASES_URL),
        channel_versions={str(k): str(v) for k, v in versions.items()},
        graph_base_url=str(graph.get("base_url") or GRAPH_BETA_URL),
        graph_timeout=_int(graph.get("timeout"), "graph.timeout"),
        poll_interval=_number(graph.get("poll_interval"), "graph.poll_interval"),
        poll_attempts=_int(graph.get("poll_attempts"), "graph.poll_attempts"),
        source_path=path,
    )

    logger.debug("CONFIG", f"Work dir: {settings.work_dir}")
    logger.debug("CONFIG", f"Layout: {settings.layout}")
    logger.debug("CONFIG", f"Channel source: {settings.channel_source}")
    return settings
