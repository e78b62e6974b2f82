"""Persistent CLI defaults.

The ``gcelb`` command remembers a default project and region in
``~/.config/gcelb/config.json`` so they need not be passed on every call.
``GCELB_CONFIG_DIR`` and ``XDG_CONFIG_HOME`` move the file.
"""

import json
import os
from pathlib import Path
from typing import Any

from gcelb.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULTS_SECTION = "defaults"
DEFAULT_KEYS = ("project_id", "region")


def get_config_dir() -> Path:
    """Directory holding config.json."""
    override = os.getenv("GCELB_CONFIG_DIR")
    if override:
        return Path(override)

    xdg_config = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / "gcelb"


def get_config_file() -> Path:
    return get_config_dir() / "config.json"


def load_config_file() -> dict[str, Any]:
    """Read config.json.

    Returns:
        Parsed file contents; empty when the file is missing, unreadable or
        not a JSON object
    """
    path = get_config_file()
    if not path.exists():
        return {}

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def save_config_file(config: dict[str, Any]) -> None:
    """Write config.json, creating its directory when needed."""
    path = get_config_file()
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        path.write_text(json.dumps(config, indent=2))
    except OSError as e:
        logger.warning(f"Could not write config file {path}: {e}")


def get_default_config() -> dict[str, Any]:
    """Contents of a fresh config file."""
    return {DEFAULTS_SECTION: {key: "" for key in DEFAULT_KEYS}}


def get_default_value(key: str) -> str | None:
    """Read a value from the defaults section.

    Args:
        key: "project_id" or "region"

    Returns:
        Configured value, or None when unset or empty
    """
    defaults = load_config_file().get(DEFAULTS_SECTION, {})
    if not isinstance(defaults, dict):
        return None
    return defaults.get(key) or None


def get_defaults() -> dict[str, str]:
    """Every known default, with unset ones as empty strings."""
    merged = dict(get_default_config()[DEFAULTS_SECTION])
    for key in DEFAULT_KEYS:
        merged[key] = get_default_value(key) or ""
    return merged


def update_config_value(section: str, key: str, value: Any) -> None:
    """Set one value in config.json, keeping everything else in the file."""
    config = load_config_file()
    if not isinstance(config.get(section), dict):
        config[section] = {}
    config[section][key] = value
    save_config_file(config)
