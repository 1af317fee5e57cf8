"""
Helper utilities for the LaunchGrid engine.

Provides common functions used across services:
- Settings loading (TOML, merged over defaults)
- XDG data/config directory resolution
- Atomic file replacement
"""

import copy
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

import toml
from loguru import logger

APP_NAME = "launchgrid"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "app": {
        "identifier": "io.launchgrid.LaunchGrid",
    },
    "storage": {
        "data_dir": "",
        "config_dir": "",
        "save_debounce_ms": 500,
    },
    "scan": {
        "builtin_sources": [
            "/Applications",
            "/System/Applications",
            "~/Applications",
        ],
    },
    "import": {
        "native_db_path": "",
    },
    "search": {
        "fuzzy_threshold": 70,
    },
}


def default_config_dir() -> Path:
    """$XDG_CONFIG_HOME/launchgrid, falling back to ~/.config/launchgrid."""
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return Path(base) / APP_NAME


def default_data_dir() -> Path:
    """$XDG_DATA_HOME/launchgrid, falling back to ~/.local/share/launchgrid."""
    base = os.getenv("XDG_DATA_HOME") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return Path(base) / APP_NAME


def settings_path() -> Path:
    return default_config_dir() / "settings.toml"


def load_settings(path: Path | None = None) -> Dict[str, Any]:
    """
    Load engine settings from a TOML file.

    Args:
        path: Settings file; defaults to $XDG_CONFIG_HOME/launchgrid/settings.toml

    Returns:
        Dictionary containing settings with defaults applied

    Example settings.toml:
        [storage]
        save_debounce_ms = 250

        [scan]
        builtin_sources = ["/Applications"]
    """
    defaults = copy.deepcopy(DEFAULT_SETTINGS)
    path = Path(path) if path is not None else settings_path()

    if not path.exists():
        logger.debug(f"Settings file not found at {path}, using defaults")
        return defaults

    try:
        loaded = toml.load(path)
    except (OSError, toml.TomlDecodeError):
        logger.exception(f"Could not load settings from {path}, using defaults")
        return defaults

    return _deep_merge(defaults, loaded)


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary with defaults
        override: Dictionary with overrides

    Returns:
        Merged dictionary (override takes precedence)
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def resolve_dirs(settings: Dict[str, Any]) -> tuple[Path, Path]:
    """
    Resolve the data and config directories from settings.

    Returns:
        Tuple of (data_dir, config_dir), both created if missing
    """
    storage = settings.get("storage", {})
    data_dir = storage.get("data_dir") or ""
    config_dir = storage.get("config_dir") or ""
    data_dir = Path(data_dir).expanduser() if data_dir else default_data_dir()
    config_dir = Path(config_dir).expanduser() if config_dir else default_config_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    config_dir.mkdir(parents=True, exist_ok=True)
    return data_dir, config_dir


def atomic_write_text(path: Path, text: str) -> None:
    """
    Write a text file so readers see either the old or the new contents.

    Writes to a temporary file in the same directory, then swaps it in
    with os.replace().
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
