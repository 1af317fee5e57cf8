"""
Preferences - Flat key-value domain persisted as TOML.

Preferences are the user-facing settings of the launcher (grid size,
appearance toggles, the global hotkey). They are stored apart from the
layout store so that a data import can bring them along selectively:
merge() only applies keys in an explicit allow-list.

Key groups offered for selective import:
  - general: language, appearance mode, login item, layout lock
  - appearance: grid geometry, labels, icon scale, animations, hotkey
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import toml
from loguru import logger

from launchgrid.utils.helpers import atomic_write_text

PREFERENCES_FILENAME = "preferences.toml"

DEFAULT_PREFERENCES: dict[str, Any] = {
    "grid_rows": 5,
    "grid_columns": 7,
    "show_labels": True,
    "icon_scale": 1.0,
}

PREFERENCE_GROUPS: dict[str, frozenset[str]] = {
    "general": frozenset({
        "preferred_language",
        "appearance_preference",
        "start_on_login",
        "show_quick_refresh_button",
        "lock_layout",
    }),
    "appearance": frozenset({
        "grid_rows",
        "grid_columns",
        "grid_column_spacing",
        "grid_row_spacing",
        "show_labels",
        "fullscreen_mode",
        "icon_scale",
        "icon_label_font_size",
        "scroll_sensitivity",
        "enable_animations",
        "animation_duration",
        "remember_page",
        "remembered_page_index",
        "global_hotkey",
    }),
}


def keys_for_groups(groups) -> set[str]:
    """
    Collect the preference keys of the named groups.

    Raises:
        KeyError: Unknown group name
    """
    keys: set[str] = set()
    for group in groups:
        keys |= PREFERENCE_GROUPS[group]
    return keys


class Preferences:
    """
    Flat key-value preferences backed by a TOML file.

    Methods:
        get(key, default): Read a value (falls back to DEFAULT_PREFERENCES)
        set(key, value): Write a value and persist
        remove(key): Delete a value and persist
        merge(incoming, allowed_keys): Apply allow-listed keys
        export_to(folder, name) / import_from(folder, name, allowed_keys)
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._values: dict[str, Any] = self._read(self.path)

    @staticmethod
    def _read(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = toml.load(path)
        except (OSError, toml.TomlDecodeError):
            logger.exception(f"Could not load preferences from {path}")
            return {}
        return dict(data)

    def _write(self) -> None:
        atomic_write_text(self.path, toml.dumps(self._values))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key in self._values:
                return self._values[key]
        if default is None:
            return DEFAULT_PREFERENCES.get(key)
        return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._write()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._write()

    def as_dict(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def reload(self) -> None:
        with self._lock:
            self._values = self._read(self.path)

    def merge(self, incoming: dict[str, Any], allowed_keys=None) -> set[str]:
        """
        Merge incoming values into the current domain.

        Args:
            incoming: Key-value pairs to apply
            allowed_keys: Only these keys are applied; None applies all

        Returns:
            Set of keys that were applied
        """
        if allowed_keys is not None:
            incoming = {k: v for k, v in incoming.items() if k in allowed_keys}
        if not incoming:
            return set()
        with self._lock:
            self._values.update(incoming)
            self._write()
        logger.info(f"Merged {len(incoming)} preference keys")
        return set(incoming)

    def export_to(self, folder: Path, name: str) -> Path | None:
        """
        Write a snapshot file <name>.toml into a folder.

        Returns:
            Path of the snapshot, or None when there is nothing to export
        """
        values = self.as_dict()
        if not values:
            return None
        target = Path(folder) / f"{name}.toml"
        atomic_write_text(target, toml.dumps(values))
        return target

    def import_from(self, folder: Path, name: str, allowed_keys=None) -> set[str]:
        """
        Merge a snapshot written by export_to().

        Returns:
            Set of keys that were applied (empty if there is no snapshot)
        """
        source = Path(folder) / f"{name}.toml"
        if not source.exists():
            return set()
        incoming = self._read(source)
        return self.merge(incoming, allowed_keys)
