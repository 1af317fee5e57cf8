"""
Backup - Export and import the whole data directory.

An export is a folder named LaunchGrid_YYYY-MM-DD_HH.MM.SS.launchgrid
holding a copy of the data directory (Data.store, icons/) and a snapshot
of the preferences named after the application identifier.

Importing validates the folder before anything live is touched, then
swaps the data directory through a staging copy and reloads the layout.
"""

import shutil
from datetime import datetime
from pathlib import Path

from loguru import logger

from launchgrid.errors import ValidationFailed
from launchgrid.services.layout_store import LayoutStore
from launchgrid.services.persistence import is_valid_export
from launchgrid.services.preferences import Preferences

EXPORT_PREFIX = "LaunchGrid_"
EXPORT_SUFFIX = ".launchgrid"

_SKIP_PATTERNS = ("*.staging", "*.corrupt-*", "*.tmp")


def export_folder_name(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{EXPORT_PREFIX}{now.strftime('%Y-%m-%d_%H.%M.%S')}{EXPORT_SUFFIX}"


def export_data(store: LayoutStore, preferences: Preferences, data_dir: Path,
                dest_parent: Path, identifier: str) -> Path:
    """
    Copy the data directory and a preferences snapshot into a new folder.

    Args:
        store: Flushed first so the copy holds the latest layout
        preferences: Written as <identifier>.toml inside the export
        data_dir: Live data directory
        dest_parent: Directory that receives the export folder
        identifier: Application identifier used to name the preferences file

    Returns:
        Path of the export folder
    """
    store.flush()
    target = Path(dest_parent) / export_folder_name()
    shutil.copytree(data_dir, target, ignore=shutil.ignore_patterns(*_SKIP_PATTERNS))
    preferences.export_to(target, identifier)
    logger.info(f"Exported data to {target}")
    return target


def import_data(store: LayoutStore, preferences: Preferences, data_dir: Path, folder: Path,
                identifier: str, import_layout: bool = True, allowed_pref_keys=None) -> set[str]:
    """
    Restore an export produced by export_data().

    Args:
        store: Reloaded after the data directory is replaced
        preferences: Receives the allow-listed preference keys
        data_dir: Live data directory
        folder: Export folder chosen by the user
        identifier: Application identifier naming the preferences snapshot
        import_layout: Replace the data directory (layout, customizations, icons)
        allowed_pref_keys: Preference keys to merge; None merges all, empty merges none

    Returns:
        Preference keys that were applied

    Raises:
        ValidationFailed: Folder is not an export with a non-empty layout
    """
    folder = Path(folder)
    data_dir = Path(data_dir)
    if not is_valid_export(folder):
        raise ValidationFailed(f"{folder} is not a LaunchGrid export")

    if import_layout:
        _replace_data_dir(store, data_dir, folder, identifier)

    applied = preferences.import_from(folder, identifier, allowed_pref_keys)
    logger.info(f"Imported data from {folder} ({len(applied)} preference keys)")
    return applied


def _replace_data_dir(store: LayoutStore, data_dir: Path, folder: Path, identifier: str) -> None:
    staging = data_dir.with_name(data_dir.name + ".import-staging")
    previous = data_dir.with_name(data_dir.name + ".previous")
    for leftover in (staging, previous):
        if leftover.exists():
            shutil.rmtree(leftover)

    shutil.copytree(folder, staging, ignore=shutil.ignore_patterns(f"{identifier}.toml", *_SKIP_PATTERNS))
    store.flush()
    if data_dir.exists():
        data_dir.rename(previous)
    try:
        staging.rename(data_dir)
    except OSError:
        logger.exception(f"Could not install imported data, restoring {data_dir}")
        if previous.exists():
            previous.rename(data_dir)
        raise
    shutil.rmtree(previous, ignore_errors=True)
    store.reload()
