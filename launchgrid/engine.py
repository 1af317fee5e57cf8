"""
Engine - Wires the services together behind one handle.

Callers open a LaunchGrid at startup and pass it to whatever needs the
layout; there is no module-level instance.

    with LaunchGrid.open() as engine:
        engine.layout.add_listener(view.refresh)
        engine.importer.start_native(on_done)
"""

from pathlib import Path
from typing import Any, Dict

from loguru import logger

from launchgrid.migration.importer import ImportService
from launchgrid.services import backup
from launchgrid.services.customization import CustomizationStore
from launchgrid.services.hotkeys import HotkeyRegistry
from launchgrid.services.layout_store import LayoutStore
from launchgrid.services.persistence import PersistenceStore
from launchgrid.services.preferences import PREFERENCES_FILENAME, Preferences, keys_for_groups
from launchgrid.services.scanner import AppScanner
from launchgrid.utils.helpers import load_settings, resolve_dirs


class LaunchGrid:
    """
    Handle to a running engine.

    Attributes:
        layout: LayoutStore, the single owner of the pages
        customization: Titles, icons, hidden apps and app sources
        preferences: Flat preference domain
        hotkeys: Global hotkey registration
        importer: Background Launchpad / legacy archive imports
    """

    def __init__(self, settings: Dict[str, Any]):
        self.settings = settings
        self.data_dir, self.config_dir = resolve_dirs(settings)
        self.identifier = settings["app"]["identifier"]

        self.scanner = AppScanner()
        self.preferences = Preferences(self.config_dir / PREFERENCES_FILENAME)
        self.customization = CustomizationStore(
            self.scanner,
            self.data_dir / "icons",
            builtin_sources=settings["scan"]["builtin_sources"],
            fuzzy_threshold=settings["search"]["fuzzy_threshold"],
        )
        self.persistence = PersistenceStore(self.data_dir)
        self.layout = LayoutStore(
            self.persistence,
            self.customization,
            self.scanner,
            self.preferences,
            save_debounce_ms=settings["storage"]["save_debounce_ms"],
        )
        self.hotkeys = HotkeyRegistry(self.preferences)
        native_db = settings["import"]["native_db_path"]
        self.importer = ImportService(
            self.layout,
            self.scanner,
            self.customization,
            native_db_path=Path(native_db).expanduser() if native_db else None,
        )

    @classmethod
    def open(cls, settings: Dict[str, Any] | None = None, scan: bool = True) -> "LaunchGrid":
        """
        Create an engine and load the saved layout.

        Args:
            settings: Settings dictionary; read with load_settings() when omitted
            scan: Reconcile the layout with the bundles on disk after loading
        """
        engine = cls(settings if settings is not None else load_settings())
        engine.layout.load(scan=scan)
        logger.debug(f"LaunchGrid engine ready (data in {engine.data_dir})")
        return engine

    def export_data(self, dest_parent: Path) -> Path:
        return backup.export_data(self.layout, self.preferences, self.data_dir, dest_parent, self.identifier)

    def import_data(self, folder: Path, import_layout: bool = True, preference_groups=None) -> set[str]:
        """
        Restore an export.

        Args:
            folder: Export folder
            import_layout: Replace layout, customizations and icons
            preference_groups: Preference groups to merge ("general",
                "appearance"); None merges every key
        """
        allowed = keys_for_groups(preference_groups) if preference_groups is not None else None
        return backup.import_data(
            self.layout,
            self.preferences,
            self.data_dir,
            folder,
            self.identifier,
            import_layout=import_layout,
            allowed_pref_keys=allowed,
        )

    def close(self) -> None:
        self.importer.shutdown()
        self.layout.close()

    def __enter__(self) -> "LaunchGrid":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
