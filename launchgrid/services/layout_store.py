"""
Layout Store - The single owner of the launcher layout.

Every mutation, whether it comes from the user or from an import, goes
through this store:
  - operations run under one re-entrant lock
  - each computes a new page list from a copy (grid/folders functions are
    pure) and swaps it in, so readers never see a half-applied change
  - saves are coalesced with a timer; flush() writes immediately
  - a failed save is logged and retried on the next mutation

Listeners are plain callables, invoked with no arguments after the lock is
released. The view reads `pages` (a tuple of tuples) whenever notified.
"""

import os
import sqlite3
import threading
import time
from typing import Callable

from loguru import logger

from launchgrid import folders, grid
from launchgrid.errors import CorruptStore, NoExistingStore, NotFound
from launchgrid.items import (
    AppItem,
    FolderItem,
    FolderMember,
    Item,
    MissingAppItem,
    Page,
    canonical_item,
    canonical_path,
)
from launchgrid.migration.base import ImportedRecord
from launchgrid.migration.merge import MergePlan, merge_import
from launchgrid.services.customization import AppInfo, CustomizationStore
from launchgrid.services.persistence import PersistenceStore
from launchgrid.services.preferences import Preferences
from launchgrid.services.scanner import AppScanner


class LayoutStore:
    """
    Owns pages, serializes mutations and persists the layout.

    Args:
        persistence: Snapshot reader/writer
        customization: Per-app overrides (saved alongside the layout)
        scanner: Bundle enumeration for rescans
        preferences: Source of the grid geometry
        save_debounce_ms: Delay used to coalesce saves (0 saves at once)
    """

    def __init__(self, persistence: PersistenceStore, customization: CustomizationStore,
                 scanner: AppScanner, preferences: Preferences, save_debounce_ms: int = 500):
        self.persistence = persistence
        self.customization = customization
        self.scanner = scanner
        self.preferences = preferences
        self.save_debounce = max(0, save_debounce_ms) / 1000.0

        self._lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._pages: list[Page] = [[]]
        self._listeners: list[Callable[[], None]] = []
        self._dirty = False
        self._generation = 0
        self._saved_generation = 0
        self._save_timer: threading.Timer | None = None

        self.customization.on_change = self._customization_changed

    # ---- snapshot -----------------------------------------------------

    @property
    def pages(self) -> tuple[tuple[Item, ...], ...]:
        with self._lock:
            return tuple(tuple(page) for page in self._pages)

    @property
    def all_folders(self) -> tuple[FolderItem, ...]:
        with self._lock:
            return tuple(folders.folders_in(self._pages))

    @property
    def capacity(self) -> int:
        rows = self.preferences.get("grid_rows")
        columns = self.preferences.get("grid_columns")
        try:
            return max(1, int(rows) * int(columns))
        except (TypeError, ValueError):
            logger.warning(f"Invalid grid size {rows!r}x{columns!r}, using 5x7")
            return 35

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def add_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback()
            except Exception:
                logger.exception("Layout listener failed")

    def _swap(self, pages: list[Page]) -> None:
        """Install a new page list. Caller holds the lock."""
        self._pages = pages
        self._dirty = True
        self._generation += 1
        self._schedule_save()

    def _mutate(self, operation: Callable, *args):
        with self._lock:
            self._swap(operation(self._pages, *args))
        self._notify()

    # ---- grid operations ----------------------------------------------

    def insert(self, item: Item, page_index: int, slot_index: int) -> None:
        """Place an item at a slot (see grid.insert). Paths are canonicalized first."""
        self._mutate(grid.insert, canonical_item(item), page_index, slot_index, self.capacity)

    def append(self, item: Item) -> None:
        self._mutate(grid.append, canonical_item(item), self.capacity)

    def remove_app(self, path: str) -> None:
        """
        Remove an app from the layout, then compact and drop empty pages.

        Raises:
            NotFound: Path is not in the layout
        """
        path = canonical_path(path)
        with self._lock:
            pages = grid.remove_app(self._pages, path)
            self._swap(grid.remove_empty_pages(grid.compact(pages)))
        logger.debug(f"Removed {path} from layout")
        self._notify()

    def move_item(self, item_id: str, page_index: int, slot_index: int) -> None:
        self._mutate(grid.move_item, item_id, page_index, slot_index, self.capacity)

    def compact(self) -> None:
        """Close gaps within pages and drop pages that became empty."""
        self._mutate(lambda pages: grid.remove_empty_pages(grid.compact(pages)))

    # ---- folder operations --------------------------------------------

    def create_folder(self, paths: list[str], name: str | None = None) -> FolderItem:
        paths = [canonical_path(p) for p in paths]
        with self._lock:
            pages, folder = folders.create_folder(self._pages, paths, name)
            self._swap(pages)
        logger.debug(f"Created folder {folder.name!r} with {len(folder.apps)} apps")
        self._notify()
        return folder

    def add_to_folder(self, folder_id: str, path: str) -> None:
        """
        Move an app into a folder.

        The app may be top-level, in another folder, or not yet in the
        layout (it is then read from its bundle).

        Raises:
            NotFound: Unknown folder, or the app is neither in the layout nor on disk
        """
        path = canonical_path(path)
        with self._lock:
            app = self._member_for(path)
            self._swap(folders.add_member(self._pages, folder_id, app))
        self._notify()

    def _member_for(self, path: str) -> FolderMember:
        member = self.find(path)
        if member is not None:
            return member
        bundle = self.scanner.bundle_info(path)
        if bundle is None:
            raise NotFound(f"No app at {path}")
        return bundle.to_item()

    def remove_from_folder(self, folder_id: str, path: str) -> None:
        self._mutate(folders.remove_member, folder_id, canonical_path(path), self.capacity)

    def rename_folder(self, folder_id: str, name: str) -> None:
        self._mutate(folders.rename_folder, folder_id, name)

    def dissolve_folder(self, folder_id: str) -> None:
        self._mutate(folders.dissolve_folder, folder_id, self.capacity)

    # ---- scanning -----------------------------------------------------

    def rescan(self) -> int:
        """
        Reconcile the layout with the bundles on disk.

        Apps whose bundle vanished become MissingAppItem (in place, also
        inside folders); missing apps that came back become AppItem again;
        names and icons are refreshed; new bundles are appended.

        Returns:
            Number of apps added to the layout
        """
        found = self.scanner.scan(self.customization.all_sources())
        added = 0
        with self._lock:
            pages = [[self._refresh(item) for item in page] for page in self._pages]
            for bundle in found:
                if grid.locate(pages, bundle.path) is None:
                    pages = grid.append(pages, bundle.to_item(), self.capacity)
                    added += 1
            changed = pages != self._pages
            if changed:
                self._swap(pages)
        if changed:
            logger.debug(f"Rescan added {added} apps")
            self._notify()
        return added

    def _refresh(self, item: Item) -> Item:
        if isinstance(item, (AppItem, MissingAppItem)):
            return self._refresh_member(item)
        if isinstance(item, FolderItem):
            for app in item.apps:
                item = folders.replace_member(item, self._refresh_member(app))
            return item
        return item

    def _refresh_member(self, app: FolderMember) -> FolderMember:
        bundle = self.scanner.bundle_info(app.path)
        if bundle is not None:
            return bundle.to_item()
        if isinstance(app, MissingAppItem):
            return app
        logger.info(f"{app.path} is missing, keeping a placeholder")
        return MissingAppItem(path=app.path, name=app.name, icon=app.icon)

    def reset_layout(self) -> None:
        """Discard the arrangement and lay out the scanned apps in name order."""
        found = self.scanner.scan(self.customization.all_sources())
        items: list[Item] = [bundle.to_item() for bundle in found]
        with self._lock:
            self._swap(grid.paginate(items, self.capacity) or [[]])
        logger.info(f"Layout reset with {len(items)} apps")
        self._notify()

    # ---- imports ------------------------------------------------------

    def apply_import(self, records: list[ImportedRecord]) -> MergePlan:
        """Merge imported records into the current layout in one swap."""
        with self._lock:
            plan = merge_import(self._pages, records, self.capacity, item_for=self._item_for_record)
            self._swap(plan.pages)
        logger.info(f"Applied import: {plan.imported_apps} apps, {plan.imported_folders} folders")
        self._notify()
        return plan

    def _item_for_record(self, record: ImportedRecord) -> FolderMember:
        bundle = self.scanner.bundle_info(record.path)
        if bundle is not None:
            return bundle.to_item()
        return AppItem(path=record.path, name=record.name)

    # ---- lookups ------------------------------------------------------

    def find(self, path: str) -> FolderMember | None:
        """Layout entry (top-level or folder member) for a path."""
        path = canonical_path(path)
        with self._lock:
            location = grid.locate(self._pages, path)
            if location is None:
                return None
            item = self._pages[location.page_index][location.slot_index]
            return item.apps[location.member_index] if location.in_folder else item

    def app_info(self, path: str) -> AppInfo:
        return self.customization.app_info(path, last_known=self.find(path))

    def default_display_name(self, path: str) -> str:
        return self.customization.default_display_name(path)

    def apps_for_source(self, source: str) -> list[FolderMember]:
        """Apps in the layout that live under a scan source, sorted by name."""
        root = canonical_path(source)
        prefix = root.rstrip(os.sep) + os.sep
        apps: list[FolderMember] = []
        with self._lock:
            for page in self._pages:
                for item in page:
                    if isinstance(item, (AppItem, MissingAppItem)):
                        apps.append(item)
                    elif isinstance(item, FolderItem):
                        apps.extend(item.apps)
        return sorted(
            (app for app in apps if app.path.startswith(prefix)),
            key=lambda app: app.name.casefold(),
        )

    # ---- persistence --------------------------------------------------

    def load(self, scan: bool = True) -> None:
        """
        Load the saved layout, starting fresh on first run or corruption.

        A corrupt store is moved aside as Data.store.corrupt-<timestamp>.
        """
        try:
            snapshot = self.persistence.load()
        except NoExistingStore:
            logger.info("No saved layout, starting fresh")
            self._start_fresh()
        except CorruptStore:
            logger.exception("Saved layout is unreadable, starting fresh")
            self._set_aside_corrupt()
            self._start_fresh()
        else:
            self.customization.restore(snapshot.customizations, snapshot.app_sources)
            with self._lock:
                self._cancel_save()
                self._pages = snapshot.pages or [[]]
                self._dirty = False
            logger.debug(f"Loaded layout with {len(snapshot.pages)} pages")

        if scan:
            self.rescan()
        with self._lock:
            if self._dirty:
                self._schedule_save()
        self._notify()

    def reload(self) -> None:
        """Drop unsaved changes and load the store from disk again."""
        with self._lock:
            self._cancel_save()
            self._dirty = False
        self.scanner.invalidate()
        self.load(scan=False)

    def _start_fresh(self) -> None:
        self.customization.restore([], [])
        with self._lock:
            self._cancel_save()
            self._pages = [grid.blank_page(self.capacity)]
            self._dirty = True

    def _set_aside_corrupt(self) -> None:
        db_path = self.persistence.db_path
        target = db_path.with_name(f"{db_path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(db_path, target)
            logger.warning(f"Moved unreadable layout store to {target}")
        except OSError:
            logger.exception(f"Could not move aside {db_path}")

    def _customization_changed(self) -> None:
        with self._lock:
            self._dirty = True
            self._generation += 1
            self._schedule_save()
        self._notify()

    def _schedule_save(self) -> None:
        """Caller holds the lock."""
        if self.save_debounce <= 0:
            self._save_now()
            return
        self._cancel_save()
        self._save_timer = threading.Timer(self.save_debounce, self._save_now)
        self._save_timer.daemon = True
        self._save_timer.start()

    def _cancel_save(self) -> None:
        if self._save_timer is not None:
            self._save_timer.cancel()
            self._save_timer = None

    def flush(self) -> bool:
        """
        Save pending changes immediately.

        Returns:
            True if the store is clean afterwards
        """
        with self._lock:
            self._cancel_save()
        return self._save_now()

    def _save_now(self) -> bool:
        with self._lock:
            if not self._dirty:
                return True
            pages = grid.copy_pages(self._pages)
            records, sources = self.customization.snapshot()
            generation = self._generation
            self._dirty = False

        with self._save_lock:
            # A newer snapshot was written by another thread
            if generation < self._saved_generation:
                return True
            try:
                self.persistence.save(pages, records, sources)
                self._saved_generation = generation
                saved = True
            except (OSError, sqlite3.Error):
                logger.exception("Saving the layout failed, will retry on the next change")
                saved = False

        if not saved:
            with self._lock:
                self._dirty = True
        return saved

    def close(self) -> None:
        self.flush()
        with self._lock:
            self._cancel_save()
