"""
Persistence Store - Durable SQLite snapshot of the layout.

The store is a single SQLite file (Data.store) with these tables:
  - meta: schema version and save time
  - page_entries: one row per slot (page_index, position, kind, item_id)
  - item_entries: apps, missing-app placeholders and folders
  - folder_members: ordered members of each folder
  - customizations: per-app title / icon / hidden overrides
  - app_sources: user-added scan-source directories

Saving builds a complete staging database next to the live file and swaps
it in with os.replace(), so a crash leaves either the previous snapshot or
the new one, never a mix.
"""

import os
import sqlite3
import time
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from launchgrid.errors import CorruptStore, NoExistingStore
from launchgrid.items import (
    AppItem,
    EmptyItem,
    FolderItem,
    Item,
    MissingAppItem,
    Page,
    item_kind,
    unknown_item,
)
from launchgrid.services.customization import CustomizationRecord

STORE_FILENAME = "Data.store"
SCHEMA_VERSION = 1

SCHEMA = """
    CREATE TABLE meta (
        key TEXT PRIMARY KEY,
        value TEXT
    );
    CREATE TABLE page_entries (
        page_index INTEGER NOT NULL,
        position INTEGER NOT NULL,
        kind TEXT NOT NULL,
        item_id TEXT NOT NULL,
        PRIMARY KEY (page_index, position)
    );
    CREATE TABLE item_entries (
        item_id TEXT PRIMARY KEY,
        kind TEXT NOT NULL,
        path TEXT,
        name TEXT,
        icon TEXT
    );
    CREATE TABLE folder_members (
        folder_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        kind TEXT NOT NULL,
        path TEXT NOT NULL,
        name TEXT,
        icon TEXT,
        PRIMARY KEY (folder_id, position)
    );
    CREATE TABLE customizations (
        path TEXT PRIMARY KEY,
        title TEXT,
        icon TEXT,
        hidden INTEGER DEFAULT 0,
        known_name TEXT
    );
    CREATE TABLE app_sources (
        position INTEGER PRIMARY KEY,
        path TEXT NOT NULL UNIQUE
    );
"""

REQUIRED_TABLES = {"page_entries", "item_entries", "folder_members", "customizations", "app_sources"}


@dataclass
class StoreSnapshot:
    """Everything the store holds, as loaded from disk."""
    pages: list[Page] = field(default_factory=list)
    customizations: list[CustomizationRecord] = field(default_factory=list)
    app_sources: list[str] = field(default_factory=list)
    saved_at: int | None = None


def _table_names(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


class PersistenceStore:
    """
    Reads and writes the layout snapshot.

    Methods:
        save(pages, customizations, app_sources): Atomic snapshot write
        load(): Rebuild the snapshot from disk
        exists(): Whether a store file is present
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / STORE_FILENAME

    def exists(self) -> bool:
        return self.db_path.exists()

    def save(self, pages, customizations=None, app_sources=()) -> None:
        """
        Write a consistent snapshot.

        Args:
            pages: Sequence of pages (folders are stored with their slot)
            customizations: Mapping or iterable of CustomizationRecord
            app_sources: Custom scan-source paths, in order

        Raises:
            OSError, sqlite3.Error: The snapshot could not be written (the
                previous snapshot is left in place)
        """
        if isinstance(customizations, dict):
            customizations = customizations.values()
        customizations = list(customizations or [])

        self.data_dir.mkdir(parents=True, exist_ok=True)
        staging = self.db_path.with_name(self.db_path.name + ".staging")
        if staging.exists():
            staging.unlink()

        try:
            with closing(sqlite3.connect(str(staging))) as conn:
                conn.executescript(SCHEMA)
                self._write(conn, pages, customizations, app_sources)
                conn.commit()
            os.replace(staging, self.db_path)
        finally:
            if staging.exists():
                staging.unlink()

        logger.debug(f"Saved layout ({len(pages)} pages) to {self.db_path}")

    def _write(self, conn: sqlite3.Connection, pages, customizations, app_sources) -> None:
        cursor = conn.cursor()
        cursor.executemany(
            "INSERT INTO meta (key, value) VALUES (?, ?)",
            [("schema_version", str(SCHEMA_VERSION)), ("saved_at", str(int(time.time())))],
        )

        for page_index, page in enumerate(pages):
            for position, item in enumerate(page):
                cursor.execute(
                    "INSERT INTO page_entries (page_index, position, kind, item_id) VALUES (?, ?, ?, ?)",
                    (page_index, position, item_kind(item), item.id),
                )
                self._write_item(cursor, item)

        cursor.executemany(
            "INSERT INTO customizations (path, title, icon, hidden, known_name) VALUES (?, ?, ?, ?, ?)",
            [(r.path, r.title, r.icon, int(r.hidden), r.known_name) for r in customizations],
        )
        cursor.executemany(
            "INSERT INTO app_sources (position, path) VALUES (?, ?)",
            list(enumerate(app_sources)),
        )

    def _write_item(self, cursor: sqlite3.Cursor, item: Item) -> None:
        if isinstance(item, (AppItem, MissingAppItem)):
            cursor.execute(
                "INSERT INTO item_entries (item_id, kind, path, name, icon) VALUES (?, ?, ?, ?, ?)",
                (item.id, item_kind(item), item.path, item.name, item.icon),
            )
        elif isinstance(item, FolderItem):
            cursor.execute(
                "INSERT INTO item_entries (item_id, kind, path, name, icon) VALUES (?, 'folder', NULL, ?, NULL)",
                (item.id, item.name),
            )
            cursor.executemany(
                "INSERT INTO folder_members (folder_id, position, kind, path, name, icon) VALUES (?, ?, ?, ?, ?, ?)",
                [(item.id, position, item_kind(app), app.path, app.name, app.icon)
                 for position, app in enumerate(item.apps)],
            )
        elif isinstance(item, EmptyItem):
            pass
        else:
            unknown_item(item)

    def load(self) -> StoreSnapshot:
        """
        Rebuild the layout from disk.

        Raises:
            NoExistingStore: No store file yet (first run)
            CorruptStore: File exists but is not a readable layout store
        """
        if not self.db_path.exists():
            raise NoExistingStore(f"No layout store at {self.db_path}")

        try:
            uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
            with closing(sqlite3.connect(uri, uri=True)) as conn:
                missing = REQUIRED_TABLES - _table_names(conn)
                if missing:
                    raise CorruptStore(f"Layout store is missing tables: {', '.join(sorted(missing))}")
                return self._read(conn)
        except sqlite3.Error as e:
            raise CorruptStore(f"Cannot read layout store {self.db_path}: {e}") from e

    def _read(self, conn: sqlite3.Connection) -> StoreSnapshot:
        items = {
            item_id: (kind, path, name, icon)
            for item_id, kind, path, name, icon in conn.execute(
                "SELECT item_id, kind, path, name, icon FROM item_entries"
            )
        }
        members: dict[str, list] = {}
        for folder_id, kind, path, name, icon in conn.execute(
            "SELECT folder_id, kind, path, name, icon FROM folder_members ORDER BY folder_id, position"
        ):
            cls = MissingAppItem if kind == "missing" else AppItem
            members.setdefault(folder_id, []).append(cls(path=path, name=name or "", icon=icon))

        pages: list[Page] = []
        for page_index, kind, item_id in conn.execute(
            "SELECT page_index, kind, item_id FROM page_entries ORDER BY page_index, position"
        ):
            while len(pages) <= page_index:
                pages.append([])
            pages[page_index].append(self._build_item(kind, item_id, items, members))

        customizations = [
            CustomizationRecord(path=path, title=title, icon=icon, hidden=bool(hidden), known_name=known_name)
            for path, title, icon, hidden, known_name in conn.execute(
                "SELECT path, title, icon, hidden, known_name FROM customizations"
            )
        ]
        sources = [row[0] for row in conn.execute("SELECT path FROM app_sources ORDER BY position")]

        saved_at = None
        if "meta" in _table_names(conn):
            row = conn.execute("SELECT value FROM meta WHERE key = 'saved_at'").fetchone()
            if row and str(row[0]).isdigit():
                saved_at = int(row[0])

        return StoreSnapshot(pages=pages, customizations=customizations, app_sources=sources, saved_at=saved_at)

    def _build_item(self, kind: str, item_id: str, items: dict, members: dict) -> Item:
        if kind == "empty":
            return EmptyItem(id=item_id)

        entry = items.get(item_id)
        if entry is None:
            logger.warning(f"Layout store references unknown item {item_id}; using an empty slot")
            return EmptyItem()

        _kind, path, name, icon = entry
        if kind == "app":
            return AppItem(path=path, name=name or "", icon=icon)
        if kind == "missing":
            return MissingAppItem(path=path, name=name or "", icon=icon)
        if kind == "folder":
            return FolderItem(name=name or "", apps=tuple(members.get(item_id, [])), id=item_id)
        raise CorruptStore(f"Unknown item kind {kind!r} in layout store")


def is_valid_export(folder: Path) -> bool:
    """
    Check that a folder really is a LaunchGrid export.

    The folder must contain a readable Data.store with at least one
    non-empty page entry or one item entry.
    """
    store = Path(folder) / STORE_FILENAME
    if not store.is_file():
        return False
    try:
        with closing(sqlite3.connect(f"{store.resolve().as_uri()}?mode=ro", uri=True)) as conn:
            if not {"page_entries", "item_entries"} <= _table_names(conn):
                return False
            pages = conn.execute("SELECT COUNT(*) FROM page_entries WHERE kind != 'empty'").fetchone()[0]
            if pages:
                return True
            entries = conn.execute("SELECT COUNT(*) FROM item_entries").fetchone()[0]
            return entries > 0
    except sqlite3.Error:
        logger.exception(f"Cannot open {store} while validating export")
        return False
