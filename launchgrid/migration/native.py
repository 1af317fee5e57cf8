"""
Native Launchpad Import - Read the macOS Launchpad database.

The database lives under the per-user Darwin directory:
  $(getconf DARWIN_USER_DIR)/com.apple.dock.launchpad/db/db

Tables used (schema drift is checked before reading):
  - items: rowid, uuid, type, parent_id, ordering
  - apps: item_id, title, bookmark (optional)
  - groups: item_id, title

Item types: 1 = root, 2 = folder, 3 = page, 4 = app. Pages hang off the
root ("ROOTPAGE" when present); folders hold their apps on inner pages.

The database is copied to a temporary directory and opened read-only, so
a running Dock never sees a reader lock and is never written to.
"""

import os
import re
import shutil
import sqlite3
import subprocess
import tempfile
from contextlib import closing
from pathlib import Path
from urllib.parse import unquote

from loguru import logger

from launchgrid.errors import ImportSourceEmpty, ImportSourceUnreadable
from launchgrid.items import canonical_path
from launchgrid.migration.base import ImportedRecord, MigrationSource, ReadResult
from launchgrid.services.scanner import AppScanner

TYPE_ROOT = 1
TYPE_FOLDER = 2
TYPE_PAGE = 3
TYPE_APP = 4

LAUNCHPAD_DB_SUFFIX = os.path.join("com.apple.dock.launchpad", "db", "db")

REQUIRED_COLUMNS = {
    "items": {"uuid", "type", "parent_id", "ordering"},
    "apps": {"item_id", "title"},
    "groups": {"item_id", "title"},
}

_FILE_URL = re.compile(rb"file://(/[^\x00]*?\.app)(?=/|\x00|$)")
_RAW_PATH = re.compile(rb"(/[^\x00]*?\.app)(?=/|\x00|$)")


def default_db_path() -> Path:
    """
    Locate the Launchpad database of the current user.

    Raises:
        ImportSourceUnreadable: Not on macOS, or getconf failed
    """
    try:
        completed = subprocess.run(
            ["getconf", "DARWIN_USER_DIR"],
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ImportSourceUnreadable(f"Cannot locate the Launchpad database: {e}") from e

    user_dir = completed.stdout.strip()
    if not user_dir:
        raise ImportSourceUnreadable("Cannot locate the Launchpad database: DARWIN_USER_DIR is not set")
    return Path(user_dir) / LAUNCHPAD_DB_SUFFIX


def path_from_bookmark(blob) -> str | None:
    """Pull an .app path out of a bookmark blob (file URL or raw path)."""
    if not blob:
        return None
    data = bytes(blob)
    match = _FILE_URL.search(data) or _RAW_PATH.search(data)
    if match is None:
        return None
    try:
        return unquote(match.group(1).decode("utf-8"))
    except UnicodeDecodeError:
        return None


def check_schema(conn: sqlite3.Connection) -> None:
    """
    Verify the tables and columns the reader relies on.

    Raises:
        ImportSourceUnreadable: A table or column is missing
    """
    for table, columns in REQUIRED_COLUMNS.items():
        found = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
        if not found:
            raise ImportSourceUnreadable(f"Launchpad database has no '{table}' table")
        missing = columns - found
        if missing:
            raise ImportSourceUnreadable(
                f"Launchpad table '{table}' is missing columns: {', '.join(sorted(missing))}"
            )


class NativeLaunchpadReader(MigrationSource):
    """
    Reads pages, folders and apps from the Launchpad database.

    Args:
        scanner: Used to find bundles by title when a bookmark is unusable
        sources: Scan sources searched for bundles named after the title
        db_path: Database file; located with getconf when not given
    """

    def __init__(self, scanner: AppScanner, sources=(), db_path: Path | None = None):
        self.scanner = scanner
        self.sources = list(sources)
        self.db_path = Path(db_path) if db_path else None

    @property
    def name(self) -> str:
        return "Launchpad"

    def read(self) -> ReadResult:
        db_path = self.db_path or default_db_path()
        if not db_path.is_file():
            raise ImportSourceUnreadable(f"Launchpad database not found at {db_path}")

        logger.info(f"Reading Launchpad database {db_path}")
        with tempfile.TemporaryDirectory(prefix="launchgrid-native-") as tmp:
            copy = Path(tmp) / "db"
            try:
                shutil.copy2(db_path, copy)
                for suffix in ("-wal", "-shm"):
                    sidecar = db_path.with_name(db_path.name + suffix)
                    if sidecar.exists():
                        shutil.copy2(sidecar, copy.with_name(copy.name + suffix))
            except OSError as e:
                raise ImportSourceUnreadable(f"Cannot copy Launchpad database: {e}") from e

            try:
                with closing(sqlite3.connect(f"{copy.as_uri()}?mode=ro", uri=True)) as conn:
                    check_schema(conn)
                    result = self._read(conn)
            except sqlite3.Error as e:
                raise ImportSourceUnreadable(f"Cannot read Launchpad database: {e}") from e

        if not result.records:
            raise ImportSourceEmpty("No recognizable layout found in the Launchpad database")
        logger.info(f"Read {len(result.records)} apps from Launchpad ({result.skipped} skipped)")
        return result

    def _read(self, conn: sqlite3.Connection) -> ReadResult:
        rows = conn.execute("SELECT rowid, uuid, type, parent_id, ordering FROM items").fetchall()
        children: dict[int, list[tuple[int, int, int]]] = {}
        roots: list[tuple[int, str]] = []
        for rowid, uuid, kind, parent_id, ordering in rows:
            if kind == TYPE_ROOT:
                roots.append((rowid, uuid or ""))
            elif parent_id is not None:
                children.setdefault(parent_id, []).append((ordering or 0, rowid, kind))
        for entries in children.values():
            entries.sort()

        root = next((rowid for rowid, uuid in roots if uuid == "ROOTPAGE"), None)
        if root is None and roots:
            root = min(rowid for rowid, _uuid in roots)
        if root is None:
            raise ImportSourceUnreadable("Launchpad database has no root page")

        apps = {
            item_id: (title, bookmark)
            for item_id, title, bookmark in conn.execute(self._apps_query(conn))
        }
        groups = {item_id: title for item_id, title in conn.execute("SELECT item_id, title FROM groups")}

        result = ReadResult()
        pages = [rowid for _order, rowid, kind in children.get(root, []) if kind == TYPE_PAGE]
        for page_index, page_id in enumerate(pages):
            for _order, rowid, kind in children.get(page_id, []):
                if kind == TYPE_APP:
                    self._add_app(result, apps.get(rowid), page_index)
                elif kind == TYPE_FOLDER:
                    folder_key = f"native:{rowid}"
                    folder_name = groups.get(rowid)
                    for member_id in self._folder_apps(children, rowid):
                        self._add_app(result, apps.get(member_id), page_index, folder_key, folder_name)
        return result

    @staticmethod
    def _apps_query(conn: sqlite3.Connection) -> str:
        columns = {row[1] for row in conn.execute("PRAGMA table_info(apps)")}
        if "bookmark" in columns:
            return "SELECT item_id, title, bookmark FROM apps"
        return "SELECT item_id, title, NULL FROM apps"

    @staticmethod
    def _folder_apps(children: dict, folder_id: int) -> list[int]:
        """App rowids of a folder, walking its inner pages in order."""
        members: list[int] = []
        for _order, rowid, kind in children.get(folder_id, []):
            if kind == TYPE_APP:
                members.append(rowid)
            elif kind == TYPE_PAGE:
                members.extend(r for _o, r, k in children.get(rowid, []) if k == TYPE_APP)
        return members

    def _add_app(self, result: ReadResult, app, page_index: int,
                 folder_key: str | None = None, folder_name: str | None = None) -> None:
        if app is None:
            result.skipped += 1
            return
        title, bookmark = app
        path = self._resolve(title, bookmark)
        if path is None:
            logger.warning(f"Skipping Launchpad entry {title!r}: bundle not found")
            result.skipped += 1
            return
        name = (title or "").strip() or self.scanner.default_display_name(path)
        result.records.append(ImportedRecord(
            path=path,
            name=name,
            folder_key=folder_key,
            folder_name=folder_name,
            page=page_index,
        ))

    def _resolve(self, title, bookmark) -> str | None:
        path = path_from_bookmark(bookmark)
        if path and os.path.isdir(path):
            return canonical_path(path)
        if title:
            return self.scanner.find_bundle_named(title, self.sources)
        return None
