"""
Legacy Archive Import - Read layouts exported by the predecessor tool.

An archive is a single file whose format is detected from its first
bytes, not its extension (.lmy, .zip and .db are all seen in the wild):
  - ZIP: the first member that is a SQLite database is used
  - gzip: the decompressed payload must be a SQLite database
  - a bare SQLite database

The embedded database uses a Core Data style schema:
  - ZGROUP(Z_PK, ZTITLE): folders
  - ZITEM(Z_PK, ZTITLE, ZURL, ZGROUP): apps, ZGROUP set for folder members
  - ZORDER(ZENTITY, ZREF, ZPAGE, ZINDEX): placement of 'group' and 'item'
    rows; folder members have no page and are ordered by ZINDEX
"""

import gzip
import os
import shutil
import sqlite3
import tempfile
import zipfile
from contextlib import closing
from pathlib import Path
from urllib.parse import unquote, urlparse

from loguru import logger

from launchgrid.errors import ImportSourceEmpty, ImportSourceUnreadable
from launchgrid.items import canonical_path
from launchgrid.migration.base import ImportedRecord, MigrationSource, ReadResult
from launchgrid.services.scanner import AppScanner

ZIP_MAGIC = b"PK\x03\x04"
GZIP_MAGIC = b"\x1f\x8b"
SQLITE_MAGIC = b"SQLite format 3\x00"

REQUIRED_COLUMNS = {
    "ZGROUP": {"Z_PK", "ZTITLE"},
    "ZITEM": {"Z_PK", "ZTITLE", "ZURL", "ZGROUP"},
    "ZORDER": {"ZENTITY", "ZREF", "ZPAGE", "ZINDEX"},
}


def detect_format(path: Path) -> str:
    """
    Identify an archive by its leading bytes.

    Returns:
        "zip", "gzip" or "sqlite"

    Raises:
        ImportSourceUnreadable: File is unreadable or of another format
    """
    try:
        with open(path, "rb") as f:
            header = f.read(len(SQLITE_MAGIC))
    except OSError as e:
        raise ImportSourceUnreadable(f"Cannot open {path}: {e}") from e

    if header.startswith(ZIP_MAGIC):
        return "zip"
    if header.startswith(GZIP_MAGIC):
        return "gzip"
    if header.startswith(SQLITE_MAGIC):
        return "sqlite"
    raise ImportSourceUnreadable(f"{Path(path).name} is not a recognized layout archive")


def _extract_database(archive: Path, fmt: str, workdir: Path) -> Path:
    """Put the embedded SQLite database into workdir and return its path."""
    target = workdir / "legacy.db"
    if fmt == "sqlite":
        shutil.copyfile(archive, target)
        return target

    if fmt == "gzip":
        try:
            with gzip.open(archive, "rb") as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except (OSError, EOFError) as e:
            raise ImportSourceUnreadable(f"Cannot decompress {archive.name}: {e}") from e
        with open(target, "rb") as f:
            if f.read(len(SQLITE_MAGIC)) != SQLITE_MAGIC:
                raise ImportSourceUnreadable(f"{archive.name} does not contain a layout database")
        return target

    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                with zf.open(info) as member:
                    if member.read(len(SQLITE_MAGIC)) != SQLITE_MAGIC:
                        continue
                with zf.open(info) as member, open(target, "wb") as dst:
                    shutil.copyfileobj(member, dst)
                logger.debug(f"Using archive member {info.filename}")
                return target
    except zipfile.BadZipFile as e:
        raise ImportSourceUnreadable(f"{archive.name} is a damaged ZIP archive: {e}") from e
    raise ImportSourceUnreadable(f"{archive.name} does not contain a layout database")


def _path_from_url(url) -> str | None:
    if not url:
        return None
    url = str(url).strip()
    if url.startswith("file://"):
        url = unquote(urlparse(url).path)
    return url or None


class LegacyArchiveReader(MigrationSource):
    """
    Reads folders and apps from a legacy layout archive.

    Args:
        archive_path: The archive file chosen by the user
        scanner: Used to find bundles by title when ZURL is stale
        sources: Scan sources searched for bundles named after the title
    """

    def __init__(self, archive_path: Path, scanner: AppScanner, sources=()):
        self.archive_path = Path(archive_path)
        self.scanner = scanner
        self.sources = list(sources)

    @property
    def name(self) -> str:
        return "legacy archive"

    def read(self) -> ReadResult:
        if not self.archive_path.is_file():
            raise ImportSourceUnreadable(f"Archive not found: {self.archive_path}")

        fmt = detect_format(self.archive_path)
        logger.info(f"Reading {fmt} legacy archive {self.archive_path}")

        with tempfile.TemporaryDirectory(prefix="launchgrid-legacy-") as tmp:
            try:
                database = _extract_database(self.archive_path, fmt, Path(tmp))
                with closing(sqlite3.connect(f"{database.as_uri()}?mode=ro", uri=True)) as conn:
                    self._check_schema(conn)
                    result = self._read(conn)
            except (OSError, sqlite3.Error) as e:
                raise ImportSourceUnreadable(f"Cannot read {self.archive_path.name}: {e}") from e

        if not result.records:
            raise ImportSourceEmpty("No recognizable layout found in the selected archive")
        logger.info(f"Read {len(result.records)} apps from legacy archive ({result.skipped} skipped)")
        return result

    @staticmethod
    def _check_schema(conn: sqlite3.Connection) -> None:
        for table, columns in REQUIRED_COLUMNS.items():
            found = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
            missing = columns - found
            if missing:
                raise ImportSourceUnreadable(
                    f"Archive table {table} is missing columns: {', '.join(sorted(missing))}"
                )

    def _read(self, conn: sqlite3.Connection) -> ReadResult:
        groups = {pk: title for pk, title in conn.execute("SELECT Z_PK, ZTITLE FROM ZGROUP")}
        items = {
            pk: (title, url, group)
            for pk, title, url, group in conn.execute("SELECT Z_PK, ZTITLE, ZURL, ZGROUP FROM ZITEM")
        }

        top_level: list[tuple[str, int, int | None]] = []
        member_order: dict[int, int] = {}
        for entity, ref, page, index in conn.execute(
            "SELECT ZENTITY, ZREF, ZPAGE, ZINDEX FROM ZORDER ORDER BY ZPAGE, ZINDEX"
        ):
            entity = (entity or "").lower()
            if entity == "item" and page is None:
                member_order[ref] = index if index is not None else 0
            elif entity in ("group", "item"):
                top_level.append((entity, ref, page))

        members: dict[int, list[int]] = {}
        for pk, (_title, _url, group) in items.items():
            if group is not None:
                members.setdefault(group, []).append(pk)
        for pks in members.values():
            pks.sort(key=lambda pk: (member_order.get(pk, 0), pk))

        # Top-level items missing from ZORDER go last
        placed = {ref for entity, ref, _page in top_level if entity == "item"}
        for pk in sorted(items):
            if items[pk][2] is None and pk not in placed:
                top_level.append(("item", pk, None))

        result = ReadResult()
        for entity, ref, page in top_level:
            if entity == "group":
                if ref not in groups:
                    result.skipped += 1
                    continue
                for pk in members.get(ref, []):
                    self._add_item(result, items[pk], page, f"legacy:{ref}", groups[ref])
            else:
                item = items.get(ref)
                if item is None or item[2] is not None:
                    continue
                self._add_item(result, item, page)
        return result

    def _add_item(self, result: ReadResult, item, page, folder_key=None, folder_name=None) -> None:
        title, url, _group = item
        path = self._resolve(title, url)
        if path is None:
            logger.warning(f"Skipping archive entry {title!r}: bundle not found")
            result.skipped += 1
            return
        result.records.append(ImportedRecord(
            path=path,
            name=(title or "").strip() or self.scanner.default_display_name(path),
            folder_key=folder_key,
            folder_name=folder_name,
            page=page,
        ))

    def _resolve(self, title, url) -> str | None:
        path = _path_from_url(url)
        if path and os.path.isdir(path):
            return canonical_path(path)
        if title:
            return self.scanner.find_bundle_named(title, self.sources)
        return None
