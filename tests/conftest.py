"""
Shared test fixtures for the LaunchGrid test suite.

Provides fake application bundles, settings, Launchpad databases, legacy
archives and images that use real file I/O (no mocking of the filesystem).
"""

import copy
import plistlib
import sqlite3
from pathlib import Path

import pytest
from PIL import Image

from launchgrid.engine import LaunchGrid
from launchgrid.items import canonical_path
from launchgrid.utils.helpers import DEFAULT_SETTINGS


def write_bundle(root: Path, name: str, display_name: str | None = None, icon: bool = False) -> str:
    """Create <root>/<name>.app with an Info.plist; return its canonical path."""
    bundle = Path(root) / f"{name}.app"
    contents = bundle / "Contents"
    contents.mkdir(parents=True, exist_ok=True)
    plist = {"CFBundleName": name, "CFBundleIdentifier": f"com.example.{name.lower()}"}
    if display_name:
        plist["CFBundleDisplayName"] = display_name
    if icon:
        resources = contents / "Resources"
        resources.mkdir(exist_ok=True)
        (resources / "AppIcon.icns").write_bytes(b"icns")
        plist["CFBundleIconFile"] = "AppIcon"
    with open(contents / "Info.plist", "wb") as f:
        plistlib.dump(plist, f)
    return canonical_path(bundle)


@pytest.fixture
def make_app(tmp_path):
    """Factory creating fake .app bundles (default root: tmp/Applications)."""
    default_root = tmp_path / "Applications"

    def _make(name, root=None, display_name=None, icon=False):
        return write_bundle(root or default_root, name, display_name, icon)

    return _make


@pytest.fixture
def apps_dir(tmp_path):
    """Applications folder holding Alpha, Beta and Gamma."""
    root = tmp_path / "Applications"
    for name in ("Alpha", "Beta", "Gamma"):
        write_bundle(root, name)
    return root


@pytest.fixture
def settings(tmp_path, apps_dir):
    """Engine settings pointing every directory into tmp_path."""
    data = copy.deepcopy(DEFAULT_SETTINGS)
    data["storage"]["data_dir"] = str(tmp_path / "data")
    data["storage"]["config_dir"] = str(tmp_path / "config")
    data["storage"]["save_debounce_ms"] = 0
    data["scan"]["builtin_sources"] = [str(apps_dir)]
    return data


@pytest.fixture
def engine(settings):
    """An opened engine; closed after the test."""
    grid_engine = LaunchGrid.open(settings)
    yield grid_engine
    grid_engine.close()


NATIVE_SCHEMA = """
    CREATE TABLE items (
        rowid INTEGER PRIMARY KEY,
        uuid VARCHAR,
        flags INTEGER,
        type INTEGER,
        parent_id INTEGER NOT NULL,
        ordering INTEGER
    );
    CREATE TABLE apps (
        item_id INTEGER PRIMARY KEY,
        title VARCHAR,
        bundleid VARCHAR,
        bookmark BLOB
    );
    CREATE TABLE groups (
        item_id INTEGER PRIMARY KEY,
        category_id INTEGER,
        title VARCHAR
    );
"""


def write_native_db(path: Path, pages) -> Path:
    """
    Build a Launchpad-style database.

    Args:
        pages: List of pages; each entry is ("app", title, bundle_path) or
            ("folder", name, [(title, bundle_path), ...]). A bundle_path of
            None stores no bookmark.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(NATIVE_SCHEMA)
    next_id = [10]

    def add_item(kind, parent, ordering, uuid=None):
        rowid = next_id[0]
        next_id[0] += 1
        conn.execute(
            "INSERT INTO items (rowid, uuid, flags, type, parent_id, ordering) VALUES (?, ?, 0, ?, ?, ?)",
            (rowid, uuid or f"uuid-{rowid}", kind, parent, ordering),
        )
        return rowid

    def add_app(parent, ordering, title, bundle_path):
        rowid = add_item(4, parent, ordering)
        bookmark = b"book\x00\x00" + bundle_path.encode("utf-8") + b"\x00" if bundle_path else None
        conn.execute("INSERT INTO apps (item_id, title, bundleid, bookmark) VALUES (?, ?, ?, ?)",
                     (rowid, title, f"com.example.{title.lower()}", bookmark))

    conn.execute("INSERT INTO items (rowid, uuid, flags, type, parent_id, ordering) "
                 "VALUES (1, 'ROOTPAGE', 0, 1, 0, 0)")
    for page_order, page in enumerate(pages):
        page_id = add_item(3, 1, page_order)
        for order, entry in enumerate(page):
            if entry[0] == "app":
                add_app(page_id, order, entry[1], entry[2])
            else:
                folder_id = add_item(2, page_id, order)
                conn.execute("INSERT INTO groups (item_id, category_id, title) VALUES (?, NULL, ?)",
                             (folder_id, entry[1]))
                inner_page = add_item(3, folder_id, 0)
                for member_order, (title, bundle_path) in enumerate(entry[2]):
                    add_app(inner_page, member_order, title, bundle_path)
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def native_db(tmp_path):
    """Factory writing a Launchpad database at tmp/launchpad/db."""
    def _make(pages, path=None):
        return write_native_db(path or tmp_path / "launchpad" / "db", pages)
    return _make


LEGACY_SCHEMA = """
    CREATE TABLE ZGROUP (Z_PK INTEGER PRIMARY KEY, ZTITLE VARCHAR);
    CREATE TABLE ZITEM (Z_PK INTEGER PRIMARY KEY, ZTITLE VARCHAR, ZURL VARCHAR, ZGROUP INTEGER);
    CREATE TABLE ZORDER (Z_PK INTEGER PRIMARY KEY, ZENTITY VARCHAR, ZREF INTEGER, ZPAGE INTEGER, ZINDEX INTEGER);
"""


def write_legacy_db(path: Path, groups=(), items=(), orders=()) -> Path:
    """
    Build a legacy archive database.

    Args:
        groups: (pk, title) rows
        items: (pk, title, url, group_pk) rows
        orders: (entity, ref, page, index) rows
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(LEGACY_SCHEMA)
    conn.executemany("INSERT INTO ZGROUP (Z_PK, ZTITLE) VALUES (?, ?)", list(groups))
    conn.executemany("INSERT INTO ZITEM (Z_PK, ZTITLE, ZURL, ZGROUP) VALUES (?, ?, ?, ?)", list(items))
    conn.executemany("INSERT INTO ZORDER (ZENTITY, ZREF, ZPAGE, ZINDEX) VALUES (?, ?, ?, ?)", list(orders))
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def legacy_db(tmp_path):
    """Factory writing a bare legacy database at tmp/legacy/<name>."""
    def _make(name="layout.db", **tables):
        return write_legacy_db(tmp_path / "legacy" / name, **tables)
    return _make


@pytest.fixture
def png_file(tmp_path):
    """A real 1024x1024 PNG image."""
    path = tmp_path / "icon.png"
    Image.new("RGBA", (1024, 1024), (200, 30, 30, 255)).save(path, format="PNG")
    return path
