"""
App Scanner - Enumerate application bundles in scan-source directories.

A bundle is a directory ending in ".app". Its display name and icon come
from Contents/Info.plist:
  - name: CFBundleDisplayName, then CFBundleName, then the bundle's file stem
  - icon: CFBundleIconFile resolved inside Contents/Resources

Attributes are cached per bundle and re-read only when Info.plist changes.
Sources are scanned one level deep so that folders such as
/Applications/Utilities are covered.
"""

import os
import plistlib
import threading
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from launchgrid.items import AppItem, canonical_path

BUNDLE_SUFFIX = ".app"


@dataclass(frozen=True)
class BundleInfo:
    """Attributes read from an application bundle."""
    path: str
    name: str
    icon: str | None = None

    def to_item(self) -> AppItem:
        return AppItem(path=self.path, name=self.name, icon=self.icon)


class AppScanner:
    """
    Scans source directories for application bundles.

    Methods:
        scan(sources): All bundles found in the given directories
        bundle_info(path): Cached attributes of one bundle, or None
        default_display_name(path): Bundle name, ignoring any override
        find_bundle_named(name, sources): Locate "<name>.app" in the sources
    """

    def __init__(self):
        self._cache: dict[str, tuple[float, BundleInfo]] = {}
        self._lock = threading.Lock()

    def scan(self, sources) -> list[BundleInfo]:
        """
        Enumerate bundles in the given source directories.

        Missing sources are skipped. Results are deduplicated by canonical
        path and keep the order in which they were found (sources in order,
        entries sorted by name).

        Args:
            sources: Iterable of directory paths

        Returns:
            List of BundleInfo
        """
        found: list[BundleInfo] = []
        seen: set[str] = set()

        for source in sources:
            try:
                root = canonical_path(source)
            except ValueError:
                continue
            if not os.path.isdir(root):
                logger.debug(f"Skipping missing scan source {root}")
                continue

            for bundle_path in self._bundles_in(root):
                if bundle_path in seen:
                    continue
                info = self.bundle_info(bundle_path)
                if info is not None:
                    seen.add(bundle_path)
                    found.append(info)

        logger.debug(f"Scanned {len(found)} bundles")
        return found

    def _bundles_in(self, root: str) -> list[str]:
        bundles: list[str] = []
        try:
            entries = sorted(os.scandir(root), key=lambda e: e.name.casefold())
        except OSError:
            logger.warning(f"Cannot read scan source {root}")
            return bundles

        for entry in entries:
            if not entry.is_dir():
                continue
            if entry.name.endswith(BUNDLE_SUFFIX):
                bundles.append(canonical_path(entry.path))
                continue
            # One level of subfolders (e.g. /Applications/Utilities)
            try:
                children = sorted(os.scandir(entry.path), key=lambda e: e.name.casefold())
            except OSError:
                continue
            for child in children:
                if child.is_dir() and child.name.endswith(BUNDLE_SUFFIX):
                    bundles.append(canonical_path(child.path))
        return bundles

    def bundle_info(self, path: str) -> BundleInfo | None:
        """
        Read (or return cached) attributes of a bundle.

        Args:
            path: Bundle path (canonicalized here)

        Returns:
            BundleInfo, or None if the bundle does not exist
        """
        path = canonical_path(path)
        if not os.path.isdir(path):
            return None

        plist_path = os.path.join(path, "Contents", "Info.plist")
        try:
            mtime = os.path.getmtime(plist_path)
        except OSError:
            mtime = 0.0

        with self._lock:
            cached = self._cache.get(path)
            if cached is not None and cached[0] == mtime:
                return cached[1]

        info = self._read_bundle(path, plist_path)
        with self._lock:
            self._cache[path] = (mtime, info)
        return info

    def _read_bundle(self, path: str, plist_path: str) -> BundleInfo:
        fallback = Path(path).stem
        plist: dict = {}
        if os.path.exists(plist_path):
            try:
                with open(plist_path, "rb") as f:
                    loaded = plistlib.load(f)
                if isinstance(loaded, dict):
                    plist = loaded
            except (OSError, plistlib.InvalidFileException, ValueError):
                logger.warning(f"Unreadable Info.plist in {path}")

        name = fallback
        for key in ("CFBundleDisplayName", "CFBundleName"):
            value = plist.get(key)
            if isinstance(value, str) and value.strip():
                name = value.strip()
                break

        return BundleInfo(path=path, name=name, icon=self._icon_path(path, plist))

    def _icon_path(self, path: str, plist: dict) -> str | None:
        icon_file = plist.get("CFBundleIconFile")
        if not isinstance(icon_file, str) or not icon_file.strip():
            return None
        icon_file = icon_file.strip()
        if not os.path.splitext(icon_file)[1]:
            icon_file += ".icns"
        icon_path = os.path.join(path, "Contents", "Resources", icon_file)
        return icon_path if os.path.exists(icon_path) else None

    def default_display_name(self, path: str) -> str:
        """
        Name of the app as its bundle declares it.

        Falls back to the bundle's file stem when the bundle is gone.
        """
        info = self.bundle_info(path)
        if info is not None:
            return info.name
        return Path(canonical_path(path)).stem

    def find_bundle_named(self, name: str, sources) -> str | None:
        """
        Find "<name>.app" directly inside (or one level below) a source.

        Returns:
            Canonical bundle path, or None
        """
        if not name or not name.strip():
            return None
        bundle_name = name.strip() + BUNDLE_SUFFIX
        for source in sources:
            try:
                root = canonical_path(source)
            except ValueError:
                continue
            candidate = os.path.join(root, bundle_name)
            if os.path.isdir(candidate):
                return canonical_path(candidate)
            for bundle_path in self._bundles_in(root) if os.path.isdir(root) else []:
                if os.path.basename(bundle_path) == bundle_name:
                    return bundle_path
        return None

    def invalidate(self, path: str | None = None) -> None:
        """Drop cached attributes for one bundle, or for all bundles."""
        with self._lock:
            if path is None:
                self._cache.clear()
            else:
                self._cache.pop(canonical_path(path), None)
