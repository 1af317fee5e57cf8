"""
Customization Store - Per-app overrides that live apart from the grid.

Each record is keyed by canonical app path and may hold:
  - a custom title (shown instead of the bundle name)
  - a custom icon (a PNG under <data_dir>/icons, recorded by file name)
  - a hidden flag (the view filters hidden apps; the grid keeps their slot)

Records survive the app disappearing and reappearing during a rescan, and
are deleted only by explicit user action. The store also owns the list of
user-added scan-source directories.
"""

import hashlib
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from loguru import logger
from PIL import Image, UnidentifiedImageError
from rapidfuzz import fuzz, process

from launchgrid.errors import InvalidInput, InvalidTitle, NotFound
from launchgrid.items import canonical_path
from launchgrid.services.scanner import AppScanner

ICON_FORMATS = {"ICNS", "PNG", "JPEG", "TIFF"}
ICON_MAX_SIZE = 512


@dataclass(frozen=True)
class CustomizationRecord:
    """Overrides for one app, keyed by canonical path."""
    path: str
    title: str | None = None
    icon: str | None = None
    hidden: bool = False
    known_name: str | None = None

    @property
    def is_blank(self) -> bool:
        return not self.title and not self.icon and not self.hidden


@dataclass(frozen=True)
class AppInfo:
    """What the settings UI shows for one app."""
    path: str
    name: str
    default_name: str
    icon: str | None
    hidden: bool
    available: bool
    custom_title: str | None = None


class CustomizationStore:
    """
    Stores custom titles, custom icons, hidden flags and app sources.

    Args:
        scanner: AppScanner used to read bundle names
        icons_dir: Directory where imported custom icons are written
        builtin_sources: Scan sources that always apply and cannot be removed
        fuzzy_threshold: Minimum rapidfuzz score for search() fuzzy hits
    """

    def __init__(self, scanner: AppScanner, icons_dir: Path, builtin_sources=(),
                 fuzzy_threshold: int = 70):
        self.scanner = scanner
        self.icons_dir = Path(icons_dir)
        self.builtin_sources = [canonical_path(p) for p in builtin_sources]
        self.fuzzy_threshold = fuzzy_threshold
        self.on_change: Callable[[], None] | None = None

        self._records: dict[str, CustomizationRecord] = {}
        self._sources: list[str] = []
        self._lock = threading.Lock()

    # ---- state --------------------------------------------------------

    def restore(self, records, sources) -> None:
        """Replace the whole state (used after loading the store)."""
        with self._lock:
            self._records = {r.path: r for r in records if not r.is_blank}
            self._sources = list(dict.fromkeys(canonical_path(s) for s in sources))

    def snapshot(self) -> tuple[dict[str, CustomizationRecord], list[str]]:
        """Copy of (records by path, custom app sources)."""
        with self._lock:
            return dict(self._records), list(self._sources)

    def record(self, path: str) -> CustomizationRecord | None:
        with self._lock:
            return self._records.get(canonical_path(path))

    def _update(self, path: str, **changes) -> CustomizationRecord | None:
        """Apply changes to a record, creating or dropping it as needed."""
        with self._lock:
            current = self._records.get(path)
            if current is None:
                current = CustomizationRecord(path=path, known_name=self._known_name(path))
            updated = replace(current, **changes)
            if updated.is_blank:
                self._records.pop(path, None)
            else:
                self._records[path] = updated
        self._changed()
        return None if updated.is_blank else updated

    def _known_name(self, path: str) -> str | None:
        info = self.scanner.bundle_info(path)
        return info.name if info is not None else None

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # ---- titles -------------------------------------------------------

    def set_custom_title(self, path: str, title: str) -> str:
        """
        Override an app's display name.

        Args:
            path: App path
            title: New title (whitespace is trimmed)

        Returns:
            The stored title

        Raises:
            InvalidTitle: Title is empty after trimming
        """
        trimmed = (title or "").strip()
        if not trimmed:
            raise InvalidTitle("Custom title cannot be empty")
        path = canonical_path(path)
        self._update(path, title=trimmed)
        logger.debug(f"Custom title for {path}: {trimmed!r}")
        return trimmed

    def clear_custom_title(self, path: str) -> None:
        """Remove a title override. Succeeds even if there was none."""
        path = canonical_path(path)
        if self.record(path) is None:
            return
        self._update(path, title=None)

    def custom_title(self, path: str) -> str | None:
        record = self.record(path)
        return record.title if record else None

    def custom_titles(self) -> dict[str, str]:
        with self._lock:
            return {p: r.title for p, r in self._records.items() if r.title}

    def clear_custom_titles(self) -> None:
        for path in list(self.custom_titles()):
            self._update(path, title=None)

    # ---- hidden apps --------------------------------------------------

    def hide_app(self, path: str) -> bool:
        """
        Hide an app from the rendered grid.

        Returns:
            True if the app was not hidden before
        """
        path = canonical_path(path)
        if self.is_hidden(path):
            return False
        self._update(path, hidden=True)
        logger.debug(f"Hid {path}")
        return True

    def unhide_app(self, path: str) -> bool:
        """
        Show a hidden app again in its original slot.

        Returns:
            True if the app was hidden before
        """
        path = canonical_path(path)
        if not self.is_hidden(path):
            return False
        self._update(path, hidden=False)
        return True

    def is_hidden(self, path: str) -> bool:
        record = self.record(path)
        return bool(record and record.hidden)

    def hidden_paths(self) -> list[str]:
        with self._lock:
            return sorted(p for p, r in self._records.items() if r.hidden)

    def clear_hidden_apps(self) -> None:
        for path in self.hidden_paths():
            self._update(path, hidden=False)

    # ---- icons --------------------------------------------------------

    def set_custom_icon(self, path: str, image_file: str | os.PathLike) -> str:
        """
        Use an image file as an app's icon.

        The image is validated with Pillow, scaled down to at most
        ICON_MAX_SIZE pixels and stored as PNG under icons_dir.

        Returns:
            Path of the stored PNG

        Raises:
            InvalidInput: File is missing or not an ICNS/PNG/JPEG/TIFF image
        """
        path = canonical_path(path)
        try:
            with Image.open(image_file) as image:
                if image.format not in ICON_FORMATS:
                    raise InvalidInput(f"Unsupported icon format: {image.format}")
                icon = image.convert("RGBA")
        except (OSError, UnidentifiedImageError) as e:
            raise InvalidInput(f"Cannot read icon image {image_file}: {e}") from e

        icon.thumbnail((ICON_MAX_SIZE, ICON_MAX_SIZE))
        self.icons_dir.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha1(path.encode("utf-8")).hexdigest()
        target = self.icons_dir / f"{digest}.png"
        icon.save(target, format="PNG")

        self._update(path, icon=target.name)
        logger.debug(f"Custom icon for {path} stored at {target}")
        return str(target)

    def reset_custom_icon(self, path: str) -> bool:
        """
        Drop an app's custom icon.

        Returns:
            True if a custom icon was removed
        """
        path = canonical_path(path)
        record = self.record(path)
        if record is None or not record.icon:
            return False
        try:
            os.remove(self.icon_file(record.icon))
        except FileNotFoundError:
            pass
        self._update(path, icon=None)
        return True

    def icon_file(self, name: str) -> Path:
        """Location of a stored custom icon (records keep only the file name)."""
        return self.icons_dir / name

    # ---- lookups ------------------------------------------------------

    def default_display_name(self, path: str) -> str:
        """Name from the bundle itself, never from the override store."""
        return self.scanner.default_display_name(path)

    def app_info(self, path: str, last_known=None) -> AppInfo:
        """
        Describe an app for the customization UI.

        Works for apps that are not on disk as long as a record or a
        last-known layout entry exists.

        Args:
            path: App path
            last_known: AppItem/MissingAppItem from the layout, if any

        Raises:
            NotFound: App is unknown to disk, the layout and this store
        """
        path = canonical_path(path)
        record = self.record(path)
        bundle = self.scanner.bundle_info(path)

        if bundle is not None:
            default_name = bundle.name
            icon = bundle.icon
        elif last_known is not None:
            default_name = last_known.name
            icon = last_known.icon
        elif record is not None:
            default_name = record.known_name or Path(path).stem
            icon = None
        else:
            raise NotFound(f"No app or customization for {path}")

        title = record.title if record else None
        return AppInfo(
            path=path,
            name=title or default_name,
            default_name=default_name,
            icon=(str(self.icon_file(record.icon)) if record and record.icon else icon),
            hidden=bool(record and record.hidden),
            available=bundle is not None,
            custom_title=title,
        )

    def search(self, entries: list[AppInfo], query: str) -> list[AppInfo]:
        """
        Filter app entries by custom name, default name or path.

        Case-insensitive substring hits come first (in the given order),
        followed by rapidfuzz matches scoring at least fuzzy_threshold.
        """
        q = (query or "").strip().casefold()
        if not q:
            return list(entries)

        hits = [e for e in entries
                if q in e.name.casefold() or q in e.default_name.casefold() or q in e.path.casefold()]
        seen = {e.path for e in hits}

        choices = {e.path: f"{e.name} {e.default_name}" for e in entries if e.path not in seen}
        by_path = {e.path: e for e in entries}
        for _matched, _score, path in process.extract(
            q, choices, scorer=fuzz.WRatio, limit=None, score_cutoff=self.fuzzy_threshold,
            processor=str.casefold,
        ):
            hits.append(by_path[path])
        return hits

    # ---- app sources --------------------------------------------------

    def custom_sources(self) -> list[str]:
        with self._lock:
            return list(self._sources)

    def all_sources(self) -> list[str]:
        return self.builtin_sources + [s for s in self.custom_sources() if s not in self.builtin_sources]

    def add_app_source(self, path: str) -> bool:
        """
        Add a directory to scan for apps.

        Returns:
            False if the directory does not exist, is builtin, or already added
        """
        try:
            path = canonical_path(path)
        except ValueError:
            return False
        if not os.path.isdir(path) or path in self.builtin_sources:
            return False
        with self._lock:
            if path in self._sources:
                return False
            self._sources.append(path)
        self._changed()
        logger.info(f"Added app source {path}")
        return True

    def remove_app_source(self, path: str) -> bool:
        path = canonical_path(path)
        with self._lock:
            if path not in self._sources:
                return False
            self._sources.remove(path)
        self._changed()
        return True

    def reset_app_sources(self) -> None:
        with self._lock:
            self._sources = []
        self._changed()
