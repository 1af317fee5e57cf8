"""
Import Merge - Fold imported records into an existing layout.

The merge never discards what the user already has:
  - imported apps already in the layout leave their old slot (which
    becomes Empty; a folder they emptied becomes Empty too)
  - imported records are laid out on fresh pages appended after the
    existing ones, in record order
  - records sharing a folder_key become one new folder, members in
    record order, placed where its first member appeared
  - a new page starts when the page hint changes or a page is full
Compaction and empty-page removal run over the combined result.

The merge is pure; the layout store swaps the result in.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from launchgrid import grid
from launchgrid.folders import default_folder_name
from launchgrid.items import AppItem, FolderItem, FolderMember, Item, MissingAppItem, Page
from launchgrid.migration.base import ImportedRecord


@dataclass
class MergePlan:
    """Result of merging records into a layout."""
    pages: list[Page]
    imported_apps: int
    imported_folders: int
    moved: int


def _dedupe(records) -> list[ImportedRecord]:
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.path in seen:
            continue
        seen.add(record.path)
        unique.append(record)
    return unique


def _existing_members(pages) -> dict[str, FolderMember]:
    found: dict[str, FolderMember] = {}
    for page in pages:
        for item in page:
            if isinstance(item, (AppItem, MissingAppItem)):
                found[item.path] = item
            elif isinstance(item, FolderItem):
                for member in item.apps:
                    found[member.path] = member
    return found


def merge_import(pages, records, capacity: int,
                 item_for: Optional[Callable[[ImportedRecord], FolderMember]] = None) -> MergePlan:
    """
    Merge imported records into a layout.

    Args:
        pages: Current pages
        records: ImportedRecord sequence in source order
        capacity: Maximum items per page
        item_for: Builds the grid item for a record; defaults to the
            layout's current item for that path, else a plain AppItem

    Returns:
        MergePlan with the new pages and counts
    """
    records = _dedupe(records)
    existing = _existing_members(pages)

    def build(record: ImportedRecord) -> FolderMember:
        if item_for is not None:
            return item_for(record)
        current = existing.get(record.path)
        if isinstance(current, AppItem):
            return current
        return AppItem(path=record.path, name=record.name)

    result = grid.copy_pages(pages)
    moved = 0
    for record in records:
        if grid.locate(result, record.path) is not None:
            result = grid.remove_app(result, record.path)
            moved += 1

    # Flat entries in record order: apps, or folder keys standing in for folders
    entries: list[tuple[Optional[int], object]] = []
    folder_members: dict[str, list[FolderMember]] = {}
    folder_names: dict[str, Optional[str]] = {}
    for record in records:
        item = build(record)
        key = record.folder_key
        if key is None:
            entries.append((record.page, item))
            continue
        if key not in folder_members:
            folder_members[key] = []
            folder_names[key] = record.folder_name
            entries.append((record.page, key))
        folder_members[key].append(item)

    new_pages: list[Page] = []
    current: Page = []
    current_hint: Optional[int] = None
    for hint, entry in entries:
        if isinstance(entry, str):
            members = folder_members[entry]
            name = (folder_names[entry] or "").strip() or default_folder_name(members)
            item: Item = FolderItem(name=name, apps=tuple(members))
        else:
            item = entry
        page_changed = current and hint is not None and current_hint is not None and hint != current_hint
        if current and (page_changed or len(current) >= capacity):
            new_pages.append(current)
            current = []
        if not current:
            current_hint = hint
        current.append(item)
    if current:
        new_pages.append(current)

    combined = grid.remove_empty_pages(grid.compact(result + new_pages))
    return MergePlan(
        pages=combined,
        imported_apps=len(records),
        imported_folders=len(folder_members),
        moved=moved,
    )
