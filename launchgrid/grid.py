"""
Grid/Page Manager - Arrange items into fixed-capacity pages.

Pages are plain lists of items. A page never holds more than `capacity`
items; pages created by overflow hold only what was placed on them, and
compaction keeps every page at its current length.

Every function here is pure: it copies the page list it is given and
returns a new one, so the layout store can swap the result in atomically.
"""

from dataclasses import dataclass

from launchgrid.errors import CapacityExceeded, InvalidInput, NotFound
from launchgrid.items import (
    AppItem,
    EmptyItem,
    FolderItem,
    Item,
    MissingAppItem,
    Page,
    is_empty,
    item_paths,
    unknown_item,
)


@dataclass(frozen=True)
class Location:
    """Where a path lives: a top-level slot, or a member of the folder in that slot."""
    page_index: int
    slot_index: int
    folder_id: str | None = None
    member_index: int | None = None

    @property
    def in_folder(self) -> bool:
        return self.folder_id is not None


def copy_pages(pages) -> list[Page]:
    """Shallow-copy pages so callers can mutate the result freely."""
    return [list(page) for page in pages]


def compact(pages) -> list[Page]:
    """
    Shift non-empty items to the front of each page.

    Folders that have lost every member count as gaps and become
    EmptyItem. Order among non-empty items is preserved and items never
    cross a page boundary. Each page keeps its length; trailing gaps are
    filled with EmptyItem (existing empty placeholders are reused so their
    ids stay stable).

    Args:
        pages: Sequence of pages

    Returns:
        New list of compacted pages
    """
    result: list[Page] = []
    for page in pages:
        filled = [item for item in page if not is_empty(item)]
        gaps = [item if isinstance(item, EmptyItem) else EmptyItem()
                for item in page if is_empty(item)]
        result.append(filled + gaps)
    return result


def remove_empty_pages(pages) -> list[Page]:
    """
    Drop pages whose every slot is empty.

    At least one page always remains: when every page is empty the first
    one is kept.
    """
    pages = copy_pages(pages)
    kept = [page for page in pages if not all(is_empty(item) for item in page)]
    if not kept:
        return pages[:1] or [[]]
    return kept


def all_paths(pages) -> list[str]:
    """Every app path in the layout, top-level and folder members, in grid order."""
    paths: list[str] = []
    for page in pages:
        for item in page:
            paths.extend(item_paths(item))
    return paths


def locate(pages, path: str) -> Location | None:
    """
    Find where a canonical path sits in the layout.

    Args:
        pages: Sequence of pages
        path: Canonical app path

    Returns:
        Location of the app, or None if it is not in the layout
    """
    for page_index, page in enumerate(pages):
        for slot_index, item in enumerate(page):
            if isinstance(item, (AppItem, MissingAppItem)):
                if item.path == path:
                    return Location(page_index, slot_index)
            elif isinstance(item, FolderItem):
                for member_index, member in enumerate(item.apps):
                    if member.path == path:
                        return Location(page_index, slot_index, item.id, member_index)
            elif isinstance(item, EmptyItem):
                continue
            else:
                unknown_item(item)
    return None


def locate_item(pages, item_id: str) -> tuple[int, int] | None:
    """Find the (page, slot) of a top-level item by its id."""
    for page_index, page in enumerate(pages):
        for slot_index, item in enumerate(page):
            if item.id == item_id:
                return page_index, slot_index
    return None


def _check_not_present(pages, item: Item) -> None:
    for path in item_paths(item):
        if locate(pages, path) is not None:
            raise InvalidInput(f"{path} is already in the layout")


def _page_has_room(page: Page, capacity: int) -> bool:
    return len(page) < capacity or any(isinstance(item, EmptyItem) for item in page)


def _nearest_empty(page: Page, slot_index: int) -> int | None:
    """Index of the closest EmptyItem, searching after the slot first."""
    for index in range(slot_index, len(page)):
        if isinstance(page[index], EmptyItem):
            return index
    for index in range(min(slot_index, len(page)) - 1, -1, -1):
        if isinstance(page[index], EmptyItem):
            return index
    return None


def _place(page: Page, item: Item, slot_index: int, capacity: int) -> None:
    """Put an item into a page that is known to have room."""
    slot_index = max(0, min(slot_index, len(page)))
    if slot_index < len(page) and isinstance(page[slot_index], EmptyItem):
        page[slot_index] = item
        return
    if len(page) < capacity:
        page.insert(slot_index, item)
        return
    empty_index = _nearest_empty(page, slot_index)
    if empty_index is None:
        raise CapacityExceeded("page is full")
    del page[empty_index]
    if empty_index < slot_index:
        slot_index -= 1
    page.insert(slot_index, item)


def insert(pages, item: Item, page_index: int, slot_index: int, capacity: int) -> list[Page]:
    """
    Place an item at a page and slot.

    An EmptyItem at the slot is replaced. On a full page an EmptyItem
    elsewhere on the page absorbs the shift. When the target page has no
    room at all and every page is full, a new page is created immediately
    after the target page holding the item.

    Args:
        pages: Sequence of pages
        item: Item to place
        page_index: Target page; len(pages) creates a new trailing page
        slot_index: Target slot within the page (clamped to the page)
        capacity: Maximum items per page

    Returns:
        New list of pages

    Raises:
        InvalidInput: Bad index, or the item's path is already in the layout
        CapacityExceeded: Target page is full while another page has room
    """
    if capacity < 1:
        raise InvalidInput("capacity must be positive")
    if not 0 <= page_index <= len(pages):
        raise InvalidInput(f"page index {page_index} out of range")
    _check_not_present(pages, item)

    pages = copy_pages(pages)
    if page_index == len(pages):
        pages.append([item])
        return pages

    target = pages[page_index]
    if _page_has_room(target, capacity):
        _place(target, item, slot_index, capacity)
        return pages

    if all(not _page_has_room(page, capacity) for page in pages):
        pages.insert(page_index + 1, [item])
        return pages

    raise CapacityExceeded(f"page {page_index} is full")


def append(pages, item: Item, capacity: int) -> list[Page]:
    """
    Place an item in the first free slot of the layout.

    Fills the first EmptyItem or the first short page; when every page is
    full a new trailing page is created.
    """
    _check_not_present(pages, item)
    pages = copy_pages(pages)
    for page in pages:
        for slot_index, existing in enumerate(page):
            if isinstance(existing, EmptyItem):
                page[slot_index] = item
                return pages
        if len(page) < capacity:
            page.append(item)
            return pages
    pages.append([item])
    return pages


def remove_app(pages, path: str) -> list[Page]:
    """
    Remove an app or missing-app placeholder from the layout.

    A top-level match becomes a fresh EmptyItem (new id, so views never
    confuse it with the slot's previous occupant). A folder member is
    dropped from its folder; a folder left with no members becomes a fresh
    EmptyItem.

    Raises:
        NotFound: Path is not in the layout
    """
    location = locate(pages, path)
    if location is None:
        raise NotFound(f"{path} is not in the layout")

    pages = copy_pages(pages)
    page = pages[location.page_index]
    if not location.in_folder:
        page[location.slot_index] = EmptyItem()
        return pages

    folder = page[location.slot_index]
    members = tuple(app for app in folder.apps if app.path != path)
    if members:
        page[location.slot_index] = FolderItem(name=folder.name, apps=members, id=folder.id)
    else:
        page[location.slot_index] = EmptyItem()
    return pages


def move_item(pages, item_id: str, page_index: int, slot_index: int, capacity: int) -> list[Page]:
    """
    Drag a top-level item to another slot.

    The source slot becomes an EmptyItem, then the item is placed with
    insert() semantics.

    Raises:
        NotFound: No top-level item has this id
    """
    source = locate_item(pages, item_id)
    if source is None:
        raise NotFound(f"No item with id {item_id}")
    src_page, src_slot = source
    if (src_page, src_slot) == (page_index, slot_index):
        return copy_pages(pages)

    pages = copy_pages(pages)
    item = pages[src_page][src_slot]
    pages[src_page][src_slot] = EmptyItem()
    return insert(pages, item, page_index, slot_index, capacity)


def replace_slot(pages, page_index: int, slot_index: int, item: Item) -> list[Page]:
    """Return pages with a single slot replaced."""
    pages = copy_pages(pages)
    pages[page_index][slot_index] = item
    return pages


def paginate(items: list[Item], capacity: int) -> list[Page]:
    """Split a flat item list into pages of at most `capacity` items."""
    return [list(items[start:start + capacity]) for start in range(0, len(items), capacity)]


def blank_page(capacity: int) -> Page:
    """A page of `capacity` empty slots."""
    return [EmptyItem() for _ in range(capacity)]
