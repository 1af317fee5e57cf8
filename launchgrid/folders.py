"""
Folder Manager - Create, edit and dissolve folders of apps.

Folders live in a top-level slot and hold an ordered tuple of apps. An app
is either a folder member or a top-level item, never both; every function
here moves apps between the two places instead of copying them.

Membership edits are idempotent: adding a present member or removing an
absent one returns the layout unchanged.
"""

from launchgrid import grid
from launchgrid.errors import InvalidInput, InvalidTitle, NotFound
from launchgrid.items import EmptyItem, FolderItem, FolderMember, Page

DEFAULT_FOLDER_NAME = "Folder"


def default_folder_name(members) -> str:
    """Name a new folder after its first member."""
    for member in members:
        if member.name and member.name.strip():
            return member.name.strip()
    return DEFAULT_FOLDER_NAME


def find_folder(pages, folder_id: str) -> tuple[int, int, FolderItem]:
    """
    Locate a folder by id.

    Returns:
        Tuple of (page_index, slot_index, folder)

    Raises:
        NotFound: No folder has this id
    """
    for page_index, page in enumerate(pages):
        for slot_index, item in enumerate(page):
            if isinstance(item, FolderItem) and item.id == folder_id:
                return page_index, slot_index, item
    raise NotFound(f"No folder with id {folder_id}")


def create_folder(pages, paths: list[str], name: str | None = None,
                  folder_id: str | None = None) -> tuple[list[Page], FolderItem]:
    """
    Merge two or more top-level apps into a new folder.

    The folder takes the slot of the first path (the drop target); the
    other apps' slots become EmptyItem.

    Args:
        pages: Sequence of pages
        paths: Canonical paths of top-level apps, drop target first
        name: Folder name; defaults to the first member's name
        folder_id: Explicit id (a new one is generated otherwise)

    Returns:
        Tuple of (new pages, created folder)

    Raises:
        InvalidInput: Fewer than two distinct paths, or a path is a folder member
        NotFound: A path is not in the layout
    """
    unique = list(dict.fromkeys(paths))
    if len(unique) < 2:
        raise InvalidInput("A folder needs at least two distinct apps")

    locations = []
    for path in unique:
        location = grid.locate(pages, path)
        if location is None:
            raise NotFound(f"{path} is not in the layout")
        if location.in_folder:
            raise InvalidInput(f"{path} is already in a folder")
        locations.append(location)

    pages = grid.copy_pages(pages)
    members: list[FolderMember] = [pages[loc.page_index][loc.slot_index] for loc in locations]
    for location in locations[1:]:
        pages[location.page_index][location.slot_index] = EmptyItem()

    if name is not None and name.strip():
        folder_name = name.strip()
    else:
        folder_name = default_folder_name(members)
    kwargs = {"id": folder_id} if folder_id else {}
    folder = FolderItem(name=folder_name, apps=tuple(members), **kwargs)
    target = locations[0]
    pages[target.page_index][target.slot_index] = folder
    return pages, folder


def add_member(pages, folder_id: str, app: FolderMember) -> list[Page]:
    """
    Add an app to a folder.

    A top-level app leaves its slot (which becomes EmptyItem); a member of
    another folder leaves that folder. Adding a present member is a no-op.

    Raises:
        NotFound: No folder has this id
    """
    page_index, slot_index, folder = find_folder(pages, folder_id)
    if folder.has_member(app.path):
        return grid.copy_pages(pages)

    location = grid.locate(pages, app.path)
    if location is not None:
        if location.in_folder:
            current = pages[location.page_index][location.slot_index].apps[location.member_index]
        else:
            current = pages[location.page_index][location.slot_index]
        pages = grid.remove_app(pages, app.path)
        app = current

    pages = grid.copy_pages(pages)
    pages[page_index][slot_index] = FolderItem(name=folder.name, apps=folder.apps + (app,), id=folder.id)
    return pages


def remove_member(pages, folder_id: str, path: str, capacity: int) -> list[Page]:
    """
    Take an app out of a folder and put it back on the grid.

    The freed app fills the first EmptyItem (or a new slot at the end of
    the layout). Removing the last member turns the folder's slot into an
    EmptyItem first, so the app may land where the folder was. Removing an
    absent member is a no-op.

    Raises:
        NotFound: No folder has this id
    """
    page_index, slot_index, folder = find_folder(pages, folder_id)
    member = next((app for app in folder.apps if app.path == path), None)
    if member is None:
        return grid.copy_pages(pages)

    pages = grid.copy_pages(pages)
    remaining = tuple(app for app in folder.apps if app.path != path)
    if remaining:
        pages[page_index][slot_index] = FolderItem(name=folder.name, apps=remaining, id=folder.id)
    else:
        pages[page_index][slot_index] = EmptyItem()
    return grid.append(pages, member, capacity)


def rename_folder(pages, folder_id: str, name: str) -> list[Page]:
    """
    Rename a folder.

    Raises:
        InvalidTitle: Name is empty after trimming
        NotFound: No folder has this id
    """
    trimmed = (name or "").strip()
    if not trimmed:
        raise InvalidTitle("Folder name cannot be empty")
    page_index, slot_index, folder = find_folder(pages, folder_id)
    return grid.replace_slot(pages, page_index, slot_index,
                             FolderItem(name=trimmed, apps=folder.apps, id=folder.id))


def dissolve_folder(pages, folder_id: str, capacity: int) -> list[Page]:
    """
    Break a folder apart.

    The first member takes the folder's slot; the others are placed in
    the first free slots of the layout.
    """
    page_index, slot_index, folder = find_folder(pages, folder_id)
    if not folder.apps:
        return grid.replace_slot(pages, page_index, slot_index, EmptyItem())

    first, *rest = folder.apps
    pages = grid.replace_slot(pages, page_index, slot_index, first)
    for member in rest:
        pages = grid.append(pages, member, capacity)
    return pages


def folders_in(pages) -> list[FolderItem]:
    """Every folder in the layout, in grid order."""
    return [item for page in pages for item in page if isinstance(item, FolderItem)]


def replace_member(folder: FolderItem, member: FolderMember) -> FolderItem:
    """Return a copy of the folder with the member of the same path swapped."""
    apps = tuple(member if app.path == member.path else app for app in folder.apps)
    return FolderItem(name=folder.name, apps=apps, id=folder.id)
