"""
Item Model - The content of one launcher grid slot.

An item is exactly one of:
  - AppItem: an application bundle, identified by its canonical path
  - MissingAppItem: a known app whose bundle can no longer be resolved
  - FolderItem: a named, ordered group of apps (folders never nest)
  - EmptyItem: a placeholder that keeps page layouts stable

Items are immutable. Code that needs to handle every kind dispatches on
isinstance() and ends with unknown_item(), so adding a new kind to the
Item union surfaces every consumer that must be revisited.
"""

import os
import uuid
from dataclasses import dataclass, field, replace
from typing import NoReturn, Union


def canonical_path(path: str | os.PathLike) -> str:
    """
    Normalize a filesystem path for identity comparisons.

    Expands "~", makes the path absolute, collapses "." and ".." segments
    and drops any trailing slash. Two paths name the same app iff their
    canonical forms are equal.

    Args:
        path: Raw path (string or PathLike)

    Returns:
        Canonical path string
    """
    raw = os.fspath(path)
    if not raw or not raw.strip():
        raise ValueError("path must not be empty")
    expanded = os.path.expanduser(raw.strip())
    # normpath also strips the trailing slash
    return os.path.normpath(os.path.abspath(expanded))


def new_item_id() -> str:
    """Generate a unique identifier for empty slots and folders."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class AppItem:
    """An application bundle placed on the grid or inside a folder."""
    path: str
    name: str
    icon: str | None = None

    @property
    def id(self) -> str:
        return self.path


@dataclass(frozen=True)
class MissingAppItem:
    """Placeholder for an app whose bundle disappeared from disk."""
    path: str
    name: str
    icon: str | None = None

    @property
    def id(self) -> str:
        return f"missing:{self.path}"


FolderMember = Union[AppItem, MissingAppItem]


@dataclass(frozen=True)
class FolderItem:
    """A named folder of apps with a stable id independent of its name."""
    name: str
    apps: tuple[FolderMember, ...] = ()
    id: str = field(default_factory=new_item_id)

    def member_paths(self) -> list[str]:
        return [app.path for app in self.apps]

    def has_member(self, path: str) -> bool:
        return any(app.path == path for app in self.apps)


@dataclass(frozen=True)
class EmptyItem:
    """Unlabeled placeholder slot."""
    id: str = field(default_factory=new_item_id)


Item = Union[AppItem, MissingAppItem, FolderItem, EmptyItem]
Page = list[Item]


def unknown_item(item: object) -> NoReturn:
    """Raise for an object that is not one of the Item variants."""
    raise TypeError(f"Unknown item kind: {type(item).__name__}")


def is_empty(item: Item) -> bool:
    """Return True for EmptyItem and for folders that lost all members."""
    if isinstance(item, EmptyItem):
        return True
    if isinstance(item, FolderItem):
        return not item.apps
    if isinstance(item, (AppItem, MissingAppItem)):
        return False
    unknown_item(item)


def item_paths(item: Item) -> list[str]:
    """
    List every app path an item holds.

    Returns:
        [path] for apps and placeholders, member paths for folders,
        [] for empty slots
    """
    if isinstance(item, (AppItem, MissingAppItem)):
        return [item.path]
    if isinstance(item, FolderItem):
        return item.member_paths()
    if isinstance(item, EmptyItem):
        return []
    unknown_item(item)


def canonical_item(item: Item) -> Item:
    """Return the item with its path (or every member path) canonicalized."""
    if isinstance(item, (AppItem, MissingAppItem)):
        return replace(item, path=canonical_path(item.path))
    if isinstance(item, FolderItem):
        return replace(item, apps=tuple(canonical_item(app) for app in item.apps))
    if isinstance(item, EmptyItem):
        return item
    unknown_item(item)


def item_kind(item: Item) -> str:
    """Short kind tag used by persistence and logging."""
    if isinstance(item, AppItem):
        return "app"
    if isinstance(item, MissingAppItem):
        return "missing"
    if isinstance(item, FolderItem):
        return "folder"
    if isinstance(item, EmptyItem):
        return "empty"
    unknown_item(item)
