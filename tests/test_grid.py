"""
Tests for the item model and the page operations.

Pure functions on in-memory pages; no filesystem needed.
"""

import random

import pytest

from launchgrid import grid
from launchgrid.errors import CapacityExceeded, InvalidInput, NotFound
from launchgrid.items import (
    AppItem,
    EmptyItem,
    FolderItem,
    MissingAppItem,
    canonical_item,
    canonical_path,
    is_empty,
    item_kind,
    item_paths,
)


def app(name):
    return AppItem(path=f"/Applications/{name}.app", name=name)


def names(page):
    """Readable form of a page: app names, folder names, or 'E'."""
    return [item.name if not isinstance(item, EmptyItem) else "E" for item in page]


class TestCanonicalPath:
    """Test path normalization used for app identity."""

    def test_trailing_slash_removed(self):
        assert canonical_path("/Applications/Safari.app/") == "/Applications/Safari.app"

    def test_dot_segments_collapsed(self):
        assert canonical_path("/Applications/./Utilities/../Safari.app") == "/Applications/Safari.app"

    def test_home_expanded(self, monkeypatch):
        monkeypatch.setenv("HOME", "/Users/tester")
        assert canonical_path("~/Applications/Notes.app") == "/Users/tester/Applications/Notes.app"

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError):
            canonical_path("   ")


class TestItems:
    """Test item identity and dispatch helpers."""

    def test_app_identity_is_path(self):
        assert app("Mail").id == "/Applications/Mail.app"

    def test_missing_app_id_differs_from_app_id(self):
        missing = MissingAppItem(path="/Applications/Mail.app", name="Mail")
        assert missing.id != app("Mail").id

    def test_empty_items_get_unique_ids(self):
        assert EmptyItem().id != EmptyItem().id

    def test_folder_id_independent_of_name(self):
        first = FolderItem(name="Work")
        second = FolderItem(name="Work")
        assert first.id != second.id

    def test_empty_folder_counts_as_empty(self):
        assert is_empty(FolderItem(name="Gone"))
        assert not is_empty(FolderItem(name="Work", apps=(app("Mail"),)))

    def test_item_paths(self):
        folder = FolderItem(name="Work", apps=(app("Mail"), app("Notes")))
        assert item_paths(folder) == ["/Applications/Mail.app", "/Applications/Notes.app"]
        assert item_paths(EmptyItem()) == []

    def test_unknown_kind_raises(self):
        with pytest.raises(TypeError):
            item_kind("not an item")

    def test_canonical_item_normalizes_members(self):
        folder = FolderItem(name="Work", apps=(AppItem(path="/Applications/Mail.app/", name="Mail"),
                                               MissingAppItem(path="/Applications/./Old.app", name="Old")))
        normalized = canonical_item(folder)
        assert normalized.id == folder.id
        assert item_paths(normalized) == ["/Applications/Mail.app", "/Applications/Old.app"]
        assert canonical_item(AppItem(path="/Applications/Mail.app/", name="Mail")) == app("Mail")


class TestCompact:
    """Test in-page compaction."""

    def test_gaps_move_to_the_end(self):
        pages = [[app("A"), EmptyItem(), app("B"), EmptyItem(), app("C")]]
        assert names(grid.compact(pages)[0]) == ["A", "B", "C", "E", "E"]

    def test_page_length_preserved(self):
        pages = [[EmptyItem(), app("A")], [app("B")]]
        result = grid.compact(pages)
        assert [len(page) for page in result] == [2, 1]

    def test_items_never_cross_pages(self):
        pages = [[EmptyItem(), EmptyItem()], [app("A"), app("B")]]
        result = grid.compact(pages)
        assert names(result[0]) == ["E", "E"]
        assert names(result[1]) == ["A", "B"]

    def test_empty_folder_becomes_empty_slot(self):
        pages = [[FolderItem(name="Gone"), app("A")]]
        result = grid.compact(pages)
        assert names(result[0]) == ["A", "E"]
        assert isinstance(result[0][1], EmptyItem)

    def test_existing_empty_ids_kept(self):
        empty = EmptyItem()
        result = grid.compact([[empty, app("A")]])
        assert result[0][1].id == empty.id

    def test_input_not_mutated(self):
        pages = [[EmptyItem(), app("A")]]
        grid.compact(pages)
        assert isinstance(pages[0][0], EmptyItem)


class TestRemoveEmptyPages:
    """Test page removal after compaction."""

    def test_all_empty_pages_dropped(self):
        pages = [[app("A")], [EmptyItem(), EmptyItem()], [app("B")]]
        result = grid.remove_empty_pages(pages)
        assert [names(page) for page in result] == [["A"], ["B"]]

    def test_last_page_never_removed(self):
        pages = [[EmptyItem()], [EmptyItem()]]
        result = grid.remove_empty_pages(pages)
        assert len(result) == 1

    def test_no_pages_yields_one_page(self):
        assert grid.remove_empty_pages([]) == [[]]


class TestInsert:
    """Test placement rules and capacity handling."""

    def test_replaces_empty_slot(self):
        pages = [grid.blank_page(4)]
        result = grid.insert(pages, app("A"), 0, 2, capacity=4)
        assert names(result[0]) == ["E", "E", "A", "E"]

    def test_short_page_inserts_at_slot(self):
        pages = [[app("A"), app("B")]]
        result = grid.insert(pages, app("C"), 0, 1, capacity=4)
        assert names(result[0]) == ["A", "C", "B"]

    def test_full_page_consumes_nearest_empty(self):
        pages = [[app("A"), EmptyItem(), app("B")]]
        result = grid.insert(pages, app("X"), 0, 2, capacity=3)
        assert names(result[0]) == ["A", "X", "B"]
        assert len(result[0]) == 3

    def test_empty_after_slot_preferred(self):
        pages = [[EmptyItem(), app("A"), app("B"), EmptyItem()]]
        result = grid.insert(pages, app("X"), 0, 1, capacity=4)
        assert names(result[0]) == ["E", "X", "A", "B"]

    def test_all_full_creates_page_after_target(self):
        pages = [[app("A"), app("B")], [app("C"), app("D")]]
        result = grid.insert(pages, app("X"), 0, 1, capacity=2)
        assert [names(page) for page in result] == [["A", "B"], ["X"], ["C", "D"]]

    def test_full_page_with_room_elsewhere_raises(self):
        pages = [[app("A"), app("B")], [app("C")]]
        with pytest.raises(CapacityExceeded):
            grid.insert(pages, app("X"), 0, 0, capacity=2)

    def test_page_index_past_end_creates_page(self):
        pages = [[app("A")]]
        result = grid.insert(pages, app("B"), 1, 0, capacity=4)
        assert [names(page) for page in result] == [["A"], ["B"]]

    def test_bad_page_index_rejected(self):
        with pytest.raises(InvalidInput):
            grid.insert([[app("A")]], app("B"), 5, 0, capacity=4)

    def test_duplicate_path_rejected(self):
        pages = [[FolderItem(name="F", apps=(app("A"),))]]
        with pytest.raises(InvalidInput):
            grid.insert(pages, app("A"), 0, 1, capacity=4)

    def test_capacity_never_exceeded(self):
        pages = [grid.blank_page(3)]
        for index, name in enumerate("ABCDEFG"):
            pages = grid.insert(pages, app(name), len(pages) - 1, index, capacity=3)
        assert all(len(page) <= 3 for page in pages)
        assert sorted(grid.all_paths(pages)) == sorted(app(n).path for n in "ABCDEFG")


class TestAppend:
    """Test first-free-slot placement."""

    def test_fills_first_empty(self):
        pages = [[app("A"), EmptyItem()], [EmptyItem()]]
        result = grid.append(pages, app("B"), capacity=2)
        assert names(result[0]) == ["A", "B"]

    def test_new_page_when_full(self):
        result = grid.append([[app("A")]], app("B"), capacity=1)
        assert [names(page) for page in result] == [["A"], ["B"]]


class TestRemoveApp:
    """Test removal by canonical path."""

    def test_top_level_becomes_fresh_empty(self):
        target = app("A")
        result = grid.remove_app([[target, app("B")]], target.path)
        assert isinstance(result[0][0], EmptyItem)
        assert result[0][0].id != target.id

    def test_folder_member_removed(self):
        folder = FolderItem(name="F", apps=(app("A"), app("B")))
        result = grid.remove_app([[folder]], app("A").path)
        assert result[0][0].member_paths() == [app("B").path]
        assert result[0][0].id == folder.id

    def test_last_member_leaves_one_empty(self):
        folder = FolderItem(name="F", apps=(app("A"),))
        result = grid.remove_app([[app("X"), folder]], app("A").path)
        assert isinstance(result[0][1], EmptyItem)
        assert not any(isinstance(item, FolderItem) for page in result for item in page)

    def test_missing_placeholder_removed(self):
        missing = MissingAppItem(path="/Applications/Old.app", name="Old")
        result = grid.remove_app([[missing]], missing.path)
        assert isinstance(result[0][0], EmptyItem)

    def test_absent_path_raises(self):
        with pytest.raises(NotFound):
            grid.remove_app([[app("A")]], "/Applications/Nope.app")


class TestMoveItem:
    """Test drag repositioning."""

    def test_move_to_empty_slot(self):
        pages = [[app("A"), app("B"), EmptyItem()]]
        result = grid.move_item(pages, app("A").id, 0, 2, capacity=3)
        assert names(result[0]) == ["E", "B", "A"]

    def test_move_across_pages(self):
        pages = [[app("A"), app("B")], [app("C")]]
        result = grid.move_item(pages, app("A").id, 1, 0, capacity=2)
        assert names(result[0]) == ["E", "B"]
        assert names(result[1]) == ["A", "C"]

    def test_unknown_id_raises(self):
        with pytest.raises(NotFound):
            grid.move_item([[app("A")]], "nope", 0, 0, capacity=2)


class TestScenarios:
    """End-to-end page sequences."""

    def test_fill_overflow_remove_compact(self):
        a, b, c, d, e = (app(n) for n in "ABCDE")
        pages = [grid.blank_page(4)]
        for slot, item in enumerate((a, b, c, d)):
            pages = grid.insert(pages, item, 0, slot, capacity=4)
        assert names(pages[0]) == ["A", "B", "C", "D"]

        pages = grid.insert(pages, e, 0, 3, capacity=4)
        assert len(pages) == 2
        assert names(pages[1]) == ["E"]

        pages = grid.remove_app(pages, b.path)
        pages = grid.remove_empty_pages(grid.compact(pages))
        assert names(pages[0]) == ["A", "C", "D", "E"]
        assert isinstance(pages[0][3], EmptyItem)
        assert names(pages[1]) == ["E"]
        assert pages[1][0] == e

    @pytest.mark.parametrize("seed", range(20))
    def test_compaction_leaves_no_inner_gaps(self, seed):
        rng = random.Random(seed)
        capacity = 4
        pages = [grid.blank_page(capacity)]
        present: list[AppItem] = []
        for step in range(40):
            if present and rng.random() < 0.4:
                victim = present.pop(rng.randrange(len(present)))
                pages = grid.remove_app(pages, victim.path)
            else:
                item = app(f"App{step}")
                page_index = rng.randrange(len(pages) + 1)
                try:
                    pages = grid.insert(pages, item, page_index, rng.randrange(capacity), capacity)
                except CapacityExceeded:
                    pages = grid.append(pages, item, capacity)
                present.append(item)

        result = grid.remove_empty_pages(grid.compact(pages))
        assert len(result) >= 1
        for page in result:
            kinds = [is_empty(item) for item in page]
            assert kinds == sorted(kinds)
            assert len(page) <= capacity
        assert sorted(grid.all_paths(result)) == sorted(item.path for item in present)
