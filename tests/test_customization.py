"""
Tests for per-app customizations and the bundle scanner.

Uses real .app bundle directories and real images made with Pillow.
"""

import itertools
import os
import shutil

import pytest
from PIL import Image

from launchgrid.errors import InvalidInput, InvalidTitle, NotFound
from launchgrid.items import MissingAppItem
from launchgrid.services.customization import AppInfo, CustomizationStore
from launchgrid.services.scanner import AppScanner


@pytest.fixture
def store(tmp_path, apps_dir):
    return CustomizationStore(AppScanner(), tmp_path / "icons", builtin_sources=[apps_dir])


@pytest.fixture
def alpha(apps_dir):
    return str(apps_dir / "Alpha.app")


class TestScanner:
    """Test bundle enumeration and attribute reading."""

    def test_scan_finds_bundles_sorted(self, apps_dir):
        found = AppScanner().scan([apps_dir])
        assert [info.name for info in found] == ["Alpha", "Beta", "Gamma"]

    def test_scan_goes_one_level_deep(self, apps_dir, make_app):
        make_app("Terminal", root=apps_dir / "Utilities")
        names = [info.name for info in AppScanner().scan([apps_dir])]
        assert "Terminal" in names

    def test_missing_source_skipped(self, tmp_path):
        assert AppScanner().scan([tmp_path / "nowhere"]) == []

    def test_display_name_preferred(self, make_app):
        path = make_app("Calc", display_name="Calculator")
        assert AppScanner().default_display_name(path) == "Calculator"

    def test_icon_resolved_from_plist(self, make_app):
        path = make_app("Painter", icon=True)
        info = AppScanner().bundle_info(path)
        assert info.icon.endswith("Contents/Resources/AppIcon.icns")

    def test_bundle_without_plist_uses_stem(self, tmp_path):
        bundle = tmp_path / "Bare.app"
        bundle.mkdir()
        assert AppScanner().default_display_name(bundle) == "Bare"

    def test_find_bundle_named(self, apps_dir, make_app):
        expected = make_app("Terminal", root=apps_dir / "Utilities")
        assert AppScanner().find_bundle_named("Terminal", [apps_dir]) == expected
        assert AppScanner().find_bundle_named("Nope", [apps_dir]) is None


class TestCustomTitles:
    """Test title overrides."""

    def test_title_trimmed(self, store, alpha):
        assert store.set_custom_title(alpha, "  Work Alpha  ") == "Work Alpha"
        assert store.custom_title(alpha) == "Work Alpha"

    def test_empty_title_rejected(self, store, alpha):
        with pytest.raises(InvalidTitle):
            store.set_custom_title(alpha, "   ")

    def test_clear_without_override_succeeds(self, store, alpha):
        store.clear_custom_title(alpha)
        assert store.custom_title(alpha) is None

    def test_default_name_ignores_override(self, store, alpha):
        store.set_custom_title(alpha, "Renamed")
        assert store.default_display_name(alpha) == "Alpha"

    def test_paths_canonicalized(self, store, alpha):
        store.set_custom_title(alpha + "/", "Renamed")
        assert store.custom_title(alpha) == "Renamed"

    def test_clear_all_titles(self, store, alpha, apps_dir):
        store.set_custom_title(alpha, "One")
        store.set_custom_title(apps_dir / "Beta.app", "Two")
        store.clear_custom_titles()
        assert store.custom_titles() == {}


class TestHiddenApps:
    """Test the hidden set."""

    def test_hide_and_unhide(self, store, alpha):
        assert store.hide_app(alpha)
        assert not store.hide_app(alpha)
        assert store.is_hidden(alpha)
        assert store.unhide_app(alpha)
        assert not store.is_hidden(alpha)

    def test_clear_hidden_apps(self, store, alpha, apps_dir):
        store.hide_app(alpha)
        store.hide_app(apps_dir / "Beta.app")
        store.clear_hidden_apps()
        assert store.hidden_paths() == []

    def test_blank_record_dropped(self, store, alpha):
        store.hide_app(alpha)
        store.unhide_app(alpha)
        assert store.record(alpha) is None

    def test_operations_commute(self, tmp_path, apps_dir, alpha):
        operations = [
            lambda s: s.hide_app(alpha),
            lambda s: s.set_custom_title(alpha, "Renamed"),
            lambda s: s.unhide_app(apps_dir / "Beta.app"),
        ]
        outcomes = set()
        for order in itertools.permutations(operations):
            fresh = CustomizationStore(AppScanner(), tmp_path / "icons")
            fresh.hide_app(apps_dir / "Beta.app")
            for operation in order:
                operation(fresh)
            records, _sources = fresh.snapshot()
            outcomes.add(tuple(sorted((p, r.title, r.hidden) for p, r in records.items())))
        assert len(outcomes) == 1


class TestAppInfo:
    """Test lookups for present and missing apps."""

    def test_present_app(self, store, alpha):
        store.set_custom_title(alpha, "Renamed")
        info = store.app_info(alpha)
        assert info.name == "Renamed"
        assert info.default_name == "Alpha"
        assert info.available

    def test_missing_app_with_record(self, store, tmp_path):
        gone = str(tmp_path / "Applications" / "Gone.app")
        store.hide_app(gone)
        info = store.app_info(gone)
        assert info.default_name == "Gone"
        assert info.hidden
        assert not info.available

    def test_missing_app_with_layout_placeholder(self, store, tmp_path):
        gone = str(tmp_path / "Gone.app")
        placeholder = MissingAppItem(path=gone, name="Old Name")
        info = store.app_info(gone, last_known=placeholder)
        assert info.name == "Old Name"

    def test_unknown_app_raises(self, store, tmp_path):
        with pytest.raises(NotFound):
            store.app_info(tmp_path / "Nothing.app")

    def test_customization_survives_disappearance(self, store, make_app):
        path = make_app("Flaky")
        store.set_custom_title(path, "Still Here")
        shutil.rmtree(path)
        store.scanner.invalidate(path)
        assert store.app_info(path).name == "Still Here"
        make_app("Flaky")
        assert store.app_info(path).available


class TestCustomIcons:
    """Test icon import through Pillow."""

    def test_icon_scaled_to_png(self, store, alpha, png_file):
        stored = store.set_custom_icon(alpha, png_file)
        with Image.open(stored) as image:
            assert image.format == "PNG"
            assert max(image.size) <= 512
        assert store.app_info(alpha).icon == stored

    def test_non_image_rejected(self, store, alpha, tmp_path):
        bogus = tmp_path / "icon.png"
        bogus.write_text("not an image")
        with pytest.raises(InvalidInput):
            store.set_custom_icon(alpha, bogus)

    def test_unsupported_format_rejected(self, store, alpha, tmp_path):
        gif = tmp_path / "icon.gif"
        Image.new("RGB", (16, 16)).save(gif, format="GIF")
        with pytest.raises(InvalidInput):
            store.set_custom_icon(alpha, gif)

    def test_reset_removes_file(self, store, alpha, png_file):
        stored = store.set_custom_icon(alpha, png_file)
        assert store.reset_custom_icon(alpha)
        assert not store.reset_custom_icon(alpha)
        assert not os.path.exists(stored)


class TestSearch:
    """Test filtering of customization entries."""

    def entries(self):
        return [
            AppInfo(path="/Applications/Safari.app", name="Browser", default_name="Safari",
                    icon=None, hidden=True, available=True),
            AppInfo(path="/Applications/Mail.app", name="Mail", default_name="Mail",
                    icon=None, hidden=True, available=True),
        ]

    def test_matches_custom_or_default_name(self, store):
        assert [e.default_name for e in store.search(self.entries(), "safari")] == ["Safari"]
        assert [e.default_name for e in store.search(self.entries(), "BROWSER")] == ["Safari"]

    def test_matches_path(self, store):
        assert [e.name for e in store.search(self.entries(), "mail.app")] == ["Mail"]

    def test_fuzzy_match(self, store):
        results = store.search(self.entries(), "safrai")
        assert [e.default_name for e in results] == ["Safari"]

    def test_empty_query_returns_all(self, store):
        assert len(store.search(self.entries(), "  ")) == 2


class TestAppSources:
    """Test user-added scan directories."""

    def test_add_existing_directory(self, store, tmp_path):
        extra = tmp_path / "More"
        extra.mkdir()
        assert store.add_app_source(extra)
        assert not store.add_app_source(extra)
        assert str(extra) in store.all_sources()

    def test_builtin_or_missing_rejected(self, store, apps_dir, tmp_path):
        assert not store.add_app_source(apps_dir)
        assert not store.add_app_source(tmp_path / "nowhere")

    def test_remove_and_reset(self, store, tmp_path):
        extra = tmp_path / "More"
        extra.mkdir()
        store.add_app_source(extra)
        assert store.remove_app_source(extra)
        assert not store.remove_app_source(extra)
        store.add_app_source(extra)
        store.reset_app_sources()
        assert store.custom_sources() == []
