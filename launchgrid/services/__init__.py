# LaunchGrid Services Package
"""
Stateful services of the LaunchGrid engine.

Services own the layout, persist it, scan for bundles, and hold per-app
customizations, preferences and the global hotkey.
"""

from .customization import CustomizationStore
from .hotkeys import HotkeyRegistry
from .layout_store import LayoutStore
from .persistence import PersistenceStore
from .preferences import Preferences
from .scanner import AppScanner

__all__ = [
    "AppScanner",
    "CustomizationStore",
    "HotkeyRegistry",
    "LayoutStore",
    "PersistenceStore",
    "Preferences",
]
