# LaunchGrid Utilities Package
"""
Shared utility functions and helpers for the LaunchGrid engine.
"""

from .helpers import atomic_write_text, load_settings, resolve_dirs

__all__ = ["atomic_write_text", "load_settings", "resolve_dirs"]
