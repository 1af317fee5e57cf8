# LaunchGrid Package
"""
Layout and migration engine for a paged application-launcher grid.

Modules:
  - items: Item variants (app, missing app, folder, empty)
  - grid: Page operations (compact, insert, remove)
  - folders: Folder membership operations
  - engine: LaunchGrid, wiring every store together
  - services: Stores that own, persist and customize the layout,
    plus preferences, hotkeys and backups
  - migration: Launchpad and legacy archive importers
"""

__version__ = "0.1.0-dev"
