"""
Error taxonomy for the LaunchGrid engine.

Layout mutations raise InvalidInput, CapacityExceeded or NotFound.
Loading the persisted store distinguishes a first run (NoExistingStore)
from an unreadable store (CorruptStore). Importers raise MigrationError
subclasses, which the import service turns into user-facing summaries.
"""


class LaunchGridError(Exception):
    """Base class for every error raised by the engine."""


class InvalidInput(LaunchGridError):
    """Rejected argument: empty title, duplicate path, bad index."""


class InvalidTitle(InvalidInput):
    """Title is empty after trimming whitespace."""


class CapacityExceeded(LaunchGridError):
    """Target page is full and no empty slot can absorb the insertion."""


class NotFound(LaunchGridError):
    """No item, folder or record matches the requested path or id."""


class StoreError(LaunchGridError):
    """Base class for persisted layout store failures."""


class NoExistingStore(StoreError):
    """No layout store on disk yet (first run)."""


class CorruptStore(StoreError):
    """A layout store exists but cannot be read."""


class MigrationError(LaunchGridError):
    """Base class for import/migration failures."""


class ImportSourceUnreadable(MigrationError):
    """Import source is missing, locked, or not in a recognized format."""


class ImportSourceEmpty(MigrationError):
    """Import source was read but contained no usable layout entries."""


class ValidationFailed(LaunchGridError):
    """A folder offered for data import is not a real export."""
