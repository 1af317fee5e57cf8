"""
Import Records - The shape every importer produces and every merge consumes.

Readers for different on-disk formats share nothing but these types:
a reader turns its source into a ReadResult of ImportedRecord values, and
the merge planner turns those records into pages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ImportedRecord:
    """One app found in an import source."""
    path: str                           # canonical bundle path
    name: str
    folder_key: Optional[str] = None    # records sharing a key form one folder
    folder_name: Optional[str] = None
    page: Optional[int] = None          # page-order hint from the source


@dataclass
class ReadResult:
    """Records read from a source plus the number of entries skipped."""
    records: list[ImportedRecord] = field(default_factory=list)
    skipped: int = 0


@dataclass(frozen=True)
class ImportResult:
    """User-facing outcome of an import."""
    success: bool
    message: str
    imported_apps: int = 0
    imported_folders: int = 0
    skipped: int = 0

    @classmethod
    def failure(cls, message: str) -> "ImportResult":
        return cls(success=False, message=message)


class MigrationSource(ABC):
    """Base class for import readers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable source name used in summaries."""
        ...

    @abstractmethod
    def read(self) -> ReadResult:
        """
        Read the source into import records.

        Raises:
            ImportSourceUnreadable: Source missing, locked or unrecognized
            ImportSourceEmpty: Source holds no usable entries
        """
        ...
