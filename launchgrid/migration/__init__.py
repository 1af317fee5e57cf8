# LaunchGrid Migration Package
"""
Importers that rebuild the layout from Launchpad or a legacy archive.

Readers produce ImportedRecord values; merge_import folds them into the
layout; ImportService (launchgrid.migration.importer) runs the whole
thing on a worker thread.
"""

from .base import ImportedRecord, ImportResult, MigrationSource, ReadResult
from .legacy_archive import LegacyArchiveReader
from .merge import MergePlan, merge_import
from .native import NativeLaunchpadReader

__all__ = [
    "ImportedRecord",
    "ImportResult",
    "LegacyArchiveReader",
    "MergePlan",
    "MigrationSource",
    "NativeLaunchpadReader",
    "ReadResult",
    "merge_import",
]
