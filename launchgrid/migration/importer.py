"""
Import Service - Run importers off the interactive path.

Readers run on a single worker thread, so at most one import is in flight
and user edits are never blocked by file or database I/O. When a reader
finishes, its records are handed to the layout store, which merges them
into whatever the layout looks like at that moment and swaps the result
in at once. Every outcome, including failures, becomes an ImportResult.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from launchgrid.errors import ImportSourceEmpty, MigrationError
from launchgrid.migration.base import ImportResult, MigrationSource
from launchgrid.migration.legacy_archive import LegacyArchiveReader
from launchgrid.migration.native import NativeLaunchpadReader
from launchgrid.services.customization import CustomizationStore
from launchgrid.services.layout_store import LayoutStore
from launchgrid.services.scanner import AppScanner

ImportCallback = Callable[[ImportResult], None]


class ImportService:
    """
    Imports layouts from Launchpad or a legacy archive.

    Methods:
        import_native() / import_legacy_archive(path): Blocking imports
        start_native(callback) / start_legacy_archive(path, callback):
            Background imports; the callback receives the ImportResult
        shutdown(): Stop the worker thread
    """

    def __init__(self, store: LayoutStore, scanner: AppScanner, customization: CustomizationStore,
                 native_db_path: Optional[Path] = None):
        self.store = store
        self.scanner = scanner
        self.customization = customization
        self.native_db_path = Path(native_db_path) if native_db_path else None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="launchgrid-import")

    def native_reader(self) -> NativeLaunchpadReader:
        return NativeLaunchpadReader(self.scanner, self.customization.all_sources(), self.native_db_path)

    def legacy_reader(self, archive_path) -> LegacyArchiveReader:
        return LegacyArchiveReader(archive_path, self.scanner, self.customization.all_sources())

    def import_native(self) -> ImportResult:
        return self.run(self.native_reader())

    def import_legacy_archive(self, archive_path) -> ImportResult:
        return self.run(self.legacy_reader(archive_path))

    def start_native(self, callback: Optional[ImportCallback] = None) -> Future:
        return self._submit(self.native_reader(), callback)

    def start_legacy_archive(self, archive_path, callback: Optional[ImportCallback] = None) -> Future:
        return self._submit(self.legacy_reader(archive_path), callback)

    def _submit(self, source: MigrationSource, callback: Optional[ImportCallback]) -> Future:
        future = self._executor.submit(self.run, source)
        if callback is not None:
            future.add_done_callback(lambda done: callback(done.result()))
        return future

    def run(self, source: MigrationSource) -> ImportResult:
        """
        Read a source and merge it into the layout.

        The layout is touched only after the whole source has been read;
        any failure leaves it exactly as it was.
        """
        try:
            read = source.read()
        except ImportSourceEmpty as e:
            logger.warning(f"{source.name} import found nothing: {e}")
            return ImportResult.failure(str(e))
        except MigrationError as e:
            logger.warning(f"{source.name} import failed: {e}")
            return ImportResult.failure(str(e))
        except Exception:
            logger.exception(f"{source.name} import failed unexpectedly")
            return ImportResult.failure(f"Import from {source.name} failed")

        try:
            plan = self.store.apply_import(read.records)
        except Exception:
            logger.exception(f"Applying the {source.name} import failed")
            return ImportResult.failure(f"Import from {source.name} could not be applied")

        message = f"Imported {plan.imported_apps} apps and {plan.imported_folders} folders from {source.name}"
        if read.skipped:
            message += f"; skipped {read.skipped} apps that could not be found"
        logger.info(message)
        return ImportResult(
            success=True,
            message=message,
            imported_apps=plan.imported_apps,
            imported_folders=plan.imported_folders,
            skipped=read.skipped,
        )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
