"""
Per-user migration session: cached catalog, ledger, progress and run control.
"""
import logging
from typing import Dict, List, Optional, Sequence

from streetview_drive_migration.catalog.filters import (
    FilterResult,
    FilterSpec,
    Page,
    apply_filters,
    count_pose_attributes,
    paginate,
    sort_photos,
)
from streetview_drive_migration.catalog.ledger import SessionLedger
from streetview_drive_migration.config import TransferConfig
from streetview_drive_migration.exceptions import MigrationError
from streetview_drive_migration.models import Photo
from streetview_drive_migration.progress.state import ProgressState
from streetview_drive_migration.transfer.cancellation import CancellationToken, RunGuard
from streetview_drive_migration.transfer.orchestrator import TransferOrchestrator, TransferOutcome

logger = logging.getLogger(__name__)


class MigrationSession:
    """
    Everything one user's browser session works against.

    The orchestrator for this session is the only writer of its ledger and
    progress state; a RunGuard keeps that to one run at a time.
    """

    def __init__(self, source, store, injector,
                 progress: Optional[ProgressState] = None,
                 config: Optional[TransferConfig] = None):
        self.source = source
        self.store = store
        self.config = config or TransferConfig()
        self.progress = progress or ProgressState()
        self.token = CancellationToken()
        self.guard = RunGuard()
        self.orchestrator = TransferOrchestrator(
            source, store, injector, self.progress, self.token, self.guard
        )
        self.catalog: List[Photo] = []
        self.ledger = SessionLedger()
        self._catalog_loaded = False

    @property
    def running(self) -> bool:
        return self.guard.active

    @property
    def catalog_loaded(self) -> bool:
        return self._catalog_loaded

    def _list_source(self) -> List[Photo]:
        catalog: List[Photo] = []
        page_token = None
        logger.info("Fetching photo list...")
        while True:
            photos, page_token = self.source.list_all(page_token)
            catalog.extend(photos)
            if photos:
                logger.info(f"Found {len(catalog)} photos...")
            if not page_token:
                logger.info(f"Found {len(catalog)} total photos.")
                return catalog

    def load_catalog(self) -> SessionLedger:
        """
        Load the catalog (cached file first, source listing otherwise) and
        reconcile the ledger against the destination.
        """
        catalog = self.store.read_catalog()
        if catalog is None:
            logger.info("No cached catalog found, listing the photo source")
            catalog = self._list_source()
            self.store.write_catalog(catalog)
        self.catalog = list(catalog)
        self._catalog_loaded = True
        return self.reconcile()

    def ensure_catalog(self) -> SessionLedger:
        if not self._catalog_loaded:
            return self.load_catalog()
        return self.ledger

    def refresh_catalog(self) -> int:
        """
        Re-list the photo source and overwrite the cached catalog.

        Returns:
            Number of photos in the new catalog

        Raises:
            MigrationError: If a transfer is running
        """
        if self.running:
            raise MigrationError("Cannot refresh the catalog while a transfer is running.")
        catalog = self._list_source()
        self.store.write_catalog(catalog)
        self.catalog = list(catalog)
        self._catalog_loaded = True
        self.reconcile()
        logger.info(f"Catalog refreshed: {len(self.catalog)} photos")
        return len(self.catalog)

    def reconcile(self) -> SessionLedger:
        """Re-derive the ledger from the destination's actual listing."""
        if self.running:
            # The active run owns the ledger until it ends.
            return self.ledger
        existing = self.store.list_existing()
        self.ledger.partition_from(self.catalog, existing)
        return self.ledger

    def reserve_run(self) -> bool:
        """Claim this session's run slot ahead of a scheduled transfer."""
        return self.orchestrator.reserve()

    def release_run(self) -> None:
        self.orchestrator.release()

    def start_transfer(self, reserved: bool = False) -> TransferOutcome:
        """Transfer every photo currently in the missing set."""
        return self.orchestrator.run(self.ledger.missing, self.ledger, reserved=reserved)

    def transfer_one(self, photo_id: str, reserved: bool = False) -> TransferOutcome:
        """Force a re-transfer of one photo."""
        photo = self.ledger.find(photo_id)
        if photo is None:
            return self.orchestrator.report_not_found(photo_id, reserved=reserved)
        return self.orchestrator.run_single(photo, self.ledger, reserved=reserved)

    def cancel_transfer(self) -> None:
        self.orchestrator.cancel()

    def delete_files(self, file_ids: Sequence[str]) -> Dict[str, List[str]]:
        """
        Delete destination files one by one. Failures are logged and skipped.

        Returns:
            ``{"deleted": [...], "failed": [...]}``
        """
        deleted: List[str] = []
        failed: List[str] = []
        for file_id in file_ids:
            try:
                self.store.delete(file_id)
                deleted.append(file_id)
            except Exception as e:
                logger.error(f"Failed to delete file {file_id}: {e}", extra={'file_id': file_id})
                failed.append(file_id)
        logger.info(f"Deleted {len(deleted)} duplicate files, {len(failed)} failures")
        return {'deleted': deleted, 'failed': failed}

    def filter_catalog(self, spec: FilterSpec, sort_by: Optional[str] = None,
                       order: str = "desc") -> "CatalogView":
        """Filter and paginate the catalog against the current destination listing."""
        self.ensure_catalog()
        ledger = self.reconcile()
        transferred_names = ledger.transferred_names
        photos = sort_photos(self.catalog, sort_by, order) if sort_by else self.catalog
        result = apply_filters(photos, spec, transferred_names)
        page = paginate(result.photos, spec.page, self.config.page_size)
        return CatalogView(result=result, page=page, transferred_names=transferred_names)

    def destination_report(self) -> dict:
        self.ensure_catalog()
        return self.store.destination_report(self.catalog).to_dict()


class CatalogView:
    """Filtered, paginated listing plus the facet counts rendered next to it."""

    def __init__(self, result: FilterResult, page: Page, transferred_names):
        self.result = result
        self.page = page
        self.transferred_names = set(transferred_names)

    @property
    def pose_counts(self) -> Dict[str, Dict[str, int]]:
        return count_pose_attributes(self.result.status_filtered)
