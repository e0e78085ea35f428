"""
Transfer orchestrator: moves photos from the photo source to the destination
store, rewriting their geotag on the way, one photo at a time.
"""
import logging
from enum import Enum
from typing import Optional, Sequence, Set

from streetview_drive_migration.catalog.ledger import Membership, SessionLedger
from streetview_drive_migration.exceptions import NotFoundError
from streetview_drive_migration.models import Photo
from streetview_drive_migration.progress.state import Phase, ProgressState
from streetview_drive_migration.protocols import MetadataInjector, ObjectStore, PhotoSource
from streetview_drive_migration.transfer.cancellation import CancellationToken, RunGuard
from streetview_drive_migration.transfer.geotag import Geotag

logger = logging.getLogger(__name__)

CANCELLING_MESSAGE = "Cancelling..."
REJECTED_MESSAGE = "A transfer is already in progress."


class TransferOutcome(Enum):
    """Terminal result of one orchestrator invocation."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REJECTED = "rejected"


class _Cancelled(Exception):
    """Internal signal used to leave the item loop."""


class TransferOrchestrator:
    """
    Drives a transfer run and reports it through a ProgressState.

    Items are processed strictly in order. Cancellation is checked before an
    item starts and again after its bytes are fetched; uploads are never
    interrupted. Neither ``run`` nor ``run_single`` raises: every failure
    ends in a FAILED terminal snapshot.
    """

    def __init__(self, source: PhotoSource, store: ObjectStore,
                 injector: MetadataInjector, progress: ProgressState,
                 token: Optional[CancellationToken] = None,
                 guard: Optional[RunGuard] = None):
        self.source = source
        self.store = store
        self.injector = injector
        self.progress = progress
        self.token = token or CancellationToken()
        self.guard = guard or RunGuard()

    def cancel(self) -> None:
        """Ask the active run to stop before its next item."""
        logger.info("Cancellation requested")
        self.token.cancel()

    @property
    def running(self) -> bool:
        return self.guard.active

    def reserve(self) -> bool:
        """
        Claim the run slot and clear the previous run's cancellation and progress.

        A cancel issued after this returns True applies to the reserved run,
        even if that run has not started yet. The holder must hand the slot
        to ``run``/``run_single`` with ``reserved=True`` or give it back with
        ``release``.

        Returns:
            False if another run holds the slot
        """
        if not self.guard.acquire():
            return False
        self._begin()
        return True

    def release(self) -> None:
        """Give back a slot taken by ``reserve`` without running."""
        self.guard.release()

    def run(self, targets: Sequence[Photo], ledger: SessionLedger,
            reserved: bool = False) -> TransferOutcome:
        """
        Transfer every target photo that is not already at the destination.

        Args:
            targets: Photos to transfer, in catalog order
            ledger: Session ledger updated as each photo completes
            reserved: True if the caller already holds the slot from ``reserve``

        Returns:
            Terminal outcome of the run
        """
        if not reserved and not self.reserve():
            logger.warning("Rejected transfer request: a run is already active")
            return TransferOutcome.REJECTED
        try:
            return self._terminate(lambda: self._run_batch(targets, ledger))
        finally:
            self.guard.release()

    def run_single(self, photo: Photo, ledger: SessionLedger,
                   reserved: bool = False) -> TransferOutcome:
        """
        Re-transfer one photo, overwriting any existing copy at the destination.

        Args:
            photo: Photo to transfer
            ledger: Session ledger updated on completion
            reserved: True if the caller already holds the slot from ``reserve``

        Returns:
            Terminal outcome of the run
        """
        if not reserved and not self.reserve():
            logger.warning("Rejected single transfer request: a run is already active")
            return TransferOutcome.REJECTED
        try:
            return self._terminate(lambda: self._run_one(photo, ledger))
        finally:
            self.guard.release()

    def report_not_found(self, photo_id: str, reserved: bool = False) -> TransferOutcome:
        """
        Publish a terminal error for a photo id absent from the ledger.

        A slot taken by ``reserve`` is released once the error is published.
        """
        if not reserved and self.guard.active:
            return TransferOutcome.REJECTED
        error = NotFoundError(photo_id)
        logger.error(str(error), extra={"photo_id": photo_id})
        try:
            self.progress.reset()
            self.progress.update(
                phase=Phase.FAILED,
                error=f"An error occurred: {error}",
                complete=True,
                in_progress=False,
            )
        finally:
            if reserved:
                self.guard.release()
        return TransferOutcome.FAILED

    def _begin(self) -> None:
        self.token.reset()
        self.progress.reset()
        self.progress.update(phase=Phase.RUNNING, in_progress=True)

    def _terminate(self, body) -> TransferOutcome:
        try:
            body()
        except _Cancelled:
            logger.info("Transfer cancelled")
            self.progress.update(complete=True, in_progress=False)
            return TransferOutcome.CANCELLED
        except Exception as e:
            logger.error(f"Transfer failed: {e}", exc_info=True)
            self.progress.update(
                phase=Phase.FAILED,
                error=f"An error occurred: {e}",
                complete=True,
                in_progress=False,
            )
            return TransferOutcome.FAILED
        return TransferOutcome.COMPLETED

    def _check_cancelled(self) -> None:
        if self.token.cancelled:
            self.progress.update(phase=Phase.CANCELLING, message=CANCELLING_MESSAGE)
            raise _Cancelled()

    def _run_batch(self, targets: Sequence[Photo], ledger: SessionLedger) -> None:
        existing: Set[str] = self.store.list_existing()

        already_transferred = ledger.transferred_count
        total_photo_count = already_transferred + len(targets)
        initial_progress = (
            round(already_transferred / total_photo_count * 100) if total_photo_count else 0
        )
        logger.info(f"Starting transfer of {len(targets)} photos "
                    f"({already_transferred} already transferred)")
        self.progress.update(
            message=f"Starting transfer of {len(targets)} photos to Google Drive...",
            total=len(targets),
            current=0,
            total_progress=initial_progress,
            transferred_count=ledger.transferred_count,
            missing_count=ledger.missing_count,
        )

        for index, photo in enumerate(targets):
            self._check_cancelled()

            done = already_transferred + index + 1
            file_name = photo.destination_name
            if file_name in existing:
                logger.info(f"Skipping existing file: {file_name}",
                            extra={"photo_id": photo.photo_id, "file_name": file_name})
                self.progress.update(
                    message=f"Skipping existing file: {file_name}",
                    current=index,
                    photo_id=photo.photo_id,
                    file_complete=False,
                )
                ledger.move_to_transferred(photo.photo_id)
                self._file_complete(ledger, round(done / total_photo_count * 100))
                continue

            self.progress.update(
                message=f"Processing photo {done} of {total_photo_count} ({file_name})...",
                current=index,
                photo_id=photo.photo_id,
                download_progress=0,
                upload_progress=0,
                file_complete=False,
            )
            self._transfer(photo, upsert=False)
            existing.add(file_name)
            ledger.move_to_transferred(photo.photo_id)
            self._file_complete(ledger, round(done / total_photo_count * 100))

        self.progress.update(
            phase=Phase.COMPLETED,
            message="All photos transferred successfully to Google Drive!",
            complete=True,
            in_progress=False,
        )

    def _run_one(self, photo: Photo, ledger: SessionLedger) -> None:
        file_name = photo.destination_name
        self.progress.update(
            message="Starting transfer of 1 photo to Google Drive...",
            total=1,
            current=0,
            total_progress=0,
        )
        self._check_cancelled()
        self.progress.update(
            message=f"Processing photo {file_name}...",
            photo_id=photo.photo_id,
            download_progress=0,
            upload_progress=0,
        )
        self._transfer(photo, upsert=True)
        if ledger.membership(photo.photo_id) is Membership.MISSING:
            ledger.move_to_transferred(photo.photo_id)
        self._file_complete(ledger, 100)
        self.progress.update(
            phase=Phase.COMPLETED,
            message="Photo transferred successfully to Google Drive!",
            complete=True,
            in_progress=False,
        )

    def _transfer(self, photo: Photo, upsert: bool) -> None:
        """Fetch, geotag and upload one photo."""
        file_name = photo.destination_name

        logger.debug(f"Fetching {file_name}")
        data = self.source.fetch(
            photo.download_url,
            lambda percentage: self.progress.update(download_progress=percentage),
        )
        # Fetched bytes are dropped if the run was cancelled meanwhile.
        self._check_cancelled()

        geotag = Geotag.from_pose(photo.pose)
        data = self.injector.inject(data, geotag)

        logger.debug(f"Uploading {file_name} ({len(data)} bytes)")
        write = self.store.upsert if upsert else self.store.create
        write(
            file_name,
            data,
            lambda percentage: self.progress.update(upload_progress=percentage),
        )
        logger.info(f"Transferred {file_name}", extra={"photo_id": photo.photo_id, "file_name": file_name})

    def _file_complete(self, ledger: SessionLedger, total_progress: int) -> None:
        self.progress.update(
            file_complete=True,
            transferred_count=ledger.transferred_count,
            missing_count=ledger.missing_count,
            total_progress=total_progress,
        )
