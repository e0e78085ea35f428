from streetview_drive_migration.transfer.cancellation import CancellationToken, RunGuard
from streetview_drive_migration.transfer.geotag import Geotag
from streetview_drive_migration.transfer.orchestrator import TransferOrchestrator, TransferOutcome

__all__ = ['CancellationToken', 'RunGuard', 'Geotag', 'TransferOrchestrator', 'TransferOutcome']
