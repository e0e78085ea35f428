"""
Builds a MigrationSession wired to the Google adapters.
"""
import logging
from typing import Optional

from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.processor.exif_injector import ExifGeotagInjector
from streetview_drive_migration.progress.state import ProgressSink, ProgressState
from streetview_drive_migration.session import MigrationSession
from streetview_drive_migration.sources.streetview import StreetViewPhotoSource
from streetview_drive_migration.storage.drive_store import DriveObjectStore

logger = logging.getLogger(__name__)


def build_session(config: MigrationConfig, credentials,
                  sink: Optional[ProgressSink] = None) -> MigrationSession:
    """
    Create a session for one authenticated user.

    Args:
        config: Loaded configuration
        credentials: Authorized ``google.oauth2.credentials.Credentials``
        sink: Optional initial progress subscriber

    Returns:
        MigrationSession using Street View as source and Drive as store
    """
    source = StreetViewPhotoSource(
        credentials,
        page_size=config.transfer.source_page_size,
        timeout=config.transfer.download_timeout,
    )
    store = DriveObjectStore(
        credentials,
        folder_name=config.drive.folder_name,
        catalog_file_name=config.drive.catalog_file_name,
        chunk_size=config.drive.chunk_size,
    )
    injector = ExifGeotagInjector()
    logger.debug(f"Built session for Drive folder '{config.drive.folder_name}'")
    return MigrationSession(source, store, injector,
                            progress=ProgressState(sink), config=config.transfer)
