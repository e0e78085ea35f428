"""
Street View to Google Drive Migration Tool

Copies a user's Street View photos into a Google Drive folder, rewriting
each photo's EXIF GPS block from its published pose, with live progress
and cooperative cancellation.
"""
__version__ = "1.0.0"

# Import main classes for easy access
from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.exceptions import (
    MigrationError,
    ConfigurationError,
    AuthenticationError,
    TransferError,
    DownloadError,
    UploadError,
    MetadataError,
    NotFoundError,
    ValidationError,
    LedgerInvariantError,
)

__all__ = [
    '__version__',
    'MigrationConfig',
    'MigrationError',
    'ConfigurationError',
    'AuthenticationError',
    'TransferError',
    'DownloadError',
    'UploadError',
    'MetadataError',
    'NotFoundError',
    'ValidationError',
    'LedgerInvariantError',
]
