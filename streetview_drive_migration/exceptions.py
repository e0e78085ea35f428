"""
Custom exceptions for the Street View to Google Drive migration tool.
"""


class MigrationError(Exception):
    """Base exception for migration errors."""
    pass


class ConfigurationError(MigrationError):
    """Error related to configuration."""
    pass


class AuthenticationError(MigrationError):
    """No valid credential for the session."""
    pass


class TransferError(MigrationError):
    """A capability call failed while a transfer was running."""
    pass


class DownloadError(TransferError):
    """Error while listing or fetching photos from the photo source."""
    pass


class UploadError(TransferError):
    """Error while writing to or deleting from the destination store."""
    pass


class MetadataError(TransferError):
    """Error while rewriting embedded image metadata."""
    pass


class NotFoundError(MigrationError):
    """Photo id is not part of the session's catalog."""

    def __init__(self, photo_id: str):
        super().__init__(f"Photo not found: {photo_id}")
        self.photo_id = photo_id


class ValidationError(MigrationError):
    """Malformed control-plane payload."""
    pass


class LedgerInvariantError(MigrationError):
    """The transferred/missing partition no longer covers the catalog exactly."""
    pass
