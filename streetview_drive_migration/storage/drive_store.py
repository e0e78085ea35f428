"""
Google Drive API integration for storing transferred photos.
"""
import io
import json
import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload, MediaIoBaseUpload

from streetview_drive_migration.exceptions import AuthenticationError, UploadError
from streetview_drive_migration.models import Photo
from streetview_drive_migration.protocols import ProgressCallback
from streetview_drive_migration.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = 'application/vnd.google-apps.folder'
JPEG_MIME_TYPE = 'image/jpeg'
JSON_MIME_TYPE = 'application/json'


def _quote(value: str) -> str:
    """Escape a literal for use inside a Drive query string."""
    return value.replace('\\', '\\\\').replace("'", "\\'")


@contextmanager
def _drive_errors(action: str) -> Iterator[None]:
    try:
        yield
    except HttpError as e:
        if e.resp.status == 401:
            raise AuthenticationError(
                "Google Drive API authentication failed. Please log in again."
            ) from e
        raise UploadError(f"Failed to {action}: HTTP {e.resp.status} - {e}") from e


@dataclass
class DestinationReport:
    """Files in the destination folder that do not line up one-to-one with the catalog."""
    file_count: int = 0
    drive_only: List[dict] = field(default_factory=list)
    duplicates: Dict[str, List[dict]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'fileCount': self.file_count,
            'driveOnlyCount': len(self.drive_only),
            'driveOnlyFiles': self.drive_only,
            'duplicateCount': len(self.duplicates),
            'duplicateFiles': self.duplicates,
        }


class DriveObjectStore:
    """
    Stores photos as files in one Google Drive folder.

    The folder is looked up by name on first use and created when missing.
    The folder also holds the cached catalog file, which is excluded from
    every listing of transferred photos.
    """

    def __init__(self, credentials=None, folder_name: str = "Google Street View Photos",
                 catalog_file_name: str = "streetview_photos.json",
                 chunk_size: int = 5 * 1024 * 1024, service=None):
        """
        Args:
            credentials: Authorized ``google.oauth2.credentials.Credentials``
            folder_name: Name of the destination folder
            catalog_file_name: Name of the cached catalog JSON file
            chunk_size: Resumable upload chunk size in bytes
            service: Prebuilt Drive API client, mainly for tests
        """
        self.folder_name = folder_name
        self.catalog_file_name = catalog_file_name
        self.chunk_size = chunk_size
        self.service = service or build('drive', 'v3', credentials=credentials, cache_discovery=False)
        self._folder: Optional[dict] = None

    @property
    def folder(self) -> dict:
        if self._folder is None:
            self._folder = self.find_or_create_folder()
        return self._folder

    @property
    def folder_id(self) -> str:
        return self.folder['id']

    @property
    def folder_link(self) -> Optional[str]:
        return self.folder.get('webViewLink')

    @retry_with_backoff(max_retries=3, initial_delay=2.0)
    def _list(self, **kwargs) -> dict:
        return self.service.files().list(spaces='drive', **kwargs).execute()

    def find_or_create_folder(self) -> dict:
        """Return the destination folder resource, creating it when absent."""
        query = (
            f"mimeType='{FOLDER_MIME_TYPE}' and name='{_quote(self.folder_name)}' "
            f"and trashed=false"
        )
        with _drive_errors(f"look up folder '{self.folder_name}'"):
            files = self._list(q=query, fields='files(id, name, webViewLink)').get('files', [])
            if files:
                return files[0]

            logger.info(f"Creating Google Drive folder '{self.folder_name}'")
            return self.service.files().create(
                body={'name': self.folder_name, 'mimeType': FOLDER_MIME_TYPE},
                fields='id, name, webViewLink',
            ).execute()

    def list_files(self) -> List[dict]:
        """Every non-folder file in the destination folder, following pagination."""
        query = (
            f"'{self.folder_id}' in parents and trashed=false "
            f"and mimeType != '{FOLDER_MIME_TYPE}'"
        )
        all_files: List[dict] = []
        page_token = None
        with _drive_errors("list destination files"):
            while True:
                results = self._list(
                    q=query,
                    fields='nextPageToken, files(id, name, mimeType, webViewLink)',
                    pageSize=1000,
                    pageToken=page_token,
                )
                all_files.extend(results.get('files', []))
                page_token = results.get('nextPageToken')
                if not page_token:
                    break
        logger.debug(f"Listed {len(all_files)} files in '{self.folder_name}'")
        return all_files

    def list_existing(self) -> Set[str]:
        """Names of the photos already stored, excluding the catalog file."""
        return {f['name'] for f in self.list_files() if f['name'] != self.catalog_file_name}

    def find_file(self, name: str) -> Optional[dict]:
        query = f"name='{_quote(name)}' and '{self.folder_id}' in parents and trashed=false"
        with _drive_errors(f"look up '{name}'"):
            files = self._list(q=query, fields='files(id, name)').get('files', [])
        return files[0] if files else None

    def _upload(self, request, progress_callback: Optional[ProgressCallback]) -> dict:
        response = None
        while response is None:
            status, response = request.next_chunk()
            if status and progress_callback:
                progress_callback(int(status.progress() * 100))
        if progress_callback:
            progress_callback(100)
        return response

    def _media(self, data: bytes, mime_type: str) -> MediaIoBaseUpload:
        return MediaIoBaseUpload(
            io.BytesIO(data), mimetype=mime_type, chunksize=self.chunk_size, resumable=True
        )

    def create(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None,
               mime_type: str = JPEG_MIME_TYPE) -> str:
        """
        Create a new file in the destination folder.

        Returns:
            Drive file id of the new file
        """
        with _drive_errors(f"upload '{name}'"):
            request = self.service.files().create(
                body={'name': name, 'parents': [self.folder_id]},
                media_body=self._media(data, mime_type),
                fields='id',
            )
            response = self._upload(request, progress_callback)
        logger.info(f"Uploaded {name} ({len(data) / 1024:.1f} KB)")
        return response['id']

    def update(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None,
               mime_type: str = JPEG_MIME_TYPE) -> str:
        """
        Replace the content of an existing file.

        Raises:
            UploadError: If no file called ``name`` exists in the folder
        """
        existing = self.find_file(name)
        if existing is None:
            raise UploadError(f"Cannot update '{name}': file not found in '{self.folder_name}'")
        return self._update_content(existing['id'], name, data, progress_callback, mime_type)

    def _update_content(self, file_id: str, name: str, data: bytes,
                        progress_callback: Optional[ProgressCallback], mime_type: str) -> str:
        with _drive_errors(f"update '{name}'"):
            request = self.service.files().update(
                fileId=file_id,
                media_body=self._media(data, mime_type),
                fields='id',
            )
            response = self._upload(request, progress_callback)
        logger.info(f"Updated {name} ({len(data) / 1024:.1f} KB)")
        return response.get('id', file_id)

    def upsert(self, name: str, data: bytes,
               progress_callback: Optional[ProgressCallback] = None,
               mime_type: str = JPEG_MIME_TYPE) -> str:
        """Update the file called ``name`` if it exists, create it otherwise."""
        existing = self.find_file(name)
        if existing is not None:
            return self._update_content(existing['id'], name, data, progress_callback, mime_type)
        return self.create(name, data, progress_callback, mime_type)

    def delete(self, file_id: str) -> None:
        with _drive_errors(f"delete file {file_id}"):
            self.service.files().delete(fileId=file_id).execute()
        logger.info(f"Deleted file {file_id}")

    def read_catalog(self) -> Optional[List[Photo]]:
        """
        Load the cached catalog file from the folder.

        Returns:
            The cached photos, or None when no cache exists or it is unreadable
        """
        catalog_file = self.find_file(self.catalog_file_name)
        if catalog_file is None:
            return None

        buffer = io.BytesIO()
        with _drive_errors(f"read '{self.catalog_file_name}'"):
            request = self.service.files().get_media(fileId=catalog_file['id'])
            downloader = MediaIoBaseDownload(buffer, request)
            done = False
            while not done:
                _, done = downloader.next_chunk()

        try:
            items = json.loads(buffer.getvalue().decode('utf-8'))
            return [Photo.from_api(item) for item in items]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable catalog cache '{self.catalog_file_name}': {e}")
            return None

    def write_catalog(self, photos: Sequence[Photo]) -> str:
        """Create or overwrite the cached catalog file."""
        body = json.dumps([p.to_api() for p in photos], indent=2).encode('utf-8')
        file_id = self.upsert(self.catalog_file_name, body, mime_type=JSON_MIME_TYPE)
        logger.info(f"Saved {len(photos)} photos to catalog cache")
        return file_id

    def destination_report(self, catalog: Sequence[Photo]) -> DestinationReport:
        """Find duplicate file names and files that match no catalog photo."""
        files = [f for f in self.list_files() if f['name'] != self.catalog_file_name]
        catalog_names = {p.destination_name for p in catalog}

        by_name: Dict[str, List[dict]] = defaultdict(list)
        for f in files:
            by_name[f['name']].append(f)

        return DestinationReport(
            file_count=len(files),
            drive_only=[f for f in files if f['name'] not in catalog_names],
            duplicates={name: group for name, group in by_name.items() if len(group) > 1},
        )
