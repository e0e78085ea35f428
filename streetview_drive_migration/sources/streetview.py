"""
Street View Publish API integration for listing and downloading photos.
"""
import logging
from typing import List, Optional, Tuple

import requests
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from streetview_drive_migration.exceptions import AuthenticationError, DownloadError
from streetview_drive_migration.models import Photo
from streetview_drive_migration.protocols import ProgressCallback
from streetview_drive_migration.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class StreetViewPhotoSource:
    """
    Lists the authenticated user's Street View photos and downloads their bytes.

    Listing goes through the Street View Publish API; downloads use the
    short-lived ``downloadUrl`` returned with ``view=INCLUDE_DOWNLOAD_URL``
    and the user's bearer token.
    """

    def __init__(self, credentials, page_size: int = 100, timeout: float = 60.0,
                 service=None, http_session: Optional[requests.Session] = None):
        """
        Args:
            credentials: Authorized ``google.oauth2.credentials.Credentials``
            page_size: Photos requested per API page (the API caps this at 100)
            timeout: Download timeout in seconds
            service: Prebuilt API client, mainly for tests
            http_session: ``requests`` session used for downloads
        """
        self.credentials = credentials
        self.page_size = page_size
        self.timeout = timeout
        self.service = service or build(
            'streetviewpublish', 'v1', credentials=credentials, cache_discovery=False
        )
        self.http = http_session or requests.Session()

    @retry_with_backoff(max_retries=3, initial_delay=2.0)
    def _list_page(self, page_token: Optional[str]) -> dict:
        return self.service.photos().list(
            view='INCLUDE_DOWNLOAD_URL',
            pageSize=self.page_size,
            pageToken=page_token,
        ).execute()

    def list_all(self, page_token: Optional[str] = None) -> Tuple[List[Photo], Optional[str]]:
        """
        List one page of photos.

        Returns:
            (photos, next_page_token); the token is None on the last page

        Raises:
            AuthenticationError: On HTTP 401
            DownloadError: On any other API failure or a malformed listing
        """
        try:
            response = self._list_page(page_token)
        except HttpError as e:
            if e.resp.status == 401:
                raise AuthenticationError(
                    "Street View Publish API authentication failed. Please log in again."
                ) from e
            raise DownloadError(f"Failed to list Street View photos: HTTP {e.resp.status} - {e}") from e

        try:
            photos = [Photo.from_api(item) for item in response.get('photos', [])]
        except (KeyError, TypeError, AttributeError) as e:
            raise DownloadError(f"Malformed Street View photo listing: {e!r}") from e
        return photos, response.get('nextPageToken')

    @retry_with_backoff(max_retries=3, initial_delay=2.0)
    def _download(self, url: str, progress_callback: Optional[ProgressCallback]) -> bytes:
        headers = {'Authorization': f'Bearer {self.credentials.token}'}
        with self.http.get(url, headers=headers, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            total = int(response.headers.get('Content-Length') or 0)
            buffer = bytearray()
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if not chunk:
                    continue
                buffer.extend(chunk)
                if total and progress_callback:
                    progress_callback(min(100, round(len(buffer) * 100 / total)))
        return bytes(buffer)

    def fetch(self, url: str, progress_callback: Optional[ProgressCallback] = None) -> bytes:
        """
        Download a photo's image bytes.

        Raises:
            AuthenticationError: On HTTP 401
            DownloadError: On any other HTTP or network failure
        """
        if not url:
            raise DownloadError("Photo has no download URL")
        try:
            data = self._download(url, progress_callback)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                raise AuthenticationError("Photo download was not authorized. Please log in again.") from e
            raise DownloadError(f"Failed to download photo: HTTP {status} - {e}") from e
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download photo: {e}") from e

        if progress_callback:
            progress_callback(100)
        logger.debug(f"Downloaded {len(data) / 1024:.1f} KB")
        return data
