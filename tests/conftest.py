"""
Pytest configuration and shared fixtures.
"""
from typing import Dict, List, Optional
from unittest.mock import Mock

import httplib2
import pytest
import yaml
from googleapiclient.errors import HttpError

from streetview_drive_migration.exceptions import DownloadError, UploadError
from streetview_drive_migration.models import Photo, Pose
from streetview_drive_migration.progress.state import ProgressState
from streetview_drive_migration.storage.drive_store import DestinationReport


def http_error(status: int, reason: str = 'error') -> HttpError:
    """Build a googleapiclient HttpError carrying the given status."""
    resp = httplib2.Response({'status': status, 'reason': reason})
    return HttpError(resp, reason.encode('utf-8'))


# Smallest byte string piexif accepts as a JPEG: SOI followed by SOS.
MINIMAL_JPEG = b'\xff\xd8\xff\xda\x00\x02\xff\xd9'


def make_photo(photo_id: str, place: Optional[str] = None,
               latitude: Optional[float] = 37.7749, longitude: Optional[float] = -122.4194,
               heading=None, pitch=None, roll=None, altitude=None,
               capture_time: str = '2023-06-01T12:00:00Z', view_count: int = 0,
               with_pose: bool = True) -> Photo:
    pose = Pose(
        latitude=latitude, longitude=longitude,
        heading=heading, pitch=pitch, roll=roll, altitude=altitude,
    ) if with_pose else None
    return Photo(
        photo_id=photo_id,
        download_url=f'https://lh3.example.com/{photo_id}',
        capture_time=capture_time,
        view_count=view_count,
        place_name=place,
        pose=pose,
        share_link=f'https://www.google.com/maps/@?photo={photo_id}',
    )


class RecordingSink:
    """Progress sink that keeps every payload it receives."""

    def __init__(self):
        self.payloads: List[Dict] = []

    def __call__(self, payload: Dict) -> None:
        self.payloads.append(dict(payload))

    @property
    def last(self) -> Dict:
        return self.payloads[-1]

    def merged(self) -> Dict:
        """Client-side view: every payload applied in order."""
        state: Dict = {}
        for payload in self.payloads:
            state.update(payload)
        return state

    def values(self, key: str) -> List:
        return [p[key] for p in self.payloads if key in p]


class FakePhotoSource:
    """In-memory photo source with paged listing and scripted failures."""

    def __init__(self, photos=(), page_size: int = 2):
        self.photos = list(photos)
        self.page_size = page_size
        self.fetched: List[str] = []
        self.list_calls = 0
        self.fail_urls = set()
        self.on_fetch = None
        self.list_error: Optional[Exception] = None

    def list_all(self, page_token=None):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        start = int(page_token or 0)
        end = start + self.page_size
        next_token = str(end) if end < len(self.photos) else None
        return self.photos[start:end], next_token

    def fetch(self, url, progress_callback=None):
        self.fetched.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)
        if url in self.fail_urls:
            raise DownloadError(f"Failed to download photo: {url}")
        if progress_callback:
            progress_callback(50)
            progress_callback(100)
        return MINIMAL_JPEG


class FakeObjectStore:
    """In-memory destination folder keyed by file name."""

    folder_link = 'https://drive.google.com/drive/folders/test-folder'

    def __init__(self, existing=()):
        self.files: Dict[str, bytes] = {name: b'' for name in existing}
        self.created: List[str] = []
        self.updated: List[str] = []
        self.deleted: List[str] = []
        self.fail_delete = set()
        self.on_create = None
        self.catalog: Optional[List[Photo]] = None
        self.catalog_writes = 0

    def list_existing(self):
        return set(self.files)

    def create(self, name, data, progress_callback=None):
        if progress_callback:
            progress_callback(100)
        self.files[name] = data
        self.created.append(name)
        if self.on_create is not None:
            self.on_create(name)
        return f'id-{name}'

    def update(self, name, data, progress_callback=None):
        if name not in self.files:
            raise UploadError(f"Cannot update '{name}': file not found")
        if progress_callback:
            progress_callback(100)
        self.files[name] = data
        self.updated.append(name)
        return f'id-{name}'

    def upsert(self, name, data, progress_callback=None):
        if name in self.files:
            return self.update(name, data, progress_callback)
        return self.create(name, data, progress_callback)

    def delete(self, file_id):
        if file_id in self.fail_delete:
            raise UploadError(f"Failed to delete file {file_id}")
        self.deleted.append(file_id)

    def read_catalog(self):
        return None if self.catalog is None else list(self.catalog)

    def write_catalog(self, photos):
        self.catalog = list(photos)
        self.catalog_writes += 1
        return 'catalog-file-id'

    def destination_report(self, catalog):
        names = {p.destination_name for p in catalog}
        files = [{'id': f'id-{name}', 'name': name} for name in self.files]
        return DestinationReport(
            file_count=len(files),
            drive_only=[f for f in files if f['name'] not in names],
            duplicates={},
        )


class FakeInjector:
    """Records geotags and tags the bytes so uploads can be told apart."""

    def __init__(self):
        self.geotags = []

    def inject(self, data, geotag):
        self.geotags.append(geotag)
        return data + b'+gps'


@pytest.fixture
def photo_a() -> Photo:
    return make_photo('A', place='Golden Gate Bridge', heading=12.5, altitude=67.0,
                      capture_time='2021-03-01T08:00:00Z', view_count=150)


@pytest.fixture
def photo_b() -> Photo:
    return make_photo('B', place='Alcatraz Island', pitch=4.0, roll=-1.5,
                      capture_time='2022-07-15T10:30:00Z', view_count=20)


@pytest.fixture
def photo_c() -> Photo:
    return make_photo('C', place=None, latitude=-33.8568, longitude=151.2153,
                      capture_time='2020-01-10T23:59:00Z', view_count=3000)


@pytest.fixture
def sample_photos(photo_a, photo_b, photo_c) -> List[Photo]:
    return [photo_a, photo_b, photo_c]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def progress(sink) -> ProgressState:
    return ProgressState(sink)


@pytest.fixture
def photo_source(sample_photos) -> FakePhotoSource:
    return FakePhotoSource(sample_photos)


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def injector() -> FakeInjector:
    return FakeInjector()


@pytest.fixture
def sample_config() -> Dict:
    """Fixture providing a sample configuration dictionary."""
    return {
        'google': {
            'client_secrets_file': 'credentials.json',
            'save_token': False,
        },
        'drive': {
            'folder_name': 'Street View Backup',
            'chunk_size_mb': 8,
        },
        'transfer': {
            'page_size': 25,
        },
        'web': {
            'port': 5050,
        },
        'logging': {
            'level': 'DEBUG',
            'file': None,
        },
    }


@pytest.fixture
def config_file(tmp_path, sample_config):
    """Create a temporary config.yaml file."""
    config_path = tmp_path / 'config.yaml'
    with open(config_path, 'w') as f:
        yaml.dump(sample_config, f)
    return config_path


@pytest.fixture
def mock_drive_service():
    """Create a mock Google Drive service with an existing destination folder."""
    service = Mock()
    folder_list = Mock()
    folder_list.execute.return_value = {
        'files': [{'id': 'folder123', 'name': 'Google Street View Photos',
                   'webViewLink': 'https://drive.google.com/drive/folders/folder123'}]
    }
    service.files.return_value.list.return_value = folder_list
    return service
