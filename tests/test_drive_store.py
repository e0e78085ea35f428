"""
Tests for the Google Drive object store.
"""
import json
from unittest.mock import Mock, patch

import pytest

from streetview_drive_migration.exceptions import AuthenticationError, UploadError
from streetview_drive_migration.storage.drive_store import (
    FOLDER_MIME_TYPE,
    DriveObjectStore,
    _quote,
)

from conftest import http_error

FOLDER = {
    'id': 'folder123',
    'name': 'Google Street View Photos',
    'webViewLink': 'https://drive.google.com/drive/folders/folder123',
}


def make_store(*list_responses, **kwargs):
    """Store over a mock service whose files().list() calls return the given pages in order."""
    service = Mock()
    service.files.return_value.list.return_value.execute.side_effect = list(list_responses)
    return DriveObjectStore(service=service, **kwargs), service.files.return_value


def fake_downloader(content: bytes):
    def factory(buffer, request):
        downloader = Mock()

        def next_chunk():
            buffer.write(content)
            return None, True

        downloader.next_chunk.side_effect = next_chunk
        return downloader
    return factory


class TestFolder:
    """Tests for locating the destination folder."""

    def test_existing_folder_is_used(self):
        store, files = make_store({'files': [FOLDER]})

        assert store.folder_id == 'folder123'
        assert store.folder_link == FOLDER['webViewLink']
        files.create.assert_not_called()

    def test_folder_is_looked_up_once(self):
        store, files = make_store({'files': [FOLDER]})
        store.folder_id
        store.folder_id
        assert files.list.call_count == 1

    def test_missing_folder_is_created(self):
        store, files = make_store({'files': []}, folder_name='Street View Backup')
        files.create.return_value.execute.return_value = {'id': 'new-folder', 'name': 'Street View Backup'}

        assert store.folder_id == 'new-folder'
        assert files.create.call_args.kwargs['body'] == {
            'name': 'Street View Backup',
            'mimeType': FOLDER_MIME_TYPE,
        }

    def test_quote_escapes_apostrophes(self):
        assert _quote("Bob's photos") == "Bob\\'s photos"


class TestListing:
    """Tests for listing stored photos."""

    def test_list_files_follows_pagination(self):
        store, files = make_store(
            {'files': [FOLDER]},
            {'files': [{'id': '1', 'name': 'A.jpg'}], 'nextPageToken': 'next'},
            {'files': [{'id': '2', 'name': 'B.jpg'}]},
        )

        result = store.list_files()

        assert [f['id'] for f in result] == ['1', '2']
        assert files.list.call_args_list[-1].kwargs['pageToken'] == 'next'

    def test_list_existing_excludes_catalog_file(self):
        store, _ = make_store(
            {'files': [FOLDER]},
            {'files': [
                {'id': '1', 'name': 'A.jpg'},
                {'id': '2', 'name': 'streetview_photos.json'},
            ]},
        )
        assert store.list_existing() == {'A.jpg'}

    def test_unauthorized_raises_authentication_error(self):
        store, _ = make_store(http_error(401, 'Unauthorized'))
        with pytest.raises(AuthenticationError):
            store.list_existing()

    def test_forbidden_raises_upload_error(self):
        store, _ = make_store(http_error(403, 'Forbidden'))
        with pytest.raises(UploadError):
            store.list_existing()


class TestWrites:
    """Tests for create, update, upsert and delete."""

    def test_create_reports_chunk_progress(self):
        store, files = make_store({'files': [FOLDER]})
        status = Mock()
        status.progress.return_value = 0.5
        files.create.return_value.next_chunk.side_effect = [(status, None), (None, {'id': 'new-id'})]
        reported = []

        file_id = store.create('A.jpg', b'jpeg-bytes', reported.append)

        assert file_id == 'new-id'
        assert reported == [50, 100]
        assert files.create.call_args.kwargs['body'] == {'name': 'A.jpg', 'parents': ['folder123']}

    def test_upsert_updates_existing_file(self):
        store, files = make_store({'files': [FOLDER]}, {'files': [{'id': 'f1', 'name': 'A.jpg'}]})
        files.update.return_value.next_chunk.return_value = (None, {'id': 'f1'})

        assert store.upsert('A.jpg', b'new-bytes') == 'f1'
        assert files.update.call_args.kwargs['fileId'] == 'f1'
        files.create.assert_not_called()

    def test_upsert_creates_missing_file(self):
        store, files = make_store({'files': [FOLDER]}, {'files': []})
        files.create.return_value.next_chunk.return_value = (None, {'id': 'f2'})

        assert store.upsert('B.jpg', b'bytes') == 'f2'
        files.update.assert_not_called()

    def test_update_missing_file_raises(self):
        store, _ = make_store({'files': [FOLDER]}, {'files': []})
        with pytest.raises(UploadError):
            store.update('ghost.jpg', b'bytes')

    def test_delete(self):
        store, files = make_store()
        store.delete('dup-1')
        files.delete.assert_called_once_with(fileId='dup-1')

    def test_delete_failure_raises_upload_error(self):
        store, files = make_store()
        files.delete.return_value.execute.side_effect = http_error(404, 'Not Found')
        with pytest.raises(UploadError):
            store.delete('dup-1')


class TestCatalogCache:
    """Tests for the cached catalog file."""

    def test_no_cache_file(self):
        store, _ = make_store({'files': [FOLDER]}, {'files': []})
        assert store.read_catalog() is None

    def test_read_cached_catalog(self, photo_a, photo_b):
        store, _ = make_store(
            {'files': [FOLDER]},
            {'files': [{'id': 'cat', 'name': 'streetview_photos.json'}]},
        )
        content = json.dumps([photo_a.to_api(), photo_b.to_api()]).encode('utf-8')

        with patch('streetview_drive_migration.storage.drive_store.MediaIoBaseDownload',
                   side_effect=fake_downloader(content)):
            catalog = store.read_catalog()

        assert catalog == [photo_a, photo_b]

    def test_unreadable_cache_is_ignored(self):
        store, _ = make_store(
            {'files': [FOLDER]},
            {'files': [{'id': 'cat', 'name': 'streetview_photos.json'}]},
        )
        with patch('streetview_drive_migration.storage.drive_store.MediaIoBaseDownload',
                   side_effect=fake_downloader(b'{not json')):
            assert store.read_catalog() is None

    def test_write_catalog_creates_json_file(self, sample_photos):
        store, files = make_store({'files': [FOLDER]}, {'files': []})
        files.create.return_value.next_chunk.return_value = (None, {'id': 'cat'})

        assert store.write_catalog(sample_photos) == 'cat'
        body = files.create.call_args.kwargs['body']
        assert body['name'] == 'streetview_photos.json'
        media = files.create.call_args.kwargs['media_body']
        assert media.mimetype() == 'application/json'


class TestDestinationReport:
    """Tests for duplicate and unmatched file detection."""

    def test_report(self, photo_a):
        store, _ = make_store(
            {'files': [FOLDER]},
            {'files': [
                {'id': '1', 'name': 'A.jpg'},
                {'id': '2', 'name': 'A.jpg'},
                {'id': '3', 'name': 'stray.jpg'},
                {'id': '4', 'name': 'streetview_photos.json'},
            ]},
        )

        report = store.destination_report([photo_a])

        assert report.file_count == 3
        assert [f['id'] for f in report.drive_only] == ['3']
        assert list(report.duplicates) == ['A.jpg']
        assert report.to_dict()['duplicateCount'] == 1
