"""
Tests for the Flask routes, Socket.IO handlers and session registry.
"""
from unittest.mock import Mock

import pytest

from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.exceptions import AuthenticationError
from streetview_drive_migration.session import MigrationSession
from streetview_drive_migration.web.app import create_app
from streetview_drive_migration.web.extensions import socketio
from streetview_drive_migration.web.sessions import REGISTRY_KEY, SessionRegistry, SocketIOSink

CREDENTIALS = {'token': 'access-token', 'refresh_token': 'refresh-token'}


@pytest.fixture
def registry(photo_source, object_store, injector):
    config = MigrationConfig()
    config.web.secret_key = 'test-secret'

    def builder(config, credentials):
        return MigrationSession(photo_source, object_store, injector, config=config.transfer)

    return SessionRegistry(config, builder=builder)


@pytest.fixture
def app(registry):
    app = create_app(registry.config, registry)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client):
    with client.session_transaction() as sess:
        sess['credentials'] = CREDENTIALS
        sess['session_key'] = 'session-key-1'
    return client


def events_named(received, name):
    return [event['args'][0] for event in received if event['name'] == name]


class TestCreateApp:
    def test_keeps_empty_registry(self, app, registry):
        assert len(registry) == 0
        assert app.extensions[REGISTRY_KEY] is registry

    def test_builds_registry_when_none_given(self, registry):
        app = create_app(registry.config)
        assert isinstance(app.extensions[REGISTRY_KEY], SessionRegistry)
        assert app.extensions[REGISTRY_KEY] is not registry


class TestIndex:
    """Tests for the catalog overview route."""

    def test_not_logged_in(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert response.get_json() == {'loggedIn': False, 'loginUrl': '/login'}

    def test_overview(self, logged_in, object_store):
        response = logged_in.get('/')

        assert response.status_code == 200
        data = response.get_json()
        assert data['loggedIn'] is True
        assert data['folderName'] == 'Google Street View Photos'
        assert data['folderLink'] == object_store.folder_link
        assert data['photoCount'] == 3
        assert data['transferredCount'] == 0
        assert data['missingCount'] == 3
        assert data['destination']['fileCount'] == 0
        assert [item['id'] for item in data['listing']['items']] == ['A', 'B', 'C']
        assert data['listing']['pagination']['totalItems'] == 3

    def test_query_parameters_filter_listing(self, logged_in):
        response = logged_in.get('/?search=bridge&filter=heading')
        items = response.get_json()['listing']['items']
        assert [item['id'] for item in items] == ['A']

    def test_sorting(self, logged_in):
        response = logged_in.get('/?sort=views&order=asc')
        items = response.get_json()['listing']['items']
        assert [item['id'] for item in items] == ['B', 'A', 'C']

    def test_bad_query_parameter(self, logged_in):
        response = logged_in.get('/?status=pending')
        assert response.status_code == 400
        assert 'Unknown status' in response.get_json()['error']

    def test_source_rejects_credentials(self, logged_in, photo_source):
        photo_source.list_error = AuthenticationError('Please log in again.')
        response = logged_in.get('/')
        assert response.status_code == 401
        assert response.get_json()['authRequired'] is True


class TestStatus:
    """Tests for /api/status."""

    def test_not_logged_in(self, client):
        assert client.get('/api/status').get_json() == {'loggedIn': False, 'running': False}

    def test_before_catalog_load(self, logged_in):
        data = logged_in.get('/api/status').get_json()
        assert data == {'loggedIn': True, 'running': False, 'catalogLoaded': False}

    def test_after_catalog_load(self, logged_in):
        logged_in.get('/')
        data = logged_in.get('/api/status').get_json()
        assert data['catalogLoaded'] is True
        assert data['running'] is False
        assert data['progress']['phase'] == 'idle'


class TestLogout:
    def test_logout_discards_session(self, logged_in, registry):
        logged_in.get('/')
        assert len(registry) == 1

        response = logged_in.get('/logout')

        assert response.status_code == 302
        assert len(registry) == 0
        assert logged_in.get('/').get_json()['loggedIn'] is False


class TestSocketEvents:
    """Tests for the Socket.IO progress and control channel."""

    def test_unauthenticated_connect(self, app):
        sio = socketio.test_client(app)
        responses = events_named(sio.get_received(), 'control-response')
        assert responses == [{'error': 'User is not authenticated.', 'authRequired': True}]

    def test_connect_subscribes_and_disconnect_detaches(self, app, logged_in, registry):
        sio = socketio.test_client(app, flask_test_client=logged_in)
        migration_session = registry.peek('session-key-1')
        assert isinstance(migration_session.progress.subscriber, SocketIOSink)

        sio.disconnect()

        assert migration_session.progress.subscriber is None

    def test_control_message(self, app, logged_in):
        sio = socketio.test_client(app, flask_test_client=logged_in)
        sio.get_received()

        sio.emit('control', {'kind': 'filter-catalog', 'payload': {'search': 'alcatraz'}})

        responses = events_named(sio.get_received(), 'control-response')
        assert responses[0]['type'] == 'filter-results'
        assert [item['id'] for item in responses[0]['payload']['items']] == ['B']

    def test_unknown_control_message(self, app, logged_in):
        sio = socketio.test_client(app, flask_test_client=logged_in)
        sio.get_received()
        sio.emit('control', {'kind': 'shutdown'})
        responses = events_named(sio.get_received(), 'control-response')
        assert responses == [{'error': 'Unknown message kind: shutdown'}]

    def test_start_transfer_rejected_while_running(self, app, logged_in, registry):
        sio = socketio.test_client(app, flask_test_client=logged_in)
        sio.get_received()
        migration_session = registry.peek('session-key-1')
        migration_session.guard.acquire()
        try:
            sio.emit('control', {'kind': 'start-transfer'})
        finally:
            migration_session.guard.release()

        responses = events_named(sio.get_received(), 'control-response')
        assert responses[0]['rejected'] is True


class TestSessionRegistry:
    """Tests for SessionRegistry and SocketIOSink."""

    def test_session_built_once_per_key(self, registry):
        first = registry.get('k', CREDENTIALS)
        assert registry.get('k', CREDENTIALS) is first
        assert registry.get('other', CREDENTIALS) is not first
        assert len(registry) == 2

    def test_missing_credentials(self, registry):
        with pytest.raises(AuthenticationError):
            registry.get('k', {})

    def test_discard_cancels_active_run(self, registry):
        migration_session = registry.get('k', CREDENTIALS)
        migration_session.guard.acquire()
        try:
            registry.discard('k')
        finally:
            migration_session.guard.release()
        assert migration_session.token.cancelled
        assert registry.peek('k') is None

    def test_peek_without_key(self, registry):
        assert registry.peek(None) is None

    def test_bind_and_unbind(self, registry):
        sink = SocketIOSink(Mock(), 'sid-1')
        registry.bind('sid-1', sink)
        assert registry.unbind('sid-1') is sink
        assert registry.unbind('sid-1') is None

    def test_sink_emits_to_room(self):
        server = Mock()
        SocketIOSink(server, 'sid-1')({'total': 3})
        server.emit.assert_called_once_with('progress', {'total': 3}, to='sid-1')
