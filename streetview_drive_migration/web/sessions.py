"""
Per-browser migration sessions for the web shell.
"""
import logging
import threading
import uuid
from typing import Callable, Dict, Optional

from flask import current_app, session

from streetview_drive_migration.auth import (
    credentials_from_dict,
    credentials_to_dict,
    load_saved_token,
)
from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.exceptions import AuthenticationError
from streetview_drive_migration.factory import build_session
from streetview_drive_migration.session import MigrationSession

logger = logging.getLogger(__name__)

REGISTRY_KEY = 'streetview_sessions'


class SocketIOSink:
    """Progress sink that emits each payload to one Socket.IO client."""

    def __init__(self, socketio, room: str, event: str = 'progress'):
        self.socketio = socketio
        self.room = room
        self.event = event

    def __call__(self, payload: dict) -> None:
        self.socketio.emit(self.event, payload, to=self.room)


class SessionRegistry:
    """
    Migration sessions keyed by the browser session key.

    Sessions are independent; nothing here coordinates runs across them.
    """

    def __init__(self, config: MigrationConfig,
                 builder: Callable[..., MigrationSession] = build_session):
        self.config = config
        self.builder = builder
        self._sessions: Dict[str, MigrationSession] = {}
        self._sinks: Dict[str, SocketIOSink] = {}
        self._lock = threading.Lock()

    def get(self, key: str, credentials_data: dict) -> MigrationSession:
        """Return the session for ``key``, building it on first use."""
        with self._lock:
            migration_session = self._sessions.get(key)
            if migration_session is None:
                credentials = credentials_from_dict(credentials_data)
                migration_session = self.builder(self.config, credentials)
                self._sessions[key] = migration_session
                logger.info(f"Created migration session {key[:8]}")
            return migration_session

    def peek(self, key: Optional[str]) -> Optional[MigrationSession]:
        if not key:
            return None
        with self._lock:
            return self._sessions.get(key)

    def discard(self, key: Optional[str]) -> None:
        """Drop a session, cancelling its run if one is active."""
        if not key:
            return
        with self._lock:
            migration_session = self._sessions.pop(key, None)
        if migration_session is not None:
            if migration_session.running:
                migration_session.cancel_transfer()
            logger.info(f"Discarded migration session {key[:8]}")

    def bind(self, sid: str, sink: SocketIOSink) -> None:
        with self._lock:
            self._sinks[sid] = sink

    def unbind(self, sid: str) -> Optional[SocketIOSink]:
        with self._lock:
            return self._sinks.pop(sid, None)

    def __len__(self) -> int:
        return len(self._sessions)


def registry() -> SessionRegistry:
    return current_app.extensions[REGISTRY_KEY]


def is_authenticated() -> bool:
    if session.get('credentials'):
        return True
    config = registry().config
    if not config.google.save_token:
        return False
    credentials = load_saved_token(config.google)
    if credentials is None:
        return False
    remember_credentials(credentials)
    return True


def remember_credentials(credentials) -> None:
    """Store credentials in the browser session under a fresh session key."""
    session['credentials'] = credentials_to_dict(credentials)
    session['session_key'] = uuid.uuid4().hex


def current_session() -> MigrationSession:
    """
    Migration session of the current request.

    Raises:
        AuthenticationError: If the browser session holds no credentials
    """
    if not is_authenticated():
        raise AuthenticationError("User is not authenticated.")
    key = session.get('session_key')
    if not key:
        key = session['session_key'] = uuid.uuid4().hex
    return registry().get(key, session['credentials'])
