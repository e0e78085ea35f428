"""
Socket.IO event handlers: progress subscription and the control channel.
"""
import logging

from flask import request, session
from flask_socketio import emit

from streetview_drive_migration.dispatcher import ControlDispatcher
from streetview_drive_migration.exceptions import AuthenticationError
from streetview_drive_migration.web.extensions import socketio
from streetview_drive_migration.web.sessions import SocketIOSink, current_session, registry

logger = logging.getLogger(__name__)


@socketio.on('connect')
def handle_connect(auth=None):
    """Make the connecting client the session's progress subscriber."""
    try:
        migration_session = current_session()
    except AuthenticationError as e:
        logger.info(f"Unauthenticated client connected: {request.sid}")
        emit('control-response', {'error': str(e), 'authRequired': True})
        return

    sink = SocketIOSink(socketio, request.sid)
    registry().bind(request.sid, sink)
    # A run already in progress is replayed to this client in full.
    migration_session.progress.attach_subscriber(sink)
    logger.info(f"Client connected: {request.sid}")


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    sink = registry().unbind(request.sid)
    migration_session = registry().peek(session.get('session_key'))
    if sink is not None and migration_session is not None:
        migration_session.progress.detach_subscriber(sink)
    logger.info(f"Client disconnected: {request.sid}")


@socketio.on('control')
def handle_control(message):
    """Dispatch one control message and answer on ``control-response``."""
    try:
        migration_session = current_session()
    except AuthenticationError as e:
        emit('control-response', {'error': str(e), 'authRequired': True})
        return

    dispatcher = ControlDispatcher(
        migration_session, run_in_background=socketio.start_background_task
    )
    response = dispatcher.dispatch(message)
    if response is not None:
        emit('control-response', response)
