"""
Flask web application for the Street View to Google Drive migration.
Serves JSON views of the catalog and pushes transfer progress over Socket.IO.
"""
import logging
import os
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS

from streetview_drive_migration.config import MigrationConfig
from streetview_drive_migration.exceptions import AuthenticationError, MigrationError
from streetview_drive_migration.web import events  # noqa: F401  registers Socket.IO handlers
from streetview_drive_migration.web.extensions import socketio
from streetview_drive_migration.web.routes.auth import auth_bp
from streetview_drive_migration.web.routes.status import status_bp
from streetview_drive_migration.web.sessions import REGISTRY_KEY, SessionRegistry

logger = logging.getLogger(__name__)


def create_app(config: Optional[MigrationConfig] = None,
               registry: Optional[SessionRegistry] = None) -> Flask:
    """
    Create and configure the Flask app.

    Args:
        config: Loaded configuration; defaults plus environment overrides if None
        registry: Session registry, mainly for tests
    """
    config = config or MigrationConfig.load()

    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.web.secret_key or os.urandom(24)
    app.config['MIGRATION_CONFIG'] = config
    app.extensions[REGISTRY_KEY] = registry if registry is not None else SessionRegistry(config)

    CORS(app, origins=config.web.cors_allowed_origins)
    socketio.init_app(
        app,
        cors_allowed_origins=config.web.cors_allowed_origins,
        async_mode='threading',
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(status_bp)

    @app.errorhandler(AuthenticationError)
    def handle_auth_error(error):
        logger.warning(f"Authentication required: {error}")
        return jsonify({'error': str(error), 'authRequired': True}), 401

    @app.errorhandler(MigrationError)
    def handle_migration_error(error):
        logger.error(f"Request failed: {error}")
        return jsonify({'error': str(error)}), 500

    if not config.web.secret_key:
        logger.warning("No web secret key configured; sessions will not survive a restart")
    return app


def run(config: MigrationConfig) -> None:
    """Serve the web shell until interrupted."""
    app = create_app(config)
    logger.info(f"Serving on http://{config.web.host}:{config.web.port}")
    socketio.run(
        app,
        host=config.web.host,
        port=config.web.port,
        debug=config.web.debug,
        allow_unsafe_werkzeug=True,
    )
