"""
OAuth login routes for the Street View and Drive scopes.
"""
import logging

from flask import Blueprint, current_app, jsonify, redirect, request, session, url_for

from streetview_drive_migration.auth import build_web_flow, save_token
from streetview_drive_migration.web.sessions import registry, remember_credentials

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _config():
    return current_app.config['MIGRATION_CONFIG']


@auth_bp.route('/login')
def login():
    """Initiate Google OAuth flow"""
    flow = build_web_flow(_config().google, url_for('auth.oauth2callback', _external=True))
    authorization_url, state = flow.authorization_url(
        access_type='offline',
        include_granted_scopes='true',
        prompt='consent'
    )
    session['oauth_state'] = state
    return redirect(authorization_url)


@auth_bp.route('/oauth2callback')
def oauth2callback():
    """Handle Google OAuth callback"""
    state = session.get('oauth_state')
    if not state:
        return redirect(url_for('status.index'))

    config = _config()
    flow = build_web_flow(config.google, url_for('auth.oauth2callback', _external=True), state=state)
    try:
        flow.fetch_token(authorization_response=request.url)
    except Exception as e:
        logger.error(f"OAuth token exchange failed: {e}")
        return jsonify({'error': f'Authentication failed: {e}'}), 400

    registry().discard(session.get('session_key'))
    session.pop('oauth_state', None)
    remember_credentials(flow.credentials)
    save_token(config.google, flow.credentials)
    logger.info("User logged in")
    return redirect(url_for('status.index'))


@auth_bp.route('/logout')
def logout():
    registry().discard(session.get('session_key'))
    session.clear()
    logger.info("User logged out")
    return redirect(url_for('status.index'))
