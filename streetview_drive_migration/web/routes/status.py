"""
Catalog overview and progress status routes.
"""
from flask import Blueprint, current_app, jsonify, request, session, url_for

from streetview_drive_migration.dispatcher import ControlDispatcher
from streetview_drive_migration.web.sessions import current_session, is_authenticated, registry

status_bp = Blueprint('status', __name__)


def _filter_payload() -> dict:
    """Build a filter-catalog payload from query parameters."""
    payload = {
        'search': request.args.get('search', ''),
        'status': request.args.get('status') or None,
        'page': request.args.get('page', 1),
        'filters': request.args.getlist('filter'),
    }
    if request.args.get('sort'):
        payload['sort'] = request.args['sort']
    if request.args.get('order'):
        payload['order'] = request.args['order']
    return payload


@status_bp.route('/')
def index():
    """Catalog counts, destination report, progress and the requested listing page."""
    if not is_authenticated():
        return jsonify({'loggedIn': False, 'loginUrl': url_for('auth.login')})

    migration_session = current_session()
    listing = ControlDispatcher(migration_session).dispatch(
        {'kind': 'filter-catalog', 'payload': _filter_payload()}
    )
    if 'error' in listing:
        return jsonify(listing), 401 if listing.get('authRequired') else 400

    ledger = migration_session.ledger
    return jsonify({
        'loggedIn': True,
        'folderName': current_app.config['MIGRATION_CONFIG'].drive.folder_name,
        'folderLink': migration_session.store.folder_link,
        'photoCount': len(ledger),
        'transferredCount': ledger.transferred_count,
        'missingCount': ledger.missing_count,
        'destination': migration_session.destination_report(),
        'progress': migration_session.progress.snapshot().to_payload(),
        'listing': listing['payload'],
    })


@status_bp.route('/api/status')
def get_status():
    """Get current transfer status."""
    if not is_authenticated():
        return jsonify({'loggedIn': False, 'running': False})
    migration_session = registry().peek(session.get('session_key'))
    if migration_session is None:
        return jsonify({'loggedIn': True, 'running': False, 'catalogLoaded': False})
    return jsonify({
        'loggedIn': True,
        'running': migration_session.running,
        'catalogLoaded': migration_session.catalog_loaded,
        'progress': migration_session.progress.snapshot().to_payload(),
    })
