"""
Control-plane dispatcher: maps inbound ``{kind, payload}`` messages onto a
MigrationSession.
"""
import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Set, Union

from streetview_drive_migration.catalog.filters import FilterSpec
from streetview_drive_migration.exceptions import (
    AuthenticationError,
    MigrationError,
    ValidationError,
)
from streetview_drive_migration.models import Photo
from streetview_drive_migration.session import MigrationSession
from streetview_drive_migration.transfer.orchestrator import REJECTED_MESSAGE

logger = logging.getLogger(__name__)

# Runs a callable (plus args) without blocking the dispatcher.
BackgroundRunner = Callable[..., Any]

SORT_FIELDS = ('date', 'views')


def _run_in_thread(target: Callable[..., Any], *args: Any) -> threading.Thread:
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def photo_view_model(photo: Photo, transferred_names: Set[str]) -> Dict[str, Any]:
    """Row rendered for one photo in a catalog listing."""
    transferred = photo.destination_name in transferred_names
    pose = photo.pose
    return {
        'id': photo.photo_id,
        'shareLink': photo.share_link,
        'place': photo.place_name,
        'latitude': pose.latitude if pose else None,
        'longitude': pose.longitude if pose else None,
        'captureDate': photo.capture_time[:10] if photo.capture_time else None,
        'viewCount': photo.view_count,
        'status': 'transferred' if transferred else 'missing',
        'action': 'retransfer' if transferred else 'transfer',
    }


def _error(message: str, **extra: Any) -> Dict[str, Any]:
    response = {'error': message}
    response.update(extra)
    return response


class ControlDispatcher:
    """
    Routes control messages to session operations.

    Transfers are handed to ``run_in_background`` so the caller (a socket
    handler) returns immediately; everything else runs inline and answers
    with a response dictionary. ``dispatch`` never raises for a bad message.

    The run slot is reserved before the reply is sent. A second transfer
    request is rejected inline, and a cancel that follows the reply always
    reaches the run it was meant for.
    """

    def __init__(self, session: MigrationSession,
                 run_in_background: Optional[BackgroundRunner] = None):
        self.session = session
        self.run_in_background = run_in_background or _run_in_thread
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = {
            'start-transfer': self._start_transfer,
            'cancel-transfer': self._cancel_transfer,
            'transfer-one': self._transfer_one,
            'delete-duplicates': self._delete_duplicates,
            'refresh-catalog': self._refresh_catalog,
            'filter-catalog': self._filter_catalog,
        }

    @property
    def kinds(self):
        return tuple(self._handlers)

    def dispatch(self, message: Union[str, bytes, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Handle one control message.

        Args:
            message: ``{"kind": ..., "payload": ...}`` as a dict or JSON text;
                     ``type`` is accepted in place of ``kind``

        Returns:
            Response dictionary, or None when the message needs no answer
        """
        try:
            if isinstance(message, (str, bytes)):
                message = json.loads(message)
            if not isinstance(message, dict):
                raise ValidationError("Control message must be a JSON object")
            kind = message.get('kind') or message.get('type')
            payload = message.get('payload') or {}
            if not isinstance(payload, dict):
                raise ValidationError("Control message payload must be a JSON object")
        except ValueError as e:
            logger.warning(f"Malformed control message: {e}")
            return _error(f"Malformed control message: {e}")
        except ValidationError as e:
            logger.warning(str(e))
            return _error(str(e))

        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning(f"Unknown message kind: {kind}")
            return _error(f"Unknown message kind: {kind}")

        logger.debug(f"Dispatching {kind}")
        try:
            return handler(payload)
        except ValidationError as e:
            logger.warning(f"Rejected {kind}: {e}")
            return _error(str(e))
        except AuthenticationError as e:
            logger.warning(f"{kind} requires login: {e}")
            return _error(str(e), authRequired=True)
        except MigrationError as e:
            logger.error(f"{kind} failed: {e}")
            return _error(str(e))

    def _rejected(self) -> Dict[str, Any]:
        logger.warning("Rejected transfer request: a run is already active")
        return _error(REJECTED_MESSAGE, rejected=True)

    def _schedule(self, target: Callable[..., Any], *args: Any) -> None:
        """Hand a run reserved on this thread to the background runner."""
        try:
            self.run_in_background(target, *args)
        except Exception:
            self.session.release_run()
            raise

    def _start_transfer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.session.running:
            return self._rejected()
        ledger = self.session.ensure_catalog()
        if not self.session.reserve_run():
            return self._rejected()
        count = ledger.missing_count
        logger.info(f"Starting transfer of {count} missing photos")
        self._schedule(self.session.start_transfer, True)
        return {'type': 'transfer-started', 'payload': {'count': count}}

    def _cancel_transfer(self, payload: Dict[str, Any]) -> None:
        self.session.cancel_transfer()
        return None

    def _transfer_one(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        photo_id = payload.get('photoId')
        if not photo_id or not isinstance(photo_id, str):
            raise ValidationError("transfer-one requires a photoId")
        if self.session.running:
            return self._rejected()
        self.session.ensure_catalog()
        if not self.session.reserve_run():
            return self._rejected()
        self._schedule(self.session.transfer_one, photo_id, True)
        return {'type': 'transfer-started', 'payload': {'photoId': photo_id}}

    def _delete_duplicates(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ids = payload.get('ids')
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise ValidationError("delete-duplicates requires a list of file ids")
        result = self.session.delete_files(ids)
        return {'type': 'delete-results', 'payload': result}

    def _refresh_catalog(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        count = self.session.refresh_catalog()
        return {'type': 'catalog-refreshed', 'payload': {'count': count}}

    def _filter_catalog(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        spec = FilterSpec.from_payload(payload)
        sort_by = payload.get('sort')
        if sort_by is not None and sort_by not in SORT_FIELDS:
            raise ValidationError(f"Unknown sort field: {sort_by!r}")
        order = payload.get('order', 'desc')
        if order not in ('asc', 'desc'):
            raise ValidationError(f"Unknown sort order: {order!r}")

        view = self.session.filter_catalog(spec, sort_by=sort_by, order=order)
        return {
            'type': 'filter-results',
            'payload': {
                'items': [photo_view_model(p, view.transferred_names) for p in view.page.items],
                'pagination': view.page.to_dict(self.session.config.max_pages_shown),
                'poseCounts': view.pose_counts,
                'totals': view.result.counts,
            },
        }
