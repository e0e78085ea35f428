"""
Progress snapshot of a transfer run and diff-only publication to one observer.
"""
import logging
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# A sink receives one JSON-serializable payload per publication.
ProgressSink = Callable[[Dict[str, Any]], None]


class Phase(Enum):
    """Lifecycle of a transfer run."""
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"


_WIRE_NAMES = {
    'phase': 'phase',
    'message': 'message',
    'total': 'total',
    'current': 'current',
    'photo_id': 'photoId',
    'download_progress': 'downloadProgress',
    'upload_progress': 'uploadProgress',
    'total_progress': 'totalProgress',
    'file_complete': 'fileComplete',
    'transferred_count': 'transferredCount',
    'missing_count': 'missingCount',
    'error': 'error',
    'in_progress': 'inProgress',
    'complete': 'complete',
}


@dataclass
class ProgressSnapshot:
    """Current state of an in-flight or finished transfer run."""
    phase: Phase = Phase.IDLE
    message: str = ""
    total: int = 0
    current: int = 0
    photo_id: Optional[str] = None
    download_progress: int = 0
    upload_progress: int = 0
    total_progress: int = 0
    file_complete: bool = False
    transferred_count: int = 0
    missing_count: int = 0
    error: Optional[str] = None
    in_progress: bool = False
    complete: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Full snapshot with wire (camelCase) keys."""
        return to_wire(asdict(self))


def to_wire(values: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snapshot fields to their wire keys and flatten enums."""
    payload = {}
    for name, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        payload[_WIRE_NAMES[name]] = value
    return payload


def compute_diff(old: ProgressSnapshot, new: ProgressSnapshot) -> Dict[str, Any]:
    """Return ``{field: new_value}`` for every field that differs between snapshots."""
    changes = {}
    for f in fields(ProgressSnapshot):
        old_value = getattr(old, f.name)
        new_value = getattr(new, f.name)
        if old_value != new_value:
            changes[f.name] = new_value
    return changes


class ProgressState:
    """
    Owns the progress snapshot of one session and publishes changes.

    Only one subscriber is supported; attaching another replaces the first.
    A single writer is assumed (one active run per session), so no locking
    is done here.
    """

    def __init__(self, sink: Optional[ProgressSink] = None):
        self._snapshot = ProgressSnapshot()
        self._sink = sink

    @property
    def subscriber(self) -> Optional[ProgressSink]:
        return self._sink

    def snapshot(self) -> ProgressSnapshot:
        """Read-only copy of the current snapshot."""
        return replace(self._snapshot)

    def update(self, **changes: Any) -> Dict[str, Any]:
        """
        Merge the supplied fields and publish only what changed.

        Args:
            **changes: Snapshot field names and their new values

        Returns:
            The published diff in wire form (empty if nothing changed)

        Raises:
            TypeError: If a field name is not part of the snapshot
        """
        previous = self._snapshot
        self._snapshot = replace(previous, **changes)
        diff = compute_diff(previous, self._snapshot)
        return self._publish(diff)

    def reset(self) -> Dict[str, Any]:
        """Restore the Idle defaults. Call before a run starts, never during one."""
        previous = self._snapshot
        self._snapshot = ProgressSnapshot()
        return self._publish(compute_diff(previous, self._snapshot))

    def attach_subscriber(self, sink: Optional[ProgressSink]) -> None:
        """
        Replace the subscriber. A run in progress is replayed to it in full
        so a late-joining observer catches up in one message.
        """
        self._sink = sink
        if sink is not None and self._snapshot.in_progress:
            self._send(self._snapshot.to_payload())

    def detach_subscriber(self, sink: Optional[ProgressSink] = None) -> None:
        if sink is None or sink is self._sink:
            self._sink = None

    def _publish(self, diff: Dict[str, Any]) -> Dict[str, Any]:
        if not diff:
            return {}
        payload = to_wire(diff)
        self._send(payload)
        return payload

    def _send(self, payload: Dict[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            self._sink(payload)
        except Exception as e:
            # Subscriber errors never reach the run.
            logger.warning(f"Progress subscriber failed: {e}")
