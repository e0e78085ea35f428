"""
Cooperative cancellation and single-flight guarding of transfer runs.
"""
import threading


class CancellationToken:
    """
    Flag raised by a control message and polled by the transfer loop.

    The loop checks it at the top of each item and again after the fetch;
    an upload that has started always runs to completion.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()


class RunGuard:
    """
    Allows at most one transfer run per session at a time.

    ``acquire`` returns False instead of blocking when a run is active; the
    caller reports the rejection and leaves all state untouched.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()
