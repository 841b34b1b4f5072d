"""One-shot approval rendezvous between the orchestrator and its caller."""

import threading
from typing import Optional

from .errors import AgentBusyError

__all__ = ["ApprovalChannel", "PendingApproval"]


class PendingApproval:
    """A single outstanding approval request. Resolved at most once."""

    def __init__(self):
        self._event = threading.Event()
        self._approved = False

    @property
    def resolved(self) -> bool:
        return self._event.is_set()

    def _resolve(self, approved: bool) -> None:
        self._approved = approved
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until resolved; returns True only for an explicit approval.

        A timeout counts as rejection.
        """
        if not self._event.wait(timeout):
            return False
        return self._approved


class ApprovalChannel:
    """Hands exactly one decision from the approving side to the waiting side.

    ``open()`` creates the slot before the request is announced, so an
    answer given synchronously from an event handler is never lost.
    ``approve()``/``reject()`` resolve the open slot and are no-ops when
    nothing is pending. ``close()`` rejects the open slot and every slot
    opened afterwards until ``reopen()``, so a stop that races with a new
    request cannot leave the orchestrator blocked.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Optional[PendingApproval] = None
        self._closed = False

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def open(self) -> PendingApproval:
        with self._lock:
            if self._pending is not None:
                raise AgentBusyError()
            pending = PendingApproval()
            if self._closed:
                pending._resolve(False)
            else:
                self._pending = pending
            return pending

    def approve(self) -> bool:
        return self._settle(True)

    def reject(self) -> bool:
        return self._settle(False)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self._settle(False)

    def reopen(self) -> None:
        with self._lock:
            self._closed = False

    def _settle(self, approved: bool) -> bool:
        with self._lock:
            pending, self._pending = self._pending, None
        if pending is None:
            return False
        pending._resolve(approved)
        return True
