from __future__ import annotations

import threading
import time
from typing import Optional


class CancelToken:
    """
    Cooperative cancellation signal.

    A child token reports cancelled when it or any ancestor is cancelled, so a
    step attempt can be aborted (timeout) without cancelling the whole run.
    """

    _POLL_SECONDS = 0.05

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled()

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancellation. Returns is_cancelled()."""
        deadline = time.monotonic() + max(0.0, seconds)
        while not self.is_cancelled():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._event.wait(min(remaining, self._POLL_SECONDS))
        return self.is_cancelled()
