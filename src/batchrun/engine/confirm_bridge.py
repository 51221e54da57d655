from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future
from typing import Dict, Tuple

logger = logging.getLogger(__name__)


class ConfirmBridge:
    """
    Correlates confirmation requests from the engine with answers from a responder.

    The engine registers a request and blocks on the returned future; whoever
    drives the UI calls respond() with the same request id. The two sides share
    no ordering beyond "the answer arrives after register()".
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: Dict[int, Future] = {}

    def register(self) -> Tuple[int, Future]:
        """Allocate a request id and a one-shot answer slot."""
        answer: Future = Future()
        with self._lock:
            request_id = next(self._ids)
            self._pending[request_id] = answer
        return request_id, answer

    def respond(self, request_id: int, accepted: bool) -> bool:
        """
        Answer a pending request.

        Returns:
          False when no pending request matches (stale or unknown id).
        """
        with self._lock:
            answer = self._pending.pop(request_id, None)
        if answer is None:
            logger.debug("ignoring answer for unknown confirm request %s", request_id)
            return False
        answer.set_result(bool(accepted))
        return True

    def cancel(self, request_id: int) -> None:
        """Drop a pending request without answering; its waiter falls back to the default."""
        with self._lock:
            answer = self._pending.pop(request_id, None)
        if answer is not None:
            answer.cancel()

    def close(self) -> None:
        """Abandon every pending request (responder going away)."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for answer in pending:
            answer.cancel()

    def pending_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._pending)
