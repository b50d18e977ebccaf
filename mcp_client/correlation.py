"""
Request/response correlation.

Matches replies to outstanding requests by their JSON-RPC id. Any number of
requests may be outstanding at once and replies may arrive in any order.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import CorrelationError, RequestTimeoutError
from .protocol import RESULT_METHODS, Message, Request


logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """Single-slot completion handle for one outstanding request."""
    id: str
    method: str
    future: asyncio.Future

    @property
    def result_method(self) -> Optional[str]:
        return RESULT_METHODS.get(self.method)

    def done(self) -> bool:
        return self.future.done()


class CorrelationEngine:
    """
    Table of outstanding requests keyed by request id.

    Mutations happen only in ``submit``, ``resolve``, ``reject``, ``discard``
    and ``fail_all``. The lock is held for the dictionary operation alone and
    never across an await.
    """

    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        with self._lock:
            return request_id in self._pending

    def sole_pending_id(self) -> Optional[str]:
        """Id of the only outstanding request, or None unless exactly one is pending."""
        with self._lock:
            if len(self._pending) != 1:
                return None
            return next(iter(self._pending))

    def expected_result(self, request_id: Optional[str]) -> Optional[str]:
        """Result method that answers the pending request ``request_id``."""
        if request_id is None:
            return None
        with self._lock:
            pending = self._pending.get(str(request_id))
        return pending.result_method if pending is not None else None

    def submit(self, request: Request) -> PendingRequest:
        """Register ``request`` and return the handle its reply will complete."""
        future = asyncio.get_running_loop().create_future()
        pending = PendingRequest(id=request.id, method=request.METHOD, future=future)
        with self._lock:
            if request.id in self._pending:
                raise CorrelationError(f"Request id {request.id} already pending")
            self._pending[request.id] = pending
        return pending

    def _pop(self, request_id: Optional[str]) -> Optional[PendingRequest]:
        if request_id is None:
            return None
        with self._lock:
            return self._pending.pop(str(request_id), None)

    def resolve(self, message: Message) -> bool:
        """
        Deliver a terminal message to the request it answers.

        Returns False, after logging, when no request is waiting for it.
        """
        pending = self._pop(message.id)
        if pending is None or pending.done():
            logger.warning(f"Dropping orphaned {type(message).__name__} for id {message.id!r}")
            return False
        pending.future.set_result(message)
        return True

    def reject(self, request_id: Optional[str], exc: BaseException) -> bool:
        """Complete a pending request with an error instead of a message."""
        pending = self._pop(request_id)
        if pending is None or pending.done():
            logger.warning(f"Dropping error for unknown request id {request_id!r}: {exc}")
            return False
        pending.future.set_exception(exc)
        return True

    def discard(self, request_id: str) -> None:
        pending = self._pop(request_id)
        if pending is not None and not pending.done():
            pending.future.cancel()

    def fail_all(self, exc: BaseException) -> int:
        """Complete every outstanding request with ``exc``."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for entry in pending:
            if not entry.done():
                entry.future.set_exception(exc)
        if pending:
            logger.debug(f"Failed {len(pending)} pending request(s): {exc}")
        return len(pending)

    async def wait(self, pending: PendingRequest, timeout: Optional[float] = None) -> Message:
        """
        Wait for the reply to ``pending``.

        Raises:
            RequestTimeoutError: When ``timeout`` expires. The entry is removed
                so a late reply is treated as orphaned.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout=timeout)
        except asyncio.TimeoutError:
            self.discard(pending.id)
            raise RequestTimeoutError(
                f"No reply to {pending.method} ({pending.id}) within {timeout}s"
            ) from None
        except asyncio.CancelledError:
            self.discard(pending.id)
            raise
