"""Correlation table mapping request ids to pending callers.

Each pending request owns a single-assignment future. Whoever settles the
future first (reply, deadline, POST failure, teardown) wins; every later
attempt finds no entry and is a no-op returning False.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from .errors import ConnectionLostError, RequestTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A request awaiting its reply."""

    id: int
    method: str
    future: asyncio.Future[Any]
    timeout: float | None = None
    deadline: asyncio.TimerHandle | None = None

    def cancel_deadline(self) -> None:
        if self.deadline is not None:
            self.deadline.cancel()
            self.deadline = None


class CorrelationTable:
    """Pending requests for one connection incarnation.

    Once clear() has run the table is closed and refuses new registrations,
    so nothing can be left pending after teardown.
    """

    def __init__(self) -> None:
        self._pending: dict[int, PendingRequest] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def register(
        self,
        request_id: int,
        *,
        method: str = "",
        timeout: float | None = None,
    ) -> asyncio.Future[Any]:
        """Create a pending entry and return the future that settles it.

        Args:
            request_id: Id of the outbound request
            method: Method name, used in timeout errors and logs
            timeout: Seconds until the entry expires (None = never)

        Raises:
            ConnectionLostError: If the table has already been cleared
            ValueError: If the id is already pending
        """
        if self._closed:
            raise ConnectionLostError()
        if request_id in self._pending:
            raise ValueError(f"Request id {request_id} is already pending")

        loop = asyncio.get_running_loop()
        entry = PendingRequest(
            id=request_id,
            method=method,
            future=loop.create_future(),
            timeout=timeout,
        )
        if timeout is not None:
            entry.deadline = loop.call_later(timeout, self.expire, request_id)

        self._pending[request_id] = entry
        return entry.future

    def _pop(self, request_id: Any) -> PendingRequest | None:
        entry = self._pending.pop(request_id, None)
        if entry is not None:
            entry.cancel_deadline()
        return entry

    def resolve(self, request_id: Any, envelope: Any) -> bool:
        """Settle an entry with its reply. False if nothing was pending."""
        entry = self._pop(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(envelope)
        return True

    def expire(self, request_id: Any) -> bool:
        """Abandon an entry at its deadline. False if nothing was pending."""
        entry = self._pop(request_id)
        if entry is None:
            return False
        logger.warning(f"Request {entry.method or request_id} (id={request_id}) timed out")
        if not entry.future.done():
            entry.future.set_exception(
                RequestTimeoutError(entry.method or str(request_id), entry.timeout or 0.0)
            )
        return True

    def fail(self, request_id: Any, exc: BaseException) -> bool:
        """Settle an entry with an error. False if nothing was pending."""
        entry = self._pop(request_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(exc)
        return True

    def discard(self, request_id: Any) -> bool:
        """Drop an entry whose caller went away, cancelling its future."""
        entry = self._pop(request_id)
        if entry is None:
            return False
        entry.future.cancel()
        return True

    def clear(self, exc: BaseException | None = None) -> int:
        """Close the table and fail every pending entry.

        Returns:
            Number of entries that were pending
        """
        self._closed = True
        pending, self._pending = self._pending, {}

        for entry in pending.values():
            entry.cancel_deadline()
            if not entry.future.done():
                entry.future.set_exception(exc or ConnectionLostError())

        if pending:
            logger.info(f"Cleared {len(pending)} pending request(s)")
        return len(pending)
