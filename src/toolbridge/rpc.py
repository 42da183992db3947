"""JSON-RPC engine over a split transport.

Outbound envelopes are POSTed one per HTTP request to the write endpoint.
Replies come back later on the push channel and are matched to their
callers through the correlation table:

    send_request ──POST──> server
         │                   │
      future <──dispatch── push channel

The engine owns the write endpoint, the id counter and the correlation
table; nothing else mutates them.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import Any

import httpx

from .config import TimeoutPolicy
from .correlation import CorrelationTable
from .errors import ConnectionLostError, NotConnectedError, ProtocolError, TransportError
from .protocol.envelopes import (
    NotificationEnvelope,
    RequestEnvelope,
    ResponseEnvelope,
    ServerMessage,
    parse_envelope,
)

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[ServerMessage], None]


class RPCEngine:
    """Request/notification sender and reply dispatcher for one connection."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        timeouts: TimeoutPolicy | None = None,
        headers: dict[str, str] | None = None,
        on_notification: NotificationHandler | None = None,
    ):
        self._client = http_client
        self._timeouts = timeouts or TimeoutPolicy()
        self._headers = headers or {}
        self._on_notification = on_notification
        self._ids = itertools.count()
        self._pending = CorrelationTable()
        self._endpoint: str | None = None

    @property
    def endpoint(self) -> str | None:
        """Current write endpoint, None until announced."""
        return self._endpoint

    def set_endpoint(self, url: str) -> None:
        if self._endpoint and self._endpoint != url:
            logger.info(f"Write endpoint changed: {self._endpoint} -> {url}")
        self._endpoint = url

    @property
    def pending(self) -> CorrelationTable:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._pending.closed

    def _require_endpoint(self) -> str:
        if self._pending.closed:
            raise ConnectionLostError()
        if self._endpoint is None:
            raise NotConnectedError("No write endpoint announced")
        return self._endpoint

    async def _post(self, endpoint: str, body: str) -> None:
        try:
            response = await self._client.post(
                endpoint,
                content=body,
                headers={"Content-Type": "application/json", **self._headers},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"POST to {endpoint} failed: {e}") from e

        if response.is_error:
            raise TransportError(
                f"HTTP Error {response.status_code}",
                status_code=response.status_code,
            )

    async def send_request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Send a request and wait for its reply.

        Returns:
            The ``result`` member of the reply

        Raises:
            RequestTimeoutError: No reply before the method's deadline
            TransportError: The POST failed or returned a non-2xx status
            ConnectionLostError: The connection was torn down while waiting
            RemoteError: The server replied with an error object
        """
        endpoint = self._require_endpoint()
        request_id = next(self._ids)
        timeout = self._timeouts.for_method(method)
        future = self._pending.register(request_id, method=method, timeout=timeout)

        envelope = RequestEnvelope(id=request_id, method=method, params=params)
        logger.debug(f"-> {method} (id={request_id})")

        try:
            await self._post(endpoint, envelope.to_json())
        except TransportError as e:
            # Fail now instead of waiting for the deadline
            self._pending.fail(request_id, e)
        except asyncio.CancelledError:
            self._pending.discard(request_id)
            raise

        try:
            response: ResponseEnvelope = await future
        except asyncio.CancelledError:
            self._pending.discard(request_id)
            raise

        if response.is_error():
            logger.warning(f"RPC error for {method} (id={request_id}): {response.error}")
        return response.unwrap()

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        """POST a notification. Returns once the POST completes."""
        endpoint = self._require_endpoint()
        envelope = NotificationEnvelope(method=method, params=params)
        logger.debug(f"-> {method} (notification)")
        await self._post(endpoint, envelope.to_json())

    def dispatch(self, payload: str) -> None:
        """Route one inbound push-channel payload.

        A malformed reply that still names a pending id fails that request
        with the ProtocolError before it is raised here.

        Raises:
            ProtocolError: If the payload is not a JSON-RPC message
        """
        try:
            envelope = parse_envelope(payload)
        except ProtocolError as e:
            if e.request_id is not None and self._pending.fail(e.request_id, e):
                logger.warning(f"Malformed reply failed request id {e.request_id}")
            raise

        if isinstance(envelope, ServerMessage):
            logger.info(f"Server notification: {envelope.method}")
            if self._on_notification is not None:
                self._on_notification(envelope)
            return

        if self._pending.resolve(envelope.id, envelope):
            logger.debug(f"<- reply (id={envelope.id})")
        else:
            logger.debug(f"Dropping reply for unknown request id {envelope.id}")

    def close(self, exc: BaseException | None = None) -> int:
        """Fail all pending requests and refuse new ones."""
        return self._pending.clear(exc)
