"""Server-Sent Events push channel.

The server pushes protocol messages over a long-lived GET stream. One
special event type (``endpoint``) carries, as plain text, the address the
client must POST its own messages to. Everything else carries a JSON
envelope in ``data``.

Handles:
- Parsing SSE format (event:/data:/id:/retry: fields, blank-line dispatch)
- Resolving relative write endpoints against the stream's directory
- Surfacing opened / endpoint / message / closed events to the owner
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urljoin, urlsplit

import httpx

from ..errors import ProtocolError, TransportError
from ..protocol.methods import ENDPOINT_EVENT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SSEEvent:
    """One dispatched Server-Sent Event."""

    event: str
    data: str
    id: str | None = None
    retry: int | None = None


class SSEParser:
    """Incremental line-based SSE parser.

    Feed decoded lines (without line terminators). A blank line dispatches
    the accumulated event; events without any data line are dropped.
    """

    def __init__(self) -> None:
        self._event_type: str | None = None
        self._data_lines: list[str] = []
        self._last_id: str | None = None
        self._retry: int | None = None

    def feed(self, line: str) -> SSEEvent | None:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            # Comment / heartbeat
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event_type = value
        elif name == "data":
            self._data_lines.append(value)
        elif name == "id":
            if "\0" not in value:
                self._last_id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        else:
            logger.debug(f"Ignoring unknown SSE field: {name}")
        return None

    def _dispatch(self) -> SSEEvent | None:
        event_type, self._event_type = self._event_type, None
        data_lines, self._data_lines = self._data_lines, []
        retry, self._retry = self._retry, None

        if not data_lines:
            return None

        return SSEEvent(
            event=event_type or "message",
            data="\n".join(data_lines),
            id=self._last_id,
            retry=retry,
        )


def resolve_write_endpoint(push_url: str, announced: str) -> str:
    """Resolve an announced write endpoint to an absolute URL.

    Relative announcements resolve against the push channel's origin and
    the directory portion of its path, not the full path:

        resolve_write_endpoint("http://h/base/sse", "msg")  -> "http://h/base/msg"
        resolve_write_endpoint("http://h/base/sse", "/rpc") -> "http://h/rpc"
    """
    endpoint = announced.strip()
    if not endpoint:
        raise ProtocolError("Server announced an empty write endpoint")

    if endpoint.startswith(("http://", "https://")):
        return endpoint

    parts = urlsplit(push_url)
    directory = parts.path[: parts.path.rfind("/") + 1] or "/"
    return urljoin(f"{parts.scheme}://{parts.netloc}{directory}", endpoint)


class ChannelEventType(str, Enum):
    """Events surfaced by the push channel to its owner."""

    OPENED = "opened"
    ENDPOINT = "endpoint"
    MESSAGE = "message"
    CLOSED = "closed"


@dataclass(frozen=True)
class ChannelEvent:
    type: ChannelEventType
    data: str | None = None
    error: Exception | None = None


class SSEChannel:
    """Client side of the push channel.

    Usage:
        channel = SSEChannel("http://localhost:3000/sse", http_client)
        await channel.open()
        async for event in channel.events():
            if event.type == ChannelEventType.ENDPOINT:
                ...

    The channel does not reconnect; a dropped stream ends with a CLOSED
    event carrying a TransportError, and the owner decides what to do.
    """

    def __init__(
        self,
        url: str,
        http_client: httpx.AsyncClient,
        *,
        connect_timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        self.url = url
        self._client = http_client
        self._connect_timeout = connect_timeout
        self._headers = headers or {}
        self._response: httpx.Response | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._response is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        """Issue the streaming GET.

        Raises:
            TransportError: If the server is unreachable or answers non-2xx
        """
        if self._closed:
            raise TransportError("Push channel already closed")
        if self._response is not None:
            return

        request = self._client.build_request(
            "GET",
            self.url,
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache", **self._headers},
            timeout=httpx.Timeout(self._connect_timeout, read=None),  # No read timeout for SSE
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to open push channel {self.url}: {e}") from e

        if self._closed:
            # close() ran while the GET was in flight
            await response.aclose()
            raise TransportError("Push channel closed while opening")

        if response.is_error:
            await response.aclose()
            raise TransportError(
                f"Push channel returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        self._response = response
        logger.info(f"Push channel opened: {self.url}")

    async def events(self) -> AsyncIterator[ChannelEvent]:
        """Iterate over channel events until the stream ends.

        The last event is always CLOSED. Its ``error`` is None only when the
        channel was closed locally.
        """
        if self._response is None:
            raise TransportError("Push channel not open")

        response = self._response
        parser = SSEParser()
        error: Exception | None = None

        yield ChannelEvent(ChannelEventType.OPENED)

        try:
            async for line in response.aiter_lines():
                event = parser.feed(line)
                if event is None:
                    continue

                if event.event == ENDPOINT_EVENT:
                    endpoint = resolve_write_endpoint(self.url, event.data)
                    logger.info(f"Received write endpoint: {endpoint}")
                    yield ChannelEvent(ChannelEventType.ENDPOINT, data=endpoint)
                elif event.event == "message":
                    yield ChannelEvent(ChannelEventType.MESSAGE, data=event.data)
                else:
                    logger.debug(f"Ignoring SSE event type {event.event!r}")
        except (httpx.HTTPError, httpx.StreamError) as e:
            if not self._closed:
                error = TransportError(f"Push channel failed: {e}")

        if error is None and not self._closed:
            error = TransportError("Push channel closed by server")

        if error is not None:
            logger.warning(str(error))
        yield ChannelEvent(ChannelEventType.CLOSED, error=error)

    async def close(self) -> None:
        """Close the channel. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True

        response, self._response = self._response, None
        if response is not None:
            await response.aclose()
            logger.info(f"Push channel closed: {self.url}")
