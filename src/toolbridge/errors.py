"""Error taxonomy for the extension client.

Every failure raised by toolbridge derives from ExtensionClientError so a
UI layer can catch one type and show the message verbatim.

- TransportError: push channel closed/errored, or a POST failed
- ConnectionLostError: pending work purged because the connection went away
- RequestTimeoutError: no reply before the request deadline
- RemoteError: the server answered with a JSON-RPC error object
- ProtocolError: malformed payload or unexpected handshake shape
- NotConnectedError / UnknownToolError: local preconditions, never sent
"""

from __future__ import annotations

from typing import Any


class ExtensionClientError(Exception):
    """Base class for all toolbridge errors."""


class TransportError(ExtensionClientError, ConnectionError):
    """The push channel or an outbound POST failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConnectionLostError(TransportError):
    """Raised for requests that were pending when the connection was torn down."""

    def __init__(self, message: str = "Connection lost"):
        super().__init__(message)


class RequestTimeoutError(ExtensionClientError, TimeoutError):
    """No reply arrived before the request deadline."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Request {method} timed out after {timeout:g}s")
        self.method = method
        self.timeout = timeout


class RemoteError(ExtensionClientError):
    """The server replied with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ProtocolError(ExtensionClientError):
    """An inbound payload could not be understood.

    ``request_id`` is set when the payload looked like a reply to a known
    request id, so that request can be failed instead of left waiting.
    """

    def __init__(self, message: str, request_id: int | str | None = None):
        super().__init__(message)
        self.request_id = request_id


class NotConnectedError(ExtensionClientError):
    """The operation requires a ready connection."""

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class UnknownToolError(ExtensionClientError):
    """The tool name is not in the capability registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name
