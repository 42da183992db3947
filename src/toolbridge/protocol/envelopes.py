"""JSON-RPC 2.0 envelopes.

Outbound:
- RequestEnvelope: carries an ``id`` and expects exactly one reply
- NotificationEnvelope: no ``id`` field at all (omitted, never null)

Inbound:
- ResponseEnvelope: ``id`` plus either ``result`` or ``error``
- ServerMessage: anything carrying ``method`` (server notification, or a
  server-initiated request when it also has an ``id``). Never a reply.

Example request:
    {"jsonrpc": "2.0", "id": 3, "method": "tools/call",
     "params": {"name": "grade", "arguments": {"page": 1}}}

Example error reply:
    {"jsonrpc": "2.0", "id": 3,
     "error": {"code": -32602, "message": "Unknown tool"}}
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from ..errors import ProtocolError, RemoteError
from .methods import JSONRPC_VERSION


class RequestEnvelope(BaseModel):
    """A client request awaiting a reply."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int
    method: str
    params: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            data["params"] = self.params
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_wire())


class NotificationEnvelope(BaseModel):
    """A fire-and-forget client message."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            data["params"] = self.params
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_wire())


class ErrorObject(BaseModel):
    """The ``error`` member of a failed reply."""

    code: int
    message: str
    data: Any = None


class ResponseEnvelope(BaseModel):
    """A reply to a previously sent request."""

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None
    result: Any = None
    error: ErrorObject | None = None

    def is_error(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Any:
        """Return ``result`` or raise RemoteError for an error reply."""
        if self.error is not None:
            raise RemoteError(self.error.code, self.error.message, self.error.data)
        return self.result


class ServerMessage(BaseModel):
    """A server-initiated notification or request."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    id: int | str | None = None
    params: Any = None

    def is_request(self) -> bool:
        return self.id is not None


InboundEnvelope = ResponseEnvelope | ServerMessage


def parse_envelope(payload: str | bytes) -> InboundEnvelope:
    """Parse one inbound push-channel payload.

    Raises:
        ProtocolError: If the payload is not JSON or not a JSON-RPC message
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON payload: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        if "method" in data:
            return ServerMessage.model_validate(data)
        if "id" in data and ("result" in data or "error" in data):
            return ResponseEnvelope.model_validate(data)
    except ValidationError as e:
        reply_id = None if "method" in data else data.get("id")
        if not isinstance(reply_id, (int, str)):
            reply_id = None
        raise ProtocolError(f"Malformed envelope: {e}", request_id=reply_id) from e

    raise ProtocolError(f"Not a JSON-RPC message: {str(data)[:100]}")
