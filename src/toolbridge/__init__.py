"""toolbridge - client for remote tool servers over HTTP + Server-Sent Events.

The server pushes JSON-RPC messages over an SSE stream and announces a
write endpoint; the client POSTs its own messages there. ExtensionClient
rebuilds request/response pairing on top, runs the initialize handshake,
discovers tools and invokes them.
"""

from .client import ExtensionClient
from .config import ClientConfig, TimeoutPolicy
from .errors import (
    ConnectionLostError,
    ExtensionClientError,
    NotConnectedError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    TransportError,
    UnknownToolError,
)
from .registry import CapabilityRegistry, ToolDescriptor
from .types import ConnectionState, ServerInfo

__all__ = [
    # Client
    "ExtensionClient",
    "ConnectionState",
    "ServerInfo",
    # Configuration
    "ClientConfig",
    "TimeoutPolicy",
    # Registry
    "CapabilityRegistry",
    "ToolDescriptor",
    # Errors
    "ExtensionClientError",
    "TransportError",
    "ConnectionLostError",
    "RequestTimeoutError",
    "RemoteError",
    "ProtocolError",
    "NotConnectedError",
    "UnknownToolError",
]
