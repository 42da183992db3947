"""JSON-RPC protocol layer.

Defines the envelopes exchanged with a tool server and the fixed method
names, protocol version and client identity used during the handshake.
"""

from .envelopes import (
    ErrorObject,
    InboundEnvelope,
    NotificationEnvelope,
    RequestEnvelope,
    ResponseEnvelope,
    ServerMessage,
    parse_envelope,
)
from .methods import (
    CLIENT_CAPABILITIES,
    ENDPOINT_EVENT,
    METHOD_CALL_TOOL,
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_LIST_TOOLS,
    PROTOCOL_VERSION,
)

__all__ = [
    "ErrorObject",
    "InboundEnvelope",
    "NotificationEnvelope",
    "RequestEnvelope",
    "ResponseEnvelope",
    "ServerMessage",
    "parse_envelope",
    "CLIENT_CAPABILITIES",
    "ENDPOINT_EVENT",
    "METHOD_CALL_TOOL",
    "METHOD_INITIALIZE",
    "METHOD_INITIALIZED",
    "METHOD_LIST_TOOLS",
    "PROTOCOL_VERSION",
]
