"""Wire-level constants for the JSON-RPC tool protocol."""

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

CLIENT_NAME = "MechTeachLearnCenter-Web"
CLIENT_VERSION = "1.0.0"

CLIENT_CAPABILITIES = {
    "roots": {"listChanged": True},
    "sampling": {},
}

# Handshake and tool methods
METHOD_INITIALIZE = "initialize"
METHOD_INITIALIZED = "notifications/initialized"
METHOD_LIST_TOOLS = "tools/list"
METHOD_CALL_TOOL = "tools/call"

# SSE event type carrying the write endpoint as plain text
ENDPOINT_EVENT = "endpoint"
