"""Push-channel transport (Server-Sent Events)."""

from .sse import (
    ChannelEvent,
    ChannelEventType,
    SSEChannel,
    SSEEvent,
    SSEParser,
    resolve_write_endpoint,
)

__all__ = [
    "ChannelEvent",
    "ChannelEventType",
    "SSEChannel",
    "SSEEvent",
    "SSEParser",
    "resolve_write_endpoint",
]
