"""Pytest configuration and shared fixtures.

FakeToolServer plays the remote side of the HTTP + SSE transport entirely
in-process through httpx.MockTransport:

- GET  <push url>  -> text/event-stream fed from an asyncio.Queue
- POST <endpoint>  -> recorded; requests get a scripted reply pushed
                      onto the stream
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from toolbridge.client import ExtensionClient
from toolbridge.config import ClientConfig

PUSH_URL = "http://fake.local/base/sse"

GRADE_TOOL = {
    "name": "grade_page",
    "description": "Grade one scanned homework page",
    "inputSchema": {
        "type": "object",
        "properties": {"page": {"type": "integer"}},
        "required": ["page"],
    },
}

EXPLAIN_TOOL = {
    "name": "explain_step",
    "description": "Explain a solution step",
    "inputSchema": {
        "type": "object",
        "properties": {"step": {"type": "string"}},
        "required": ["step"],
    },
}


class FakeToolServer:
    """Scriptable tool server speaking JSON-RPC over HTTP + SSE."""

    def __init__(self, tools: list[dict[str, Any]] | None = None, endpoint: str = "/rpc"):
        self.tools = [GRADE_TOOL, EXPLAIN_TOOL] if tools is None else tools
        self.endpoint = endpoint
        self.announce_endpoint = True
        self.sse_status = 200

        # Scripting knobs
        self.silent: set[str] = set()  # methods that never get a reply
        self.post_status: dict[str, int] = {}  # method -> HTTP status for its POST
        self.errors: dict[str, dict[str, Any]] = {}  # method -> JSON-RPC error object
        self.results: dict[str, Any] = {}  # method -> result override
        self.tool_results: dict[str, Any] = {}  # tool name -> tools/call result

        self.received: list[dict[str, Any]] = []
        self.get_requests: list[httpx.Request] = []
        self.post_requests: list[httpx.Request] = []
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._arrivals: dict[str, asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.get_requests.append(request)
            if self.sse_status != 200:
                return httpx.Response(self.sse_status)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=self._stream(),
            )

        self.post_requests.append(request)
        body = json.loads(request.content)
        self.received.append(body)
        method = body.get("method", "")
        self._arrival(method).set()

        status = self.post_status.get(method, 202)
        if status >= 400:
            return httpx.Response(status)

        if "id" in body and method not in self.silent:
            self.push_message(self.reply_for(body))
        return httpx.Response(status)

    async def _stream(self) -> AsyncIterator[bytes]:
        if self.announce_endpoint:
            yield f"event: endpoint\ndata: {self.endpoint}\n\n".encode()
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk.encode()

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def reply_for(self, body: dict[str, Any]) -> dict[str, Any]:
        method = body["method"]
        reply: dict[str, Any] = {"jsonrpc": "2.0", "id": body["id"]}

        if method in self.errors:
            reply["error"] = self.errors[method]
        elif method in self.results:
            reply["result"] = self.results[method]
        elif method == "initialize":
            reply["result"] = {
                "protocolVersion": "2024-11-05",
                "serverInfo": {"name": "fake-tools", "version": "0.1.0"},
                "capabilities": {"tools": {"listChanged": True}},
            }
        elif method == "tools/list":
            reply["result"] = {"tools": self.tools}
        elif method == "tools/call":
            name = body["params"]["name"]
            if name in self.tool_results:
                reply["result"] = self.tool_results[name]
            else:
                reply["error"] = {"code": -32602, "message": f"Unknown tool: {name}"}
        else:
            reply["error"] = {"code": -32601, "message": f"Method not found: {method}"}
        return reply

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def push_message(self, message: dict[str, Any]) -> None:
        self.push_raw(f"data: {json.dumps(message)}\n\n")

    def push_raw(self, chunk: str) -> None:
        self._queue.put_nowait(chunk)

    def close_stream(self) -> None:
        self._queue.put_nowait(None)

    def methods(self) -> list[str]:
        return [m.get("method", "") for m in self.received]

    def last(self, method: str) -> dict[str, Any]:
        return [m for m in self.received if m.get("method") == method][-1]

    def _arrival(self, method: str) -> asyncio.Event:
        return self._arrivals.setdefault(method, asyncio.Event())

    async def wait_for_method(self, method: str, timeout: float = 2.0) -> None:
        """Wait until a POST for ``method`` has been received."""
        await asyncio.wait_for(self._arrival(method).wait(), timeout=timeout)


def fast_config(**overrides: Any) -> ClientConfig:
    values: dict[str, Any] = {
        "request_timeout": 2.0,
        "endpoint_timeout": 2.0,
        "connect_timeout": 2.0,
    }
    values.update(overrides)
    return ClientConfig(**values)


@pytest.fixture
def fake_server() -> FakeToolServer:
    return FakeToolServer()


@pytest.fixture
def push_url() -> str:
    return PUSH_URL


@pytest.fixture
def open_client(fake_server: FakeToolServer):
    """Factory for an ExtensionClient wired to ``fake_server``.

    Usage:
        async with open_client() as client:
            await client.connect(push_url)
    """

    @contextlib.asynccontextmanager
    async def _open(
        config: ClientConfig | None = None, **client_kwargs: Any
    ) -> AsyncIterator[ExtensionClient]:
        async with httpx.AsyncClient(transport=fake_server.transport()) as http:
            client = ExtensionClient(config or fast_config(), http_client=http, **client_kwargs)
            try:
                yield client
            finally:
                await client.aclose()
                fake_server.close_stream()

    return _open


@pytest.fixture
def make_config():
    return fast_config
