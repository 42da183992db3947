"""Extension client: connection lifecycle, handshake and tool invocation.

State machine:

    disconnected --connect()--> connecting --handshake ok--> ready
         ^                          |                          |
         |                     any failure              transport failure
         |                          v                          v
         +-------disconnect()----- error <---------------------+

A single reader task per connection owns the push channel and funnels
every payload into RPCEngine.dispatch. Callers suspend in send_request
until their reply, deadline or teardown settles the pending entry.

Usage:
    async with ExtensionClient() as client:
        await client.connect("http://localhost:3000/sse")
        for tool in client.tools:
            print(tool.name)
        result = await client.invoke("grade_page", {"page": 1})
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from .config import ClientConfig
from .errors import (
    ConnectionLostError,
    ExtensionClientError,
    NotConnectedError,
    ProtocolError,
    TransportError,
    UnknownToolError,
)
from .protocol.envelopes import ServerMessage
from .protocol.methods import (
    CLIENT_CAPABILITIES,
    METHOD_CALL_TOOL,
    METHOD_INITIALIZE,
    METHOD_INITIALIZED,
    METHOD_LIST_TOOLS,
)
from .registry import CapabilityRegistry, ToolDescriptor, parse_tool_listing
from .rpc import RPCEngine
from .transport.sse import ChannelEventType, SSEChannel
from .types import ConnectionState, ServerInfo

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState, Exception | None], None]
NotificationListener = Callable[[ServerMessage], None]
ChannelFactory = Callable[[str, httpx.AsyncClient, ClientConfig], SSEChannel]


def default_channel_factory(
    address: str, http_client: httpx.AsyncClient, config: ClientConfig
) -> SSEChannel:
    return SSEChannel(
        address,
        http_client,
        connect_timeout=config.connect_timeout,
        headers=config.headers,
    )


class ExtensionClient:
    """Client for one remote tool server at a time.

    Construct one per owner (UI state, CLI command, test). connect() and
    disconnect() are the only lifecycle mutators.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        channel_factory: ChannelFactory | None = None,
    ):
        self.config = config or ClientConfig()
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._channel_factory = channel_factory or default_channel_factory

        self._state = ConnectionState.DISCONNECTED
        self._error: Exception | None = None
        self._address: str | None = None
        self._registry = CapabilityRegistry()
        self._server_info: ServerInfo | None = None

        self._channel: SSEChannel | None = None
        self._engine: RPCEngine | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._endpoint_future: asyncio.Future[str] | None = None

        self._connect_lock = asyncio.Lock()
        # Bumped by connect() and disconnect() to detect interrupted attempts
        self._generation = 0

        self._state_listeners: list[StateListener] = []
        self._notification_listeners: list[NotificationListener] = []

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def error(self) -> Exception | None:
        """Failure that moved the client into ERROR, if any."""
        return self._error

    @property
    def is_ready(self) -> bool:
        return self._state == ConnectionState.READY

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def endpoint(self) -> str | None:
        """Write endpoint announced by the server."""
        return self._engine.endpoint if self._engine else None

    @property
    def server_info(self) -> ServerInfo | None:
        """Informational initialize result, set while ready."""
        return self._server_info

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    @property
    def tools(self) -> list[ToolDescriptor]:
        """Discovered tools (empty unless ready)."""
        return self._registry.tools()

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Subscribe to state changes. Returns an unsubscribe function."""
        self._state_listeners.append(listener)
        return lambda: self._remove(self._state_listeners, listener)

    def add_notification_listener(self, listener: NotificationListener) -> Callable[[], None]:
        """Subscribe to unsolicited server messages. Returns an unsubscribe function."""
        self._notification_listeners.append(listener)
        return lambda: self._remove(self._notification_listeners, listener)

    @staticmethod
    def _remove(listeners: list[Any], listener: Any) -> None:
        with contextlib.suppress(ValueError):
            listeners.remove(listener)

    def _set_state(self, state: ConnectionState, error: Exception | None = None) -> None:
        if state == self._state and error is self._error:
            return

        previous = self._state
        self._state = state
        self._error = error
        logger.info(f"Connection state: {previous.value} -> {state.value}")

        for listener in list(self._state_listeners):
            try:
                listener(state, error)
            except Exception as e:
                logger.warning(f"State listener failed: {e}")

    def _notify(self, message: ServerMessage) -> None:
        for listener in list(self._notification_listeners):
            try:
                listener(message)
            except Exception as e:
                logger.warning(f"Notification listener failed: {e}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.connect_timeout),
            )
            self._owns_http_client = True
        return self._http_client

    async def connect(self, address: str) -> None:
        """Connect to the push channel at ``address`` and run the handshake.

        Any existing connection, or connection attempt still in flight, is
        torn down first. Returns once the client is ready.

        Raises:
            TransportError: The push channel failed or no endpoint was announced
            RequestTimeoutError: A handshake request got no reply in time
            RemoteError: The server rejected a handshake request
            ProtocolError: The server sent something unparsable
            ConnectionLostError: disconnect() or a newer connect() ran while connecting
        """
        self._generation += 1
        generation = self._generation
        await self._teardown(ConnectionState.DISCONNECTED)

        # The superseded attempt releases the lock once its handshake fails
        async with self._connect_lock:
            if generation != self._generation:
                raise ConnectionLostError("Connection attempt superseded")

            self._address = address
            self._set_state(ConnectionState.CONNECTING)
            logger.info(f"Connecting to {address}")

            try:
                server_info, tools = await self._establish(address)
                if generation != self._generation:
                    raise ConnectionLostError("Disconnected while connecting")
            except asyncio.CancelledError:
                if generation == self._generation:
                    await self._teardown(ConnectionState.DISCONNECTED)
                raise
            except Exception as e:
                if generation != self._generation:
                    if isinstance(e, ConnectionLostError):
                        raise
                    raise ConnectionLostError("Disconnected while connecting") from e

                if isinstance(e, ExtensionClientError):
                    logger.error(f"Connection to {address} failed: {e}")
                else:
                    logger.exception(f"Unexpected error connecting to {address}")
                await self._teardown(ConnectionState.ERROR, e)
                raise

            self._server_info = server_info
            self._registry.replace(tools)
            self._set_state(ConnectionState.READY)
            logger.info(f"Connected to {address} with {len(tools)} tool(s)")

    async def _establish(self, address: str) -> tuple[ServerInfo, list[ToolDescriptor]]:
        http_client = self._ensure_http_client()
        channel = self._channel_factory(address, http_client, self.config)
        engine = RPCEngine(
            http_client,
            timeouts=self.config.timeouts,
            headers=self.config.headers,
            on_notification=self._notify,
        )
        endpoint_future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

        self._channel = channel
        self._engine = engine
        self._endpoint_future = endpoint_future

        await channel.open()
        self._reader_task = asyncio.create_task(
            self._read_loop(channel, engine, endpoint_future)
        )

        try:
            await asyncio.wait_for(endpoint_future, timeout=self.config.endpoint_timeout)
        except TimeoutError:
            raise TransportError(
                f"Server did not announce a write endpoint within {self.config.endpoint_timeout:g}s"
            ) from None

        return await self._handshake(engine)

    async def _handshake(self, engine: RPCEngine) -> tuple[ServerInfo, list[ToolDescriptor]]:
        """initialize -> notifications/initialized -> tools/list."""
        result = await engine.send_request(
            METHOD_INITIALIZE,
            {
                "protocolVersion": self.config.protocol_version,
                "capabilities": CLIENT_CAPABILITIES,
                "clientInfo": {
                    "name": self.config.client_name,
                    "version": self.config.client_version,
                },
            },
        )
        if not isinstance(result, dict):
            raise ProtocolError(f"Unexpected initialize result: {str(result)[:100]}")
        try:
            server_info = ServerInfo.model_validate(result)
        except ValidationError as e:
            raise ProtocolError(f"Malformed initialize result: {e}") from e
        logger.info(f"Server: {server_info.name or 'unknown'} {server_info.version or ''}".rstrip())

        await engine.send_notification(METHOD_INITIALIZED)

        tools = parse_tool_listing(await engine.send_request(METHOD_LIST_TOOLS))
        return server_info, tools

    async def disconnect(self) -> None:
        """Tear down the connection. Safe to call from any state, never raises."""
        self._generation += 1
        await self._teardown(ConnectionState.DISCONNECTED)

    async def _teardown(self, state: ConnectionState, error: Exception | None = None) -> None:
        reader, self._reader_task = self._reader_task, None
        channel, self._channel = self._channel, None
        engine, self._engine = self._engine, None
        endpoint_future, self._endpoint_future = self._endpoint_future, None

        # Synchronous part first: no request may register once clearing starts
        if engine is not None:
            engine.close(ConnectionLostError())
        if endpoint_future is not None and not endpoint_future.done():
            endpoint_future.set_exception(ConnectionLostError())
        self._registry.clear()
        self._server_info = None
        self._set_state(state, error)

        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        if channel is not None:
            try:
                await channel.close()
            except Exception as e:
                logger.warning(f"Error closing push channel: {e}")

    async def _read_loop(
        self,
        channel: SSEChannel,
        engine: RPCEngine,
        endpoint_future: asyncio.Future[str],
    ) -> None:
        """Own the push channel until it closes or the task is cancelled."""
        error: Exception | None = None
        try:
            async with contextlib.aclosing(channel.events()) as events:
                async for event in events:
                    if event.type == ChannelEventType.OPENED:
                        logger.debug("Push channel delivering events")
                    elif event.type == ChannelEventType.ENDPOINT:
                        engine.set_endpoint(event.data or "")
                        if not endpoint_future.done():
                            endpoint_future.set_result(event.data or "")
                    elif event.type == ChannelEventType.MESSAGE:
                        try:
                            engine.dispatch(event.data or "")
                        except ProtocolError as e:
                            if self._state == ConnectionState.READY:
                                logger.warning(f"Dropping malformed message: {e}")
                                continue
                            error = e
                            break
                    elif event.type == ChannelEventType.CLOSED:
                        error = event.error
                        break
        except asyncio.CancelledError:
            raise
        except ExtensionClientError as e:
            logger.error(f"Read loop error: {e}")
            error = e
        except Exception as e:
            logger.exception("Unexpected error in read loop")
            error = e

        if error is not None:
            await self._handle_transport_failure(engine, endpoint_future, error)

    async def _handle_transport_failure(
        self,
        engine: RPCEngine,
        endpoint_future: asyncio.Future[str],
        error: Exception,
    ) -> None:
        logger.warning(f"Transport failure: {error}")
        if not endpoint_future.done():
            endpoint_future.set_exception(error)

        # Unblocks a handshake in progress; connect() handles its own teardown
        if isinstance(error, ProtocolError):
            engine.close(error)
        else:
            engine.close(ConnectionLostError(f"Connection lost: {error}"))

        if self._engine is engine and self._state == ConnectionState.READY:
            await self._teardown(ConnectionState.ERROR, error)

    # =========================================================================
    # Operations (ready only)
    # =========================================================================

    def _require_ready(self) -> RPCEngine:
        if self._state != ConnectionState.READY or self._engine is None:
            raise NotConnectedError()
        return self._engine

    async def _call(self, engine: RPCEngine, method: str, params: dict[str, Any] | None) -> Any:
        try:
            return await engine.send_request(method, params)
        except ConnectionLostError:
            raise
        except TransportError as e:
            if self._engine is engine:
                await self._teardown(ConnectionState.ERROR, e)
            raise

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Call a remote tool by name.

        Raises:
            NotConnectedError: The client is not ready
            UnknownToolError: ``name`` is not in the registry (no request sent)
            RemoteError: The server rejected the call
        """
        engine = self._require_ready()
        if name not in self._registry:
            raise UnknownToolError(name)

        logger.info(f"Calling tool {name}")
        return await self._call(
            engine, METHOD_CALL_TOOL, {"name": name, "arguments": arguments or {}}
        )

    async def refresh(self) -> list[ToolDescriptor]:
        """Re-list remote tools and replace the registry."""
        engine = self._require_ready()
        tools = parse_tool_listing(await self._call(engine, METHOD_LIST_TOOLS, None))

        if self._engine is not engine:
            raise ConnectionLostError()
        self._registry.replace(tools)
        return tools

    # =========================================================================
    # Resource management
    # =========================================================================

    async def aclose(self) -> None:
        """Disconnect and release the HTTP client if this client created it."""
        await self.disconnect()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> ExtensionClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
