"""
MCP Client implementation.

Drives the handshake, tool discovery and tool invocation against a single
tool provider over a ``Transport``.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from .correlation import CorrelationEngine
from .errors import (
    ConnectionClosedError,
    MCPClientError,
    NotInitializedError,
    ProtocolError,
    RemoteError,
    ToolCallError,
    ToolExecutionError,
    ToolNotFoundError,
    TransportError,
)
from .protocol import (
    MCP_PROTOCOL_VERSION,
    CallToolParams,
    CallToolRequest,
    CallToolResponse,
    CallToolResult,
    ClientCapabilities,
    ClientInfo,
    ErrorMessage,
    InitializeParams,
    InitializeRequest,
    InitializeResponse,
    InitializeResult,
    ListToolsParams,
    ListToolsRequest,
    ListToolsResponse,
    Message,
    Request,
    ServerCapabilities,
    ServerInfo,
    Tool,
    decode_message,
    encode_message,
    generate_id,
    parse_json_line,
)
from .registry import ToolRegistry
from .transport import Transport, create_transport


logger = logging.getLogger(__name__)

# Sentinel for "use the configured request timeout"
_TIMEOUT_NOT_SPECIFIED = object()


class SessionState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ClientConfig:
    """Configuration for MCP client."""
    name: str = "mcp-tool-client"
    version: str = "0.1.0"
    server_url: str = "stdio://"
    command: Optional[str] = None
    args: Optional[List[str]] = None
    env: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    request_timeout: Optional[float] = 30.0
    protocol_version: str = MCP_PROTOCOL_VERSION

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "server_url": self.server_url,
            "command": self.command,
            "args": self.args,
            "cwd": self.cwd,
            "request_timeout": self.request_timeout,
            "protocol_version": self.protocol_version,
        }


class MCPClient:
    """
    Client for one MCP tool provider.

    Lifecycle: UNINITIALIZED -> INITIALIZING -> READY, or FAILED on any
    transport or protocol error. A FAILED client is never reused; build a
    new instance to reconnect.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
    ):
        self.config = config or ClientConfig()
        self._transport = transport
        self._registry = ToolRegistry()
        self._correlator = CorrelationEngine()
        self._state = SessionState.UNINITIALIZED
        self._failure: Optional[BaseException] = None
        self._init_result: Optional[InitializeResult] = None
        self._reader_task: Optional[asyncio.Task] = None

    # -- state accessors -------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def failure(self) -> Optional[BaseException]:
        """The error that moved the session to FAILED, if any."""
        return self._failure

    def is_initialized(self) -> bool:
        return self._state is SessionState.READY

    @property
    def server_info(self) -> Optional[ServerInfo]:
        return self._init_result.server_info if self._init_result else None

    @property
    def server_capabilities(self) -> Optional[ServerCapabilities]:
        return self._init_result.capabilities if self._init_result else None

    @property
    def server_protocol_version(self) -> Optional[str]:
        return self._init_result.protocol_version if self._init_result else None

    def _require_ready(self) -> None:
        if self._state is SessionState.READY:
            return
        if self._state is SessionState.FAILED:
            raise NotInitializedError(f"MCP client failed: {self._failure}")
        raise NotInitializedError("MCP client not initialized")

    def _resolve_timeout(self, timeout: Any) -> Optional[float]:
        if timeout is _TIMEOUT_NOT_SPECIFIED:
            return self.config.request_timeout
        return timeout

    # -- lifecycle -------------------------------------------------------

    async def initialize(self, timeout: Any = _TIMEOUT_NOT_SPECIFIED) -> None:
        """
        Connect, perform the handshake and load the tool list.

        Args:
            timeout: Overall time limit in seconds for handshake and discovery.
                Defaults to ``config.request_timeout``; None waits forever.

        Raises:
            TransportError: The server could not be started or the connection broke.
            ProtocolError: The server sent an unexpected or malformed reply.
            RequestTimeoutError: The server did not answer in time.
        """
        if self._state is SessionState.READY:
            logger.debug("MCP client already initialized")
            return
        if self._state is SessionState.FAILED:
            raise NotInitializedError(
                f"MCP client failed ({self._failure}); create a new client to retry"
            )
        if self._state is SessionState.INITIALIZING:
            raise MCPClientError("MCP client initialization already in progress")

        transport = self._transport or create_transport(
            self.config.server_url,
            command=self.config.command,
            args=self.config.args,
            env=self.config.env,
            cwd=self.config.cwd,
        )
        # A spawn failure leaves the client UNINITIALIZED
        await transport.open()
        self._transport = transport

        self._state = SessionState.INITIALIZING
        self._reader_task = asyncio.create_task(self._read_loop())

        timeout = self._resolve_timeout(timeout)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None

        try:
            await self._handshake(deadline)
            await self._discover(full_replace=True, deadline=deadline)
        except MCPClientError as e:
            logger.error(f"MCP initialization failed: {e}")
            await self._shutdown(e)
            raise
        except asyncio.CancelledError:
            await self._shutdown(ConnectionClosedError("Initialization cancelled"))
            raise

        if self._state is not SessionState.INITIALIZING:
            # The connection dropped right after the last reply
            failure = self._failure or ConnectionClosedError("Connection closed during initialization")
            await self._shutdown(failure)
            raise failure
        self._state = SessionState.READY

    async def close(self) -> None:
        """Fail all pending requests and terminate the server process."""
        await self._shutdown(ConnectionClosedError("Client closed"))

    def _mark_failed(self, exc: BaseException) -> None:
        if self._state in (SessionState.INITIALIZING, SessionState.READY):
            self._state = SessionState.FAILED
            self._failure = exc
        self._correlator.fail_all(exc)

    async def _shutdown(self, exc: BaseException) -> None:
        self._mark_failed(exc)

        task = self._reader_task
        if task is not None and task is not asyncio.current_task():
            self._reader_task = None
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if self._transport is not None and self._transport.is_open:
            await self._transport.close()

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # -- message plumbing ------------------------------------------------

    async def _read_loop(self) -> None:
        """
        Read lines from the transport and hand replies to their waiters.

        On end of stream every waiter fails and the session moves to FAILED;
        the process itself is reaped by ``close()``.
        """
        try:
            while True:
                line = await self._transport.receive_line()
                if line is None:
                    raise ConnectionClosedError("MCP server closed the connection")
                self._dispatch(line)
        except asyncio.CancelledError:
            raise
        except TransportError as e:
            logger.error(f"MCP connection lost: {e}")
            self._mark_failed(e)
        except Exception as e:
            logger.exception(f"Error in read loop: {e}")
            self._mark_failed(TransportError(f"Read loop failed: {e}"))

    def _dispatch(self, line: bytes) -> None:
        try:
            data = parse_json_line(line)
        except ProtocolError as e:
            logger.warning(f"Discarding undecodable line from server: {e}")
            return

        request_id = data.get("id")
        if request_id is None and "method" in data and "error" not in data:
            logger.debug(f"Ignoring server notification: {data['method']}")
            return

        result_method = self._correlator.expected_result(request_id)
        if result_method is None and "method" not in data and "error" not in data:
            logger.warning(f"Dropping orphaned response for id {request_id!r}")
            return

        try:
            message = decode_message(data, result_method)
        except ProtocolError as e:
            if request_id is not None and self._correlator.is_pending(str(request_id)):
                self._correlator.reject(request_id, e)
            else:
                logger.warning(f"Discarding malformed message: {e}")
            return

        if isinstance(message, ErrorMessage) and message.id is None:
            message = self._attribute_error(message)
            if message is None:
                return

        logger.debug(f"<- {type(message).__name__} {message.id}")
        self._correlator.resolve(message)

    def _attribute_error(self, message: ErrorMessage) -> Optional[ErrorMessage]:
        """
        Match an error reply without an id to the request it answers.

        Servers reply with a null id when they could not read the request id.
        The reply is attributed only when a single request is outstanding.
        """
        request_id = self._correlator.sole_pending_id()
        if request_id is None:
            logger.error(
                f"Server error without request id ({message.error.code}: {message.error.message}); "
                f"{self._correlator.pending_count} request(s) pending, cannot attribute it"
            )
            return None
        logger.warning(f"Attributing server error without id to request {request_id}")
        return replace(message, id=request_id)

    async def _request(self, request: Request, timeout: Optional[float]) -> Message:
        """Send ``request`` and wait for the message that answers it."""
        data = encode_message(request)
        pending = self._correlator.submit(request)
        try:
            await self._transport.send(data)
        except MCPClientError:
            self._correlator.discard(request.id)
            raise
        logger.debug(f"-> {request.METHOD} {request.id}")
        return await self._correlator.wait(pending, timeout)

    @staticmethod
    def _expect(reply: Message, expected: Type) -> Any:
        if isinstance(reply, ErrorMessage):
            raise RemoteError(reply.error.code, reply.error.message, reply.error.data)
        if not isinstance(reply, expected):
            raise ProtocolError(
                f"Unexpected MCP response: expected {expected.METHOD}, got {type(reply).__name__}"
            )
        return reply

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - asyncio.get_running_loop().time())

    # -- handshake and discovery ------------------------------------------

    async def _handshake(self, deadline: Optional[float]) -> None:
        request = InitializeRequest(
            id=generate_id(),
            params=InitializeParams(
                protocol_version=self.config.protocol_version,
                capabilities=ClientCapabilities(),
                client_info=ClientInfo(name=self.config.name, version=self.config.version),
            ),
        )
        reply = await self._request(request, self._remaining(deadline))
        result = self._expect(reply, InitializeResponse).result

        if result.protocol_version != self.config.protocol_version:
            logger.warning(
                f"MCP server speaks protocol {result.protocol_version}, "
                f"client expects {self.config.protocol_version}; continuing"
            )
        self._init_result = result
        logger.info(f"MCP server initialized: {result.server_info.name} {result.server_info.version}")

    async def _discover(self, full_replace: bool, deadline: Optional[float]) -> None:
        tools: List[Tool] = []
        cursor = None
        seen_cursors = set()

        while True:
            request = ListToolsRequest(id=generate_id(), params=ListToolsParams(cursor=cursor))
            reply = await self._request(request, self._remaining(deadline))
            result = self._expect(reply, ListToolsResponse).result
            tools.extend(result.tools)

            cursor = result.next_cursor
            if not cursor:
                break
            if cursor in seen_cursors:
                raise ProtocolError(f"Server repeated pagination cursor {cursor!r}")
            seen_cursors.add(cursor)

        for tool in tools:
            logger.debug(f"Loaded MCP tool: {tool.name}")
        if full_replace:
            count = self._registry.replace_all(tools)
        else:
            count = self._registry.register_all(tools)
        logger.info(f"Loaded {count} MCP tools")

    async def refresh_tools(
        self,
        full_replace: bool = False,
        timeout: Any = _TIMEOUT_NOT_SPECIFIED,
    ) -> List[str]:
        """
        Re-run tool discovery.

        By default new definitions are merged into the registry and tools the
        server no longer lists are kept; ``full_replace`` drops them.
        """
        self._require_ready()
        timeout = self._resolve_timeout(timeout)
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        try:
            await self._discover(full_replace=full_replace, deadline=deadline)
        except (TransportError, ProtocolError) as e:
            logger.error(f"Tool discovery failed: {e}")
            await self._shutdown(e)
            raise
        return self.list_tools()

    # -- invocation facade -----------------------------------------------

    def list_tools(self) -> List[str]:
        """Names of the discovered tools, sorted."""
        self._require_ready()
        return sorted(self._registry.names())

    def get_tool(self, name: str) -> Optional[Tool]:
        return self._registry.lookup(name)

    def has_tool(self, name: str) -> bool:
        return name in self._registry

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Any = _TIMEOUT_NOT_SPECIFIED,
    ) -> CallToolResult:
        """
        Invoke a tool on the server.

        Raises:
            NotInitializedError: The session is not READY.
            ToolNotFoundError: ``name`` was not discovered. Nothing is sent.
            ToolExecutionError: The server reported ``isError``.
            ToolCallError: The server answered with a JSON-RPC error.
            RequestTimeoutError: No reply in time. The session stays READY.
            TransportError, ProtocolError: The session moves to FAILED.
        """
        self._require_ready()
        if name not in self._registry:
            raise ToolNotFoundError(name)

        request = CallToolRequest(
            id=generate_id(),
            params=CallToolParams(name=name, arguments=arguments),
        )
        try:
            reply = await self._request(request, self._resolve_timeout(timeout))
            if isinstance(reply, ErrorMessage):
                raise ToolCallError(name, reply.error.code, reply.error.message, reply.error.data)
            result = self._expect(reply, CallToolResponse).result
        except (TransportError, ProtocolError) as e:
            logger.error(f"Tool call '{name}' failed: {e}")
            await self._shutdown(e)
            raise

        if result.is_error:
            raise ToolExecutionError(name, result)
        return result


class MCPClientBuilder:
    """Fluent construction of an ``MCPClient``."""

    def __init__(self, name: str):
        self._config = ClientConfig(name=name)
        self._transport: Optional[Transport] = None

    def version(self, version: str) -> "MCPClientBuilder":
        self._config.version = version
        return self

    def server_url(self, url: str) -> "MCPClientBuilder":
        self._config.server_url = url
        return self

    def command(self, command: str, *args: str) -> "MCPClientBuilder":
        self._config.command = command
        self._config.args = list(args)
        return self

    def args(self, *args: str) -> "MCPClientBuilder":
        self._config.args = list(args)
        return self

    def env(self, env: Dict[str, str]) -> "MCPClientBuilder":
        self._config.env = dict(env)
        return self

    def cwd(self, cwd: str) -> "MCPClientBuilder":
        self._config.cwd = cwd
        return self

    def timeout(self, seconds: Optional[float]) -> "MCPClientBuilder":
        self._config.request_timeout = seconds
        return self

    def transport(self, transport: Transport) -> "MCPClientBuilder":
        self._transport = transport
        return self

    def build(self) -> MCPClient:
        return MCPClient(config=self._config, transport=self._transport)
