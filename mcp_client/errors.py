"""MCP client exceptions."""

from typing import Any, Optional


class MCPClientError(Exception):
    """Base exception for the MCP client."""
    pass


class TransportError(MCPClientError):
    """Spawn, pipe or I/O failure."""
    pass


class ConnectionClosedError(TransportError):
    """The connection ended while a request was still waiting for its reply."""
    pass


class ProtocolError(MCPClientError):
    """Malformed message, unexpected message type or unsupported method."""
    pass


class RemoteError(ProtocolError):
    """JSON-RPC error reply received during handshake or discovery."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")


class CorrelationError(MCPClientError):
    """Request/response matching failure."""
    pass


class RequestTimeoutError(CorrelationError, TimeoutError):
    """No reply arrived within the allotted time."""
    pass


class ToolError(MCPClientError):
    """Failure scoped to a single tool call. The session stays usable."""
    pass


class ToolNotFoundError(ToolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool '{name}' not found")


class ToolExecutionError(ToolError):
    """The server ran the tool and reported ``isError``."""

    def __init__(self, name: str, result: Any):
        self.name = name
        self.result = result
        detail = getattr(result, "text", "") or "no details"
        super().__init__(f"Tool '{name}' failed: {detail}")


class ToolCallError(ToolError):
    """The server answered a tool call with a JSON-RPC error."""

    def __init__(self, name: str, code: int, message: str, data: Optional[Any] = None):
        self.name = name
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"Tool '{name}' rejected: RPC Error {code}: {message}")


class NotInitializedError(MCPClientError):
    """Operation requires a Ready session."""
    pass
