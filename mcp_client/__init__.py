"""
MCP Tool Client - asyncio client for Model Context Protocol tool providers.

The Model Context Protocol (MCP) enables AI assistants to interact with
external tools and data sources through a standardized interface. This
package launches a tool provider, negotiates capabilities, discovers its
tools and invokes them.
"""

from .client import ClientConfig, MCPClient, MCPClientBuilder, SessionState
from .correlation import CorrelationEngine, PendingRequest
from .errors import (
    ConnectionClosedError,
    CorrelationError,
    MCPClientError,
    NotInitializedError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    ToolCallError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    TransportError,
)
from .protocol import (
    JSONRPC_VERSION,
    MCP_PROTOCOL_VERSION,
    CallToolResult,
    Content,
    ImageContent,
    MCPError,
    MCPErrorCode,
    Message,
    ResourceContent,
    ServerCapabilities,
    ServerInfo,
    TextContent,
    Tool,
    ToolInputSchema,
    ToolProperty,
    decode_message,
    encode_message,
)
from .registry import ToolRegistry
from .tools import ToolManager, create_github_tools
from .transport import StdioTransport, Transport, create_transport

__version__ = "0.1.0"

__all__ = [
    # Client
    "MCPClient",
    "MCPClientBuilder",
    "ClientConfig",
    "SessionState",
    # Protocol
    "JSONRPC_VERSION",
    "MCP_PROTOCOL_VERSION",
    "Message",
    "MCPError",
    "MCPErrorCode",
    "Tool",
    "ToolInputSchema",
    "ToolProperty",
    "CallToolResult",
    "Content",
    "TextContent",
    "ImageContent",
    "ResourceContent",
    "ServerInfo",
    "ServerCapabilities",
    "encode_message",
    "decode_message",
    # Errors
    "MCPClientError",
    "TransportError",
    "ConnectionClosedError",
    "ProtocolError",
    "RemoteError",
    "CorrelationError",
    "RequestTimeoutError",
    "ToolError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "ToolCallError",
    "NotInitializedError",
    # Internals
    "CorrelationEngine",
    "PendingRequest",
    "ToolRegistry",
    # Tools
    "ToolManager",
    "create_github_tools",
    # Transport
    "Transport",
    "StdioTransport",
    "create_transport",
]
