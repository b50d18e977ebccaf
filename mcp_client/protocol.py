"""
MCP Protocol definitions.

Implements the Model Context Protocol message types and structures used by
the client. Every message kind is its own dataclass keyed by the ``method``
discriminator; ``Message`` is the closed union of all of them.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ProtocolError


logger = logging.getLogger(__name__)


JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2024-11-05"


class MCPErrorCode(Enum):
    """Standard JSON-RPC / MCP error codes."""
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TOOL_NOT_FOUND = -32000
    TOOL_EXECUTION_ERROR = -32001
    PERMISSION_DENIED = -32002
    TIMEOUT = -32003


def _get(data: dict, camel: str, snake: Optional[str] = None, default: Any = None) -> Any:
    """Read a field accepting both the camelCase and snake_case spelling."""
    if camel in data:
        return data[camel]
    if snake is not None and snake in data:
        return data[snake]
    return default


def _require(data: dict, camel: str, snake: Optional[str] = None) -> Any:
    value = _get(data, camel, snake)
    if value is None:
        raise KeyError(camel)
    return value


@dataclass
class MCPError:
    """JSON-RPC error object."""
    code: int
    message: str
    data: Optional[Any] = None

    @classmethod
    def from_code(cls, code: MCPErrorCode, message: str, data: Any = None) -> "MCPError":
        return cls(code=code.value, message=message, data=data)

    def to_dict(self) -> dict:
        result = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "MCPError":
        return cls(
            code=int(data.get("code", MCPErrorCode.INTERNAL_ERROR.value)),
            message=str(data.get("message", "")),
            data=data.get("data"),
        )


# ---------------------------------------------------------------------------
# Handshake payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientInfo:
    """Name and version the client announces during the handshake."""
    name: str
    version: str

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict) -> "ClientInfo":
        return cls(name=str(data["name"]), version=str(data["version"]))


@dataclass(frozen=True)
class ServerInfo:
    """Name and version reported by the server. Informational only."""
    name: str
    version: str

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict) -> "ServerInfo":
        return cls(name=str(data["name"]), version=str(data.get("version", "")))


@dataclass(frozen=True)
class ToolsCapability:
    list_changed: Optional[bool] = None

    def to_dict(self) -> dict:
        result = {}
        if self.list_changed is not None:
            result["listChanged"] = self.list_changed
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ToolsCapability":
        return cls(list_changed=_get(data, "listChanged", "list_changed"))


@dataclass(frozen=True)
class ResourcesCapability:
    subscribe: Optional[bool] = None
    list_changed: Optional[bool] = None

    def to_dict(self) -> dict:
        result = {}
        if self.subscribe is not None:
            result["subscribe"] = self.subscribe
        if self.list_changed is not None:
            result["listChanged"] = self.list_changed
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ResourcesCapability":
        return cls(
            subscribe=data.get("subscribe"),
            list_changed=_get(data, "listChanged", "list_changed"),
        )


@dataclass(frozen=True)
class ClientCapabilities:
    """Capabilities the client actually implements: tool discovery only."""
    tools: Optional[ToolsCapability] = field(
        default_factory=lambda: ToolsCapability(list_changed=True)
    )

    def to_dict(self) -> dict:
        result = {}
        if self.tools is not None:
            result["tools"] = self.tools.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ClientCapabilities":
        tools = data.get("tools")
        return cls(tools=ToolsCapability.from_dict(tools) if tools is not None else None)


@dataclass(frozen=True)
class ServerCapabilities:
    """
    Capabilities declared by the server.

    Stored but not enforced. Capability keys this client does not know are
    kept verbatim in ``extra``.
    """
    tools: Optional[ToolsCapability] = None
    resources: Optional[ResourcesCapability] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = dict(self.extra)
        if self.tools is not None:
            result["tools"] = self.tools.to_dict()
        if self.resources is not None:
            result["resources"] = self.resources.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ServerCapabilities":
        tools = data.get("tools")
        resources = data.get("resources")
        return cls(
            tools=ToolsCapability.from_dict(tools) if tools is not None else None,
            resources=ResourcesCapability.from_dict(resources) if resources is not None else None,
            extra={k: v for k, v in data.items() if k not in ("tools", "resources")},
        )


@dataclass(frozen=True)
class InitializeParams:
    protocol_version: str = MCP_PROTOCOL_VERSION
    capabilities: ClientCapabilities = field(default_factory=ClientCapabilities)
    client_info: ClientInfo = field(default_factory=lambda: ClientInfo("mcp-tool-client", "0.1.0"))

    def to_dict(self) -> dict:
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities.to_dict(),
            "clientInfo": self.client_info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InitializeParams":
        return cls(
            protocol_version=str(_require(data, "protocolVersion", "protocol_version")),
            capabilities=ClientCapabilities.from_dict(data.get("capabilities") or {}),
            client_info=ClientInfo.from_dict(_require(data, "clientInfo", "client_info")),
        )


@dataclass(frozen=True)
class InitializeResult:
    protocol_version: str
    capabilities: ServerCapabilities
    server_info: ServerInfo

    def to_dict(self) -> dict:
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": self.server_info.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InitializeResult":
        return cls(
            protocol_version=str(_require(data, "protocolVersion", "protocol_version")),
            capabilities=ServerCapabilities.from_dict(data.get("capabilities") or {}),
            server_info=ServerInfo.from_dict(_require(data, "serverInfo", "server_info")),
        )


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolProperty:
    """Schema of a single tool argument."""
    type: str
    description: str = ""
    enum: Optional[List[str]] = None

    def to_dict(self) -> dict:
        result = {"type": self.type, "description": self.description}
        if self.enum is not None:
            result["enum"] = list(self.enum)
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ToolProperty":
        enum = _get(data, "enum", "enum_values")
        return cls(
            type=str(data.get("type", "string")),
            description=str(data.get("description", "")),
            enum=list(enum) if enum is not None else None,
        )


@dataclass(frozen=True)
class ToolInputSchema:
    """JSON schema describing a tool's arguments."""
    type: str = "object"
    properties: Dict[str, ToolProperty] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)

    def missing_required(self, arguments: Optional[Dict[str, Any]]) -> List[str]:
        """Return the required argument names absent from ``arguments`` or set to None."""
        arguments = arguments or {}
        return [name for name in self.required if arguments.get(name) is None]

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "required": list(self.required),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolInputSchema":
        properties = data.get("properties") or {}
        return cls(
            type=str(_get(data, "type", "schema_type", "object")),
            properties={name: ToolProperty.from_dict(prop) for name, prop in properties.items()},
            required=[str(name) for name in data.get("required") or []],
        )


@dataclass(frozen=True)
class Tool:
    """Tool definition as advertised by a tool provider."""
    name: str
    description: str = ""
    input_schema: ToolInputSchema = field(default_factory=ToolInputSchema)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tool":
        name = data["name"]
        if not isinstance(name, str) or not name:
            raise ValueError(f"Invalid tool name: {name!r}")
        return cls(
            name=name,
            description=str(data.get("description") or ""),
            input_schema=ToolInputSchema.from_dict(_get(data, "inputSchema", "input_schema", {})),
        )


@dataclass(frozen=True)
class ListToolsParams:
    cursor: Optional[str] = None

    def to_dict(self) -> dict:
        return {"cursor": self.cursor} if self.cursor is not None else {}

    @classmethod
    def from_dict(cls, data: dict) -> "ListToolsParams":
        return cls(cursor=data.get("cursor"))


@dataclass(frozen=True)
class ListToolsResult:
    tools: List[Tool] = field(default_factory=list)
    next_cursor: Optional[str] = None

    def to_dict(self) -> dict:
        result = {"tools": [tool.to_dict() for tool in self.tools]}
        if self.next_cursor is not None:
            result["nextCursor"] = self.next_cursor
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ListToolsResult":
        tools = data["tools"]
        if not isinstance(tools, list):
            raise TypeError("tools must be a list")
        return cls(
            tools=[Tool.from_dict(tool) for tool in tools],
            next_cursor=_get(data, "nextCursor", "next_cursor"),
        )


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextContent:
    text: str
    type: str = field(default="text", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ImageContent:
    """Base64 encoded image payload."""
    data: str
    mime_type: str
    type: str = field(default="image", init=False)

    def to_dict(self) -> dict:
        return {"type": self.type, "data": self.data, "mimeType": self.mime_type}


@dataclass(frozen=True)
class ResourceContent:
    uri: str
    mime_type: Optional[str] = None
    text: Optional[str] = None
    blob: Optional[str] = None
    type: str = field(default="resource", init=False)

    def to_dict(self) -> dict:
        result = {"type": self.type, "uri": self.uri}
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        if self.text is not None:
            result["text"] = self.text
        if self.blob is not None:
            result["blob"] = self.blob
        return result


Content = Union[TextContent, ImageContent, ResourceContent]

CONTENT_TYPES = ("text", "image", "resource")


def content_from_dict(data: dict) -> Content:
    """Decode one content item of a tool-call result."""
    kind = data.get("type")
    if kind == "text":
        return TextContent(text=str(data["text"]))
    if kind == "image":
        return ImageContent(
            data=str(data["data"]),
            mime_type=str(_require(data, "mimeType", "mime_type")),
        )
    if kind == "resource":
        # MCP nests the payload under "resource"; the flat form is accepted too
        payload = data.get("resource", data)
        return ResourceContent(
            uri=str(payload["uri"]),
            mime_type=_get(payload, "mimeType", "mime_type"),
            text=payload.get("text"),
            blob=payload.get("blob"),
        )
    raise ValueError(f"Unknown content type: {kind!r}")


def _known_content(item: Any) -> bool:
    # Newer servers may send content kinds this client cannot represent
    if isinstance(item, dict) and item.get("type") not in CONTENT_TYPES:
        logger.warning(f"Skipping unsupported content type: {item.get('type')!r}")
        return False
    return True


@dataclass(frozen=True)
class CallToolParams:
    name: str
    arguments: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        result = {"name": self.name}
        if self.arguments is not None:
            result["arguments"] = self.arguments
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "CallToolParams":
        return cls(name=str(data["name"]), arguments=data.get("arguments"))


@dataclass(frozen=True)
class CallToolResult:
    content: List[Content] = field(default_factory=list)
    is_error: bool = False

    @property
    def text(self) -> str:
        """All text content items joined by newlines."""
        return "\n".join(c.text for c in self.content if isinstance(c, TextContent))

    def to_dict(self) -> dict:
        return {
            "content": [c.to_dict() for c in self.content],
            "isError": self.is_error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CallToolResult":
        content = data.get("content") or []
        if not isinstance(content, list):
            raise TypeError("content must be a list")
        return cls(
            content=[
                content_from_dict(item) for item in content
                if _known_content(item)
            ],
            is_error=bool(_get(data, "isError", "is_error", False)),
        )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def _envelope(jsonrpc: str, id: str, method: str) -> dict:
    return {"jsonrpc": jsonrpc, "id": id, "method": method}


@dataclass(frozen=True)
class InitializeRequest:
    METHOD = "initialize"
    id: str
    params: InitializeParams = field(default_factory=InitializeParams)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["params"] = self.params.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "InitializeRequest":
        return cls(
            id=str(data["id"]),
            params=InitializeParams.from_dict(data.get("params") or {}),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class InitializeResponse:
    METHOD = "initialize/result"
    id: str
    result: InitializeResult
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["result"] = self.result.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "InitializeResponse":
        return cls(
            id=str(data["id"]),
            result=InitializeResult.from_dict(data["result"]),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class ListToolsRequest:
    METHOD = "tools/list"
    id: str
    params: ListToolsParams = field(default_factory=ListToolsParams)
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["params"] = self.params.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ListToolsRequest":
        return cls(
            id=str(data["id"]),
            params=ListToolsParams.from_dict(data.get("params") or {}),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class ListToolsResponse:
    METHOD = "tools/list/result"
    id: str
    result: ListToolsResult
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["result"] = self.result.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "ListToolsResponse":
        return cls(
            id=str(data["id"]),
            result=ListToolsResult.from_dict(data["result"]),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class CallToolRequest:
    METHOD = "tools/call"
    id: str
    params: CallToolParams
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["params"] = self.params.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "CallToolRequest":
        return cls(
            id=str(data["id"]),
            params=CallToolParams.from_dict(data["params"]),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class CallToolResponse:
    METHOD = "tools/call/result"
    id: str
    result: CallToolResult
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        result = _envelope(self.jsonrpc, self.id, self.METHOD)
        result["result"] = self.result.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict) -> "CallToolResponse":
        return cls(
            id=str(data["id"]),
            result=CallToolResult.from_dict(data["result"]),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


@dataclass(frozen=True)
class ErrorMessage:
    """JSON-RPC error reply. Carries no method on the wire."""
    METHOD = None
    id: Optional[str]
    error: MCPError
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict:
        return {"jsonrpc": self.jsonrpc, "id": self.id, "error": self.error.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "ErrorMessage":
        error = data["error"]
        if not isinstance(error, dict):
            raise TypeError("error must be an object")
        msg_id = data.get("id")
        return cls(
            id=str(msg_id) if msg_id is not None else None,
            error=MCPError.from_dict(error),
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
        )


Message = Union[
    InitializeRequest,
    InitializeResponse,
    ListToolsRequest,
    ListToolsResponse,
    CallToolRequest,
    CallToolResponse,
    ErrorMessage,
]

Request = Union[InitializeRequest, ListToolsRequest, CallToolRequest]

MESSAGE_TYPES = {
    cls.METHOD: cls
    for cls in (
        InitializeRequest,
        InitializeResponse,
        ListToolsRequest,
        ListToolsResponse,
        CallToolRequest,
        CallToolResponse,
    )
}

# Request method -> method of the result that answers it
RESULT_METHODS = {
    InitializeRequest.METHOD: InitializeResponse.METHOD,
    ListToolsRequest.METHOD: ListToolsResponse.METHOD,
    CallToolRequest.METHOD: CallToolResponse.METHOD,
}


def generate_id() -> str:
    """Generate a unique message ID."""
    return str(uuid.uuid4())


def encode_message(message: Message) -> bytes:
    """Encode a message as a single newline-terminated JSON line."""
    text = json.dumps(message.to_dict(), ensure_ascii=False)
    if "\n" in text or "\r" in text:
        raise ProtocolError(f"Encoded {type(message).__name__} contains a newline")
    return (text + "\n").encode("utf-8")


def parse_json_line(line: Union[bytes, str]) -> dict:
    """Parse one line of wire data into a JSON object."""
    try:
        if isinstance(line, (bytes, bytearray)):
            line = line.decode("utf-8")
        data = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")
    return data


def decode_message(
    data: Union[bytes, str, dict],
    result_method: Optional[str] = None,
) -> Message:
    """
    Decode raw wire data into a typed message.

    Args:
        data: A JSON line or an already parsed JSON object.
        result_method: Result method to assume for plain JSON-RPC replies
            that carry ``result`` but no ``method``.

    Raises:
        ProtocolError: On invalid JSON, unsupported methods or malformed payloads.
    """
    if not isinstance(data, dict):
        data = parse_json_line(data)

    if "error" in data:
        cls = ErrorMessage
    elif "method" in data:
        cls = MESSAGE_TYPES.get(data["method"])
        if cls is None:
            raise ProtocolError(f"Unsupported method: {data['method']}")
    elif "result" in data:
        if result_method is None:
            raise ProtocolError(f"Cannot determine result type for id {data.get('id')!r}")
        cls = MESSAGE_TYPES[result_method]
    else:
        raise ProtocolError("Message has no method, result or error")

    try:
        return cls.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        name = cls.METHOD or "error"
        raise ProtocolError(f"Malformed {name} message: {e!r}") from e
