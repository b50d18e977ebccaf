"""Shared fixtures: an in-memory transport and a scripted tool provider."""

import asyncio
import json

import pytest

from mcp_client.client import ClientConfig, MCPClient
from mcp_client.errors import TransportError
from mcp_client.transport import Transport, check_frame


GITHUB_TOOLS = [
    {
        "name": "create_issue",
        "description": "Create a GitHub issue",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Issue title"},
                "body": {"type": "string", "description": "Issue description"},
            },
            "required": ["title"],
        },
    },
    {
        "name": "create_pull_request",
        "description": "Create a GitHub pull request",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Pull request title"},
                "head": {"type": "string", "description": "Head branch"},
                "base": {"type": "string", "description": "Base branch"},
            },
            "required": ["title", "head", "base"],
        },
    },
]


class MockTransport(Transport):
    """
    In-memory transport.

    Every sent line is decoded and recorded in ``sent``; ``responder`` maps a
    sent message to the list of messages the "server" answers with.
    """

    def __init__(self, responder=None, fail_open=False):
        self.responder = responder
        self.fail_open = fail_open
        self.sent = []
        self.opened = False
        self.closed = False
        self.close_calls = 0
        self._incoming = None

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    async def open(self) -> None:
        if self.fail_open:
            raise TransportError("Failed to start MCP server 'missing': not found")
        self._incoming = asyncio.Queue()
        self.opened = True

    async def send(self, data: bytes) -> None:
        if not self.is_open:
            raise TransportError("Transport is closed")
        message = json.loads(check_frame(data))
        self.sent.append(message)
        if self.responder is not None:
            for reply in self.responder(message) or []:
                self.push(reply)

    def push(self, reply) -> None:
        """Queue one line for the client to read."""
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        if isinstance(reply, str):
            reply = reply.encode("utf-8")
        self._incoming.put_nowait(reply)

    def push_eof(self) -> None:
        self._incoming.put_nowait(None)

    async def receive_line(self):
        if self.closed:
            return None
        return await self._incoming.get()

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        if self._incoming is not None:
            self._incoming.put_nowait(None)

    def sent_methods(self):
        return [message["method"] for message in self.sent]


def reply(message, result):
    """Plain JSON-RPC 2.0 reply, as stock MCP servers send it."""
    return {"jsonrpc": "2.0", "id": message["id"], "result": result}


def error_reply(message, code, text):
    return {"jsonrpc": "2.0", "id": message["id"], "error": {"code": code, "message": text}}


def make_responder(
    tools=None,
    protocol_version="2024-11-05",
    on_call=None,
    tagged=False,
):
    """
    Build a responder that plays a well-behaved tool provider.

    ``on_call(message)`` returns the replies to a ``tools/call`` request;
    by default the call is answered with a text item echoing the tool name.
    With ``tagged`` replies carry the ``<method>/result`` discriminator.
    """
    tools = GITHUB_TOOLS if tools is None else tools

    def respond(message, result):
        data = reply(message, result)
        if tagged:
            data["method"] = message["method"] + "/result"
        return [data]

    def responder(message):
        method = message["method"]
        if method == "initialize":
            return respond(message, {
                "protocolVersion": protocol_version,
                "capabilities": {"tools": {"listChanged": True}},
                "serverInfo": {"name": "github-mcp", "version": "1.2.0"},
            })
        if method == "tools/list":
            return respond(message, {"tools": tools})
        if method == "tools/call":
            if on_call is not None:
                return on_call(message)
            name = message["params"]["name"]
            return respond(message, {
                "content": [{"type": "text", "text": f"{name} called"}],
                "isError": False,
            })
        return [error_reply(message, -32601, f"Unknown method: {method}")]

    return responder


@pytest.fixture
def transport():
    return MockTransport(responder=make_responder())


@pytest.fixture
def client(transport):
    return MCPClient(config=ClientConfig(name="test-client", request_timeout=2.0), transport=transport)
