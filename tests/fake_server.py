"""
Minimal stdio tool provider used by the transport integration tests.

Answers initialize, tools/list and tools/call with newline-delimited
JSON-RPC replies. The ``echo`` tool returns its ``message`` argument; the
``exit`` tool terminates the process without answering.
"""

import json
import sys


TOOLS = [
    {
        "name": "echo",
        "description": "Echo the input",
        "inputSchema": {
            "type": "object",
            "properties": {"message": {"type": "string", "description": "Message to echo"}},
            "required": ["message"],
        },
    },
    {
        "name": "exit",
        "description": "Stop the server",
        "inputSchema": {"type": "object", "properties": {}, "required": []},
    },
]


def handle(request):
    method = request.get("method")
    if method == "initialize":
        return {
            "protocolVersion": "2024-11-05",
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": "fake-server", "version": "0.0.1"},
        }
    if method == "tools/list":
        return {"tools": TOOLS}
    if method == "tools/call":
        params = request.get("params") or {}
        if params.get("name") == "exit":
            sys.exit(0)
        message = (params.get("arguments") or {}).get("message", "")
        return {"content": [{"type": "text", "text": message}], "isError": False}
    return None


def main():
    sys.stderr.write("fake-server ready\n")
    sys.stderr.flush()
    for line in sys.stdin:
        request = json.loads(line)
        result = handle(request)
        if result is None:
            reply = {
                "jsonrpc": "2.0",
                "id": request.get("id"),
                "error": {"code": -32601, "message": f"Unknown method: {request.get('method')}"},
            }
        else:
            reply = {"jsonrpc": "2.0", "id": request["id"], "result": result}
        sys.stdout.write(json.dumps(reply) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    main()
