"""
MCP Tools helpers.

Convenience wrappers around common tool-provider tools and the predefined
definitions of the GitHub tool provider.
"""

import logging
from typing import Any, Dict, List, Optional

from .client import MCPClient
from .errors import NotInitializedError, ToolError, ToolNotFoundError
from .protocol import TextContent, Tool, ToolInputSchema, ToolProperty


logger = logging.getLogger(__name__)


def _string_props(**descriptions: str) -> Dict[str, ToolProperty]:
    return {
        name: ToolProperty(type="string", description=description)
        for name, description in descriptions.items()
    }


def create_github_tools() -> List[Tool]:
    """Tool definitions exposed by the GitHub MCP server."""
    return [
        Tool(
            name="create_pull_request",
            description="Create a GitHub pull request",
            input_schema=ToolInputSchema(
                properties=_string_props(
                    title="Pull request title",
                    body="Pull request description",
                    head="Head branch",
                    base="Base branch",
                ),
                required=["title", "head", "base"],
            ),
        ),
        Tool(
            name="create_issue",
            description="Create a GitHub issue",
            input_schema=ToolInputSchema(
                properties=_string_props(
                    title="Issue title",
                    body="Issue description",
                ),
                required=["title"],
            ),
        ),
    ]


class ToolManager:
    """Typed helpers for calling well-known tools through an ``MCPClient``."""

    def __init__(self, client: MCPClient):
        self.client = client

    def _check_arguments(self, name: str, arguments: Dict[str, Any]) -> None:
        if not self.client.is_initialized():
            raise NotInitializedError("MCP client not initialized")
        tool = self.client.get_tool(name)
        if tool is None:
            raise ToolNotFoundError(name)
        missing = tool.input_schema.missing_required(arguments)
        if missing:
            raise ToolError(f"Missing required parameter(s) for '{name}': {', '.join(missing)}")

    async def _call(self, name: str, arguments: Dict[str, Any]) -> Optional[str]:
        self._check_arguments(name, arguments)
        result = await self.client.call_tool(name, arguments)
        for content in result.content:
            if isinstance(content, TextContent):
                return content.text
        return None

    async def create_github_pull_request(
        self,
        title: str,
        head: str,
        base: str,
        body: Optional[str] = None,
    ) -> Optional[str]:
        """Open a pull request. Returns the server's first text reply, if any."""
        arguments = {"title": title, "head": head, "base": base}
        if body is not None:
            arguments["body"] = body

        text = await self._call("create_pull_request", arguments)
        logger.info(f"Pull request created: {text}")
        return text

    async def create_github_issue(self, title: str, body: Optional[str] = None) -> Optional[str]:
        """Open an issue. Returns the server's first text reply, if any."""
        arguments = {"title": title}
        if body is not None:
            arguments["body"] = body

        text = await self._call("create_issue", arguments)
        logger.info(f"Issue created: {text}")
        return text

    def list_available_tools(self) -> List[str]:
        return self.client.list_tools()

    def get_tool_info(self, name: str) -> Optional[Tool]:
        return self.client.get_tool(name)
