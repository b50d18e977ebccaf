#!/usr/bin/env python3
"""
Basic MCP Tool Client Example

Launches the GitHub MCP server over stdio, lists its tools and opens an
issue through the typed helpers. Requires Node.js and a GITHUB_TOKEN.
"""

import asyncio
import logging
import os

from mcp_client import MCPClientBuilder, MCPClientError, ToolManager


async def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    print("=" * 60)
    print("MCP Tool Client - Basic Example")
    print("=" * 60)

    client = (
        MCPClientBuilder("basic-tool-client")
        .version("1.0.0")
        .command("npx", "@modelcontextprotocol/server-github")
        .env({"GITHUB_PERSONAL_ACCESS_TOKEN": os.environ.get("GITHUB_TOKEN", "")})
        .timeout(30.0)
        .build()
    )

    async with client:
        info = client.server_info
        print(f"\nConnected to {info.name} {info.version}")

        manager = ToolManager(client)
        print("\nAvailable tools:")
        for name in manager.list_available_tools():
            tool = manager.get_tool_info(name)
            print(f"  - {tool.name}: {tool.description}")

        print("\n" + "-" * 60)
        print("Creating an issue...")
        print("-" * 60)
        try:
            text = await manager.create_github_issue(
                "Example issue",
                body="Opened by the basic MCP client example",
            )
            print(f"\ncreate_issue: {text}")
        except MCPClientError as e:
            print(f"\ncreate_issue failed: {e}")


if __name__ == "__main__":
    asyncio.run(main())
