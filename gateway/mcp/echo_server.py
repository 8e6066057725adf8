"""
MCP stdio-сервер с одним инструментом echo.
Пример provider для шлюза и сервер для сквозных тестов:
    {"mcpServers": {"echo": {"command": "python", "args": ["-m", "gateway.mcp.echo_server"]}}}
"""
import logging
import sys

import anyio

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

logger = logging.getLogger(__name__)

SERVER_NAME = "gateway-echo"


def _create_server() -> Server:
    """Создаёт MCP-сервер с инструментом echo."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(
                name="echo",
                description="Возвращает переданный текст без изменений.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "text": {
                            "type": "string",
                            "description": "Текст для возврата",
                        },
                    },
                    "required": ["text"],
                },
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        if name == "echo":
            return [TextContent(type="text", text=str(arguments.get("text", "")))]
        raise ValueError(f"Unknown tool: {name}")

    return server


async def _run_stdio() -> None:
    """Запуск сервера поверх stdio (stdin/stdout)."""
    server = _create_server()
    init_options = server.create_initialization_options()

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, init_options)


def run_server() -> None:
    """Точка входа: запуск MCP-сервера (для subprocess)."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    anyio.run(_run_stdio, backend="asyncio")


if __name__ == "__main__":
    run_server()
