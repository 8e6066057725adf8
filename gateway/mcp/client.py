"""
Проверка MCP серверов из конфигурации через официальный MCP SDK:
запускает сервер как subprocess, вызывает list_tools() и выводит имя + описание
каждого инструмента. Работает независимо от сессий шлюза.

    python -m gateway.mcp.client            # все включённые серверы
    python -m gateway.mcp.client echo       # один сервер
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from gateway.config import MCP_CONFIG_FILE, ProviderConfig, enabled_providers, load_providers
from gateway.services.errors import ConfigurationError


async def list_provider_tools(config: ProviderConfig) -> List[Dict[str, Any]]:
    """Запуск сервера, initialize + list_tools, список инструментов."""
    server_params = StdioServerParameters(
        command=config.command,
        args=config.args,
        env={**os.environ, **config.env},
    )

    async with stdio_client(server_params) as (read, write):
        async with ClientSession(read, write) as session:
            await session.initialize()
            tools_result = await session.list_tools()
            return [
                {
                    "name": tool.name,
                    "description": tool.description or "",
                    "inputSchema": tool.inputSchema,
                }
                for tool in tools_result.tools
            ]


async def run_check(config_path: Path, names: List[str]) -> int:
    """Выводит инструменты выбранных серверов. Возвращает код выхода."""
    try:
        providers = load_providers(config_path)
    except ConfigurationError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    selected = {n: providers[n] for n in names if n in providers} if names else enabled_providers(providers)
    missing = [n for n in names if n not in providers]
    for name in missing:
        print(f"⚠️  MCP '{name}' нет в {config_path}", file=sys.stderr)

    failed = bool(missing)
    for name, config in selected.items():
        print(f"\n{'='*60}")
        print(f"📦 MCP сервер: {name} ({config.command} {' '.join(config.args)})")
        print(f"{'='*60}")
        try:
            tools = await list_provider_tools(config)
        except Exception as e:
            print(f"❌ Ошибка: {e}")
            failed = True
            continue

        if not tools:
            print("⚠️  Инструменты не найдены.")
        for tool in tools:
            print(f"  - {tool['name']}: {tool['description'] or '(no description)'}")
    print()
    return 1 if failed else 0


def main() -> None:
    """Точка входа для запуска из командной строки."""
    parser = argparse.ArgumentParser(description="Проверка MCP серверов из конфигурации шлюза")
    parser.add_argument("names", nargs="*", help="Имена серверов (по умолчанию все включённые)")
    parser.add_argument("--config", default=str(MCP_CONFIG_FILE), help="Путь к mcp-config.json")
    ns = parser.parse_args()
    sys.exit(asyncio.run(run_check(Path(ns.config), ns.names)))


if __name__ == "__main__":
    main()
