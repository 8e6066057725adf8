"""
MCP-слой на официальном SDK: пример stdio-сервера (echo) и проверка
серверов из конфигурации. Шлюз сам с серверами говорит через BackendLink.
"""
from gateway.mcp.echo_server import run_server

__all__ = ["run_server"]
