"""Иерархия ошибок шлюза. Каждая ошибка несёт JSON-RPC код для ответа клиенту."""
from __future__ import annotations

# Коды ошибок JSON-RPC 2.0 (+ серверные коды шлюза)
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SESSION_NOT_FOUND = -32001
SERVER_ERROR = -32000


class GatewayError(Exception):
    """Базовая ошибка шлюза."""
    code: int = SERVER_ERROR

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigurationError(GatewayError):
    """Конфигурация не загружена или нет ни одного включённого сервера."""


class SpawnError(GatewayError):
    """Процесс MCP сервера не удалось запустить."""


class HandshakeError(GatewayError):
    """Ошибка initialize / tools/list при подключении к серверу."""


class RequestTimeoutError(GatewayError):
    """Сервер не ответил на запрос за отведённое время."""

    def __init__(self, message: str = "Request timeout"):
        super().__init__(message)


class LinkClosedError(GatewayError):
    """Запрос к процессу, который не запущен или уже завершился."""


class ToolNotFoundError(GatewayError):
    code = INVALID_PARAMS

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found")
        self.tool_name = tool_name


class ProviderMissingError(GatewayError):
    def __init__(self, provider: str):
        super().__init__(f"MCP '{provider}' not found")
        self.provider = provider


class SessionNotFoundError(GatewayError):
    code = SESSION_NOT_FOUND

    def __init__(self, session_id: str = ""):
        super().__init__("Session not found")
        self.session_id = session_id


class ParseError(GatewayError):
    code = PARSE_ERROR

    def __init__(self, message: str = "Parse error"):
        super().__init__(message)
