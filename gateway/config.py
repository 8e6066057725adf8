"""Конфигурация шлюза: переменные окружения и файл с MCP серверами"""
import json
import logging
import os
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from gateway.services.errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

# Сетевые настройки HTTP сервера
HOST = os.getenv("GATEWAY_HOST", "127.0.0.1")
PORT = int(os.getenv("GATEWAY_PORT", "3000"))

# Файл с описанием MCP серверов (формат {"mcpServers": {...}})
MCP_CONFIG_FILE = Path(os.getenv("MCP_CONFIG_FILE", "mcp-config.json"))

# Таймаут одного JSON-RPC запроса к backend-процессу
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "90"))

# Сколько живёт сессия без подключённых клиентов (по умолчанию 5 минут)
SESSION_GRACE_SECONDS = float(os.getenv("SESSION_GRACE_SECONDS", "300"))

# Размер кольцевого буфера логов для /logs
LOG_BUFFER_SIZE = int(os.getenv("LOG_BUFFER_SIZE", "1000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Версия протокола и идентичность шлюза в handshake
PROTOCOL_VERSION = "2024-11-05"
GATEWAY_NAME = "mcp-stdio-gateway"
GATEWAY_VERSION = "1.0.0"


class ProviderConfig(BaseModel):
    """Описание одного MCP сервера (provider) из конфигурационного файла."""
    name: str = ""
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    disabled: bool = False

    @property
    def enabled(self) -> bool:
        return not self.disabled


class GatewayConfig(BaseModel):
    mcpServers: Dict[str, ProviderConfig] = Field(default_factory=dict)


def load_providers(path: Path = MCP_CONFIG_FILE) -> Dict[str, ProviderConfig]:
    """
    Загрузка конфигурации MCP серверов из JSON файла

    Args:
        path: Путь к файлу конфигурации

    Returns:
        Словарь name -> ProviderConfig в порядке, заданном в файле

    Raises:
        ConfigurationError: файл не найден, не является JSON или не проходит валидацию
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load config {path}: {e}")

    try:
        config = GatewayConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config {path}: {e}")

    providers = {}
    for name, provider in config.mcpServers.items():
        provider.name = name
        providers[name] = provider

    enabled = [name for name, p in providers.items() if p.enabled]
    logger.info(f"Loaded {len(providers)} MCP servers from {path}, enabled: {enabled}")
    return providers


def enabled_providers(providers: Dict[str, ProviderConfig]) -> Dict[str, ProviderConfig]:
    """Только включённые серверы (disabled=false)."""
    return {name: p for name, p in providers.items() if p.enabled}
