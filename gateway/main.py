"""Главный файл приложения FastAPI"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gateway.config import (
    GATEWAY_NAME,
    GATEWAY_VERSION,
    HOST,
    LOG_BUFFER_SIZE,
    LOG_LEVEL,
    MCP_CONFIG_FILE,
    PORT,
    REQUEST_TIMEOUT_SECONDS,
    SESSION_GRACE_SECONDS,
    ProviderConfig,
    enabled_providers,
    load_providers,
)
from gateway.routers import health, logs, sse
from gateway.services.errors import ConfigurationError
from gateway.services.log_buffer import install_log_buffer, remove_log_buffer
from gateway.services.session import SessionRegistry

# Настройка логирования
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _log_banner(providers: Dict[str, ProviderConfig]) -> None:
    enabled = list(enabled_providers(providers))
    logger.info("=" * 60)
    logger.info(f"{GATEWAY_NAME} {GATEWAY_VERSION} started")
    logger.info(f"Server:  http://{HOST}:{PORT}")
    logger.info(f"Config:  {MCP_CONFIG_FILE}")
    logger.info(f"Enabled: {len(enabled)} MCPs ({', '.join(enabled) or 'None'})")
    logger.info(f"SSE endpoint: http://{HOST}:{PORT}/sse")
    logger.info("=" * 60)


def create_app(
    providers: Optional[Dict[str, ProviderConfig]] = None,
    grace_seconds: float = SESSION_GRACE_SECONDS,
    request_timeout: float = REQUEST_TIMEOUT_SECONDS,
) -> FastAPI:
    """
    Создание приложения

    Args:
        providers: Готовая конфигурация серверов; если None — читается MCP_CONFIG_FILE при старте
        grace_seconds: Время жизни сессии без подключённых клиентов
        request_timeout: Таймаут запроса к MCP серверу
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log_buffer = install_log_buffer(LOG_BUFFER_SIZE)
        try:
            loaded = providers if providers is not None else load_providers(MCP_CONFIG_FILE)
        except ConfigurationError as e:
            logger.error(f"Failed to load config: {e}")
            remove_log_buffer(log_buffer)
            raise

        app.state.providers = loaded
        app.state.log_buffer = log_buffer
        app.state.registry = SessionRegistry(
            loaded,
            grace_seconds=grace_seconds,
            request_timeout=request_timeout,
        )
        _log_banner(loaded)
        yield

        logger.info("Shutting down...")
        await app.state.registry.destroy_all()
        remove_log_buffer(log_buffer)

    app = FastAPI(title=GATEWAY_NAME, version=GATEWAY_VERSION, lifespan=lifespan)

    # Настройка CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Mcp-Session-Id"],
    )

    # Подключение роутеров
    app.include_router(sse.router)
    app.include_router(health.router)
    app.include_router(logs.router)
    return app


app = create_app()
