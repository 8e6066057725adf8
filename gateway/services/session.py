"""
Сессии шлюза: одна сессия = набор BackendLink (по одному на включённый
MCP сервер), общий каталог инструментов и подключённые SSE клиенты.
"""
import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Optional, Set

from gateway.config import REQUEST_TIMEOUT_SECONDS, SESSION_GRACE_SECONDS, ProviderConfig, enabled_providers
from gateway.services.backend_link import BackendLink
from gateway.services.catalog import CatalogAggregator
from gateway.services.errors import ConfigurationError, ProviderMissingError, SessionNotFoundError, ToolNotFoundError

logger = logging.getLogger(__name__)


class QueueEndpoint:
    """Подключённый SSE клиент: сообщения складываются в очередь и читаются роутером."""

    def __init__(self, maxsize: int = 0):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def send(self, message: Dict[str, Any]) -> None:
        self.queue.put_nowait(message)

    def close(self) -> None:
        # None: сигнал роутеру завершить поток
        self.queue.put_nowait(None)

    async def receive(self) -> Optional[Dict[str, Any]]:
        return await self.queue.get()


class Session:
    def __init__(
        self,
        providers: Dict[str, ProviderConfig],
        registry: Optional["SessionRegistry"] = None,
        grace_seconds: float = SESSION_GRACE_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        link_factory: Callable[..., BackendLink] = BackendLink,
    ):
        self.id = uuid.uuid4().hex
        self.providers = providers
        self.links: Dict[str, BackendLink] = {}
        self.catalog = CatalogAggregator()
        self.endpoints: Set[Any] = set()
        self.grace_seconds = grace_seconds
        self.request_timeout = request_timeout
        self.init_error: Optional[BaseException] = None

        self._registry = registry
        self._link_factory = link_factory
        self._cleanup_handle: Optional[asyncio.TimerHandle] = None
        self._links_created = asyncio.Event()
        self._init_done = asyncio.Event()
        self._init_task: Optional[asyncio.Task] = None
        self._destroy_task: Optional[asyncio.Task] = None
        self._destroyed = False

    @property
    def is_ready(self) -> bool:
        return self._init_done.is_set() and self.init_error is None

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    @property
    def cleanup_pending(self) -> bool:
        return self._cleanup_handle is not None

    async def initialize(self) -> None:
        """
        Запуск и handshake всех включённых серверов параллельно

        Ошибка одного сервера не мешает остальным: его инструменты просто
        не попадут в каталог. Если включённых серверов нет — ConfigurationError.
        """
        try:
            enabled = enabled_providers(self.providers)
            if not enabled:
                raise ConfigurationError("No MCP servers enabled")

            for name in enabled:
                self.links[name] = self._link_factory(name, timeout=self.request_timeout)
            self._links_created.set()

            results = await asyncio.gather(
                *(self._start_link(link, enabled[name]) for name, link in self.links.items()),
                return_exceptions=True,
            )
            for name, result in zip(self.links, results):
                if isinstance(result, BaseException):
                    logger.error(f"[Session {self.id}] MCP '{name}' unavailable: {result}")

            self.catalog.rebuild(self.links.values())
            ready = sum(1 for link in self.links.values() if link.is_ready)
            logger.info(f"[Session {self.id}] {ready}/{len(self.links)} MCPs initialized")
            logger.info(f"[Session {self.id}] {len(self.catalog)} total tools")
        except Exception as e:
            self.init_error = e
            raise
        finally:
            self._links_created.set()
            self._init_done.set()

    def start_initialization(self) -> asyncio.Task:
        """initialize() в фоне: сессия доступна клиенту ещё до готовности серверов."""
        self._init_task = asyncio.create_task(self._run_initialize())
        return self._init_task

    async def _run_initialize(self) -> None:
        try:
            await self.initialize()
        except ConfigurationError as e:
            logger.error(f"[Session {self.id}] Init failed: {e}")
        except Exception as e:
            logger.error(f"[Session {self.id}] Init failed: {e}", exc_info=True)

    @staticmethod
    async def _start_link(link: BackendLink, config: ProviderConfig) -> None:
        await link.start(config)
        await link.initialize()

    async def wait_links_created(self) -> None:
        await self._links_created.wait()

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """Ждёт завершения инициализации всех серверов (успешной или нет)."""
        await asyncio.wait_for(self._init_done.wait(), timeout=timeout)

    def check_available(self) -> None:
        """ConfigurationError (или исходная ошибка), если инициализация не создала ни одного сервера."""
        if self.init_error is not None:
            raise self.init_error
        if not self.links:
            raise ConfigurationError("No MCP servers enabled")

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Вызов инструмента на сервере, который его объявил

        Returns:
            Ответ сервера без изменений
        """
        entry = self.catalog.resolve(name)
        if entry is None:
            raise ToolNotFoundError(name)

        link = self.links.get(entry.provider)
        if link is None:
            raise ProviderMissingError(entry.provider)

        logger.info(f"[Session {self.id}] {name} -> {entry.provider}")
        return await link.call_tool(name, arguments)

    def attach(self, endpoint: Any) -> None:
        self.endpoints.add(endpoint)
        if self._cleanup_handle is not None:
            self._cleanup_handle.cancel()
            self._cleanup_handle = None

    def detach(self, endpoint: Any) -> None:
        """Отключение клиента. Последний отключившийся запускает таймер удаления сессии."""
        self.endpoints.discard(endpoint)
        if self.endpoints or self._destroyed:
            return
        if self._cleanup_handle is not None:
            self._cleanup_handle.cancel()
        loop = asyncio.get_running_loop()
        self._cleanup_handle = loop.call_later(self.grace_seconds, self._on_cleanup_timer)

    def _on_cleanup_timer(self) -> None:
        self._cleanup_handle = None
        if self.endpoints:
            return
        logger.info(f"[Session {self.id}] No clients for {self.grace_seconds}s, destroying")
        self._destroy_task = asyncio.create_task(self.destroy())

    def broadcast(self, message: Dict[str, Any]) -> None:
        """Отправляет сообщение всем подключённым клиентам сессии."""
        for endpoint in list(self.endpoints):
            try:
                endpoint.send(message)
            except Exception as e:
                logger.warning(f"[Session {self.id}] Dropping endpoint: {e!r}")
                self.detach(endpoint)

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True

        if self._cleanup_handle is not None:
            self._cleanup_handle.cancel()
            self._cleanup_handle = None
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()

        if self._registry is not None:
            self._registry.forget(self.id)

        for endpoint in list(self.endpoints):
            try:
                endpoint.close()
            except Exception as e:
                logger.warning(f"[Session {self.id}] Could not close endpoint: {e!r}")
        self.endpoints.clear()

        await asyncio.gather(*(link.stop() for link in self.links.values()))
        logger.info(f"[Session {self.id}] Destroyed")


class SessionRegistry:
    """
    Все активные сессии процесса

    Изменения словаря выполняются синхронно в потоке event loop,
    без точек ожидания, поэтому конкурентные create/forget не пересекаются.
    """

    def __init__(
        self,
        providers: Dict[str, ProviderConfig],
        grace_seconds: float = SESSION_GRACE_SECONDS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        link_factory: Callable[..., BackendLink] = BackendLink,
    ):
        self.providers = providers
        self.grace_seconds = grace_seconds
        self.request_timeout = request_timeout
        self._link_factory = link_factory
        self._sessions: Dict[str, Session] = {}

    def create(self) -> Session:
        session = Session(
            self.providers,
            registry=self,
            grace_seconds=self.grace_seconds,
            request_timeout=self.request_timeout,
            link_factory=self._link_factory,
        )
        self._sessions[session.id] = session
        logger.info(f"[Session {session.id}] Created")
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def forget(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def destroy_all(self) -> None:
        sessions = list(self._sessions.values())
        await asyncio.gather(*(session.destroy() for session in sessions))

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
