"""
Подключение к одному MCP серверу (provider), запущенному как subprocess.

Link владеет процессом, собирает JSON-RPC сообщения из его stdout и
сопоставляет ответы с запросами по id. Каждый запрос ждёт свой
asyncio.Future не дольше REQUEST_TIMEOUT_SECONDS.
"""
import asyncio
import logging
import os
import subprocess
import sys
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from gateway.config import (
    GATEWAY_NAME,
    GATEWAY_VERSION,
    PROTOCOL_VERSION,
    REQUEST_TIMEOUT_SECONDS,
    ProviderConfig,
)
from gateway.services.errors import (
    METHOD_NOT_FOUND,
    GatewayError,
    HandshakeError,
    LinkClosedError,
    RequestTimeoutError,
    SpawnError,
)
from gateway.services.jsonrpc import (
    LineFramer,
    encode_message,
    error_response,
    make_notification,
    make_request,
)
from gateway.services.log_buffer import ProviderLogAdapter

logger = logging.getLogger(__name__)

# Лаунчеры, которым на Windows нужен явный суффикс исполняемого файла
WINDOWS_LAUNCHERS = {
    "npx": "npx.cmd",
    "uvx": "uvx.exe",
    "uv": "uv.exe",
}

# Шум в stderr (прогресс npm / загрузки пакетов), который не пишем в лог
STDERR_NOISE = ("npm", "Downloading")

READ_CHUNK_SIZE = 65536
STOP_WAIT_SECONDS = 5.0


class LinkState(str, Enum):
    SPAWNING = "spawning"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


def resolve_command(command: str, args: List[str], platform: str = sys.platform) -> Tuple[str, List[str], bool]:
    """
    Команда запуска с учётом платформы

    Returns:
        (command, args, use_shell) — на Windows лаунчеры получают суффикс
        и запускаются через shell
    """
    is_windows = platform == "win32"
    if is_windows:
        command = WINDOWS_LAUNCHERS.get(command, command)
    return command, list(args), is_windows


class BackendLink:
    """JSON-RPC клиент поверх stdin/stdout одного процесса MCP сервера."""

    def __init__(self, name: str, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.name = name
        self.timeout = timeout
        self.state = LinkState.SPAWNING
        self.tools: List[Dict[str, Any]] = []
        self.server_info: Dict[str, Any] = {}
        self.log = ProviderLogAdapter(logger, {"provider": name})

        self._process: Optional[asyncio.subprocess.Process] = None
        self._framer = LineFramer()
        self._pending: Dict[str, asyncio.Future] = {}
        self._request_id = 0
        self._tasks: List[asyncio.Task] = []

    @property
    def is_ready(self) -> bool:
        return self.state == LinkState.READY

    @property
    def is_running(self) -> bool:
        return (
            self._process is not None
            and self._process.returncode is None
            and self.state not in (LinkState.FAILED, LinkState.CLOSED)
        )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def start(self, config: ProviderConfig) -> None:
        """Запуск процесса и чтение его stdout/stderr в фоне"""
        command, args, use_shell = resolve_command(config.command, config.args)
        env = {**os.environ, **config.env}

        self.log.info(f"Starting: {command} {' '.join(args)}")
        pipes = dict(
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        try:
            if use_shell:
                self._process = await asyncio.create_subprocess_shell(
                    subprocess.list2cmdline([command, *args]), **pipes
                )
            else:
                self._process = await asyncio.create_subprocess_exec(command, *args, **pipes)
        except OSError as e:
            self.state = LinkState.FAILED
            self.log.error(f"Process error: {e}")
            raise SpawnError(f"Failed to start MCP '{self.name}': {e}") from e

        self.state = LinkState.AWAITING_HANDSHAKE
        self._tasks = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
            asyncio.create_task(self._watch_exit()),
        ]

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Отправка JSON-RPC запроса и ожидание ответа с тем же id

        Returns:
            Полный объект ответа (result или error)

        Raises:
            RequestTimeoutError: ответ не пришёл за self.timeout секунд
            LinkClosedError: процесс не запущен или закрыл stdin
        """
        self._request_id += 1
        request_id = str(self._request_id)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write(make_request(request_id, method, params))
            return await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError:
            self.log.warning(f"{method} (id={request_id}) timed out after {self.timeout}s")
            raise RequestTimeoutError()
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        await self._write(make_notification(method, params))

    async def initialize(self) -> None:
        """
        Handshake: initialize -> notifications/initialized -> tools/list

        Состояние READY выставляется сразу после успешного initialize.
        Ошибка на любом шаге — HandshakeError, процесс при этом не убивается.
        """
        self.log.info("Initializing...")
        try:
            response = await self.request("initialize", {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {
                    "name": GATEWAY_NAME,
                    "version": GATEWAY_VERSION,
                },
            })
        except GatewayError as e:
            raise HandshakeError(f"MCP '{self.name}' initialize failed: {e.message}") from e

        result = response.get("result")
        if not isinstance(result, dict):
            error = response.get("error") or {}
            raise HandshakeError(
                f"MCP '{self.name}' initialize failed: {error.get('message', 'empty result')}"
            )

        self.server_info = result.get("serverInfo") or {}
        self.state = LinkState.READY
        self.log.info(f"Initialized: {self.server_info.get('name', 'initialized')}")

        try:
            await self.notify("notifications/initialized")
            tools_response = await self.request("tools/list")
        except GatewayError as e:
            raise HandshakeError(f"MCP '{self.name}' tools/list failed: {e.message}") from e

        tools = (tools_response.get("result") or {}).get("tools")
        if not isinstance(tools, list):
            error = tools_response.get("error") or {}
            raise HandshakeError(
                f"MCP '{self.name}' tools/list failed: {error.get('message', 'no tools in result')}"
            )

        self.tools = tools
        self.log.info(f"{len(self.tools)} tools")

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("tools/call", {"name": name, "arguments": arguments})

    async def stop(self) -> None:
        """Остановка процесса. Повторный вызов и вызов после выхода процесса безопасны."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.kill()
                await asyncio.wait_for(process.wait(), timeout=STOP_WAIT_SECONDS)
            except ProcessLookupError:
                pass
            except (OSError, asyncio.TimeoutError) as e:
                self.log.warning(f"Could not confirm process exit: {e!r}")

        if self.state != LinkState.FAILED:
            self.state = LinkState.CLOSED

    async def _write(self, message: Dict[str, Any]) -> None:
        if not self.is_running or self._process.stdin is None:
            raise LinkClosedError(f"MCP '{self.name}' is not running")
        try:
            self._process.stdin.write(encode_message(message))
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise LinkClosedError(f"MCP '{self.name}' closed its input: {e}") from e

    def _handle_message(self, message: Dict[str, Any]) -> None:
        request_id = message.get("id")
        method = message.get("method")
        if method is not None:
            if request_id is None:
                self.log.debug(f"Notification from server: {method}")
            else:
                self._reject_server_request(request_id, method)
            return

        if "result" not in message and "error" not in message:
            self.log.debug(f"Dropping message without result or error: id={request_id}")
            return

        # id отправляются строками, ответ должен вернуть тот же id без изменений
        future = self._pending.pop(request_id, None) if isinstance(request_id, str) else None
        if future is None:
            self.log.debug(f"Dropping unmatched response id={request_id}")
            return
        if not future.done():
            future.set_result(message)

    def _reject_server_request(self, request_id: Any, method: str) -> None:
        """Запросы от самого сервера (roots/list, sampling/...) шлюз не поддерживает."""
        self.log.debug(f"Rejecting server request {method} (id={request_id})")
        if not self.is_running or self._process.stdin is None:
            return
        reply = error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
        try:
            self._process.stdin.write(encode_message(reply))
        except (BrokenPipeError, ConnectionResetError) as e:
            self.log.debug(f"Could not answer server request {method}: {e}")

    async def _read_stdout(self) -> None:
        stream = self._process.stdout
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for message in self._framer.feed(chunk):
                self._handle_message(message)

    async def _read_stderr(self) -> None:
        # stderr: только текст для лога, протокол здесь не разбирается
        stream = self._process.stderr
        buffer = b""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            *lines, buffer = (buffer + chunk).split(b"\n")
            for raw_line in lines:
                self._log_stderr_line(raw_line)
        self._log_stderr_line(buffer)

    def _log_stderr_line(self, raw_line: bytes) -> None:
        line = raw_line.decode("utf-8", errors="replace").strip()
        if not line or any(noise in line for noise in STDERR_NOISE):
            return
        self.log.info(line)

    async def _watch_exit(self) -> None:
        code = await self._process.wait()
        self.log.info(f"Process exited with code {code}")
        if self.state != LinkState.FAILED:
            self.state = LinkState.CLOSED
