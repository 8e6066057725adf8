"""Кольцевой буфер логов и рассылка новых записей подписчикам /logs"""
import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Set

logger = logging.getLogger(__name__)

SESSION_LOGGER = "gateway.services.session"
SUBSCRIBER_QUEUE_SIZE = 1000


class ProviderLogAdapter(logging.LoggerAdapter):
    """Добавляет имя MCP сервера к сообщению и в атрибут записи provider."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[{self.extra['provider']}] {msg}", kwargs


class LogBuffer(logging.Handler):
    """
    logging.Handler, который хранит последние записи и раздаёт новые подписчикам

    Запись: {"timestamp", "type", "message", "mcpName"}; type — error / mcp /
    session / info. Подписчик — asyncio.Queue; если очередь переполнена,
    запись для этого подписчика пропускается, emit никогда не блокируется.
    """

    def __init__(self, maxlen: int = 1000, level: int = logging.INFO):
        super().__init__(level=level)
        self.records: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._subscribers: Set[asyncio.Queue] = set()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = self.to_entry(record)
        except Exception:
            self.handleError(record)
            return

        self.records.append(entry)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(entry)
            except asyncio.QueueFull:
                pass

    @staticmethod
    def to_entry(record: logging.LogRecord) -> Dict[str, Any]:
        provider = getattr(record, "provider", None)
        message = record.getMessage()
        if provider and message.startswith(f"[{provider}] "):
            message = message[len(provider) + 3:]

        if record.levelno >= logging.ERROR:
            log_type = "error"
        elif provider:
            log_type = "mcp"
        elif record.name == SESSION_LOGGER:
            log_type = "session"
        else:
            log_type = "info"

        return {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "type": log_type,
            "message": message,
            "mcpName": provider,
        }

    def snapshot(self) -> List[Dict[str, Any]]:
        return list(self.records)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


def install_log_buffer(maxlen: int = 1000) -> LogBuffer:
    """Подключает LogBuffer к корневому логгеру и возвращает его."""
    buffer = LogBuffer(maxlen=maxlen)
    logging.getLogger().addHandler(buffer)
    return buffer


def remove_log_buffer(buffer: LogBuffer) -> None:
    logging.getLogger().removeHandler(buffer)
