"""Утилиты JSON-RPC 2.0: сборка сообщений, маппинг ошибок и разбиение потока на строки"""
import json
import logging
from typing import Any, Dict, List, Optional

from gateway.services.errors import GatewayError, INTERNAL_ERROR

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


def make_request(request_id: Any, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """JSON-RPC запрос. params не передаётся, если он None."""
    message = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def make_notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """JSON-RPC уведомление (без id, ответ не ожидается)."""
    message = {"jsonrpc": JSONRPC_VERSION, "method": method}
    if params is not None:
        message["params"] = params
    return message


def make_result(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> Dict[str, Any]:
    """JSON-RPC ответ с ошибкой"""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def error_from_exception(request_id: Any, exc: BaseException) -> Dict[str, Any]:
    """
    Преобразует исключение в JSON-RPC ошибку

    Ошибки шлюза отдаются со своим кодом и сообщением, всё остальное
    превращается в Internal error без подробностей (они уходят только в лог).
    """
    if isinstance(exc, GatewayError):
        return error_response(request_id, exc.code, exc.message)
    logger.error(f"Internal error while handling request {request_id}: {exc}", exc_info=exc)
    return error_response(request_id, INTERNAL_ERROR, "Internal error")


def encode_message(message: Dict[str, Any]) -> bytes:
    """Сериализация сообщения в одну строку с завершающим \\n."""
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


class LineFramer:
    """
    Собирает JSON-RPC сообщения из потока байт stdout

    Куски данных могут приходить с произвольными границами: неполная
    последняя строка остаётся в буфере до прихода следующего куска.
    Строки, не похожие на JSON объект, и битый JSON молча отбрасываются.
    """

    def __init__(self):
        self._buffer = b""

    @property
    def pending(self) -> bytes:
        return self._buffer

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(b"\n")

        messages = []
        for raw_line in lines:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line.startswith("{"):
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Dropping malformed line: {line[:200]}")
                continue
            if isinstance(data, dict):
                messages.append(data)
        return messages
