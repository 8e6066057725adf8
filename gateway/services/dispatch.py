"""Обработка JSON-RPC запросов, пришедших в сессию через POST /session/{id}"""
import logging
from typing import Any, Dict

from gateway.config import GATEWAY_NAME, GATEWAY_VERSION, PROTOCOL_VERSION
from gateway.services.errors import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND
from gateway.services.jsonrpc import JSONRPC_VERSION, error_from_exception, error_response, make_result
from gateway.services.session import Session

logger = logging.getLogger(__name__)

# Ответ на POST, когда сам результат уходит клиентам через SSE
ACCEPTED = {"status": "ok"}


def _server_info() -> Dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {"tools": {}},
        "serverInfo": {
            "name": GATEWAY_NAME,
            "version": GATEWAY_VERSION,
        },
    }


async def dispatch(session: Session, message: Any) -> Dict[str, Any]:
    """
    Выполнение одного JSON-RPC запроса в контексте сессии

    Ответы на initialize, tools/list и tools/call рассылаются всем
    подключённым к сессии SSE клиентам, а POST получает {"status": "ok"}.
    ping и ошибки разбора запроса возвращаются прямо в теле ответа на POST.

    Returns:
        Тело HTTP ответа
    """
    if not isinstance(message, dict) or not isinstance(message.get("method"), str):
        request_id = message.get("id") if isinstance(message, dict) else None
        return error_response(request_id, INVALID_REQUEST, "Invalid Request")

    method = message["method"]
    request_id = message.get("id")

    if method == "notifications/initialized":
        return ACCEPTED

    if method == "ping":
        return make_result(request_id, {})

    if method not in ("initialize", "tools/list", "tools/call"):
        return error_response(request_id, METHOD_NOT_FOUND, f"Unknown method: {method}")

    try:
        if method == "initialize":
            await session.wait_links_created()
            session.check_available()
            reply = make_result(request_id, _server_info())
        else:
            # каталог полон только после handshake всех серверов
            await session.wait_ready()
            session.check_available()
            if method == "tools/list":
                reply = make_result(request_id, {"tools": session.catalog.tools()})
            else:
                reply = await _call_tool(session, request_id, message.get("params") or {})
    except Exception as e:
        reply = error_from_exception(request_id, e)

    session.broadcast(reply)
    return ACCEPTED


async def _call_tool(session: Session, request_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
    tool_name = params.get("name") if isinstance(params, dict) else None
    if not isinstance(tool_name, str) or not tool_name:
        return error_response(request_id, INVALID_PARAMS, "Missing tool name")
    arguments = params.get("arguments") or {}

    response = await session.call_tool(tool_name, arguments)
    if response.get("error") is not None:
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": response["error"]}
    return make_result(request_id, response.get("result"))
