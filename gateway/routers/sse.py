"""Роутер MCP транспорта: SSE поток сессии и приём JSON-RPC запросов"""
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from gateway.services.dispatch import dispatch
from gateway.services.errors import ParseError, SessionNotFoundError
from gateway.services.jsonrpc import error_from_exception
from gateway.services.session import QueueEndpoint, Session, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mcp"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def _session_events(session: Session, endpoint: QueueEndpoint) -> AsyncGenerator[str, None]:
    """
    События SSE для одного клиента

    Первым идёт event: endpoint с адресом для POST запросов, дальше
    все сообщения, которые сессия рассылает клиентам.
    """
    try:
        yield f"event: endpoint\ndata: /session/{session.id}\n\n"
        while True:
            message = await endpoint.receive()
            if message is None:
                break
            yield f"data: {json.dumps(message, ensure_ascii=False)}\n\n"
    finally:
        session.detach(endpoint)


@router.get("/sse")
async def open_session(registry: SessionRegistry = Depends(get_registry)):
    """Новая сессия: серверы запускаются в фоне, клиент сразу получает поток."""
    session = registry.create()
    endpoint = QueueEndpoint()
    session.attach(endpoint)
    session.start_initialization()

    return StreamingResponse(
        _session_events(session, endpoint),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/session/{session_id}")
async def session_message(
    session_id: str,
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
):
    """
    JSON-RPC запрос в сессию

    Returns:
        404 — сессия не найдена, 400 — тело не является JSON,
        иначе результат dispatch()
    """
    try:
        session = registry.get(session_id)
    except SessionNotFoundError as e:
        return JSONResponse(status_code=404, content=error_from_exception(None, e))

    body = await request.body()
    try:
        message = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Request error: {e}")
        return JSONResponse(status_code=400, content=error_from_exception(None, ParseError()))

    return JSONResponse(content=await dispatch(session, message))
