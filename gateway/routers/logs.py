"""Роутер для просмотра логов шлюза в реальном времени (SSE)"""
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from gateway.routers.sse import SSE_HEADERS
from gateway.services.log_buffer import LogBuffer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["logs"])


async def _log_events(buffer: LogBuffer) -> AsyncGenerator[str, None]:
    """Сначала накопленные записи, затем новые по мере появления."""
    queue = buffer.subscribe()
    try:
        for entry in buffer.snapshot():
            yield f"data: {json.dumps(entry, ensure_ascii=False)}\n\n"
        while True:
            entry = await queue.get()
            yield f"data: {json.dumps(entry, ensure_ascii=False)}\n\n"
    finally:
        buffer.unsubscribe(queue)


@router.get("/logs")
async def logs(request: Request):
    return StreamingResponse(
        _log_events(request.app.state.log_buffer),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
