"""Тесты кольцевого буфера логов"""
import asyncio
import json
import logging

import pytest

from gateway.services.log_buffer import LogBuffer, ProviderLogAdapter

pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def buffer():
    buffer = LogBuffer(maxlen=3)
    test_logger = logging.getLogger("tests.log_buffer")
    test_logger.addHandler(buffer)
    test_logger.setLevel(logging.INFO)
    yield buffer
    test_logger.removeHandler(buffer)


class TestLogBuffer:
    def test_ring_is_bounded(self, buffer):
        test_logger = logging.getLogger("tests.log_buffer")
        for i in range(5):
            test_logger.info(f"line {i}")
        assert [entry["message"] for entry in buffer.snapshot()] == ["line 2", "line 3", "line 4"]

    def test_entry_types(self, buffer):
        test_logger = logging.getLogger("tests.log_buffer")
        test_logger.info("plain")
        ProviderLogAdapter(test_logger, {"provider": "files"}).info("Starting: npx")
        test_logger.error("broken")

        plain, mcp, error = buffer.snapshot()
        assert plain["type"] == "info"
        assert plain["mcpName"] is None
        assert mcp["type"] == "mcp"
        assert mcp["message"] == "Starting: npx"
        assert mcp["mcpName"] == "files"
        assert error["type"] == "error"
        assert plain["timestamp"].endswith("+00:00")

    def test_session_records(self):
        buffer = LogBuffer()
        record = logging.LogRecord("gateway.services.session", logging.INFO, __file__, 1, "[Session x] Created", None, None)
        assert buffer.to_entry(record)["type"] == "session"

    @pytest.mark.asyncio
    async def test_subscribers_receive_new_records(self, buffer):
        test_logger = logging.getLogger("tests.log_buffer")
        queue = buffer.subscribe()
        test_logger.info("hello")

        entry = await asyncio.wait_for(queue.get(), timeout=1)
        assert entry["message"] == "hello"

        buffer.unsubscribe(queue)
        assert buffer.subscriber_count == 0
        test_logger.info("after")
        assert queue.empty()


class TestLogStream:
    @pytest.mark.asyncio
    async def test_replays_buffer_then_streams_new_records(self, buffer):
        from gateway.routers.logs import _log_events

        test_logger = logging.getLogger("tests.log_buffer")
        test_logger.info("old")
        events = _log_events(buffer)

        first = await events.__anext__()
        assert json.loads(first[6:])["message"] == "old"

        test_logger.info("new")
        second = await asyncio.wait_for(events.__anext__(), timeout=1)
        assert json.loads(second[6:])["message"] == "new"

        await events.aclose()
        assert buffer.subscriber_count == 0
