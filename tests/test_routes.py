"""Тесты HTTP роутов шлюза (FastAPI TestClient)"""
import json

import pytest
from fastapi.testclient import TestClient

from conftest import RecordingEndpoint, fake_provider
from gateway.main import create_app
from gateway.routers.sse import _session_events
from gateway.services.errors import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR, SESSION_NOT_FOUND
from gateway.services.session import QueueEndpoint, Session

pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def client():
    providers = {
        "fake": fake_provider("fake"),
        "off": fake_provider("off", disabled=True),
    }
    with TestClient(create_app(providers=providers)) as client:
        yield client


def _post(client, session_id, body):
    data = body if isinstance(body, (str, bytes)) else json.dumps(body)
    return client.post(f"/session/{session_id}", content=data, headers={"Content-Type": "application/json"})


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["activeSessions"] == 0
        assert data["enabledMCPs"] == ["fake"]
        assert data["totalMCPs"] == 2

    def test_health_counts_sessions(self, client):
        client.app.state.registry.create()
        assert client.get("/health").json()["activeSessions"] == 1

    def test_cors_preflight(self, client):
        response = client.options(
            "/sse",
            headers={"Origin": "http://example.com", "Access-Control-Request-Method": "GET"},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"


class TestSessionMessages:
    def test_unknown_session(self, client):
        response = _post(client, "does-not-exist", {"jsonrpc": "2.0", "id": 1, "method": "ping"})
        assert response.status_code == 404
        assert response.json()["error"] == {"code": SESSION_NOT_FOUND, "message": "Session not found"}

    def test_parse_error(self, client):
        session = client.app.state.registry.create()
        response = _post(client, session.id, "{not json")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == PARSE_ERROR

    def test_ping(self, client):
        session = client.app.state.registry.create()
        response = _post(client, session.id, {"jsonrpc": "2.0", "id": 42, "method": "ping"})
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 42, "result": {}}

    def test_unknown_method(self, client):
        session = client.app.state.registry.create()
        response = _post(client, session.id, {"jsonrpc": "2.0", "id": 1, "method": "prompts/list"})
        assert response.status_code == 200
        assert response.json()["error"]["code"] == METHOD_NOT_FOUND

    def test_invalid_request(self, client):
        session = client.app.state.registry.create()
        response = _post(client, session.id, {"jsonrpc": "2.0", "id": 1})
        assert response.json()["error"]["code"] == INVALID_REQUEST

    def test_tools_call_error_is_broadcast(self, client):
        session = client.app.state.registry.create()
        endpoint = RecordingEndpoint()
        session.attach(endpoint)
        client.portal.call(session.initialize)

        response = _post(client, session.id, {
            "jsonrpc": "2.0", "id": 9, "method": "tools/call",
            "params": {"name": "nothing", "arguments": {}},
        })
        assert response.json() == {"status": "ok"}
        assert endpoint.messages[-1]["id"] == 9
        assert endpoint.messages[-1]["error"]["code"] == INVALID_PARAMS

    def test_shutdown_destroys_sessions(self):
        app = create_app(providers={"fake": fake_provider("fake")})
        with TestClient(app) as client:
            session = client.app.state.registry.create()
        assert session.is_destroyed
        assert len(app.state.registry) == 0


class TestSessionEvents:
    @pytest.mark.asyncio
    async def test_stream_starts_with_endpoint_event(self, providers):
        session = Session(providers, grace_seconds=60)
        endpoint = QueueEndpoint()
        session.attach(endpoint)
        events = _session_events(session, endpoint)

        assert await events.__anext__() == f"event: endpoint\ndata: /session/{session.id}\n\n"

        session.broadcast({"jsonrpc": "2.0", "id": 1, "result": {"tools": []}})
        data = await events.__anext__()
        assert data.startswith("data: ")
        assert json.loads(data[6:]) == {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}

        endpoint.close()
        with pytest.raises(StopAsyncIteration):
            await events.__anext__()

        assert session.endpoints == set()
        assert session.cleanup_pending
        await session.destroy()
