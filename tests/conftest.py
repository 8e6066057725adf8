"""Общие фикстуры тестов шлюза"""
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gateway.config import ProviderConfig
from gateway.services.backend_link import LinkState

FAKE_SERVER = str(Path(__file__).parent / "fake_server.py")


def fake_provider(name: str = "fake", mode: str = "normal", disabled: bool = False, **env: str) -> ProviderConfig:
    """Конфигурация провайдера, запускающего tests/fake_server.py."""
    return ProviderConfig(
        name=name,
        command=sys.executable,
        args=[FAKE_SERVER],
        env={"FAKE_MODE": mode, **env},
        disabled=disabled,
    )


class FakeLink:
    """BackendLink без процесса: инструменты и ответы задаются в тесте."""

    def __init__(self, name: str, timeout: float = 90, tools: Optional[List[Dict[str, Any]]] = None,
                 error: Optional[BaseException] = None):
        self.name = name
        self.timeout = timeout
        self.tools: List[Dict[str, Any]] = []
        self.state = LinkState.SPAWNING
        self.calls: List[tuple] = []
        self.stopped = 0
        self._declared_tools = tools or []
        self._error = error

    @property
    def is_ready(self) -> bool:
        return self.state == LinkState.READY

    async def start(self, config: ProviderConfig) -> None:
        self.state = LinkState.AWAITING_HANDSHAKE

    async def initialize(self) -> None:
        if self._error is not None:
            raise self._error
        self.tools = list(self._declared_tools)
        self.state = LinkState.READY

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((name, arguments))
        if name == "broken":
            return {"jsonrpc": "2.0", "id": "1", "error": {"code": -32000, "message": "backend failed"}}
        return {"jsonrpc": "2.0", "id": "1", "result": {"content": [{"type": "text", "text": arguments.get("text", "")}]}}

    async def stop(self) -> None:
        self.stopped += 1
        self.state = LinkState.CLOSED


def link_factory(spec: Dict[str, Any], created: Optional[Dict[str, FakeLink]] = None):
    """
    Фабрика FakeLink для Session: spec[name] — список инструментов или исключение.
    Созданные links складываются в created.
    """
    created = created if created is not None else {}

    def factory(name: str, timeout: float = 90) -> FakeLink:
        value = spec.get(name, [])
        if isinstance(value, BaseException):
            link = FakeLink(name, timeout, error=value)
        else:
            link = FakeLink(name, timeout, tools=[{"name": t, "description": t} for t in value])
        created[name] = link
        return link

    return factory


class RecordingEndpoint:
    def __init__(self, fail: bool = False):
        self.messages: List[Dict[str, Any]] = []
        self.closed = False
        self.fail = fail

    def send(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("client gone")
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def providers() -> Dict[str, ProviderConfig]:
    return {
        "alpha": ProviderConfig(name="alpha", command="alpha"),
        "beta": ProviderConfig(name="beta", command="beta"),
        "off": ProviderConfig(name="off", command="off", disabled=True),
    }
