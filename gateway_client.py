#!/usr/bin/env python3
"""
Взаимодействие с MCP шлюзом через SSE.

Использование:
  python gateway_client.py                    # список инструментов всех серверов
  python gateway_client.py <tool> [args...]   # вызов инструмента (args в формате key=value)

Примеры:
  python gateway_client.py
  python gateway_client.py echo text=hello
  python gateway_client.py echo text="hello world" --url http://127.0.0.1:3000
"""
import argparse
import asyncio
import json
import sys
from typing import Any, Dict, Optional

import httpx

GATEWAY_URL = "http://127.0.0.1:3000"


class GatewayConnection:
    """SSE поток сессии + отправка JSON-RPC запросов на её endpoint."""

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.endpoint: Optional[str] = None
        self._messages: asyncio.Queue = asyncio.Queue()
        self._endpoint_ready = asyncio.Event()
        self._reader: Optional[asyncio.Task] = None
        self._next_id = 0

    async def __aenter__(self) -> "GatewayConnection":
        self._reader = asyncio.create_task(self._read_events())
        await asyncio.wait_for(self._endpoint_ready.wait(), timeout=10.0)
        return self

    async def __aexit__(self, *exc) -> None:
        if self._reader:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)

    async def _read_events(self) -> None:
        async with self.client.stream("GET", f"{self.base_url}/sse") as response:
            response.raise_for_status()
            event = "message"
            async for line in response.aiter_lines():
                if line.startswith("event: "):
                    event = line[7:].strip()
                elif line.startswith("data: "):
                    data = line[6:]
                    if event == "endpoint":
                        self.endpoint = data.strip()
                        self._endpoint_ready.set()
                    else:
                        try:
                            await self._messages.put(json.loads(data))
                        except json.JSONDecodeError:
                            continue
                elif not line:
                    event = "message"

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: float = 120.0) -> Dict[str, Any]:
        """Отправка запроса и ожидание ответа с тем же id из SSE потока."""
        self._next_id += 1
        request_id = self._next_id
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        r = await self.client.post(f"{self.base_url}{self.endpoint}", json=body)
        data = r.json()
        if "error" in data:
            raise RuntimeError(data["error"].get("message", data["error"]))

        while True:
            message = await asyncio.wait_for(self._messages.get(), timeout=timeout)
            if message.get("id") != request_id:
                continue
            if "error" in message:
                raise RuntimeError(message["error"].get("message", message["error"]))
            return message.get("result", {})


async def list_tools(base_url: str) -> None:
    """Получить и вывести список инструментов шлюза."""
    async with httpx.AsyncClient(timeout=None) as client:
        try:
            async with GatewayConnection(client, base_url) as conn:
                await conn.request("initialize")
                result = await conn.request("tools/list")
        except httpx.ConnectError:
            print(f"❌ Не удалось подключиться к шлюзу по адресу {base_url}")
            sys.exit(1)
        except Exception as e:
            print(f"❌ Ошибка: {e}")
            sys.exit(1)

    tools = result.get("tools", [])
    print(f"\n{'='*60}")
    print(f"📦 MCP шлюз: {base_url}")
    print(f"{'='*60}\n")
    if not tools:
        print("⚠️  Инструменты не найдены.")
        return
    print(f"🔧 Доступно инструментов: {len(tools)}\n")
    for i, t in enumerate(tools, 1):
        name = t.get("name", "?")
        desc = (t.get("description") or "")[:120]
        print(f"  {i}. {name}")
        if desc:
            print(f"     {desc}")
        props = t.get("inputSchema", {}).get("properties", {})
        if props:
            print(f"     Параметры: {', '.join(props.keys())}")
        print()
    print(f"{'='*60}\n")


def _parse_args(args: list) -> Dict[str, Any]:
    """Парсинг аргументов вида key=value в словарь."""
    out = {}
    for s in args:
        if "=" in s:
            k, v = s.split("=", 1)
            k = k.strip()
            v = v.strip()
            if v.startswith('"') and v.endswith('"'):
                v = v[1:-1]
            if v.lower() in ("true", "false"):
                v = v.lower() == "true"
            elif v.isdigit():
                v = int(v)
            out[k] = v
        else:
            out[s] = True
    return out


async def call_tool(base_url: str, tool_name: str, arguments: Dict[str, Any]) -> None:
    """Вызвать инструмент через шлюз и вывести результат."""
    async with httpx.AsyncClient(timeout=None) as client:
        try:
            async with GatewayConnection(client, base_url) as conn:
                await conn.request("initialize")
                result = await conn.request("tools/call", {"name": tool_name, "arguments": arguments})
        except httpx.ConnectError:
            print(f"❌ Не удалось подключиться к шлюзу по адресу {base_url}")
            sys.exit(1)
        except Exception as e:
            print(f"❌ Ошибка: {e}")
            sys.exit(1)

    content = result.get("content", [])
    if result.get("isError", False):
        print("❌ Инструмент вернул ошибку:\n")
    for item in content:
        if isinstance(item, dict):
            text = item.get("text", item.get("content", str(item)))
        else:
            text = str(item)
        print(text)
    if not content:
        print(json.dumps(result, ensure_ascii=False, indent=2))


def main():
    parser = argparse.ArgumentParser(
        description="Взаимодействие с MCP шлюзом",
        epilog="Примеры: %(prog)s  |  %(prog)s echo text=hello",
    )
    parser.add_argument(
        "tool",
        nargs="?",
        help="Имя инструмента для вызова (если не указано — вывод списка инструментов)",
    )
    parser.add_argument(
        "args",
        nargs="*",
        help="Аргументы в формате key=value (например: text=hello)",
    )
    parser.add_argument(
        "--url",
        default=GATEWAY_URL,
        help=f"URL шлюза (по умолчанию {GATEWAY_URL})",
    )
    ns = parser.parse_args()

    if ns.tool:
        asyncio.run(call_tool(ns.url, ns.tool, _parse_args(ns.args)))
    else:
        asyncio.run(list_tools(ns.url))


if __name__ == "__main__":
    main()
