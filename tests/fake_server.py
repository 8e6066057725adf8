"""
Простой stdio JSON-RPC сервер для тестов BackendLink.

Режим задаётся переменной окружения FAKE_MODE:
  normal     — обычный handshake
  fail_init  — initialize возвращает ошибку
Инструменты (FAKE_TOOLS, JSON список) по умолчанию: echo, sleep, silent, fail, ask.
ask перед ответом сам шлёт клиенту запрос roots/list с числовым id,
равным id вызова.
Ответы пишутся в stdout двумя кусками, между сообщениями — посторонний вывод.
"""
import json
import os
import sys
import threading
import time

DEFAULT_TOOLS = [
    {"name": "echo", "description": "Echo text", "inputSchema": {"type": "object"}},
    {"name": "sleep", "description": "Reply after a delay", "inputSchema": {"type": "object"}},
    {"name": "silent", "description": "Never replies", "inputSchema": {"type": "object"}},
    {"name": "fail", "description": "Returns an error", "inputSchema": {"type": "object"}},
    {"name": "ask", "description": "Sends roots/list before replying", "inputSchema": {"type": "object"}},
]

MODE = os.environ.get("FAKE_MODE", "normal")
TOOLS = json.loads(os.environ["FAKE_TOOLS"]) if os.environ.get("FAKE_TOOLS") else DEFAULT_TOOLS

_lock = threading.Lock()


def write_raw(text):
    with _lock:
        sys.stdout.write(text)
        sys.stdout.flush()


def reply(request_id, result=None, error=None):
    message = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        message["error"] = error
    else:
        message["result"] = result
    line = json.dumps(message) + "\n"
    half = len(line) // 2
    with _lock:
        sys.stdout.write(line[:half])
        sys.stdout.flush()
        time.sleep(0.01)
        sys.stdout.write(line[half:])
        sys.stdout.write("progress: working...\n")
        sys.stdout.flush()


def delayed_reply(request_id, seconds, tag):
    time.sleep(seconds)
    reply(request_id, {"content": [{"type": "text", "text": tag}], "isError": False})


def handle(message):
    method = message.get("method")
    request_id = message.get("id")
    params = message.get("params") or {}

    if method is None:
        # ответы клиента на наши запросы
        return

    if method == "initialize":
        if MODE == "fail_init":
            reply(request_id, error={"code": -32603, "message": "init refused"})
        else:
            reply(request_id, {
                "protocolVersion": params.get("protocolVersion"),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake", "version": "0.1"},
            })
        return

    if request_id is None:
        return

    if method == "tools/list":
        reply(request_id, {"tools": TOOLS})
        return

    if method == "tools/call":
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if name == "echo":
            reply(request_id, {"content": [{"type": "text", "text": arguments.get("text", "")}], "isError": False})
        elif name == "sleep":
            threading.Thread(
                target=delayed_reply,
                args=(request_id, float(arguments.get("seconds", 0.1)), arguments.get("tag", "")),
                daemon=True,
            ).start()
        elif name == "silent":
            pass
        elif name == "fail":
            reply(request_id, error={"code": -32000, "message": "boom"})
        elif name == "ask":
            server_id = int(request_id) if str(request_id).isdigit() else request_id
            write_raw(json.dumps({"jsonrpc": "2.0", "id": server_id, "method": "roots/list"}) + "\n")
            reply(request_id, {"content": [{"type": "text", "text": "answered"}], "isError": False})
        else:
            reply(request_id, error={"code": -32602, "message": f"Unknown tool: {name}"})
        return

    reply(request_id, error={"code": -32601, "message": f"Unknown method: {method}"})


def main():
    sys.stderr.write("Downloading fake-package 1.0.0\n")
    sys.stderr.flush()
    sys.stderr.write("fake stderr ready\n")
    sys.stderr.flush()
    write_raw("fake server starting\n{not json\n")

    while True:
        line = sys.stdin.readline()
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        handle(json.loads(line))


if __name__ == "__main__":
    main()
