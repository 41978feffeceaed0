"""Minimal stdio tool server used by the transport tests.

Speaks newline-delimited JSON-RPC. Pass ``--hang`` to never answer the
initialize request.
"""

import json
import sys
import time


TOOLS = [
    {
        "name": "echo",
        "description": "Echo the given text",
        "inputSchema": {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
    },
    {"name": "fail", "description": "Always reports an error", "inputSchema": {"type": "object", "properties": {}}},
    {"name": "crash", "description": "Exits without answering", "inputSchema": {"type": "object", "properties": {}}},
    {"name": "sleep", "inputSchema": {"type": "object", "properties": {"seconds": {"type": "number"}}}},
]


def send(message):
    sys.stdout.write(json.dumps(message) + "\n")
    sys.stdout.flush()


def text_result(text, is_error=False):
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def handle(request):
    method = request.get("method")
    params = request.get("params") or {}
    if method == "initialize":
        return {
            "protocolVersion": params.get("protocolVersion"),
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": "echo-server", "version": "0.1.0"},
        }
    if method == "ping":
        return {}
    if method == "tools/list":
        return {"tools": TOOLS}
    if method == "tools/call":
        name = params.get("name")
        arguments = params.get("arguments") or {}
        if name == "echo":
            return text_result(arguments.get("text", ""))
        if name == "fail":
            return text_result("boom", is_error=True)
        if name == "crash":
            sys.exit(3)
        if name == "sleep":
            time.sleep(float(arguments.get("seconds", 1)))
            return text_result("slept")
        raise KeyError(name)
    raise NotImplementedError(method)


def main():
    hang = "--hang" in sys.argv[1:]
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        request = json.loads(line)
        if "id" not in request:
            continue
        if hang:
            continue
        try:
            result = handle(request)
        except KeyError as e:
            send({"jsonrpc": "2.0", "id": request["id"], "error": {"code": -32602, "message": f"Unknown tool: {e}"}})
            continue
        except NotImplementedError as e:
            send({"jsonrpc": "2.0", "id": request["id"], "error": {"code": -32601, "message": f"Method not found: {e}"}})
            continue
        send({"jsonrpc": "2.0", "id": request["id"], "result": result})


if __name__ == "__main__":
    main()
