#!/usr/bin/env python3
"""
MCP Tool Hub CLI
Register servers, discover their tools and call them from the terminal
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from toolhub.core.config import get_settings
from toolhub.core.errors import ToolhubError
from toolhub.core.schemas import Server
from toolhub.servers.runtime import Runtime, runtime_scope


def parse_pairs(pairs: Optional[List[str]], label: str) -> Dict[str, str]:
    """Turn KEY=VALUE strings into a dict."""
    result: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise SystemExit(f"Error: {label} must look like KEY=VALUE, got '{pair}'")
        result[key] = value
    return result


def print_server(server: Server) -> None:
    marker = "✅" if server.enabled else "⏸️"
    print(f"\n{marker} {server.name} ({server.id})")
    print(f"   Transport: {server.config.transport}")
    if server.config.transport == "stdio":
        print(f"   Command: {server.config.command} {' '.join(server.config.args)}".rstrip())
    else:
        print(f"   URL: {server.config.url}")
    print(f"   Status: {server.status.value}")
    print(f"   Tools: {len(server.tools)}")


async def cmd_list(runtime: Runtime, args: argparse.Namespace) -> int:
    servers = await runtime.registry.list_all()
    print(f"\n=== REGISTERED SERVERS ===")
    if not servers:
        print("No servers registered")
    for server in servers:
        print_server(server)
    return 0


async def cmd_add(runtime: Runtime, args: argparse.Namespace) -> int:
    if args.command == "add-stdio":
        config: Dict[str, Any] = {
            "transport": "stdio",
            "command": args.server_command,
            "args": list(args.args or []),
            "env": parse_pairs(args.env, "--env"),
        }
    else:
        config = {"transport": "sse", "url": args.url, "headers": parse_pairs(args.header, "--header")}

    server = await runtime.registry.save(Server(id=args.id, name=args.name or args.id, config=config))
    print(f"💾 Saved server {server.id}")
    if args.discover:
        return await cmd_discover(runtime, args)
    return 0


async def cmd_remove(runtime: Runtime, args: argparse.Namespace) -> int:
    await runtime.invoker.remove_server(args.id)
    print(f"🗑️ Removed server {args.id}")
    return 0


async def cmd_enable(runtime: Runtime, args: argparse.Namespace) -> int:
    enabled = args.command == "enable"
    server = await runtime.invoker.set_enabled(args.id, enabled)
    print_server(server)
    return 0


async def cmd_discover(runtime: Runtime, args: argparse.Namespace) -> int:
    print(f"🔌 Connecting to server {args.id}...")
    tools = await runtime.invoker.discover(args.id)
    print(f"\n=== DISCOVERED TOOLS ({len(tools)}) ===")
    for tool in tools:
        print(f"- {tool.name}: {tool.description or 'No description'}")
    return 0


async def cmd_refresh(runtime: Runtime, args: argparse.Namespace) -> int:
    outcomes = await runtime.invoker.refresh_all()
    print(f"\n=== REFRESH RESULTS ===")
    for outcome in outcomes:
        if outcome.error:
            print(f"❌ {outcome.server_id}: {outcome.error}")
        else:
            print(f"✅ {outcome.server_id}: {len(outcome.tools)} tools")
    return 1 if any(o.error for o in outcomes) else 0


async def cmd_tools(runtime: Runtime, args: argparse.Namespace) -> int:
    tools = await runtime.registry.all_available_tools()
    print(f"\n=== AVAILABLE TOOLS ===")
    if not tools:
        print("No tools available. Discover a server first.")
    for tool in tools:
        print(f"- [{tool.server_name}] {tool.name}: {tool.description or 'No description'}")
        if args.schema:
            print(json.dumps(tool.input_schema, indent=2))
    return 0


async def cmd_call(runtime: Runtime, args: argparse.Namespace) -> int:
    try:
        arguments = json.loads(args.arguments) if args.arguments else {}
    except json.JSONDecodeError as e:
        print(f"Error: --arguments is not valid JSON: {e}")
        return 2

    print(f"🛠️ Calling {args.tool_name} on {args.id}")
    result = await runtime.invoker.execute(args.tool_name, arguments, args.id, timeout_s=args.timeout)
    print(json.dumps(result.model_dump(by_alias=True, exclude_none=True), indent=2))
    return 0 if result.success else 1


COMMANDS = {
    "list": cmd_list,
    "add-stdio": cmd_add,
    "add-sse": cmd_add,
    "remove": cmd_remove,
    "enable": cmd_enable,
    "disable": cmd_enable,
    "discover": cmd_discover,
    "refresh": cmd_refresh,
    "tools": cmd_tools,
    "call": cmd_call,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MCP Tool Hub CLI")
    parser.add_argument("--database-url", help="Override TOOLHUB_DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List registered servers")

    stdio_parser = subparsers.add_parser("add-stdio", help="Register a server started as a subprocess")
    stdio_parser.add_argument("id", help="Server ID")
    stdio_parser.add_argument("server_command", metavar="command", help="Executable to start")
    stdio_parser.add_argument("args", nargs="*", help="Arguments for the executable")
    stdio_parser.add_argument("--name", help="Display name (defaults to the ID)")
    stdio_parser.add_argument("--env", action="append", help="Environment variable KEY=VALUE (repeatable)")
    stdio_parser.add_argument("--discover", action="store_true", help="Discover tools right after saving")

    sse_parser = subparsers.add_parser("add-sse", help="Register a server reached over HTTP event-stream")
    sse_parser.add_argument("id", help="Server ID")
    sse_parser.add_argument("url", help="SSE endpoint URL")
    sse_parser.add_argument("--name", help="Display name (defaults to the ID)")
    sse_parser.add_argument("--header", action="append", help="HTTP header KEY=VALUE (repeatable)")
    sse_parser.add_argument("--discover", action="store_true", help="Discover tools right after saving")

    for name, help_text in (
        ("remove", "Delete a server and its tools"),
        ("enable", "Enable a server"),
        ("disable", "Disable a server and drop its connection"),
        ("discover", "Connect to a server and store its tools"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("id", help="Server ID")

    subparsers.add_parser("refresh", help="Rediscover tools on every enabled server")

    tools_parser = subparsers.add_parser("tools", help="List tools of enabled, connected servers")
    tools_parser.add_argument("--schema", action="store_true", help="Print each tool's input schema")

    call_parser = subparsers.add_parser("call", help="Call a tool")
    call_parser.add_argument("id", help="Server ID")
    call_parser.add_argument("tool_name", help="Tool name")
    call_parser.add_argument("--arguments", "-a", help="Tool arguments as a JSON object")
    call_parser.add_argument("--timeout", type=float, help="Call timeout in seconds")

    return parser


async def run(args: argparse.Namespace) -> int:
    async with runtime_scope(database_url=args.database_url) as runtime:
        try:
            return await COMMANDS[args.command](runtime, args)
        except ToolhubError as e:
            print(f"❌ {type(e).__name__}: {e}")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(level=getattr(logging, get_settings().log_level.upper(), logging.INFO))
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
