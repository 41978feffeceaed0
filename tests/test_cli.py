from __future__ import annotations

import json

import pytest

import mcp_cli
from conftest import make_tool
from toolhub.core.errors import ConnectionFailure
from toolhub.servers.runtime import runtime_scope


@pytest.fixture
def cli(monkeypatch, transport, database_url):
    def scope(**kwargs):
        return runtime_scope(transport=transport, **kwargs)

    monkeypatch.setattr(mcp_cli, "runtime_scope", scope)

    def run(*argv: str) -> int:
        return mcp_cli.main(["--database-url", database_url, *argv])

    return run


def test_no_command_prints_help(capsys):
    assert mcp_cli.main([]) == 0
    assert "MCP Tool Hub CLI" in capsys.readouterr().out


def test_add_discover_and_call(cli, transport, capsys):
    transport.add("s1", tools=[make_tool("search", {"query": {"type": "string"}}, ["query"])])

    assert cli("add-stdio", "s1", "fake-server", "--name", "Search", "--env", "TOKEN=abc", "--discover") == 0
    out = capsys.readouterr().out
    assert "Saved server s1" in out
    assert "DISCOVERED TOOLS (1)" in out
    assert "- search: No description" in out

    assert cli("tools") == 0
    assert "- [Search] search" in capsys.readouterr().out

    assert cli("call", "s1", "search", "-a", '{"query": "x"}') == 0
    out = capsys.readouterr().out
    body = json.loads(out[out.index("{"):])
    assert body["success"] is True
    assert body["result"] == [{"type": "text", "text": '{"query": "x"}'}]


def test_list_shows_saved_config(cli, capsys):
    assert cli("add-sse", "docs", "http://localhost:9000/sse", "--header", "X-Key=k") == 0
    assert cli("list") == 0
    out = capsys.readouterr().out
    assert "docs (docs)" in out
    assert "URL: http://localhost:9000/sse" in out
    assert "Status: disconnected" in out


def test_call_failures_return_nonzero(cli, capsys):
    assert cli("call", "ghost", "search") == 1
    assert "ServerNotFound" in capsys.readouterr().out

    assert cli("call", "ghost", "search", "-a", "{not json") == 2
    assert "not valid JSON" in capsys.readouterr().out


def test_discover_unknown_server_reports_error(cli, capsys):
    assert cli("discover", "ghost") == 1
    assert "ServerNotFound" in capsys.readouterr().out


def test_disable_then_remove(cli, capsys):
    cli("add-stdio", "s1", "fake-server")
    assert cli("disable", "s1") == 0
    assert cli("call", "s1", "search") == 1
    assert "ServerDisabled" in capsys.readouterr().out

    assert cli("remove", "s1") == 0
    capsys.readouterr()
    assert cli("list") == 0
    assert "No servers registered" in capsys.readouterr().out


def test_refresh_exit_code_reflects_failures(cli, transport, capsys):
    cli("add-stdio", "ok", "fake-server")
    cli("add-stdio", "down", "fake-server")
    transport.add("ok", tools=[make_tool("ping")])
    transport.add("down", connect_error=ConnectionFailure("refused"))

    assert cli("refresh") == 1
    out = capsys.readouterr().out
    assert "✅ ok: 1 tools" in out
    assert "❌ down: refused" in out
