"""Tool definitions handed to the orchestrator's model.

The orchestrator supplies `{name, description, parameters}` entries to
the model and routes model-issued calls back through
`ToolInvoker.execute` using the `server_id` kept on each entry.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List

from toolhub.core.schemas import Server, Status


logger = logging.getLogger(__name__)


def fallback_description(tool_name: str, server_name: str) -> str:
    name = tool_name.lower()
    if "search" in name or "docs" in name:
        return f"Search and retrieve information from {server_name} documentation"
    readable = re.sub(r"[-_]+", " ", tool_name).strip()
    return f"Access {readable} functionality from {server_name}"


def usable_servers(servers: Iterable[Server]) -> List[Server]:
    return [s for s in servers if s.enabled and s.status == Status.CONNECTED and s.tools]


def tool_definitions(servers: Iterable[Server]) -> List[Dict[str, Any]]:
    """Model-facing definitions for every tool of enabled, connected servers.

    Tool names are the model's call handle, so when two servers expose the
    same name the first server listed keeps it.
    """
    definitions: List[Dict[str, Any]] = []
    seen: Dict[str, str] = {}
    for server in usable_servers(servers):
        for tool in server.tools:
            if tool.name in seen:
                logger.warning(
                    "catalog.duplicate tool name skipped",
                    extra={"tool": tool.name, "server_id": server.id, "kept_server_id": seen[tool.name]},
                )
                continue
            seen[tool.name] = server.id
            definitions.append(
                {
                    "name": tool.name,
                    "description": tool.description or fallback_description(tool.name, server.name),
                    "parameters": tool.input_schema,
                    "server_id": server.id,
                }
            )
    return definitions


def servers_summary(servers: Iterable[Server]) -> str:
    """One line for the system prompt naming the servers the model can use."""
    usable = usable_servers(servers)
    if not usable:
        return ""
    return f"You have access to {len(usable)} MCP server(s): {', '.join(s.name for s in usable)}."
