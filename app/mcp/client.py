"""
MCP client bridge: call tools on external MCP servers over JSON-RPC (HTTP POST).

Remote tools are offered to Claude as mcp_{connection id prefix}_{tool name}
so names from different servers cannot collide.
"""

import json
import logging
import re
import time
from typing import Any

import httpx

from app.core.config import MCP_HTTP_TIMEOUT
from app.services import mcp_connections

logger = logging.getLogger(__name__)

_TOOL_NAME = re.compile(r"^mcp_([a-f0-9]{8})_(.+)$")


def _auth_headers(connection: dict[str, Any]) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    auth = connection.get("authConfig") or {}
    if connection.get("authType") == "bearer" and auth.get("token"):
        headers["Authorization"] = f"Bearer {auth['token']}"
    elif connection.get("authType") == "api_key" and auth.get("apiKey"):
        headers[auth.get("apiKeyHeader") or "X-API-Key"] = auth["apiKey"]
    return headers


def _is_remote_http(connection: dict[str, Any]) -> bool:
    return connection.get("serverType") == "remote" and str(connection.get("serverUrl", "")).startswith("http")


def _rpc(connection: dict[str, Any], method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
    """POST one JSON-RPC request. Raises RuntimeError on HTTP or JSON-RPC errors; returns `result`."""
    payload: dict[str, Any] = {"jsonrpc": "2.0", "id": int(time.time() * 1000), "method": method}
    if params is not None:
        payload["params"] = params
    response = httpx.post(
        connection["serverUrl"],
        json=payload,
        headers=_auth_headers(connection),
        timeout=MCP_HTTP_TIMEOUT,
    )
    if response.status_code >= 400:
        raise RuntimeError(f"MCP server error ({response.status_code}): {response.text}")
    try:
        data = response.json()
    except ValueError as e:
        raise RuntimeError("MCP server returned invalid JSON") from e
    if data.get("error"):
        raise RuntimeError(data["error"].get("message") or "Unknown MCP error")
    return data.get("result") or {}


def execute_mcp_tool(connection_id: str, tool_name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """
    Call tool_name on the connection. Returns {"success": True, "data": ...} or {"success": False, "error": str}.
    Text content is joined and decoded as JSON when possible.
    """
    connection = mcp_connections.get_connection(connection_id)
    if connection is None:
        return {"success": False, "error": f"MCP connection not found: {connection_id}"}
    if not connection["isActive"]:
        return {"success": False, "error": f"MCP connection is disabled: {connection['name']}"}
    if not _is_remote_http(connection):
        return {"success": False, "error": f"Unsupported MCP server type: {connection['serverType']}"}

    logger.info("[mcp_client:execute_mcp_tool] IN  connection=%s tool=%s", connection["name"], tool_name)
    try:
        result = _rpc(connection, "tools/call", {"name": tool_name, "arguments": arguments or {}})
    except (httpx.HTTPError, RuntimeError) as e:
        logger.warning("[mcp_client:execute_mcp_tool] tool=%s failed: %s", tool_name, e)
        return {"success": False, "error": str(e) or "Unknown error executing MCP tool"}

    mcp_connections.mark_used(connection_id)
    content = result.get("content") or []
    if not content:
        return {"success": True, "data": None}
    text = "\n".join(c.get("text", "") for c in content if c.get("type") == "text")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = text
    logger.info("[mcp_client:execute_mcp_tool] OUT tool=%s text_len=%d", tool_name, len(text))
    return {"success": True, "data": data}


def list_remote_tools(connection: dict[str, Any]) -> list[dict[str, Any]]:
    """tools/list on a remote server. Raises RuntimeError (or httpx.HTTPError) on failure."""
    if not _is_remote_http(connection):
        raise RuntimeError(f"Unsupported MCP server type: {connection.get('serverType')}")
    result = _rpc(connection, "tools/list", {})
    tools = result.get("tools") or []
    return [
        {
            "name": t["name"],
            "description": t.get("description") or "",
            "inputSchema": t.get("inputSchema") or {"type": "object", "properties": {}},
        }
        for t in tools
        if isinstance(t, dict) and t.get("name")
    ]


def refresh_connection(connection_id: str) -> dict[str, Any]:
    """Health-check a connection by listing its tools and cache the result. Returns {success, tools?|error?}."""
    connection = mcp_connections.get_connection(connection_id)
    if connection is None:
        return {"success": False, "error": f"MCP connection not found: {connection_id}"}
    try:
        tools = list_remote_tools(connection)
    except (httpx.HTTPError, RuntimeError) as e:
        logger.warning("[mcp_client:refresh_connection] id=%s unhealthy: %s", connection_id, e)
        mcp_connections.record_health(connection_id, "unhealthy")
        return {"success": False, "error": str(e)}
    mcp_connections.record_health(connection_id, "healthy", tools)
    return {"success": True, "tools": tools}


def get_available_mcp_tools() -> list[dict[str, Any]]:
    """Cached tools of all active connections, each tagged with connectionId and connectionName."""
    tools = []
    for conn in mcp_connections.list_connections(active_only=True):
        for tool in conn["availableTools"] or []:
            if isinstance(tool, dict) and tool.get("name"):
                tools.append({**tool, "connectionId": conn["id"], "connectionName": conn["name"]})
    return tools


def mcp_tools_to_anthropic(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "name": f"mcp_{t['connectionId'][:8]}_{t['name']}",
            "description": f"[{t['connectionName']}] {t.get('description') or t['name']}",
            "input_schema": t.get("inputSchema") or {"type": "object", "properties": {}},
        }
        for t in tools
    ]


def is_mcp_tool(name: str) -> bool:
    return name.startswith("mcp_")


def parse_mcp_tool_name(name: str) -> tuple[str, str] | None:
    """Split mcp_{prefix}_{tool} into (connection id prefix, tool name)."""
    match = _TOOL_NAME.match(name)
    if not match:
        return None
    return match.group(1), match.group(2)


def find_connection_by_prefix(prefix: str) -> str | None:
    for conn in mcp_connections.list_connections(active_only=True):
        if conn["id"].startswith(prefix):
            return conn["id"]
    return None


def execute_mcp_tool_by_name(name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    parsed = parse_mcp_tool_name(name)
    if parsed is None:
        return {"success": False, "error": f"Invalid MCP tool name: {name}"}
    connection_id = find_connection_by_prefix(parsed[0])
    if connection_id is None:
        return {"success": False, "error": f"MCP connection not found for tool: {name}"}
    return execute_mcp_tool(connection_id, parsed[1], arguments)
