"""
MCP connection endpoints: register external MCP servers, health-check them and call their tools.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException

from app.mcp.client import execute_mcp_tool, get_available_mcp_tools, refresh_connection
from app.schemas.mcp import ConnectionCreateRequest, ConnectionUpdateRequest
from app.services import mcp_connections

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mcp-connections", tags=["mcp-connections"])


def _require(connection_id: str) -> dict:
    connection = mcp_connections.get_connection(connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail="MCP connection not found")
    return connection


@router.get("", summary="All MCP connections")
def list_connections(active_only: bool = False) -> dict:
    return {"connections": mcp_connections.list_connections(active_only=active_only)}


@router.post("", status_code=201, summary="Register an MCP server")
def create_connection(body: ConnectionCreateRequest) -> dict:
    return mcp_connections.create_connection(
        name=body.name,
        server_url=body.server_url,
        description=body.description,
        server_type=body.server_type,
        auth_type=body.auth_type,
        auth_config=body.auth_config,
        is_active=body.is_active,
    )


@router.get("/tools", summary="Cached tools of all active connections")
def available_tools() -> dict:
    return {"tools": get_available_mcp_tools()}


@router.get("/{connection_id}", summary="One MCP connection")
def get_connection(connection_id: str) -> dict:
    return _require(connection_id)


@router.patch("/{connection_id}", summary="Update an MCP connection")
def update_connection(connection_id: str, body: ConnectionUpdateRequest) -> dict:
    _require(connection_id)
    return mcp_connections.update_connection(connection_id, body.model_dump(exclude_unset=True))


@router.post("/{connection_id}/toggle", summary="Enable or disable a connection")
def toggle_connection(connection_id: str) -> dict:
    _require(connection_id)
    return mcp_connections.toggle_active(connection_id)


@router.post("/{connection_id}/refresh", summary="Health-check a connection and refresh its tool cache")
def refresh(connection_id: str) -> dict:
    _require(connection_id)
    return refresh_connection(connection_id)


@router.post("/{connection_id}/tools/{tool_name}", summary="Call a tool on a connection")
def call_tool(connection_id: str, tool_name: str, arguments: dict[str, Any] = Body(default_factory=dict)) -> dict:
    _require(connection_id)
    result = execute_mcp_tool(connection_id, tool_name, arguments)
    if not result["success"]:
        logger.warning("[api:call_tool] connection=%s tool=%s failed: %s", connection_id, tool_name, result["error"])
    return result


@router.delete("/{connection_id}", summary="Delete a connection")
def delete_connection(connection_id: str) -> dict:
    if not mcp_connections.delete_connection(connection_id):
        raise HTTPException(status_code=404, detail="MCP connection not found")
    return {"success": True}
