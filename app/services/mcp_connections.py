"""
MCP connections: external MCP tool servers the chat agent can call.

Responsibility: CRUD over mcp_connections plus the health/tool-cache and
last-used bookkeeping the MCP client bridge writes back.
"""

import logging
import sqlite3
from typing import Any

from app.core.db import from_json, get_conn, new_id, now_iso, to_json

logger = logging.getLogger(__name__)

AUTH_TYPES = ("none", "bearer", "api_key")
SERVER_TYPES = ("remote", "stdio")
HEALTH_STATUSES = ("healthy", "unhealthy", "unknown")

# request field -> column
_UPDATABLE = {
    "name": "name",
    "description": "description",
    "server_url": "server_url",
    "server_type": "server_type",
    "auth_type": "auth_type",
    "auth_config": "auth_config",
    "is_active": "is_active",
}


def _row_to_connection(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "name": row["name"],
        "description": row["description"],
        "serverUrl": row["server_url"],
        "serverType": row["server_type"],
        "authType": row["auth_type"],
        "authConfig": from_json(row["auth_config"], {}),
        "isActive": bool(row["is_active"]),
        "availableTools": from_json(row["available_tools"], []),
        "lastHealthCheck": row["last_health_check"],
        "healthStatus": row["health_status"],
        "createdAt": row["created_at"],
        "lastUsed": row["last_used"],
    }


def list_connections(active_only: bool = False) -> list[dict[str, Any]]:
    sql = "SELECT * FROM mcp_connections"
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY name"
    conn = get_conn()
    try:
        rows = conn.execute(sql).fetchall()
    finally:
        conn.close()
    return [_row_to_connection(r) for r in rows]


def get_connection(connection_id: str) -> dict[str, Any] | None:
    conn = get_conn()
    try:
        row = conn.execute("SELECT * FROM mcp_connections WHERE id = ?", (connection_id,)).fetchone()
    finally:
        conn.close()
    return _row_to_connection(row) if row else None


def create_connection(
    name: str,
    server_url: str,
    description: str | None = None,
    server_type: str = "remote",
    auth_type: str = "none",
    auth_config: dict | None = None,
    is_active: bool = True,
    available_tools: list[dict] | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    connection_id = new_id()
    conn = get_conn()
    try:
        conn.execute(
            """
            INSERT INTO mcp_connections
                (id, user_id, name, description, server_url, server_type, auth_type, auth_config,
                 is_active, available_tools, health_status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'unknown', ?)
            """,
            (
                connection_id,
                user_id,
                name,
                description,
                server_url,
                server_type,
                auth_type,
                to_json(auth_config or {}),
                int(is_active),
                to_json(available_tools or []),
                now_iso(),
            ),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("[mcp_connections:create_connection] id=%s name=%r url=%s", connection_id, name, server_url)
    return get_connection(connection_id)


def update_connection(connection_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Apply the given fields; returns the updated connection or None when it does not exist."""
    sets, params = [], []
    for key, column in _UPDATABLE.items():
        if key not in fields:
            continue
        value = fields[key]
        if key == "auth_config":
            value = to_json(value or {})
        elif key == "is_active":
            value = int(bool(value))
        sets.append(f"{column} = ?")
        params.append(value)
    if sets:
        conn = get_conn()
        try:
            conn.execute(f"UPDATE mcp_connections SET {', '.join(sets)} WHERE id = ?", (*params, connection_id))
            conn.commit()
        finally:
            conn.close()
    return get_connection(connection_id)


def toggle_active(connection_id: str) -> dict[str, Any] | None:
    current = get_connection(connection_id)
    if current is None:
        return None
    return update_connection(connection_id, {"is_active": not current["isActive"]})


def delete_connection(connection_id: str) -> bool:
    conn = get_conn()
    try:
        cur = conn.execute("DELETE FROM mcp_connections WHERE id = ?", (connection_id,))
        conn.commit()
    finally:
        conn.close()
    return cur.rowcount > 0


def mark_used(connection_id: str) -> None:
    conn = get_conn()
    try:
        conn.execute("UPDATE mcp_connections SET last_used = ? WHERE id = ?", (now_iso(), connection_id))
        conn.commit()
    finally:
        conn.close()


def record_health(connection_id: str, status: str, tools: list[dict] | None = None) -> None:
    """Store a health-check outcome; tools (when given) replace the cached tool list."""
    conn = get_conn()
    try:
        if tools is None:
            conn.execute(
                "UPDATE mcp_connections SET health_status = ?, last_health_check = ? WHERE id = ?",
                (status, now_iso(), connection_id),
            )
        else:
            conn.execute(
                "UPDATE mcp_connections SET health_status = ?, last_health_check = ?, available_tools = ? WHERE id = ?",
                (status, now_iso(), to_json(tools), connection_id),
            )
        conn.commit()
    finally:
        conn.close()
    logger.info("[mcp_connections:record_health] id=%s status=%s tools=%s", connection_id, status, None if tools is None else len(tools))
