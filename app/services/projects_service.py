"""
Projects (spaces): folders that group chats, with optional custom instructions.

Degrades gracefully like chat history: database errors are logged and
surface as None / [] / False. Deleting a project detaches its chats.
"""

import logging
import sqlite3
from typing import Any

from app.core.db import get_conn, new_id, now_iso

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#FE5102"
DEFAULT_ICON = "folder"

_UPDATABLE = ("name", "description", "color", "icon")


def create_project(
    name: str,
    description: str | None = None,
    color: str | None = None,
    icon: str | None = None,
) -> dict[str, Any] | None:
    project_id = new_id()
    now = now_iso()
    try:
        conn = get_conn()
        try:
            conn.execute(
                """
                INSERT INTO projects (id, user_id, name, description, color, icon, created_at, updated_at)
                VALUES (?, NULL, ?, ?, ?, ?, ?, ?)
                """,
                (project_id, name, description, color or DEFAULT_COLOR, icon or DEFAULT_ICON, now, now),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:create_project] failed: %s", e)
        return None
    logger.info("[projects:create_project] id=%s name=%r", project_id, name)
    return get_project(project_id)


def get_projects() -> list[dict[str, Any]]:
    """All projects, most recently updated first, each with chat_count."""
    try:
        conn = get_conn()
        try:
            rows = conn.execute(
                """
                SELECT p.*, COUNT(c.id) AS chat_count
                FROM projects p LEFT JOIN chats c ON c.project_id = p.id
                GROUP BY p.id
                ORDER BY p.updated_at DESC
                """
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_projects] failed: %s", e)
        return []
    return [dict(r) for r in rows]


def get_project(project_id: str) -> dict[str, Any] | None:
    try:
        conn = get_conn()
        try:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_project] failed id=%s: %s", project_id, e)
        return None
    return dict(row) if row else None


def get_project_with_details(project_id: str) -> dict[str, Any] | None:
    """Project plus its instructions (or None), chats (newest first) and chat_count."""
    try:
        conn = get_conn()
        try:
            project = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            if project is None:
                return None
            instructions = conn.execute(
                "SELECT * FROM project_instructions WHERE project_id = ?", (project_id,)
            ).fetchone()
            chats = conn.execute(
                "SELECT id, title, project_id, created_at, updated_at FROM chats WHERE project_id = ? ORDER BY updated_at DESC",
                (project_id,),
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_project_with_details] failed id=%s: %s", project_id, e)
        return None
    return {
        **dict(project),
        "instructions": dict(instructions) if instructions else None,
        "chats": [dict(c) for c in chats],
        "chat_count": len(chats),
    }


def update_project(project_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    updates = {k: v for k, v in fields.items() if k in _UPDATABLE and v is not None}
    if not updates:
        return get_project(project_id)
    assignments = ", ".join(f"{k} = ?" for k in updates)
    try:
        conn = get_conn()
        try:
            cur = conn.execute(
                f"UPDATE projects SET {assignments}, updated_at = ? WHERE id = ?",
                (*updates.values(), now_iso(), project_id),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:update_project] failed id=%s: %s", project_id, e)
        return None
    if cur.rowcount == 0:
        return None
    return get_project(project_id)


def delete_project(project_id: str) -> bool:
    """Delete the project and its instructions; its chats stay, moved out of the project."""
    try:
        conn = get_conn()
        try:
            conn.execute("UPDATE chats SET project_id = NULL WHERE project_id = ?", (project_id,))
            cur = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:delete_project] failed id=%s: %s", project_id, e)
        return False
    return cur.rowcount > 0


def assign_chat_to_project(chat_id: str, project_id: str | None) -> bool:
    """Move a chat into a project, or out of any project when project_id is None."""
    try:
        conn = get_conn()
        try:
            cur = conn.execute(
                "UPDATE chats SET project_id = ?, updated_at = ? WHERE id = ?",
                (project_id, now_iso(), chat_id),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        # unknown project_id fails the foreign key
        logger.warning("[projects:assign_chat_to_project] failed chat=%s project=%s: %s", chat_id, project_id, e)
        return False
    return cur.rowcount > 0


def get_project_chats(project_id: str) -> list[dict[str, Any]]:
    try:
        conn = get_conn()
        try:
            rows = conn.execute(
                "SELECT id, title, project_id, created_at, updated_at FROM chats WHERE project_id = ? ORDER BY updated_at DESC",
                (project_id,),
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_project_chats] failed id=%s: %s", project_id, e)
        return []
    return [dict(r) for r in rows]


def get_project_chat_counts() -> dict[str, int]:
    try:
        conn = get_conn()
        try:
            rows = conn.execute(
                "SELECT project_id, COUNT(*) AS n FROM chats WHERE project_id IS NOT NULL GROUP BY project_id"
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_project_chat_counts] failed: %s", e)
        return {}
    return {r["project_id"]: r["n"] for r in rows}


def get_project_instructions(project_id: str) -> dict[str, Any] | None:
    try:
        conn = get_conn()
        try:
            row = conn.execute("SELECT * FROM project_instructions WHERE project_id = ?", (project_id,)).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:get_project_instructions] failed id=%s: %s", project_id, e)
        return None
    return dict(row) if row else None


def save_project_instructions(project_id: str, content: str) -> dict[str, Any] | None:
    """Insert or replace the project's instructions."""
    now = now_iso()
    try:
        conn = get_conn()
        try:
            conn.execute(
                """
                INSERT INTO project_instructions (id, project_id, content, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET content = excluded.content, updated_at = excluded.updated_at
                """,
                (new_id(), project_id, content, now, now),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:save_project_instructions] failed id=%s: %s", project_id, e)
        return None
    return get_project_instructions(project_id)


def delete_project_instructions(project_id: str) -> bool:
    try:
        conn = get_conn()
        try:
            cur = conn.execute("DELETE FROM project_instructions WHERE project_id = ?", (project_id,))
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[projects:delete_project_instructions] failed id=%s: %s", project_id, e)
        return False
    return cur.rowcount > 0
