"""
Chat history: saved chat sessions and their messages.

Every call degrades gracefully: a database error is logged and the caller
gets None / [] / False instead of an exception, so chat keeps working
without history.
"""

import logging
import sqlite3
from typing import Any

from app.core.config import CHAT_PREVIEW_CHARS
from app.core.db import get_conn, new_id, now_iso

logger = logging.getLogger(__name__)


def _preview(messages: list[dict[str, Any]]) -> str | None:
    first = next((m for m in messages if m["role"] == "assistant"), None)
    return first["content"][:CHAT_PREVIEW_CHARS] if first else None


def _row_to_message(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "role": row["role"],
        "content": row["content"],
        "model": row["model"],
        "timestamp": row["created_at"],
    }


def _session(chat: sqlite3.Row, messages: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "id": chat["id"],
        "title": chat["title"],
        "projectId": chat["project_id"],
        "preview": _preview(messages),
        "messages": messages,
        "created_at": chat["created_at"],
        "updated_at": chat["updated_at"],
    }


def _messages_by_chat(conn: sqlite3.Connection, chat_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {cid: [] for cid in chat_ids}
    if not chat_ids:
        return grouped
    placeholders = ",".join("?" * len(chat_ids))
    rows = conn.execute(
        f"SELECT * FROM messages WHERE chat_id IN ({placeholders}) ORDER BY created_at, rowid",
        chat_ids,
    ).fetchall()
    for r in rows:
        grouped[r["chat_id"]].append(_row_to_message(r))
    return grouped


def _insert_messages(conn: sqlite3.Connection, chat_id: str, messages: list[dict[str, Any]]) -> None:
    conn.executemany(
        "INSERT INTO messages (id, chat_id, role, content, model, created_at) VALUES (?, ?, ?, ?, ?, ?)",
        [
            (m.get("id") or new_id(), chat_id, m["role"], m.get("content") or "", m.get("model"), now_iso())
            for m in messages
        ],
    )


def save_session(title: str, messages: list[dict[str, Any]], existing_id: str | None = None) -> dict[str, Any] | None:
    """
    Create a chat, or update an existing chat's title and append only messages whose ids it does not have yet.
    Returns the saved session or None on failure.
    """
    logger.info("[chat_history:save_session] IN  existing_id=%s messages=%d", existing_id, len(messages))
    try:
        conn = get_conn()
        try:
            now = now_iso()
            chat_id = existing_id
            if chat_id:
                cur = conn.execute("UPDATE chats SET title = ?, updated_at = ? WHERE id = ?", (title, now, chat_id))
                if cur.rowcount == 0:
                    logger.warning("[chat_history:save_session] chat %s not found", chat_id)
                    return None
                known = {r["id"] for r in conn.execute("SELECT id FROM messages WHERE chat_id = ?", (chat_id,))}
                new_messages = [m for m in messages if not m.get("id") or m["id"] not in known]
            else:
                chat_id = new_id()
                conn.execute(
                    "INSERT INTO chats (id, user_id, project_id, title, created_at, updated_at) VALUES (?, NULL, NULL, ?, ?, ?)",
                    (chat_id, title, now, now),
                )
                new_messages = messages
            _insert_messages(conn, chat_id, new_messages)
            conn.commit()
            chat = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
            stored = _messages_by_chat(conn, [chat_id])[chat_id]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:save_session] failed: %s", e)
        return None
    logger.info("[chat_history:save_session] OUT id=%s inserted=%d", chat_id, len(new_messages))
    return _session(chat, stored)


def get_sessions(limit: int = 50) -> list[dict[str, Any]]:
    """Most recently updated sessions first."""
    try:
        conn = get_conn()
        try:
            chats = conn.execute("SELECT * FROM chats ORDER BY updated_at DESC LIMIT ?", (limit,)).fetchall()
            grouped = _messages_by_chat(conn, [c["id"] for c in chats])
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:get_sessions] failed: %s", e)
        return []
    return [_session(c, grouped[c["id"]]) for c in chats]


def get_session(chat_id: str) -> dict[str, Any] | None:
    try:
        conn = get_conn()
        try:
            chat = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
            if chat is None:
                return None
            messages = _messages_by_chat(conn, [chat_id])[chat_id]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:get_session] failed id=%s: %s", chat_id, e)
        return None
    return _session(chat, messages)


def delete_session(chat_id: str) -> bool:
    try:
        conn = get_conn()
        try:
            cur = conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:delete_session] failed id=%s: %s", chat_id, e)
        return False
    return cur.rowcount > 0


def rename_session(chat_id: str, title: str) -> bool:
    try:
        conn = get_conn()
        try:
            cur = conn.execute("UPDATE chats SET title = ?, updated_at = ? WHERE id = ?", (title, now_iso(), chat_id))
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:rename_session] failed id=%s: %s", chat_id, e)
        return False
    return cur.rowcount > 0


def search_sessions(query: str, limit: int = 20) -> list[dict[str, Any]]:
    """Sessions whose title or any message contains query (case-insensitive), newest first."""
    q = (query or "").strip()
    if not q:
        return []
    pattern = f"%{q}%"
    try:
        conn = get_conn()
        try:
            chats = conn.execute(
                """
                SELECT * FROM chats
                WHERE title LIKE ? COLLATE NOCASE
                   OR id IN (SELECT chat_id FROM messages WHERE content LIKE ? COLLATE NOCASE)
                ORDER BY updated_at DESC LIMIT ?
                """,
                (pattern, pattern, limit),
            ).fetchall()
            grouped = _messages_by_chat(conn, [c["id"] for c in chats])
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[chat_history:search_sessions] failed: %s", e)
        return []
    return [_session(c, grouped[c["id"]]) for c in chats]
