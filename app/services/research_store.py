"""
Research session history: one row per finished run (completed or failed).

Recording is best-effort. A database problem is logged and never interrupts
the research stream.
"""

import logging
import sqlite3
from typing import Any

from app.core.db import from_json, get_conn, now_iso, to_json

logger = logging.getLogger(__name__)


def _row_to_session(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "query": row["query"],
        "status": row["status"],
        "complexity": row["complexity"],
        "currentRound": row["current_round"],
        "finalAnswer": row["final_answer"],
        "citations": from_json(row["citations"], []),
        "metrics": from_json(row["metrics"], {}),
        "error": row["error"],
        "startedAt": row["started_at"],
        "completedAt": row["completed_at"],
    }


def record_session(
    session_id: str,
    query: str,
    status: str,
    started_at: str,
    complexity: str | None = None,
    current_round: int = 1,
    final_answer: str | None = None,
    citations: list[dict] | None = None,
    metrics: dict | None = None,
    error: str | None = None,
) -> bool:
    """Insert or replace the session row. Returns False if the write failed."""
    try:
        conn = get_conn()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO research_sessions
                    (id, query, status, complexity, current_round, final_answer, citations,
                     metrics, error, started_at, completed_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    query,
                    status,
                    complexity,
                    current_round,
                    final_answer,
                    to_json(citations or []),
                    to_json(metrics or {}),
                    error,
                    started_at,
                    now_iso(),
                    started_at,
                ),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[research_store:record_session] failed session=%s: %s", session_id, e)
        return False
    logger.info("[research_store:record_session] session=%s status=%s", session_id, status)
    return True


def list_sessions(limit: int = 20) -> list[dict[str, Any]]:
    """Most recent sessions first."""
    try:
        conn = get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM research_sessions ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[research_store:list_sessions] failed: %s", e)
        return []
    return [_row_to_session(r) for r in rows]


def get_session(session_id: str) -> dict[str, Any] | None:
    try:
        conn = get_conn()
        try:
            row = conn.execute("SELECT * FROM research_sessions WHERE id = ?", (session_id,)).fetchone()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("[research_store:get_session] failed session=%s: %s", session_id, e)
        return None
    return _row_to_session(row) if row else None
