"""
SQLite persistence for chats, projects, short links, brand data, MCP and research sessions.

Creates data/bos.db (relative to project root unless BOS_DB_PATH is absolute).
One connection per call; callers close it in a finally block. JSON columns
(tags, citations, api_keys, available_tools, metadata) are stored as text.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import DB_PATH

logger = logging.getLogger(__name__)

# Project root
_ROOT = Path(__file__).resolve().parent.parent.parent
_DB_PATH = Path(DB_PATH) if Path(DB_PATH).is_absolute() else _ROOT / DB_PATH

# Paths whose schema has been created in this process
_initialized: set[str] = set()

_SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    name TEXT NOT NULL,
    description TEXT,
    color TEXT NOT NULL DEFAULT '#FE5102',
    icon TEXT NOT NULL DEFAULT 'folder',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_instructions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL UNIQUE REFERENCES projects(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chats_project_id ON chats(project_id);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    model TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages(chat_id);

CREATE TABLE IF NOT EXISTS short_links (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    short_code TEXT NOT NULL,
    domain TEXT NOT NULL,
    destination_url TEXT NOT NULL,
    title TEXT,
    description TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    password_hash TEXT,
    expires_at TEXT,
    utm_source TEXT,
    utm_medium TEXT,
    utm_campaign TEXT,
    utm_term TEXT,
    utm_content TEXT,
    clicks INTEGER NOT NULL DEFAULT 0,
    unique_clicks INTEGER NOT NULL DEFAULT 0,
    last_clicked_at TEXT,
    owner_id TEXT,
    session_id TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    is_archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (brand_id, domain, short_code)
);
CREATE INDEX IF NOT EXISTS idx_short_links_code ON short_links(short_code);

CREATE TABLE IF NOT EXISTS short_link_clicks (
    id TEXT PRIMARY KEY,
    link_id TEXT NOT NULL REFERENCES short_links(id) ON DELETE CASCADE,
    clicked_at TEXT NOT NULL,
    ip_address TEXT,
    country TEXT,
    country_code TEXT,
    city TEXT,
    region TEXT,
    latitude REAL,
    longitude REAL,
    user_agent TEXT,
    device_type TEXT,
    browser TEXT,
    browser_version TEXT,
    os TEXT,
    os_version TEXT,
    device_brand TEXT,
    referer TEXT,
    referer_domain TEXT,
    utm_source TEXT,
    utm_medium TEXT,
    utm_campaign TEXT,
    utm_term TEXT,
    utm_content TEXT
);
CREATE INDEX IF NOT EXISTS idx_clicks_link_id ON short_link_clicks(link_id, clicked_at);

CREATE TABLE IF NOT EXISTS short_link_tags (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    color TEXT NOT NULL DEFAULT 'gray',
    usage_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (brand_id, slug)
);

CREATE TABLE IF NOT EXISTS brand_colors (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    hex_value TEXT NOT NULL,
    rgb_value TEXT,
    color_group TEXT NOT NULL DEFAULT 'brand',
    color_role TEXT,
    text_color TEXT,
    description TEXT,
    usage_guidelines TEXT,
    css_variable_name TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS brand_assets (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    name TEXT NOT NULL,
    filename TEXT NOT NULL,
    description TEXT,
    category TEXT NOT NULL,
    variant TEXT,
    storage_path TEXT NOT NULL,
    mime_type TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brand_guidelines (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    title TEXT NOT NULL,
    slug TEXT NOT NULL,
    guideline_type TEXT NOT NULL DEFAULT 'document',
    url TEXT,
    embed_url TEXT,
    storage_path TEXT,
    description TEXT,
    category TEXT,
    thumbnail_url TEXT,
    is_primary INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS brand_documents (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    title TEXT NOT NULL,
    category TEXT NOT NULL,
    section TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS mcp_server_config (
    id TEXT PRIMARY KEY,
    brand_id TEXT NOT NULL,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    api_keys TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS mcp_connections (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    name TEXT NOT NULL,
    description TEXT,
    server_url TEXT NOT NULL,
    server_type TEXT NOT NULL DEFAULT 'remote',
    auth_type TEXT NOT NULL DEFAULT 'none',
    auth_config TEXT NOT NULL DEFAULT '{}',
    is_active INTEGER NOT NULL DEFAULT 1,
    available_tools TEXT NOT NULL DEFAULT '[]',
    last_health_check TEXT,
    health_status TEXT NOT NULL DEFAULT 'unknown',
    created_at TEXT NOT NULL,
    last_used TEXT
);

CREATE TABLE IF NOT EXISTS research_sessions (
    id TEXT PRIMARY KEY,
    query TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'initializing',
    complexity TEXT,
    current_round INTEGER NOT NULL DEFAULT 1,
    final_answer TEXT,
    citations TEXT NOT NULL DEFAULT '[]',
    metrics TEXT NOT NULL DEFAULT '{}',
    error TEXT,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_research_sessions_created_at ON research_sessions(created_at);
"""


def _get_conn() -> sqlite3.Connection:
    data_dir = _DB_PATH.parent
    data_dir.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(_DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db() -> None:
    """Create all tables if they do not exist."""
    conn = _get_conn()
    try:
        conn.executescript(_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    _initialized.add(str(_DB_PATH))
    logger.info("[db:init_db] schema ready path=%s", _DB_PATH)


def get_conn() -> sqlite3.Connection:
    """Return a connection, creating the schema on first use of this database path."""
    if str(_DB_PATH) not in _initialized:
        init_db()
    return _get_conn()


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_json(value: Any) -> str:
    return json.dumps(value)


def from_json(text: str | None, default: Any) -> Any:
    """Decode a JSON column; returns default when empty or malformed."""
    if not text:
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("[db:from_json] malformed JSON column value=%r", text[:80])
        return default
