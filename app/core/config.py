"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
Research pipeline tuning lives in app/research/config.py.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# SQLite database (relative to project root unless absolute)
DB_PATH: str = os.getenv("BOS_DB_PATH", "data/bos.db").strip() or "data/bos.db"

# Brand / tenancy defaults (single-brand demo deployment)
DEFAULT_BRAND_ID: str = (
    os.getenv("DEFAULT_BRAND_ID", "00000000-0000-0000-0000-000000000001").strip()
    or "00000000-0000-0000-0000-000000000001"
)
DEFAULT_LINK_DOMAIN: str = os.getenv("DEFAULT_LINK_DOMAIN", "opensesh.app").strip() or "opensesh.app"

# Shared secret for managing MCP server API keys (X-Admin-Token); empty disables key management
ADMIN_TOKEN: str = os.getenv("BOS_ADMIN_TOKEN", "").strip()

# Public URLs used when building links to this server and to stored assets
PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").strip().rstrip("/")
ASSET_BASE_URL: str = os.getenv("ASSET_BASE_URL", "").strip().rstrip("/")

# Anthropic (chat, planning, synthesis)
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "").strip()

# Perplexity (web search models)
PERPLEXITY_API_KEY: str = os.getenv("PERPLEXITY_API_KEY", "").strip()
PERPLEXITY_CHAT_URL: str = "https://api.perplexity.ai/chat/completions"

# Claude model ids per friendly model name
ANTHROPIC_MODEL_IDS: dict[str, str] = {
    "claude-opus": "claude-opus-4-20250514",
    "claude-sonnet": "claude-sonnet-4-20250514",
    "claude-haiku": "claude-3-5-haiku-20241022",
}

# IP geolocation for link analytics (no key required)
IP_API_URL: str = "http://ip-api.com/json"

# API timeouts (seconds)
LLM_API_TIMEOUT: float = 60.0
SEARCH_API_TIMEOUT: float = 90.0
GEO_API_TIMEOUT: float = 5.0
MCP_HTTP_TIMEOUT: float = 30.0

# Chat agent
CHAT_MAX_TOKENS: int = 4096
MAX_AGENTIC_ROUNDS: int = 8
CHAT_PREVIEW_CHARS: int = 150

# Research request validation
MAX_RESEARCH_QUERY_CHARS: int = 2000
