"""
Auto model routing: pick a model for the "auto" choice from the last user message.
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

RESEARCH_KEYWORDS = [
    "research",
    "analyze",
    "compare",
    "explain in depth",
    "comprehensive",
    "detailed analysis",
    "investigate",
    "evaluate",
    "assess",
    "examine",
    "deep dive",
    "thorough",
    "extensive",
]

CURRENT_EVENTS_KEYWORDS = [
    "latest",
    "current",
    "news",
    "today",
    "recent",
    "now",
    "this week",
    "this month",
    "2024",
    "2025",
    "happening",
    "update",
    "trending",
    "breaking",
]

SIMPLE_QUERY_PATTERNS = [
    re.compile(r"^(what|who|when|where|how|why) is", re.IGNORECASE),
    re.compile(r"^define ", re.IGNORECASE),
    re.compile(r"^translate ", re.IGNORECASE),
    re.compile(r"^convert ", re.IGNORECASE),
    re.compile(r"^what does .* mean", re.IGNORECASE),
    re.compile(r"^how do (you|i) ", re.IGNORECASE),
]

SHORT_QUERY_CHARS = 50


def message_text(message: dict[str, Any]) -> str:
    """Text of a chat message given either a `content` string or a `parts` list of text parts."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    parts = message.get("parts") or content
    if isinstance(parts, list):
        return "".join(
            p["text"]
            for p in parts
            if isinstance(p, dict) and p.get("type") == "text" and isinstance(p.get("text"), str)
        )
    return ""


def _is_simple(query: str) -> bool:
    return any(p.search(query) for p in SIMPLE_QUERY_PATTERNS)


def auto_select_model(messages: list[dict[str, Any]]) -> str:
    """Choose sonar for current events, haiku for short/simple questions, sonnet otherwise."""
    last_user = next((m for m in reversed(messages) if m.get("role") == "user"), None)
    if last_user is None:
        return "claude-sonnet"
    text = message_text(last_user)
    if not text:
        return "claude-sonnet"
    query = text.lower()
    if any(k in query for k in CURRENT_EVENTS_KEYWORDS):
        choice = "sonar"
    elif any(k in query for k in RESEARCH_KEYWORDS):
        choice = "claude-sonnet"
    elif _is_simple(query) or len(text) < SHORT_QUERY_CHARS:
        choice = "claude-haiku"
    else:
        choice = "claude-sonnet"
    logger.info("[router:auto_select_model] OUT model=%s query_len=%d", choice, len(text))
    return choice


def auto_router_explanation(query: str) -> str:
    q = query.lower()
    if any(k in q for k in CURRENT_EVENTS_KEYWORDS):
        return "Using web search for current information"
    if any(k in q for k in RESEARCH_KEYWORDS):
        return "Using advanced model for in-depth analysis"
    if len(query) < SHORT_QUERY_CHARS or _is_simple(q):
        return "Using fast model for quick response"
    return "Using balanced model for this query"
