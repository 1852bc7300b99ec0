"""
Brand tools exposed over MCP and to the chat agent.

Tools: search_brand_knowledge, get_brand_colors, get_brand_assets,
get_brand_guidelines, search_brand_assets. Each returns
{summary, data, appUrls, usage_hint, related_tools}.
"""

import logging
from typing import Any, Callable

from app.core.config import PUBLIC_BASE_URL
from app.core.errors import BadRequestError
from app.services import brand_service

logger = logging.getLogger(__name__)

APP_ROUTES = {
    "brandHub": "/brand-hub",
    "logos": "/brand-hub/logo",
    "colors": "/brand-hub/colors",
    "fonts": "/brand-hub/fonts",
    "artDirection": "/brand-hub/art-direction",
    "guidelines": "/brand-hub/guidelines",
    "designTokens": "/brand-hub/design-tokens",
}

# MCP tools/list format (inputSchema)
BRAND_TOOLS: list[dict[str, Any]] = [
    {
        "name": "search_brand_knowledge",
        "description": "Search the brand knowledge base (guidelines, voice, messaging, strategy documents). Returns the most relevant passages with their source document.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Natural language question or keywords"},
                "category": {
                    "type": "string",
                    "description": "Document category to search (e.g. brand-identity, writing-styles) or 'all'",
                    "default": "all",
                },
                "limit": {"type": "integer", "description": "Maximum results (default 5, max 20)", "default": 5},
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_brand_colors",
        "description": "Get the brand colour palette with hex/RGB values, roles and usage guidelines.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "group": {"type": "string", "description": "Colour group (brand, mono-scale, brand-scale) or 'all'", "default": "all"},
                "include_guidelines": {"type": "boolean", "description": "Include description and usage text", "default": True},
            },
        },
    },
    {
        "name": "get_brand_assets",
        "description": "List brand assets (logos, fonts, images, textures, icons) with download URLs.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "category": {"type": "string", "description": "Asset category or 'all'", "default": "all"},
                "variant": {"type": "string", "description": "Variant such as light, dark, mono, glass"},
                "limit": {"type": "integer", "description": "Maximum results (default 20, max 100)", "default": 20},
            },
        },
    },
    {
        "name": "get_brand_guidelines",
        "description": "Get brand guideline documents (PDFs, decks, links) by slug or category.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "slug": {"type": "string", "description": "Guideline slug"},
                "category": {"type": "string", "description": "Guideline category"},
            },
        },
    },
    {
        "name": "search_brand_assets",
        "description": "Find brand assets matching a description (e.g. 'dark logo for social').",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Description of the asset you need"},
                "category": {"type": "string", "description": "Restrict to one asset category"},
                "limit": {"type": "integer", "description": "Maximum results (default 10, max 50)", "default": 10},
            },
            "required": ["query"],
        },
    },
]


def app_urls(keys: list[str]) -> dict[str, str]:
    return {k: f"{PUBLIC_BASE_URL}{APP_ROUTES[k]}" for k in keys}


def _limit(args: dict[str, Any], default: int, maximum: int) -> int:
    raw = args.get("limit", default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise BadRequestError(f"limit must be an integer, got {raw!r}")
    return max(1, min(value, maximum))


def _required_query(args: dict[str, Any]) -> str:
    query = str(args.get("query") or "").strip()
    if not query:
        raise BadRequestError("query is required")
    return query


def _search_brand_knowledge(brand_id: str, args: dict[str, Any]) -> dict[str, Any]:
    query = _required_query(args)
    category = args.get("category") or "all"
    results = brand_service.search_brand_knowledge(brand_id, query, category, _limit(args, 5, 20))
    top_docs = list(dict.fromkeys(r["document"] for r in results[:3]))
    scope = f" in {category}" if category != "all" else ""
    return {
        "summary": f'Found {len(results)} result(s) for "{query}"{scope}. Top sources: {", ".join(top_docs) or "none"}.',
        "data": {"query": query, "results": results, "total": len(results)},
        "appUrls": app_urls(["brandHub", "guidelines"]),
        "usage_hint": "Use these excerpts as context when writing content or answering brand questions.",
        "related_tools": ["get_brand_guidelines", "get_brand_colors"],
    }


def _get_brand_colors(brand_id: str, args: dict[str, Any]) -> dict[str, Any]:
    group = args.get("group") or "all"
    include = args.get("include_guidelines", True) is not False
    colors = brand_service.get_brand_colors(brand_id, group, include)
    core = ", ".join(f"{c['name']} ({c['hex']})" for c in colors if c["group"] == "brand")
    scope = f" from {group} group" if group != "all" else ""
    return {
        "summary": f"{len(colors)} color(s) retrieved{scope}. Core brand palette: {core or 'see data'}.",
        "data": {"colors": colors, "total": len(colors)},
        "appUrls": app_urls(["colors", "designTokens", "brandHub"]),
        "usage_hint": "Use the role and usage fields to decide where each colour belongs.",
        "related_tools": ["get_brand_guidelines"],
    }


def _get_brand_assets(brand_id: str, args: dict[str, Any]) -> dict[str, Any]:
    category = args.get("category") or "all"
    assets = brand_service.get_brand_assets(brand_id, category, args.get("variant"), _limit(args, 20, 100))
    categories = list(dict.fromkeys(a["category"] for a in assets))
    scope = f" in {category}" if category != "all" else ""
    return {
        "summary": f"{len(assets)} asset(s) found{scope} (categories: {', '.join(categories)}).",
        "data": {"assets": assets, "total": len(assets)},
        "appUrls": app_urls(["logos", "brandHub", "artDirection"]),
        "usage_hint": "URLs are direct download links. Use the variant field to choose light/dark/mono versions.",
        "related_tools": ["search_brand_assets", "get_brand_guidelines"],
    }


def _get_brand_guidelines(brand_id: str, args: dict[str, Any]) -> dict[str, Any]:
    guidelines = brand_service.get_brand_guidelines(brand_id, args.get("slug"), args.get("category"))
    titles = ", ".join(g["title"] for g in guidelines)
    return {
        "summary": f"{len(guidelines)} guideline(s) found: {titles or 'none'}.",
        "data": {"guidelines": guidelines, "total": len(guidelines)},
        "appUrls": app_urls(["guidelines", "brandHub", "artDirection"]),
        "usage_hint": "Guidelines are full reference documents. Use search_brand_knowledge for quick answers.",
        "related_tools": ["search_brand_knowledge"],
    }


def _search_brand_assets(brand_id: str, args: dict[str, Any]) -> dict[str, Any]:
    query = _required_query(args)
    results = brand_service.search_brand_assets(brand_id, query, args.get("category"), _limit(args, 10, 50))
    top = results[0] if results else None
    best = (
        f"Best match: {top['name']} ({round(top['relevance'] * 100)}% relevance)." if top else "No strong matches."
    )
    return {
        "summary": f'{len(results)} asset(s) matched "{query}". {best}',
        "data": {"query": query, "results": results, "total": len(results)},
        "appUrls": app_urls(["logos", "brandHub", "artDirection"]),
        "usage_hint": "Higher relevance scores indicate stronger matches to your description.",
        "related_tools": ["get_brand_assets", "get_brand_guidelines"],
    }


_HANDLERS: dict[str, Callable[[str, dict[str, Any]], dict[str, Any]]] = {
    "search_brand_knowledge": _search_brand_knowledge,
    "get_brand_colors": _get_brand_colors,
    "get_brand_assets": _get_brand_assets,
    "get_brand_guidelines": _get_brand_guidelines,
    "search_brand_assets": _search_brand_assets,
}


def is_brand_tool(name: str) -> bool:
    return name in _HANDLERS


def call_brand_tool(brand_id: str, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
    """Run one brand tool. Raises BadRequestError for unknown tools or invalid arguments."""
    handler = _HANDLERS.get(name)
    if handler is None:
        raise BadRequestError(f"Unknown tool: {name}")
    logger.info("[mcp_tools:call_brand_tool] name=%s brand=%s", name, brand_id)
    return handler(brand_id, arguments or {})
