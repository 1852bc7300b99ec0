"""
Agent tools: definitions and execution for tool-calling (agentic) mode.

Tools: the brand tools (search_brand_knowledge, get_brand_colors,
get_brand_assets, get_brand_guidelines, search_brand_assets) plus every tool
cached on an active MCP connection, named mcp_{connection prefix}_{tool}.
"""

import json
import logging
from typing import Any

from app.core.config import DEFAULT_BRAND_ID
from app.core.errors import BadRequestError
from app.mcp.client import execute_mcp_tool_by_name, get_available_mcp_tools, is_mcp_tool, mcp_tools_to_anthropic
from app.mcp.tools import BRAND_TOOLS, call_brand_tool, is_brand_tool

logger = logging.getLogger(__name__)

# Anthropic tool format: list of {name, description, input_schema}
AGENT_TOOLS = [
    {"name": t["name"], "description": t["description"], "input_schema": t["inputSchema"]}
    for t in BRAND_TOOLS
]

# Tool results longer than this are cut before going back to the model
MAX_TOOL_RESULT_CHARS = 12000


def get_agent_tools(include_brand: bool = True, include_mcp: bool = True) -> list[dict[str, Any]]:
    """Brand tools and/or tools from active MCP connections, in Anthropic format."""
    tools: list[dict[str, Any]] = list(AGENT_TOOLS) if include_brand else []
    if include_mcp:
        try:
            tools.extend(mcp_tools_to_anthropic(get_available_mcp_tools()))
        except Exception as e:
            logger.warning("[tools] could not load MCP tools: %s", e)
    return tools


def _as_text(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) > MAX_TOOL_RESULT_CHARS:
        text = text[:MAX_TOOL_RESULT_CHARS] + "\n...[truncated]"
    return text


def execute_tool(name: str, arguments: dict[str, Any], brand_id: str = DEFAULT_BRAND_ID) -> str:
    """
    Execute a tool by name with the given arguments. Returns a string result for the LLM.
    """
    args = arguments or {}
    logger.info("[tools] execute_tool name=%r arguments=%r", name, args)

    if is_brand_tool(name):
        try:
            return _as_text(call_brand_tool(brand_id, name, args))
        except BadRequestError as e:
            return f"Error: {e.message}"

    if is_mcp_tool(name):
        result = execute_mcp_tool_by_name(name, args)
        if not result["success"]:
            return f"Error: {result['error']}"
        return _as_text(result["data"]) if result["data"] is not None else "Tool returned no content."

    return f"Unknown tool: {name}"
