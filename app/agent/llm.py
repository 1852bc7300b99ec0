"""
LLM providers: Anthropic (Claude) via the anthropic SDK, Perplexity (Sonar) via httpx streaming.

Model registry and API-key checks live here so the chat route, the research
pipeline and the agent loop share one view of which models exist and which
provider serves them.
"""

import json
import logging
import threading
from typing import Any, Iterator

import httpx
from anthropic import Anthropic

from app.core.config import (
    ANTHROPIC_API_KEY,
    ANTHROPIC_MODEL_IDS,
    LLM_API_TIMEOUT,
    PERPLEXITY_API_KEY,
    PERPLEXITY_CHAT_URL,
    SEARCH_API_TIMEOUT,
)
from app.core.errors import ServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet"

# model_id -> display/config metadata
MODELS: dict[str, dict[str, Any]] = {
    "auto": {
        "name": "Auto",
        "description": "Automatically selects the best model",
        "provider": "auto",
        "tier": "smart",
        "supports_thinking": True,
        "supports_tools": True,
    },
    "claude-opus": {
        "name": "Opus",
        "version": "4",
        "description": "Most capable for complex tasks",
        "provider": "anthropic",
        "tier": "capable",
        "supports_thinking": True,
        "supports_tools": True,
        "max_output_tokens": 32000,
        "context_window": 200000,
    },
    "claude-sonnet": {
        "name": "Sonnet",
        "version": "4",
        "description": "Smartest for everyday tasks",
        "provider": "anthropic",
        "tier": "balanced",
        "supports_thinking": True,
        "supports_tools": True,
        "max_output_tokens": 16000,
        "context_window": 200000,
    },
    "claude-haiku": {
        "name": "Haiku",
        "version": "3.5",
        "description": "Fastest for quick answers",
        "provider": "anthropic",
        "tier": "fast",
        "supports_thinking": False,
        "supports_tools": True,
        "max_output_tokens": 8192,
        "context_window": 200000,
    },
    "sonar": {
        "name": "Sonar",
        "description": "Web search for current info",
        "provider": "perplexity",
        "tier": "search",
        "supports_thinking": False,
        "supports_tools": False,
    },
    "sonar-pro": {
        "name": "Sonar Pro",
        "description": "Advanced search with more sources",
        "provider": "perplexity",
        "tier": "capable",
        "supports_thinking": False,
        "supports_tools": False,
    },
}

_client: Anthropic | None = None
_client_lock = threading.Lock()


def get_anthropic_client() -> Anthropic:
    """Return the shared Anthropic client. Raises ServiceUnavailableError when no key is configured."""
    global _client
    if not ANTHROPIC_API_KEY:
        raise ServiceUnavailableError("ANTHROPIC_API_KEY is not configured")
    with _client_lock:
        if _client is None:
            _client = Anthropic(api_key=ANTHROPIC_API_KEY, timeout=LLM_API_TIMEOUT)
    return _client


def anthropic_model_id(model_id: str) -> str:
    """Map a friendly model name (claude-sonnet) to the Anthropic model id."""
    return ANTHROPIC_MODEL_IDS.get(model_id, ANTHROPIC_MODEL_IDS[DEFAULT_MODEL])


def provider_for(model_id: str) -> str | None:
    model = MODELS.get(model_id)
    return model["provider"] if model else None


def check_api_key(model_id: str) -> tuple[bool, str | None]:
    """Return (ok, error) for the provider behind model_id."""
    provider = provider_for(model_id)
    if provider is None:
        return False, f"Unknown model: {model_id}"
    if provider in ("anthropic", "auto") and not ANTHROPIC_API_KEY:
        return False, "ANTHROPIC_API_KEY is not configured. Please add it to your .env file."
    if provider == "perplexity" and not PERPLEXITY_API_KEY:
        return False, "PERPLEXITY_API_KEY is not configured. Please add it to your .env file."
    return True, None


def _text_of(content_blocks: Any) -> str:
    parts = []
    for block in content_blocks or []:
        if getattr(block, "type", None) == "text":
            parts.append(block.text)
    return "".join(parts)


def complete(
    prompt: str,
    system: str = "",
    max_tokens: int = 1000,
    model: str = DEFAULT_MODEL,
) -> str:
    """Single-shot Claude completion. Returns the concatenated text blocks."""
    logger.info("[llm:complete] IN  model=%s prompt_len=%d max_tokens=%d", model, len(prompt), max_tokens)
    client = get_anthropic_client()
    kwargs: dict[str, Any] = {
        "model": anthropic_model_id(model),
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
    }
    if system:
        kwargs["system"] = system
    response = client.messages.create(**kwargs)
    out = _text_of(response.content).strip()
    logger.info("[llm:complete] OUT response_len=%d", len(out))
    return out


def stream_text(
    messages: list[dict[str, Any]],
    system: str = "",
    max_tokens: int = 4000,
    model: str = DEFAULT_MODEL,
) -> Iterator[str]:
    """Stream a Claude response; yields text deltas."""
    logger.info("[llm:stream_text] IN  model=%s messages=%d max_tokens=%d", model, len(messages), max_tokens)
    client = get_anthropic_client()
    kwargs: dict[str, Any] = {
        "model": anthropic_model_id(model),
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system:
        kwargs["system"] = system
    total = 0
    with client.messages.stream(**kwargs) as stream:
        for text in stream.text_stream:
            total += len(text)
            yield text
    logger.info("[llm:stream_text] OUT response_len=%d", total)


def _block_to_dict(block: Any) -> dict[str, Any] | None:
    kind = getattr(block, "type", None)
    if kind == "text":
        return {"type": "text", "text": block.text}
    if kind == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


def chat_with_tools_stream(
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]],
    system: str = "",
    max_tokens: int = 4096,
    model: str = DEFAULT_MODEL,
):
    """
    Call Claude with tools and stream the response. Yields:
    - ('content_delta', str) for each text delta;
    - ('content_done',) when the turn ended without tool use;
    - ('tool_calls', list[dict], content_blocks) when the model called tools.
      content_blocks is the assistant turn as plain dicts, ready to append to messages.
    """
    client = get_anthropic_client()
    kwargs: dict[str, Any] = {
        "model": anthropic_model_id(model),
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system:
        kwargs["system"] = system
    if tools:
        kwargs["tools"] = tools
    with client.messages.stream(**kwargs) as stream:
        for text in stream.text_stream:
            yield ("content_delta", text)
        final = stream.get_final_message()
    blocks = [b for b in (_block_to_dict(x) for x in final.content) if b]
    tool_calls = [
        {"id": b["id"], "name": b["name"], "arguments": b.get("input") or {}}
        for b in blocks
        if b["type"] == "tool_use"
    ]
    if tool_calls:
        logger.info("[llm:chat_with_tools_stream] OUT tool_calls=%s", [t["name"] for t in tool_calls])
        yield ("tool_calls", tool_calls, blocks)
    else:
        logger.info("[llm:chat_with_tools_stream] OUT content_done stop_reason=%s", getattr(final, "stop_reason", None))
        yield ("content_done",)


def stream_perplexity(
    messages: list[dict[str, str]],
    model: str = "sonar",
    timeout: float = SEARCH_API_TIMEOUT,
):
    """
    Stream a Perplexity chat completion. Yields:
    - ('content_delta', str) for each content chunk;
    - ('citations', list[str]) whenever the citation list grows (last one is final).
    Raises ServiceUnavailableError without a key, RuntimeError on a non-200 response.
    """
    if not PERPLEXITY_API_KEY:
        raise ServiceUnavailableError("PERPLEXITY_API_KEY not configured")
    headers = {"Authorization": f"Bearer {PERPLEXITY_API_KEY}", "Content-Type": "application/json"}
    payload = {"model": model, "messages": messages, "stream": True}
    citations: list[str] = []
    logger.info("[llm:stream_perplexity] IN  model=%s messages=%d", model, len(messages))
    with httpx.Client(timeout=timeout) as client:
        with client.stream("POST", PERPLEXITY_CHAT_URL, json=payload, headers=headers) as response:
            if response.status_code != 200:
                body = response.read().decode("utf-8", errors="replace")
                raise RuntimeError(f"Perplexity API error: {response.status_code} - {body[:300]}")
            for line in response.iter_lines():
                if not line.startswith("data: "):
                    continue
                data = line[6:]
                if data == "[DONE]":
                    continue
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    continue
                choices = chunk.get("choices") or []
                if choices:
                    delta = (choices[0].get("delta") or {}).get("content")
                    if delta:
                        yield ("content_delta", delta)
                found = chunk.get("citations") or []
                if len(found) > len(citations):
                    citations = list(found)
                    yield ("citations", list(citations))
    logger.info("[llm:stream_perplexity] OUT citations=%d", len(citations))
