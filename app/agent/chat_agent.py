"""
Chat agent: brand-aware assistant streaming over Claude (with tools) or Perplexity.

Responsibility: Normalise client messages, build the system prompt from page
context, pick the model and yield SSE-friendly events. No HTTP here.
"""

import logging
from typing import Any, Iterator

from app.agent.llm import chat_with_tools_stream, provider_for, stream_perplexity
from app.agent.router import auto_select_model, message_text
from app.agent.tools import execute_tool, get_agent_tools
from app.core.config import CHAT_MAX_TOKENS, MAX_AGENTIC_ROUNDS

logger = logging.getLogger(__name__)

AUTH_ERROR_MESSAGE = "API authentication failed. Please check your API keys."
_AUTH_MARKERS = ("api-key", "api_key", "authentication", "401")

BRAND_ASSISTANT_INSTRUCTIONS = """You are BOS (Brand Operating System), a knowledgeable and helpful AI assistant. You have deep expertise in the brand (its documentation, assets, voice guidelines and creative direction), but you are also a capable general-purpose assistant.

## Core Behavior
Answer questions directly. Never open with a defensive preamble or a redirect.

Apply brand knowledge when the user asks about guidelines, assets or voice, when they are creating content that should be on-brand, or when they ask for feedback on work. For general questions, just answer them well.

Use "the brand" or "our brand" when referencing guidelines instead of repeating the company name.

## Tools
When brand tools are available, use them to look up colours, assets, guidelines and documentation instead of guessing. Cite the source document and give exact asset URLs.

## Response Format
Write in readable paragraphs under section headings. Use bullet points only for list-like content such as file paths, colour codes or explicit steps. Match the brand voice: warm, innovative, accessible."""

DEFAULT_CONNECTORS = {"web": True, "brand": True, "brain": True, "discover": True}


def normalize_messages(messages: list[dict[str, Any]]) -> list[dict[str, str]]:
    """
    Reduce client messages to alternating {role, content} turns starting with a user turn.
    Consecutive user messages are merged; consecutive assistant messages keep the first.
    """
    out: list[dict[str, str]] = []
    for m in messages:
        role = (m.get("role") or "").strip().lower()
        if role not in ("user", "assistant"):
            continue
        content = message_text(m)
        if not out:
            if role == "user":
                out.append({"role": role, "content": content})
            continue
        prev = out[-1]
        if role != prev["role"]:
            out.append({"role": role, "content": content})
        elif role == "user":
            prev["content"] = f"{prev['content']}\n\n{content}"
    return out


def resolve_model(model: str | None, messages: list[dict[str, Any]]) -> str:
    if not model or model == "auto":
        return auto_select_model(messages)
    return model


def _context_instructions(context: dict[str, Any]) -> str:
    parts = [
        "## Current Page Context",
        "The user is currently viewing content in Brand OS. Answer questions with this context in mind.",
        "",
    ]
    kind = context.get("type")
    article = context.get("article") or {}
    idea = context.get("idea") or {}
    space = context.get("space") or {}
    if kind == "article" and article:
        parts.append("### Viewing Article")
        parts.append(f'**Title:** "{article.get("title", "")}"')
        if article.get("summary"):
            parts += ["", "**Article Content (Summary):**", article["summary"]]
        if article.get("content"):
            parts += ["", "**Full Article Content:**", article["content"]]
        if article.get("sections"):
            parts.append(f"**Article Sections:** {', '.join(article['sections'])}")
        if article.get("sourceCount"):
            parts.append(f"**Sources cited in article:** {article['sourceCount']}")
        parts += [
            "",
            "The user is asking about THIS SPECIFIC ARTICLE. Base your answers primarily on the article content above.",
        ]
    elif kind == "idea" and idea:
        parts.append("### Viewing Content Idea")
        parts.append(f'**Title:** "{idea.get("title", "")}"')
        if idea.get("category"):
            parts.append(f"**Content Type:** {idea['category']}")
        if idea.get("description"):
            parts.append(f"**Description:** {idea['description']}")
        parts += ["", "Help the user develop this content idea with suggestions, outlines or copy."]
    elif kind == "space" and space:
        parts.append("### Working in Space")
        parts.append(f'**Space Name:** "{space.get("title", "")}"')
        if space.get("instructions"):
            parts.append(f"**Custom Instructions:** {space['instructions']}")
        if space.get("fileNames"):
            parts.append(f"**Available Files:** {', '.join(space['fileNames'])}")
        if space.get("linkTitles"):
            parts.append(f"**Reference Links:** {', '.join(space['linkTitles'])}")
        parts += ["", "Follow any custom instructions provided and reference the files and links when relevant."]
    else:
        parts.append(
            "The user is on the home page. Answer any question helpfully and directly. "
            "Apply brand knowledge when relevant, but don't force brand context onto unrelated queries."
        )
    return "\n".join(parts)


def build_system_prompt(context: dict[str, Any] | None = None) -> str:
    prompt = BRAND_ASSISTANT_INSTRUCTIONS
    if context:
        prompt += "\n\n" + _context_instructions(context)
    return prompt


def user_facing_error(error: Exception) -> str:
    message = str(error) or "An error occurred"
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AUTH_ERROR_MESSAGE
    return message


def _run_claude(
    messages: list[dict[str, Any]],
    model: str,
    system: str,
    connectors: dict[str, bool],
) -> Iterator[dict[str, Any]]:
    tools = get_agent_tools(include_brand=connectors.get("brand", True), include_mcp=connectors.get("brain", True))
    convo: list[dict[str, Any]] = [dict(m) for m in messages]
    tools_used: list[str] = []
    answer_parts: list[str] = []
    for _ in range(MAX_AGENTIC_ROUNDS):
        tool_calls: list[dict] | None = None
        blocks: list[dict] = []
        for item in chat_with_tools_stream(convo, tools, system=system, max_tokens=CHAT_MAX_TOKENS, model=model):
            if item[0] == "content_delta":
                answer_parts.append(item[1])
                yield {"event": "text_delta", "content": item[1]}
            elif item[0] == "content_done":
                yield {"event": "done", "answer": "".join(answer_parts).strip(), "model": model, "tools_used": tools_used}
                logger.info("[chat_agent:run_chat_stream] END (streamed) tools_used=%s", tools_used)
                return
            elif item[0] == "tool_calls":
                tool_calls, blocks = item[1], item[2]
        if not tool_calls:
            break
        convo.append({"role": "assistant", "content": blocks})
        results = []
        for tc in tool_calls:
            yield {"event": "tool", "name": tc["name"]}
            result = execute_tool(tc["name"], tc.get("arguments") or {})
            tools_used.append(tc["name"])
            results.append({"type": "tool_result", "tool_use_id": tc["id"], "content": result})
        convo.append({"role": "user", "content": results})
    answer = "".join(answer_parts).strip() or "I couldn't complete the request within the tool-call limit."
    yield {"event": "done", "answer": answer, "model": model, "tools_used": tools_used}


def _run_perplexity(messages: list[dict[str, Any]], model: str, system: str) -> Iterator[dict[str, Any]]:
    answer_parts: list[str] = []
    citations: list[str] = []
    for item in stream_perplexity([{"role": "system", "content": system}, *messages], model=model):
        if item[0] == "content_delta":
            answer_parts.append(item[1])
            yield {"event": "text_delta", "content": item[1]}
        elif item[0] == "citations":
            citations = item[1]
    yield {
        "event": "done",
        "answer": "".join(answer_parts).strip(),
        "model": model,
        "tools_used": [],
        "citations": citations,
    }


def run_chat_stream(
    messages: list[dict[str, Any]],
    model: str,
    context: dict[str, Any] | None = None,
    connectors: dict[str, bool] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Stream one chat turn. messages are already normalised and model already resolved.
    Yields {"event": "model"|"text_delta"|"tool"|"done"|"error", ...}.
    """
    active = {**DEFAULT_CONNECTORS, **(connectors or {})}
    system = build_system_prompt(context)
    logger.info(
        "[chat_agent:run_chat_stream] START model=%s messages=%d context=%s",
        model,
        len(messages),
        (context or {}).get("type", "none"),
    )
    yield {"event": "model", "model": model}
    try:
        if provider_for(model) == "perplexity":
            yield from _run_perplexity(messages, model, system)
        else:
            yield from _run_claude(messages, model, system, active)
    except Exception as e:
        logger.exception("[chat_agent:run_chat_stream] chat stream failed")
        yield {"event": "error", "message": user_facing_error(e)}
    logger.info("[chat_agent:run_chat_stream] END")
