"""
Small Claude calls around a chat: a short conversation title and follow-up question suggestions.

Both fall back quietly (a default title, an empty list) so the client can use
its own fallback; a failure here never breaks the chat.
"""

import json
import logging
import re
from typing import Any

from app.agent.llm import complete
from app.agent.router import message_text
from app.core.config import ANTHROPIC_API_KEY

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
TITLE_MAX_CHARS = 60
TITLE_CONTEXT_MESSAGES = 4
MAX_RELATED_QUESTIONS = 4

TITLE_SYSTEM_PROMPT = """You are a conversation title generator. Generate a SHORT, descriptive title (3-6 words) that captures the semantic meaning of what the conversation is about.

Rules:
- Focus on the TOPIC being discussed, not the exact question
- Be concise: 3-6 words maximum
- Don't use quotes or punctuation
- Don't start with "How to" or similar phrases
- Make it descriptive and specific
- If multiple topics, focus on the first/main topic

Examples:
- "What's new with Cursor?" -> "Cursor IDE Updates"
- "Help me write a blog post about AI" -> "AI Blog Post Writing"
- "Can you explain React hooks?" -> "React Hooks Explained"
- "What's the weather like in NYC?" -> "NYC Weather Query"
"""

RELATED_QUESTIONS_PROMPT = """Based on this conversation, generate 4 intelligent follow-up questions that a curious user might ask next. The questions should:
1. Be specific and actionable (not generic)
2. Build on the information provided
3. Help the user go deeper or apply what they learned
4. Be concise (under 15 words each)

Original question: "{query}"

Response summary: "{response}"

Return ONLY a JSON array of 4 question strings, nothing else. Example format:
["Question 1?", "Question 2?", "Question 3?", "Question 4?"]"""

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*?\]")


def clean_title(raw: str) -> str:
    title = re.sub(r"^[\"']|[\"']$", "", (raw or "").strip())[:TITLE_MAX_CHARS]
    return title or DEFAULT_TITLE


def generate_title(messages: list[dict[str, Any]]) -> str:
    """Title from the first two exchanges (each message cut to 500 chars), via the haiku model."""
    context = "\n\n".join(
        f"{'User' if m.get('role') == 'user' else 'Assistant'}: {message_text(m)[:500]}"
        for m in messages[:TITLE_CONTEXT_MESSAGES]
    )
    try:
        raw = complete(
            f"Generate a short title for this conversation:\n\n{context}",
            system=TITLE_SYSTEM_PROMPT,
            max_tokens=50,
            model="claude-haiku",
        )
    except Exception as e:
        logger.warning("[followups:generate_title] falling back to default title: %s", e)
        return DEFAULT_TITLE
    return clean_title(raw)


def parse_questions(text: str) -> list[str]:
    """First JSON array in text, keeping strings longer than 10 chars, at most four."""
    match = _JSON_ARRAY_RE.search(text or "")
    if not match:
        return []
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    if not isinstance(items, list):
        return []
    return [q.strip() for q in items if isinstance(q, str) and len(q) > 10][:MAX_RELATED_QUESTIONS]


def generate_related_questions(query: str, response: str) -> list[str]:
    if not ANTHROPIC_API_KEY:
        return []
    prompt = RELATED_QUESTIONS_PROMPT.format(query=query, response=response[:1500])
    try:
        raw = complete(prompt, max_tokens=500, model="claude-haiku")
    except Exception as e:
        logger.warning("[followups:generate_related_questions] failed: %s", e)
        return []
    questions = parse_questions(raw)
    logger.info("[followups:generate_related_questions] OUT questions=%d", len(questions))
    return questions
