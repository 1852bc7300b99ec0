"""Schemas for the chat and chat history endpoints."""

from typing import Any

from pydantic import Field

from app.schemas.common import CamelRequest


class ChatRequest(CamelRequest):
    """
    Request body for POST /api/chat.
    messages are client UI messages: {role, content} or {role, parts: [{type: "text", text}]}.
    """

    messages: list[dict[str, Any]] | None = None
    model: str = Field("auto", description="Model id from the registry, or 'auto' for the auto-router.")
    context: dict[str, Any] | None = Field(None, description="Page context: {type: article|idea|space|home, ...}.")
    connectors: dict[str, bool] | None = Field(None, description="Enabled connectors: web, brand, brain, discover.")


class ChatMessageIn(CamelRequest):
    id: str | None = None
    role: str
    content: str = ""
    model: str | None = None


class ChatSaveRequest(CamelRequest):
    """Request body for POST /api/chats. With id, updates that chat and appends only unseen messages."""

    id: str | None = None
    title: str = Field(..., min_length=1)
    messages: list[ChatMessageIn] = Field(default_factory=list)


class ChatRenameRequest(CamelRequest):
    title: str = Field(..., min_length=1)


class GenerateTitleRequest(CamelRequest):
    messages: list[dict[str, Any]] | None = None


class RelatedQuestionsRequest(CamelRequest):
    query: str | None = None
    response: str | None = None
