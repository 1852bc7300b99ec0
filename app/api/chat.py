"""
Chat endpoints: streamed brand-aware chat and saved chat history.
"""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from app.agent import followups
from app.agent.chat_agent import normalize_messages, resolve_model, run_chat_stream
from app.agent.llm import check_api_key
from app.agent.router import auto_router_explanation, message_text
from app.api.handlers import SSE_HEADERS, named_sse
from app.schemas.chat import (
    ChatRenameRequest,
    ChatRequest,
    ChatSaveRequest,
    GenerateTitleRequest,
    RelatedQuestionsRequest,
)
from app.services import chat_history

logger = logging.getLogger(__name__)
router = APIRouter(tags=["chat"])


def _chat_sse(messages: list[dict], model: str, context: dict | None, connectors: dict | None):
    """Yield Server-Sent Events for one chat turn."""
    try:
        for evt in run_chat_stream(messages, model, context=context, connectors=connectors):
            event_type = evt.pop("event", "")
            yield named_sse(event_type, evt)
    except Exception as e:
        logger.exception("SSE stream failed")
        yield named_sse("error", {"message": str(e)})


@router.post(
    "/chat",
    summary="Chat with the brand assistant (SSE stream)",
    description="Events: model, text_delta, tool, done, error. 400 without messages, 503 when the model's provider key is missing.",
)
def post_chat(body: ChatRequest) -> StreamingResponse:
    if not body.messages:
        raise HTTPException(status_code=400, detail="Messages array is required")
    messages = normalize_messages(body.messages)
    if not messages:
        raise HTTPException(status_code=400, detail="Messages array is required")
    model = resolve_model(body.model, body.messages)
    ok, error = check_api_key(model)
    if not ok:
        status = 400 if error and error.startswith("Unknown model") else 503
        raise HTTPException(status_code=status, detail=error)
    if body.model in (None, "", "auto"):
        logger.info("[api:post_chat] auto-router: %s", auto_router_explanation(message_text(messages[-1])))
    logger.info("[api:post_chat] IN  model=%s messages=%d", model, len(messages))
    return StreamingResponse(
        _chat_sse(messages, model, body.context, body.connectors),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# --- Follow-ups ---

@router.post("/generate-title", summary="Short title for a conversation")
def generate_title(body: GenerateTitleRequest) -> dict:
    if not body.messages:
        raise HTTPException(status_code=400, detail="Messages required")
    return {"title": followups.generate_title(body.messages)}


@router.post("/related-questions", summary="Follow-up questions for an answer")
def related_questions(body: RelatedQuestionsRequest) -> dict:
    """Empty list when Claude is unavailable; the client then shows its own suggestions."""
    if not body.query or not body.response:
        raise HTTPException(status_code=400, detail="Query and response are required")
    return {"questions": followups.generate_related_questions(body.query, body.response)}


# --- Chat history ---

@router.get("/chats", summary="Saved chats, most recent first")
def list_chats(limit: int = 50) -> dict:
    return {"sessions": chat_history.get_sessions(limit=max(1, min(limit, 200)))}


@router.get("/chats/search", summary="Search saved chats by title and message text")
def search_chats(q: str = "", limit: int = 20) -> dict:
    return {"sessions": chat_history.search_sessions(q, limit=max(1, min(limit, 100)))}


@router.get("/chats/{chat_id}", summary="One saved chat with its messages")
def get_chat(chat_id: str) -> dict:
    session = chat_history.get_session(chat_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return session


@router.post("/chats", summary="Save a chat (create, or update and append new messages)")
def save_chat(body: ChatSaveRequest) -> dict:
    messages = [m.model_dump() for m in body.messages]
    session = chat_history.save_session(body.title, messages, existing_id=body.id)
    if session is None:
        if body.id and chat_history.get_session(body.id) is None:
            raise HTTPException(status_code=404, detail="Chat not found")
        raise HTTPException(status_code=500, detail="Failed to save chat")
    return session


@router.patch("/chats/{chat_id}", summary="Rename a chat")
def rename_chat(chat_id: str, body: ChatRenameRequest) -> dict:
    if not chat_history.rename_session(chat_id, body.title):
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"success": True}


@router.delete("/chats/{chat_id}", summary="Delete a chat and its messages")
def delete_chat(chat_id: str) -> dict:
    if not chat_history.delete_session(chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"success": True}
