"""
Research endpoints: start a streamed deep-research session, health, history and trigger hints.
"""

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from app.api.handlers import SSE_DONE, SSE_HEADERS, data_sse
from app.core.config import ANTHROPIC_API_KEY, MAX_RESEARCH_QUERY_CHARS, PERPLEXITY_API_KEY
from app.research.classifier import classify_query_heuristic
from app.research.config import estimate_session_cost, get_recommended_model, should_trigger_research
from app.research.orchestrator import run_research_stream
from app.research.types import ResearchOptions
from app.schemas.research import ResearchRequest
from app.services import research_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/research", tags=["research"])


def _research_sse(query: str, options: ResearchOptions | None):
    """Relay orchestrator events as `data:` frames, then [DONE]."""
    try:
        for event in run_research_stream(query, options):
            yield data_sse(event)
    except Exception:
        # run_research_stream reports its own failures; this only guards the relay
        logger.exception("[api:research] stream relay failed")
    yield SSE_DONE


@router.post(
    "",
    summary="Run deep research (SSE stream)",
    description="Streams research events as `data: {json}` frames ending with `data: [DONE]`. 400 on invalid query, 503 when a provider key is missing.",
)
def post_research(body: ResearchRequest) -> StreamingResponse:
    query = body.query
    if not isinstance(query, str) or not query.strip():
        raise HTTPException(status_code=400, detail="Query is required and must be a non-empty string")
    if len(query) > MAX_RESEARCH_QUERY_CHARS:
        raise HTTPException(status_code=400, detail=f"Query must be less than {MAX_RESEARCH_QUERY_CHARS} characters")
    if not PERPLEXITY_API_KEY:
        raise HTTPException(status_code=503, detail="PERPLEXITY_API_KEY is not configured")
    if not ANTHROPIC_API_KEY:
        raise HTTPException(status_code=503, detail="ANTHROPIC_API_KEY is not configured")
    logger.info("[api:post_research] IN  query=%r", query[:100])
    return StreamingResponse(
        _research_sse(query.strip(), body.options),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("", summary="Research service health")
def research_health() -> dict:
    perplexity = bool(PERPLEXITY_API_KEY)
    anthropic = bool(ANTHROPIC_API_KEY)
    return {
        "status": "ok",
        "service": "deep-research",
        "perplexityConfigured": perplexity,
        "anthropicConfigured": anthropic,
        "ready": perplexity and anthropic,
    }


@router.get("/sessions", summary="Recent research sessions")
def list_research_sessions(limit: int = 20) -> dict:
    return {"sessions": research_store.list_sessions(limit=max(1, min(limit, 100)))}


@router.get("/sessions/{session_id}", summary="One recorded research session")
def get_research_session(session_id: str) -> dict:
    session = research_store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Research session not found")
    return session


@router.get("/should-trigger", summary="Whether a chat query warrants deep research")
def should_trigger(query: str = "") -> dict:
    """Trigger decision plus the heuristic complexity and what a session would roughly cost."""
    classification = classify_query_heuristic(query)
    complexity = classification.complexity
    return {
        "shouldTrigger": should_trigger_research(query),
        "complexity": complexity,
        "recommendedModel": get_recommended_model(complexity),
        "estimatedTime": classification.estimated_time,
        "estimatedCost": estimate_session_cost(complexity, use_pro_model=complexity == "complex"),
    }
