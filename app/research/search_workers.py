"""
Search workers: run sub-question searches against Perplexity and turn results into research notes.

Searches run on a bounded thread pool. Workers never call back directly:
they post (kind, ...) tuples to a queue that the calling thread drains, so
every callback runs on the caller's thread in the order things happened.
"""

import logging
import queue
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

from app.agent.llm import stream_perplexity
from app.core.errors import ServiceUnavailableError
from app.research.config import (
    COST_PER_QUERY,
    RESEARCH_CONFIG,
    SEARCH_MAX_RETRIES,
    SEARCH_RETRY_BASE_DELAY,
    SEARCH_SYSTEM_PROMPT,
)
from app.research.types import Citation, ResearchNote, SearchResult, SubQuestion

logger = logging.getLogger(__name__)

_NON_RETRYABLE = ("api key", "api_key", "authentication", "rate limit", "not configured")


@dataclass
class SearchCallbacks:
    """Optional hooks fired (on the caller's thread) as each search progresses."""

    on_search_start: Callable[[str, str], None] | None = None
    on_search_progress: Callable[[str, int], None] | None = None
    on_search_complete: Callable[[str, ResearchNote], None] | None = None
    on_search_error: Callable[[str, str], None] | None = None


@dataclass
class ParallelSearchResult:
    notes: list[ResearchNote] = field(default_factory=list)
    failed_questions: list[SubQuestion] = field(default_factory=list)
    total_duration_ms: int = 0
    parallelization_efficiency: float = 0.0


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _title_from_url(url: str) -> str:
    """Readable title from the last path segment: dashes/underscores to spaces, extension dropped."""
    try:
        parts = [p for p in urlparse(url).path.split("/") if p]
    except ValueError:
        return "Source"
    if not parts:
        return "Source"
    last = re.sub(r"\.(html?|php|aspx?)$", "", parts[-1], flags=re.IGNORECASE)
    words = re.sub(r"[-_]+", " ", last).split()
    if not words:
        return "Source"
    return " ".join(w[:1].upper() + w[1:] for w in words)


def transform_citations(urls: list[str]) -> list[Citation]:
    """Build Citation objects from the raw URL list Perplexity returns."""
    citations = []
    for i, url in enumerate(urls):
        try:
            host = urlparse(url).hostname or ""
        except ValueError:
            host = ""
        domain = re.sub(r"^www\.", "", host) if host else "Unknown"
        citations.append(
            Citation(
                id=f"citation-{i}",
                url=url,
                title=_title_from_url(url),
                domain=domain,
                favicon=f"https://www.google.com/s2/favicons?domain={domain}&sz=32",
            )
        )
    return citations


def calculate_note_confidence(content: str, citations: list[Citation]) -> float:
    """Heuristic 0.5..0.95 from length, source count and presence of figures, quotes and lists."""
    score = 0.5
    if len(content) > 500:
        score += 0.1
    if len(content) > 1000:
        score += 0.1
    if len(content) > 2000:
        score += 0.05
    if len(citations) >= 2:
        score += 0.1
    if len(citations) >= 4:
        score += 0.1
    if len(citations) >= 6:
        score += 0.05
    if re.search(r"\d+(\.\d+)?%?", content):
        score += 0.05
    if re.search(r'"[^"]{10,}"', content):
        score += 0.05
    if re.search(r"(\n[-•*]|\d+\.)", content):
        score += 0.03
    return min(0.95, score)


def execute_search(
    sub_question: SubQuestion,
    session_id: str,
    model: str = "sonar",
    context: str | None = None,
    on_progress: Callable[[int], None] | None = None,
) -> SearchResult:
    """Search one sub-question. Never raises: failures come back as success=False."""
    start = time.monotonic()
    system = SEARCH_SYSTEM_PROMPT
    if context:
        system += f"\n\nContext from previous research:\n{context}"
    messages = [
        {"role": "system", "content": system},
        {"role": "user", "content": sub_question.question},
    ]
    logger.info("[search_workers:execute_search] IN  sq=%s model=%s", sub_question.id, model)
    content_parts: list[str] = []
    urls: list[str] = []
    try:
        for item in stream_perplexity(messages, model=model):
            if item[0] == "content_delta":
                content_parts.append(item[1])
            elif item[0] == "citations":
                urls = item[1]
                if on_progress:
                    on_progress(len(urls))
    except ServiceUnavailableError as e:
        return SearchResult(
            sub_question_id=sub_question.id,
            success=False,
            error=e.message,
            duration_ms=_elapsed_ms(start),
        )
    except Exception as e:
        logger.warning("[search_workers:execute_search] sq=%s failed: %s", sub_question.id, e)
        return SearchResult(
            sub_question_id=sub_question.id,
            success=False,
            error=str(e) or "Unknown search error",
            duration_ms=_elapsed_ms(start),
        )
    content = "".join(content_parts)
    citations = transform_citations(urls)
    note = ResearchNote(
        id=f"note-{session_id}-{sub_question.id}",
        session_id=session_id,
        sub_question_id=sub_question.id,
        content=content,
        citations=citations,
        confidence=calculate_note_confidence(content, citations),
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    duration = _elapsed_ms(start)
    logger.info(
        "[search_workers:execute_search] OUT sq=%s content_len=%d citations=%d duration_ms=%d",
        sub_question.id,
        len(content),
        len(citations),
        duration,
    )
    return SearchResult(sub_question_id=sub_question.id, success=True, note=note, duration_ms=duration)


def retry_search(
    sub_question: SubQuestion,
    session_id: str,
    model: str = "sonar",
    context: str | None = None,
    on_progress: Callable[[int], None] | None = None,
    max_retries: int = SEARCH_MAX_RETRIES,
) -> SearchResult:
    """execute_search with exponential backoff (1s, 2s, 4s...). Auth, key and rate-limit errors are not retried."""
    last: SearchResult | None = None
    attempts = 0
    for attempt in range(max_retries + 1):
        attempts = attempt + 1
        last = execute_search(sub_question, session_id, model, context, on_progress)
        if last.success:
            return last
        error = (last.error or "").lower()
        if any(marker in error for marker in _NON_RETRYABLE):
            return last
        if attempt < max_retries:
            delay = SEARCH_RETRY_BASE_DELAY * (2 ** attempt)
            logger.info("[search_workers:retry_search] sq=%s retry in %.1fs: %s", sub_question.id, delay, last.error)
            time.sleep(delay)
    return last.model_copy(update={"error": f"Failed after {attempts} attempts: {last.error}"})


def execute_parallel_searches(
    sub_questions: list[SubQuestion],
    session_id: str,
    model: str = "sonar",
    callbacks: SearchCallbacks | None = None,
    context: str | None = None,
    concurrency: int = RESEARCH_CONFIG["parallel_searches"],
) -> ParallelSearchResult:
    """
    Run searches with at most `concurrency` in flight; callbacks fire on this thread.
    Each search runs once; a failure lands in failed_questions (retry_search is for
    callers that want backoff on a single question).
    """
    callbacks = callbacks or SearchCallbacks()
    result = ParallelSearchResult()
    if not sub_questions:
        return result
    start = time.monotonic()
    events: queue.Queue = queue.Queue()
    by_id = {sq.id: sq for sq in sub_questions}

    def _worker(sq: SubQuestion) -> None:
        events.put(("start", sq.id, sq.question))
        try:
            res = execute_search(
                sq,
                session_id,
                model,
                context,
                on_progress=lambda n, sid=sq.id: events.put(("progress", sid, n)),
            )
        except Exception as e:
            res = SearchResult(sub_question_id=sq.id, success=False, error=str(e))
        events.put(("done", sq.id, res))

    durations: list[int] = []
    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as pool:
        for sq in sub_questions:
            pool.submit(_worker, sq)
        pending = len(sub_questions)
        while pending:
            kind, sq_id, payload = events.get()
            if kind == "start":
                if callbacks.on_search_start:
                    callbacks.on_search_start(sq_id, payload)
            elif kind == "progress":
                if callbacks.on_search_progress:
                    callbacks.on_search_progress(sq_id, payload)
            else:
                pending -= 1
                res: SearchResult = payload
                durations.append(res.duration_ms)
                if res.success and res.note is not None:
                    result.notes.append(res.note)
                    if callbacks.on_search_complete:
                        callbacks.on_search_complete(sq_id, res.note)
                else:
                    result.failed_questions.append(by_id[sq_id])
                    if callbacks.on_search_error:
                        callbacks.on_search_error(sq_id, res.error or "Unknown search error")
    order = {sq.id: i for i, sq in enumerate(sub_questions)}
    result.notes.sort(key=lambda n: order.get(n.sub_question_id, len(order)))
    result.total_duration_ms = _elapsed_ms(start)
    if result.total_duration_ms > 0:
        result.parallelization_efficiency = min(
            1.0, sum(durations) / (result.total_duration_ms * max(1, concurrency))
        )
    logger.info(
        "[search_workers:execute_parallel_searches] OUT notes=%d failed=%d duration_ms=%d",
        len(result.notes),
        len(result.failed_questions),
        result.total_duration_ms,
    )
    return result


def estimate_batch_cost(query_count: int, model: str = "sonar") -> float:
    return query_count * COST_PER_QUERY.get(model, COST_PER_QUERY["sonar"])
