"""
Research client: consumes the /api/research SSE stream and folds events into progress state.

reduce_event is pure so UIs and tests can replay a recorded stream.
ResearchClient owns one request at a time: start() blocks until the stream
ends; stop() from another thread or from an on_event callback aborts it at
once and closes the response without reporting an error.
"""

import json
import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Research request timed out. Please try again."

# reader thread sentinels
_FINISHED = object()
_ABORTED = object()


@dataclass
class ResearchProgress:
    phase: str = "idle"
    complexity: str | None = None
    confidence: float | None = None
    estimated_time: int | None = None
    sub_questions: list[dict] = field(default_factory=list)
    completed_searches: int = 0
    total_searches: int = 0
    current_search: str | None = None
    sources_found: int = 0
    synthesis_progress: int = 0
    gaps: list[dict] = field(default_factory=list)
    is_round2: bool = False
    notes: list[dict] = field(default_factory=list)
    result: dict | None = None
    error: str | None = None
    # latest sourcesFound per sub-question, so repeated progress events do not double count
    sources_by_question: dict[str, int] = field(default_factory=dict)


def _mark_sub_question(sub_questions: list[dict], sq_id: str | None, status: str) -> list[dict]:
    return [{**sq, "status": status} if sq.get("id") == sq_id else sq for sq in sub_questions]


def reduce_event(state: ResearchProgress, event: dict[str, Any]) -> ResearchProgress:
    """Return the state after one wire event. Unknown event types leave state unchanged."""
    kind = event.get("type")
    data = event.get("data") or {}

    if kind == "research_start":
        return ResearchProgress(phase="starting", estimated_time=data.get("estimatedTime"))

    if kind == "classify":
        return replace(
            state,
            phase="classifying",
            complexity=data.get("complexity"),
            confidence=data.get("confidence"),
            estimated_time=data.get("estimatedTime", state.estimated_time),
        )

    if kind == "plan":
        sub_questions = list(data.get("subQuestions") or [])
        return replace(
            state,
            phase="planning",
            sub_questions=sub_questions,
            total_searches=len(sub_questions),
            estimated_time=data.get("totalEstimatedTime", state.estimated_time),
        )

    if kind == "search_start":
        sq_id = data.get("subQuestionId")
        return replace(
            state,
            phase="round2" if state.is_round2 else "searching",
            current_search=data.get("question"),
            sub_questions=_mark_sub_question(state.sub_questions, sq_id, "searching"),
            # fast path runs without a plan event
            total_searches=max(state.total_searches, 1),
        )

    if kind == "search_progress":
        by_question = dict(state.sources_by_question)
        by_question[data.get("subQuestionId", "")] = int(data.get("sourcesFound") or 0)
        return replace(state, sources_by_question=by_question, sources_found=sum(by_question.values()))

    if kind == "search_complete":
        note = data.get("note")
        return replace(
            state,
            notes=state.notes + ([note] if note else []),
            completed_searches=state.completed_searches + 1,
            sub_questions=_mark_sub_question(state.sub_questions, data.get("subQuestionId"), "completed"),
            current_search=None,
        )

    if kind == "synthesize_start":
        return replace(state, phase="round2" if state.is_round2 else "synthesizing", synthesis_progress=0)

    if kind == "synthesize_progress":
        return replace(state, synthesis_progress=int(data.get("progress") or 0))

    if kind == "gap_found":
        gap = data.get("gap")
        return replace(state, phase="gap_analysis", gaps=state.gaps + ([gap] if gap else []))

    if kind == "round2_start":
        new_queries = data.get("newQueries") or []
        return replace(
            state,
            phase="round2",
            is_round2=True,
            gaps=list(data.get("gaps") or state.gaps),
            total_searches=state.total_searches + len(new_queries),
        )

    if kind == "research_complete":
        return replace(
            state,
            phase="completed",
            result=data,
            gaps=list(data.get("gaps") or state.gaps),
            synthesis_progress=100,
            current_search=None,
        )

    if kind == "error":
        return replace(state, phase="error", error=data.get("message") or "Research failed")

    return state


def iter_sse_events(lines) -> Any:
    """Yield parsed JSON events from `data:` lines; skips blanks, comments and [DONE]."""
    for line in lines:
        if not line or not line.startswith("data:"):
            continue
        payload = line[5:].strip()
        if not payload or payload == "[DONE]":
            continue
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("[research_client:iter_sse_events] skipping malformed frame: %.80s", payload)


class ResearchClient:
    """Blocking client for POST /api/research."""

    def __init__(self, base_url: str, timeout: float = 120.0, http: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http
        self._abort = threading.Event()
        self._lock = threading.Lock()
        self._running = False
        self._resp: httpx.Response | None = None
        self._inbox: queue.Queue | None = None
        self.state = ResearchProgress()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(
        self,
        query: str,
        options: dict | None = None,
        on_event: Callable[[dict], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> ResearchProgress:
        """
        Run one research request to completion (or abort) and return the final state.

        The response is read on a worker thread; events are reduced and callbacks
        run on the calling thread, so stop() returns control here at once even
        while the worker is blocked on a silent server.
        """
        inbox: queue.Queue = queue.Queue()
        with self._lock:
            self._abort.clear()
            self._inbox = inbox
            self._running = True
            self.state = ResearchProgress(phase="starting")
        body = {"query": query, "options": options or {}}
        reader = threading.Thread(target=self._read_stream, args=(body, inbox), daemon=True)
        reader.start()
        try:
            while not self._abort.is_set():
                item = inbox.get()
                if item is _ABORTED or item is _FINISHED:
                    break
                kind, payload = item
                if kind == "error":
                    self._fail(payload, on_error)
                    break
                with self._lock:
                    self.state = reduce_event(self.state, payload)
                if on_event:
                    on_event(payload)
                if payload.get("type") == "error" and on_error:
                    on_error(self.state.error or "Research failed")
        finally:
            with self._lock:
                self._running = False
                self._inbox = None
        if self._abort.is_set():
            logger.info("[research_client:start] aborted by caller")
        return self.state

    def _read_stream(self, body: dict, inbox: queue.Queue) -> None:
        http = self._http or httpx.Client(timeout=self.timeout)
        opened: httpx.Response | None = None
        try:
            with http.stream("POST", f"{self.base_url}/api/research", json=body, timeout=self.timeout) as resp:
                opened = resp
                with self._lock:
                    self._resp = resp
                if resp.status_code != 200:
                    resp.read()
                    inbox.put(("error", _error_from_response(resp)))
                    return
                for event in iter_sse_events(resp.iter_lines()):
                    if self._abort.is_set():
                        return
                    inbox.put(("event", event))
        except httpx.TimeoutException:
            if not self._abort.is_set():
                inbox.put(("error", TIMEOUT_MESSAGE))
        except httpx.HTTPError as e:
            if not self._abort.is_set():
                inbox.put(("error", str(e) or "Research request failed"))
        except httpx.StreamError as e:
            # stop() closed the response under the reader
            if not self._abort.is_set():
                inbox.put(("error", str(e) or "Research stream closed"))
        finally:
            with self._lock:
                if self._resp is opened:
                    self._resp = None
            inbox.put(_FINISHED)
            if self._http is None:
                http.close()

    def stop(self) -> None:
        """Abort the in-flight request; no error is reported for it."""
        with self._lock:
            self._abort.set()
            self._running = False
            resp, inbox = self._resp, self._inbox
        if inbox is not None:
            inbox.put(_ABORTED)
        if resp is not None:
            try:
                resp.close()
            except (httpx.HTTPError, RuntimeError, ValueError) as e:
                # the reader thread may be mid-read on the same stream
                logger.debug("[research_client:stop] close raced the reader: %s", e)

    def reset(self) -> None:
        self.stop()
        with self._lock:
            self.state = ResearchProgress()

    def _fail(self, message: str, on_error: Callable[[str], None] | None) -> None:
        logger.warning("[research_client:start] %s", message)
        with self._lock:
            self.state = replace(self.state, phase="error", error=message)
        if on_error:
            on_error(message)


def _error_from_response(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    return f"HTTP error {resp.status_code}"
