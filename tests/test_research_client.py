"""
Tests for the research stream reducer and the blocking client (transport mocked with httpx.MockTransport).
"""

import json
import threading
import time

import httpx

from app.research.client import (
    TIMEOUT_MESSAGE,
    ResearchClient,
    ResearchProgress,
    iter_sse_events,
    reduce_event,
)


def _event(kind: str, **data) -> dict:
    return {"type": kind, "sessionId": "s1", "timestamp": 0, "data": data}


def _replay(events: list[dict]) -> ResearchProgress:
    state = ResearchProgress()
    for event in events:
        state = reduce_event(state, event)
    return state


class TestReduceEvent:
    def test_start_resets_state(self) -> None:
        dirty = ResearchProgress(phase="error", error="old")
        state = reduce_event(dirty, _event("research_start", estimatedTime=30))
        assert state.phase == "starting"
        assert state.error is None
        assert state.estimated_time == 30

    def test_classify_sets_classifying_phase(self) -> None:
        state = _replay([_event("classify", complexity="moderate", confidence=0.7, estimatedTime=45)])
        assert state.phase == "classifying"
        assert state.complexity == "moderate"
        assert state.estimated_time == 45

    def test_plan_sets_planning_phase_and_estimate(self) -> None:
        state = _replay(
            [
                _event("classify", complexity="moderate", confidence=0.7, estimatedTime=60),
                _event("plan", subQuestions=[{"id": "sq-1"}, {"id": "sq-2"}], totalEstimatedTime=42),
            ]
        )
        assert state.phase == "planning"
        assert state.total_searches == 2
        assert state.estimated_time == 42

    def test_search_start_marks_sub_question_searching(self) -> None:
        state = _replay(
            [
                _event("plan", subQuestions=[{"id": "sq-1", "status": "pending"}, {"id": "sq-2", "status": "pending"}]),
                _event("search_start", subQuestionId="sq-2", question="q2"),
            ]
        )
        assert [sq["status"] for sq in state.sub_questions] == ["pending", "searching"]
        assert state.current_search == "q2"

    def test_synthesis_keeps_round2_phase(self) -> None:
        first = _replay([_event("synthesize_start"), _event("synthesize_progress", progress=40)])
        assert first.phase == "synthesizing"
        assert first.synthesis_progress == 40
        second = _replay(
            [
                _event("round2_start", gaps=[], newQueries=["a"]),
                _event("synthesize_start"),
                _event("synthesize_progress", progress=70),
            ]
        )
        assert second.phase == "round2"
        assert second.synthesis_progress == 70

    def test_search_progress_counts_latest_per_question(self) -> None:
        state = _replay(
            [
                _event("search_progress", subQuestionId="sq-1", sourcesFound=2),
                _event("search_progress", subQuestionId="sq-1", sourcesFound=4),
                _event("search_progress", subQuestionId="sq-2", sourcesFound=1),
            ]
        )
        assert state.sources_found == 5

    def test_search_complete_marks_sub_question(self) -> None:
        state = _replay(
            [
                _event("plan", subQuestions=[{"id": "sq-1", "status": "pending"}]),
                _event("search_start", subQuestionId="sq-1", question="q"),
                _event("search_complete", subQuestionId="sq-1", note={"id": "n1"}),
            ]
        )
        assert state.completed_searches == 1
        assert state.sub_questions[0]["status"] == "completed"
        assert state.notes == [{"id": "n1"}]
        assert state.current_search is None

    def test_fast_path_search_start_without_plan(self) -> None:
        state = _replay([_event("search_start", subQuestionId="sq-fast", question="q")])
        assert state.phase == "searching"
        assert state.total_searches == 1

    def test_round2_adds_searches(self) -> None:
        state = _replay(
            [
                _event("plan", subQuestions=[{"id": "sq-1"}]),
                _event("round2_start", gaps=[{"id": "g"}], newQueries=["a", "b"]),
                _event("search_start", subQuestionId="sq-r2-0", question="a"),
            ]
        )
        assert state.is_round2
        assert state.total_searches == 3
        assert state.phase == "round2"

    def test_complete_and_error(self) -> None:
        done = _replay([_event("research_complete", answer="A", gaps=[])])
        assert done.phase == "completed"
        assert done.result["answer"] == "A"
        assert done.synthesis_progress == 100
        failed = _replay([_event("error", message="boom")])
        assert failed.phase == "error" and failed.error == "boom"

    def test_unknown_event_is_ignored(self) -> None:
        state = ResearchProgress(phase="searching")
        assert reduce_event(state, _event("mystery")) is state


def test_iter_sse_events_skips_noise() -> None:
    lines = ["", ": keepalive", 'data: {"type": "classify"}', "data: not json", "data: [DONE]"]
    assert list(iter_sse_events(lines)) == [{"type": "classify"}]


def _client_for(handler) -> ResearchClient:
    return ResearchClient("http://test", http=httpx.Client(transport=httpx.MockTransport(handler)))


def test_client_replays_stream() -> None:
    frames = [
        _event("research_start", estimatedTime=30),
        _event("classify", complexity="simple", confidence=0.9, estimatedTime=10),
        _event("research_complete", answer="Paris", gaps=[]),
    ]
    body = "".join(f"data: {json.dumps(f)}\n\n" for f in frames) + "data: [DONE]\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/research"
        assert json.loads(request.content)["query"] == "capital of France"
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    seen = []
    state = _client_for(handler).start("capital of France", on_event=seen.append)
    assert state.phase == "completed"
    assert state.result["answer"] == "Paris"
    assert len(seen) == 3


def test_client_reports_http_error_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": "Query is required and must be a non-empty string"})

    errors = []
    client = _client_for(handler)
    state = client.start("", on_error=errors.append)
    assert state.phase == "error"
    assert errors == ["Query is required and must be a non-empty string"]
    assert not client.is_running


def test_client_reports_error_field_then_status() -> None:
    replies = iter(
        [
            httpx.Response(503, json={"error": "PERPLEXITY_API_KEY is not configured"}),
            httpx.Response(502, text="bad gateway"),
        ]
    )
    client = _client_for(lambda request: next(replies))
    assert client.start("q").error == "PERPLEXITY_API_KEY is not configured"
    assert client.start("q").error == "HTTP error 502"


def test_client_timeout_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    errors = []
    state = _client_for(handler).start("q", on_error=errors.append)
    assert state.phase == "error"
    assert state.error == TIMEOUT_MESSAGE
    assert errors == ["Research request timed out. Please try again."]


def _stalled_stream(release: threading.Event):
    def handler(request: httpx.Request) -> httpx.Response:
        def body():
            yield f"data: {json.dumps(_event('research_start', estimatedTime=30))}\n\n".encode()
            release.wait(5)
            yield f"data: {json.dumps(_event('classify', complexity='simple'))}\n\n".encode()

        return httpx.Response(200, content=body(), headers={"content-type": "text/event-stream"})

    return handler


def test_stop_from_another_thread_returns_immediately() -> None:
    release = threading.Event()
    client = _client_for(_stalled_stream(release))
    errors = []
    timer = threading.Timer(0.2, client.stop)
    timer.start()
    began = time.monotonic()
    try:
        state = client.start("q", on_error=errors.append)
    finally:
        release.set()
        timer.cancel()
    assert time.monotonic() - began < 2
    assert state.phase == "starting"
    assert errors == []
    assert not client.is_running


def test_stop_from_event_callback() -> None:
    release = threading.Event()
    client = _client_for(_stalled_stream(release))
    seen = []

    def on_event(event: dict) -> None:
        seen.append(event["type"])
        assert client.is_running
        client.stop()

    try:
        state = client.start("q", on_event=on_event)
    finally:
        release.set()
    assert seen == ["research_start"]
    assert state.phase == "starting"
    assert not client.is_running


def test_reset_returns_to_idle() -> None:
    release = threading.Event()
    client = _client_for(_stalled_stream(release))
    try:
        client.start("q", on_event=lambda event: client.reset())
    finally:
        release.set()
    assert client.state == ResearchProgress()
    assert client.state.phase == "idle"
    assert not client.is_running
