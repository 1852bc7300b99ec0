"""
Integration tests for the research graph. Claude and Perplexity are mocked at the
module boundaries (planner.complete, synthesizer.stream_text, search_workers.stream_perplexity).
"""

import json
from unittest.mock import patch

import pytest

from app.research.orchestrator import make_event, new_session_id, run_research_stream
from app.research.types import ResearchOptions
from app.services import research_store

PLAN_REPLY = json.dumps(
    {
        "subQuestions": [
            {"question": "What does solar power cost today?", "priority": "high"},
            {"question": "How fast is solar capacity growing?", "priority": "medium"},
        ]
    }
)


def _search(messages, model="sonar"):
    question = messages[-1]["content"]
    yield ("content_delta", f"Findings for {question}")
    yield ("citations", [f"https://example.com/{len(question)}"])


def _synthesis(answer: str, confidence: float, gaps: list[dict] | None = None):
    return iter([answer, "\n```json\n" + json.dumps({"gaps": gaps or [], "confidence": confidence}) + "\n```"])


def _types(events: list[dict]) -> list[str]:
    return [e["type"] for e in events]


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("app.research.search_workers.time.sleep"):
        yield


def test_session_id_format() -> None:
    session_id = new_session_id()
    assert session_id.startswith("research-")
    assert len(session_id.split("-")[-1]) == 7


def test_make_event_is_camel_case() -> None:
    event = make_event("classify", "s1", {"complexity": "simple"})
    assert set(event) == {"type", "sessionId", "timestamp", "data"}


def test_fast_path_for_simple_query() -> None:
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=_search),
        patch("app.research.planner.complete") as mock_plan,
        patch("app.research.synthesizer.stream_text") as mock_synth,
    ):
        events = list(run_research_stream("What is photosynthesis?"))
    mock_plan.assert_not_called()
    mock_synth.assert_not_called()
    assert _types(events) == [
        "research_start",
        "classify",
        "search_start",
        "search_progress",
        "search_complete",
        "research_complete",
    ]
    complete = events[-1]["data"]
    assert complete["answer"] == "Findings for What is photosynthesis?"
    assert complete["currentRound"] == 1
    assert complete["metrics"]["totalQueries"] == 1

    session = research_store.get_session(events[0]["sessionId"])
    assert session["status"] == "completed"
    assert session["complexity"] == "simple"


def test_planned_research_without_round2() -> None:
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=_search),
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
        patch("app.research.synthesizer.stream_text", return_value=_synthesis("Solar is cheap [1] and growing [2].", 0.9)),
    ):
        events = list(run_research_stream("solar economics", ResearchOptions(force_complexity="moderate")))
    types = _types(events)
    assert types[:3] == ["research_start", "classify", "plan"]
    assert types.count("search_complete") == 2
    assert "synthesize_start" in types
    assert "round2_start" not in types
    assert types[-1] == "research_complete"
    plan = events[2]["data"]
    assert [sq["id"] for sq in plan["subQuestions"]] == ["sq-1", "sq-2"]
    complete = events[-1]["data"]
    assert complete["answer"] == "Solar is cheap [1] and growing [2]."
    assert len(complete["citations"]) == 2
    assert complete["metrics"]["totalQueries"] == 2


def test_round2_runs_for_low_confidence_with_gaps() -> None:
    gaps = [{"description": "no cost data", "suggestedQuery": "solar cost per watt 2025", "priority": "high"}]
    synth_calls = [
        _synthesis("First draft [1].", 0.5, gaps),
        _synthesis("Improved answer [2] [1].", 0.85),
    ]
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=_search) as mock_search,
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
        patch("app.research.synthesizer.stream_text", side_effect=synth_calls),
    ):
        events = list(run_research_stream("solar economics", ResearchOptions(force_complexity="moderate")))
    types = _types(events)
    assert "gap_found" in types
    assert "round2_start" in types
    assert types.count("synthesize_start") == 2
    assert mock_search.call_count == 3
    round2 = next(e for e in events if e["type"] == "round2_start")
    assert round2["data"]["newQueries"] == ["solar cost per watt 2025"]
    complete = events[-1]["data"]
    assert complete["currentRound"] == 2
    assert complete["answer"] == "Improved answer [1] [2]."
    assert complete["gaps"][0]["resolved"] is True


def test_skip_round2_option() -> None:
    gaps = [{"description": "no cost data", "suggestedQuery": "solar cost", "priority": "high"}]
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=_search),
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
        patch("app.research.synthesizer.stream_text", return_value=_synthesis("Draft.", 0.4, gaps)),
    ):
        events = list(
            run_research_stream("solar economics", ResearchOptions(force_complexity="moderate", skip_round2=True))
        )
    assert "round2_start" not in _types(events)
    assert events[-1]["data"]["currentRound"] == 1


def test_all_searches_failing_ends_with_error_event() -> None:
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=RuntimeError("api key rejected")),
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
    ):
        events = list(run_research_stream("solar economics", ResearchOptions(force_complexity="moderate")))
    last = events[-1]
    assert last["type"] == "error"
    assert last["data"]["code"] == "SEARCH_FAILED"
    assert last["data"]["recoverable"] is True
    assert "research_complete" not in _types(events)

    session = research_store.get_session(last["sessionId"])
    assert session["status"] == "failed"
    assert session["error"] == "SEARCH_FAILED"


def test_cost_limit_trims_batch() -> None:
    # sonar at 0.005 per query: a 0.006 budget affords a single search
    with (
        patch("app.research.search_workers.stream_perplexity", side_effect=_search) as mock_search,
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
        patch("app.research.synthesizer.stream_text", return_value=_synthesis("Answer [1].", 0.9)),
    ):
        events = list(
            run_research_stream("solar economics", ResearchOptions(force_complexity="moderate", max_cost=0.006))
        )
    assert mock_search.call_count == 1
    assert events[-1]["type"] == "research_complete"


def test_deadline_before_first_search_is_timeout() -> None:
    with (
        patch.dict("app.research.orchestrator.RESEARCH_CONFIG", {"timeout_ms": -1000}),
        patch("app.research.search_workers.stream_perplexity", side_effect=_search) as mock_search,
        patch("app.research.planner.complete", return_value=PLAN_REPLY),
    ):
        events = list(run_research_stream("solar economics", ResearchOptions(force_complexity="moderate")))
    mock_search.assert_not_called()
    last = events[-1]
    assert last["type"] == "error"
    assert last["data"]["code"] == "TIMEOUT"
    assert last["data"]["message"] == "Research took too long. Returning partial results."
    assert last["data"]["recoverable"] is True


def test_unexpected_exception_is_unknown_and_not_recoverable() -> None:
    with patch("app.research.orchestrator.create_research_plan", side_effect=KeyError("subQuestions")):
        events = list(run_research_stream("solar economics", ResearchOptions(force_complexity="moderate")))
    last = events[-1]
    assert last["type"] == "error"
    assert last["data"]["code"] == "UNKNOWN"
    assert last["data"]["message"] == "An unexpected error occurred during research."
    assert last["data"]["recoverable"] is False
    assert research_store.get_session(last["sessionId"])["error"] == "UNKNOWN"
