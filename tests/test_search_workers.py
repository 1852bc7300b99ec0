"""
Unit tests for search workers. Perplexity is mocked; retries do not sleep.
"""

from unittest.mock import patch

from app.core.errors import ServiceUnavailableError
from app.research.search_workers import (
    SearchCallbacks,
    calculate_note_confidence,
    estimate_batch_cost,
    execute_parallel_searches,
    execute_search,
    retry_search,
    transform_citations,
)
from app.research.types import SubQuestion

SQ = SubQuestion(id="sq-1", question="What is the capital of France?")


def _fake_stream(content: str, urls: list[str]):
    def _stream(messages, model="sonar"):
        yield ("content_delta", content[: len(content) // 2])
        if urls:
            yield ("citations", urls)
        yield ("content_delta", content[len(content) // 2:])
    return _stream


class TestTransformCitations:
    def test_domain_title_and_favicon(self) -> None:
        [c] = transform_citations(["https://www.example.com/guides/solar-power_basics.html"])
        assert c.id == "citation-0"
        assert c.domain == "example.com"
        assert c.title == "Solar Power Basics"
        assert c.favicon == "https://www.google.com/s2/favicons?domain=example.com&sz=32"

    def test_url_without_path_is_titled_source(self) -> None:
        [c] = transform_citations(["https://example.org"])
        assert c.title == "Source"


class TestNoteConfidence:
    def test_bare_content_scores_base(self) -> None:
        assert calculate_note_confidence("short", []) == 0.5

    def test_rich_content_is_capped(self) -> None:
        content = "x" * 2500 + ' 42% "a long quoted passage" \n- item'
        citations = transform_citations([f"https://s{i}.com/a" for i in range(6)])
        assert calculate_note_confidence(content, citations) == 0.95


class TestExecuteSearch:
    def test_success_builds_note(self) -> None:
        progress = []
        stream = _fake_stream("Paris is the capital.", ["https://a.com/x", "https://b.com/y"])
        with patch("app.research.search_workers.stream_perplexity", side_effect=stream):
            result = execute_search(SQ, "s1", on_progress=progress.append)
        assert result.success
        assert result.note.content == "Paris is the capital."
        assert result.note.id == "note-s1-sq-1"
        assert len(result.note.citations) == 2
        assert progress == [2]

    def test_missing_key_is_a_failed_result(self) -> None:
        error = ServiceUnavailableError("PERPLEXITY_API_KEY not configured")
        with patch("app.research.search_workers.stream_perplexity", side_effect=error):
            result = execute_search(SQ, "s1")
        assert not result.success
        assert result.error == "PERPLEXITY_API_KEY not configured"

    def test_context_goes_into_system_prompt(self) -> None:
        seen = {}

        def _stream(messages, model="sonar"):
            seen["system"] = messages[0]["content"]
            yield ("content_delta", "ok")

        with patch("app.research.search_workers.stream_perplexity", side_effect=_stream):
            execute_search(SQ, "s1", context="earlier answer")
        assert seen["system"].endswith("Context from previous research:\nearlier answer")


class TestRetrySearch:
    def test_retries_then_reports_attempts(self) -> None:
        with (
            patch("app.research.search_workers.stream_perplexity", side_effect=RuntimeError("HTTP 500")) as mock_stream,
            patch("app.research.search_workers.time.sleep") as mock_sleep,
        ):
            result = retry_search(SQ, "s1", max_retries=2)
        assert mock_stream.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]
        assert result.error == "Failed after 3 attempts: HTTP 500"

    def test_auth_errors_are_not_retried(self) -> None:
        with (
            patch("app.research.search_workers.stream_perplexity", side_effect=RuntimeError("Authentication failed")) as mock_stream,
            patch("app.research.search_workers.time.sleep") as mock_sleep,
        ):
            result = retry_search(SQ, "s1")
        assert mock_stream.call_count == 1
        mock_sleep.assert_not_called()
        assert result.error == "Authentication failed"


class TestParallelSearches:
    def test_notes_in_plan_order_and_callbacks_fire(self) -> None:
        sqs = [SubQuestion(id=f"sq-{i}", question=f"Question number {i}?") for i in range(1, 4)]
        started, completed = [], []
        callbacks = SearchCallbacks(
            on_search_start=lambda sq_id, q: started.append(sq_id),
            on_search_complete=lambda sq_id, note: completed.append(sq_id),
        )
        with patch("app.research.search_workers.stream_perplexity", side_effect=_fake_stream("answer text", [])):
            result = execute_parallel_searches(sqs, "s1", callbacks=callbacks, concurrency=2)
        assert [n.sub_question_id for n in result.notes] == ["sq-1", "sq-2", "sq-3"]
        assert sorted(started) == ["sq-1", "sq-2", "sq-3"]
        assert sorted(completed) == ["sq-1", "sq-2", "sq-3"]
        assert result.failed_questions == []

    def test_failures_are_collected(self) -> None:
        errors = []
        callbacks = SearchCallbacks(on_search_error=lambda sq_id, err: errors.append(sq_id))
        with patch("app.research.search_workers.stream_perplexity", side_effect=RuntimeError("api key invalid")):
            result = execute_parallel_searches([SQ], "s1", callbacks=callbacks)
        assert result.notes == []
        assert [sq.id for sq in result.failed_questions] == ["sq-1"]
        assert errors == ["sq-1"]

    def test_failed_search_is_not_retried(self) -> None:
        with (
            patch("app.research.search_workers.stream_perplexity", side_effect=RuntimeError("upstream 500")) as mock_stream,
            patch("app.research.search_workers.time.sleep") as mock_sleep,
        ):
            result = execute_parallel_searches([SQ], "s1")
        assert mock_stream.call_count == 1
        mock_sleep.assert_not_called()
        assert [sq.id for sq in result.failed_questions] == ["sq-1"]

    def test_empty_input(self) -> None:
        result = execute_parallel_searches([], "s1")
        assert result.notes == [] and result.total_duration_ms == 0


def test_batch_cost_by_model() -> None:
    assert estimate_batch_cost(3, "sonar") == 3 * 0.005
    assert estimate_batch_cost(2, "sonar-pro") == 2 * 0.02
