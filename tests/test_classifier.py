"""
Unit tests for query complexity classification.
"""

from unittest.mock import patch

from app.research.classifier import (
    classify_query,
    classify_query_heuristic,
    combine_scores,
    score_by_keywords,
    score_by_length,
    score_by_structure,
    should_use_fast_path,
)
from app.research.types import ClassificationResult


class TestScoring:
    def test_keywords_weight_complex_higher(self) -> None:
        assert score_by_keywords("what is rust") == {"simple": 2, "moderate": 0, "complex": 0}
        assert score_by_keywords("compare go and rust") == {"simple": 0, "moderate": 2, "complex": 0}
        assert score_by_keywords("analyze the market") == {"simple": 0, "moderate": 0, "complex": 3}

    def test_length_buckets(self) -> None:
        assert score_by_length("short")["simple"] == 3
        assert score_by_length("x" * 100)["moderate"] == 2
        assert score_by_length("x" * 200)["complex"] == 2

    def test_structure_signals(self) -> None:
        scores = score_by_structure("How has it changed over time? Why?")
        assert scores["complex"] == 4  # two questions + temporal phrase
        assert score_by_structure("statistics and data")["moderate"] == 3

    def test_tie_favours_more_complex(self) -> None:
        complexity, confidence = combine_scores({"simple": 2, "moderate": 2, "complex": 2})
        assert complexity == "complex"
        assert abs(confidence - (0.5 + (2 / 6) * 0.45)) < 1e-9

    def test_no_signals_is_half_confident(self) -> None:
        assert combine_scores({}) == ("complex", 0.5)


class TestClassify:
    def test_simple_definition_question(self) -> None:
        result = classify_query_heuristic("What is photosynthesis?")
        assert result.complexity == "simple"
        assert result.estimated_time == 10
        assert result.suggested_model == "sonar"

    def test_complex_analysis_question(self) -> None:
        result = classify_query_heuristic(
            "Analyze the impact on healthcare of AI adoption over time, including regulation and statistics"
        )
        assert result.complexity == "complex"
        assert result.suggested_model == "sonar-pro"
        assert result.estimated_time == 60

    def test_force_complexity_bypasses_scoring(self) -> None:
        result = classify_query("What is X?", force_complexity="complex")
        assert result.complexity == "complex"
        assert result.confidence == 1.0
        assert result.reasoning == "Forced complexity"

    def test_llm_not_called_by_default(self) -> None:
        with patch("app.research.classifier.complete") as mock_complete:
            classify_query("compare rust and go for backend services")
        mock_complete.assert_not_called()

    def test_llm_result_used_when_heuristic_unsure(self) -> None:
        reply = 'Sure: {"complexity": "moderate", "confidence": 0.9, "reasoning": "comparison"}'
        with patch("app.research.classifier.complete", return_value=reply):
            result = classify_query("compare rust and go for backend services", use_llm=True)
        assert result.complexity == "moderate"
        assert result.confidence == 0.9
        assert result.reasoning == "comparison"

    def test_llm_failure_falls_back_to_heuristic(self) -> None:
        query = "compare rust and go for backend services"
        with patch("app.research.classifier.complete", side_effect=RuntimeError("boom")):
            result = classify_query(query, use_llm=True)
        assert result == classify_query_heuristic(query)

    def test_llm_invalid_complexity_falls_back(self) -> None:
        query = "compare rust and go for backend services"
        with patch("app.research.classifier.complete", return_value='{"complexity": "huge"}'):
            result = classify_query(query, use_llm=True)
        assert result.reasoning.startswith("Heuristic")


def _classification(complexity: str, confidence: float) -> ClassificationResult:
    return ClassificationResult(
        complexity=complexity,
        confidence=confidence,
        reasoning="",
        estimated_time=10,
        suggested_model="sonar",
    )


def test_fast_path_only_for_confident_simple_queries() -> None:
    assert should_use_fast_path(_classification("simple", 0.7))
    assert not should_use_fast_path(_classification("simple", 0.69))
    assert not should_use_fast_path(_classification("moderate", 0.95))
