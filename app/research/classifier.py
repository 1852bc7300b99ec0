"""
Query complexity classification: keyword/length/structure heuristics, with an optional Claude pass.

The heuristic is used on its own unless the caller asks for LLM classification
and the heuristic is not already confident. Any LLM failure falls back to it.
"""

import json
import logging
import re

from app.agent.llm import complete
from app.research.config import (
    CLASSIFICATION_PROMPT,
    COMPLEXITY_INDICATORS,
    ESTIMATED_TIME_BY_COMPLEXITY,
    FAST_PATH_MIN_CONFIDENCE,
    HEURISTIC_CONFIDENCE_THRESHOLD,
    LENGTH_THRESHOLDS,
    STRUCTURE_CONJUNCTIONS,
    STRUCTURE_QUANTITATIVE,
    STRUCTURE_TEMPORAL,
    get_recommended_model,
)
from app.research.types import ClassificationResult

logger = logging.getLogger(__name__)

_LEVELS = ("simple", "moderate", "complex")


def _empty_scores() -> dict[str, int]:
    return {level: 0 for level in _LEVELS}


def score_by_keywords(query: str) -> dict[str, int]:
    lower = query.lower()
    scores = _empty_scores()
    for keyword in COMPLEXITY_INDICATORS["simple"]:
        if keyword in lower:
            scores["simple"] += 2
    for keyword in COMPLEXITY_INDICATORS["moderate"]:
        if keyword in lower:
            scores["moderate"] += 2
    for keyword in COMPLEXITY_INDICATORS["complex"]:
        if keyword in lower:
            scores["complex"] += 3
    return scores


def score_by_length(query: str) -> dict[str, int]:
    scores = _empty_scores()
    length = len(query)
    if length < LENGTH_THRESHOLDS["simple"]:
        scores["simple"] += 3
    elif length < LENGTH_THRESHOLDS["moderate"]:
        scores["moderate"] += 2
    else:
        scores["complex"] += 2
    return scores


def score_by_structure(query: str) -> dict[str, int]:
    """Multiple questions, conjunctions, temporal and quantitative wording."""
    lower = query.lower()
    scores = _empty_scores()
    if query.count("?") > 1:
        scores["complex"] += 2
    for word in STRUCTURE_CONJUNCTIONS:
        if word in lower:
            scores["moderate"] += 1
    for word in STRUCTURE_TEMPORAL:
        if word in lower:
            scores["complex"] += 2
    for word in STRUCTURE_QUANTITATIVE:
        if word in lower:
            scores["moderate"] += 1
    return scores


def combine_scores(*score_sets: dict[str, int]) -> tuple[str, float]:
    """Sum score sets; ties favour the more complex level. Returns (complexity, confidence)."""
    total = _empty_scores()
    for scores in score_sets:
        for level in _LEVELS:
            total[level] += scores.get(level, 0)
    simple, moderate, complex_ = total["simple"], total["moderate"], total["complex"]
    if complex_ >= moderate and complex_ >= simple:
        complexity = "complex"
    elif moderate >= simple:
        complexity = "moderate"
    else:
        complexity = "simple"
    grand_total = simple + moderate + complex_
    if grand_total > 0:
        confidence = min(0.95, 0.5 + (total[complexity] / grand_total) * 0.45)
    else:
        confidence = 0.5
    return complexity, confidence


def classify_query_heuristic(query: str) -> ClassificationResult:
    complexity, confidence = combine_scores(
        score_by_keywords(query),
        score_by_length(query),
        score_by_structure(query),
    )
    return ClassificationResult(
        complexity=complexity,
        confidence=confidence,
        reasoning="Heuristic classification based on keywords, length, and structure",
        estimated_time=ESTIMATED_TIME_BY_COMPLEXITY[complexity],
        suggested_model=get_recommended_model(complexity),
    )


def classify_query_with_llm(query: str) -> ClassificationResult:
    """Ask Claude for a classification. Falls back to the heuristic on any failure."""
    try:
        text = complete(query, system=CLASSIFICATION_PROMPT, max_tokens=200)
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise ValueError("No JSON in classifier response")
        parsed = json.loads(match.group(0))
        complexity = parsed.get("complexity")
        if complexity not in _LEVELS:
            raise ValueError(f"Invalid complexity: {complexity!r}")
        confidence = max(0.0, min(1.0, float(parsed.get("confidence", 0.5))))
        return ClassificationResult(
            complexity=complexity,
            confidence=confidence,
            reasoning=str(parsed.get("reasoning") or ""),
            estimated_time=ESTIMATED_TIME_BY_COMPLEXITY[complexity],
            suggested_model=get_recommended_model(complexity),
        )
    except Exception as e:
        logger.warning("[classifier:classify_query_with_llm] LLM classification failed, using heuristic: %s", e)
        return classify_query_heuristic(query)


def classify_query(
    query: str,
    use_llm: bool = False,
    force_complexity: str | None = None,
) -> ClassificationResult:
    """Classify query complexity. force_complexity bypasses classification (confidence 1.0)."""
    if force_complexity:
        return ClassificationResult(
            complexity=force_complexity,
            confidence=1.0,
            reasoning="Forced complexity",
            estimated_time=ESTIMATED_TIME_BY_COMPLEXITY[force_complexity],
            suggested_model=get_recommended_model(force_complexity),
        )
    heuristic = classify_query_heuristic(query)
    logger.info(
        "[classifier:classify_query] heuristic complexity=%s confidence=%.2f",
        heuristic.complexity,
        heuristic.confidence,
    )
    if not use_llm or heuristic.confidence >= HEURISTIC_CONFIDENCE_THRESHOLD:
        return heuristic
    return classify_query_with_llm(query)


def should_use_fast_path(classification: ClassificationResult) -> bool:
    """Simple, confidently classified queries skip planning and synthesis."""
    return classification.complexity == "simple" and classification.confidence >= FAST_PATH_MIN_CONFIDENCE
