"""
Research planning: decompose a query into prioritized, dependency-ordered sub-questions.

Claude proposes the sub-questions; anything unusable (no key, no JSON, no valid
questions) falls back to a direct-search plan so the pipeline can always proceed.
"""

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from app.agent.llm import complete
from app.research.config import (
    ESTIMATED_TIME_BY_COMPLEXITY,
    MAX_SUB_QUESTIONS,
    MIN_SUB_QUESTIONS_COMPLEX,
    PLANNER_SYSTEM_PROMPT,
    PLANNING_COUNT_HINTS,
    PRIORITY_TIME_WEIGHTS,
)
from app.research.types import ResearchPlan, SubQuestion

logger = logging.getLogger(__name__)

_PRIORITIES = ("high", "medium", "low")
_DEFAULT_REASONING = "Addresses a key aspect of the research query"


def _planning_prompt(query: str, complexity: str) -> str:
    return f"""
Research Query: "{query}"

Complexity Level: {complexity}

{PLANNING_COUNT_HINTS.get(complexity, PLANNING_COUNT_HINTS["moderate"])}

Ensure sub-questions are:
1. Specific and searchable (good for web search)
2. Non-redundant (each covers unique ground)
3. Ordered by dependency (independent questions first)
4. Prioritized by importance to the main query

Output JSON only."""


def _normalize_depends_on(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    out = []
    for dep in raw:
        if isinstance(dep, bool):
            continue
        if isinstance(dep, (int, float)):
            out.append(f"sq-{int(dep)}")
        elif isinstance(dep, str) and dep.strip():
            dep = dep.strip()
            out.append(f"sq-{dep}" if dep.isdigit() else dep)
    return out


def validate_sub_questions(raw: Any, complexity: str) -> list[SubQuestion]:
    """Keep well-formed questions (>10 chars), cap at MAX_SUB_QUESTIONS, assign sq-N ids."""
    if not isinstance(raw, list):
        return []
    valid = [
        item for item in raw
        if isinstance(item, dict)
        and isinstance(item.get("question"), str)
        and len(item["question"].strip()) > 10
    ][:MAX_SUB_QUESTIONS]
    if complexity == "complex" and len(valid) < MIN_SUB_QUESTIONS_COMPLEX:
        logger.warning(
            "[planner:validate_sub_questions] only %d sub-questions for complex query (min %d)",
            len(valid),
            MIN_SUB_QUESTIONS_COMPLEX,
        )
    out = []
    for i, item in enumerate(valid):
        priority = item.get("priority")
        out.append(
            SubQuestion(
                id=f"sq-{i + 1}",
                question=item["question"].strip(),
                reasoning=(item.get("reasoning") or "").strip() or _DEFAULT_REASONING,
                priority=priority if priority in _PRIORITIES else "medium",
                depends_on=_normalize_depends_on(item.get("dependsOn")),
                status="pending",
            )
        )
    # A dependency on a dropped or later question could never complete
    known: set[str] = set()
    for sq in out:
        sq.depends_on = [dep for dep in sq.depends_on if dep in known]
        known.add(sq.id)
    return out


def calculate_estimated_time(sub_questions: list[SubQuestion]) -> int:
    """Seconds: 5s per search scaled by priority, plus 5s overhead and 2s per question for synthesis."""
    search_time = sum(5 * PRIORITY_TIME_WEIGHTS.get(sq.priority, 1.0) for sq in sub_questions)
    return math.ceil(search_time + 5 + 2 * len(sub_questions))


def create_fallback_plan(query: str, session_id: str, complexity: str) -> ResearchPlan:
    sub_questions = [
        SubQuestion(
            id="sq-1",
            question=query,
            reasoning="Direct search for the research query",
            priority="high",
        )
    ]
    if complexity != "simple":
        sub_questions.append(
            SubQuestion(
                id="sq-2",
                question=f"What are the key considerations and implications of {query}?",
                reasoning="Explores broader context and implications",
                priority="medium",
            )
        )
    return ResearchPlan(
        id=f"plan-{session_id}",
        session_id=session_id,
        original_query=query,
        sub_questions=sub_questions,
        created_at=datetime.now(timezone.utc).isoformat(),
        total_estimated_time=ESTIMATED_TIME_BY_COMPLEXITY.get(complexity, 30),
    )


def create_research_plan(query: str, session_id: str, complexity: str) -> ResearchPlan:
    """Plan sub-questions with Claude; returns the fallback plan on any failure."""
    logger.info("[planner:create_research_plan] IN  session=%s complexity=%s", session_id, complexity)
    try:
        text = complete(
            _planning_prompt(query, complexity),
            system=PLANNER_SYSTEM_PROMPT,
            max_tokens=1000,
        )
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise ValueError("No JSON in planner response")
        parsed = json.loads(match.group(0))
        sub_questions = validate_sub_questions(parsed.get("subQuestions"), complexity)
        if not sub_questions:
            raise ValueError("Planner returned no usable sub-questions")
    except Exception as e:
        logger.warning("[planner:create_research_plan] planning failed, using fallback plan: %s", e)
        return create_fallback_plan(query, session_id, complexity)
    plan = ResearchPlan(
        id=f"plan-{session_id}",
        session_id=session_id,
        original_query=query,
        sub_questions=sub_questions,
        created_at=datetime.now(timezone.utc).isoformat(),
        total_estimated_time=calculate_estimated_time(sub_questions),
    )
    logger.info("[planner:create_research_plan] OUT sub_questions=%d", len(sub_questions))
    return plan


def sort_by_dependency(sub_questions: list[SubQuestion]) -> list[SubQuestion]:
    """Topological order; anything left in a cycle is appended in original order."""
    ordered: list[SubQuestion] = []
    placed: set[str] = set()
    remaining = list(sub_questions)
    while remaining:
        ready = [sq for sq in remaining if all(dep in placed for dep in sq.depends_on)]
        if not ready:
            ordered.extend(remaining)
            break
        for sq in ready:
            ordered.append(sq)
            placed.add(sq.id)
        remaining = [sq for sq in remaining if sq.id not in placed]
    return ordered


def get_parallel_batch(sub_questions: list[SubQuestion], completed_ids: set[str]) -> list[SubQuestion]:
    """Pending sub-questions whose dependencies are all completed."""
    return [
        sq for sq in sub_questions
        if sq.status == "pending" and all(dep in completed_ids for dep in sq.depends_on)
    ]


def update_sub_question_status(plan: ResearchPlan, sub_question_id: str, status: str) -> ResearchPlan:
    """Return a copy of plan with one sub-question's status changed."""
    sub_questions = [
        sq.model_copy(update={"status": status}) if sq.id == sub_question_id else sq
        for sq in plan.sub_questions
    ]
    return plan.model_copy(update={"sub_questions": sub_questions})
