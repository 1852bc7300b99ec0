"""
LangGraph research pipeline: classify → (fast path | plan → search → synthesize → [round 2]) → finalize.

Nodes publish progress frames through the graph's custom stream (the injected
StreamWriter); run_research_stream relays them as ResearchEvent dicts. Every
run ends with exactly one research_complete or error event.
"""

import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Iterator, Literal, TypedDict

from langgraph.graph import END, StateGraph
from langgraph.types import StreamWriter

from app.research.classifier import classify_query, should_use_fast_path
from app.research.config import RESEARCH_CONFIG, estimate_synthesis_cost
from app.research.planner import (
    create_research_plan,
    get_parallel_batch,
    update_sub_question_status,
)
from app.research.search_workers import (
    SearchCallbacks,
    estimate_batch_cost,
    execute_parallel_searches,
)
from app.research.synthesizer import (
    get_round2_gaps,
    renumber_citations,
    should_proceed_to_round2,
    synthesize_answer,
)
from app.research.types import (
    ClassificationResult,
    ResearchError,
    ResearchEvent,
    ResearchGap,
    ResearchNote,
    ResearchOptions,
    ResearchPlan,
    SessionMetrics,
    SubQuestion,
    SynthesisResult,
)
from app.services.research_store import record_session

logger = logging.getLogger(__name__)


class ResearchState(TypedDict, total=False):
    session_id: str
    query: str
    options: ResearchOptions
    started: float  # time.monotonic() at session start
    deadline: float  # no new searches are scheduled after this
    classification: ClassificationResult
    model: str
    plan: ResearchPlan
    questions: dict  # sub-question id -> question text
    notes: list  # list[ResearchNote]
    answer: str
    citations: list  # list[Citation]
    gaps: list  # list[ResearchGap]
    confidence: float
    total_cost: float
    synthesis_count: int
    current_round: int
    metrics: SessionMetrics


def new_session_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"research-{int(time.time() * 1000)}-{suffix}"


def make_event(event_type: str, session_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return ResearchEvent(
        type=event_type,
        session_id=session_id,
        timestamp=int(time.time() * 1000),
        data=data,
    ).to_wire()


def _ms_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _max_cost(state: ResearchState) -> float:
    opts = state.get("options")
    if opts is not None and opts.max_cost is not None:
        return opts.max_cost
    return RESEARCH_CONFIG["max_total_cost"]


def _past_deadline(state: ResearchState) -> bool:
    return time.monotonic() > state.get("deadline", float("inf"))


def _search_callbacks(writer: StreamWriter, session_id: str) -> SearchCallbacks:
    return SearchCallbacks(
        on_search_start=lambda sq_id, question: writer(
            make_event("search_start", session_id, {"subQuestionId": sq_id, "question": question})
        ),
        on_search_progress=lambda sq_id, found: writer(
            make_event("search_progress", session_id, {"subQuestionId": sq_id, "sourcesFound": found})
        ),
        on_search_complete=lambda sq_id, note: writer(
            make_event(
                "search_complete",
                session_id,
                {"subQuestionId": sq_id, "note": note.to_wire(), "citationsCount": len(note.citations)},
            )
        ),
        on_search_error=lambda sq_id, error: logger.warning(
            "[orchestrator:search] sq=%s failed: %s", sq_id, error
        ),
    )


def _synthesis_progress(writer: StreamWriter, session_id: str):
    def _emit(progress: int, partial: str) -> None:
        writer(make_event("synthesize_progress", session_id, {"progress": progress, "partialAnswer": partial}))
    return _emit


# --- Nodes ---

def _classify(state: ResearchState, writer: StreamWriter) -> dict:
    start = time.monotonic()
    opts = state["options"]
    try:
        classification = classify_query(
            state["query"],
            use_llm=opts.use_llm_classification,
            force_complexity=opts.force_complexity,
        )
    except Exception as e:
        raise ResearchError("CLASSIFICATION_FAILED", str(e)) from e
    writer(
        make_event(
            "classify",
            state["session_id"],
            {
                "complexity": classification.complexity,
                "confidence": classification.confidence,
                "estimatedTime": classification.estimated_time,
            },
        )
    )
    metrics = state["metrics"].model_copy(update={"classification_duration_ms": _ms_since(start)})
    logger.info("[orchestrator:classify] OUT complexity=%s confidence=%.2f", classification.complexity, classification.confidence)
    return {
        "classification": classification,
        "model": "sonar-pro" if classification.complexity == "complex" else "sonar",
        "metrics": metrics,
    }


def _route_after_classify(state: ResearchState) -> Literal["fast_path", "plan"]:
    return "fast_path" if should_use_fast_path(state["classification"]) else "plan"


def _fast_path(state: ResearchState, writer: StreamWriter) -> dict:
    """Single sonar search; the note itself is the answer."""
    start = time.monotonic()
    session_id = state["session_id"]
    sub_question = SubQuestion(
        id="sq-fast",
        question=state["query"],
        reasoning="Direct search (fast path)",
        priority="high",
    )
    result = execute_parallel_searches([sub_question], session_id, "sonar", _search_callbacks(writer, session_id))
    if not result.notes:
        raise ResearchError("SEARCH_FAILED", "fast path search returned no results")
    note: ResearchNote = result.notes[0]
    answer, citations = renumber_citations(note.content, note.citations)
    metrics = state["metrics"].model_copy(
        update={
            "search_duration_ms": _ms_since(start),
            "total_queries": 1,
            "parallelization_efficiency": result.parallelization_efficiency,
        }
    )
    return {
        "notes": result.notes,
        "answer": answer,
        "citations": citations,
        "total_cost": estimate_batch_cost(1, "sonar"),
        "metrics": metrics,
    }


def _plan(state: ResearchState, writer: StreamWriter) -> dict:
    start = time.monotonic()
    plan = create_research_plan(state["query"], state["session_id"], state["classification"].complexity)
    writer(
        make_event(
            "plan",
            state["session_id"],
            {
                "subQuestions": [sq.to_wire() for sq in plan.sub_questions],
                "totalEstimatedTime": plan.total_estimated_time,
            },
        )
    )
    metrics = state["metrics"].model_copy(update={"planning_duration_ms": _ms_since(start)})
    return {
        "plan": plan,
        "questions": {sq.id: sq.question for sq in plan.sub_questions},
        "metrics": metrics,
    }


def _search(state: ResearchState, writer: StreamWriter) -> dict:
    """Run the plan in dependency batches, trimming batches that would exceed the cost limit."""
    start = time.monotonic()
    session_id = state["session_id"]
    model = state["model"]
    plan: ResearchPlan = state["plan"]
    max_cost = _max_cost(state)
    per_query = estimate_batch_cost(1, model)
    total_cost = state.get("total_cost", 0.0)
    callbacks = _search_callbacks(writer, session_id)
    notes: list[ResearchNote] = []
    completed: set[str] = set()
    queries = 0
    efficiencies: list[float] = []

    batch = get_parallel_batch(plan.sub_questions, completed)
    while batch:
        if _past_deadline(state):
            if not notes:
                raise ResearchError("TIMEOUT", "deadline passed before any search finished")
            logger.warning("[orchestrator:search] deadline reached, skipping %d pending searches", len(batch))
            break
        if total_cost + estimate_batch_cost(len(batch), model) > max_cost:
            affordable = int((max_cost - total_cost) // per_query) if per_query > 0 else len(batch)
            if affordable < 1:
                if notes:
                    logger.warning("[orchestrator:search] cost limit reached after %d queries", queries)
                    break
                affordable = 1
            logger.warning("[orchestrator:search] cost limit approaching, limiting batch to %d", affordable)
            batch = batch[:affordable]
        for sq in batch:
            plan = update_sub_question_status(plan, sq.id, "searching")
        result = execute_parallel_searches(batch, session_id, model, callbacks)
        notes.extend(result.notes)
        total_cost += estimate_batch_cost(len(batch), model)
        queries += len(batch)
        efficiencies.append(result.parallelization_efficiency)
        failed_ids = {sq.id for sq in result.failed_questions}
        for sq in batch:
            plan = update_sub_question_status(plan, sq.id, "failed" if sq.id in failed_ids else "completed")
        completed.update(note.sub_question_id for note in result.notes)
        batch = get_parallel_batch(plan.sub_questions, completed)

    if not notes:
        raise ResearchError("SEARCH_FAILED", "no search returned results")
    metrics = state["metrics"].model_copy(
        update={
            "search_duration_ms": _ms_since(start),
            "total_queries": state["metrics"].total_queries + queries,
            "parallelization_efficiency": sum(efficiencies) / len(efficiencies) if efficiencies else 0.0,
        }
    )
    return {"plan": plan, "notes": notes, "total_cost": total_cost, "metrics": metrics}


def _synthesize(state: ResearchState, writer: StreamWriter) -> dict:
    start = time.monotonic()
    session_id = state["session_id"]
    notes: list[ResearchNote] = state["notes"]
    writer(
        make_event(
            "synthesize_start",
            session_id,
            {"notesCount": len(notes), "citationsCount": sum(len(n.citations) for n in notes)},
        )
    )
    result = synthesize_answer(
        state["query"],
        notes,
        session_id,
        round_number=1,
        questions=state.get("questions"),
        on_progress=_synthesis_progress(writer, session_id),
    )
    metrics = state["metrics"].model_copy(
        update={"synthesis_duration_ms": _ms_since(start), "gaps_found": len(result.gaps)}
    )
    return {
        "answer": result.answer,
        "citations": result.citations,
        "gaps": result.gaps,
        "confidence": result.confidence,
        "synthesis_count": state.get("synthesis_count", 0) + 1,
        "metrics": metrics,
    }


def _route_after_synthesize(state: ResearchState) -> Literal["round2", "finalize"]:
    opts = state["options"]
    if opts.skip_round2 or state.get("current_round", 1) >= RESEARCH_CONFIG["max_rounds"]:
        return "finalize"
    if _past_deadline(state):
        logger.warning("[orchestrator:route_after_synthesize] deadline reached, skipping round 2")
        return "finalize"
    result = SynthesisResult(
        answer=state.get("answer", ""),
        citations=state.get("citations", []),
        gaps=state.get("gaps", []),
        confidence=state.get("confidence", 0.0),
    )
    return "round2" if should_proceed_to_round2(result) else "finalize"


def _round2(state: ResearchState, writer: StreamWriter) -> dict:
    """Search the top gaps with round-1 context, then re-synthesize over all notes."""
    start = time.monotonic()
    session_id = state["session_id"]
    model = state["model"]
    gaps: list[ResearchGap] = state.get("gaps", [])
    targets = get_round2_gaps(gaps)
    round2_cost = estimate_batch_cost(len(targets), model)
    total_cost = state.get("total_cost", 0.0)
    affordable = total_cost + round2_cost <= _max_cost(state)

    for gap in gaps:
        if gap.priority != "low":
            writer(make_event("gap_found", session_id, {"gap": gap.to_wire(), "willStartRound2": affordable}))
    if not affordable:
        logger.warning("[orchestrator:round2] round 2 would exceed cost limit, finishing with round 1")
        return {}

    queries = [g.suggested_query for g in targets]
    writer(
        make_event(
            "round2_start",
            session_id,
            {"gaps": [g.to_wire() for g in gaps], "newQueries": queries},
        )
    )
    round2_questions = [
        SubQuestion(
            id=f"sq-r2-{i}",
            question=gap.suggested_query,
            reasoning=f"Addressing gap: {gap.description}",
            priority=gap.priority,
        )
        for i, gap in enumerate(targets)
    ]
    questions = dict(state.get("questions") or {})
    questions.update({sq.id: sq.question for sq in round2_questions})
    result = execute_parallel_searches(
        round2_questions,
        session_id,
        model,
        _search_callbacks(writer, session_id),
        context=state.get("answer"),
    )
    metrics = state["metrics"]
    update: dict[str, Any] = {
        "current_round": 2,
        "questions": questions,
        "total_cost": total_cost + round2_cost,
    }
    metric_update: dict[str, Any] = {"total_queries": metrics.total_queries + len(round2_questions)}

    if result.notes:
        all_notes = list(state["notes"]) + result.notes
        writer(
            make_event(
                "synthesize_start",
                session_id,
                {"notesCount": len(all_notes), "citationsCount": sum(len(n.citations) for n in all_notes)},
            )
        )
        synthesis = synthesize_answer(
            state["query"],
            all_notes,
            session_id,
            round_number=2,
            previous_answer=state.get("answer"),
            gaps=gaps,
            questions=questions,
            on_progress=_synthesis_progress(writer, session_id),
        )
        addressed = {g.id for g in targets}
        update.update(
            {
                "notes": all_notes,
                "answer": synthesis.answer,
                "citations": synthesis.citations,
                "confidence": synthesis.confidence,
                "gaps": [g.model_copy(update={"resolved": True}) if g.id in addressed else g for g in gaps],
                "synthesis_count": state.get("synthesis_count", 0) + 1,
            }
        )
        metric_update["gaps_resolved"] = len(addressed)
    metric_update["round2_duration_ms"] = _ms_since(start)
    update["metrics"] = metrics.model_copy(update=metric_update)
    return update


def _finalize(state: ResearchState, writer: StreamWriter) -> dict:
    session_id = state["session_id"]
    answer, citations = renumber_citations(state.get("answer", ""), state.get("citations", []))
    total_ms = _ms_since(state["started"])
    notes_chars = sum(len(n.content) for n in state.get("notes", []))
    cost = state.get("total_cost", 0.0) + state.get("synthesis_count", 0) * estimate_synthesis_cost(notes_chars)
    metrics = state["metrics"].model_copy(
        update={
            "total_duration_ms": total_ms,
            "total_citations": len(citations),
            "estimated_cost_usd": round(cost, 4),
        }
    )
    writer(
        make_event(
            "research_complete",
            session_id,
            {
                "answer": answer,
                "citations": [c.to_wire() for c in citations],
                "gaps": [g.to_wire() for g in state.get("gaps", [])],
                "totalTime": total_ms,
                "metrics": metrics.to_wire(),
                "currentRound": state.get("current_round", 1),
            },
        )
    )
    logger.info("[orchestrator:finalize] session=%s total_ms=%d citations=%d", session_id, total_ms, len(citations))
    return {"answer": answer, "citations": citations, "metrics": metrics}


def build_graph():
    """
    Build and compile the research graph.
    classify → fast_path → finalize, or classify → plan → search → synthesize → (round2) → finalize.
    """
    graph = StateGraph(ResearchState)

    graph.add_node("classify", _classify)
    graph.add_node("fast_path", _fast_path)
    graph.add_node("plan", _plan)
    graph.add_node("search", _search)
    graph.add_node("synthesize", _synthesize)
    graph.add_node("round2", _round2)
    graph.add_node("finalize", _finalize)

    graph.set_entry_point("classify")
    graph.add_conditional_edges("classify", _route_after_classify)
    graph.add_edge("fast_path", "finalize")
    graph.add_edge("plan", "search")
    graph.add_edge("search", "synthesize")
    graph.add_conditional_edges("synthesize", _route_after_synthesize)
    graph.add_edge("round2", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()


def run_research_stream(query: str, options: ResearchOptions | None = None) -> Iterator[dict[str, Any]]:
    """
    Run one research session and yield wire events ({type, sessionId, timestamp, data}).
    Always starts with research_start and ends with research_complete or error.
    """
    opts = options or ResearchOptions()
    session_id = new_session_id()
    started_at = datetime.now(timezone.utc).isoformat()
    logger.info("[run_research_stream] START session=%s query=%r", session_id, query)
    yield make_event("research_start", session_id, {"query": query, "estimatedTime": 30})

    started = time.monotonic()
    initial: ResearchState = {
        "session_id": session_id,
        "query": query,
        "options": opts,
        "started": started,
        "deadline": started + RESEARCH_CONFIG["timeout_ms"] / 1000,
        "notes": [],
        "citations": [],
        "gaps": [],
        "total_cost": 0.0,
        "synthesis_count": 0,
        "current_round": 1,
        "metrics": SessionMetrics(session_id=session_id),
    }
    complexity = None
    completed: dict[str, Any] | None = None
    try:
        for event in build_graph().stream(initial, stream_mode="custom"):
            if event.get("type") == "classify":
                complexity = event["data"].get("complexity")
            elif event.get("type") == "research_complete":
                completed = event["data"]
            yield event
    except Exception as e:
        if isinstance(e, ResearchError):
            error = e
            logger.warning("[run_research_stream] session=%s failed code=%s detail=%s", session_id, e.code, e.detail)
        else:
            error = ResearchError("UNKNOWN", str(e))
            logger.exception("[run_research_stream] session=%s failed", session_id)
        record_session(session_id, query, "failed", started_at, complexity=complexity, error=error.code)
        yield make_event(
            "error",
            session_id,
            {"message": error.message, "code": error.code, "recoverable": error.recoverable},
        )
        return
    if completed is not None:
        record_session(
            session_id,
            query,
            "completed",
            started_at,
            complexity=complexity,
            current_round=completed.get("currentRound", 1),
            final_answer=completed.get("answer"),
            citations=completed.get("citations"),
            metrics=completed.get("metrics"),
        )
    logger.info("[run_research_stream] END session=%s", session_id)
