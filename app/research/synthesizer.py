"""
Answer synthesis: stream Claude over the research notes, then split the answer from its gap analysis.

The model is asked to cite sources as [n] against one deduplicated citation
list, and to end with a JSON block {"gaps": [...], "confidence": x}. The
answer is renumbered so citations appear as [1], [2], ... in reading order.
"""

import json
import logging
import re
import time
from typing import Any, Callable

from app.agent.llm import stream_text
from app.research.config import (
    GAP_PRIORITY_WEIGHTS,
    MAX_GAPS_TO_ADDRESS,
    MIN_CONFIDENCE_TO_COMPLETE,
    SYNTHESIS_EXPECTED_CHARS,
    SYNTHESIS_MAX_TOKENS,
    SYNTHESIS_PROGRESS_INTERVAL,
    SYNTHESIS_SYSTEM_PROMPT,
)
from app.research.types import Citation, ResearchError, ResearchGap, ResearchNote, SynthesisResult

logger = logging.getLogger(__name__)

_CITATION_REF = re.compile(r"\[(\d+)\]")
_ANALYSIS_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```|\{[\s\S]*\"gaps\"[\s\S]*\"confidence\"[\s\S]*\}")


def collect_citations(notes: list[ResearchNote]) -> list[Citation]:
    """All note citations deduplicated by URL, numbered citation-1.. in first-seen order."""
    seen: dict[str, Citation] = {}
    for note in notes:
        for citation in note.citations:
            if citation.url not in seen:
                seen[citation.url] = citation.model_copy(update={"id": f"citation-{len(seen) + 1}"})
    return list(seen.values())


def build_synthesis_prompt(
    query: str,
    notes: list[ResearchNote],
    citations: list[Citation],
    previous_answer: str | None = None,
    gaps: list[ResearchGap] | None = None,
    questions: dict[str, str] | None = None,
) -> str:
    number_by_url = {c.url: i + 1 for i, c in enumerate(citations)}
    questions = questions or {}
    sections = []
    for idx, note in enumerate(notes):
        sources = ", ".join(f"[{number_by_url[c.url]}] {c.url}" for c in note.citations if c.url in number_by_url)
        sections.append(
            f"## Research Note {idx + 1}\n"
            f"Question: {questions.get(note.sub_question_id, note.sub_question_id)}\n"
            f"Content:\n{note.content}\n"
            f"Sources: {sources}\n"
            f"Confidence: {round(note.confidence * 100)}%"
        )
    gap_context = ""
    if gaps:
        gap_context = "\n\n## Gaps to Address\n" + "\n".join(f"- {g.description}" for g in gaps)
    previous_context = ""
    if previous_answer:
        previous_context = (
            f"\n\n## Previous Answer (Round 1)\n{previous_answer}\n\n"
            "Please improve upon this answer by addressing the gaps and incorporating new research."
        )
    notes_section = "\n\n".join(sections)
    return (
        f"# Research Query\n{query}\n\n"
        f"# Research Notes\n{notes_section}\n"
        f"{gap_context}\n"
        f"{previous_context}\n\n"
        "Please synthesize these research notes into a comprehensive answer. "
        "Use inline citations [1], [2], etc. to reference sources."
    )


def parse_response(content: str) -> tuple[str, dict[str, Any] | None]:
    """Split model output into (answer, gap analysis). Unparseable analysis leaves the full text as answer."""
    match = _ANALYSIS_BLOCK.search(content)
    if match:
        raw = match.group(1) or match.group(0)
        try:
            analysis = json.loads(raw)
        except json.JSONDecodeError:
            analysis = None
        if isinstance(analysis, dict):
            answer = (content[: match.start()] + content[match.end():]).strip()
            return answer, analysis
    return content.strip(), None


def transform_gaps(analysis: dict[str, Any] | None, session_id: str, round_number: int) -> list[ResearchGap]:
    if not analysis or not isinstance(analysis.get("gaps"), list):
        return []
    gaps = []
    for raw in analysis["gaps"]:
        if not isinstance(raw, dict):
            continue
        description = str(raw.get("description") or "").strip()
        suggested = str(raw.get("suggestedQuery") or "").strip()
        if not description or not suggested:
            continue
        priority = raw.get("priority")
        gaps.append(
            ResearchGap(
                id=f"gap-{session_id}-r{round_number}-{len(gaps)}",
                session_id=session_id,
                round=round_number,
                description=description,
                suggested_query=suggested,
                priority=priority if priority in GAP_PRIORITY_WEIGHTS else "medium",
                resolved=False,
            )
        )
        if len(gaps) >= MAX_GAPS_TO_ADDRESS:
            break
    return gaps


def renumber_citations(answer: str, citations: list[Citation]) -> tuple[str, list[Citation]]:
    """
    Rewrite [n] references to 1..k in order of first appearance and return the matching citations.
    References with no matching citation are left as written.
    """
    old_to_new: dict[int, int] = {}
    used: list[Citation] = []
    for match in _CITATION_REF.finditer(answer):
        num = int(match.group(1))
        if num in old_to_new or not (1 <= num <= len(citations)):
            continue
        used.append(citations[num - 1])
        old_to_new[num] = len(used)

    def _replace(match: re.Match) -> str:
        new = old_to_new.get(int(match.group(1)))
        return f"[{new}]" if new else match.group(0)

    renumbered = _CITATION_REF.sub(_replace, answer)
    return renumbered, [c.model_copy(update={"id": f"citation-{i + 1}"}) for i, c in enumerate(used)]


def calculate_confidence(answer: str, citations: list[Citation], gaps: list[ResearchGap]) -> float:
    """Fallback confidence when the model gave none: 0.6 base, length and citation bonuses, gap penalties."""
    score = 0.6
    if len(answer) > 1000:
        score += 0.1
    if len(answer) > 2000:
        score += 0.05
    if len(citations) >= 3:
        score += 0.1
    if len(citations) >= 5:
        score += 0.05
    for gap in gaps:
        score -= GAP_PRIORITY_WEIGHTS[gap.priority] * 0.05
    return max(0.3, min(0.95, score))


def synthesize_answer(
    query: str,
    notes: list[ResearchNote],
    session_id: str,
    round_number: int = 1,
    previous_answer: str | None = None,
    gaps: list[ResearchGap] | None = None,
    questions: dict[str, str] | None = None,
    on_progress: Callable[[int, str], None] | None = None,
) -> SynthesisResult:
    """Stream a synthesis; on_progress(percent, partial_text) fires at most every 0.5s, then once with 100."""
    logger.info("[synthesizer:synthesize_answer] IN  session=%s round=%d notes=%d", session_id, round_number, len(notes))
    all_citations = collect_citations(notes)
    prompt = build_synthesis_prompt(query, notes, all_citations, previous_answer, gaps, questions)
    parts: list[str] = []
    length = 0
    last_progress = 0.0
    try:
        for text in stream_text(
            [{"role": "user", "content": prompt}],
            system=SYNTHESIS_SYSTEM_PROMPT,
            max_tokens=SYNTHESIS_MAX_TOKENS,
        ):
            parts.append(text)
            length += len(text)
            now = time.monotonic()
            if on_progress and now - last_progress > SYNTHESIS_PROGRESS_INTERVAL:
                on_progress(int(min(90, length / SYNTHESIS_EXPECTED_CHARS * 100)), "".join(parts))
                last_progress = now
    except Exception as e:
        logger.exception("[synthesizer:synthesize_answer] synthesis failed")
        raise ResearchError("SYNTHESIS_FAILED", str(e)) from e
    full = "".join(parts)
    if on_progress:
        on_progress(100, full)

    answer, analysis = parse_response(full)
    new_gaps = transform_gaps(analysis, session_id, round_number)
    answer, citations = renumber_citations(answer, all_citations)
    confidence = None
    if analysis is not None:
        try:
            confidence = max(0.0, min(1.0, float(analysis.get("confidence"))))
        except (TypeError, ValueError):
            confidence = None
    if confidence is None:
        confidence = calculate_confidence(answer, citations, new_gaps)
    logger.info(
        "[synthesizer:synthesize_answer] OUT answer_len=%d citations=%d gaps=%d confidence=%.2f",
        len(answer),
        len(citations),
        len(new_gaps),
        confidence,
    )
    return SynthesisResult(answer=answer, citations=citations, gaps=new_gaps, confidence=confidence)


def should_proceed_to_round2(result: SynthesisResult) -> bool:
    """Round 2 runs when confidence is below the bar and at least one high/medium gap remains."""
    if result.confidence >= MIN_CONFIDENCE_TO_COMPLETE:
        return False
    return any(g.priority in ("high", "medium") for g in result.gaps)


def get_round2_gaps(gaps: list[ResearchGap]) -> list[ResearchGap]:
    """Highest-priority gaps first, at most MAX_GAPS_TO_ADDRESS."""
    ranked = sorted(gaps, key=lambda g: GAP_PRIORITY_WEIGHTS[g.priority], reverse=True)
    return ranked[:MAX_GAPS_TO_ADDRESS]


def get_round2_queries(gaps: list[ResearchGap]) -> list[str]:
    return [g.suggested_query for g in get_round2_gaps(gaps)]
