"""
Research domain types. Serialised camelCase on the wire (model_dump(by_alias=True)).
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.research.config import ERROR_CODES, ERROR_MESSAGES

Complexity = Literal["simple", "moderate", "complex"]
Priority = Literal["high", "medium", "low"]
SubQuestionStatus = Literal["pending", "searching", "completed", "failed"]
SearchModel = Literal["sonar", "sonar-pro"]
SessionStatus = Literal[
    "initializing",
    "classifying",
    "planning",
    "searching",
    "synthesizing",
    "gap_analysis",
    "round2_searching",
    "round2_synthesizing",
    "completed",
    "failed",
]
EventType = Literal[
    "research_start",
    "classify",
    "plan",
    "search_start",
    "search_progress",
    "search_complete",
    "synthesize_start",
    "synthesize_progress",
    "gap_found",
    "round2_start",
    "research_complete",
    "error",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ClassificationResult(CamelModel):
    complexity: Complexity
    confidence: float
    reasoning: str
    estimated_time: int
    suggested_model: SearchModel


class SubQuestion(CamelModel):
    id: str
    question: str
    reasoning: str = ""
    priority: Priority = "medium"
    depends_on: list[str] = Field(default_factory=list)
    status: SubQuestionStatus = "pending"


class ResearchPlan(CamelModel):
    id: str
    session_id: str
    original_query: str
    sub_questions: list[SubQuestion]
    created_at: str
    total_estimated_time: int


class Citation(CamelModel):
    id: str
    url: str
    title: str
    domain: str
    snippet: str | None = None
    favicon: str | None = None
    relevance_score: float | None = None


class ResearchNote(CamelModel):
    id: str
    session_id: str
    sub_question_id: str
    content: str
    citations: list[Citation] = Field(default_factory=list)
    confidence: float
    created_at: str


class ResearchGap(CamelModel):
    id: str
    session_id: str
    round: int
    description: str
    suggested_query: str
    priority: Priority = "medium"
    resolved: bool = False


class SessionMetrics(CamelModel):
    session_id: str
    total_duration_ms: int = 0
    classification_duration_ms: int = 0
    planning_duration_ms: int = 0
    search_duration_ms: int = 0
    synthesis_duration_ms: int = 0
    round2_duration_ms: int | None = None
    total_queries: int = 0
    total_citations: int = 0
    gaps_found: int = 0
    gaps_resolved: int = 0
    parallelization_efficiency: float = 0.0
    estimated_cost_usd: float = 0.0


class ResearchOptions(CamelModel):
    """Caller overrides for one research run."""

    use_llm_classification: bool = False
    force_complexity: Complexity | None = None
    skip_round2: bool = False
    max_cost: float | None = Field(None, gt=0)


class SearchResult(CamelModel):
    sub_question_id: str
    success: bool
    note: ResearchNote | None = None
    error: str | None = None
    duration_ms: int = 0


class SynthesisResult(CamelModel):
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    gaps: list[ResearchGap] = Field(default_factory=list)
    confidence: float


class ResearchEvent(CamelModel):
    """One frame of the research stream: {type, sessionId, timestamp, data}."""

    type: EventType
    session_id: str
    timestamp: int
    data: dict[str, Any] = Field(default_factory=dict)


class ResearchError(Exception):
    """Pipeline failure carrying one of ERROR_CODES."""

    def __init__(self, code: str, detail: str = "") -> None:
        self.code = code if code in ERROR_CODES else "UNKNOWN"
        self.detail = detail
        super().__init__(detail or self.code)

    @property
    def message(self) -> str:
        return ERROR_MESSAGES.get(self.code, ERROR_MESSAGES["UNKNOWN"])

    @property
    def recoverable(self) -> bool:
        return self.code != "UNKNOWN"
