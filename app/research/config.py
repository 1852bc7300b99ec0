"""
Research pipeline tuning: limits, costs, complexity indicators, prompts and error codes.
"""

RESEARCH_CONFIG: dict = {
    "max_rounds": 2,
    "max_queries_per_round": 5,
    "max_total_cost": 0.50,  # USD
    "parallel_searches": 3,
    "gap_threshold": 0.6,
    "timeout_ms": 120_000,
}

# Perplexity cost per query (USD)
COST_PER_QUERY: dict[str, float] = {
    "sonar": 0.005,
    "sonar-pro": 0.02,
}

# Claude cost per 1K tokens (USD)
CLAUDE_COST_PER_1K_TOKENS: dict[str, float] = {
    "input": 0.003,
    "output": 0.015,
}

# Rough synthesis token estimates
ESTIMATED_TOKENS: dict[str, int] = {
    "synthesis_input_per_1k_chars": 300,
    "synthesis_output": 2000,
}

# --- Classification ---

COMPLEXITY_INDICATORS: dict[str, list[str]] = {
    "simple": [
        "what is",
        "who is",
        "define",
        "meaning of",
        "when did",
        "where is",
    ],
    "moderate": [
        "compare",
        "difference between",
        "how does",
        "explain",
        "why does",
        "benefits of",
        "pros and cons",
    ],
    "complex": [
        "analyze",
        "evaluate",
        "comprehensive",
        "in-depth",
        "deep dive",
        "research",
        "investigate",
        "thorough",
        "detailed comparison",
        "implications of",
        "impact on",
        "factors affecting",
    ],
}

LENGTH_THRESHOLDS: dict[str, int] = {
    "simple": 50,
    "moderate": 150,
}

# Seconds
ESTIMATED_TIME_BY_COMPLEXITY: dict[str, int] = {
    "simple": 10,
    "moderate": 30,
    "complex": 60,
}

STRUCTURE_CONJUNCTIONS: list[str] = ["and", "as well as", "along with", "including"]
STRUCTURE_TEMPORAL: list[str] = ["over time", "historically", "evolution", "trend"]
STRUCTURE_QUANTITATIVE: list[str] = ["statistics", "data", "numbers", "metrics", "percentage"]

HEURISTIC_CONFIDENCE_THRESHOLD: float = 0.8
FAST_PATH_MIN_CONFIDENCE: float = 0.7

CLASSIFICATION_PROMPT = """You are a query complexity classifier for a research assistant. Analyze the user's query and classify it into one of three complexity levels.

SIMPLE queries:
- Single factual questions with clear answers
- Definitions or explanations of single concepts
- "What is X?" or "Who is Y?" style questions
- Examples: "What is photosynthesis?", "Who founded Apple?"

MODERATE queries:
- Comparisons between 2-3 items
- Questions requiring synthesis of multiple facts
- "How does X work?" or "Why does Y happen?"
- Examples: "Compare React vs Vue", "How does machine learning work?"

COMPLEX queries:
- Multi-faceted research questions
- Questions requiring analysis from multiple angles
- Questions with temporal, causal, or systemic aspects
- In-depth comparisons across many dimensions
- Examples: "Analyze the impact of AI on healthcare over the past decade"

Respond with JSON only:
{
  "complexity": "simple" | "moderate" | "complex",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation of your classification"
}"""

# --- Planning ---

MAX_SUB_QUESTIONS: int = 5
MIN_SUB_QUESTIONS_COMPLEX: int = 3

PLANNER_SYSTEM_PROMPT = """You are a research planning assistant. Your job is to break down a user's research query into focused sub-questions that, when answered together, will provide a comprehensive response.

Guidelines:
1. Generate 3-5 sub-questions depending on complexity
2. Each sub-question should be specific and searchable
3. Avoid redundancy between sub-questions
4. Order by dependency (independent questions first)
5. Assign priority based on importance to the main query

Output JSON format:
{
  "subQuestions": [
    {
      "question": "specific searchable question",
      "reasoning": "why this helps answer the main query",
      "priority": "high" | "medium" | "low",
      "dependsOn": []
    }
  ]
}"""

PLANNING_COUNT_HINTS: dict[str, str] = {
    "simple": "Generate 1-2 focused sub-questions.",
    "moderate": "Generate 2-3 focused sub-questions covering different aspects.",
    "complex": "Generate 3-5 comprehensive sub-questions covering all important angles.",
}

# Seconds per search, scaled by priority
PRIORITY_TIME_WEIGHTS: dict[str, float] = {
    "high": 1.5,
    "medium": 1.0,
    "low": 0.8,
}

# --- Search ---

SEARCH_SYSTEM_PROMPT = """You are a research assistant gathering information to answer a specific question.
Be thorough and include specific facts, data, and sources.
Focus on answering the exact question asked."""

SEARCH_MAX_RETRIES: int = 2
SEARCH_RETRY_BASE_DELAY: float = 1.0  # seconds, doubled per attempt

# --- Synthesis ---

SYNTHESIS_MAX_TOKENS: int = 4000
SYNTHESIS_PROGRESS_INTERVAL: float = 0.5  # seconds between progress events
SYNTHESIS_EXPECTED_CHARS: int = 3000

SYNTHESIS_SYSTEM_PROMPT = """You are a research synthesis assistant. Your job is to combine research notes into a comprehensive, well-structured answer.

Guidelines:
1. Synthesize information from multiple sources, don't just concatenate
2. Maintain factual accuracy - only include information from the notes
3. Use clear structure with sections when appropriate
4. Include inline citations using [1], [2], etc. format
5. Acknowledge any gaps or uncertainties in the research
6. Write in a clear, professional tone

After your answer, output a JSON block with:
{
  "gaps": [
    {
      "description": "what information is missing",
      "suggestedQuery": "specific search query to fill this gap",
      "priority": "high" | "medium" | "low"
    }
  ],
  "confidence": 0.0-1.0
}"""

# --- Gap analysis ---

MAX_GAPS_TO_ADDRESS: int = 3
MIN_CONFIDENCE_TO_COMPLETE: float = 0.8

GAP_PRIORITY_WEIGHTS: dict[str, int] = {
    "high": 3,
    "medium": 2,
    "low": 1,
}

# --- Errors ---

ERROR_CODES: dict[str, str] = {
    "CLASSIFICATION_FAILED": "CLASSIFICATION_FAILED",
    "PLANNING_FAILED": "PLANNING_FAILED",
    "SEARCH_FAILED": "SEARCH_FAILED",
    "SYNTHESIS_FAILED": "SYNTHESIS_FAILED",
    "TIMEOUT": "TIMEOUT",
    "COST_LIMIT_EXCEEDED": "COST_LIMIT_EXCEEDED",
    "RATE_LIMITED": "RATE_LIMITED",
    "UNKNOWN": "UNKNOWN",
}

ERROR_MESSAGES: dict[str, str] = {
    "CLASSIFICATION_FAILED": "Unable to analyze the complexity of your query. Please try again.",
    "PLANNING_FAILED": "Unable to plan the research approach. Please try rephrasing your question.",
    "SEARCH_FAILED": "Some searches failed. Continuing with available results.",
    "SYNTHESIS_FAILED": "Unable to synthesize the research results. Please try again.",
    "TIMEOUT": "Research took too long. Returning partial results.",
    "COST_LIMIT_EXCEEDED": "Research cost limit reached. Returning available results.",
    "RATE_LIMITED": "API rate limit reached. Please try again in a moment.",
    "UNKNOWN": "An unexpected error occurred during research.",
}

# --- Triggering ---

RESEARCH_TRIGGER_KEYWORDS: list[str] = [
    "research",
    "deep dive",
    "comprehensive analysis",
    "compare thoroughly",
    "investigate",
    "detailed breakdown",
    "in-depth analysis",
    "thorough research",
    "extensive research",
    "analyze in detail",
    "full analysis",
    "complete overview",
    "detailed comparison",
    "research report",
]

MIN_RESEARCH_QUERY_LENGTH: int = 20

_QUERIES_BY_COMPLEXITY: dict[str, int] = {"simple": 1, "moderate": 3, "complex": 5}


def should_trigger_research(query: str) -> bool:
    """True when a chat message reads like a request for deep research."""
    q = (query or "").lower().strip()
    if len(q) < MIN_RESEARCH_QUERY_LENGTH:
        return False
    return any(keyword in q for keyword in RESEARCH_TRIGGER_KEYWORDS)


def estimate_synthesis_cost(input_chars: int = 5000) -> float:
    """Rough USD cost of one Claude synthesis over input_chars of notes."""
    input_tokens = ESTIMATED_TOKENS["synthesis_input_per_1k_chars"] * (input_chars / 1000)
    output_tokens = ESTIMATED_TOKENS["synthesis_output"]
    return (
        input_tokens * CLAUDE_COST_PER_1K_TOKENS["input"]
        + output_tokens * CLAUDE_COST_PER_1K_TOKENS["output"]
    ) / 1000


def estimate_session_cost(complexity: str, use_pro_model: bool = False) -> float:
    """Rough USD cost of a research session: searches plus one synthesis, padded for complex queries."""
    queries = _QUERIES_BY_COMPLEXITY.get(complexity, 3)
    per_query = COST_PER_QUERY["sonar-pro" if use_pro_model else "sonar"]
    total = queries * per_query + estimate_synthesis_cost()
    if complexity == "complex":
        total *= 1.5
    return total


def get_recommended_model(complexity: str) -> str:
    return "sonar-pro" if complexity == "complex" else "sonar"
