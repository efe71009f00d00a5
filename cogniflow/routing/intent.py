"""Task intent classification.

Classifies free text into one of a fixed set of task categories. The oracle
is asked first; when no backend is configured, the call fails, or the reply
has no decodable JSON, a deterministic keyword matcher takes over:

- a category wins with >= 2 keyword hits, or 1 hit on a task under 50 chars
- categories are checked in table order; the first winner is returned
- confidence = min(0.3 + 0.2 * hits, 0.9)
- no winner -> ``general`` at 0.5
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import IntentPayload, decode

log = structlog.get_logger(__name__)


class TaskCategory(StrEnum):
    CODE = "code"
    RESEARCH = "research"
    ANALYSIS = "analysis"
    PLANNING = "planning"
    WRITING = "writing"
    MATH = "math"
    DATA = "data"
    CREATIVE = "creative"
    GENERAL = "general"


@dataclass(frozen=True)
class CategoryRoute:
    """Keyword triggers and the collaborator roster for one category."""

    keywords: tuple[str, ...]
    handler: str
    roster: tuple[str, ...]


SPECIALIZED_ROUTES: dict[TaskCategory, CategoryRoute] = {
    TaskCategory.CODE: CategoryRoute(
        keywords=("code", "function", "bug", "error", "implement", "programming", "script", "debug"),
        handler="coding",
        roster=("architect", "coder", "reviewer"),
    ),
    TaskCategory.RESEARCH: CategoryRoute(
        keywords=("research", "find", "search", "look up", "what is", "explain", "learn about"),
        handler="research",
        roster=("researcher", "analyst", "writer"),
    ),
    TaskCategory.ANALYSIS: CategoryRoute(
        keywords=("analyze", "compare", "evaluate", "assess", "review", "breakdown"),
        handler="analysis",
        roster=("analyst", "critic", "reviewer"),
    ),
    TaskCategory.PLANNING: CategoryRoute(
        keywords=("plan", "strategy", "roadmap", "how to", "steps to", "process for"),
        handler="planning",
        roster=("planner", "critic", "facilitator"),
    ),
    TaskCategory.WRITING: CategoryRoute(
        keywords=("write", "draft", "compose", "create content", "document"),
        handler="writing",
        roster=("researcher", "writer", "reviewer"),
    ),
    TaskCategory.MATH: CategoryRoute(
        keywords=("calculate", "compute", "math", "formula", "equation", "percentage"),
        handler="calculation",
        roster=("analyst",),
    ),
    TaskCategory.DATA: CategoryRoute(
        keywords=("data", "spreadsheet", "csv", "json", "database", "sql"),
        handler="data_processing",
        roster=("analyst", "coder"),
    ),
    TaskCategory.CREATIVE: CategoryRoute(
        keywords=("idea", "brainstorm", "creative", "design", "concept"),
        handler="creative",
        roster=("facilitator", "writer", "critic"),
    ),
}

DEFAULT_ROSTER: tuple[str, ...] = ("researcher", "analyst", "writer")


@dataclass
class IntentClassification:
    """Outcome of intent classification.

    Attributes:
        category:   Task category.
        confidence: Classifier confidence (0.0-1.0).
        method:     "oracle", "keyword" or "default".
        keywords:   Keywords that triggered the category, when known.
    """

    category: TaskCategory
    confidence: float
    method: str
    keywords: list[str] = field(default_factory=list)


_CLASSIFY_PROMPT = """Classify this task into ONE primary category.

TASK: {task}

CATEGORIES:
- code: Programming, debugging, implementation
- research: Finding information, learning, exploring
- analysis: Data analysis, comparison, evaluation
- planning: Strategy, roadmaps, step-by-step processes
- writing: Content creation, documentation
- math: Calculations, formulas, numerical work
- data: Data processing, transformation
- creative: Ideation, brainstorming, design
- general: Doesn't fit other categories

Respond ONLY with valid JSON:
{{"category": "category_name", "confidence": 0.0-1.0, "keywords": ["key", "words"]}}"""


def classify_by_keywords(task: str) -> IntentClassification:
    """Deterministic keyword classification (never calls the oracle)."""
    lowered = (task or "").lower()
    for category, route in SPECIALIZED_ROUTES.items():
        hits = [kw for kw in route.keywords if kw in lowered]
        if len(hits) >= 2 or (len(hits) == 1 and len(task) < 50):
            return IntentClassification(
                category=category,
                confidence=round(min(0.3 + 0.2 * len(hits), 0.9), 2),
                method="keyword",
                keywords=hits,
            )
    return IntentClassification(category=TaskCategory.GENERAL, confidence=0.5, method="default")


class IntentClassifier:
    """Oracle-backed intent classifier with keyword fallback."""

    def __init__(self, oracle: OracleClient | None) -> None:
        self._oracle = oracle

    async def classify(self, task: str) -> IntentClassification:
        if self._oracle is None or not self._oracle.is_available():
            return classify_by_keywords(task)

        response = await self._oracle.invoke(
            _CLASSIFY_PROMPT.format(task=task),
            "You are a task classifier. Always respond with valid JSON only.",
            temperature=0.0,
            max_tokens=512,
        )
        if not response.success:
            log.warning("intent.oracle_failed", error=response.error)
            return classify_by_keywords(task)

        payload = decode(response.text, IntentPayload)
        if payload is None:
            log.warning("intent.parse_failed", response_length=len(response.text))
            return classify_by_keywords(task)

        try:
            category = TaskCategory(payload.category.strip().lower())
        except ValueError:
            category = TaskCategory.GENERAL
        return IntentClassification(
            category=category,
            confidence=payload.confidence,
            method="oracle",
            keywords=payload.keywords,
        )
