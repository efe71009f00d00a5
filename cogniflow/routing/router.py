"""Task router - complexity-based handling tier selection.

The router classifies a task's intent and complexity concurrently, maps the
complexity score onto a handling tier through half-open breakpoints, and
recommends a collaborator roster for the tiers that warrant one:

- [0.0, 0.3)  SIMPLE       single-shot answer
- [0.3, 0.6)  STANDARD     moderate reasoning
- [0.6, 0.8)  COMPLEX      multi-step, roster recommended
- [0.8, 1.0]  MULTI_AGENT  specialized collaborators, roster recommended

Breakpoints come from Settings. ``route()`` never raises: without a reachable
oracle both assessments fall back to their deterministic variants.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.core.errors import ParseFailureError
from cogniflow.core.history import BoundedHistory
from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import DecompositionPayload, decode_strict
from cogniflow.routing.complexity import ComplexityAssessment, ComplexityAssessor
from cogniflow.routing.intent import (
    DEFAULT_ROSTER,
    SPECIALIZED_ROUTES,
    IntentClassification,
    IntentClassifier,
    classify_by_keywords,
)

log = structlog.get_logger(__name__)


class HandlingTier(StrEnum):
    SIMPLE = "simple"
    STANDARD = "standard"
    COMPLEX = "complex"
    MULTI_AGENT = "multi_agent"


TIER_DESCRIPTIONS: dict[HandlingTier, str] = {
    HandlingTier.SIMPLE: "Quick, straightforward questions with clear answers",
    HandlingTier.STANDARD: "Moderate tasks requiring some reasoning",
    HandlingTier.COMPLEX: "Tasks requiring multiple steps, research, or iteration",
    HandlingTier.MULTI_AGENT: "Very complex tasks requiring multiple specialized agents",
}

_ROSTER_TIERS = frozenset({HandlingTier.COMPLEX, HandlingTier.MULTI_AGENT})


@dataclass
class RoutingDecision:
    """Routing outcome for one task.

    Attributes:
        task:            Original task text
        intent:          Category and confidence
        complexity:      Score and the five named factors
        tier:            Chosen handling tier
        roster:          Recommended collaborators (COMPLEX and MULTI_AGENT only)
        process:         "hierarchical" above the threshold, else "sequential"
        confidence:      min(intent confidence, 1 - |complexity - 0.5|)
        routing_time_ms: Wall time spent routing
        timestamp:       When the decision was made (UTC)
        forced:          Tier was supplied by the caller
        quick:           Decision made without consulting the oracle
    """

    task: str
    intent: IntentClassification
    complexity: ComplexityAssessment
    tier: HandlingTier
    roster: list[str] | None
    process: str
    confidence: float
    routing_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    forced: bool = False
    quick: bool = False

    @property
    def tier_description(self) -> str:
        return TIER_DESCRIPTIONS[self.tier]


@dataclass
class BatchRouting:
    decisions: list[RoutingDecision]
    total: int
    tier_breakdown: dict[str, int]


@dataclass
class RoutedSubtask:
    id: int
    description: str
    dependencies: list[int]
    routing: RoutingDecision


@dataclass
class TaskDecomposition:
    """Subtasks of a larger task, each quick-routed.

    ``error`` is set (and ``subtasks`` empty) when no backend is configured or
    the oracle call failed.
    """

    original_task: str
    subtasks: list[RoutedSubtask] = field(default_factory=list)
    parallelizable: list[str] = field(default_factory=list)
    critical_path: list[str] = field(default_factory=list)
    total_estimated_steps: int | None = None
    error: str | None = None


_DECOMPOSE_PROMPT = """Decompose this complex task into smaller, actionable subtasks.

TASK: {task}

Requirements:
1. Each subtask should be completable independently or with clear dependencies
2. Subtasks should be ordered logically
3. Maximum {max_subtasks} subtasks
4. Each subtask should be specific and actionable

Respond ONLY with valid JSON:
{{
  "subtasks": [
    {{"id": 1, "description": "subtask description", "dependencies": [], "estimatedComplexity": 0.0-1.0}}
  ],
  "totalEstimatedSteps": 0,
  "parallelizable": ["ids that can run in parallel"],
  "criticalPath": ["ids on the critical path"]
}}"""


class TaskRouter:
    """Routes tasks to handling tiers and keeps a bounded decision history."""

    def __init__(
        self,
        oracle: OracleClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._oracle = oracle
        self._classifier = IntentClassifier(oracle)
        self._assessor = ComplexityAssessor(oracle)
        self._history: BoundedHistory[RoutingDecision] = BoundedHistory(
            self._settings.routing_history_size
        )

    # ------------------------------------------------------------------ #
    # Assessments
    # ------------------------------------------------------------------ #

    async def classify_intent(self, task: str) -> IntentClassification:
        return await self._classifier.classify(task)

    async def assess_complexity(self, task: str, context: str = "") -> ComplexityAssessment:
        return await self._assessor.assess(task, context)

    def tier_for(self, score: float) -> HandlingTier:
        """Map a complexity score onto a tier (half-open intervals)."""
        if score < self._settings.tier_standard_threshold:
            return HandlingTier.SIMPLE
        if score < self._settings.tier_complex_threshold:
            return HandlingTier.STANDARD
        if score < self._settings.tier_multi_agent_threshold:
            return HandlingTier.COMPLEX
        return HandlingTier.MULTI_AGENT

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #

    async def route(
        self,
        task: str,
        *,
        context: str = "",
        force_tier: HandlingTier | str | None = None,
    ) -> RoutingDecision:
        """Route one task. Oracle failures degrade to heuristics.

        Args:
            task: Free-text task
            context: Optional context passed to the complexity assessment
            force_tier: Skip oracle assessment and use this tier (confidence 1.0)

        Returns:
            RoutingDecision, also appended to the rolling history unless forced

        Raises:
            ValueError: ``force_tier`` is not a known tier
        """
        started = time.perf_counter()

        if force_tier is not None:
            decision = self._decide(
                task,
                classify_by_keywords(task),
                self._assessor.heuristic(task),
                tier=HandlingTier(force_tier),
                started=started,
            )
            decision.forced = True
            decision.confidence = 1.0
            log.info("router.route_forced", tier=decision.tier.value)
            return decision

        intent, complexity = await asyncio.gather(
            self._classifier.classify(task),
            self._assessor.assess(task, context),
            return_exceptions=True,
        )
        if isinstance(intent, BaseException):
            log.warning("router.intent_failed", error=str(intent))
            intent = classify_by_keywords(task)
        if isinstance(complexity, BaseException):
            log.warning("router.complexity_failed", error=str(complexity))
            complexity = self._assessor.heuristic(task)

        decision = self._decide(task, intent, complexity, started=started)
        self._history.append(decision)

        log.info(
            "router.route_selected",
            tier=decision.tier.value,
            category=decision.intent.category.value,
            complexity=decision.complexity.score,
            confidence=decision.confidence,
            intent_method=decision.intent.method,
            complexity_method=decision.complexity.method,
        )
        return decision

    def quick_route(self, task: str) -> RoutingDecision:
        """Keyword + heuristic routing with no oracle call and no history entry."""
        started = time.perf_counter()
        decision = self._decide(
            task,
            classify_by_keywords(task),
            self._assessor.heuristic(task),
            started=started,
        )
        decision.quick = True
        return decision

    async def route_batch(
        self,
        tasks: list[str],
        *,
        parallel: bool = True,
        context: str = "",
    ) -> BatchRouting:
        if parallel:
            decisions = list(
                await asyncio.gather(*[self.route(task, context=context) for task in tasks])
            )
        else:
            decisions = [await self.route(task, context=context) for task in tasks]
        breakdown = Counter(decision.tier.value for decision in decisions)
        return BatchRouting(decisions=decisions, total=len(tasks), tier_breakdown=dict(breakdown))

    async def decompose(self, task: str, *, max_subtasks: int = 10) -> TaskDecomposition:
        """Ask the oracle for ordered subtasks and quick-route each one.

        A reply without decodable subtasks degrades to a single subtask
        covering the whole task.
        """
        if self._oracle is None or not self._oracle.is_available():
            return TaskDecomposition(
                original_task=task, error="An oracle backend is required for task decomposition"
            )

        response = await self._oracle.invoke(
            _DECOMPOSE_PROMPT.format(task=task, max_subtasks=max_subtasks),
            "You are a task planner. Always respond with valid JSON only.",
            temperature=0.2,
            max_tokens=2048,
        )
        if not response.success:
            return TaskDecomposition(original_task=task, error=response.error)

        try:
            payload = decode_strict(response.text, DecompositionPayload)
        except ParseFailureError as exc:
            log.warning("router.decompose_parse_failed", error=str(exc))
            payload = DecompositionPayload()

        items = [item for item in payload.subtasks if item.description.strip()][:max_subtasks]
        if not items:
            log.info("router.decompose_single_subtask")
            subtasks = [RoutedSubtask(1, task, [], self.quick_route(task))]
        else:
            subtasks = [
                RoutedSubtask(
                    id=item.id or index,
                    description=item.description,
                    dependencies=item.dependencies,
                    routing=self.quick_route(item.description),
                )
                for index, item in enumerate(items, start=1)
            ]
        return TaskDecomposition(
            original_task=task,
            subtasks=subtasks,
            parallelizable=payload.parallelizable,
            critical_path=payload.critical_path,
            total_estimated_steps=payload.total_estimated_steps,
        )

    # ------------------------------------------------------------------ #
    # History & analytics
    # ------------------------------------------------------------------ #

    def history(self, limit: int = 50) -> list[RoutingDecision]:
        return self._history.recent(limit)

    def stats(self) -> dict[str, Any]:
        decisions = self._history.recent()
        if not decisions:
            return {"total_decisions": 0}
        tiers = Counter(d.tier.value for d in decisions)
        intents = Counter(d.intent.category.value for d in decisions)
        return {
            "total_decisions": len(decisions),
            "tier_breakdown": dict(tiers),
            "intent_breakdown": dict(intents),
            "average_complexity": round(
                sum(d.complexity.score for d in decisions) / len(decisions), 3
            ),
            "average_routing_time_ms": round(
                sum(d.routing_time_ms for d in decisions) / len(decisions), 1
            ),
            "most_common_tier": tiers.most_common(1)[0][0],
            "most_common_intent": intents.most_common(1)[0][0],
        }

    def clear_history(self) -> None:
        self._history.clear()
        log.debug("router.history_cleared")

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _decide(
        self,
        task: str,
        intent: IntentClassification,
        complexity: ComplexityAssessment,
        *,
        started: float,
        tier: HandlingTier | None = None,
    ) -> RoutingDecision:
        score = complexity.score
        chosen = tier or self.tier_for(score)
        roster: list[str] | None = None
        if chosen in _ROSTER_TIERS:
            route = SPECIALIZED_ROUTES.get(intent.category)
            roster = list(route.roster if route else DEFAULT_ROSTER)
        return RoutingDecision(
            task=task,
            intent=intent,
            complexity=complexity,
            tier=chosen,
            roster=roster,
            process="hierarchical" if score > self._settings.hierarchical_threshold else "sequential",
            confidence=round(min(intent.confidence, 1 - abs(score - 0.5)), 4),
            routing_time_ms=(time.perf_counter() - started) * 1000,
        )
