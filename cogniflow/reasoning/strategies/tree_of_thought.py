"""Tree-of-Thought (ToT) reasoning engine.

Breadth-first, level-order search over oracle-generated thoughts:

1. **Select**: frontier nodes scoring >= ``evaluation_threshold`` expand
   (with ``prune_aggressive`` only the top ``2 * breadth`` of them)
2. **Expand**: each selected node yields ``breadth`` children concurrently,
   each seeded with a distinct stylistic instruction and spread across
   backends when ``multi_backend`` is on
3. **Score**: every child is rated by a separate evaluator call (0.5 on failure)
4. **Track**: the best *complete* child seen at any level is kept as the answer
5. **Advance**: incomplete children >= threshold form the next frontier

The search stops on an early-accept score (> 0.95), at ``depth`` levels, or
when the frontier empties. Without any complete node the highest-scoring
child of the deepest level that produced candidates is returned as a partial
result.

LLM call count (upper bound): 2 * breadth * (nodes expanded across levels)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.core.history import BoundedHistory
from cogniflow.oracle.client import OracleClient
from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy, with_context
from cogniflow.reasoning.strategies.thoughts import ReasoningNode, ThoughtExpander

log = structlog.get_logger(__name__)

EARLY_ACCEPT_SCORE = 0.95
SUCCESS_SCORE = 0.7
NO_SOLUTION = "No solution found"


@dataclass
class ExplorationStats:
    depth_reached: int = 0
    nodes_explored: int = 1
    elapsed_ms: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExplorationResult:
    """Outcome of one exploration (tree, beam or self-consistency).

    Attributes:
        problem:    The problem explored.
        solution:   Best answer text, or "No solution found".
        best_node:  Node holding the answer (None for self-consistency or no solution).
        best_score: Score of the returned answer (0.0-1.0).
        complete:   True when the answer self-reported completeness (or won a vote).
        path:       Thoughts from the problem to the answer.
        method:     "tree_of_thought", "beam_search" or "self_consistency".
        stats:      Depth reached, nodes explored (>= 1), elapsed time, extras.
    """

    problem: str
    solution: str
    best_node: ReasoningNode | None
    best_score: float
    complete: bool
    path: list[str]
    method: str
    stats: ExplorationStats
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_node(
        cls,
        problem: str,
        node: ReasoningNode | None,
        method: str,
        stats: ExplorationStats,
    ) -> ExplorationResult:
        if node is None:
            return cls(
                problem=problem,
                solution=NO_SOLUTION,
                best_node=None,
                best_score=0.0,
                complete=False,
                path=[],
                method=method,
                stats=stats,
            )
        return cls(
            problem=problem,
            solution=node.thought,
            best_node=node,
            best_score=min(max(node.score, 0.0), 1.0),
            complete=node.complete,
            path=list(node.path),
            method=method,
            stats=stats,
        )

    def to_reasoning_result(self) -> ReasoningResult:
        found = self.solution != NO_SOLUTION
        return ReasoningResult(
            answer=self.solution if found else "",
            confidence=self.best_score,
            steps=self.path[1:],
            strategy_name=self.method,
            complete=self.complete,
            error=None if found else NO_SOLUTION,
            metadata={
                "depth_reached": self.stats.depth_reached,
                "nodes_explored": self.stats.nodes_explored,
                "elapsed_ms": self.stats.elapsed_ms,
                **self.stats.extra,
            },
        )


def best_of(nodes: list[ReasoningNode]) -> ReasoningNode | None:
    """Highest-scoring node; earliest wins ties."""
    best: ReasoningNode | None = None
    for node in nodes:
        if best is None or node.score > best.score:
            best = node
    return best


class TreeOfThought(ReasoningStrategy):
    """Breadth-first tree search with threshold pruning.

    Args:
        oracle:     Oracle used for generation and evaluation.
        settings:   Supplies default breadth, depth, threshold and history size.
        expander:   Override the generation/evaluation step (tests, tuning).
    """

    def __init__(
        self,
        oracle: OracleClient,
        settings: Settings | None = None,
        *,
        expander: ThoughtExpander | None = None,
    ) -> None:
        super().__init__(oracle)
        self._settings = settings or get_settings()
        self._expander = expander or ThoughtExpander(oracle)
        self._history: BoundedHistory[ExplorationResult] = BoundedHistory(
            self._settings.tot_history_size
        )

    @property
    def name(self) -> str:
        return "tree_of_thought"

    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        result = await self.explore(with_context(query, context))
        return result.to_reasoning_result()

    async def explore(
        self,
        problem: str,
        *,
        breadth: int | None = None,
        depth: int | None = None,
        evaluation_threshold: float | None = None,
        multi_backend: bool = True,
        prune_aggressive: bool = False,
    ) -> ExplorationResult:
        """Run the level-order search.

        Args:
            problem: Problem statement (becomes the root thought).
            breadth: Children generated per expanded node.
            depth: Maximum number of levels.
            evaluation_threshold: Minimum score for a node to expand.
            multi_backend: Spread generations across configured backends.
            prune_aggressive: Cap the expanded frontier at ``2 * breadth``.

        Returns:
            ``ExplorationResult`` (``nodes_explored >= 1``, ``best_score`` in [0, 1]).
        """
        breadth = self._settings.tot_breadth if breadth is None else breadth
        depth = self._settings.tot_depth if depth is None else depth
        threshold = (
            self._settings.tot_evaluation_threshold
            if evaluation_threshold is None
            else evaluation_threshold
        )
        if breadth < 1 or depth < 1:
            raise ValueError("breadth and depth must be >= 1")

        started = time.perf_counter()
        log.debug("tot.start", breadth=breadth, depth=depth, threshold=threshold)

        frontier = [ReasoningNode.root(problem)]
        best_complete: ReasoningNode | None = None
        last_scored: list[ReasoningNode] = []
        nodes_explored = 1
        depth_reached = 0

        for level in range(depth):
            expandable = [node for node in frontier if node.score >= threshold]
            if prune_aggressive and len(expandable) > breadth * 2:
                expandable = sorted(expandable, key=lambda n: n.score, reverse=True)[: breadth * 2]
            if not expandable:
                break

            children: list[ReasoningNode] = []
            for group in await self._expand_level(expandable, problem, breadth, multi_backend):
                children.extend(group)

            nodes_explored += len(children)
            if children:
                last_scored = children
                depth_reached = level + 1

            for child in children:
                if child.complete and (best_complete is None or child.score > best_complete.score):
                    best_complete = child

            frontier = [c for c in children if not c.complete and c.score >= threshold]

            log.debug(
                "tot.level_complete",
                level=level + 1,
                expanded=len(expandable),
                children=len(children),
                frontier=len(frontier),
                best_complete=best_complete.score if best_complete else None,
            )

            if best_complete is not None and best_complete.score > EARLY_ACCEPT_SCORE:
                break
            if not frontier:
                break

        chosen = best_complete or best_of(last_scored)
        stats = ExplorationStats(
            depth_reached=depth_reached,
            nodes_explored=nodes_explored,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        result = ExplorationResult.from_node(problem, chosen, self.name, stats)
        self._history.append(result)

        log.info(
            "tot.done",
            complete=result.complete,
            best_score=result.best_score,
            nodes_explored=nodes_explored,
            depth_reached=depth_reached,
        )
        return result

    async def _expand_level(
        self,
        nodes: list[ReasoningNode],
        problem: str,
        breadth: int,
        multi_backend: bool,
    ) -> list[list[ReasoningNode]]:
        return list(
            await asyncio.gather(
                *[
                    self._expander.expand_and_score(
                        node, problem, breadth, multi_backend=multi_backend
                    )
                    for node in nodes
                ]
            )
        )

    # ------------------------------------------------------------------ #
    # Specialized modes
    # ------------------------------------------------------------------ #

    async def solve_math(self, problem: str) -> ExplorationResult:
        return await self.explore(problem, breadth=3, depth=5, evaluation_threshold=0.7)

    async def create_plan(self, goal: str, constraints: list[str] | None = None) -> ExplorationResult:
        problem = f"Create a plan to: {goal}"
        if constraints:
            problem += f"\nConstraints: {', '.join(constraints)}"
        return await self.explore(problem, breadth=4, depth=4, evaluation_threshold=0.6)

    async def debug_problem(self, issue: str, context: str = "") -> ExplorationResult:
        problem = f"Debug this issue: {issue}"
        if context:
            problem += f"\nContext: {context}"
        return await self.explore(problem, breadth=3, depth=4, evaluation_threshold=0.65)

    async def make_decision(
        self,
        question: str,
        options: list[str] | None = None,
        criteria: list[str] | None = None,
    ) -> ExplorationResult:
        """Explore a decision with one branch per option (3 when none are given)."""
        problem = f"Decision: {question}"
        if options:
            problem += f"\nOptions: {', '.join(options)}"
        if criteria:
            problem += f"\nCriteria: {', '.join(criteria)}"
        return await self.explore(
            problem, breadth=len(options or []) or 3, depth=3, evaluation_threshold=0.6
        )

    # ------------------------------------------------------------------ #
    # History & stats
    # ------------------------------------------------------------------ #

    def record(self, result: ExplorationResult) -> None:
        """Add a result produced by a sibling variant to the shared history."""
        self._history.append(result)

    def history(self, limit: int = 20) -> list[ExplorationResult]:
        return self._history.recent(limit)

    def stats(self) -> dict[str, Any]:
        results = self._history.recent()
        if not results:
            return {"total_explorations": 0}
        count = len(results)
        return {
            "total_explorations": count,
            "average_confidence": round(sum(r.best_score for r in results) / count, 3),
            "average_time_ms": round(sum(r.stats.elapsed_ms for r in results) / count, 1),
            "success_rate": round(
                sum(1 for r in results if r.best_score > SUCCESS_SCORE) / count, 3
            ),
            "complete_rate": round(sum(1 for r in results if r.complete) / count, 3),
        }

    def clear_history(self) -> None:
        self._history.clear()
