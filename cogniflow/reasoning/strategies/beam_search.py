"""Beam search over reasoning thoughts.

Same generation and scoring as tree-of-thought, but instead of a score
threshold every level keeps exactly the top ``beam_width`` candidates, and
the search returns as soon as any kept node is complete.
"""

from __future__ import annotations

import asyncio
import time

import structlog

from cogniflow.oracle.client import OracleClient
from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy, with_context
from cogniflow.reasoning.strategies.thoughts import ReasoningNode, ThoughtExpander
from cogniflow.reasoning.strategies.tree_of_thought import ExplorationResult, ExplorationStats

log = structlog.get_logger(__name__)


class BeamSearch(ReasoningStrategy):
    """Top-k level-order search.

    Args:
        oracle:            Oracle used for generation and evaluation.
        beam_width:        Nodes kept per level.
        max_depth:         Maximum number of levels.
        expansion_breadth: Children generated per kept node.
    """

    def __init__(
        self,
        oracle: OracleClient,
        *,
        beam_width: int = 3,
        max_depth: int = 4,
        expansion_breadth: int = 3,
        expander: ThoughtExpander | None = None,
    ) -> None:
        super().__init__(oracle)
        if beam_width < 1 or max_depth < 1 or expansion_breadth < 1:
            raise ValueError("beam_width, max_depth and expansion_breadth must be >= 1")
        self._beam_width = beam_width
        self._max_depth = max_depth
        self._expansion_breadth = expansion_breadth
        self._expander = expander or ThoughtExpander(oracle)

    @property
    def name(self) -> str:
        return "beam_search"

    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        result = await self.search(with_context(query, context))
        return result.to_reasoning_result()

    async def search(
        self,
        problem: str,
        *,
        beam_width: int | None = None,
        max_depth: int | None = None,
    ) -> ExplorationResult:
        beam_width = self._beam_width if beam_width is None else beam_width
        max_depth = self._max_depth if max_depth is None else max_depth
        if beam_width < 1 or max_depth < 1:
            raise ValueError("beam_width and max_depth must be >= 1")
        started = time.perf_counter()

        beam = [ReasoningNode.root(problem)]
        nodes_explored = 1
        depth_reached = 0
        frontier_sizes: list[int] = []

        def finish(node: ReasoningNode | None) -> ExplorationResult:
            stats = ExplorationStats(
                depth_reached=depth_reached,
                nodes_explored=nodes_explored,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                extra={"beam_width": beam_width, "frontier_sizes": frontier_sizes},
            )
            return ExplorationResult.from_node(problem, node, self.name, stats)

        for level in range(max_depth):
            groups = await asyncio.gather(
                *[
                    self._expander.expand_and_score(node, problem, self._expansion_breadth)
                    for node in beam
                ]
            )
            candidates = [child for group in groups for child in group]
            nodes_explored += len(candidates)
            if not candidates:
                break

            candidates.sort(key=lambda n: n.score, reverse=True)
            beam = candidates[:beam_width]
            depth_reached = level + 1
            frontier_sizes.append(len(beam))

            complete = [node for node in beam if node.complete]
            if complete:
                log.info("beam.complete_found", level=level + 1, score=complete[0].score)
                return finish(complete[0])

        best = beam[0] if beam and beam[0].depth > 0 else None
        log.info("beam.done", depth_reached=depth_reached, found=best is not None)
        return finish(best)
