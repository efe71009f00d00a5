"""Self-consistency: independent full solutions, majority vote.

Generates ``samples`` complete solutions concurrently (rotating across
configured backends), extracts each one's ``FINAL ANSWER:`` line, and
clusters solutions whose normalized answers agree:

- answer = text after ``FINAL ANSWER:``, else the first 100 characters
- key    = first 50 characters of the lower-cased answer, whitespace collapsed

The largest cluster wins (earliest cluster on ties) and its first solution is
the representative. Confidence is ``votes / samples`` over the *requested*
sample count, so failed generations count against agreement.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import dataclass

import structlog

from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import extract_final_answer
from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy, with_context
from cogniflow.reasoning.strategies.tree_of_thought import ExplorationResult, ExplorationStats

log = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

_SOLVE_PROMPT = """Solve this problem step by step, then provide your final answer.

Problem: {problem}

Show your work, then end with:
FINAL ANSWER: [your answer]"""


@dataclass
class VoteCluster:
    key: str
    answer: str
    representative: str
    votes: int = 1


def cluster_key(solution: str) -> tuple[str, str]:
    """Return (normalized key, extracted answer) for one solution."""
    answer = extract_final_answer(solution)
    if answer is None:
        answer = solution[:100]
    answer = answer.strip().lower()
    return _WHITESPACE_RE.sub(" ", answer[:50]), answer


def cluster_solutions(solutions: list[str]) -> list[VoteCluster]:
    """Group solutions by normalized answer, preserving first-seen order."""
    clusters: dict[str, VoteCluster] = {}
    for solution in solutions:
        key, answer = cluster_key(solution)
        if key in clusters:
            clusters[key].votes += 1
        else:
            clusters[key] = VoteCluster(key=key, answer=answer, representative=solution)
    return list(clusters.values())


class SelfConsistency(ReasoningStrategy):
    """Majority vote across independent solutions.

    Args:
        oracle:      Oracle used for generation.
        samples:     Default number of independent solutions.
        temperature: Sampling temperature (higher gives more diverse runs).
    """

    def __init__(
        self,
        oracle: OracleClient,
        *,
        samples: int = 5,
        temperature: float = 0.8,
        max_tokens: int = 2048,
    ) -> None:
        super().__init__(oracle)
        if samples < 1:
            raise ValueError("samples must be >= 1")
        self._samples = samples
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def name(self) -> str:
        return "self_consistency"

    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        result = await self.vote(with_context(query, context))
        return result.to_reasoning_result()

    async def _generate(self, problem: str, backend: str | None) -> str | None:
        response = await self._oracle.invoke(
            _SOLVE_PROMPT.format(problem=problem),
            backend=backend,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not response.success or not response.text.strip():
            log.warning("sc.generation_failed", backend=response.backend, error=response.error)
            return None
        return response.text

    async def vote(self, problem: str, samples: int | None = None) -> ExplorationResult:
        samples = self._samples if samples is None else samples
        if samples < 1:
            raise ValueError("samples must be >= 1")
        started = time.perf_counter()
        backends: list[str | None] = list(self._oracle.available_backends) or [None]

        results = await asyncio.gather(
            *[self._generate(problem, backends[i % len(backends)]) for i in range(samples)],
            return_exceptions=True,
        )
        solutions = [r for r in results if isinstance(r, str)]

        clusters = cluster_solutions(solutions)
        ranked = sorted(clusters, key=lambda c: c.votes, reverse=True)
        majority = ranked[0] if ranked else None

        stats = ExplorationStats(
            depth_reached=1 if solutions else 0,
            nodes_explored=1 + len(solutions),
            elapsed_ms=(time.perf_counter() - started) * 1000,
            extra={
                "samples": samples,
                "generated": len(solutions),
                "agreement": f"{majority.votes}/{samples}" if majority else f"0/{samples}",
                "clusters": [
                    {"answer": c.answer[:100], "votes": c.votes} for c in ranked
                ],
            },
        )
        log.info(
            "sc.done",
            samples=samples,
            generated=len(solutions),
            clusters=len(clusters),
            majority_votes=majority.votes if majority else 0,
        )

        if majority is None:
            return ExplorationResult.from_node(problem, None, self.name, stats)
        return ExplorationResult(
            problem=problem,
            solution=majority.representative,
            best_node=None,
            best_score=majority.votes / samples,
            complete=True,
            path=[problem, majority.representative],
            method=self.name,
            stats=stats,
        )
