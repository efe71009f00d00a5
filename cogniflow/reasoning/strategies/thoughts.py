"""Reasoning nodes and the shared expand/evaluate step.

Tree-of-thought and beam search both grow a tree of ``ReasoningNode`` objects
level by level. ``ThoughtExpander`` owns the two oracle calls involved:

- **expand**: ``breadth`` independent generations from one node, each seeded
  with a distinct stylistic instruction and, when several backends are
  configured, spread across them for diversity. Failed generations are
  dropped.
- **evaluate**: a separate scoring call returning four 0-10 sub-scores
  (progress, correctness, completeness, clarity) averaged into 0.0-1.0.
  Any failure scores the node at 0.5.

Invariant: for every child, ``depth == parent.depth + 1`` and
``len(path) == depth + 1``.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field

import structlog

from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import (
    ThoughtEvaluation,
    decode,
    is_complete_thought,
    strip_complete_marker,
)

log = structlog.get_logger(__name__)

NEUTRAL_SCORE = 0.5

APPROACHES: dict[str, tuple[str, ...]] = {
    "claude": (
        "Think step by step, focusing on the logical progression.",
        "Consider this from a different angle - what assumptions might be wrong?",
        "Break this into smaller sub-problems and solve each.",
    ),
    "gpt": (
        "Approach this analytically with precise logic.",
        "Think creatively - what unconventional solution might work?",
        "Consider edge cases and potential pitfalls.",
    ),
    "gemini": (
        "Use systematic reasoning to progress.",
        "What would an expert in this domain consider?",
        "Synthesize the information to reach a conclusion.",
    ),
}

_EXPAND_PROMPT = """Problem: {problem}

Current thinking:
{path}

{approach}

Continue the reasoning. If you can reach a final answer, mark it as [COMPLETE].

Next thought:"""

_EVALUATE_PROMPT = """Evaluate this reasoning step for solving the problem.

PROBLEM: {problem}

REASONING PATH:
{path}

CURRENT THOUGHT: {thought}

Rate on these dimensions (0-10):
1. Progress: Does this move toward a solution?
2. Correctness: Is the reasoning logically sound?
3. Completeness: Does this fully answer the problem?
4. Clarity: Is the thought clear and actionable?

Respond ONLY with valid JSON:
{{"progress": 0-10, "correctness": 0-10, "completeness": 0-10, "clarity": 0-10, "reasoning": "brief explanation"}}"""


@dataclass
class ReasoningNode:
    """One thought in the search tree. Lives for a single exploration call."""

    id: str
    thought: str
    parent_id: str | None
    path: list[str]
    depth: int
    score: float = 0.0
    complete: bool = False
    backend: str | None = None
    evaluation: ThoughtEvaluation | None = field(default=None, repr=False)

    @classmethod
    def root(cls, problem: str) -> ReasoningNode:
        return cls(id="root", thought=problem, parent_id=None, path=[problem], depth=0, score=1.0)

    def child(self, thought: str, *, complete: bool, backend: str | None) -> ReasoningNode:
        return ReasoningNode(
            id=f"node_{uuid.uuid4().hex[:12]}",
            thought=thought,
            parent_id=self.id,
            path=[*self.path, thought],
            depth=self.depth + 1,
            complete=complete,
            backend=backend,
        )


class ThoughtExpander:
    """Generates and scores child thoughts through the oracle."""

    def __init__(
        self,
        oracle: OracleClient,
        *,
        temperature: float = 0.8,
        max_tokens: int = 1024,
    ) -> None:
        self._oracle = oracle
        self._temperature = temperature
        self._max_tokens = max_tokens

    def _assignments(self, breadth: int, multi_backend: bool) -> list[tuple[str | None, str]]:
        """(backend, approach) for each of ``breadth`` children."""
        backends: list[str | None] = list(self._oracle.available_backends)
        if not multi_backend or not backends:
            backends = backends[:1] or [None]
        assignments = []
        for i in range(breadth):
            backend = backends[i % len(backends)]
            approaches = APPROACHES.get(backend or "", APPROACHES["claude"])
            assignments.append((backend, approaches[i % len(approaches)]))
        return assignments

    async def _generate(
        self,
        node: ReasoningNode,
        problem: str,
        backend: str | None,
        approach: str,
    ) -> ReasoningNode | None:
        prompt = _EXPAND_PROMPT.format(
            problem=problem,
            path="\n→ ".join(node.path),
            approach=approach,
        )
        response = await self._oracle.invoke(
            prompt,
            backend=backend,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not response.success or not response.text.strip():
            log.warning("thoughts.generate_failed", backend=response.backend, error=response.error)
            return None
        return node.child(
            strip_complete_marker(response.text),
            complete=is_complete_thought(response.text),
            backend=response.backend,
        )

    async def expand(
        self,
        node: ReasoningNode,
        problem: str,
        breadth: int,
        *,
        multi_backend: bool = True,
    ) -> list[ReasoningNode]:
        """Generate up to ``breadth`` children concurrently; failures are dropped."""
        results = await asyncio.gather(
            *[
                self._generate(node, problem, backend, approach)
                for backend, approach in self._assignments(breadth, multi_backend)
            ],
            return_exceptions=True,
        )
        children = []
        for result in results:
            if isinstance(result, BaseException):
                log.warning("thoughts.generate_raised", error=str(result))
                continue
            if result is not None:
                children.append(result)
        return children

    async def evaluate(self, problem: str, node: ReasoningNode) -> float:
        """Score ``node`` in [0, 1]; 0.5 on oracle failure or unparseable output."""
        prompt = _EVALUATE_PROMPT.format(
            problem=problem,
            path="\n→ ".join(node.path[:-1]),
            thought=node.thought,
        )
        try:
            response = await self._oracle.invoke(
                prompt,
                "You are a strict reasoning evaluator. Always respond with valid JSON only.",
                temperature=0.0,
                max_tokens=512,
            )
        except Exception as exc:
            log.warning("thoughts.evaluate_raised", node_id=node.id, error=str(exc))
            return NEUTRAL_SCORE
        if not response.success:
            return NEUTRAL_SCORE
        evaluation = decode(response.text, ThoughtEvaluation)
        if evaluation is None:
            log.warning("thoughts.evaluate_parse_failed", node_id=node.id)
            return NEUTRAL_SCORE
        node.evaluation = evaluation
        return evaluation.score

    async def expand_and_score(
        self,
        node: ReasoningNode,
        problem: str,
        breadth: int,
        *,
        multi_backend: bool = True,
    ) -> list[ReasoningNode]:
        """Expand ``node`` then score every child concurrently."""
        children = await self.expand(node, problem, breadth, multi_backend=multi_backend)
        scores = await asyncio.gather(*[self.evaluate(problem, child) for child in children])
        for child, score in zip(children, scores):
            child.score = min(max(score, 0.0), 1.0)
        return children
