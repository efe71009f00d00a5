"""Base class and shared data types for reasoning strategies.

Every engine (tree-of-thought, beam search, self-consistency, reflexion,
chain-of-verification) has its own richer result type, but all of them also
implement ``ReasoningStrategy.reason()`` returning a ``ReasoningResult`` so the
director can run any of them through the same plugin adapter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from cogniflow.oracle.client import OracleClient


@dataclass
class ReasoningResult:
    """Uniform output from a reasoning strategy invocation.

    Attributes:
        answer:         The final answer produced by the strategy ("" when none).
        confidence:     Overall confidence in the answer (0.0 – 1.0).
        steps:          Ordered reasoning steps that led to the answer.
        strategy_name:  Identifier of the strategy that produced this result.
        complete:       False when the strategy only reached a partial answer.
        error:          Set when the strategy could not produce an answer.
        metadata:       Strategy-specific extras (vote tally, attempts, stats).
    """

    answer: str
    confidence: float
    steps: list[str]
    strategy_name: str
    complete: bool = True
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ReasoningStrategy(ABC):
    """Abstract base for all reasoning strategies.

    Strategies receive the oracle through their constructor and may accept
    any further configuration there.
    """

    def __init__(self, oracle: OracleClient) -> None:
        self._oracle = oracle

    @property
    def oracle(self) -> OracleClient:
        return self._oracle

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier for this strategy (used in logs and results)."""

    @abstractmethod
    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        """Execute the strategy and return a result.

        Args:
            query:   The user's question or task description.
            context: Pre-gathered context (memory, research, verification)
                     available before reasoning starts.

        Returns:
            ``ReasoningResult`` containing the answer and its trace.
        """


def with_context(query: str, context: str) -> str:
    """Prefix ``query`` with gathered context when there is any."""
    context = (context or "").strip()
    if not context:
        return query
    return f"{query}\n\nContext:\n{context}"
