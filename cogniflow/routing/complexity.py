"""Task complexity assessment.

Scores a task on five named factors (steps, domains, ambiguity, iteration,
dependencies), each 0.0-1.0, and averages them into one complexity score.
The oracle scores the factors when a backend is reachable; otherwise a
heuristic derives them from the text:

- steps:     0.3 baseline; 0.4 / 0.6 / 0.8 past 100 / 200 / 500 characters;
             +0.2 for multi-part phrasing (" and ", " then ", "1.", "first")
- domains:   0.2 per complex verb present (capped at 1.0)
- ambiguity: 0.2 when simple-question phrasing outnumbers complex verbs, else 0.5
- iteration: 0.2
- dependencies: 0.2
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import structlog

from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import ComplexityPayload, decode

log = structlog.get_logger(__name__)

FACTOR_NAMES = ("steps", "domains", "ambiguity", "iteration", "dependencies")


@dataclass
class ComplexityAssessment:
    """Result of complexity assessment.

    Attributes:
        score:           Average of the five factors, rounded to 2 decimals (0.0-1.0)
        factors:         The five named factor scores
        estimated_steps: ceil(score * 10)
        method:          "oracle" or "heuristic"
        reasoning:       Short explanation of the score
    """

    score: float
    factors: dict[str, float] = field(default_factory=dict)
    estimated_steps: int = 0
    method: str = "heuristic"
    reasoning: str = ""

    def __post_init__(self) -> None:
        """Validate complexity score."""
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Complexity score must be 0.0-1.0, got {self.score}")


def _from_factors(factors: dict[str, float], method: str, reasoning: str) -> ComplexityAssessment:
    score = round(sum(factors[name] for name in FACTOR_NAMES) / len(FACTOR_NAMES), 2)
    score = min(max(score, 0.0), 1.0)
    return ComplexityAssessment(
        score=score,
        factors=dict(factors),
        estimated_steps=math.ceil(score * 10),
        method=method,
        reasoning=reasoning,
    )


class HeuristicComplexity:
    """Text-only complexity estimate. Never calls the oracle."""

    COMPLEX_VERBS = (
        "analyze",
        "compare",
        "design",
        "implement",
        "research",
        "investigate",
        "build",
        "create",
        "develop",
    )
    SIMPLE_PHRASES = ("what is", "how do", "explain", "tell me", "show")
    MULTI_PART_MARKERS = (" and ", " then ", "1.", "first")

    def assess(self, task: str) -> ComplexityAssessment:
        task = task or ""
        lowered = task.lower()
        factors = {
            "steps": 0.3,
            "domains": 0.3,
            "ambiguity": 0.3,
            "iteration": 0.2,
            "dependencies": 0.2,
        }

        if len(task) > 500:
            factors["steps"] = 0.8
        elif len(task) > 200:
            factors["steps"] = 0.6
        elif len(task) > 100:
            factors["steps"] = 0.4

        complex_hits = sum(1 for verb in self.COMPLEX_VERBS if verb in lowered)
        simple_hits = sum(1 for phrase in self.SIMPLE_PHRASES if phrase in lowered)
        factors["domains"] = min(complex_hits * 0.2, 1.0)
        factors["ambiguity"] = 0.2 if simple_hits > complex_hits else 0.5

        if any(marker in task for marker in self.MULTI_PART_MARKERS):
            factors["steps"] = min(factors["steps"] + 0.2, 1.0)

        return _from_factors(
            factors, "heuristic", "Heuristic estimation based on task characteristics"
        )


_ASSESS_PROMPT = """Assess the complexity of this task on a 0-1 scale.

TASK: {task}
{context}
Consider:
1. Number of steps required (more = higher)
2. Knowledge domains involved (more = higher)
3. Ambiguity level (more = higher)
4. Need for iteration/refinement (yes = higher)
5. External dependencies (more = higher)

Respond ONLY with valid JSON:
{{
  "factors": {{
    "steps": 0.0-1.0,
    "domains": 0.0-1.0,
    "ambiguity": 0.0-1.0,
    "iteration": 0.0-1.0,
    "dependencies": 0.0-1.0
  }},
  "reasoning": "brief explanation"
}}"""


class ComplexityAssessor:
    """Oracle-backed complexity scoring with heuristic fallback."""

    def __init__(self, oracle: OracleClient | None) -> None:
        self._oracle = oracle
        self._heuristic = HeuristicComplexity()

    def heuristic(self, task: str) -> ComplexityAssessment:
        return self._heuristic.assess(task)

    async def assess(self, task: str, context: str = "") -> ComplexityAssessment:
        if self._oracle is None or not self._oracle.is_available():
            return self._heuristic.assess(task)

        prompt = _ASSESS_PROMPT.format(
            task=task,
            context=f"CONTEXT: {context}\n" if context else "",
        )
        response = await self._oracle.invoke(
            prompt,
            "You are a task complexity assessor. Always respond with valid JSON only.",
            temperature=0.0,
            max_tokens=512,
        )
        if not response.success:
            log.warning("complexity.oracle_failed", error=response.error)
            return self._heuristic.assess(task)

        payload = decode(response.text, ComplexityPayload)
        if payload is None:
            log.warning("complexity.parse_failed", response_length=len(response.text))
            return self._heuristic.assess(task)

        factors = payload.factors.model_dump(include=set(FACTOR_NAMES))
        return _from_factors(factors, "oracle", payload.reasoning)
