"""Reflexion: generate, self-critique, improve, repeat.

Each attempt makes two sequential oracle calls:

1. **Generate** an answer. From the second attempt on, every earlier
   attempt's answer, critique and issue list is fed back with an explicit
   instruction to improve on it.
2. **Critique** that answer in a separate call returning confidence, issues,
   feedback, strengths and suggestions.

The loop stops as soon as an attempt reaches ``confidence_threshold`` with no
issues. Attempts never run in parallel. An attempt that exceeds its time
budget aborts the whole call with ``ReasoningTimeoutError``; a generation the
oracle cannot serve ends the loop with ``error`` set on the result.

``quick_check`` is a single-pass approve/reject gate that fails open.
"""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.core.errors import ReasoningTimeoutError
from cogniflow.core.history import BoundedHistory
from cogniflow.oracle.client import OracleClient
from cogniflow.oracle.decoding import (
    CritiquePayload,
    QuickCheckPayload,
    decode,
    decode_or_default,
    parse_reasoned_answer,
)
from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy

log = structlog.get_logger(__name__)

FACTUAL_CONFIDENCE = 0.8

_CRITIQUE_PROMPT = """You are a critical reviewer. Analyze this answer for errors, gaps, and areas for improvement.

ORIGINAL TASK: {task}

ANSWER PROVIDED:
{answer}

{reasoning}Evaluate:
1. Is the answer correct and complete?
2. Are there any logical errors?
3. Is anything missing or unclear?
4. Could this be misunderstood?
5. What would make this better?

Respond ONLY with valid JSON:
{{
  "confidence": 0.0-1.0,
  "isCorrect": true,
  "isComplete": true,
  "issues": ["issue1", "issue2"],
  "feedback": "Overall feedback for improvement",
  "strengths": ["strength1"],
  "suggestions": ["suggestion1"]
}}"""

_QUICK_CHECK_PROMPT = """Quick quality check. Does this response adequately address the request?

REQUEST: {request}

RESPONSE: {response}

Respond ONLY with valid JSON:
{{"approved": true, "confidence": 0.0-1.0, "issues": ["any issues"], "quickFix": "suggested fix if needed"}}"""


@dataclass
class ReflexionAttempt:
    attempt: int
    answer: str
    reasoning: str
    critique: str
    confidence: float
    issues: list[str] = field(default_factory=list)
    strengths: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ReflexionResult:
    """Outcome of one ``reflect()`` call.

    Attributes:
        task:             The task as given.
        final_answer:     Answer of the last attempt (None if none ran).
        final_confidence: Critique confidence of the last attempt.
        attempts:         Every attempt in order.
        improved:         Last confidence strictly above the first, over > 1 attempt.
        error:            Set when the oracle could not serve a generation.
        is_factual:       Only set by ``reflect_on_fact``.
    """

    task: str
    final_answer: str | None
    final_confidence: float
    attempts: list[ReflexionAttempt]
    improved: bool
    error: str | None = None
    is_factual: bool | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class QuickCheckResult:
    approved: bool
    confidence: float
    issues: list[str] = field(default_factory=list)
    quick_fix: str | None = None


@dataclass
class Generation:
    answer: str
    reasoning: str
    raw: str


def build_generation_prompt(
    task: str,
    *,
    previous: list[ReflexionAttempt] | None = None,
    context: str = "",
    include_reasoning: bool = True,
) -> str:
    prompt = f"Task: {task}\n\n"
    if context:
        prompt += f"Context: {context}\n\n"
    if previous:
        prompt += "PREVIOUS ATTEMPTS AND FEEDBACK:\n"
        for attempt in previous:
            prompt += f"\nAttempt {attempt.attempt}:\n"
            prompt += f"Answer: {attempt.answer}\n"
            prompt += f"Critique: {attempt.critique}\n"
            prompt += f"Issues: {', '.join(attempt.issues) or 'none listed'}\n"
        prompt += "\nBased on this feedback, provide an IMPROVED answer that addresses the issues.\n\n"
    if include_reasoning:
        prompt += "Provide your answer with step-by-step reasoning.\n\n"
        prompt += "Format:\nREASONING:\n[Your thought process]\n\nANSWER:\n[Your final answer]"
    return prompt


async def generate_answer(
    oracle: OracleClient,
    task: str,
    *,
    previous: list[ReflexionAttempt] | None = None,
    context: str = "",
    include_reasoning: bool = True,
) -> Generation | None:
    """One generation call; ``None`` when the oracle could not serve it."""
    response = await oracle.invoke_best(
        build_generation_prompt(
            task, previous=previous, context=context, include_reasoning=include_reasoning
        ),
        temperature=0.7,
    )
    if not response.success:
        log.warning("reflexion.generate_failed", error=response.error)
        return None
    answer, reasoning = parse_reasoned_answer(response.text)
    return Generation(answer=answer, reasoning=reasoning, raw=response.text)


class Reflexion(ReasoningStrategy):
    """Iterative self-critique loop.

    Args:
        oracle:   Oracle used for generation and critique.
        settings: Supplies default attempts, threshold, attempt timeout and history size.
    """

    def __init__(self, oracle: OracleClient, settings: Settings | None = None) -> None:
        super().__init__(oracle)
        self._settings = settings or get_settings()
        self._history: BoundedHistory[ReflexionResult] = BoundedHistory(
            self._settings.reflexion_history_size
        )

    @property
    def name(self) -> str:
        return "reflexion"

    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        result = await self.reflect(query, context=context)
        return ReasoningResult(
            answer=result.final_answer or "",
            confidence=result.final_confidence,
            steps=[f"Attempt {a.attempt}: {a.critique}" for a in result.attempts],
            strategy_name=self.name,
            complete=result.error is None,
            error=result.error,
            metadata={"attempts": len(result.attempts), "improved": result.improved},
        )

    # ------------------------------------------------------------------ #
    # Core loop
    # ------------------------------------------------------------------ #

    async def _critique(self, task: str, generation: Generation) -> CritiquePayload:
        reasoning = f"REASONING USED:\n{generation.reasoning}\n\n" if generation.reasoning else ""
        response = await self._oracle.invoke_best(
            _CRITIQUE_PROMPT.format(task=task, answer=generation.answer, reasoning=reasoning),
            "You are a rigorous reviewer. Always respond with valid JSON only.",
            temperature=0.0,
            max_tokens=1024,
        )
        if not response.success:
            log.warning("reflexion.critique_failed", error=response.error)
            return CritiquePayload(feedback="Critique unavailable")
        payload = decode(response.text, CritiquePayload)
        if payload is None:
            return CritiquePayload(feedback=response.text.strip())
        return payload

    async def _attempt(
        self,
        number: int,
        task: str,
        previous: list[ReflexionAttempt],
        context: str,
        include_reasoning: bool,
    ) -> ReflexionAttempt | None:
        generation = await generate_answer(
            self._oracle,
            task,
            previous=previous,
            context=context,
            include_reasoning=include_reasoning,
        )
        if generation is None:
            return None
        critique = await self._critique(task, generation)
        return ReflexionAttempt(
            attempt=number,
            answer=generation.answer,
            reasoning=generation.reasoning,
            critique=critique.feedback,
            confidence=critique.confidence,
            issues=critique.issues,
            strengths=critique.strengths,
            suggestions=critique.suggestions,
        )

    async def reflect(
        self,
        task: str,
        *,
        max_attempts: int | None = None,
        confidence_threshold: float | None = None,
        include_reasoning: bool = True,
        context: str = "",
    ) -> ReflexionResult:
        """Run the generate/critique loop.

        Raises:
            ReasoningTimeoutError: An attempt exceeded the configured budget.
            ValueError: ``max_attempts`` below 1.
        """
        if max_attempts is None:
            max_attempts = self._settings.reflexion_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        threshold = (
            self._settings.reflexion_confidence_threshold
            if confidence_threshold is None
            else confidence_threshold
        )
        timeout = self._settings.reflexion_attempt_timeout_seconds
        attempts: list[ReflexionAttempt] = []
        error: str | None = None

        for number in range(1, max_attempts + 1):
            try:
                attempt = await asyncio.wait_for(
                    self._attempt(number, task, list(attempts), context, include_reasoning),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as exc:
                log.error("reflexion.attempt_timeout", attempt=number, timeout=timeout)
                raise ReasoningTimeoutError(
                    f"Reflexion attempt {number} exceeded {timeout}s"
                ) from exc

            if attempt is None:
                error = "Oracle unavailable for answer generation"
                break

            attempts.append(attempt)
            log.debug(
                "reflexion.attempt_done",
                attempt=number,
                confidence=attempt.confidence,
                issues=len(attempt.issues),
            )
            if attempt.confidence >= threshold and not attempt.issues:
                break

        last = attempts[-1] if attempts else None
        result = ReflexionResult(
            task=task,
            final_answer=last.answer if last else None,
            final_confidence=last.confidence if last else 0.0,
            attempts=attempts,
            improved=len(attempts) > 1 and attempts[-1].confidence > attempts[0].confidence,
            error=error,
        )
        self._history.append(result)
        log.info(
            "reflexion.done",
            attempts=len(attempts),
            final_confidence=result.final_confidence,
            improved=result.improved,
            error=error,
        )
        return result

    async def quick_check(self, response: str, original_request: str) -> QuickCheckResult:
        """Single-pass quality gate. Approves when the oracle cannot judge."""
        if not self._oracle.is_available():
            return QuickCheckResult(approved=True, confidence=0.5)
        reply = await self._oracle.invoke_best(
            _QUICK_CHECK_PROMPT.format(request=original_request, response=response),
            "You are a quality gate. Always respond with valid JSON only.",
            temperature=0.0,
            max_tokens=512,
        )
        if not reply.success:
            return QuickCheckResult(approved=True, confidence=0.5)
        payload = decode_or_default(reply.text, QuickCheckPayload)
        return QuickCheckResult(
            approved=payload.approved,
            confidence=payload.confidence,
            issues=payload.issues,
            quick_fix=payload.quick_fix,
        )

    # ------------------------------------------------------------------ #
    # Specialized modes
    # ------------------------------------------------------------------ #

    async def reflect_on_code(self, task: str, language: str = "python") -> ReflexionResult:
        return await self.reflect(
            task,
            max_attempts=3,
            confidence_threshold=0.85,
            context=f"Language: {language}. The code must be correct, efficient, and handle edge cases.",
        )

    async def reflect_on_fact(self, claim: str) -> ReflexionResult:
        result = await self.reflect(
            f"Verify this claim and provide accurate information: {claim}",
            max_attempts=2,
            confidence_threshold=0.9,
            context="Focus on factual accuracy. If uncertain, say so.",
        )
        result.is_factual = result.final_confidence > FACTUAL_CONFIDENCE
        return result

    async def reflect_on_plan(self, goal: str, constraints: list[str] | None = None) -> ReflexionResult:
        context = "The plan should be actionable, complete, and realistic."
        if constraints:
            context = f"Constraints: {', '.join(constraints)}. {context}"
        return await self.reflect(
            f"Create a detailed plan to achieve: {goal}",
            max_attempts=3,
            confidence_threshold=0.75,
            context=context,
        )

    async def reflect_on_analysis(self, data: Any, question: str) -> ReflexionResult:
        return await self.reflect(
            f"Analyze this data to answer: {question}\n\nData: {json.dumps(data, default=str)}",
            max_attempts=2,
            confidence_threshold=0.8,
            context="Provide thorough analysis with evidence from the data.",
        )

    # ------------------------------------------------------------------ #
    # History & learning
    # ------------------------------------------------------------------ #

    def history(self, limit: int = 20) -> list[ReflexionResult]:
        return self._history.recent(limit)

    def stats(self) -> dict[str, Any]:
        results = self._history.recent()
        if not results:
            return {"total_reflexions": 0}
        count = len(results)
        improved = sum(1 for r in results if r.improved)
        return {
            "total_reflexions": count,
            "improved_count": improved,
            "improvement_rate": round(improved / count, 3),
            "average_attempts": round(sum(len(r.attempts) for r in results) / count, 2),
            "average_confidence": round(sum(r.final_confidence for r in results) / count, 3),
        }

    def common_issues(self, limit: int = 10) -> list[tuple[str, int]]:
        """Most frequent critique issues across the history."""
        counts = Counter(
            issue
            for result in self._history
            for attempt in result.attempts
            for issue in attempt.issues
        )
        return counts.most_common(limit)

    def clear_history(self) -> None:
        self._history.clear()
