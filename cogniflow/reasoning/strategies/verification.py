"""Chain-of-verification: answer, split into claims, check each, correct once.

1. Generate one answer (same REASONING/ANSWER format as reflexion).
2. Ask the oracle to break it into atomic factual claims. When that yields
   nothing usable the whole answer is treated as a single claim.
3. Verify every claim independently and concurrently. A claim that cannot be
   judged counts as verified at 0.5 confidence.
4. If any claim failed, issue exactly one corrective regeneration listing each
   failed claim with its correction (or REMOVE).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from cogniflow.oracle.decoding import ClaimVerdict, decode, decode_claims
from cogniflow.reasoning.strategies.base import ReasoningResult, ReasoningStrategy
from cogniflow.reasoning.strategies.reflexion import generate_answer

log = structlog.get_logger(__name__)

_EXTRACT_PROMPT = """Extract individual factual claims from this text. Return as JSON array of strings.

Text: {text}

Return: ["claim1", "claim2", ...]"""

_VERIFY_PROMPT = """Verify this claim. Is it accurate?

Claim: {claim}

Return JSON:
{{
  "verified": true,
  "confidence": 0.0-1.0,
  "reason": "why",
  "correction": "if incorrect, what's correct"
}}"""

_CORRECT_PROMPT = """Correct this answer based on the following verified corrections:

ORIGINAL TASK: {task}

ORIGINAL ANSWER: {answer}

CORRECTIONS NEEDED:
{corrections}

Provide the corrected answer:"""


@dataclass
class ClaimCheck:
    claim: str
    verified: bool = True
    confidence: float = 0.5
    reason: str = ""
    correction: str | None = None


@dataclass
class VerificationResult:
    """Outcome of one chain-of-verification run.

    ``answer`` equals ``original_answer`` when every claim held. ``verified``
    is False only when the corrective regeneration itself could not be served.
    """

    task: str
    answer: str | None
    original_answer: str | None
    verified: bool
    corrections: int = 0
    claims: list[ClaimCheck] = field(default_factory=list)
    reasoning: str = ""
    error: str | None = None

    @property
    def failed_claims(self) -> list[ClaimCheck]:
        return [c for c in self.claims if not c.verified]


class ChainOfVerification(ReasoningStrategy):
    """Claim-level fact checking of a single generated answer."""

    @property
    def name(self) -> str:
        return "chain_of_verification"

    async def reason(self, query: str, context: str = "") -> ReasoningResult:
        result = await self.verify(query, context=context)
        checked = len(result.claims)
        return ReasoningResult(
            answer=result.answer or "",
            confidence=(checked - len(result.failed_claims)) / checked if checked else 0.0,
            steps=[f"{'✓' if c.verified else '✗'} {c.claim}" for c in result.claims],
            strategy_name=self.name,
            complete=result.error is None,
            error=result.error,
            metadata={"corrections": result.corrections, "claims": checked},
        )

    async def extract_claims(self, text: str) -> list[str]:
        response = await self._oracle.invoke_best(
            _EXTRACT_PROMPT.format(text=text),
            "Always respond with valid JSON only.",
            temperature=0.0,
        )
        claims = decode_claims(response.text) if response.success else []
        return claims or [text]

    async def verify_claim(self, claim: str) -> ClaimCheck:
        response = await self._oracle.invoke_best(
            _VERIFY_PROMPT.format(claim=claim),
            "You are a careful fact checker. Always respond with valid JSON only.",
            temperature=0.0,
            max_tokens=512,
        )
        verdict = decode(response.text, ClaimVerdict) if response.success else None
        if verdict is None:
            return ClaimCheck(claim=claim)
        return ClaimCheck(
            claim=claim,
            verified=verdict.verified,
            confidence=verdict.confidence,
            reason=verdict.reason,
            correction=verdict.correction,
        )

    async def verify(self, task: str, *, context: str = "") -> VerificationResult:
        generation = await generate_answer(self._oracle, task, context=context)
        if generation is None:
            return VerificationResult(
                task=task,
                answer=None,
                original_answer=None,
                verified=False,
                error="Oracle unavailable for answer generation",
            )

        claims = await self.extract_claims(generation.answer)
        checks = list(await asyncio.gather(*[self.verify_claim(c) for c in claims]))
        failed = [c for c in checks if not c.verified]
        log.info("cov.claims_checked", claims=len(checks), failed=len(failed))

        if not failed:
            return VerificationResult(
                task=task,
                answer=generation.answer,
                original_answer=generation.answer,
                verified=True,
                claims=checks,
                reasoning=generation.reasoning,
            )

        corrections = "\n".join(f'- "{c.claim}" → {c.correction or "REMOVE"}' for c in failed)
        response = await self._oracle.invoke_best(
            _CORRECT_PROMPT.format(task=task, answer=generation.answer, corrections=corrections),
            max_tokens=2048,
        )
        if not response.success:
            log.warning("cov.correction_failed", error=response.error)
            return VerificationResult(
                task=task,
                answer=generation.answer,
                original_answer=generation.answer,
                verified=False,
                corrections=len(failed),
                claims=checks,
                reasoning=generation.reasoning,
                error=response.error,
            )
        return VerificationResult(
            task=task,
            answer=response.text.strip(),
            original_answer=generation.answer,
            verified=True,
            corrections=len(failed),
            claims=checks,
            reasoning=generation.reasoning,
        )
