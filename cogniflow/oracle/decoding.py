"""Decoding of structured oracle output.

Oracle backends are asked to answer in JSON, but in practice they wrap it in
markdown fences, prepend chatter, return percentages instead of fractions, or
drop fields entirely. Every engine decodes through this module so that the
fallback for each field is written down exactly once:

- ``extract_json()`` finds the first JSON object or array in arbitrary text.
- ``LenientModel`` subclasses validate the payload field by field. A field
  that is missing *or* malformed takes its declared default instead of
  failing the whole payload.
- ``decode()`` returns ``None`` only when no JSON object is present at all.

Plain-text conventions (``FINAL ANSWER:`` lines, ``[COMPLETE]`` markers,
``REASONING:``/``ANSWER:`` sections) are parsed here too.
"""

from __future__ import annotations

import json
import re
from typing import Annotated, Any, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

from cogniflow.core.errors import ParseFailureError

M = TypeVar("M", bound="LenientModel")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_FINAL_ANSWER_RE = re.compile(r"FINAL ANSWER:\s*([\s\S]*?)(?:\n|$)", re.IGNORECASE)
_REASONING_RE = re.compile(r"REASONING:\s*([\s\S]*?)(?=\n\s*ANSWER:|$)", re.IGNORECASE)
_ANSWER_RE = re.compile(r"(?:^|\n)\s*ANSWER:\s*([\s\S]*)$", re.IGNORECASE)

COMPLETE_MARKER = "[COMPLETE]"


# ------------------------------------------------------------------ #
# Raw JSON extraction
# ------------------------------------------------------------------ #


def extract_json(text: str | None) -> Any | None:
    """Return the first JSON object or array embedded in ``text``.

    Tries, in order: the whole text, each fenced code block, then every
    ``{`` / ``[`` position scanning left to right. Returns ``None`` when
    nothing decodes.
    """
    if not text:
        return None

    stripped = text.strip()
    candidates = [stripped]
    candidates.extend(block.strip() for block in _FENCE_RE.findall(text))
    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(value, (dict, list)):
            return value

    decoder = json.JSONDecoder()
    for idx, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, idx)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(value, (dict, list)):
            return value
    return None


# ------------------------------------------------------------------ #
# Field coercions
# ------------------------------------------------------------------ #


def _unit_interval(value: float) -> float:
    # Percentages (e.g. 85) are accepted and rescaled.
    if 1.0 < value <= 100.0:
        value = value / 100.0
    return min(max(value, 0.0), 1.0)


def _ten_point(value: float) -> float:
    return min(max(value, 0.0), 10.0)


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        items: list[str] = []
        for item in value:
            if item is None:
                continue
            if isinstance(item, dict):
                text = item.get("issue") or item.get("text") or item.get("claim")
                item = text if text else json.dumps(item)
            item = str(item).strip()
            if item:
                items.append(item)
        return items
    return []


UnitScore = Annotated[float, AfterValidator(_unit_interval)]
TenPointScore = Annotated[float, AfterValidator(_ten_point)]
StrList = Annotated[list[str], BeforeValidator(_str_list)]


class LenientModel(BaseModel):
    """Base for oracle payloads: camelCase or snake_case keys, per-field defaults."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_on_error(
        cls,
        value: Any,
        handler: ValidatorFunctionWrapHandler,
        info: ValidationInfo,
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            field = cls.model_fields[info.field_name]
            return field.get_default(call_default_factory=True)


# ------------------------------------------------------------------ #
# Payload schemas
# ------------------------------------------------------------------ #


class IntentPayload(LenientModel):
    """Intent classification. Fallback: general / 0.5."""

    category: str = "general"
    confidence: UnitScore = 0.5
    keywords: StrList = Field(default_factory=list)


class ComplexityFactors(LenientModel):
    """Five named complexity factors, each in [0, 1]."""

    steps: UnitScore = 0.3
    domains: UnitScore = 0.3
    ambiguity: UnitScore = 0.3
    iteration: UnitScore = 0.2
    dependencies: UnitScore = 0.2

    def average(self) -> float:
        values = (self.steps, self.domains, self.ambiguity, self.iteration, self.dependencies)
        return round(sum(values) / len(values), 2)


class ComplexityPayload(LenientModel):
    """Complexity assessment. The score is always the average of the factors."""

    factors: ComplexityFactors = Field(default_factory=ComplexityFactors)
    reasoning: str = ""

    @property
    def score(self) -> float:
        return self.factors.average()


class ThoughtEvaluation(LenientModel):
    """Evaluator scores for one reasoning node. Missing sub-scores count as 5/10."""

    progress: TenPointScore = 5.0
    correctness: TenPointScore = 5.0
    completeness: TenPointScore = 5.0
    clarity: TenPointScore = 5.0
    reasoning: str = ""

    @property
    def score(self) -> float:
        total = self.progress + self.correctness + self.completeness + self.clarity
        return round(total / 40.0, 4)


class CritiquePayload(LenientModel):
    """Self-critique of one reflexion attempt. Fallback confidence 0.5, no issues."""

    confidence: UnitScore = 0.5
    is_correct: bool = True
    is_complete: bool = True
    issues: StrList = Field(default_factory=list)
    feedback: str = ""
    strengths: StrList = Field(default_factory=list)
    suggestions: StrList = Field(default_factory=list)


class QuickCheckPayload(LenientModel):
    """Single-pass approval gate. Fails open (approved)."""

    approved: bool = True
    confidence: UnitScore = 0.5
    issues: StrList = Field(default_factory=list)
    quick_fix: str | None = None


class ClaimVerdict(LenientModel):
    """Verification of one atomic claim. Unparseable verdicts count as verified."""

    verified: bool = True
    confidence: UnitScore = 0.5
    reason: str = ""
    correction: str | None = None


class ClaimsPayload(LenientModel):
    claims: StrList = Field(default_factory=list)


def _subtask_list(value: Any) -> list[Any]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class SubtaskPayload(LenientModel):
    id: int = 0
    description: str = ""
    dependencies: list[int] = Field(default_factory=list)
    estimated_complexity: UnitScore | None = None
    suggested_handler: str = ""


class DecompositionPayload(LenientModel):
    """Ordered subtasks. Items that are not objects are dropped."""

    subtasks: Annotated[list[SubtaskPayload], BeforeValidator(_subtask_list)] = Field(
        default_factory=list
    )
    parallelizable: StrList = Field(default_factory=list)
    critical_path: StrList = Field(default_factory=list)
    total_estimated_steps: int | None = None


# ------------------------------------------------------------------ #
# Decoding entry points
# ------------------------------------------------------------------ #


def decode(text: str | None, model: type[M]) -> M | None:
    """Decode ``text`` into ``model``; ``None`` when no JSON object is present."""
    data = extract_json(text)
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        return None


def decode_or_default(text: str | None, model: type[M]) -> M:
    """Decode ``text`` into ``model``, falling back to the all-defaults instance."""
    decoded = decode(text, model)
    return decoded if decoded is not None else model()


def decode_strict(text: str | None, model: type[M]) -> M:
    """Like :func:`decode` but raises when the text holds no JSON object.

    Raises:
        ParseFailureError: No decodable object in ``text``.
    """
    decoded = decode(text, model)
    if decoded is None:
        raise ParseFailureError(f"No {model.__name__} object in oracle output")
    return decoded


def decode_claims(text: str | None) -> list[str]:
    """Claims come back either as a bare array or as ``{"claims": [...]}``."""
    data = extract_json(text)
    if isinstance(data, list):
        return _str_list(data)
    if isinstance(data, dict):
        return ClaimsPayload.model_validate(data).claims
    return []


# ------------------------------------------------------------------ #
# Plain-text conventions
# ------------------------------------------------------------------ #


def extract_final_answer(text: str) -> str | None:
    """Return the text after the first ``FINAL ANSWER:`` on its line, if any."""
    match = _FINAL_ANSWER_RE.search(text or "")
    if not match:
        return None
    answer = match.group(1).strip()
    return answer or None


def is_complete_thought(text: str) -> bool:
    return COMPLETE_MARKER in (text or "")


def strip_complete_marker(text: str) -> str:
    return (text or "").replace(COMPLETE_MARKER, "").strip()


def parse_reasoned_answer(text: str) -> tuple[str, str]:
    """Split ``REASONING: ... ANSWER: ...`` output into (answer, reasoning).

    Text without an ``ANSWER:`` section is treated as the answer itself.
    """
    text = text or ""
    answer_match = _ANSWER_RE.search(text)
    reasoning_match = _REASONING_RE.search(text)
    reasoning = reasoning_match.group(1).strip() if reasoning_match else ""
    answer = answer_match.group(1).strip() if answer_match else text.strip()
    return answer, reasoning
