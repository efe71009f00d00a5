"""Base plugin classes and interfaces.

Defines the capability-provider contract:
- PluginCategory: Fixed set of categories the director knows how to stage
- IntentMatcher / RegexIntentMatcher: Text predicates used for auto-selection
- PluginContext: Accumulated turn context handed to every handler
- PluginResult: Uniform handler output (never an exception for "not configured")
- BasePlugin / FunctionPlugin: Handler interface and a callable adapter
- PluginConfig / Plugin: Registration input and the frozen registered entry
"""

from __future__ import annotations

import inspect
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from cogniflow.core.errors import ConfigurationError

MAX_SOURCES = 3


class PluginCategory(StrEnum):
    """Categories the director stages in a fixed order."""

    MEMORY = "memory"
    GROUNDING = "grounding"
    EXECUTION = "execution"
    REASONING = "reasoning"
    AGENTS = "agents"
    ANALYSIS = "analysis"


# ------------------------------------------------------------------ #
# Intent matching
# ------------------------------------------------------------------ #


@runtime_checkable
class IntentMatcher(Protocol):
    """Predicate deciding whether free text should activate a plugin."""

    def matches(self, text: str) -> bool: ...


class RegexIntentMatcher:
    """Case-insensitive regular-expression matcher."""

    def __init__(self, pattern: str | re.Pattern[str]) -> None:
        if isinstance(pattern, re.Pattern):
            self._regex = pattern
        else:
            try:
                self._regex = re.compile(pattern, re.IGNORECASE)
            except re.error as exc:
                raise ConfigurationError(f"Invalid intent pattern {pattern!r}: {exc}") from exc

    @property
    def pattern(self) -> str:
        return self._regex.pattern

    def matches(self, text: str) -> bool:
        return bool(self._regex.search(text or ""))

    def __repr__(self) -> str:
        return f"RegexIntentMatcher({self._regex.pattern!r})"


def as_matcher(intent: str | re.Pattern[str] | IntentMatcher) -> IntentMatcher:
    if isinstance(intent, (str, re.Pattern)):
        return RegexIntentMatcher(intent)
    if isinstance(intent, IntentMatcher):
        return intent
    raise ConfigurationError(f"Unsupported intent pattern type: {type(intent).__name__}")


# ------------------------------------------------------------------ #
# Handler I/O
# ------------------------------------------------------------------ #


@dataclass
class PluginResult:
    """Result of one plugin invocation.

    Attributes:
        success:    False when the handler failed or its upstream is unconfigured.
        answer:     Primary text output (research summary, reasoned answer...).
        is_final:   True when ``answer`` should be returned to the caller as-is.
        data:       Structured payload (verdicts, execution output...).
        confidence: Handler's own confidence in [0, 1], when it has one.
        citations:  Source URLs or identifiers backing ``answer``.
        error:      Failure description when ``success`` is False.
        metadata:   Free-form extra details for tracing.
    """

    success: bool = True
    answer: str | None = None
    is_final: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    confidence: float | None = None
    citations: list[str] = field(default_factory=list)
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def unavailable(cls, reason: str) -> PluginResult:
        """Status object for a handler whose own upstream is not configured."""
        return cls(success=False, error=reason, metadata={"status": "unavailable"})

    @classmethod
    def failed(cls, error: str) -> PluginResult:
        return cls(success=False, error=error, metadata={"status": "failed"})


@dataclass
class PluginContext:
    """Context accumulated across director stages and passed to each handler.

    ``extras`` carries the caller's own context for the turn, untouched.
    """

    user_id: str | None = None
    memory_context: str = ""
    grounded_data: PluginResult | None = None
    verification_data: PluginResult | None = None
    code_result: PluginResult | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def verdict(self) -> str | None:
        verification = self.verification_data
        if verification is None:
            return None
        return verification.data.get("verdict") or verification.answer

    def side_channel_sections(self) -> list[str]:
        """Render the non-empty research, verification and code channels."""
        sections = []
        grounded = self.grounded_data
        if grounded is not None and grounded.answer:
            section = f"[Web Research]\n{grounded.answer}"
            if grounded.citations:
                section += f"\nSources: {', '.join(grounded.citations[:MAX_SOURCES])}"
            sections.append(section)

        verdict = self.verdict
        if verdict:
            confidence = self.verification_data.confidence
            if confidence is None:
                confidence = self.verification_data.data.get("confidence") or 0.0
            sections.append(f"[Verification]\n{verdict} ({round(confidence * 100)}% confidence)")

        code = self.code_result
        if code is not None:
            output = code.data.get("output") or code.answer or code.error or "No output"
            section = f"[Code]\n{'Success' if code.success else 'Failed'}: {output}"
            generated = code.data.get("generated_code")
            if generated:
                section += f"\n```{code.data.get('language', 'python')}\n{generated}\n```"
            sections.append(section)
        return sections


class BasePlugin(ABC):
    """Abstract capability provider.

    Handlers must degrade to ``PluginResult.unavailable(...)`` rather than
    raise when their own upstream is unconfigured. Any exception that does
    escape is isolated by the director and recorded as a plugin failure.
    """

    @abstractmethod
    async def handle(self, text: str, context: PluginContext) -> PluginResult:
        """Process ``text`` and return a result."""


HandlerFn = Callable[[str, PluginContext], Awaitable[Any] | Any]


class FunctionPlugin(BasePlugin):
    """Adapts a plain (sync or async) callable to :class:`BasePlugin`.

    The callable may return a ``PluginResult``, a ``str`` (taken as the
    answer), a ``dict`` (taken as ``data``; an ``"answer"`` key is lifted),
    or ``None``.
    """

    def __init__(self, fn: HandlerFn) -> None:
        self._fn = fn

    async def handle(self, text: str, context: PluginContext) -> PluginResult:
        value = self._fn(text, context)
        if inspect.isawaitable(value):
            value = await value
        return coerce_result(value)


def coerce_result(value: Any) -> PluginResult:
    if isinstance(value, PluginResult):
        return value
    if value is None:
        return PluginResult()
    if isinstance(value, str):
        return PluginResult(answer=value)
    if isinstance(value, dict):
        data = dict(value)
        answer = data.pop("answer", None)
        return PluginResult(
            answer=str(answer) if answer is not None else None,
            is_final=bool(data.pop("is_final", False)),
            citations=list(data.pop("citations", []) or []),
            data=data,
        )
    return PluginResult(data={"value": value})


# ------------------------------------------------------------------ #
# Registration
# ------------------------------------------------------------------ #


@dataclass
class PluginConfig:
    """Registration input for :meth:`PluginRegistry.register`."""

    category: PluginCategory | str | None = None
    handler: BasePlugin | HandlerFn | None = None
    capabilities: list[str] = field(default_factory=list)
    intents: list[str | re.Pattern[str] | IntentMatcher] = field(default_factory=list)
    priority: int = 50
    description: str = ""


@dataclass(frozen=True)
class Plugin:
    """A registered capability provider. Read-only after registration."""

    name: str
    category: PluginCategory
    handler: BasePlugin
    capabilities: tuple[str, ...] = ()
    intents: tuple[IntentMatcher, ...] = ()
    priority: int = 50
    description: str = ""
    order: int = 0

    def matches(self, text: str) -> bool:
        """True if any intent pattern matches (first match short-circuits)."""
        return any(matcher.matches(text) for matcher in self.intents)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "capabilities": list(self.capabilities),
            "priority": self.priority,
            "intents": len(self.intents),
            "description": self.description,
        }
