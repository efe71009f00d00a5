"""Cognitive director - the single entry point for a turn.

``think()`` runs a fixed pipeline; the order of the stages never changes:

a. Memory      read prior context for the user (always, regardless of intent)
b. Detect      match the input against every registered intent pattern once
c. Grounding   matched grounding plugins, concurrently
d. Execution   matched execution plugins, concurrently
e. Reasoning   at most ``max_reasoning_plugins`` matched reasoning/agents
               plugins, sequentially, each seeing the context from a-d
f. Synthesis   one oracle call over the input plus every non-empty side
               channel, unless a reasoning plugin already produced a final answer
g. Memory      write a condensed turn summary back

Every plugin call carries a timeout and is isolated: a failing plugin is
recorded as a ``PluginRun`` and a trace entry and the turn continues. Memory
failures are logged and skipped. A turn that cannot produce a response still
returns a ``ThinkResult`` with ``response=None`` and an ``error``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.core.errors import PluginExecutionError
from cogniflow.memory.store import InMemoryMemory, MemoryEntry, MemoryStore
from cogniflow.oracle.client import OracleClient
from cogniflow.plugins.base import Plugin, PluginCategory, PluginContext, PluginResult
from cogniflow.plugins.intent import IntentDetector
from cogniflow.plugins.registry import PluginRegistry
from cogniflow.telemetry.logging import turn_context

log = structlog.get_logger(__name__)

SYNTHESIS_SYSTEM_PROMPT = (
    "You are a helpful AI. Use the provided context (research, verification, code, memory) "
    "to give accurate responses. Be concise."
)

WEB_SEARCH = "web_search"
FACT_CHECK = "fact_check"
CODE_EXECUTION = "code_execution"

_MEMORY_QUERY_CHARS = 200


@dataclass
class PluginRun:
    """One plugin invocation inside a turn."""

    plugin: str
    category: str
    status: str  # ok | failed | timeout | unavailable
    elapsed_ms: float
    error: str | None = None


@dataclass
class TraceStep:
    step: str
    data: Any
    elapsed_ms: float


@dataclass
class ThinkMeta:
    """What happened during a turn.

    Attributes:
        turn_id:          Correlation id bound into every log event of the turn.
        plugins_detected: Names matched by intent detection, priority order.
        plugins_run:      Every plugin invocation with its status.
        grounded:         A web_search result was used.
        verified:         A fact_check result was used.
        code_executed:    A code_execution result was used.
        synthesized:      The response came from the synthesis call.
        elapsed_ms:       Wall time of the whole turn.
    """

    turn_id: str
    plugins_detected: list[str] = field(default_factory=list)
    plugins_run: list[PluginRun] = field(default_factory=list)
    grounded: bool = False
    verified: bool = False
    code_executed: bool = False
    synthesized: bool = False
    elapsed_ms: float = 0.0

    @property
    def plugin_failures(self) -> list[str]:
        return [run.plugin for run in self.plugins_run if run.status != "ok"]

    @property
    def side_channels(self) -> list[str]:
        used = {
            "grounding": self.grounded,
            "verification": self.verified,
            "code": self.code_executed,
        }
        return [name for name, flag in used.items() if flag]


@dataclass
class ThinkResult:
    response: str | None
    meta: ThinkMeta
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    trace: list[TraceStep] = field(default_factory=list)


@dataclass
class _Turn:
    """Mutable state threaded through the stages of one turn."""

    text: str
    context: PluginContext
    meta: ThinkMeta
    started: float
    trace: list[TraceStep] = field(default_factory=list)

    def record(self, step: str, data: Any) -> None:
        self.trace.append(
            TraceStep(step=step, data=data, elapsed_ms=(time.perf_counter() - self.started) * 1000)
        )


def build_synthesis_prompt(text: str, context: PluginContext) -> str:
    """The input augmented with every non-empty side channel."""
    prompt = text
    for section in context.side_channel_sections():
        prompt += f"\n\n{section}"
    if context.memory_context:
        prompt += context.memory_context
    return prompt


def side_channel_data(context: PluginContext) -> dict[str, Any]:
    grounded = context.grounded_data
    verification = context.verification_data
    code = context.code_result
    return {
        "grounding": (
            {"answer": grounded.answer, "citations": list(grounded.citations)}
            if grounded is not None
            else None
        ),
        "verification": (
            {
                "verdict": context.verdict,
                "confidence": verification.confidence,
            }
            if verification is not None
            else None
        ),
        "code": (
            {
                "success": code.success,
                "output": code.data.get("output") or code.answer,
                "generated_code": code.data.get("generated_code"),
            }
            if code is not None
            else None
        ),
    }


def _caller_context(
    context: dict[str, Any] | None, user_id: str | None
) -> tuple[dict[str, Any], str | None]:
    extras = dict(context or {})
    if user_id is None and extras.get("user_id") is not None:
        user_id = str(extras["user_id"])
    return extras, user_id


class CognitiveDirector:
    """Sequences memory, plugins, reasoning and synthesis for each turn.

    The director holds no per-turn state between calls; any number of
    ``think()`` calls may run concurrently against the same instance.
    """

    def __init__(
        self,
        registry: PluginRegistry,
        oracle: OracleClient,
        memory: MemoryStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the director.

        Args:
            registry: Populated plugin registry (read-only from here on)
            oracle: Oracle used for the synthesis call
            memory: Memory collaborator; defaults to an in-process store
            settings: Timeouts and the reasoning fan-out cap
        """
        self._registry = registry
        self._oracle = oracle
        self._memory = memory if memory is not None else InMemoryMemory()
        self._settings = settings or get_settings()
        self._detector = IntentDetector(registry)

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    @property
    def memory(self) -> MemoryStore:
        return self._memory

    # ------------------------------------------------------------------ #
    # Turn pipeline
    # ------------------------------------------------------------------ #

    async def think(
        self,
        text: str,
        context: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> ThinkResult:
        """Run one turn through the fixed pipeline.

        Args:
            text: The user's input
            context: Caller context, handed to every plugin as ``PluginContext.extras``;
                a ``user_id`` key is used when ``user_id`` is not given
            user_id: Scopes memory reads and writes
        """
        extras, user_id = _caller_context(context, user_id)
        with turn_context(user_id) as turn_id:
            turn = self._start_turn(turn_id, text, user_id, extras)
            try:
                await self._load_memory(turn)

                active = self._detector.detect_active(text)
                turn.meta.plugins_detected = [p.name for p in active]
                turn.record("active_plugins", turn.meta.plugins_detected)

                await self._run_grounding(turn, self._in_category(active, PluginCategory.GROUNDING))
                await self._run_execution(turn, self._in_category(active, PluginCategory.EXECUTION))

                reasoning = [
                    p
                    for p in active
                    if p.category in (PluginCategory.REASONING, PluginCategory.AGENTS)
                ][: self._settings.max_reasoning_plugins]
                response = await self._run_reasoning(turn, reasoning)

                error = None
                if response is None:
                    response, error = await self._synthesize(turn)

                await self._store_memory(turn, plugins=turn.meta.plugins_detected)
                return self._finish(turn, response, error)
            except Exception as exc:
                log.exception("director.turn_failed", error=str(exc))
                turn.record("error", str(exc))
                return self._finish(turn, None, str(exc))

    async def grounded_think(
        self,
        text: str,
        context: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> ThinkResult:
        """Force web grounding: run the top ``web_search`` provider, then synthesize."""
        extras, user_id = _caller_context(context, user_id)
        with turn_context(user_id) as turn_id:
            turn = self._start_turn(turn_id, text, user_id, extras)
            try:
                await self._load_memory(turn)
                provider = self._registry.best_provider(WEB_SEARCH)
                if provider is not None:
                    await self._run_grounding(turn, [provider])
                else:
                    turn.record("grounding", "no web_search provider")

                response, error = await self._synthesize(turn)
                await self._store_memory(turn, plugins=[provider.name] if provider else [])
                return self._finish(turn, response, error)
            except Exception as exc:
                log.exception("director.turn_failed", error=str(exc))
                turn.record("error", str(exc))
                return self._finish(turn, None, str(exc))

    async def invoke_capability(
        self,
        capability: str,
        text: str,
        context: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> PluginResult:
        """Run the highest-priority provider of ``capability`` directly."""
        provider = self._registry.best_provider(capability)
        if provider is None:
            return PluginResult.unavailable(f"No provider registered for capability '{capability}'")
        extras, user_id = _caller_context(context, user_id)
        run, result = await self._run_plugin(
            provider, text, PluginContext(user_id=user_id, extras=extras)
        )
        log.info(
            "director.capability_invoked",
            capability=capability,
            plugin_name=provider.name,
            status=run.status,
        )
        if result is None:
            return PluginResult.failed(run.error or run.status)
        return result

    def status(self) -> dict[str, Any]:
        return {
            **self._registry.status(),
            "backends": {
                name: cfg.configured for name, cfg in self._oracle.backends.items()
            },
            "available_backends": self._oracle.available_backends,
            "max_reasoning_plugins": self._settings.max_reasoning_plugins,
            "memory": type(self._memory).__name__,
        }

    # ------------------------------------------------------------------ #
    # Stages
    # ------------------------------------------------------------------ #

    def _start_turn(
        self, turn_id: str, text: str, user_id: str | None, extras: dict[str, Any]
    ) -> _Turn:
        log.info("director.turn_started", input_chars=len(text))
        return _Turn(
            text=text,
            context=PluginContext(user_id=user_id, extras=extras),
            meta=ThinkMeta(turn_id=turn_id),
            started=time.perf_counter(),
        )

    def _finish(self, turn: _Turn, response: str | None, error: str | None) -> ThinkResult:
        turn.meta.elapsed_ms = (time.perf_counter() - turn.started) * 1000
        log.info(
            "director.turn_complete",
            plugins_used=turn.meta.plugins_detected,
            failures=turn.meta.plugin_failures,
            side_channels=turn.meta.side_channels,
            synthesized=turn.meta.synthesized,
            elapsed_ms=round(turn.meta.elapsed_ms, 1),
            error=error,
        )
        return ThinkResult(
            response=response,
            meta=turn.meta,
            error=error,
            data=side_channel_data(turn.context),
            trace=turn.trace,
        )

    @staticmethod
    def _in_category(plugins: list[Plugin], category: PluginCategory) -> list[Plugin]:
        return [p for p in plugins if p.category == category]

    async def _load_memory(self, turn: _Turn) -> None:
        try:
            memory_context = await asyncio.wait_for(
                self._memory.read(turn.context.user_id),
                timeout=self._settings.memory_timeout_seconds,
            )
        except Exception as exc:
            log.warning("director.memory_read_failed", error=str(exc) or type(exc).__name__)
            turn.record("memory_error", str(exc) or type(exc).__name__)
            return
        turn.context.memory_context = memory_context or ""
        turn.record("memory", "loaded" if memory_context else "empty")

    async def _run_stage(
        self, turn: _Turn, stage: str, plugins: list[Plugin]
    ) -> list[tuple[Plugin, PluginResult]]:
        """Run ``plugins`` concurrently and return the successful results in priority order."""
        if not plugins:
            return []
        context = dataclasses.replace(turn.context)
        outcomes = await asyncio.gather(
            *[self._run_plugin(plugin, turn.text, context) for plugin in plugins]
        )
        succeeded = []
        for plugin, (run, result) in zip(plugins, outcomes):
            turn.meta.plugins_run.append(run)
            turn.record(stage if run.status == "ok" else f"{plugin.name}_{run.status}", plugin.name)
            if result is not None and result.success:
                succeeded.append((plugin, result))
        return succeeded

    async def _run_grounding(self, turn: _Turn, plugins: list[Plugin]) -> None:
        for plugin, result in await self._run_stage(turn, "grounding", plugins):
            if WEB_SEARCH in plugin.capabilities and turn.context.grounded_data is None:
                turn.context.grounded_data = result
                turn.meta.grounded = True
            if FACT_CHECK in plugin.capabilities and turn.context.verification_data is None:
                turn.context.verification_data = result
                turn.meta.verified = True

    async def _run_execution(self, turn: _Turn, plugins: list[Plugin]) -> None:
        for plugin, result in await self._run_stage(turn, "execution", plugins):
            if CODE_EXECUTION in plugin.capabilities and turn.context.code_result is None:
                turn.context.code_result = result
                turn.meta.code_executed = True

    async def _run_reasoning(self, turn: _Turn, plugins: list[Plugin]) -> str | None:
        """Run reasoning plugins one after another; the last final answer wins."""
        answer: str | None = None
        for plugin in plugins:
            run, result = await self._run_plugin(plugin, turn.text, turn.context)
            turn.meta.plugins_run.append(run)
            step = "reasoning" if run.status == "ok" else f"{plugin.name}_{run.status}"
            turn.record(step, plugin.name)
            if result is not None and result.success and result.is_final and result.answer:
                answer = result.answer
        return answer

    async def _synthesize(self, turn: _Turn) -> tuple[str | None, str | None]:
        prompt = build_synthesis_prompt(turn.text, turn.context)
        response = await self._oracle.invoke_best(prompt, SYNTHESIS_SYSTEM_PROMPT)
        turn.record("synthesis", response.backend)
        if not response.success:
            log.error("director.synthesis_failed", error=response.error)
            return None, response.error or "Synthesis failed"
        turn.meta.synthesized = True
        return response.text, None

    async def _store_memory(self, turn: _Turn, *, plugins: list[str]) -> None:
        entry = MemoryEntry(
            user_id=turn.context.user_id,
            query=turn.text[:_MEMORY_QUERY_CHARS],
            plugins=list(plugins),
        )
        try:
            await asyncio.wait_for(
                self._memory.write(entry), timeout=self._settings.memory_timeout_seconds
            )
        except Exception as exc:
            log.warning("director.memory_write_failed", error=str(exc) or type(exc).__name__)
            turn.record("memory_write_error", str(exc) or type(exc).__name__)

    # ------------------------------------------------------------------ #
    # Plugin isolation
    # ------------------------------------------------------------------ #

    async def _run_plugin(
        self,
        plugin: Plugin,
        text: str,
        context: PluginContext,
    ) -> tuple[PluginRun, PluginResult | None]:
        started = time.perf_counter()
        timeout = self._settings.plugin_timeout_seconds

        def run(status: str, error: str | None = None) -> PluginRun:
            return PluginRun(
                plugin=plugin.name,
                category=plugin.category.value,
                status=status,
                elapsed_ms=(time.perf_counter() - started) * 1000,
                error=error,
            )

        try:
            result = await asyncio.wait_for(plugin.handler.handle(text, context), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("director.plugin_timeout", plugin_name=plugin.name, timeout=timeout)
            return run("timeout", f"Timed out after {timeout}s"), None
        except Exception as exc:
            failure = PluginExecutionError(plugin.name, str(exc) or type(exc).__name__)
            log.warning("director.plugin_failed", plugin_name=plugin.name, error=str(failure))
            return run("failed", str(failure)), None

        if not isinstance(result, PluginResult):
            failure = PluginExecutionError(
                plugin.name, f"handler returned {type(result).__name__}, expected PluginResult"
            )
            log.warning("director.plugin_failed", plugin_name=plugin.name, error=str(failure))
            return run("failed", str(failure)), None

        if not result.success:
            status = "unavailable" if result.metadata.get("status") == "unavailable" else "failed"
            log.info("director.plugin_unsuccessful", plugin_name=plugin.name, status=status)
            return run(status, result.error), result

        log.debug("director.plugin_ok", plugin_name=plugin.name)
        return run("ok"), result
