"""Built-in plugins backed by this package's own engines.

- ``StrategyPlugin`` runs any :class:`ReasoningStrategy` as a reasoning plugin
- ``RouterPlugin`` exposes :class:`TaskRouter` as an agents plugin

External providers (web search, fact checking, code execution...) are
registered by the host application through the same registry API.
"""

from __future__ import annotations

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.oracle.client import OracleClient
from cogniflow.plugins.base import (
    BasePlugin,
    Plugin,
    PluginCategory,
    PluginConfig,
    PluginContext,
    PluginResult,
)
from cogniflow.plugins.registry import PluginRegistry
from cogniflow.reasoning.strategies.base import ReasoningStrategy
from cogniflow.reasoning.strategies.reflexion import Reflexion
from cogniflow.reasoning.strategies.tree_of_thought import TreeOfThought
from cogniflow.routing.router import TaskRouter

log = structlog.get_logger(__name__)


def context_text(context: PluginContext) -> str:
    """Flatten the accumulated turn context into prompt text."""
    parts = []
    if context.memory_context:
        parts.append(context.memory_context.strip())
    parts.extend(context.side_channel_sections())
    return "\n\n".join(parts)


class StrategyPlugin(BasePlugin):
    """Runs a reasoning strategy with the accumulated turn context."""

    def __init__(self, strategy: ReasoningStrategy) -> None:
        self._strategy = strategy

    @property
    def strategy(self) -> ReasoningStrategy:
        return self._strategy

    async def handle(self, text: str, context: PluginContext) -> PluginResult:
        if not self._strategy.oracle.is_available():
            return PluginResult.unavailable(f"{self._strategy.name}: no oracle backend configured")

        result = await self._strategy.reason(text, context_text(context))
        return PluginResult(
            success=bool(result.answer),
            answer=result.answer or None,
            is_final=bool(result.answer),
            data={"steps": result.steps, **result.metadata},
            confidence=result.confidence,
            error=result.error,
            metadata={"strategy": result.strategy_name, "complete": result.complete},
        )


class RouterPlugin(BasePlugin):
    """Returns a routing decision as structured data; never a final answer."""

    def __init__(self, router: TaskRouter) -> None:
        self._router = router

    async def handle(self, text: str, context: PluginContext) -> PluginResult:
        decision = await self._router.route(text, context=context.memory_context)
        return PluginResult(
            data={
                "category": decision.intent.category.value,
                "complexity": decision.complexity.score,
                "tier": decision.tier.value,
                "roster": decision.roster,
                "process": decision.process,
                "factors": dict(decision.complexity.factors),
            },
            confidence=decision.confidence,
            metadata={"routing_time_ms": decision.routing_time_ms},
        )


def register_builtin(
    registry: PluginRegistry,
    oracle: OracleClient,
    settings: Settings | None = None,
) -> list[Plugin]:
    """Register reflexion, tree-of-thought and the task router."""
    settings = settings or get_settings()
    plugins = [
        registry.register(
            "reflexion",
            PluginConfig(
                category=PluginCategory.REASONING,
                handler=StrategyPlugin(Reflexion(oracle, settings)),
                capabilities=["self_critique", "iterative_improvement", "quality_check"],
                intents=[r"\b(improve|refine|better|critique|review)\b"],
                priority=settings.reflexion_plugin_priority,
                description="Generate, self-critique and improve over several attempts",
            ),
        ),
        registry.register(
            "tree-of-thought",
            PluginConfig(
                category=PluginCategory.REASONING,
                handler=StrategyPlugin(TreeOfThought(oracle, settings)),
                capabilities=["parallel_reasoning", "multi_path", "complex_analysis"],
                intents=[
                    r"\b(analyze|compare|evaluate|consider|pros and cons)\b",
                    r"\b(step by step|break down|explain)\b",
                ],
                priority=settings.tot_plugin_priority,
                description="Explore several reasoning paths and keep the best",
            ),
        ),
        registry.register(
            "task-router",
            PluginConfig(
                category=PluginCategory.AGENTS,
                handler=RouterPlugin(TaskRouter(oracle, settings)),
                capabilities=["intent_classification", "complexity_assessment", "routing"],
                priority=settings.router_plugin_priority,
                description="Classify intent and complexity, pick a handling tier",
            ),
        ),
    ]
    log.info("plugins.builtin_registered", plugins=[p.name for p in plugins])
    return plugins
