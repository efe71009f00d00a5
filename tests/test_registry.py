"""Tests for the plugin registry and intent detection.

Tests cover:
- Registration validation (name, category, handler, priority, patterns, duplicates)
- Capability index ordering (priority descending, ties by registration order)
- Category map and intent index views
- Callable handlers wrapped into FunctionPlugin and result coercion
- IntentDetector selection and ordering
"""

from __future__ import annotations

import re

import pytest

from cogniflow.core.errors import ConfigurationError
from cogniflow.plugins.base import (
    BasePlugin,
    FunctionPlugin,
    PluginCategory,
    PluginConfig,
    PluginContext,
    PluginResult,
    RegexIntentMatcher,
    coerce_result,
)
from cogniflow.plugins.intent import IntentDetector
from cogniflow.plugins.registry import PluginRegistry, init


async def _noop(text, context):
    return None


def _config(category=PluginCategory.REASONING, **kwargs) -> PluginConfig:
    kwargs.setdefault("handler", _noop)
    return PluginConfig(category=category, **kwargs)


class _KeywordMatcher:
    def __init__(self, word: str) -> None:
        self.word = word

    def matches(self, text: str) -> bool:
        return self.word in text.split()


# ------------------------------------------------------------------ #
# Registration
# ------------------------------------------------------------------ #


class TestRegisterValidation:
    def test_requires_category_and_handler(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError, match="requires category and handler"):
            registry.register("x", PluginConfig(handler=_noop))
        with pytest.raises(ConfigurationError, match="requires category and handler"):
            registry.register("x", PluginConfig(category="reasoning"))

    def test_empty_name(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError):
            registry.register("", _config())

    def test_unknown_category(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError, match="unknown category"):
            registry.register("x", _config(category="telepathy"))

    @pytest.mark.parametrize("priority", [-1, 101, 1000])
    def test_priority_out_of_range(self, registry: PluginRegistry, priority):
        with pytest.raises(ConfigurationError, match="outside 0-100"):
            registry.register("x", _config(priority=priority))

    @pytest.mark.parametrize("priority", [0, 100])
    def test_priority_bounds_inclusive(self, registry: PluginRegistry, priority):
        assert registry.register("x", _config(priority=priority)).priority == priority

    def test_non_integer_priority(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError):
            registry.register("x", _config(priority="high"))

    def test_invalid_pattern(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError, match="Invalid intent pattern"):
            registry.register("x", _config(intents=[r"(unclosed"]))
        assert "x" not in registry

    def test_non_callable_handler(self, registry: PluginRegistry):
        with pytest.raises(ConfigurationError, match="not callable"):
            registry.register("x", _config(handler="not a function"))

    def test_duplicate_name_rejected(self, registry: PluginRegistry):
        registry.register("x", _config())
        with pytest.raises(ConfigurationError, match="already registered"):
            registry.register("x", _config(priority=99))
        assert registry.get("x").priority == 50

    def test_string_category_accepted(self, registry: PluginRegistry):
        plugin = registry.register("x", _config(category="grounding"))
        assert plugin.category is PluginCategory.GROUNDING


class TestCapabilityIndex:
    def test_sorted_by_priority_descending(self, registry: PluginRegistry):
        registry.register("low", _config(capabilities=["web_search"], priority=10))
        registry.register("high", _config(capabilities=["web_search"], priority=90))
        registry.register("mid", _config(capabilities=["web_search"], priority=50))

        names = [p.name for p in registry.providers("web_search")]
        assert names == ["high", "mid", "low"]
        priorities = [p.priority for p in registry.providers("web_search")]
        assert priorities == sorted(priorities, reverse=True)
        assert registry.best_provider("web_search").name == "high"

    def test_ties_keep_registration_order(self, registry: PluginRegistry):
        for name in ("a", "b", "c"):
            registry.register(name, _config(capabilities=["cap"], priority=70))
        assert [p.name for p in registry.providers("cap")] == ["a", "b", "c"]

    def test_unknown_capability(self, registry: PluginRegistry):
        assert registry.providers("nothing") == []
        assert registry.best_provider("nothing") is None

    def test_providers_returns_copy(self, registry: PluginRegistry):
        registry.register("a", _config(capabilities=["cap"]))
        registry.providers("cap").clear()
        assert len(registry.providers("cap")) == 1

    def test_duplicate_capability_tags_collapsed(self, registry: PluginRegistry):
        registry.register("a", _config(capabilities=["cap", "cap"]))
        assert len(registry.providers("cap")) == 1


class TestViews:
    def test_categories_and_list(self, registry: PluginRegistry):
        registry.register("mem", _config(category="memory"))
        registry.register("tot", _config(category="reasoning"))
        registry.register("refl", _config(category="reasoning"))

        assert registry.categories() == {"memory": ["mem"], "reasoning": ["tot", "refl"]}
        assert [p.name for p in registry.list("reasoning")] == ["tot", "refl"]
        assert [p.name for p in registry.list()] == ["mem", "tot", "refl"]
        assert len(registry) == 3

    def test_intent_index(self, registry: PluginRegistry):
        registry.register("a", _config(intents=[r"\bfoo\b", r"\bbar\b"]))
        index = registry.intent_index()
        assert [name for _, name in index] == ["a", "a"]
        assert all(isinstance(m, RegexIntentMatcher) for m, _ in index)

    def test_status(self, registry: PluginRegistry):
        registry.register("a", _config(capabilities=["z", "y"], intents=["q"]))
        status = registry.status()
        assert status["plugins"] == 1
        assert status["capabilities"] == ["y", "z"]
        assert status["intent_patterns"] == 1

    def test_init_returns_fresh_registry(self):
        first = init()
        first.register("a", _config())
        assert len(init()) == 0


# ------------------------------------------------------------------ #
# Handlers
# ------------------------------------------------------------------ #


class TestHandlers:
    @pytest.mark.asyncio
    async def test_sync_callable_wrapped(self, registry: PluginRegistry):
        plugin = registry.register("echo", _config(handler=lambda text, ctx: f"echo: {text}"))
        assert isinstance(plugin.handler, FunctionPlugin)
        result = await plugin.handler.handle("hi", PluginContext())
        assert result.answer == "echo: hi"
        assert result.success is True

    @pytest.mark.asyncio
    async def test_async_callable_dict_result(self, registry: PluginRegistry):
        async def search(text, ctx):
            return {"answer": "Paris", "citations": ["https://example.org"], "raw": 1}

        plugin = registry.register("search", _config(category="grounding", handler=search))
        result = await plugin.handler.handle("capital of France", PluginContext())
        assert result.answer == "Paris"
        assert result.citations == ["https://example.org"]
        assert result.data == {"raw": 1}

    @pytest.mark.asyncio
    async def test_base_plugin_kept_as_is(self, registry: PluginRegistry):
        class Fixed(BasePlugin):
            async def handle(self, text, context):
                return PluginResult(answer="fixed", is_final=True)

        handler = Fixed()
        plugin = registry.register("fixed", _config(handler=handler))
        assert plugin.handler is handler

    def test_coerce_result(self):
        assert coerce_result(None) == PluginResult()
        existing = PluginResult(answer="x")
        assert coerce_result(existing) is existing
        assert coerce_result(42).data == {"value": 42}

    def test_unavailable_status_object(self):
        result = PluginResult.unavailable("no API key")
        assert result.success is False
        assert result.metadata["status"] == "unavailable"
        assert result.error == "no API key"


# ------------------------------------------------------------------ #
# Intent detection
# ------------------------------------------------------------------ #


class TestIntentDetector:
    def test_matches_case_insensitive(self, registry: PluginRegistry):
        registry.register("search", _config(category="grounding", intents=[r"\b(latest|news)\b"]))
        detector = IntentDetector(registry)
        assert [p.name for p in detector.detect_active("Any LATEST updates?")] == ["search"]

    def test_zero_matches(self, registry: PluginRegistry):
        registry.register("search", _config(category="grounding", intents=[r"\bnews\b"]))
        assert IntentDetector(registry).detect_active("hello there") == []

    def test_plugins_without_intents_never_selected(self, registry: PluginRegistry):
        registry.register("router", _config(category="agents", priority=95))
        assert IntentDetector(registry).detect_active("anything at all") == []

    def test_sorted_by_priority_and_deduplicated(self, registry: PluginRegistry):
        registry.register("low", _config(intents=[r"analy[sz]e", r"compare"], priority=20))
        registry.register("high", _config(intents=[r"compare"], priority=80))
        active = IntentDetector(registry).detect_active("compare and analyze these")
        assert [p.name for p in active] == ["high", "low"]

    def test_custom_matcher_and_compiled_pattern(self, registry: PluginRegistry):
        registry.register("kw", _config(intents=[_KeywordMatcher("deploy")]))
        registry.register("rx", _config(intents=[re.compile(r"^run\b")]))
        detector = IntentDetector(registry)
        assert [p.name for p in detector.detect_active("please deploy now")] == ["kw"]
        assert [p.name for p in detector.detect_active("run it")] == ["rx"]
