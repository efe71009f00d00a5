"""Plugin system: capability providers, their registry and intent detection."""

from __future__ import annotations

from cogniflow.plugins.base import (
    BasePlugin,
    FunctionPlugin,
    IntentMatcher,
    Plugin,
    PluginCategory,
    PluginConfig,
    PluginContext,
    PluginResult,
    RegexIntentMatcher,
)
from cogniflow.plugins.builtin import RouterPlugin, StrategyPlugin, register_builtin
from cogniflow.plugins.intent import IntentDetector
from cogniflow.plugins.registry import PluginRegistry, init

__all__ = [
    "BasePlugin",
    "FunctionPlugin",
    "IntentDetector",
    "IntentMatcher",
    "Plugin",
    "PluginCategory",
    "PluginConfig",
    "PluginContext",
    "PluginResult",
    "PluginRegistry",
    "RegexIntentMatcher",
    "RouterPlugin",
    "StrategyPlugin",
    "init",
    "register_builtin",
]
