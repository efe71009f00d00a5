"""Plugin registry - the catalog of capability providers.

The registry is built once at startup and is append-only afterwards, so any
number of concurrent turns may read it without locking. It maintains three
views of the same plugins:

- a category map (category -> plugin names, registration order)
- a capability index (tag -> plugins, sorted by priority descending, ties in
  registration order)
- an intent index (matcher -> plugin name)

There is no module-level singleton: call :func:`init` to build a fresh,
empty registry and inject it where it is needed.
"""

from __future__ import annotations

import bisect
from typing import Any

import structlog

from cogniflow.core.errors import ConfigurationError
from cogniflow.plugins.base import (
    BasePlugin,
    FunctionPlugin,
    IntentMatcher,
    Plugin,
    PluginCategory,
    PluginConfig,
    as_matcher,
)

log = structlog.get_logger(__name__)


def _rank(plugin: Plugin) -> tuple[int, int]:
    return (-plugin.priority, plugin.order)


class PluginRegistry:
    """Registry of capability providers with category, capability and intent views."""

    def __init__(self) -> None:
        self._plugins: dict[str, Plugin] = {}
        self._categories: dict[PluginCategory, list[str]] = {}
        self._capabilities: dict[str, list[Plugin]] = {}
        self._intents: list[tuple[IntentMatcher, str]] = []

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register(self, name: str, config: PluginConfig) -> Plugin:
        """Register a capability provider.

        Args:
            name: Unique plugin name
            config: Category, handler, capability tags, intent patterns, priority

        Returns:
            The frozen registered ``Plugin``

        Raises:
            ConfigurationError: Missing name/category/handler, unknown category,
                priority outside 0-100, invalid intent pattern, or duplicate name
        """
        if not name:
            raise ConfigurationError("Plugin name cannot be empty")
        if config.category is None or config.handler is None:
            raise ConfigurationError(f"Plugin {name} requires category and handler")
        if name in self._plugins:
            raise ConfigurationError(
                f"Plugin '{name}' is already registered. Use a different name."
            )

        try:
            category = PluginCategory(config.category)
        except ValueError as exc:
            raise ConfigurationError(
                f"Plugin {name} has unknown category {config.category!r}"
            ) from exc

        if isinstance(config.priority, bool) or not isinstance(config.priority, int):
            raise ConfigurationError(f"Plugin {name} priority must be an integer")
        if not 0 <= config.priority <= 100:
            raise ConfigurationError(
                f"Plugin {name} priority {config.priority} is outside 0-100"
            )

        handler = config.handler
        if not isinstance(handler, BasePlugin):
            if not callable(handler):
                raise ConfigurationError(f"Plugin {name} handler is not callable")
            handler = FunctionPlugin(handler)

        # Validate every pattern before touching any index.
        matchers = tuple(as_matcher(intent) for intent in config.intents)

        plugin = Plugin(
            name=name,
            category=category,
            handler=handler,
            capabilities=tuple(dict.fromkeys(config.capabilities)),
            intents=matchers,
            priority=config.priority,
            description=config.description,
            order=len(self._plugins),
        )

        self._plugins[name] = plugin
        self._categories.setdefault(category, []).append(name)
        for capability in plugin.capabilities:
            bisect.insort_right(
                self._capabilities.setdefault(capability, []), plugin, key=_rank
            )
        for matcher in matchers:
            self._intents.append((matcher, name))

        log.info(
            "registry.plugin_registered",
            plugin_name=name,
            category=category.value,
            priority=plugin.priority,
            capabilities=list(plugin.capabilities),
            intent_count=len(matchers),
        )
        return plugin

    # ------------------------------------------------------------------ #
    # Reads (never execute handlers)
    # ------------------------------------------------------------------ #

    def get(self, name: str) -> Plugin | None:
        return self._plugins.get(name)

    def list(self, category: PluginCategory | str | None = None) -> list[Plugin]:
        """All plugins in registration order, optionally filtered by category."""
        if category is None:
            return [*self._plugins.values()]
        names = self._categories.get(PluginCategory(category), [])
        return [self._plugins[name] for name in names]

    def providers(self, capability: str) -> list[Plugin]:
        """Providers of ``capability``, highest priority first."""
        return [*self._capabilities.get(capability, [])]

    def best_provider(self, capability: str) -> Plugin | None:
        providers = self._capabilities.get(capability)
        return providers[0] if providers else None

    def capabilities(self) -> dict[str, list[str]]:
        return {
            tag: [plugin.name for plugin in plugins]
            for tag, plugins in self._capabilities.items()
        }

    def categories(self) -> dict[str, list[str]]:
        return {category.value: [*names] for category, names in self._categories.items()}

    def intent_index(self) -> list[tuple[IntentMatcher, str]]:
        return [*self._intents]

    def status(self) -> dict[str, Any]:
        return {
            "plugins": len(self._plugins),
            "categories": self.categories(),
            "capabilities": sorted(self._capabilities),
            "intent_patterns": len(self._intents),
        }

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins


def init() -> PluginRegistry:
    """Build a fresh, empty registry."""
    return PluginRegistry()
