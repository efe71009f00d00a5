"""Intent detection: select the active plugin set for a piece of free text."""

from __future__ import annotations

import structlog

from cogniflow.plugins.base import Plugin
from cogniflow.plugins.registry import PluginRegistry

log = structlog.get_logger(__name__)


class IntentDetector:
    """Matches text against every registered intent pattern.

    Plugins without patterns are never auto-selected; callers invoke them
    directly (the director always consults memory, for example).
    """

    def __init__(self, registry: PluginRegistry) -> None:
        self._registry = registry

    def detect_active(self, text: str) -> list[Plugin]:
        """Return matching plugins, deduplicated and sorted by priority descending."""
        active = [plugin for plugin in self._registry.list() if plugin.matches(text)]
        active.sort(key=lambda plugin: (-plugin.priority, plugin.order))
        log.debug(
            "intent.detected",
            text_length=len(text or ""),
            active=[plugin.name for plugin in active],
        )
        return active
