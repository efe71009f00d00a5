"""Process bootstrap.

Startup order:
1. Load settings (from environment)
2. Configure structured logging (before any log calls)
3. Build the oracle client from the configured backends
4. Build a fresh plugin registry and register the built-in plugins
5. Assemble the director

Host applications register their own capability providers on
``director.registry`` after this returns and before the first turn.
"""

from __future__ import annotations

import structlog

from cogniflow.config import Settings, get_settings
from cogniflow.memory.store import InMemoryMemory, MemoryStore
from cogniflow.oracle.client import OracleClient
from cogniflow.orchestrator.director import CognitiveDirector
from cogniflow.plugins.builtin import register_builtin
from cogniflow.plugins.registry import init
from cogniflow.telemetry.logging import configure_logging

log = structlog.get_logger(__name__)


def create_director(
    settings: Settings | None = None,
    *,
    memory: MemoryStore | None = None,
    oracle: OracleClient | None = None,
) -> CognitiveDirector:
    """Wire settings, logging, oracle, registry and memory into a director."""
    settings = settings or get_settings()

    configure_logging(
        json_logs=settings.json_logs or settings.is_prod,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )

    oracle = oracle or OracleClient(settings)
    registry = init()
    register_builtin(registry, oracle, settings)

    director = CognitiveDirector(
        registry,
        oracle,
        memory if memory is not None else InMemoryMemory(),
        settings,
    )
    log.info(
        "app.director_ready",
        environment=settings.environment,
        plugins=len(registry),
        available_backends=oracle.available_backends,
    )
    return director
