"""
Shared test fixtures for pytest.

Provides common fakes for all test modules:
- settings: Test environment configuration (no retry backoff, short timeouts)
- make_oracle: Scripted stand-in for OracleClient built on Mock(spec=...)
- registry: Fresh, empty plugin registry per test
- make_response: Helper to build OracleResponse objects
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from cogniflow.config import Environment, Settings, get_settings
from cogniflow.oracle.client import OracleClient, OracleResponse
from cogniflow.plugins.registry import PluginRegistry, init
from cogniflow.telemetry.logging import clear_context

Responder = Callable[..., Any]


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Oracle fakes
# ------------------------------------------------------------------ #


def make_response(text: str = "", backend: str = "claude", **kwargs: Any) -> OracleResponse:
    return OracleResponse(text=text, backend=backend, **kwargs)


def make_oracle(
    responder: Responder | str | OracleResponse | BaseException,
    backends: tuple[str, ...] = ("claude",),
) -> Mock:
    """Build a Mock(spec=OracleClient) whose invoke/invoke_best follow ``responder``.

    ``responder`` is either a fixed reply or a callable receiving
    ``(prompt, system, **kwargs)``. A reply may be a string (successful
    response), an ``OracleResponse`` (returned as-is) or an exception (raised).
    """

    async def _invoke(prompt: str, system: str | None = None, **kwargs: Any) -> OracleResponse:
        reply = responder(prompt, system, **kwargs) if callable(responder) else responder
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, OracleResponse):
            return reply
        return make_response(str(reply), backend=kwargs.get("backend") or "claude")

    oracle = Mock(spec=OracleClient)
    oracle.invoke = AsyncMock(side_effect=_invoke)
    oracle.invoke_best = AsyncMock(side_effect=_invoke)
    oracle.available_backends = list(backends)
    oracle.backends = {}
    oracle.is_available = Mock(
        side_effect=lambda backend=None: bool(backends) if backend is None else backend in backends
    )
    return oracle


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture
def settings() -> Settings:
    """Test settings: no retry backoff, short timeouts, small histories."""
    return Settings(
        environment=Environment.TEST,
        anthropic_api_key="test-anthropic-key",
        openai_api_key="",
        gemini_api_key="",
        litellm_base_url=None,
        oracle_retry_backoff_seconds=0,
        oracle_max_retries=3,
        oracle_timeout_seconds=5,
        plugin_timeout_seconds=1,
        memory_timeout_seconds=1,
        reflexion_attempt_timeout_seconds=1,
        routing_history_size=10,
        tot_history_size=10,
        reflexion_history_size=10,
    )


@pytest.fixture
def registry() -> PluginRegistry:
    return init()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Drop turn-scoped structlog context left behind by director tests."""
    yield
    clear_context()
