"""Telemetry package: structured logging setup and turn-scoped log context."""

from __future__ import annotations

from cogniflow.telemetry.logging import (
    clear_context,
    configure_logging,
    turn_context,
)

__all__ = [
    "clear_context",
    "configure_logging",
    "turn_context",
]
