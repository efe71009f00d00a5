"""Turn orchestration."""

from __future__ import annotations

from cogniflow.orchestrator.director import (
    CognitiveDirector,
    PluginRun,
    ThinkMeta,
    ThinkResult,
    TraceStep,
)

__all__ = ["CognitiveDirector", "PluginRun", "ThinkMeta", "ThinkResult", "TraceStep"]
