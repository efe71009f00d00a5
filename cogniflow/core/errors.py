"""Error taxonomy shared by every layer.

Only ``ConfigurationError``, ``ReasoningTimeoutError`` and oracle failures on
the raising ``OracleClient.complete()`` path are allowed to propagate to
callers. Everything else is converted into a structured, degraded result by
the layer that observed it.
"""

from __future__ import annotations


class CogniflowError(Exception):
    """Base exception for all cogniflow failures."""


class ConfigurationError(CogniflowError):
    """Malformed plugin registration or settings. Fatal and immediate."""


class UpstreamUnavailableError(CogniflowError):
    """A backend or collaborator is not configured or cannot be reached.

    Raised internally only; public boundaries turn it into a
    ``success=False`` result.
    """


class TransientFailureError(CogniflowError):
    """Timeout or rate limit that is worth retrying."""


class ParseFailureError(CogniflowError):
    """Structured oracle output could not be decoded."""


class PluginExecutionError(CogniflowError):
    """A plugin handler raised or timed out during a director stage."""

    def __init__(self, plugin: str, message: str) -> None:
        super().__init__(f"Plugin '{plugin}' failed: {message}")
        self.plugin = plugin


class ReasoningTimeoutError(CogniflowError):
    """A reflexion attempt exceeded its time budget; aborts the whole call."""
