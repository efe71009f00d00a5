"""LiteLLM wrapper exposing the text-generation oracle boundary.

Every "thinking" step in cogniflow is delegated to an external
text-completion backend. This module is the only place that talks to one:

- ``complete()`` performs a single backend call with a hard timeout and
  tenacity-driven exponential-backoff retries, and raises normalized
  ``LLMError`` subclasses on failure.
- ``invoke()`` wraps ``complete()`` and never raises: unconfigured or failed
  backends come back as ``OracleResponse(success=False, error=...)``.
- ``invoke_all()`` fans one prompt out to every configured backend.
- ``invoke_best()`` walks a fallback chain until one backend succeeds.

Backends are addressed by short names ("claude", "gpt", "gemini"). A backend
counts as configured when its provider key is set, or when a LiteLLM proxy
URL is configured (the proxy then holds the provider credentials).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import litellm
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cogniflow.config import Settings, get_settings
from cogniflow.core.errors import (
    CogniflowError,
    TransientFailureError,
    UpstreamUnavailableError,
)

log = structlog.get_logger(__name__)

# Types of errors worth retrying (transient network/rate-limit failures)
_RETRYABLE = (
    litellm.exceptions.RateLimitError,
    litellm.exceptions.ServiceUnavailableError,
    litellm.exceptions.Timeout,
    asyncio.TimeoutError,
    ConnectionError,
)

# USD per 1k tokens (input, output)
_DEFAULT_RATES: dict[str, tuple[float, float]] = {
    "claude": (0.003, 0.015),
    "gpt": (0.005, 0.015),
    "gemini": (0.00025, 0.0005),
}

FALLBACK_ORDER = ("claude", "gpt", "gemini")


class LLMError(CogniflowError):
    """Base exception for all oracle call failures."""


class LLMRateLimitError(LLMError, TransientFailureError):
    """Upstream rate limit exceeded after retries."""


class LLMTimeoutError(LLMError, TransientFailureError):
    """Backend call exceeded its timeout after retries."""


class LLMUnavailableError(LLMError, UpstreamUnavailableError):
    """Backend is not configured or the service is unavailable."""


@dataclass(frozen=True)
class BackendConfig:
    """One addressable oracle backend."""

    name: str
    model: str
    api_key: str = ""
    api_base: str | None = None
    cost_per_1k_in: float = 0.0
    cost_per_1k_out: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self.api_key or self.api_base)

    def cost(self, tokens_in: int, tokens_out: int) -> float:
        return (tokens_in / 1000) * self.cost_per_1k_in + (
            tokens_out / 1000
        ) * self.cost_per_1k_out


@dataclass
class OracleResponse:
    """Normalized result of one oracle invocation.

    Attributes:
        text:       Generated text ("" on failure).
        backend:    Backend name that served (or failed) the call.
        model:      Model id used for the call.
        tokens_in:  Prompt tokens reported by the backend.
        tokens_out: Completion tokens reported by the backend.
        cost_usd:   Estimated call cost from per-1k token rates.
        latency_ms: Wall time including retries.
        success:    False when the backend was unconfigured or failed.
        error:      Failure description when ``success`` is False.
    """

    text: str
    backend: str
    model: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0
    success: bool = True
    error: str | None = None

    @classmethod
    def failure(cls, backend: str, error: str, *, latency_ms: float = 0.0) -> OracleResponse:
        return cls(text="", backend=backend, success=False, error=error, latency_ms=latency_ms)


def build_backends(settings: Settings) -> dict[str, BackendConfig]:
    """Build the backend table from settings."""
    api_base = settings.litellm_base_url or None
    proxy_key = settings.litellm_api_key.get_secret_value()
    keys = {
        "claude": settings.anthropic_api_key.get_secret_value(),
        "gpt": settings.openai_api_key.get_secret_value(),
        "gemini": settings.gemini_api_key.get_secret_value(),
    }
    models = {
        "claude": settings.model_claude,
        "gpt": settings.model_gpt,
        "gemini": settings.model_gemini,
    }
    backends: dict[str, BackendConfig] = {}
    for name in FALLBACK_ORDER:
        rate_in, rate_out = _DEFAULT_RATES[name]
        backends[name] = BackendConfig(
            name=name,
            model=models[name],
            api_key=proxy_key if api_base and proxy_key else keys[name],
            api_base=api_base,
            cost_per_1k_in=rate_in,
            cost_per_1k_out=rate_out,
        )
    return backends


class OracleClient:
    """Multi-backend LiteLLM client with retry logic and structured logging."""

    def __init__(
        self,
        settings: Settings | None = None,
        backends: dict[str, BackendConfig] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._backends = backends if backends is not None else build_backends(self._settings)
        self._default_backend = (
            self._settings.default_backend
            if self._settings.default_backend in self._backends
            else next(iter(self._backends), "")
        )
        self._fallback_events: list[dict[str, Any]] = []

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def backends(self) -> dict[str, BackendConfig]:
        return dict(self._backends)

    @property
    def available_backends(self) -> list[str]:
        """Names of configured backends, in fallback order."""
        return [name for name, cfg in self._backends.items() if cfg.configured]

    def is_available(self, backend: str | None = None) -> bool:
        """True if ``backend`` (or, when None, any backend) is configured."""
        if backend is None:
            return bool(self.available_backends)
        cfg = self._backends.get(backend)
        return bool(cfg and cfg.configured)

    # ------------------------------------------------------------------ #
    # Raising path
    # ------------------------------------------------------------------ #

    async def complete(
        self,
        prompt: str,
        system: str | None = None,
        *,
        backend: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> OracleResponse:
        """Send one prompt to one backend via LiteLLM.

        Args:
            prompt: User prompt text.
            system: Optional system instruction.
            backend: Backend name. Falls back to the configured default.
            temperature: Sampling temperature (0.0 = deterministic).
            max_tokens: Maximum output tokens.
            timeout: Per-attempt timeout in seconds.

        Returns:
            ``OracleResponse`` with ``success=True``.

        Raises:
            LLMUnavailableError: Backend unknown, unconfigured, or unavailable after retries.
            LLMRateLimitError: Upstream rate limit after retries.
            LLMTimeoutError: Every attempt timed out.
            LLMError: Any other backend failure.
        """
        name = backend or self._default_backend
        cfg = self._backends.get(name)
        if cfg is None:
            raise LLMUnavailableError(f"Unknown oracle backend '{name}'")
        if not cfg.configured:
            raise LLMUnavailableError(f"Oracle backend '{name}' is not configured")

        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        effective_timeout = timeout or self._settings.oracle_timeout_seconds
        effective_max_tokens = max_tokens or self._settings.oracle_max_tokens
        backoff = self._settings.oracle_retry_backoff_seconds
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_RETRYABLE),
            stop=stop_after_attempt(self._settings.oracle_max_retries),
            wait=wait_exponential(multiplier=backoff, min=backoff, max=backoff * 10),
            reraise=True,
        )

        log.debug(
            "oracle.completion_request",
            backend=name,
            model=cfg.model,
            prompt_length=len(prompt),
            max_tokens=effective_max_tokens,
        )

        started = time.perf_counter()
        try:
            async for attempt in retrying:
                with attempt:
                    response = await asyncio.wait_for(
                        litellm.acompletion(
                            model=cfg.model,
                            messages=messages,
                            temperature=temperature,
                            max_tokens=effective_max_tokens,
                            api_key=cfg.api_key or None,
                            api_base=cfg.api_base,
                        ),
                        timeout=effective_timeout,
                    )
        except litellm.exceptions.RateLimitError as exc:
            raise LLMRateLimitError(f"Rate limit from '{name}': {exc}") from exc
        except (litellm.exceptions.Timeout, asyncio.TimeoutError) as exc:
            raise LLMTimeoutError(
                f"Oracle backend '{name}' timed out after {effective_timeout}s"
            ) from exc
        except (litellm.exceptions.ServiceUnavailableError, ConnectionError) as exc:
            raise LLMUnavailableError(f"Oracle backend '{name}' unavailable: {exc}") from exc
        except Exception as exc:
            raise LLMError(f"Oracle completion failed on '{name}': {exc}") from exc

        latency_ms = (time.perf_counter() - started) * 1000
        text = self.extract_text(response)
        tokens_in, tokens_out = self.extract_usage(response)
        cost = cfg.cost(tokens_in, tokens_out)

        log.info(
            "oracle.completion_done",
            backend=name,
            model=cfg.model,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost_usd=round(cost, 6),
            latency_ms=round(latency_ms, 1),
        )

        return OracleResponse(
            text=text,
            backend=name,
            model=cfg.model,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            cost_usd=cost,
            latency_ms=latency_ms,
        )

    # ------------------------------------------------------------------ #
    # Non-raising boundary
    # ------------------------------------------------------------------ #

    async def invoke(
        self,
        prompt: str,
        system: str | None = None,
        *,
        backend: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> OracleResponse:
        """Like :meth:`complete` but returns a failed response instead of raising."""
        name = backend or self._default_backend
        started = time.perf_counter()
        try:
            return await self.complete(
                prompt,
                system,
                backend=name,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=timeout,
            )
        except LLMError as exc:
            log.warning("oracle.invoke_failed", backend=name, error=str(exc))
            return OracleResponse.failure(
                name, str(exc), latency_ms=(time.perf_counter() - started) * 1000
            )

    async def invoke_all(
        self,
        prompt: str,
        system: str | None = None,
        **kwargs: Any,
    ) -> list[OracleResponse]:
        """Send the same prompt to every configured backend concurrently."""
        names = self.available_backends
        if not names:
            return []
        return list(
            await asyncio.gather(
                *[self.invoke(prompt, system, backend=name, **kwargs) for name in names]
            )
        )

    async def invoke_best(
        self,
        prompt: str,
        system: str | None = None,
        *,
        order: list[str] | None = None,
        **kwargs: Any,
    ) -> OracleResponse:
        """Try backends in fallback order until one succeeds.

        Unconfigured backends are skipped without a call. Returns the last
        failure (or a synthetic "no backend" failure) when the chain is
        exhausted.
        """
        chain = [
            name
            for name in (order or self._fallback_order())
            if self.is_available(name)
        ]
        if not chain:
            log.warning("oracle.no_backend_available")
            return OracleResponse.failure("none", "No oracle backend is configured")

        last: OracleResponse | None = None
        for name in chain:
            response = await self.invoke(prompt, system, backend=name, **kwargs)
            if response.success:
                if name != chain[0]:
                    log.info("oracle.fallback_succeeded", backend=name, preferred=chain[0])
                return response
            last = response
            self._fallback_events.append(
                {"backend": name, "error": response.error, "at": time.time()}
            )
            del self._fallback_events[:-100]
            log.warning("oracle.fallback_step_failed", backend=name, error=response.error)

        log.error("oracle.all_backends_failed", attempted=chain)
        return last if last is not None else OracleResponse.failure("none", "No oracle response")

    def get_fallback_events(self) -> list[dict[str, Any]]:
        return list(self._fallback_events)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _fallback_order(self) -> list[str]:
        order = [self._default_backend]
        order.extend(name for name in self._backends if name != self._default_backend)
        return order

    @staticmethod
    def extract_text(response: Any) -> str:
        """Extract the assistant text content from a completion response."""
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError, KeyError, TypeError):
            return ""

    @staticmethod
    def extract_usage(response: Any) -> tuple[int, int]:
        """Return (prompt_tokens, completion_tokens); zeros when absent."""
        try:
            usage = response.usage
            if usage:
                return int(usage.prompt_tokens or 0), int(usage.completion_tokens or 0)
        except (AttributeError, TypeError, ValueError):
            pass
        return 0, 0
