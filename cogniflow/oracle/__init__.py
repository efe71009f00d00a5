"""Oracle boundary: the LiteLLM-backed text-generation client and the
decoding of its structured output."""

from __future__ import annotations

from cogniflow.oracle.client import (
    BackendConfig,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUnavailableError,
    OracleClient,
    OracleResponse,
)
from cogniflow.oracle.decoding import decode, decode_or_default, extract_json

__all__ = [
    "BackendConfig",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMUnavailableError",
    "OracleClient",
    "OracleResponse",
    "decode",
    "decode_or_default",
    "extract_json",
]
