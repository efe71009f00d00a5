"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (or a .env file in dev).
Priorities, tier breakpoints, timeouts and history sizes live here so that
nothing tunable is hardcoded in the engines.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEV = "dev"
    PROD = "prod"
    TEST = "test"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Application
    # ------------------------------------------------------------------ #
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of the console renderer",
    )

    # ------------------------------------------------------------------ #
    # Oracle backends (LiteLLM)
    # ------------------------------------------------------------------ #
    litellm_base_url: str | None = Field(
        default=None,
        description="Optional LiteLLM proxy base URL. When set, every backend is routed through it.",
    )
    litellm_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the LiteLLM proxy",
    )
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    gemini_api_key: SecretStr = Field(default=SecretStr(""))

    model_claude: str = Field(
        default="anthropic/claude-3-5-sonnet-20241022",
        description="Model id for the 'claude' backend (LiteLLM format)",
    )
    model_gpt: str = Field(
        default="openai/gpt-4o",
        description="Model id for the 'gpt' backend (LiteLLM format)",
    )
    model_gemini: str = Field(
        default="gemini/gemini-1.5-flash",
        description="Model id for the 'gemini' backend (LiteLLM format)",
    )
    default_backend: str = Field(default="claude")

    oracle_timeout_seconds: float = Field(default=60.0, gt=0)
    oracle_max_retries: int = Field(default=3, ge=1)
    oracle_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base of the exponential retry backoff. Zero disables waiting.",
    )
    oracle_max_tokens: int = Field(default=4096, ge=1)

    # ------------------------------------------------------------------ #
    # Director
    # ------------------------------------------------------------------ #
    plugin_timeout_seconds: float = Field(default=120.0, gt=0)
    memory_timeout_seconds: float = Field(default=5.0, gt=0)
    max_reasoning_plugins: int = Field(
        default=2,
        ge=0,
        le=2,
        description="Reasoning/agents plugins run per turn (hard cap 2)",
    )
    reflexion_plugin_priority: int = Field(default=70, ge=0, le=100)
    tot_plugin_priority: int = Field(default=60, ge=0, le=100)
    router_plugin_priority: int = Field(default=95, ge=0, le=100)

    # ------------------------------------------------------------------ #
    # Routing
    # ------------------------------------------------------------------ #
    routing_history_size: int = Field(default=500, ge=1)
    tier_standard_threshold: float = Field(default=0.3, gt=0, lt=1)
    tier_complex_threshold: float = Field(default=0.6, gt=0, lt=1)
    tier_multi_agent_threshold: float = Field(default=0.8, gt=0, lt=1)
    hierarchical_threshold: float = Field(default=0.85, gt=0, lt=1)

    # ------------------------------------------------------------------ #
    # Reasoning
    # ------------------------------------------------------------------ #
    tot_breadth: int = Field(default=3, ge=1)
    tot_depth: int = Field(default=3, ge=1)
    tot_evaluation_threshold: float = Field(default=0.6, ge=0, le=1)
    tot_history_size: int = Field(default=50, ge=1)
    reflexion_max_attempts: int = Field(default=3, ge=1)
    reflexion_confidence_threshold: float = Field(default=0.8, ge=0, le=1)
    reflexion_attempt_timeout_seconds: float = Field(default=180.0, gt=0)
    reflexion_history_size: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _set_debug_from_env(self) -> Settings:
        if self.environment == Environment.DEV:
            self.debug = True
        return self

    @model_validator(mode="after")
    def _validate_tier_breakpoints(self) -> Settings:
        """Tier breakpoints must partition [0, 1] into four ordered ranges."""
        if not (
            self.tier_standard_threshold
            < self.tier_complex_threshold
            < self.tier_multi_agent_threshold
        ):
            raise ValueError(
                "Tier breakpoints must be strictly ascending: "
                f"standard={self.tier_standard_threshold}, "
                f"complex={self.tier_complex_threshold}, "
                f"multi_agent={self.tier_multi_agent_threshold}"
            )
        return self

    @property
    def is_dev(self) -> bool:
        return self.environment in (Environment.DEV, Environment.TEST)

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PROD


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings singleton.

    Call directly at bootstrap; engines receive the instance through their
    constructors.
    """
    return Settings()
