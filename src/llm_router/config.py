"""LLM Router — Application Configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "llm-router"
    app_env: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"

    # ── Operator API ─────────────────────────────────────────
    admin_api_key: str = ""
    api_key_header: str = "X-API-Key"

    # ── Providers (comma-separated keys for rotation) ────────
    kimi_api_key: str = ""
    kimi_api_url: str = "https://api.moonshot.ai/v1"
    kimi_model: str = "kimi-k2.5"
    kimi_fallback_model: str = "kimi-k2-0905-preview"

    groq_api_key: str = ""
    groq_api_url: str = "https://api.groq.com/openai/v1"
    groq_model: str = "llama-3.3-70b-versatile"
    groq_fallback_model: str = "llama-3.1-8b-instant"

    # ── Routing ──────────────────────────────────────────────
    cloud_provider: str = "kimi"
    llm_provider_priority: str = "kimi,groq"

    # ── Local (Ollama) ───────────────────────────────────────
    local_ai_enabled: bool = True
    local_ai_url: str = "http://localhost:11434"
    local_ai_model: str = "llama3.1:8b"
    local_ai_timeout_seconds: float = 60.0

    # ── Upstream calls ───────────────────────────────────────
    provider_timeout_seconds: float = 60.0
    llm_temperature: float = 0.6
    llm_max_tokens: int = 4096

    # Same-key retry for transient failures
    provider_max_retries: int = 2
    provider_backoff_base: float = 1.0
    provider_backoff_max: float = 4.0

    # ── Tool loop ────────────────────────────────────────────
    tool_timeout_seconds: float = 45.0
    max_tool_rounds: int = 5

    # ── Key state ────────────────────────────────────────────
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_reset_seconds: float = 60.0
    rate_limit_cooldown_base_seconds: float = 30.0
    rate_limit_cooldown_max_seconds: float = 300.0
    billing_disable_seconds: float = 3600.0

    # ── Health checker ───────────────────────────────────────
    health_check_enabled: bool = True
    health_check_interval_seconds: float = 300.0
    health_probe_timeout_seconds: float = 5.0
    health_recover_auth_failures: bool = False

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("cloud_provider")
    @classmethod
    def _lower_cloud_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("max_tool_rounds", "provider_max_retries")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def _guard_production_secrets(self) -> Settings:
        """Prevent production from running with an open operator API."""
        if self.app_env == Environment.PRODUCTION and not self.admin_api_key:
            raise ValueError("admin_api_key must be set in production")
        return self


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
