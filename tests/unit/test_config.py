"""Unit tests for settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from llm_router.config import Environment, get_settings


class TestSettings:
    def test_defaults(self):
        settings = get_settings(_env_file=None)
        assert settings.max_tool_rounds == 5
        assert settings.tool_timeout_seconds == 45.0
        assert settings.circuit_breaker_failure_threshold == 5
        assert settings.rate_limit_cooldown_max_seconds == 300.0
        assert not settings.is_production

    def test_normalisation(self):
        settings = get_settings(_env_file=None, log_level="debug", cloud_provider=" Groq ")
        assert settings.log_level == "DEBUG"
        assert settings.cloud_provider == "groq"

    def test_negative_rounds_rejected(self):
        with pytest.raises(ValidationError):
            get_settings(_env_file=None, max_tool_rounds=-1)

    def test_production_requires_admin_key(self):
        with pytest.raises(ValidationError):
            get_settings(_env_file=None, app_env=Environment.PRODUCTION, admin_api_key="")

        settings = get_settings(_env_file=None, app_env="production", admin_api_key="s3cret")
        assert settings.is_production
