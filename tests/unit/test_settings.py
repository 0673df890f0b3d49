"""
Unit tests for application settings.
"""

import base64

import pytest
from pydantic import ValidationError

from gearhead.config.settings import Settings


REQUIRED = {
    "supabase_url": "https://testproject.supabase.co",
    "supabase_service_role_key": "service-role",
}


def test_defaults():
    settings = Settings(_env_file=None, **REQUIRED)

    assert settings.chat_context_token_limit == 128000
    assert settings.chars_per_token == 3.5
    assert settings.assistant_cache_ttl_seconds == 600
    assert settings.openai_assistant_model == "gpt-4o"


def test_environment_variables_override(monkeypatch):
    monkeypatch.setenv("CHAT_CONTEXT_TOKEN_LIMIT", "8000")
    monkeypatch.setenv("ASSISTANT_CACHE_TTL_SECONDS", "30")

    settings = Settings(_env_file=None, **REQUIRED)

    assert settings.chat_context_token_limit == 8000
    assert settings.assistant_cache_ttl_seconds == 30


@pytest.mark.parametrize("key", ["not-base64!!", base64.b64encode(b"short").decode()])
def test_invalid_encryption_key(key):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, token_encryption_key=key, **REQUIRED)


def test_production_requires_openai_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None, environment="production", **REQUIRED)


def test_environment_flags():
    assert Settings(_env_file=None, environment="Development", **REQUIRED).is_development
    assert not Settings(_env_file=None, environment="testing", **REQUIRED).is_production
