"""
Application Settings for Gearhead Assistant

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

import base64
import binascii
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The chat stream dispatcher reads CHAT_CONTEXT_TOKEN_LIMIT and
    CHARS_PER_TOKEN to decide between the completions and assistants paths.
    """

    # Supabase Configuration
    supabase_url: str
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: str
    supabase_jwt_secret: Optional[str] = None
    supabase_storage_bucket: str = "files"

    # OpenAI Configuration
    openai_api_key: Optional[str] = None
    openai_chat_model: str = "gpt-4o"
    openai_assistant_model: str = "gpt-4o"
    openai_timeout_seconds: float = 600.0
    openai_max_retries: int = 2

    # Chat routing
    chat_context_token_limit: int = 128000
    chars_per_token: float = 3.5

    # Assistant cache
    assistant_cache_ttl_seconds: int = 600
    assistant_cache_max_size: int = 256

    # Vector store file processing
    vector_store_poll_timeout_seconds: float = 120.0
    vector_store_poll_interval_seconds: float = 3.0

    # Background email AI jobs (internal assistant config ids)
    email_categorizer_assistant_id: str = "00bed48c-895e-4096-876d-6a33dc9d5792"
    email_prioritizer_assistant_id: str = "52844d43-da0d-4588-a423-4c93c62281a0"

    # Google OAuth token encryption (base64-encoded 32-byte key)
    token_encryption_key: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Validate secrets that would otherwise fail deep inside a request."""
        if self.token_encryption_key:
            try:
                key = base64.b64decode(self.token_encryption_key, validate=True)
            except (binascii.Error, ValueError):
                raise ValueError("TOKEN_ENCRYPTION_KEY must be base64 encoded")
            if len(key) != 32:
                raise ValueError("TOKEN_ENCRYPTION_KEY must decode to 32 bytes")

        if self.is_production and not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY required when ENVIRONMENT=production")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
