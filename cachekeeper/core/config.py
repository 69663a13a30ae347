"""Library configuration (settings and environment).

Single source of truth for configuration. Uses pydantic-settings with
.env support. Values seed the default key registry and the interception
engine; callers may still pass explicit values.
"""

from functools import lru_cache

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cachekeeper.core.constants import (
    DEFAULT_KEY_PREFIX,
    DEFAULT_KEY_SEP,
    EXPRESSION_MARKER,
)


class Settings(BaseSettings):
    """Settings loaded from environment and .env.

    All settings are optional. expression_marker must be a single
    character because it is matched against the first character of a
    method expression.
    """

    app_name: str = "cachekeeper"
    debug: bool = False

    # Key namespace defaults
    cache_key_prefix: str = DEFAULT_KEY_PREFIX
    cache_key_separator: str = DEFAULT_KEY_SEP
    # When true, blank logical keys and colliding constant values raise
    # KeyRegistrationException instead of logging a warning.
    strict_key_registration: bool = False

    # Interception
    expression_marker: str = EXPRESSION_MARKER

    # Redis (keyspace expiry collaborator)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("expression_marker")
    @classmethod
    def validate_expression_marker(cls, value: str) -> str:
        """Require exactly one non-whitespace character."""
        if len(value) != 1 or value.isspace():
            raise ValueError("expression_marker must be a single non-space character")
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings. Call get_settings.cache_clear() after changing env."""
    return Settings()
