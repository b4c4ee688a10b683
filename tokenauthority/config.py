from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tokenauthority.logging import get_logger

logger = get_logger(__name__)

# HMAC-SHA-512 works on 128-byte blocks; anything under the 64-byte digest size is weak
RECOMMENDED_SECRET_BYTES = 64
# Token timestamps have second precision, so shorter lifetimes cannot be represented
MIN_TOKEN_TTL_MS = 1000
DELETED_ACCOUNT_TTL_MS = 10 * 60 * 1000


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Token authority settings: the signing secret, token lifetimes and the registry."""

    secret_key: str = env_field(
        None,
        "JWT_SECRET_KEY",
        description="HMAC-SHA-512 signing secret",
        validate_default=True,
    )
    access_token_expiration: int = env_field(
        60 * 60 * 1000,
        "JWT_ACCESS_TOKEN_EXPIRATION",
        description="Access token lifetime in milliseconds",
    )
    refresh_token_expiration: int = env_field(
        14 * 24 * 60 * 60 * 1000,
        "JWT_REFRESH_TOKEN_EXPIRATION",
        description="Refresh token lifetime in milliseconds",
    )
    deleted_account_token_expiration: int = env_field(
        DELETED_ACCOUNT_TTL_MS,
        "JWT_DELETED_ACCOUNT_TOKEN_EXPIRATION",
        description="Lifetime ceiling in milliseconds for tokens minted for soft-deleted accounts",
    )
    redis_url: str | None = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT", gt=0)
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow the in-memory registry and runtime resets used by the test suite.",
    )
    allow_registry_fallback_dev: bool = env_field(
        False,
        "ALLOW_REGISTRY_FALLBACK_DEV",
        description="Fall back to the in-memory registry when Redis is unreachable (development only).",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("secret_key", mode="before")
    @classmethod
    def _ensure_secret_key(cls, value: Any) -> str:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("JWT_SECRET_KEY must be set to a non-empty secret")
        if not isinstance(value, str):
            raise ValueError("JWT_SECRET_KEY must be a string")
        if len(value.encode("utf-8")) < RECOMMENDED_SECRET_BYTES:
            logger.warning(
                "jwt_secret_below_recommended_length",
                length=len(value.encode("utf-8")),
                recommended=RECOMMENDED_SECRET_BYTES,
            )
        return value

    @field_validator(
        "access_token_expiration",
        "refresh_token_expiration",
        "deleted_account_token_expiration",
    )
    @classmethod
    def _validate_ttl(cls, value: int) -> int:
        if value < MIN_TOKEN_TTL_MS:
            raise ValueError(f"token lifetimes must be at least {MIN_TOKEN_TTL_MS}ms")
        return value

    @property
    def secret_bytes(self) -> bytes:
        return self.secret_key.encode("utf-8")


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
