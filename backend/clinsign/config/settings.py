"""
Runtime configuration for clinsign.

Values come from ``CLINSIGN_``-prefixed environment variables or a local
.env file. The signing section controls authentication timeouts, the
biometric digest algorithm and which signature meanings a compliant
document must carry.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Any

from pydantic import BeforeValidator, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from clinsign.db.models.signature import SignatureMeaning


class Environment(StrEnum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _split_meanings(value: Any) -> Any:
    """``"authored, approved"`` -> ``["AUTHORED", "APPROVED"]``; lists pass through."""
    if isinstance(value, str):
        return [part.strip().upper() for part in value.split(",") if part.strip()]
    return value


MeaningList = Annotated[list[SignatureMeaning], NoDecode, BeforeValidator(_split_meanings)]


class Settings(BaseSettings):
    """
    Type-checked settings; construct once via ``get_settings()``.

    Secrets are ``SecretStr`` so they never appear in reprs or logs.
    """

    model_config = SettingsConfigDict(
        env_prefix="CLINSIGN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",
    )

    # ── Application ────────────────────────────────────────────────────── #
    app_name: str = "clinsign"
    app_version: str = "1.0.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False, description="Never enabled in production")

    # ── Database ───────────────────────────────────────────────────────── #
    database_url: str = Field(
        default="sqlite+aiosqlite:///./clinsign.db",
        description="Async SQLAlchemy URL (sqlite+aiosqlite or postgresql+asyncpg)",
    )
    db_pool_size: int = Field(default=5, ge=1, le=50)
    db_max_overflow: int = Field(default=10, ge=0, le=100)
    db_echo: bool = Field(default=False, description="Echo SQL; development only")

    # ── Step-up signing tokens ─────────────────────────────────────────── #
    jwt_secret_key: SecretStr = Field(..., description="HMAC secret, 32+ characters")
    jwt_algorithm: str = "HS256"
    jwt_signing_token_expire_minutes: int = Field(default=5, ge=1, le=60)

    # ── Electronic signatures ──────────────────────────────────────────── #
    auth_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=120,
        description="Upper bound on each credential store / token service call",
    )
    biometric_algorithm: str = Field(
        default="sha256", description="hashlib name used to digest biometric samples"
    )
    clock_skew_seconds: int = Field(
        default=0,
        ge=0,
        le=300,
        description="How far in the future a signature timestamp may be and still verify",
    )
    audit_failed_signing_attempts: bool = Field(
        default=False,
        description="Write an ELECTRONIC_SIGNATURE_FAILED audit entry on failed signing",
    )
    compliance_required_meanings: MeaningList = Field(
        default=[SignatureMeaning.AUTHORED],
        description="Meanings every document needs before it is compliant",
    )

    # ── Logging ────────────────────────────────────────────────────────── #
    log_level: LogLevel = LogLevel.INFO
    log_json: bool = Field(default=True, description="JSON lines; False for console output")

    # ── Validators ─────────────────────────────────────────────────────── #

    @field_validator("jwt_secret_key")
    @classmethod
    def _secret_length(cls, v: SecretStr) -> SecretStr:
        if len(v.get_secret_value()) < 32:
            raise ValueError("jwt_secret_key must be at least 32 characters")
        return v

    @field_validator("biometric_algorithm")
    @classmethod
    def _known_digest(cls, v: str) -> str:
        name = v.lower()
        # shake_* digests need an explicit length
        if name not in hashlib.algorithms_guaranteed or name.startswith("shake"):
            raise ValueError(f"Unsupported biometric_algorithm: {v}")
        return name

    @model_validator(mode="after")
    def _production_guards(self) -> Settings:
        if self.environment is Environment.PRODUCTION and self.debug:
            raise ValueError("debug must be False in production")
        if self.environment is Environment.PRODUCTION and self.db_echo:
            raise ValueError("db_echo must be False in production")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
