from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict
from urllib.parse import quote

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_FULL = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|ms|s|m|h))+")

_LOG_FORMATS = {"json", "text"}


def parse_duration(value: Any) -> timedelta:
    """Parse ``"15s"``, ``"250ms"``, ``"1h30m"`` or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)

    text = str(value).strip()
    if not text:
        raise ValueError("duration must not be empty")
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if not _DURATION_FULL.fullmatch(text):
        raise ValueError(f"invalid duration {value!r}")
    seconds = sum(
        float(amount) * _DURATION_UNITS[unit] for amount, unit in _DURATION_PART.findall(text)
    )
    return timedelta(seconds=sign * seconds)


ENV_PREFIX = "SIMPLNEWS_"


def _env(name: str) -> AliasChoices:
    """Accept ``SIMPLNEWS_<name>`` first, then the bare ``<name>``."""
    return AliasChoices(f"{ENV_PREFIX}{name}", name)


class AppConfig(BaseSettings):
    """Application settings loaded from environment variables."""

    server_host: str = Field("0.0.0.0", validation_alias=_env("SERVER_HOST"))
    server_port: int = Field(8080, validation_alias=_env("SERVER_PORT"))
    read_timeout: timedelta = Field(
        timedelta(seconds=15), validation_alias=_env("READ_TIMEOUT")
    )
    write_timeout: timedelta = Field(
        timedelta(seconds=15), validation_alias=_env("WRITE_TIMEOUT")
    )
    shutdown_timeout: timedelta = Field(
        timedelta(seconds=10), validation_alias=_env("SHUTDOWN_TIMEOUT")
    )

    database_host: str = Field("localhost", validation_alias=_env("DATABASE_HOST"))
    database_port: int = Field(5432, validation_alias=_env("DATABASE_PORT"))
    database_name: str = Field("simplnews", validation_alias=_env("DATABASE_NAME"))
    database_user: str = Field("simplnews_user", validation_alias=_env("DATABASE_USER"))
    database_password: str = Field("changeme123", validation_alias=_env("DATABASE_PASSWORD"))
    db_max_connections: int = Field(25, validation_alias=_env("DB_MAX_CONNECTIONS"))
    db_max_idle_connections: int = Field(5, validation_alias=_env("DB_MAX_IDLE_CONNECTIONS"))
    db_connection_lifetime: timedelta = Field(
        timedelta(minutes=5), validation_alias=_env("DB_CONNECTION_LIFETIME")
    )

    api_default_limit: int = Field(5, validation_alias=_env("API_DEFAULT_LIMIT"))
    api_max_limit: int = Field(20, validation_alias=_env("API_MAX_LIMIT"))
    api_enable_cors: bool = Field(True, validation_alias=_env("API_ENABLE_CORS"))

    llm_summary_model: str = Field(
        "gpt-3.5-turbo-16k", validation_alias=_env("LLM_SUMMARY_MODEL")
    )
    llm_summary_max_tokens: int = Field(150, validation_alias=_env("LLM_SUMMARY_MAX_TOKENS"))
    llm_summary_temperature: float = Field(
        0.3, validation_alias=_env("LLM_SUMMARY_TEMPERATURE")
    )
    llm_intent_model: str = Field("gpt-3.5-turbo-16k", validation_alias=_env("LLM_INTENT_MODEL"))
    llm_intent_max_tokens: int = Field(300, validation_alias=_env("LLM_INTENT_MAX_TOKENS"))
    llm_intent_temperature: float = Field(0.1, validation_alias=_env("LLM_INTENT_TEMPERATURE"))
    openai_api_key: str = Field(
        "", validation_alias=_env("OPENAI_API_KEY"), validate_default=True
    )

    trending_cache_ttl: timedelta = Field(
        timedelta(minutes=5), validation_alias=_env("TRENDING_CACHE_TTL")
    )
    trending_default_radius_km: int = Field(
        100, validation_alias=_env("TRENDING_DEFAULT_RADIUS_KM")
    )
    trending_default_time_window_hours: int = Field(
        24, validation_alias=_env("TRENDING_DEFAULT_TIME_WINDOW_HOURS")
    )
    trending_event_weights: Dict[str, float] = Field(
        default_factory=lambda: {"view": 1.0, "click": 2.0, "share": 3.0},
        validation_alias=_env("TRENDING_EVENT_WEIGHTS"),
    )

    cache_cleanup_interval: timedelta = Field(
        timedelta(minutes=1), validation_alias=_env("CACHE_CLEANUP_INTERVAL")
    )
    cache_shards: int = Field(16, ge=1, validation_alias=_env("CACHE_SHARDS"))

    log_level: str = Field("info", validation_alias=_env("LOG_LEVEL"))
    log_format: str = Field("json", validation_alias=_env("LOG_FORMAT"))
    log_output: str = Field("stdout", validation_alias=_env("LOG_OUTPUT"))

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    @field_validator(
        "read_timeout",
        "write_timeout",
        "shutdown_timeout",
        "db_connection_lifetime",
        "trending_cache_ttl",
        "cache_cleanup_interval",
        mode="before",
    )
    @classmethod
    def parse_durations(cls, value: Any) -> timedelta:
        return parse_duration(value)

    @field_validator("cache_cleanup_interval")
    @classmethod
    def require_positive_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("CACHE_CLEANUP_INTERVAL must be positive")
        return value

    @field_validator("shutdown_timeout")
    @classmethod
    def reject_negative_shutdown(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("SHUTDOWN_TIMEOUT cannot be negative")
        return value

    @field_validator("openai_api_key")
    @classmethod
    def require_openai_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("OPENAI_API_KEY environment variable is required")
        return value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in _LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be one of {sorted(_LOG_FORMATS)}, got {value!r}")
        return value

    @model_validator(mode="after")
    def check_limits(self) -> "AppConfig":
        if self.db_max_idle_connections > self.db_max_connections:
            raise ValueError("DB_MAX_IDLE_CONNECTIONS cannot exceed DB_MAX_CONNECTIONS")
        if self.api_default_limit > self.api_max_limit:
            raise ValueError("API_DEFAULT_LIMIT cannot exceed API_MAX_LIMIT")
        return self

    def database_dsn(self) -> str:
        return (
            f"postgresql://{quote(self.database_user, safe='')}:"
            f"{quote(self.database_password, safe='')}@"
            f"{self.database_host}:{self.database_port}/{self.database_name}"
        )
