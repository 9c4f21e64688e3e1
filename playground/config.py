"""Environment-driven settings for the playground service.

Each concern is its own pydantic-settings class with its own env prefix;
``get_settings()`` builds them once per process:

    from playground.config import get_settings
    run_timeout = get_settings().sandbox.run_timeout_sec

Tests that change the environment call ``clear_settings_cache()``.
"""

import shlex
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v):
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


class SandboxSettings(BaseSettings):
    """Execution engine: pool sizes, toolchain, deadlines and caps."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_", extra="ignore")

    jobs_dir: Path = Field(default=Path(".jobs"), description="Root for per-job workspaces")
    max_concurrency: int = Field(default=4, ge=1, description="Jobs allowed to run at once")
    interactive_shares_pool: bool = Field(
        default=True, description="Terminal sessions draw from the batch admission pool"
    )
    interactive_max_concurrency: int = Field(
        default=4, ge=1, description="Dedicated terminal pool size when not sharing"
    )
    compiler: str = Field(default="gcc", description="C compiler binary")
    compiler_flags: str = Field(default="-Wall -Wextra -pthread", description="Compiler flags")
    link_flags: str = Field(default="-lm", description="Linker flags appended after sources")
    compile_timeout_sec: float = Field(default=10.0, gt=0, description="Compile phase deadline")
    run_timeout_sec: float = Field(default=5.0, gt=0, description="Batch run deadline")
    interactive_timeout_sec: float = Field(default=15.0, gt=0, description="Terminal session run deadline")
    hard_deadline_slack_sec: float = Field(default=2.0, ge=0, description="Extra time on top of compile+run")
    output_cap_bytes: int = Field(default=100 * 1024, ge=1, description="Per-stream batch output cap")
    interactive_output_cap_bytes: int = Field(
        default=1024 * 1024, ge=1, description="Per-stream terminal output cap"
    )
    cleanup_delay_sec: float = Field(default=0.5, ge=0, description="Grace period before workspace removal")
    unbuffered_interactive: bool = Field(default=True, description="Wrap terminal programs in stdbuf")

    @field_validator("interactive_shares_pool", "unbuffered_interactive", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    @property
    def compiler_flag_list(self) -> list[str]:
        return shlex.split(self.compiler_flags)

    @property
    def link_flag_list(self) -> list[str]:
        return shlex.split(self.link_flags)


class RedisSettings(BaseSettings):
    """Optional Redis used to cache the compiler probe."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    enabled: bool = Field(default=False, description="Connect to Redis at startup")
    host: str = Field(default="redis")
    port: int = Field(default=6379)
    password: str = Field(default="")
    max_connections: int = Field(default=50, description="Blocking pool size")
    pool_timeout_sec: float = Field(default=5.0, description="Wait for a free pool connection")
    socket_timeout: float = Field(default=2.0)
    socket_connect_timeout: float = Field(default=2.0)
    runtimes_cache_ttl_sec: int = Field(default=60, description="TTL of the cached runtime probe")

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_bool(v)


class CorsSettings(BaseSettings):
    """Origins allowed to call the API from a browser."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_csv: str = Field(
        default="http://localhost:4321,http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )
    origins_regex: str = Field(default="", validation_alias="CORS_ORIGINS_REGEX")

    @property
    def origins(self) -> list[str]:
        return [part.strip() for part in self.origins_csv.split(",") if part.strip()]

    @property
    def allow_credentials(self) -> bool:
        # Browsers reject credentials combined with a wildcard origin.
        return "*" not in self.origins and not self.origins_regex


class DebugSettings(BaseSettings):
    """``REQUEST_DEBUG`` turns on per-request logging, ``WS_DEBUG`` terminal session logging."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    websocket: bool = Field(default=False, alias="ws_debug")

    @field_validator("request", "websocket", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)


class RateLimitSettings(BaseSettings):
    """Per-client request rate limiting for the execute endpoint."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_", extra="ignore")

    enabled: bool = Field(default=True)
    max_requests: int = Field(default=100, ge=1, description="Requests allowed per window")
    window_sec: float = Field(default=60.0, gt=0, description="Sliding window length")
    trust_forwarded: bool = Field(
        default=False, description="Key clients by X-Forwarded-For (only behind a proxy that sets it)"
    )

    @field_validator("enabled", "trust_forwarded", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_bool(v)


class Settings:
    """All sections together. Each one reads its own prefix from the environment."""

    def __init__(self) -> None:
        self.sandbox = SandboxSettings()
        self.redis = RedisSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()
        self.rate_limit = RateLimitSettings()


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
