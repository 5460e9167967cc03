from __future__ import annotations

from pathlib import Path
from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolhub.constants import DB_SCHEMA

# Load .env once at module import so every BaseSettings group sees the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "toolhub"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        if v != DB_SCHEMA:
            msg = f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')."
            raise ValueError(msg)
        return v


class ToolSettings(BaseSettings):
    """Executor and orchestrator settings. Env vars prefixed with TOOLS_."""

    model_config = SettingsConfigDict(env_prefix="TOOLS_")

    default_timeout_seconds: float = Field(30.0, gt=0)
    # JSON object in env, e.g. TOOLS_TIMEOUTS='{"data.read": 10}'
    timeouts: dict[str, float] = Field(default_factory=dict)
    max_chain_depth: int = Field(5, ge=1, le=32)
    plan_first: bool = False
    trace_memory: bool = False

    @field_validator("timeouts")
    @classmethod
    def _validate_timeouts(cls, v: dict[str, float]) -> dict[str, float]:
        bad = {name: t for name, t in v.items() if t <= 0}
        if bad:
            raise ValueError(f"TOOLS_TIMEOUTS values must be > 0 (got {bad})")
        return v

    def timeout_for(self, tool_name: str) -> float:
        return self.timeouts.get(tool_name, self.default_timeout_seconds)


class DataReadSettings(BaseSettings):
    """Entity read settings. Env vars prefixed with DATA_READ_."""

    model_config = SettingsConfigDict(env_prefix="DATA_READ_")

    manifest_dir: Path = Path("manifests")
    default_per_page: int = 50
    max_per_page: int = 200

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.default_per_page < 1:
            raise ValueError(f"default_per_page must be >= 1, got {self.default_per_page}")
        if self.max_per_page < self.default_per_page:
            raise ValueError(
                f"max_per_page ({self.max_per_page}) must be >= "
                f"default_per_page ({self.default_per_page})"
            )
        return self


class LoggingSettings(BaseSettings):
    """Logging output settings. Env vars prefixed with LOG_."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    json_output: bool = True
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            msg = f"LOG_LEVEL must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v.upper()


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    data_read: DataReadSettings = Field(default_factory=DataReadSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
