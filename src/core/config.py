"""Application settings, pipeline knobs and CORS configuration."""

import json
import os
from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "DeckStream"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    LLM_PROVIDER: str = "gemini"  # gemini | azure_openai
    GEMINI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None
    SLIDES_MODEL: str = "gemini-2.5-flash"
    OUTLINE_MODEL: str = "gemini-2.5-flash"

    # Slide generation pipeline
    MAX_STREAM_SLIDE_CONCURRENCY: int = Field(default=10, ge=0)
    PRIORITY_START_DELAY_MS: int = Field(default=40, ge=0)
    MAX_PRIORITY_START_DELAY_MS: int = Field(default=400, ge=0)
    MIN_DELTA_INTERVAL_MS: int = Field(default=40, ge=0)
    # None disables the per-slide deadline
    SLIDE_JOB_TIMEOUT_SECONDS: Annotated[float, Field(gt=0)] | None = 180.0
    SSE_HEARTBEAT_INTERVAL_SECONDS: float = Field(default=15.0, gt=0)
    PRESENTATION_READY_MAX_RETRIES: int = Field(default=15, ge=1)
    PRESENTATION_READY_RETRY_DELAY_MS: int = Field(default=300, ge=0)
    MAX_SOURCE_DOCUMENT_CHARS: int = Field(default=8000, ge=0)

    # Database
    # Create missing tables at startup (local development without migrations)
    DB_CREATE_TABLES: bool = False

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # `_env_file` is a runtime-only kwarg of pydantic-settings.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
