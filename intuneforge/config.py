"""Publishing configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a .env file and
INTUNEFORGE_* environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/beta"
DEFAULT_CHUNK_SIZE = 6 * 1024 * 1024


class PublishSettings(BaseSettings):
    """Publishing configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export INTUNEFORGE_TOKEN=eyJ0eXAiOi...
        export INTUNEFORGE_CHUNK_SIZE=4194304
        export INTUNEFORGE_LOG_LEVEL=DEBUG

    Or via .env file::

        INTUNEFORGE_COMMIT_POLL_TIMEOUT_SECONDS=900
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="INTUNEFORGE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Remote management API
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    token: str = ""  # pre-obtained bearer token; empty means "ask the supplier"
    http_timeout_seconds: float = 100.0

    # Block upload
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    max_upload_concurrency: int = Field(default=1, ge=1)

    # Polling (storage URI assignment and commit processing)
    uri_poll_timeout_seconds: float = Field(default=60.0, gt=0)
    commit_poll_timeout_seconds: float = Field(default=600.0, gt=0)
    commit_poll_max_attempts: int = Field(default=120, ge=1)
    poll_initial_delay_seconds: float = Field(default=1.0, ge=0)
    poll_max_delay_seconds: float = Field(default=10.0, ge=0)
    poll_backoff_factor: float = 2.0

    # Observability
    log_level: str = "INFO"
    events_path: Path | None = None  # JSON-lines event log, disabled when unset

    @field_validator("poll_backoff_factor")
    @classmethod
    def _factor_not_shrinking(cls, value: float) -> float:
        if value < 1.0:
            raise ValueError("poll_backoff_factor must be >= 1.0")
        return value

    @field_validator("graph_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def has_static_token(self) -> bool:
        """Whether a pre-obtained token was configured."""
        return bool(self.token)
