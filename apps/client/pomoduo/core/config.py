from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from pydantic import AnyUrl, Field
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_env: str = Field(default="development", alias="APP_ENV")
    default_locale: str = Field(default="en-US", alias="DEFAULT_LOCALE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Timer backend
    backend_url: AnyUrl = Field(default="http://127.0.0.1:4317", alias="BACKEND_URL")
    # Optional: a local backend usually runs without auth.
    backend_token: str | None = Field(default=None, alias="BACKEND_TOKEN")
    backend_timeout_seconds: float = Field(
        default=10.0, alias="BACKEND_TIMEOUT_SECONDS"
    )
    backend_retry_attempts: int = Field(default=3, alias="BACKEND_RETRY_ATTEMPTS")
    backend_reconnect_seconds: float = Field(
        default=2.0, alias="BACKEND_RECONNECT_SECONDS"
    )

    # Live countdown
    countdown_refresh_ms: int = Field(default=200, alias="COUNTDOWN_REFRESH_MS")

    # Observability
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(
        default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE"
    )

    @model_validator(mode="after")
    def validate_runtime_constraints(self) -> "Settings":
        env = (self.app_env or "").strip().lower()
        is_prod = env in {"production", "prod"}

        backend = urlparse(str(self.backend_url))
        if backend.scheme not in {"http", "https"}:
            raise ValueError("BACKEND_URL must use http or https")
        if is_prod and backend.scheme != "https":
            backend_host = (backend.hostname or "").lower()
            if backend_host not in {"localhost", "127.0.0.1"}:
                raise ValueError(
                    "Invalid BACKEND_URL for production: remote backends must use https."
                )

        if not (50 <= self.countdown_refresh_ms <= 5000):
            raise ValueError("COUNTDOWN_REFRESH_MS must be between 50 and 5000")
        if not (1 <= self.backend_retry_attempts <= 10):
            raise ValueError("BACKEND_RETRY_ATTEMPTS must be 1..10")
        if self.backend_timeout_seconds <= 0:
            raise ValueError("BACKEND_TIMEOUT_SECONDS must be positive")
        if self.backend_reconnect_seconds < 0:
            raise ValueError("BACKEND_RECONNECT_SECONDS must be >= 0")

        level = (self.log_level or "").strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}")
        self.log_level = level

        return self

    @property
    def countdown_refresh_seconds(self) -> float:
        return self.countdown_refresh_ms / 1000.0


settings = Settings()  # type: ignore[call-arg]  # singleton import via env settings
