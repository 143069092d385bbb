from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")

    return urlunparse(
        parsed._replace(scheme=scheme, query=urlencode(query_params, doseq=True))
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode and SQL echo")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/wagers.db",
        description="SQLAlchemy compatible database URL",
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum loguru level emitted by the deadline scheduler",
    )
    close_expired_interval_ms: int = Field(
        default=120_000,
        description="Delay between sweeps that close wagers past their betting deadline",
    )
    process_resolvable_interval_ms: int = Field(
        default=300_000,
        description="Delay between sweeps that force resolution past the resolve deadline",
    )
    notify_resolution_deadline_interval_ms: int = Field(
        default=900_000,
        description="Delay between resolution-deadline reminder sweeps",
    )
    notify_betting_deadline_interval_ms: int = Field(
        default=900_000,
        description="Delay between betting-deadline reminder sweeps",
    )

    @field_validator(
        "close_expired_interval_ms",
        "process_resolvable_interval_ms",
        "notify_resolution_deadline_interval_ms",
        "notify_betting_deadline_interval_ms",
    )
    @classmethod
    def _validate_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("sweep intervals must be positive milliseconds")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def sweep_intervals_seconds(self) -> dict[str, float]:
        return {
            "close_expired": self.close_expired_interval_ms / 1000,
            "process_resolvable": self.process_resolvable_interval_ms / 1000,
            "resolution_reminders": self.notify_resolution_deadline_interval_ms / 1000,
            "betting_reminders": self.notify_betting_deadline_interval_ms / 1000,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
