from __future__ import annotations

from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Clinic Scheduling Core"
    database_url: str = Field(
        default="sqlite:///./clinic_scheduling.db",
        description="SQLModel compatible database URI",
    )
    audit_hash_secret: str = Field(default="change-me", description="Salt for pseudonymous audit references")

    scheduling_buffer_minutes: int = Field(default=15, ge=0)
    clinic_timezone: str = "America/Sao_Paulo"
    working_hours: str = Field(
        default="08:00-12:00,14:00-18:00",
        description="Comma separated HH:MM-HH:MM periods in clinic local time",
    )
    default_appointment_minutes: int = Field(default=30, gt=0)
    cancel_reason_min_length: int = 3
    cancel_reason_max_length: int = 500

    sync_webhook_updated_url: Optional[str] = None
    sync_webhook_cancelled_url: Optional[str] = None
    waitlist_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0
    notification_max_workers: int = Field(default=4, ge=1)

    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def working_periods(self) -> List[Tuple[str, str]]:
        periods: List[Tuple[str, str]] = []
        for chunk in self.working_hours.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            start, _, end = chunk.partition("-")
            periods.append((start.strip(), end.strip()))
        return periods


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
