"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Supervisor settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    botkeeper_env: str = "development"
    botkeeper_log_level: str = "WARNING"

    # ── Layout ───────────────────────────────────────────────────────
    workloads_root: Path = Path(".")
    logs_path: Path = Path("logs")
    log_extension: str = "txt"

    # ── Workloads ────────────────────────────────────────────────────
    entry_command: list[str] = Field(default_factory=lambda: ["node", "index.js"])
    restart_delay_seconds: float = 5.0
    reconcile_interval_seconds: float = 30 * 60
    stop_grace_seconds: float = 10.0
    drain_timeout_seconds: float = 1.0

    @field_validator(
        "restart_delay_seconds", "reconcile_interval_seconds", "stop_grace_seconds", "drain_timeout_seconds"
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("entry_command")
    @classmethod
    def _non_empty_command(cls, value: list[str]) -> list[str]:
        if not value or not value[0]:
            raise ValueError("entry_command needs at least an executable")
        return value

    @field_validator("log_extension")
    @classmethod
    def _strip_dot(cls, value: str) -> str:
        return value.lstrip(".") or "txt"

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def logs_dir(self) -> Path:
        """Return the logs directory, creating it if needed."""
        path = Path(self.logs_path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def entry_label(self) -> str:
        """Short name of the entry point used in lifecycle notices."""
        return Path(self.entry_command[-1]).name


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
