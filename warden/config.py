"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    warden_env: str = "development"
    warden_log_level: str = "INFO"

    # ── Check cadence (seconds) ──────────────────────────────────────
    health_check_interval: float = 3.0
    deep_check_interval: float = 60.0
    uptime_check_interval: float = 30.0

    # ── Backoff & escalation ─────────────────────────────────────────
    base_interval: float = 5.0
    max_interval: float = 300.0
    backoff_multiplier: float = 1.5
    max_attempts_per_tier: int = Field(default=3, ge=1)
    unhealthy_grace_period: float = 30.0
    deep_unhealthy_threshold: float = 300.0
    memory_pressure_threshold: float = Field(default=0.85, gt=0.0, le=1.0)

    # ── Recovery execution ───────────────────────────────────────────
    deferred_wake_delay: float = 3.0
    recovery_wait_scale: float = Field(default=1.0, ge=0.0)
    stop_timeout: float = 5.0

    # ── Monitored capability ─────────────────────────────────────────
    health_url: str = "http://localhost:8000/api/health"
    health_command: str = ""
    health_timeout: float = 10.0
    host_component: str = "host"
    capability_component: str = "capability"

    # ── Remediation commands ─────────────────────────────────────────
    # {component} is substituted in start/stop commands.
    restart_command: str = ""
    start_command: str = ""
    privileged_start_command: str = ""
    stop_command: str = ""
    reclaim_command: str = ""
    broadcast_command: str = ""
    command_timeout: float = 30.0

    # ── Persistence ──────────────────────────────────────────────────
    state_file: Path = Path("data/supervisor/recovery_state.json")
    audit_file: Path = Path("data/supervisor/audit_log.jsonl")

    @field_validator(
        "health_check_interval",
        "deep_check_interval",
        "uptime_check_interval",
        "base_interval",
        "max_interval",
        "unhealthy_grace_period",
        "deep_unhealthy_threshold",
    )
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("interval must be positive")
        return value

    @field_validator("backoff_multiplier")
    @classmethod
    def _multiplier_grows(cls, value: float) -> float:
        if value <= 1.0:
            raise ValueError("backoff_multiplier must be greater than 1")
        return value

    @model_validator(mode="after")
    def _interval_bounds(self) -> "Settings":
        if self.max_interval < self.base_interval:
            raise ValueError("max_interval must not be smaller than base_interval")
        return self

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.warden_env == "production"

    @property
    def data_dir(self) -> Path:
        """Return the directory holding the state file, creating it if needed."""
        path = self.state_file.parent
        path.mkdir(parents=True, exist_ok=True)
        return path


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
