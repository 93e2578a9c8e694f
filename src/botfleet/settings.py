from __future__ import annotations

import shlex
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage
    data_dir: Path = Field(default=Path("user_data"), validation_alias="BOTFLEET_DATA_DIR")
    clear_data_on_startup: bool = Field(default=False, validation_alias="CLEAR_DATA_ON_STARTUP")

    # Worker process
    worker_command: str = Field(default="node src/index.js", validation_alias="WORKER_COMMAND")
    startup_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias="STARTUP_TIMEOUT_SECONDS",
    )
    stop_kill_after_seconds: float = Field(
        default=0.0,
        ge=0,
        validation_alias="STOP_KILL_AFTER_SECONDS",
    )

    # Sessions
    session_max_age_seconds: float = Field(default=24 * 60 * 60, validation_alias="SESSION_MAX_AGE_SECONDS")
    session_idle_seconds: float = Field(default=2 * 60 * 60, validation_alias="SESSION_IDLE_SECONDS")
    session_cookie_secure: bool = Field(default=False, validation_alias="SESSION_COOKIE_SECURE")

    # Reclamation sweeps
    session_sweep_seconds: float = Field(default=60 * 60, gt=0, validation_alias="SESSION_SWEEP_SECONDS")
    orphan_sweep_seconds: float = Field(default=10 * 60, gt=0, validation_alias="ORPHAN_SWEEP_SECONDS")
    supervisor_sweep_seconds: float = Field(default=5 * 60, gt=0, validation_alias="SUPERVISOR_SWEEP_SECONDS")

    # Logs and fan-out
    log_capacity: int = Field(default=1000, ge=1, validation_alias="LOG_CAPACITY")
    log_tail: int = Field(default=50, ge=0, validation_alias="LOG_TAIL")
    subscriber_queue_size: int = Field(default=256, ge=1, validation_alias="SUBSCRIBER_QUEUE_SIZE")

    # Server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def worker_argv(self) -> list[str]:
        return shlex.split(self.worker_command)

    def kill_after(self) -> float | None:
        return self.stop_kill_after_seconds if self.stop_kill_after_seconds > 0 else None
