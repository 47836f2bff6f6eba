"""Configuration management."""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Lock queue settings from environment."""
    
    # Shared directory
    lock_dir: Path = Path(tempfile.gettempdir()) / "coordination-locks"
    dir_mode: int = 0o777
    marker_prefix: str = "queuer"
    
    # Removal notifications
    watch_backend: Literal["watchdog", "polling"] = "watchdog"
    poll_interval_seconds: float = 0.05
    watch_health_interval_seconds: float = 0.5
    observer_join_timeout_seconds: float = 2.0
    
    @field_validator("dir_mode", mode="before")
    @classmethod
    def parse_dir_mode(cls, value):
        """Accept permission bits written as "0o755", "0755" or "493"."""
        if isinstance(value, str):
            value = value.strip()
            if len(value) > 1 and value.startswith("0") and value[1].isdigit():
                value = "0o" + value[1:]
            return int(value, 0)
        return value
    
    class Config:
        env_prefix = "COORDINATION_"
        env_file = ".env"
        env_file_encoding = "utf-8"
