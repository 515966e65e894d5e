"""Skill runtime configuration settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Skill runtime configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    agent_id: str = "xbot"
    runtime_version: str = "0.1.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Skill Resolution
    skills_config_path: Path = Path("agent.config.json")
    skills_repo_root: Path = Path(".")

    # Settings Storage
    settings_work_dir: Path = Path("work")

    # Security Configuration
    kernel_cap_min_length: int = 16

    @property
    def settings_document_path(self) -> Path:
        """Location of the settings document under the work directory."""
        return self.settings_work_dir / "settings" / "server-settings.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
