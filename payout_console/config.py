"""Configuration management for the payout review console and reference service."""
import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    The console only needs the workflow service URL and the reviewer identity.
    The remaining fields configure the bundled reference service.
    """

    # Workflow service
    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout_s: float = 10.0

    # Reviewer identity (single fixed actor)
    reviewer_id: str = "ops_reviewer"

    # Decision history defaults
    history_limit: int = 100
    history_days: int = 7

    # Reference service
    sqlite_db_path: str = "./data/payout_console.db"
    learning_weight_step: float = 5.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("api_base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        # Values copied from .env files sometimes keep their quotes
        return value.strip().strip('"').strip("'").rstrip("/")


# Global settings instance
settings = Settings()

_logging_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level once per process."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _logging_configured = True
