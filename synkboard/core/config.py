"""
Configuration for the SynkBoard backend.

Settings are loaded from environment variables or a `.env` file and fall
back to defaults suitable for local development.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pathlib import Path
from dotenv import load_dotenv
import logging
import os

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(default="sqlite+pysqlite:///./synkboard.db")
    # Outbound calls made by webhook actions
    rule_http_timeout_ms: int = Field(default=10000)
    rule_http_user_agent: str = Field(default="SynkBoard-RuleEngine/1.0")
    # Slack incoming webhooks always use a fixed timeout
    slack_timeout_ms: int = Field(default=10000)
    api_max_page_size: int = Field(default=100)
    auto_create_db: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("SYNKBOARD_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown SYNKBOARD_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def validate_runtime_settings(current: Settings | None = None) -> None:
    current = current or settings
    env = get_app_env()
    logger = logging.getLogger("config")

    if current.rule_http_timeout_ms <= 0:
        raise RuntimeError("RULE_HTTP_TIMEOUT_MS must be positive.")
    if current.slack_timeout_ms <= 0:
        raise RuntimeError("SLACK_TIMEOUT_MS must be positive.")

    if env == "prod":
        if current.database_url.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must point at a server database in prod.")
        if current.auto_create_db:
            logger.warning("AUTO_CREATE_DB is enabled in prod. Consider setting it to false.")
    else:
        if current.api_max_page_size > 500:
            logger.warning("API_MAX_PAGE_SIZE=%s is unusually large.", current.api_max_page_size)


validate_runtime_settings()
