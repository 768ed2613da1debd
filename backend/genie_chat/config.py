from __future__ import annotations

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root (parent of backend/)
_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), env_file_encoding="utf-8", extra="ignore")

    # App
    ENVIRONMENT: str = "dev"
    LOG_LEVEL: str = "DEBUG"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Databricks Genie (only the relay reads these)
    DATABRICKS_WORKSPACE_URL: str = ""
    DATABRICKS_PAT_TOKEN: SecretStr | None = None
    GENIE_SPACE_ID: str = ""
    GENIE_CONVERSATION_TITLE: str = "F1 Racing History Chat"
    GENIE_REQUEST_TIMEOUT: float = 30.0  # seconds

    # Relay
    RELAY_URL: str = "http://localhost:8000/api/genie"
    RELAY_TIMEOUT: float = 30.0  # seconds
    RELAY_RATE_LIMIT: str = "60/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Session persistence
    SESSION_BACKEND: str = "file"  # memory (single process, dev) | file | redis
    MEMORY_SESSION_LIMIT: int = 1000  # documents kept by the memory backend
    SESSION_DIR: str = "./sessions"
    SESSION_STORAGE_KEY: str = "GENIE_CHAT_STATE"
    REDIS_URL: str = "redis://localhost:6379/0"
    HISTORY_LIMIT: int = 20

    # Question validation
    QUESTION_MIN_LENGTH: int = 5
    QUESTION_MAX_LENGTH: int = 1000

    # Polling
    POLL_DELAYS_MS: list[int] = [500, 1000, 2000, 5000]
    POLL_MAX_ATTEMPTS: int = 30
    SUBMIT_BUDGET_SECONDS: float = 60.0

    @property
    def genie_configured(self) -> bool:
        """True when every Databricks setting the relay needs is present."""
        return bool(self.DATABRICKS_WORKSPACE_URL and self.DATABRICKS_PAT_TOKEN and self.GENIE_SPACE_ID)


settings = Settings()
