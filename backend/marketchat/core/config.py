import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: Literal["development", "test", "production"] = "development"
    log_level: str = Field(default="INFO", description="Root log level for the API process")

    # Durable store
    database_url: str = Field(
        default="sqlite:///./marketchat.db",
        description="SQLAlchemy URL of the durable store (PostgreSQL in production)",
    )
    database_pool_size: int = 10
    database_max_overflow: int = 5

    # Real-time fan-out
    broadcast_url: str = Field(
        default="redis://localhost:6379",
        description="Broadcaster backend URL (redis://... or memory://)",
    )
    sse_heartbeat_interval: int = Field(default=30, description="SSE heartbeat interval in seconds")

    # Messaging rules
    message_preview_length: int = Field(
        default=100, description="Max characters kept in last_message_preview"
    )
    max_message_length: int = Field(default=1000, description="Max characters per message")
    message_page_size: int = Field(
        default=200, description="Batch size used when streaming a conversation's messages"
    )
    catch_up_limit: int = Field(
        default=100, description="Max missed messages replayed on SSE reconnect"
    )

    # External profile directory
    profile_directory_url: Optional[str] = Field(
        default=None, description="Base URL of the user/profile directory service"
    )
    profile_directory_timeout: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("message_preview_length", "max_message_length", "message_page_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


settings = Settings()
