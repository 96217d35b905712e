"""Configuration management for Inbox Triage.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the INBOX_TRIAGE_ prefix (e.g., INBOX_TRIAGE_GMAIL_FETCH_LIMIT).
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOX_TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gmail Configuration
    gmail_credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Path to Gmail API credentials file",
    )
    gmail_token_path: Path = Field(
        default=Path("token.json"),
        description="Path to Gmail API token file",
    )
    gmail_scope: str = Field(
        default="https://mail.google.com/",
        description=(
            "OAuth scope used for Gmail access. Permanent deletion through "
            "users.messages.batchDelete requires the full mail.google.com scope."
        ),
    )
    gmail_user_id: str = Field(
        default="me",
        description="Gmail user id passed to every API call",
    )
    gmail_fetch_limit: int = Field(
        default=500,
        ge=1,
        le=500,
        description="Number of messages requested per listing page",
    )
    gmail_fetch_concurrency: int = Field(
        default=10,
        ge=1,
        description="Concurrent metadata/thread requests while building a page",
    )

    # Listing queries
    list_query: str = Field(
        default="in:inbox -is:starred older_than:1d",
        description="Gmail search query used for the delete and archive modes",
    )
    unsubscribe_query: str = Field(
        default="in:inbox -is:starred has:unsubscribe",
        description="Gmail search query used for the unsubscribe mode",
    )

    # Review session
    batch_size: int = Field(
        default=10,
        ge=1,
        description="Number of messages shown per review batch",
    )
    user_email: str | None = Field(
        default=None,
        description="Account owner's address; looked up from the Gmail profile when unset",
    )

    # Provider resilience
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum number of retries for rate-limited Gmail requests",
    )
    retry_base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial backoff delay in seconds for rate-limited requests",
    )

    # Unsubscribe dispatch
    unsubscribe_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Pause in seconds between consecutive unsubscribe requests",
    )
    unsubscribe_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Timeout in seconds for a single unsubscribe HTTP request",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
