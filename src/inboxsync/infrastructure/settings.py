"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from inboxsync.domain.entities.mail_account import MailProtocol


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Inbox Sync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Account / cursor storage
    sqlite_db_path: str = "./data/inboxsync.db"

    # Mail sync
    mail_connect_timeout: float = 5.0
    mail_poll_timeout: float = 30.0
    mail_initial_batch_size: int = Field(default=10, ge=1)
    mail_poll_minutes: int = Field(default=5, ge=1)

    # Single mailbox used by the CLI and worker
    mail_protocol: Literal["IMAP", "POP3"] = "IMAP"
    mail_host: str | None = None
    mail_port: int | None = None
    mail_use_ssl: bool = True
    mail_email: str | None = None
    mail_password: SecretStr | None = None

    # Workspace task API
    tasks_api_url: str = "http://localhost:5000/api"
    tasks_api_timeout: float = 10.0

    @property
    def mail_effective_port(self) -> int:
        """MAIL_PORT, or the standard port for the configured protocol."""
        return self.mail_port or MailProtocol(self.mail_protocol).default_port(self.mail_use_ssl)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
