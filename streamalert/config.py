"""
Configuration Management

All settings come from environment variables (or a .env file) through
Pydantic Settings, so "3000" arrives as int 3000 and missing optional
values are simply None.
"""

from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings

from streamalert.errors import ConfigurationError


class Settings(BaseSettings):
    """
    Application Settings

    Variable names match field names (case-insensitive), e.g.
    TWITCH_CLIENT_ID -> twitch_client_id.
    """

    log_level: str = "INFO"
    log_categories: Optional[str] = None  # Comma-separated categories (twitch,kick,webhook,notify,system). If None, show all logs.
    port: int = 3000
    host: str = "0.0.0.0"
    environment: str = "production"  # "development" skips subscription setup

    # Twitch Configuration
    twitch_client_id: Optional[str] = None
    twitch_client_secret: Optional[str] = None
    eventsub_secret: Optional[str] = None  # Generated at startup when unset

    # Kick Configuration
    kick_client_id: Optional[str] = None
    kick_client_secret: Optional[str] = None
    kick_scopes: str = "user:read channel:read events:subscribe"

    # Outbound notification
    discord_webhook_url: Optional[str] = None
    discord_username: str = "StreamAlert"
    discord_avatar_url: Optional[str] = None

    # Storage
    data_dir: str = "./data"
    persist_tokens: bool = True  # False keeps tokens in memory only

    # Public hostname used to build webhook callback URLs
    hostname: Optional[str] = None

    # Dashboard / Kick OAuth
    dashboard_secret: Optional[str] = None
    kick_authorized_user_ids: Optional[str] = None  # Comma-separated Kick user ids

    # Enrichment retry budget
    notify_retries: int = 6
    notify_retry_delay_seconds: float = 5.0

    # Delay before re-checking subscription count after startup
    subscription_check_delay_seconds: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser().resolve()

    @property
    def oauth_enabled(self) -> bool:
        return bool(self.dashboard_secret)

    @property
    def kick_enabled(self) -> bool:
        return bool(self.kick_client_id and self.kick_client_secret)

    @property
    def authorized_kick_user_ids(self) -> List[str]:
        if not self.kick_authorized_user_ids:
            return []
        return [
            user_id.strip()
            for user_id in self.kick_authorized_user_ids.split(",")
            if user_id.strip()
        ]

    def public_base_url(self) -> str:
        """Base URL remote platforms use to reach this service."""
        if self.is_development or not self.hostname:
            return f"http://localhost:{self.port}"
        return f"https://{self.hostname}"

    def callback_url(self, platform: str) -> str:
        return f"{self.public_base_url()}/events/{platform}"

    def validate_required(self) -> None:
        """Raise ConfigurationError when credentials needed at startup are missing."""
        missing = [
            name
            for name, value in (
                ("TWITCH_CLIENT_ID", self.twitch_client_id),
                ("TWITCH_CLIENT_SECRET", self.twitch_client_secret),
                ("DISCORD_WEBHOOK_URL", self.discord_webhook_url),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing one or more required environment variables: {', '.join(missing)}"
            )


# Loaded once when the module is imported
settings = Settings()
