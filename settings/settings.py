import logging

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from app.environment import EnvironmentName
from settings.log import LoggingSettings


class DatabaseSettings(BaseSettings):
    host: str = Field(alias="DATABASE_HOST", default="postgresql://localhost:5432")
    name: str = Field(alias="DATABASE_NAME", default="inbox_relay")
    min_pool_size: int = Field(alias="DATABASE_MIN_POOL_SIZE", default=5)
    max_pool_size: int = Field(alias="DATABASE_MAX_POOL_SIZE", default=20)

    @property
    def async_host(self) -> str:
        """Return the host URL with async driver for SQLAlchemy async engine."""
        return self.host.replace("postgresql://", "postgresql+asyncpg://", 1)


class OAuthClientSettings(BaseSettings):
    """Credentials of one Google OAuth client."""

    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


class MailboxOAuthSettings(OAuthClientSettings):
    """Client used to authorize monitored mailboxes."""

    client_id: str | None = Field(alias="GOOGLE_CLIENT_ID_CREATOR", default=None)
    client_secret: str | None = Field(alias="GOOGLE_CLIENT_SECRET_CREATOR", default=None)
    redirect_uri: str | None = Field(alias="GOOGLE_REDIRECT_URI_CREATOR", default=None)


class OwnerOAuthSettings(OAuthClientSettings):
    """Client used by the dashboard to sign owners in. Not consumed by this service."""

    client_id: str | None = Field(alias="GOOGLE_CLIENT_ID_MANAGER", default=None)
    client_secret: str | None = Field(alias="GOOGLE_CLIENT_SECRET_MANAGER", default=None)
    redirect_uri: str | None = Field(alias="GOOGLE_REDIRECT_URI_MANAGER", default=None)


class GoogleAPISettings(BaseSettings):
    pubsub_topic: str | None = Field(alias="GOOGLE_PUBSUB_TOPIC", default=None)
    watch_label: str = Field(alias="GOOGLE_WATCH_LABEL", default="INBOX")
    timeout: float = Field(alias="GOOGLE_API_TIMEOUT", default=15)
    max_retries: int = Field(alias="GOOGLE_API_MAX_RETRIES", default=3)
    retry_base_delay: float = Field(alias="GOOGLE_API_RETRY_BASE_DELAY", default=0.5)


class OAuthStateSettings(BaseSettings):
    secret: str | None = Field(alias="OAUTH_STATE_SECRET", default=None)
    max_age: int = Field(alias="OAUTH_STATE_MAX_AGE", default=3600)


class RedirectSettings(BaseSettings):
    success_url: str = Field(
        alias="FRONTEND_SUCCESS_REDIRECT_URL", default="http://localhost:5173/dashboard?creator_added=true"
    )
    error_url: str = Field(
        alias="FRONTEND_ERROR_REDIRECT_URL", default="http://localhost:5173/dashboard?creator_added=false&error=true"
    )


class RelaySettings(BaseSettings):
    webhook_url: str | None = Field(alias="N8N_WEBHOOK_URL", default=None)
    timeout: float = Field(alias="RELAY_TIMEOUT", default=10)


class NotificationSettings(BaseSettings):
    verification_token: str | None = Field(alias="PUBSUB_VERIFICATION_TOKEN", default=None)
    deadline: float = Field(alias="NOTIFICATION_DEADLINE", default=50.0)
    max_cursor_conflicts: int = Field(alias="SYNC_MAX_CURSOR_CONFLICTS", default=2)
    rebaseline_on_expired: bool = Field(alias="SYNC_REBASELINE_ON_EXPIRED", default=True)


class SentrySettings(BaseSettings):
    dsn: str | None = Field(alias="SENTRY_DSN", default=None)

    @property
    def is_enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "allow"}

    environment: EnvironmentName = Field(alias="ENVIRONMENT")
    token_encryption_key: str = Field(alias="TOKEN_ENCRYPTION_KEY")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    mailbox_oauth: MailboxOAuthSettings = Field(default_factory=MailboxOAuthSettings)
    owner_oauth: OwnerOAuthSettings = Field(default_factory=OwnerOAuthSettings)
    google: GoogleAPISettings = Field(default_factory=GoogleAPISettings)
    oauth_state: OAuthStateSettings = Field(default_factory=OAuthStateSettings)
    redirects: RedirectSettings = Field(default_factory=RedirectSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @field_validator("environment", mode="before")
    def set_environment(cls, level: str, info: ValidationInfo) -> EnvironmentName:
        try:
            return EnvironmentName(level)
        except ValueError:
            logging.getLogger(__name__).warning(f"Invalid environment: {level}")
            return EnvironmentName.DEVELOPMENT
