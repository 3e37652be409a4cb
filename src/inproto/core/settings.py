"""Application settings and configuration.

This module defines all configuration options for the inproto relay.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="inproto relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server binding
    host: str = Field(default="::", alias="HOST")
    port: int = Field(default=8787, alias="PORT")

    # Database configuration
    database_url: str = Field(default="sqlite:///./data/inproto.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Proof-of-ownership challenges
    challenge_ttl_seconds: int = Field(default=5 * 60, alias="CHALLENGE_TTL_SECONDS")

    # Web Push delivery
    vapid_subject: str = Field(default="mailto:ops@wiredove.net", alias="VAPID_SUBJECT")
    push_icon_url: str = Field(default="/dovepurple_sm.png", alias="PUSH_ICON_URL")
    push_timeout_seconds: float = Field(default=10.0, alias="PUSH_TIMEOUT_SECONDS")
    push_ttl_seconds: int = Field(default=60 * 60 * 24, alias="PUSH_TTL_SECONDS")

    # Relay envelope log
    messages_page_limit: int = Field(default=200, alias="MESSAGES_PAGE_LIMIT")

    # External content feed polling
    feed_poll_enabled: bool = Field(default=False, alias="FEED_POLL_ENABLED")
    latest_url: str = Field(default="https://pub.wiredove.net/latest", alias="LATEST_URL")
    feed_poll_interval_seconds: float = Field(default=15.0, alias="FEED_POLL_INTERVAL_SECONDS")
    feed_http_timeout_seconds: float = Field(default=10.0, alias="FEED_HTTP_TIMEOUT_SECONDS")
    feed_link_base_url: str = Field(default="https://wiredove.net/", alias="FEED_LINK_BASE_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
