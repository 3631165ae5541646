"""Configuration management with Pydantic Settings.

Environment variables are loaded from:
1. Environment variables (highest priority)
2. .env file (development)
3. Defaults (lowest priority)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging format."""

    JSON = "json"
    TEXT = "text"


class DatabaseSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    user: str = Field(default="sessions", description="Database user")
    password: str = Field(default="", description="Database password")
    database: str = Field(default="sessions", description="Database name")

    @property
    def url(self) -> str:
        """Build database URL (sync driver)."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @property
    def async_url(self) -> str:
        """Build async database URL (asyncpg driver)."""
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str | None = Field(default=None, description="Redis password")

    @property
    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}"
        return f"redis://{self.host}:{self.port}"


class GatewaySettings(BaseSettings):
    """Messaging gateway configuration.

    Every gateway call is bounded by a timeout. A timeout counts as a
    failed attempt, it never stalls a pass.
    """

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    base_url: str = Field(
        default="http://messaging-gateway:8080",
        description="Gateway API base URL",
    )
    api_key: str | None = Field(default=None, description="Gateway API key")
    status_timeout_seconds: float = Field(
        default=10.0, description="Timeout for connection state queries"
    )
    connect_timeout_seconds: float = Field(
        default=15.0, description="Timeout for connect requests"
    )

    # Token bucket shared by all calls to the gateway
    requests_per_second: float = Field(
        default=1.0, gt=0, description="Sustained gateway call rate"
    )
    burst: int = Field(default=1, ge=1, description="Gateway call burst size")


class NotifierSettings(BaseSettings):
    """Outbound email delivery configuration."""

    model_config = SettingsConfigDict(env_prefix="NOTIFIER_")

    api_url: str = Field(
        default="https://api.resend.com",
        description="Email delivery API base URL",
    )
    api_key: str | None = Field(default=None, description="Email delivery API key")
    from_address: str = Field(
        default="Session Monitor <alerts@example.com>",
        description="Sender address for alert emails",
    )
    operator_email: str | None = Field(
        default=None,
        description="Global operator fallback recipient",
    )
    timeout_seconds: float = Field(default=10.0, description="Delivery request timeout")


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use the appropriate prefix (e.g., POSTGRES_HOST).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="session-health", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="ENV",
        description="Deployment environment",
    )

    # Logging configuration
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Logging format")

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server bind port")
    workers: int = Field(default=1, description="Number of worker processes")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    notifier: NotifierSettings = Field(default_factory=NotifierSettings)

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensure workers is at least 1."""
        return max(1, v)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment variables.
    """
    return Settings()


class SessionMonitorSettings(Settings):
    """Settings specific to the session health service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Reconciler
    reconcile_interval_seconds: int = Field(
        default=60,
        description="Interval between reconciliation passes",
    )
    connecting_threshold_seconds: int = Field(
        default=60,
        description="How long a session may sit in connecting before recovery",
    )
    disconnected_threshold_seconds: int = Field(
        default=60,
        description="How long a session may sit disconnected before recovery",
    )
    max_reconnect_attempts: int = Field(
        default=3,
        ge=1,
        description="Automated attempts allowed inside the attempt window",
    )
    attempt_window_seconds: int = Field(
        default=180,
        description="Rolling window for the reconnect attempt counter",
    )
    treat_missing_connecting_timestamp_as_eligible: bool = Field(
        default=True,
        description="A connecting session without an outage start is eligible immediately",
    )

    # Alert monitor
    alert_interval_seconds: int = Field(
        default=60,
        description="Interval between alert passes",
    )
    disconnect_alert_threshold_seconds: int = Field(
        default=300,
        description="Outage age before a disconnected/error session is alerted",
    )
    connecting_alert_threshold_seconds: int = Field(
        default=1800,
        description="Staleness before a connecting session is alerted",
    )
    alert_on_reauth_required: bool = Field(
        default=True,
        description="Alert sessions escalated to awaiting_reauth once per outage",
    )

    scheduler_enabled: bool = Field(
        default=True,
        description="Run reconciliation and alert passes in-process on a timer",
    )
